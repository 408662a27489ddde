import streamlit as st
import pandas as pd

from services.cart_service import DeliveryCart
from services.production_service import ProductionService
from utils.formatting import format_money


@st.dialog("Confirm deliveries")
def confirmation_dialog_commit(service: ProductionService, cart: DeliveryCart, notes: str, result_state: str):
    df = pd.DataFrame(
        [
            {
                "Store": bag.store_name,
                "Items": bag.total_items,
                "Value": format_money(bag.total_value),
            }
            for bag in cart.bags()
        ]
    )
    st.dataframe(df, hide_index=True)

    # Stores that already received a delivery today need an explicit yes
    merge_choices = {}
    for bag, existing in service.pending_merges(cart):
        merge_choices[bag.store_id] = st.checkbox(
            f"{bag.store_name} already has {existing.delivery_number} today. Add these items to it?",
            key=f"merge_{bag.store_id}",
        )

    col_yes, col_no = st.columns(2)

    with col_yes:
        if st.button("Yes", type="primary", key="confirm_yes"):
            st.session_state[result_state] = service.commit(
                cart,
                notes=notes,
                created_by=st.session_state.get("user_id"),
                confirm_merge=lambda bag, delivery: merge_choices.get(bag.store_id, False),
            )
            st.rerun()
    with col_no:
        if st.button("No"):
            st.rerun()
