import streamlit as st

from domain.errors import CatalogError, ValidationError
from domain.models import CommitOutcome, CommitResult
from element_component import confirmation_dialog_commit
from services.production_service import ProductionService
from utils.formatting import default_batch_number, format_money

st.set_page_config(page_title="Send Production", page_icon="📦")
st.title("📦 Send Production")

if "production_service" not in st.session_state:
    st.session_state["production_service"] = ProductionService.from_settings()

service: ProductionService = st.session_state["production_service"]

if "delivery_cart" not in st.session_state:
    st.session_state["delivery_cart"] = service.new_cart()

cart = st.session_state["delivery_cart"]

try:
    stores = service.stores.all()
    product_types = service.products.all()
except CatalogError as e:
    st.error(str(e))
    st.stop()

if not stores or not product_types:
    st.warning("Stores and product types must be registered first.")
    st.stop()

# -----------------------------------------------------------------------------
# 1) Outcome of the last commit
# -----------------------------------------------------------------------------
last_result: CommitResult = st.session_state.pop("commit_result", None)
if last_result is not None:
    for store_result in last_result.stores:
        if store_result.outcome is CommitOutcome.CREATED:
            st.success(f"{store_result.store_name}: created {store_result.delivery_number}")
        elif store_result.outcome is CommitOutcome.MERGED:
            st.success(f"{store_result.store_name}: added to {store_result.delivery_number}")
        elif store_result.outcome is CommitOutcome.SKIPPED:
            st.info(f"{store_result.store_name}: not sent, items kept in the list")
        else:
            st.error(f"{store_result.store_name}: {store_result.error}")
        for warning in store_result.warnings:
            st.warning(warning)

# -----------------------------------------------------------------------------
# 2) Add items
# -----------------------------------------------------------------------------
store_names = {s.id: s.name for s in stores}
product_labels = {p.id: f"{p.glyph} {p.name} ({format_money(p.unit_price)})" for p in product_types}

with st.form("add_item_form", enter_to_submit=False):
    col_store, col_product = st.columns(2)
    with col_store:
        store_id = st.selectbox("Store", options=list(store_names), format_func=store_names.get)
    with col_product:
        product_type_id = st.selectbox("Product", options=list(product_labels), format_func=product_labels.get)

    col_qty, col_batch = st.columns(2)
    with col_qty:
        quantity = st.number_input("Quantity", min_value=1, step=1, value=1)
    with col_batch:
        batch_number = st.text_input(
            "Batch",
            value=default_batch_number(service.today(), service.settings.batch_prefix),
        )

    if st.form_submit_button("➕ Add"):
        try:
            cart.add(store_id, product_type_id, int(quantity), batch_number or None)
        except ValidationError as e:
            st.error(str(e))

st.divider()

# -----------------------------------------------------------------------------
# 3) Cart
# -----------------------------------------------------------------------------
st.subheader("To send")

if cart.is_empty:
    st.info("No items yet.")
    st.stop()

for bag in cart.bags():
    st.markdown(f"**{bag.store_name}** | {bag.total_items} units | {format_money(bag.total_value)}")
    for item in bag.items:
        col_label, col_remove = st.columns([5, 1])
        with col_label:
            st.caption(
                f"{item.glyph} {item.name} x{item.quantity} | Batch: {item.batch_number} | "
                f"{format_money(item.unit_price)}/unit"
            )
        with col_remove:
            if st.button("🗑️", key=f"remove_{item.id}"):
                cart.remove(bag.store_id, item.id)
                st.rerun()

st.metric("Total", f"{cart.total_items} units | {format_money(cart.total_value)}")

notes = st.text_area("Notes")

col_send, col_clear = st.columns(2)
with col_send:
    if st.button("Send", type="primary"):
        confirmation_dialog_commit(service, cart, notes, "commit_result")
with col_clear:
    if st.button("Cancel"):
        cart.clear()
        st.rerun()
