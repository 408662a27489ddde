import logging

import streamlit as st
import pandas as pd

from domain.errors import CatalogError, StoreError
from services.production_service import ProductionService
from utils.config import load_settings
from utils.formatting import format_money

settings = load_settings()
logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

st.set_page_config(page_title="Production", page_icon="🏭")
st.title("🏭 Production Dashboard")

if "production_service" not in st.session_state:
    st.session_state["production_service"] = ProductionService.from_settings(settings)

service: ProductionService = st.session_state["production_service"]

if st.button("🔄 Refresh"):
    service.refresh()

# -----------------------------------------------------------------------------
# 1) Requested vs produced today
# -----------------------------------------------------------------------------
st.subheader(f"Today ({service.today():%d/%m/%Y})")

try:
    summary = service.get_daily_summary()
except CatalogError as e:
    st.error(f"Product types could not be loaded: {e}")
    st.stop()

if not summary:
    st.info("No production requested today.")
else:
    df_summary = pd.DataFrame(
        [
            {
                "Product": f"{row.glyph} {row.name}",
                "Requested": row.requested,
                "Produced": row.produced,
                "Remaining": row.remaining,
            }
            for row in summary
        ]
    )
    st.dataframe(df_summary, width='stretch', hide_index=True)

st.divider()

# -----------------------------------------------------------------------------
# 2) Deliveries already sent today, per store
# -----------------------------------------------------------------------------
st.subheader("Sent today")

try:
    by_store = service.get_todays_deliveries_by_store()
except StoreError as e:
    st.error(f"Deliveries could not be loaded: {e}")
    st.stop()

if not by_store:
    st.info("Nothing sent yet today.")

for store_deliveries in by_store:
    st.markdown(
        f"**{store_deliveries.store_name}** ({', '.join(store_deliveries.delivery_numbers)}) | "
        f"{store_deliveries.total_items} units | {format_money(store_deliveries.total_value)}"
    )
    df_items = pd.DataFrame(
        [
            {
                "Product": f"{item.product_glyph} {item.product_name}",
                "Qty": item.quantity,
                "Batch": item.batch_number,
                "Unit Price": format_money(item.unit_price),
                "Total": format_money(item.line_total),
            }
            for item in store_deliveries.items
        ]
    )
    st.dataframe(df_items, width='stretch', hide_index=True)
