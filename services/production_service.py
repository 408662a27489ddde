# services/production_service.py
from datetime import date
from typing import Callable, List, Optional, Tuple

from data_integrator import SupabaseStore
from domain.models import (
    CommitResult,
    DailyDemandSummary,
    Delivery,
    StoreBag,
    StoreDeliveries,
)
from services.cart_service import DeliveryCart
from services.catalog_service import ProductTypeCatalog, StoreCatalog
from services.delivery_commit_service import ConfirmMerge, DeliveryCommitter
from services.demand_service import DemandAggregator
from services.ledger_service import DeliveryLedger
from services.sequence_service import DeliverySequencer
from utils.config import Settings, load_settings


class ProductionService:
    """
    Everything the production screens need, wired to one data store.
    """

    def __init__(
            self,
            store: SupabaseStore,
            settings: Optional[Settings] = None,
            today: Callable[[], date] = date.today,
    ):
        self.settings = settings or store.settings
        self.store = store
        self.today = today

        self.products = ProductTypeCatalog(store)
        self.stores = StoreCatalog(store)
        self.aggregator = DemandAggregator(
            store,
            self.products,
            dashboard_view=self.settings.dashboard_view,
            today=today,
        )
        self.ledger = DeliveryLedger(store, today=today)
        self.sequencer = DeliverySequencer(store)
        self.committer = DeliveryCommitter(
            store,
            self.ledger,
            self.sequencer,
            aggregator=self.aggregator,
            prefix=self.settings.delivery_prefix,
            max_sequence_attempts=self.settings.max_sequence_attempts,
            max_merge_attempts=self.settings.max_merge_attempts,
            today=today,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ProductionService":
        settings = settings or load_settings()
        return cls(SupabaseStore(settings=settings), settings=settings)

    def get_daily_summary(self) -> List[DailyDemandSummary]:
        return self.aggregator.compute_daily_summary(self.today())

    def get_todays_deliveries(self) -> List[Delivery]:
        return self.ledger.todays_deliveries(self.today())

    def get_todays_deliveries_by_store(self) -> List[StoreDeliveries]:
        return self.ledger.group_by_store(self.today())

    def refresh(self) -> None:
        """Drop every cached read, catalogs included."""
        self.products.invalidate()
        self.stores.invalidate()
        self.aggregator.invalidate()
        self.ledger.invalidate()

    def new_cart(self) -> DeliveryCart:
        return DeliveryCart(
            self.products,
            self.stores,
            day=self.today(),
            batch_prefix=self.settings.batch_prefix,
        )

    def pending_merges(self, cart: DeliveryCart, day: Optional[date] = None) -> List[Tuple[StoreBag, Delivery]]:
        """
        Cart bags whose store already has a delivery for the day, paired with
        that delivery. Used to ask the operator before committing.
        """
        day = day or self.today()
        merges = []
        for bag in cart.bags():
            existing = self.ledger.find_delivery(bag.store_id, day)
            if existing is not None:
                merges.append((bag, existing))
        return merges

    def commit(
            self,
            cart: DeliveryCart,
            production_date: Optional[date] = None,
            notes: str = "",
            created_by: Optional[str] = None,
            confirm_merge: Optional[ConfirmMerge] = None,
    ) -> CommitResult:
        return self.committer.commit(
            cart,
            production_date=production_date,
            notes=notes,
            created_by=created_by,
            confirm_merge=confirm_merge,
        )
