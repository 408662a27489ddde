# services/delivery_commit_service.py
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional, Tuple

from data_integrator import SupabaseStore
from domain.errors import DeliveryCommitError, EmptyCartError, StoreError
from domain.models import (
    CommitOutcome,
    CommitResult,
    Delivery,
    StoreBag,
    StoreCommitResult,
    to_money,
)
from services.cart_service import DeliveryCart
from services.demand_service import DemandAggregator
from services.ledger_service import DELIVERIES_TABLE, DELIVERY_ITEMS_TABLE, DeliveryLedger
from services.sequence_service import DeliverySequencer, SequenceCounter, format_delivery_number
from utils.formatting import format_money

logger = logging.getLogger(__name__)

DELIVERED = "delivered"

# Asked once per store that already has a delivery for the day.
ConfirmMerge = Callable[[StoreBag, Delivery], bool]


@dataclass
class _Batch:
    day: date
    notes: str
    created_by: Optional[str]
    confirm_merge: Optional[ConfirmMerge]
    counter: Optional[SequenceCounter] = None


class DeliveryCommitter:
    """
    Persist a DeliveryCart as delivery + delivery item rows.

    Stores are handled one by one in cart order. A store without a delivery
    for the day gets a new one with the next sequential number; a store
    that already has one is merged into it, but only when confirm_merge
    says so.
    """

    def __init__(
            self,
            store: SupabaseStore,
            ledger: DeliveryLedger,
            sequencer: DeliverySequencer,
            aggregator: Optional[DemandAggregator] = None,
            prefix: str = "ENT",
            max_sequence_attempts: int = 5,
            max_merge_attempts: int = 5,
            today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.ledger = ledger
        self.sequencer = sequencer
        self.aggregator = aggregator
        self.prefix = prefix
        self.max_sequence_attempts = max_sequence_attempts
        self.max_merge_attempts = max_merge_attempts
        self.today = today

    def commit(
            self,
            cart: DeliveryCart,
            production_date: Optional[date] = None,
            notes: str = "",
            created_by: Optional[str] = None,
            confirm_merge: Optional[ConfirmMerge] = None,
    ) -> CommitResult:
        """
        Returns one StoreCommitResult per store bag. Bags that were created
        or merged leave the cart; skipped and failed bags stay for a retry.
        Raises EmptyCartError before touching the database.
        """
        if cart.is_empty:
            raise EmptyCartError("Add at least one item before committing")

        batch = _Batch(
            day=production_date or self.today(),
            notes=notes,
            created_by=created_by,
            confirm_merge=confirm_merge,
        )
        result = CommitResult(production_date=batch.day)

        try:
            for bag in cart.bags():
                try:
                    store_result = self._commit_bag(batch, bag)
                except DeliveryCommitError as e:
                    logger.error("Delivery for %s failed: %s", e.store_name, e.message)
                    store_result = StoreCommitResult(
                        store_id=bag.store_id,
                        store_name=bag.store_name,
                        outcome=CommitOutcome.FAILED,
                        error=e.message,
                    )

                result.stores.append(store_result)
                if store_result.outcome in (CommitOutcome.CREATED, CommitOutcome.MERGED):
                    cart.discard(bag.store_id)
        finally:
            # Earlier stores may already be written even if a later one raised
            self.ledger.invalidate()
            if self.aggregator is not None:
                self.aggregator.invalidate()

        logger.info(
            "Commit for %s: %d created, %d merged, %d skipped, %d failed",
            batch.day,
            len(result.created),
            len(result.merged),
            len(result.skipped),
            len(result.failed),
        )
        return result

    def _commit_bag(self, batch: _Batch, bag: StoreBag) -> StoreCommitResult:
        try:
            existing = self.ledger.find_delivery(bag.store_id, batch.day)
        except StoreError as e:
            raise DeliveryCommitError(bag.store_id, bag.store_name, f"Checking existing delivery failed: {e}") from e

        if existing is not None:
            return self._merge_or_skip(batch, bag, existing)
        return self._create(batch, bag)

    # ------------------------------------------------------------------
    # Merge into today's delivery
    # ------------------------------------------------------------------

    def _merge_or_skip(self, batch: _Batch, bag: StoreBag, existing: Delivery) -> StoreCommitResult:
        if batch.confirm_merge is None or not batch.confirm_merge(bag, existing):
            logger.info(
                "%s already has delivery %s, merge not confirmed; leaving items in cart",
                bag.store_name,
                existing.delivery_number,
            )
            return StoreCommitResult(
                store_id=bag.store_id,
                store_name=bag.store_name,
                outcome=CommitOutcome.SKIPPED,
                delivery_number=existing.delivery_number,
                delivery_id=existing.id,
            )
        return self._merge(bag, existing)

    def _merge(self, bag: StoreBag, existing: Delivery) -> StoreCommitResult:
        # Compare-and-swap on the totals: the update only lands if nobody
        # changed them since our read, otherwise re-read and try again.
        for attempt in range(1, self.max_merge_attempts + 1):
            try:
                current = self.store.query_by_id(DELIVERIES_TABLE, existing.id, "total_items, total_value")
            except StoreError as e:
                raise DeliveryCommitError(bag.store_id, bag.store_name, f"Reading delivery totals failed: {e}") from e

            if current is None:
                raise DeliveryCommitError(
                    bag.store_id, bag.store_name, f"Delivery {existing.delivery_number} not found"
                )

            total_items = int(current.get("total_items") or 0) + bag.total_items
            total_value = to_money(current.get("total_value")) + bag.total_value

            try:
                updated = self.store.update_row(
                    DELIVERIES_TABLE,
                    existing.id,
                    {"total_items": total_items, "total_value": format_money(total_value)},
                    match={"total_items": current.get("total_items"), "total_value": current.get("total_value")},
                )
            except StoreError as e:
                raise DeliveryCommitError(bag.store_id, bag.store_name, f"Updating delivery totals failed: {e}") from e

            if updated is not None:
                break

            logger.warning(
                "Totals of %s changed while merging (attempt %d/%d)",
                existing.delivery_number,
                attempt,
                self.max_merge_attempts,
            )
        else:
            raise DeliveryCommitError(
                bag.store_id,
                bag.store_name,
                f"Delivery {existing.delivery_number} kept changing, merge gave up after "
                f"{self.max_merge_attempts} attempts",
            )

        written, warnings = self._insert_items(existing.id, bag)
        logger.info(
            "Added %d item(s) to %s for %s (now %d items, %s)",
            written,
            existing.delivery_number,
            bag.store_name,
            total_items,
            format_money(total_value),
        )
        return StoreCommitResult(
            store_id=bag.store_id,
            store_name=bag.store_name,
            outcome=CommitOutcome.MERGED,
            delivery_number=existing.delivery_number,
            delivery_id=existing.id,
            items_written=written,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # Create a new delivery
    # ------------------------------------------------------------------

    def _counter(self, batch: _Batch, bag: StoreBag) -> SequenceCounter:
        if batch.counter is None:
            try:
                batch.counter = self.sequencer.start_counter()
            except StoreError as e:
                raise DeliveryCommitError(
                    bag.store_id, bag.store_name, f"Reading last delivery number failed: {e}"
                ) from e
        return batch.counter

    def _create(self, batch: _Batch, bag: StoreBag) -> StoreCommitResult:
        counter = self._counter(batch, bag)

        for attempt in range(1, self.max_sequence_attempts + 1):
            delivery_number = format_delivery_number(self.prefix, batch.day, counter.allocate())
            try:
                row = self.store.insert_row(
                    DELIVERIES_TABLE,
                    {
                        "delivery_number": delivery_number,
                        "store_id": bag.store_id,
                        "production_date": batch.day.isoformat(),
                        "total_items": bag.total_items,
                        "total_value": format_money(bag.total_value),
                        "notes": batch.notes,
                        "status": DELIVERED,
                        "created_by": batch.created_by,
                    },
                )
            except StoreError as e:
                if not e.is_unique_violation:
                    raise DeliveryCommitError(bag.store_id, bag.store_name, f"Creating delivery failed: {e}") from e

                if e.mentions("delivery_number"):
                    logger.warning(
                        "Delivery number %s already taken (attempt %d/%d)",
                        delivery_number,
                        attempt,
                        self.max_sequence_attempts,
                    )
                    self._resync(counter, bag)
                    continue

                # Another session created this store's delivery for the day first
                return self._merge_after_conflict(batch, bag, e)

            written, warnings = self._insert_items(row["id"], bag)
            logger.info("Created %s for %s with %d item(s)", delivery_number, bag.store_name, written)
            return StoreCommitResult(
                store_id=bag.store_id,
                store_name=bag.store_name,
                outcome=CommitOutcome.CREATED,
                delivery_number=delivery_number,
                delivery_id=row["id"],
                items_written=written,
                warnings=warnings,
            )

        raise DeliveryCommitError(
            bag.store_id,
            bag.store_name,
            f"No free delivery number after {self.max_sequence_attempts} attempts",
        )

    def _resync(self, counter: SequenceCounter, bag: StoreBag) -> None:
        try:
            counter.advance_to(self.sequencer.next_sequence())
        except StoreError as e:
            raise DeliveryCommitError(
                bag.store_id, bag.store_name, f"Reading last delivery number failed: {e}"
            ) from e

    def _merge_after_conflict(self, batch: _Batch, bag: StoreBag, conflict: StoreError) -> StoreCommitResult:
        try:
            existing = self.ledger.find_delivery(bag.store_id, batch.day)
        except StoreError as e:
            raise DeliveryCommitError(bag.store_id, bag.store_name, f"Checking existing delivery failed: {e}") from e

        if existing is None:
            raise DeliveryCommitError(bag.store_id, bag.store_name, f"Creating delivery failed: {conflict}")

        logger.warning(
            "%s got delivery %s from another session, switching to merge",
            bag.store_name,
            existing.delivery_number,
        )
        return self._merge_or_skip(batch, bag, existing)

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def _insert_items(self, delivery_id: str, bag: StoreBag) -> Tuple[int, List[str]]:
        """
        Best effort: a failing item is logged and reported, the rest still go in.
        """
        written = 0
        warnings: List[str] = []

        for item in bag.items:
            try:
                self.store.insert_row(
                    DELIVERY_ITEMS_TABLE,
                    {
                        "delivery_id": delivery_id,
                        "salad_type_id": item.product_type_id,
                        "quantity": item.quantity,
                        "unit_price": format_money(item.unit_price),
                        "batch_number": item.batch_number,
                    },
                )
            except StoreError as e:
                message = f"{item.name} x{item.quantity} ({item.batch_number}) not saved: {e}"
                logger.warning("Delivery %s for %s: %s", delivery_id, bag.store_name, message)
                warnings.append(message)
                continue
            written += 1

        return written, warnings
