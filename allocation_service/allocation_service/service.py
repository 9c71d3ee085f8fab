"""Service state: the single writer that owns the ledger, the order log and their views."""

import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, Optional

from .engine import AllocationEngine
from .exceptions import ItemUnavailableError, OrderRejectedError, SnapshotFetchError, SnapshotSuperseded
from .ledger import StockLedger
from .logger import logger
from .order_log import OrderLog, generate_group_id, generate_line_id
from .producer import AllocationProducer
from .projector import DEFAULT_LOW_STOCK_THRESHOLD, ViewProjector
from .schemas import (
    AllocationResult,
    DashboardSummary,
    Item,
    LineAllocation,
    OrderGroup,
    OrderLine,
    OrderRequest,
    PlacementOutcome,
    Snapshot,
    StockLevel,
    WaitlistConfig,
)
from .store import MemoryStore, Store
from .sync import SnapshotFetcher


class HubState:
    """Holds the current snapshot and serialises every mutation.

    State changes only through whole-snapshot replacement (``apply_snapshot``,
    ``refresh``, ``set_inventory``) or a local checkout (``place_order``).
    Each mutation ends with a full replay, whose statuses replace any
    optimistic ones. Read methods recompute their views on every call.
    """

    def __init__(
        self,
        store: Optional[Store] = None,
        fetcher: Optional[SnapshotFetcher] = None,
        producer: Optional[AllocationProducer] = None,
        waitlist: Optional[WaitlistConfig] = None,
        low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD,
    ) -> None:
        self.ledger = StockLedger()
        self.log = OrderLog()
        self.engine = AllocationEngine()
        self.projector = ViewProjector(low_stock_threshold)
        self.store: Store = store if store is not None else MemoryStore()
        self.fetcher = fetcher
        self.producer = producer
        self.waitlist = waitlist or WaitlistConfig()
        self.last_sync: Optional[datetime] = None
        self._lock = threading.RLock()

    # Mutations

    def load(self) -> bool:
        """Restore the last saved snapshot from the store, if any."""
        snapshot = self.store.load()
        if snapshot is None:
            logger.info("No saved snapshot found, starting empty")
            return False
        with self._lock:
            self._install(snapshot)
            self._replay()
        logger.info(f"Restored snapshot | items={len(self.ledger)} | orders={len(self.log)}")
        return True

    def apply_snapshot(self, snapshot: Snapshot) -> AllocationResult:
        """Replace items and orders wholesale, persist, and replay.

        Any webhook fetch still in flight is superseded by this snapshot.
        """
        with self._lock:
            if self.fetcher is not None:
                self.fetcher.supersede()
            self._install(snapshot)
            result = self._replay()
            self._persist(result)
            return result

    def refresh(self) -> AllocationResult:
        """Fetch a fresh snapshot from the sync source and apply it.

        Raises:
            SnapshotFetchError: When no source is configured or the fetch fails;
                the current state is left untouched.
            SnapshotSuperseded: When a newer refresh overtook this one.
        """
        if self.fetcher is None:
            raise SnapshotFetchError("No sync webhook configured")
        fetcher = self.fetcher
        generation, snapshot = fetcher.fetch()
        with self._lock:
            # Re-checked under the lock: a newer fetch or snapshot may have
            # been applied while this one was parsing
            if self.fetcher is not fetcher or not fetcher.is_current(generation):
                latest = fetcher.generation
                logger.warning(f"Discarding snapshot #{generation}, superseded by #{latest}")
                raise SnapshotSuperseded(generation, latest)
            self._install(snapshot)
            result = self._replay()
            self._persist(result)
            self.last_sync = datetime.now(timezone.utc)
            return result

    def set_inventory(self, items: Iterable[Item]) -> AllocationResult:
        """Seller-side replacement of the item set, keeping the order log."""
        with self._lock:
            self.ledger.upsert(items)
            result = self._replay()
            self._persist(result, push=True)
            return result

    def remove_item(self, item_id: str) -> Item:
        """Delete one item; historical order lines keep referencing its mnemonic.

        Raises:
            ItemUnavailableError: If no item has that id or mnemonic.
        """
        with self._lock:
            removed = self.ledger.remove(item_id)
            if removed is None:
                raise ItemUnavailableError(item_id)
            result = self._replay()
            self._persist(result, push=True)
            return removed

    def set_waitlist(self, config: WaitlistConfig) -> WaitlistConfig:
        with self._lock:
            self.waitlist = config
            self._persist(self._replay())
            logger.info(f"Waitlist capacity set to {config.max_size}")
            return self.waitlist

    def set_webhook(self, url: Optional[str], timeout: float = 10.0) -> None:
        """Point the service at a different sync webhook (None disconnects it)."""
        self.fetcher = SnapshotFetcher(url, timeout=timeout) if url else None
        logger.info(f"Sync webhook {'set to ' + url if url else 'cleared'}")

    def reset(self) -> None:
        """Drop items, orders and the saved snapshot; the webhook stays configured."""
        with self._lock:
            self.ledger = StockLedger()
            self.log = OrderLog()
            self.store.clear()
            self.last_sync = None
        logger.warning("Local cache cleared")

    def place_order(self, request: OrderRequest) -> PlacementOutcome:
        """Place a buyer checkout against the in-memory state.

        Every line is admitted first: unknown items are refused, and so is an
        out-of-stock item while the waitlist is closed. The lines then get a
        provisional verdict from the last-known balances, are appended to the
        log, and a full replay decides their authoritative status.

        Raises:
            ItemUnavailableError: A line names an unknown mnemonic.
            OrderRejectedError: A line is out of stock and the waitlist is closed.
        """
        with self._lock:
            items = []
            for requested in request.lines:
                item = self.ledger.get(requested.mnemonic)
                if item is None:
                    raise ItemUnavailableError(requested.mnemonic)
                if self.ledger.available(item.mnemonic) <= 0 and self.waitlist.max_size == 0:
                    raise OrderRejectedError(item.mnemonic)
                items.append(item)

            group_id = generate_group_id()
            placed_at = datetime.now(timezone.utc).isoformat()
            lines = [
                OrderLine(
                    line_id=generate_line_id(index),
                    group_id=group_id,
                    mnemonic=item.mnemonic,
                    item_name=item.name,
                    quantity=requested.quantity,
                    buyer_name=request.buyer_name,
                    buyer_email=request.buyer_email,
                    address=request.address,
                    timestamp=placed_at,
                )
                for index, (item, requested) in enumerate(zip(items, request.lines))
            ]
            provisional = self.engine.allocate_local(self.ledger, lines)
            lines = [
                line.model_copy(update={"status": decision.status}) for line, decision in zip(lines, provisional)
            ]
            self.log.append(lines)

            result = self._replay()
            self._persist(result, push=True)
            if self.producer is not None:
                self._publish(lambda: self.producer.publish_order(group_id, lines))

            authoritative = [
                LineAllocation(line_id=line.line_id, status=result.status_of(line.line_id)) for line in lines
            ]
            outcome = PlacementOutcome(
                group_id=group_id,
                total=sum((item.price * line.quantity for item, line in zip(items, lines)), Decimal("0")),
                provisional=provisional,
                lines=authoritative,
            )
            if not outcome.reconciled:
                logger.warning(f"Order {group_id}: replay overrode the provisional statuses shown to the buyer")
            logger.info(f"Order placed | group_id={group_id} | lines={len(lines)} | total={outcome.total}")
            return outcome

    # Views

    def allocation(self) -> AllocationResult:
        with self._lock:
            return self.engine.allocate(self.ledger, self.log.lines(), log_level="DEBUG")

    def groups(self, waitlisted_only: bool = False) -> list[OrderGroup]:
        with self._lock:
            result = self.allocation()
            return self.projector.grouped_view(self.ledger, self.log, result, waitlisted_only=waitlisted_only)

    def stock(self) -> list[StockLevel]:
        with self._lock:
            return self.projector.stock_levels(self.ledger, self.allocation())

    def upsell(self, mnemonic: str) -> list[Item]:
        with self._lock:
            return self.projector.upsell_candidates(self.ledger, self.allocation(), mnemonic, self.waitlist)

    def summary(self) -> DashboardSummary:
        with self._lock:
            return self.projector.summary(self.ledger, self.log, self.allocation())

    def item(self, mnemonic: str) -> Optional[Item]:
        return self.ledger.get(mnemonic)

    def snapshot(self) -> Snapshot:
        with self._lock:
            return self._snapshot(self.allocation())

    # Internals

    def _install(self, snapshot: Snapshot) -> None:
        self.ledger.upsert(snapshot.items)
        self.log.replace(snapshot.orders)
        if snapshot.waitlist is not None:
            self.waitlist = snapshot.waitlist

    def _replay(self) -> AllocationResult:
        result = self.engine.allocate(self.ledger, self.log.lines())
        self.ledger.record_balances({item.mnemonic: item.remaining for item in result.items})
        if self.producer is not None:
            self._publish(lambda: self.producer.publish_allocation(result))
        return result

    def _snapshot(self, result: AllocationResult) -> Snapshot:
        statuses = result.statuses()
        return Snapshot(
            items=self.ledger.items(),
            orders=[line.model_copy(update={"status": statuses.get(line.line_id)}) for line in self.log],
            waitlist=self.waitlist,
        )

    def _persist(self, result: AllocationResult, push: bool = False) -> None:
        snapshot = self._snapshot(result)
        self.store.save(snapshot)
        if push and self.fetcher is not None:
            self.fetcher.push(snapshot)

    def _publish(self, send) -> None:
        try:
            send()
        except Exception as e:
            logger.error(f"Failed to publish to Kafka: {e}")
