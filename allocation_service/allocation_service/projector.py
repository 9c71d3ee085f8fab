"""Read-side views derived from the ledger, the order log and an allocation result.

Nothing here is cached: every call recomputes from its inputs.
"""

from collections import Counter
from decimal import Decimal
from typing import Optional

from .ingest import parse_timestamp
from .ledger import StockLedger
from .order_log import OrderLog
from .schemas import (
    AllocationResult,
    DashboardSummary,
    GroupStatus,
    Item,
    LineStatus,
    OrderGroup,
    OrderLine,
    StockHealth,
    StockLevel,
    WaitlistConfig,
    normalize_mnemonic,
)

DEFAULT_LOW_STOCK_THRESHOLD = 5


def overall_status(statuses: list[LineStatus]) -> GroupStatus:
    """confirmed if every line is, waitlisted if every line is, mixed otherwise."""
    has_confirmed = LineStatus.CONFIRMED in statuses
    has_waitlisted = LineStatus.WAITLISTED in statuses
    if has_confirmed and has_waitlisted:
        return GroupStatus.MIXED
    if has_waitlisted:
        return GroupStatus.WAITLISTED
    return GroupStatus.CONFIRMED


def stock_health(remaining: int, low_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> StockHealth:
    if remaining <= 0:
        return StockHealth.OUT
    if remaining <= low_threshold:
        return StockHealth.LOW
    return StockHealth.OK


class ViewProjector:
    """Builds the grouped order view, stock levels, upsell list and summary."""

    def __init__(self, low_stock_threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> None:
        self.low_stock_threshold = low_stock_threshold

    def _build_group(
        self, key: str, lines: list[OrderLine], statuses: dict[str, LineStatus], ledger: StockLedger
    ) -> OrderGroup:
        resolved = [
            line.model_copy(update={"status": statuses.get(line.line_id, LineStatus.WAITLISTED)}) for line in lines
        ]
        first = resolved[0]
        line_statuses = [line.status for line in resolved]
        return OrderGroup(
            group_id=first.group_id or key,
            timestamp=first.timestamp,
            buyer_name=first.buyer_name,
            buyer_email=first.buyer_email,
            address=first.address,
            total_qty=sum(line.quantity for line in resolved),
            distinct_items=len({line.mnemonic for line in resolved}),
            total_cost=sum((ledger.price_of(line.mnemonic) * line.quantity for line in resolved), Decimal("0")),
            overall_status=overall_status(line_statuses),
            has_waitlisted_line=LineStatus.WAITLISTED in line_statuses,
            lines=resolved,
        )

    def grouped_view(
        self,
        ledger: StockLedger,
        log: OrderLog,
        result: AllocationResult,
        waitlisted_only: bool = False,
    ) -> list[OrderGroup]:
        """One OrderGroup per checkout, most recent first.

        A group is dated by its earliest parsable line timestamp. Groups with
        no parsable timestamp keep their raw value and follow the dated ones
        in first-seen order.
        """
        statuses = result.statuses()
        dated: list[tuple[float, OrderGroup]] = []
        undated: list[OrderGroup] = []
        for key, lines in log.group_by().items():
            group = self._build_group(key, lines, statuses, ledger)
            stamps = [(parsed, line.timestamp) for line in lines if (parsed := parse_timestamp(line.timestamp))]
            if stamps:
                earliest, raw = min(stamps, key=lambda pair: pair[0])
                group.timestamp = raw
                dated.append((earliest.timestamp(), group))
            else:
                undated.append(group)
        dated.sort(key=lambda pair: pair[0], reverse=True)
        # sort(reverse=True) keeps equal keys in their original order
        groups = [group for _, group in dated] + undated
        if waitlisted_only:
            groups = [group for group in groups if group.has_waitlisted_line]
        return groups

    def stock_levels(self, ledger: StockLedger, result: AllocationResult) -> list[StockLevel]:
        """Per-item sold/remaining/waitlisted figures with a health bucket."""
        levels = []
        for item in ledger.items():
            allocation = result.item(item.mnemonic)
            sold = allocation.sold if allocation else 0
            remaining = allocation.remaining if allocation else item.initial_quantity
            levels.append(
                StockLevel(
                    mnemonic=item.mnemonic,
                    name=item.name,
                    price=item.price,
                    initial_quantity=item.initial_quantity,
                    sold=sold,
                    remaining=remaining,
                    waitlisted_demand=allocation.waitlisted_demand if allocation else 0,
                    health=stock_health(remaining, self.low_stock_threshold),
                )
            )
        return levels

    def upsell_candidates(
        self,
        ledger: StockLedger,
        result: AllocationResult,
        current_mnemonic: Optional[str],
        waitlist: WaitlistConfig,
    ) -> list[Item]:
        """Cross-sell items for the buyer page of ``current_mnemonic``.

        An item qualifies when upsell is enabled on it, it is not the item being
        viewed, and it is still offerable: stock remains or the waitlist is open.
        """
        current = normalize_mnemonic(current_mnemonic)
        candidates = []
        for item in ledger.items():
            if not item.allow_upsell or item.mnemonic == current:
                continue
            allocation = result.item(item.mnemonic)
            remaining = allocation.remaining if allocation else item.initial_quantity
            if remaining > 0 or waitlist.max_size > 0:
                candidates.append(item)
        return candidates

    def summary(self, ledger: StockLedger, log: OrderLog, result: AllocationResult) -> DashboardSummary:
        groups = self.grouped_view(ledger, log, result)
        ordered = Counter()
        for line in log:
            ordered[line.mnemonic] += line.quantity
        return DashboardSummary(
            total_balance=sum(allocation.remaining for allocation in result.items),
            order_count=len(groups),
            waitlisted_order_count=sum(1 for group in groups if group.has_waitlisted_line),
            units_ordered=sum(ordered.values()),
            top_mnemonic=ordered.most_common(1)[0][0] if ordered else None,
        )
