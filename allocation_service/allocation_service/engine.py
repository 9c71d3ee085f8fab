"""FIFO allocation of order lines against item stock.

``AllocationEngine.allocate`` is a pure replay: the result depends only on
the ledger's item definitions and the order lines passed in, so it can be
rerun on every sync. ``allocate_local`` is the provisional fast path used
when a buyer checks out against in-memory state; the next replay
overrides whatever it decided.
"""

from typing import Sequence

from .ingest import parse_timestamp
from .ledger import StockLedger
from .logger import logger
from .schemas import AllocationResult, ItemAllocation, LineAllocation, LineStatus, OrderLine


def replay_order(lines: Sequence[OrderLine]) -> list[int]:
    """Indices of ``lines`` in allocation priority order.

    Earlier timestamps first; ties keep arrival order. Lines whose timestamp
    cannot be parsed go after every parsable one, also in arrival order.
    """
    keyed = []
    for index, line in enumerate(lines):
        parsed = parse_timestamp(line.timestamp)
        if parsed is None:
            logger.debug(f"Unparsable timestamp {line.timestamp!r} on line {line.line_id}, sorting last")
            keyed.append(((1, 0.0), index))
        else:
            keyed.append(((0, parsed.timestamp()), index))
    keyed.sort(key=lambda pair: pair[0])
    return [index for _, index in keyed]


class AllocationEngine:
    """Assigns confirmed/waitlisted to order lines; no partial fulfilment."""

    def allocate(self, ledger: StockLedger, lines: Sequence[OrderLine], log_level: str = "INFO") -> AllocationResult:
        """Replay every line from scratch against the ledger's initial quantities.

        Args:
            ledger: Item definitions; only ``initial_quantity`` is read.
            lines: Order lines in arrival order.
            log_level: Level of the summary log line; reads pass "DEBUG".

        Returns:
            AllocationResult: line statuses in input order, per-item totals in
            ledger display order.
        """
        items = ledger.items()
        remaining = {item.mnemonic: item.initial_quantity for item in items}
        sold = {item.mnemonic: 0 for item in items}
        waitlisted = {item.mnemonic: 0 for item in items}
        statuses: list[LineStatus | None] = [None] * len(lines)

        for index in replay_order(lines):
            line = lines[index]
            item = ledger.get(line.mnemonic)
            if item is None:
                logger.warning(f"Order line {line.line_id} references unknown item {line.mnemonic!r}, waitlisting")
                statuses[index] = LineStatus.WAITLISTED
                continue
            key = item.mnemonic
            if remaining[key] >= line.quantity:
                remaining[key] -= line.quantity
                sold[key] += line.quantity
                statuses[index] = LineStatus.CONFIRMED
            else:
                waitlisted[key] += line.quantity
                statuses[index] = LineStatus.WAITLISTED

        result = AllocationResult(
            lines=[LineAllocation(line_id=line.line_id, status=status) for line, status in zip(lines, statuses)],
            items=[
                ItemAllocation(
                    mnemonic=item.mnemonic,
                    initial_quantity=item.initial_quantity,
                    sold=sold[item.mnemonic],
                    remaining=remaining[item.mnemonic],
                    waitlisted_demand=waitlisted[item.mnemonic],
                )
                for item in items
            ],
        )
        logger.log(
            log_level,
            f"Allocation replayed | lines={len(lines)} | "
            f"confirmed={sum(s is LineStatus.CONFIRMED for s in statuses)} | "
            f"waitlisted={sum(s is LineStatus.WAITLISTED for s in statuses)} | items={len(items)}"
        )
        return result

    def allocate_local(self, ledger: StockLedger, lines: Sequence[OrderLine]) -> list[LineAllocation]:
        """Provisionally allocate freshly placed lines against the last-known balance.

        Each line is checked against the ledger's provisional balance and the
        balance is decremented whatever the outcome, mirroring what the buyer
        sees before the next sync. Unknown items are waitlisted.
        """
        decisions = []
        for line in lines:
            if ledger.get(line.mnemonic) is None:
                decisions.append(LineAllocation(line_id=line.line_id, status=LineStatus.WAITLISTED))
                continue
            available = ledger.available(line.mnemonic)
            status = LineStatus.CONFIRMED if available >= line.quantity else LineStatus.WAITLISTED
            ledger.reserve(line.mnemonic, line.quantity)
            decisions.append(LineAllocation(line_id=line.line_id, status=status))
            logger.debug(f"Local allocation | line={line.line_id} | {line.mnemonic} x{line.quantity} | available={available} | {status.value}")
        return decisions
