"""Order log: deduplicated order lines grouped by checkout."""

import random
import string
import time
from typing import Iterable

from .logger import logger
from .schemas import OrderLine

UNKNOWN_GROUP = "UNKNOWN"

_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def _random_suffix(length: int) -> str:
    return "".join(random.choices(_SUFFIX_ALPHABET, k=length))


def generate_group_id() -> str:
    """Group id for a locally placed checkout, e.g. ``ORD-1718000000000-X7K``."""
    return f"ORD-{int(time.time() * 1000)}-{_random_suffix(3)}"


def generate_line_id(index: int) -> str:
    """Line id for a locally placed line; random suffix keeps same-millisecond ids apart."""
    return f"{int(time.time() * 1000)}-{index}-{_random_suffix(4)}"


class OrderLog:
    """Arrival-ordered order lines, unique by ``line_id``."""

    def __init__(self, lines: Iterable[OrderLine] = ()) -> None:
        self._lines: list[OrderLine] = []
        self._ids: set[str] = set()
        if lines:
            self.append(lines)

    @staticmethod
    def group_key(line: OrderLine) -> str:
        """Case-insensitive group key; blank group ids share the UNKNOWN bucket."""
        return (line.group_id.strip() or UNKNOWN_GROUP).upper()

    def append(self, lines: Iterable[OrderLine]) -> list[OrderLine]:
        """Add lines not seen before.

        Returns:
            list[OrderLine]: the lines actually added, in arrival order.
        """
        added = []
        for line in lines:
            if line.line_id in self._ids:
                logger.debug(f"Skipping duplicate order line {line.line_id}")
                continue
            self._ids.add(line.line_id)
            self._lines.append(line)
            added.append(line)
        return added

    def replace(self, lines: Iterable[OrderLine]) -> None:
        """Swap in a full snapshot of lines (deduplicated within the snapshot)."""
        self._lines = []
        self._ids = set()
        added = self.append(lines)
        logger.info(f"Order log replaced with {len(added)} lines")

    def lines(self) -> list[OrderLine]:
        return list(self._lines)

    def group_by(self) -> dict[str, list[OrderLine]]:
        """Lines bucketed by group key, buckets in first-seen order."""
        groups: dict[str, list[OrderLine]] = {}
        for line in self._lines:
            groups.setdefault(self.group_key(line), []).append(line)
        unknown = groups.get(UNKNOWN_GROUP)
        if unknown and len({line.buyer_name for line in unknown}) > 1:
            logger.warning(f"{len(unknown)} lines without an order id merged into the {UNKNOWN_GROUP} group")
        return groups

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines)
