"""In-memory stock ledger: item definitions plus the last-known remaining balance."""

from decimal import Decimal
from typing import Iterable, Optional

from .logger import logger
from .schemas import Item, normalize_mnemonic


class StockLedger:
    """Current item definitions keyed by upper-cased mnemonic.

    Items are replaced wholesale on every sync and never mutated by
    allocation. The ledger also keeps a provisional balance per item: the
    remaining figure from the last replay, decremented by locally placed
    orders until the next replay overwrites it.
    """

    def __init__(self, items: Iterable[Item] = ()) -> None:
        self._items: dict[str, Item] = {}
        self._balances: dict[str, int] = {}
        if items:
            self.upsert(items)

    def upsert(self, items: Iterable[Item]) -> None:
        """Replace the full item set; later duplicates of a mnemonic win."""
        replaced: dict[str, Item] = {}
        for item in items:
            key = normalize_mnemonic(item.mnemonic)
            if key in replaced:
                logger.warning(f"Duplicate mnemonic {key} in item set, keeping the last definition")
            replaced[key] = item
        self._items = replaced
        self._balances = {}
        logger.info(f"Stock ledger replaced with {len(replaced)} items")

    def get(self, mnemonic: Optional[str]) -> Optional[Item]:
        """Look up an item case-insensitively; returns None when unknown."""
        return self._items.get(normalize_mnemonic(mnemonic))

    def remove(self, item_id: str) -> Optional[Item]:
        """Delete a single item by id (or mnemonic). Order lines referencing it are left alone."""
        for key, item in self._items.items():
            if item.item_id == item_id or key == normalize_mnemonic(item_id):
                del self._items[key]
                self._balances.pop(key, None)
                logger.info(f"Removed item {item.item_id} ({key}) from ledger")
                return item
        logger.warning(f"Remove requested for unknown item {item_id}")
        return None

    def items(self) -> list[Item]:
        """Items in display order."""
        return sorted(self._items.values(), key=lambda item: item.sequence)

    def price_of(self, mnemonic: Optional[str]) -> Decimal:
        item = self.get(mnemonic)
        return item.price if item else Decimal("0")

    def available(self, mnemonic: Optional[str]) -> int:
        """Last-known remaining balance; 0 for unknown items."""
        key = normalize_mnemonic(mnemonic)
        item = self._items.get(key)
        if item is None:
            return 0
        return self._balances.get(key, item.initial_quantity)

    def record_balances(self, balances: dict[str, int]) -> None:
        """Overwrite provisional balances with the figures of a replay."""
        self._balances = {
            normalize_mnemonic(mnemonic): remaining
            for mnemonic, remaining in balances.items()
            if normalize_mnemonic(mnemonic) in self._items
        }

    def reserve(self, mnemonic: str, quantity: int) -> int:
        """Optimistically take ``quantity`` off the provisional balance (floored at 0)."""
        key = normalize_mnemonic(mnemonic)
        remaining = max(0, self.available(key) - quantity)
        if key in self._items:
            self._balances[key] = remaining
        return remaining

    def __contains__(self, mnemonic: object) -> bool:
        return isinstance(mnemonic, str) and normalize_mnemonic(mnemonic) in self._items

    def __len__(self) -> int:
        return len(self._items)
