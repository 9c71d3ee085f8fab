"""Errors raised at the allocation service boundary.

Allocation itself never raises for bad data (unknown items, malformed
timestamps); these exceptions cover the transport and admission paths only.
"""


class HubError(Exception):
    """Base class for allocation service errors."""


class SnapshotFetchError(HubError):
    """Fetching a snapshot from the sync source failed (network, timeout, bad payload)."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message)
        self.url = url


class SnapshotSuperseded(HubError):
    """A fetch completed after a newer fetch had already started; its data is discarded."""

    def __init__(self, generation: int, latest: int):
        super().__init__(f"Snapshot fetch #{generation} superseded by fetch #{latest}")
        self.generation = generation
        self.latest = latest


class ItemUnavailableError(HubError):
    """An order referenced a mnemonic that the ledger does not know."""

    def __init__(self, mnemonic: str):
        super().__init__(f"Item unavailable: {mnemonic}")
        self.mnemonic = mnemonic


class OrderRejectedError(HubError):
    """An out-of-stock order was refused because waitlisting is disabled."""

    def __init__(self, mnemonic: str, reason: str = "out of stock and waitlist is closed"):
        super().__init__(f"Order for {mnemonic} rejected: {reason}")
        self.mnemonic = mnemonic
        self.reason = reason
