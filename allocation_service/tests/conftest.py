"""Test fixtures for the allocation service tests."""

from decimal import Decimal

import pytest

from allocation_service.config import get_config
from allocation_service.ledger import StockLedger
from allocation_service.order_log import OrderLog
from allocation_service.schemas import Item, OrderLine, Snapshot, WaitlistConfig
from allocation_service.service import HubState
from allocation_service.store import MemoryStore


def _make_line(line_id, mnemonic, quantity, timestamp, group_id=None, buyer="Ana"):
    return OrderLine(
        line_id=line_id,
        group_id=group_id if group_id is not None else f"ORD-{line_id}",
        mnemonic=mnemonic,
        quantity=quantity,
        timestamp=timestamp,
        buyer_name=buyer,
    )


@pytest.fixture
def make_line():
    """Factory for order lines with sensible defaults."""
    return _make_line


@pytest.fixture
def items():
    """Three items: BEEF10 (5 left), SAMBAL (upsell, 10 left), RICE (upsell, sold out)."""
    return [
        Item(mnemonic="beef10", name="Beef Rendang", price=Decimal("18.50"), initial_quantity=5, sequence=0),
        Item(
            mnemonic="SAMBAL",
            name="Sambal Jar",
            price=Decimal("6.00"),
            initial_quantity=10,
            allow_upsell=True,
            sequence=1,
        ),
        Item(mnemonic="RICE", name="Rice 5kg", price=Decimal("12.00"), initial_quantity=0, allow_upsell=True, sequence=2),
    ]


@pytest.fixture
def ledger(items):
    return StockLedger(items)


@pytest.fixture
def beef_lines():
    """L1 qty 3 @10:00, L2 qty 2 @10:01, L3 qty 1 @10:02, all for BEEF10."""
    return [
        _make_line("L1", "BEEF10", 3, "2024-06-01T10:00:00Z"),
        _make_line("L2", "BEEF10", 2, "2024-06-01T10:01:00Z"),
        _make_line("L3", "BEEF10", 1, "2024-06-01T10:02:00Z"),
    ]


@pytest.fixture
def order_log(beef_lines):
    return OrderLog(beef_lines)


@pytest.fixture
def hub(items, beef_lines):
    """A HubState loaded with the sample items and BEEF10 orders."""
    state = HubState(store=MemoryStore(), waitlist=WaitlistConfig(max_size=5))
    state.apply_snapshot(Snapshot(items=items, orders=beef_lines))
    return state


@pytest.fixture
def fresh_config():
    """Rebuild the cached configuration around an environment change."""
    get_config.cache_clear()
    yield get_config
    get_config.cache_clear()
