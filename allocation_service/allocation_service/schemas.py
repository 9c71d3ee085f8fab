"""Pydantic models for items, order lines and the derived allocation views."""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class LineStatus(str, Enum):
    """Allocation outcome of a single order line."""

    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"


class GroupStatus(str, Enum):
    """Overall status of an order group, derived from its lines."""

    CONFIRMED = "confirmed"
    WAITLISTED = "waitlisted"
    MIXED = "mixed"


class StockHealth(str, Enum):
    """Stock-health bucket shown on the seller dashboard."""

    OK = "ok"
    LOW = "low"
    OUT = "out"


def normalize_mnemonic(value: Optional[str]) -> str:
    """Canonical form used at every mnemonic lookup site."""
    return str(value or "").strip().upper()


class Item(BaseModel):
    """A sellable inventory item as delivered by the last full sync.

    Attributes:
        item_id (str): Seller-facing identifier, defaults to the mnemonic.
        mnemonic (str): Short unique code, stored upper-cased.
        category (str): Free-form grouping label.
        name (str): Display name.
        price (Decimal): Unit price, non-negative.
        initial_quantity (int): Stock committed at the last full sync.
        allow_upsell (bool): Whether the item is offered as a cross-sell.
        sequence (int): Display ordering only, ignored by allocation.
    """

    item_id: str = ""
    mnemonic: str = Field(..., min_length=1)
    category: str = "General"
    name: str = "Unknown Item"
    price: Decimal = Field(default=Decimal("0"), ge=0)
    initial_quantity: int = Field(default=0, ge=0)
    allow_upsell: bool = False
    sequence: int = 0

    @field_validator("mnemonic")
    def validate_mnemonic(cls, v):
        """Upper-case and strip the mnemonic."""
        v = normalize_mnemonic(v)
        if not v:
            raise ValueError("mnemonic must not be blank")
        return v

    @model_validator(mode="after")
    def default_item_id(self):
        if not self.item_id:
            self.item_id = self.mnemonic
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "mnemonic": "BEEF10",
                "category": "Frozen",
                "name": "Beef Rendang 1kg",
                "price": "18.50",
                "initial_quantity": 5,
                "allow_upsell": True,
            }
        }
    )


class OrderLine(BaseModel):
    """One item line of a buyer checkout.

    ``status`` is only a client-side hint; the allocation engine always
    recomputes it.
    """

    line_id: str = Field(..., min_length=1)
    group_id: str = ""
    mnemonic: str = ""
    item_name: str = "Unknown Item"
    quantity: int = Field(..., gt=0)
    buyer_name: str = "Guest"
    buyer_email: str = "-"
    address: str = "-"
    timestamp: str = ""
    status: Optional[LineStatus] = None

    @field_validator("mnemonic")
    def validate_mnemonic(cls, v):
        return normalize_mnemonic(v)


class WaitlistConfig(BaseModel):
    """Admission policy for out-of-stock orders; ``max_size == 0`` closes the waitlist."""

    max_size: int = Field(default=5, ge=0)


class Snapshot(BaseModel):
    """A complete replacement delivery of item definitions and order lines."""

    items: list[Item] = Field(default_factory=list)
    orders: list[OrderLine] = Field(default_factory=list)
    waitlist: Optional[WaitlistConfig] = None


class LineAllocation(BaseModel):
    """Engine verdict for one order line."""

    line_id: str
    status: LineStatus


class ItemAllocation(BaseModel):
    """Per-item totals after a replay; ``sold + remaining == initial_quantity``."""

    mnemonic: str
    initial_quantity: int
    sold: int = 0
    remaining: int = 0
    waitlisted_demand: int = 0


class AllocationResult(BaseModel):
    """Output of one allocation run.

    ``lines`` has the same order and count as the engine input.
    """

    lines: list[LineAllocation] = Field(default_factory=list)
    items: list[ItemAllocation] = Field(default_factory=list)

    def status_of(self, line_id: str) -> Optional[LineStatus]:
        for line in self.lines:
            if line.line_id == line_id:
                return line.status
        return None

    def statuses(self) -> dict[str, LineStatus]:
        return {line.line_id: line.status for line in self.lines}

    def item(self, mnemonic: str) -> Optional[ItemAllocation]:
        key = normalize_mnemonic(mnemonic)
        return next((i for i in self.items if i.mnemonic == key), None)


class OrderGroup(BaseModel):
    """All lines of one checkout, aggregated for display."""

    group_id: str
    timestamp: str = ""
    buyer_name: str = "Guest"
    buyer_email: str = "-"
    address: str = "-"
    total_qty: int = 0
    distinct_items: int = 0
    total_cost: Decimal = Decimal("0")
    overall_status: GroupStatus = GroupStatus.CONFIRMED
    has_waitlisted_line: bool = False
    lines: list[OrderLine] = Field(default_factory=list)


class StockLevel(BaseModel):
    """Per-item stock view with its health bucket."""

    mnemonic: str
    name: str
    price: Decimal
    initial_quantity: int
    sold: int
    remaining: int
    waitlisted_demand: int
    health: StockHealth


class DashboardSummary(BaseModel):
    """Headline figures for the seller dashboard."""

    total_balance: int = 0
    order_count: int = 0
    waitlisted_order_count: int = 0
    units_ordered: int = 0
    top_mnemonic: Optional[str] = None


class OrderRequestLine(BaseModel):
    """One requested item in a buyer checkout."""

    mnemonic: str = Field(..., min_length=1)
    quantity: int = Field(..., gt=0, le=1000)

    @field_validator("mnemonic")
    def validate_mnemonic(cls, v):
        return normalize_mnemonic(v)


class OrderRequest(BaseModel):
    """A buyer checkout: the primary item first, then any upsell extras."""

    buyer_name: str = Field(..., min_length=1)
    buyer_email: str = "-"
    address: str = "-"
    lines: list[OrderRequestLine] = Field(..., min_length=1)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "buyer_name": "Ana",
                "buyer_email": "ana@example.com",
                "address": "12 Jalan Besar",
                "lines": [{"mnemonic": "BEEF10", "quantity": 2}, {"mnemonic": "SAMBAL", "quantity": 1}],
            }
        }
    )


class PlacementOutcome(BaseModel):
    """Result of placing a checkout.

    ``provisional`` is what the buyer was told at submission time;
    ``lines`` holds the authoritative statuses from the replay that followed.
    """

    group_id: str
    total: Decimal
    provisional: list[LineAllocation]
    lines: list[LineAllocation]

    @property
    def reconciled(self) -> bool:
        return [p.status for p in self.provisional] == [line.status for line in self.lines]
