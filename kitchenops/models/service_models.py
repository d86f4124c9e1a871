"""Pydantic models for service layer return types.

These models provide type safety at service boundaries, converting database
dictionaries into typed objects with validation.
"""

from datetime import date

from pydantic import BaseModel, Field

from kitchenops.domain.cooking import CookingTask
from kitchenops.domain.event import Event
from kitchenops.domain.indent import Indent, IndentStatus
from kitchenops.domain.stock import Stock, StockUpdateType


class ProcurementLine(BaseModel):
    """Aggregated quantity for one (item, category) key."""

    item_name: str
    category: str
    quantity: int = Field(..., gt=0, description="Buffered total, rounded up to a whole unit")
    unit: str
    raw_quantity: float = Field(..., description="Total before the buffer")
    buffer_percentage: float


class Availability(BaseModel):
    """Result of a stock availability check."""

    is_available: bool
    stock_id: str | None = None
    available_quantity: float = 0


class AdjustmentOutcome(BaseModel):
    """Outcome of one batch adjustment row."""

    index: int
    stock_id: str
    type: StockUpdateType | None = None
    success: bool
    new_quantity: float | None = None
    error_code: str | None = None
    error: str | None = None


class BatchAdjustResult(BaseModel):
    """Per-row outcomes of a batch adjustment."""

    updated: int
    failed: int
    outcomes: list[AdjustmentOutcome]


class StockAlertSummary(BaseModel):
    """Counts of each alert kind."""

    low_stock_count: int
    expiring_count: int
    expired_count: int
    total_alerts: int


class StockAlerts(BaseModel):
    """Low stock, expiring and expired items."""

    low_stock: list[Stock]
    expiring: list[Stock]
    expired: list[Stock]
    summary: StockAlertSummary


class LedgerReplay(BaseModel):
    """Stored quantity compared with the quantity rebuilt from the ledger."""

    stock_id: str
    current_quantity: float
    replayed_quantity: float
    entries: int
    is_consistent: bool


class ProvisioningResult(BaseModel):
    """What one provisioning run produced for an event."""

    event_id: str
    indent: Indent | None = None
    indent_removed: bool = False
    lines: list[ProcurementLine] = Field(default_factory=list)
    tasks_created: list[CookingTask] = Field(default_factory=list)
    tasks_updated: list[CookingTask] = Field(default_factory=list)
    tasks_cancelled: list[CookingTask] = Field(default_factory=list)
    tasks_skipped_reason: str | None = None


class ItemCost(BaseModel):
    """Cost of one received indent item."""

    item_name: str
    quantity: float
    unit: str
    cost_per_unit: float | None
    total_cost: float


class EventCosting(BaseModel):
    """Ingredient cost of an event and the value of its leftovers."""

    event_id: str
    items: list[ItemCost]
    ingredient_cost: float
    leftover_value: float
    net_cost: float
    unpriced_items: int


class EventResult(BaseModel):
    """An event as written, with what provisioning derived from it."""

    event: Event
    provisioning: ProvisioningResult | None = None
    synced: bool = False


class PendingIndent(BaseModel):
    """A SUBMITTED or APPROVED indent with its receiving progress."""

    indent_id: str
    event_id: str
    status: IndentStatus
    total_items: int
    received_items: int


class KitchenDashboard(BaseModel):
    """Role-scoped view of what the kitchen has on today."""

    day: date
    todays_events: list[Event]
    pending_indents: list[PendingIndent]
    active_tasks: list[CookingTask]
    stock_alerts: StockAlertSummary
