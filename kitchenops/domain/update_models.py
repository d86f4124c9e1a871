"""Update models for database operations.

Only the fields a caller explicitly sets are applied (``model_fields_set``).
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from kitchenops.core.config import constants
from kitchenops.domain.event import EventStatus, MenuItem


class EventUpdate(BaseModel):
    """Partial update for an event."""

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=constants.MAX_EVENT_NAME_LENGTH)
    date: datetime | None = None
    guest_count: int | None = Field(default=None, ge=constants.MIN_GUEST_COUNT, le=constants.MAX_GUEST_COUNT)
    event_type: str | None = Field(default=None, min_length=1)
    status: EventStatus | None = None
    menu_items: list[MenuItem] | None = None
    assigned_chef: str | None = None


class StockDetailsUpdate(BaseModel):
    """Descriptive stock fields. Quantity only changes through the ledger."""

    model_config = ConfigDict(extra="forbid")

    item_name: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, min_length=1)
    unit: str | None = Field(default=None, min_length=1)
    min_stock: float | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None
    batch_number: str | None = None
    supplier: str | None = None
    cost_per_unit: float | None = Field(default=None, ge=0)
