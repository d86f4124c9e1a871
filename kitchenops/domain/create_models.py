"""Pydantic models for creating records in database."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from kitchenops.core.config import constants
from kitchenops.domain.actor import Role
from kitchenops.domain.cooking import TaskPriority
from kitchenops.domain.event import MenuItem
from kitchenops.domain.stock import StockUpdateType


def _require_text(v: str) -> str:
    v = v.strip()
    if not v:
        msg = "must not be blank"
        raise ValueError(msg)
    return v


class EventCreate(BaseModel):
    """Pydantic model for creating an event record."""

    name: str = Field(..., max_length=constants.MAX_EVENT_NAME_LENGTH, description="Event name")
    date: datetime = Field(..., description="When the event takes place")
    guest_count: int = Field(
        ..., ge=constants.MIN_GUEST_COUNT, le=constants.MAX_GUEST_COUNT, description="Number of guests"
    )
    event_type: str = Field(..., description="Kind of event")
    menu_items: list[MenuItem] = Field(default_factory=list, description="Ordered menu lines")
    assigned_chef: str | None = Field(default=None, description="Actor ID of the lead chef")

    @field_validator("name", "event_type")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names."""
        return _require_text(v)


class IndentItemCreate(BaseModel):
    """Pydantic model for one procurement line."""

    item_name: str = Field(..., description="Ingredient or dish name")
    category: str = Field(..., description="Kitchen category")
    quantity: float = Field(..., gt=0, description="Quantity to procure")
    unit: str = Field(..., description="Unit of measure")
    notes: str | None = Field(default=None, description="Free text notes")

    @field_validator("item_name", "category", "unit")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names and units."""
        return _require_text(v)


class StockCreate(BaseModel):
    """Pydantic model for creating a stock record."""

    item_name: str
    category: str
    quantity: float = Field(default=0, ge=0, description="Opening quantity, recorded as an ADDED entry")
    unit: str
    min_stock: float | None = Field(default=None, ge=0)
    expiry_date: datetime | None = None
    batch_number: str | None = None
    supplier: str | None = None
    cost_per_unit: float | None = Field(default=None, ge=0)

    @field_validator("item_name", "category", "unit")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names and units."""
        return _require_text(v)


class StockAdjustment(BaseModel):
    """One row of a batch stock adjustment.

    ``quantity`` is a positive magnitude, except for ADJUSTED where it is a
    non-zero signed change.
    """

    stock_id: str
    type: StockUpdateType
    quantity: float
    reason: str = ""


class CookingTaskCreate(BaseModel):
    """Pydantic model for creating a cooking task record."""

    event_id: str
    dish_name: str
    category: str
    servings: int = Field(..., gt=0)
    assigned_to: str | None = None
    priority: TaskPriority = TaskPriority.NORMAL
    estimated_time: int | None = Field(default=None, gt=0, description="Minutes")
    notes: str | None = None

    @field_validator("dish_name", "category")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names."""
        return _require_text(v)


class LeftoverCreate(BaseModel):
    """Pydantic model for recording one leftover line."""

    item_name: str
    quantity: float = Field(..., ge=0)
    unit: str
    estimated_cost: float | None = Field(default=None, ge=0)
    stock_id: str | None = Field(default=None, description="Stock row to return the leftover to")
    notes: str | None = None

    @field_validator("item_name", "unit")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names and units."""
        return _require_text(v)


class StaffCreate(BaseModel):
    """Pydantic model for registering a staff member."""

    actor_id: str = Field(..., min_length=1)
    name: str
    role: Role = Role.CHEF

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Role | str | int) -> Role:
        """Accept role names as well as levels."""
        return Role.parse(v)

    @field_validator("name")
    @classmethod
    def validate_text(cls, v: str) -> str:
        """Reject blank names."""
        return _require_text(v)
