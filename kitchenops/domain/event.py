"""Event domain models and enums."""

import json
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field, field_validator


class EventStatus(StrEnum):
    """Event lifecycle status."""

    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TERMINAL_EVENT_STATUSES = frozenset({EventStatus.COMPLETED, EventStatus.CANCELLED})

EVENT_TRANSITIONS: dict[EventStatus, set[EventStatus]] = {
    EventStatus.PLANNED: {EventStatus.IN_PROGRESS, EventStatus.CANCELLED},
    EventStatus.IN_PROGRESS: {EventStatus.COMPLETED, EventStatus.CANCELLED},
    EventStatus.COMPLETED: set(),
    EventStatus.CANCELLED: set(),
}


class MenuItem(BaseModel):
    """One line of an event menu."""

    item_name: str = Field(..., min_length=1, description="Dish or ingredient name")
    category: str = Field(..., min_length=1, description="Menu category (kitchen or planner naming)")
    quantity_per_person: float | None = Field(
        default=None, gt=0, description="Explicit per-guest quantity, overrides the category rules"
    )
    unit: str | None = Field(default=None, description="Unit for quantity_per_person")
    notes: str | None = Field(default=None, description="Preparation notes")

    @field_validator("item_name", "category")
    @classmethod
    def strip_text(cls, v: str) -> str:
        """Reject blank names."""
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class Event(BaseModel):
    """Event data transfer object."""

    id: str = Field(..., description="Unique event ID from database")
    created: str = Field(..., description="Creation timestamp")
    updated: str = Field(..., description="Last update timestamp")
    name: str = Field(..., description="Event name")
    date: datetime = Field(..., description="When the event takes place")
    guest_count: int = Field(..., description="Number of guests to cater for")
    event_type: str = Field(..., description="Kind of event (wedding, corporate, ...)")
    status: EventStatus = Field(default=EventStatus.PLANNED, description="Current lifecycle status")
    menu_items: list[MenuItem] = Field(default_factory=list, description="Ordered menu lines")
    assigned_chef: str | None = Field(default=None, description="Actor ID of the lead chef")
    created_by: str = Field(..., description="Actor ID that created the event")

    @field_validator("menu_items", mode="before")
    @classmethod
    def decode_menu(cls, v: object) -> object:
        """Menus are stored as JSON text."""
        if isinstance(v, str):
            return json.loads(v)
        return v
