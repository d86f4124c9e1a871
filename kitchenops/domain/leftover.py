"""Leftover domain model."""

from datetime import datetime

from pydantic import BaseModel, Field


class Leftover(BaseModel):
    """Food left at event close-out."""

    id: str
    created: str
    updated: str
    event_id: str
    item_name: str
    quantity: float = Field(..., ge=0)
    unit: str
    estimated_cost: float | None = None
    stock_id: str | None = Field(default=None, description="Stock row the leftover was returned to")
    is_returned: bool = False
    returned_at: datetime | None = None
    notes: str | None = None
