"""Indent (procurement list) domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class IndentStatus(StrEnum):
    """Indent lifecycle status."""

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


INDENT_TRANSITIONS: dict[IndentStatus, set[IndentStatus]] = {
    IndentStatus.DRAFT: {IndentStatus.SUBMITTED},
    IndentStatus.SUBMITTED: {IndentStatus.APPROVED, IndentStatus.REJECTED},
    IndentStatus.APPROVED: set(),
    IndentStatus.REJECTED: set(),
}


class IndentItem(BaseModel):
    """Indent line data transfer object."""

    id: str = Field(..., description="Unique item ID from database")
    indent_id: str = Field(..., description="Owning indent")
    item_name: str
    category: str
    quantity: float = Field(..., gt=0)
    unit: str
    is_in_stock: bool = Field(default=False, description="Availability snapshot taken at creation or receipt")
    stock_id: str | None = Field(default=None, description="Matched stock row, if any")
    is_received: bool = False
    received_at: datetime | None = None
    notes: str | None = None


class Indent(BaseModel):
    """Indent header with its items."""

    id: str = Field(..., description="Unique indent ID from database")
    created: str
    updated: str
    event_id: str
    status: IndentStatus = IndentStatus.DRAFT
    total_items: int = Field(..., ge=0, description="Denormalized item count")
    created_by: str
    created_at: datetime
    rejection_reason: str | None = None
    items: list[IndentItem] = Field(default_factory=list)
