"""Cooking task domain models and enums."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class CookingStatus(StrEnum):
    """Cooking task lifecycle status."""

    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"


class TaskPriority(StrEnum):
    """Cooking priority."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class CookingTask(BaseModel):
    """Cooking task data transfer object."""

    id: str = Field(..., description="Unique task ID from database")
    created: str = Field(..., description="Creation timestamp")
    updated: str = Field(..., description="Last update timestamp")
    event_id: str = Field(..., description="Event the dish is cooked for")
    dish_name: str
    category: str
    servings: int = Field(..., gt=0)
    status: CookingStatus = CookingStatus.NOT_STARTED
    assigned_to: str | None = Field(default=None, description="Actor ID of the responsible chef")
    priority: TaskPriority = TaskPriority.NORMAL
    started_at: datetime | None = Field(default=None, description="Set on first entry into IN_PROGRESS")
    completed_at: datetime | None = None
    estimated_time: int | None = Field(default=None, description="Estimated cooking time in minutes")
    notes: str | None = None


class CookingBoard(BaseModel):
    """Tasks of one event grouped by status."""

    event_id: str
    columns: dict[CookingStatus, list[CookingTask]]
    counts: dict[CookingStatus, int]
    total: int
