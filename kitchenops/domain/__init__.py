"""Domain models and DTOs."""

from kitchenops.domain.actor import Actor, Role, StaffMember
from kitchenops.domain.cooking import CookingBoard, CookingStatus, CookingTask, TaskPriority
from kitchenops.domain.create_models import (
    CookingTaskCreate,
    EventCreate,
    IndentItemCreate,
    LeftoverCreate,
    StaffCreate,
    StockAdjustment,
    StockCreate,
)
from kitchenops.domain.event import Event, EventStatus, MenuItem
from kitchenops.domain.indent import Indent, IndentItem, IndentStatus
from kitchenops.domain.leftover import Leftover
from kitchenops.domain.provisioning import ProvisioningConfig, QuantityRules
from kitchenops.domain.stock import Stock, StockUpdate, StockUpdateType
from kitchenops.domain.update_models import EventUpdate, StockDetailsUpdate


__all__ = [
    "Actor",
    "CookingBoard",
    "CookingStatus",
    "CookingTask",
    "CookingTaskCreate",
    "Event",
    "EventCreate",
    "EventStatus",
    "EventUpdate",
    "Indent",
    "IndentItem",
    "IndentItemCreate",
    "IndentStatus",
    "Leftover",
    "LeftoverCreate",
    "MenuItem",
    "ProvisioningConfig",
    "QuantityRules",
    "Role",
    "StaffCreate",
    "StaffMember",
    "Stock",
    "StockAdjustment",
    "StockCreate",
    "StockDetailsUpdate",
    "StockUpdate",
    "StockUpdateType",
    "TaskPriority",
]
