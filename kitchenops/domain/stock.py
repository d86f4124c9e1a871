"""Stock and ledger domain models."""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class StockUpdateType(StrEnum):
    """Kind of ledger entry."""

    ADDED = "ADDED"
    USED = "USED"
    EXPIRED = "EXPIRED"
    RETURNED = "RETURNED"
    ADJUSTED = "ADJUSTED"


INCREASING_TYPES = frozenset({StockUpdateType.ADDED, StockUpdateType.RETURNED})
DECREASING_TYPES = frozenset({StockUpdateType.USED, StockUpdateType.EXPIRED})


class Stock(BaseModel):
    """Stock row data transfer object."""

    id: str = Field(..., description="Unique stock ID from database")
    created: str = Field(..., description="Creation timestamp")
    updated: str = Field(..., description="Last update timestamp")
    item_name: str = Field(..., description="Item name, matched case-insensitively")
    category: str = Field(..., description="Stock category")
    quantity: float = Field(..., ge=0, description="Current quantity on hand")
    unit: str = Field(..., description="Unit of measure")
    min_stock: float | None = Field(default=None, description="Reorder threshold")
    expiry_date: datetime | None = Field(default=None, description="Expiry date of the current batch")
    batch_number: str | None = Field(default=None, description="Supplier batch number")
    supplier: str | None = Field(default=None, description="Supplier name")
    cost_per_unit: float | None = Field(default=None, description="Purchase cost per unit")
    is_active: bool = Field(default=True, description="False once soft deleted")


class StockUpdate(BaseModel):
    """Append-only ledger entry."""

    id: str
    created: str
    updated: str
    stock_id: str
    type: StockUpdateType
    quantity: float = Field(..., gt=0, description="Magnitude of the change")
    delta: float = Field(..., description="Signed change applied to the stock quantity")
    reason: str = ""
    actor: str
    timestamp: datetime
