"""
Inventory Models

Products carry a running quantity and a weighted-average cost (AVCO).
Every quantity change is paired with an InventoryAuditEntry that
records the cost in effect at that moment.

DESIGN DECISION: Quantity is allowed to go negative. Overselling is
recorded, not rejected - the shop already handed the goods over.
Low and negative stock are surfaced as StockAlert values instead.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class Product(BaseModel):
    """An inventory item owned by one business."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Unique per owner, compared case-insensitively"
    )
    quantity: int = Field(
        default=0,
        description="Units on hand (negative after an oversell)"
    )
    average_cost: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Weighted-average unit cost"
    )
    selling_price: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )
    reorder_threshold: int = Field(
        default=5,
        ge=0,
        description="Quantity at or below which a low-stock alert is raised"
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def name_key(self) -> str:
        return self.name.casefold()

    @property
    def stock_value(self) -> Decimal:
        """Value of stock on hand at average cost (zero when oversold)."""
        return self.average_cost * max(self.quantity, 0)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_threshold


class InventoryReason(str, Enum):
    """Why a product's quantity changed."""
    STOCK_RECEIVED = "STOCK_RECEIVED"
    SALE = "SALE"
    SALE_REVERSAL = "SALE_REVERSAL"
    MANUAL_ADJUSTMENT = "MANUAL_ADJUSTMENT"


class InventoryAuditEntry(BaseModel):
    """
    One row per quantity change.

    Append-only: mistakes are corrected by compensating rows,
    never by editing an existing entry.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str
    product_id: UUID
    delta: int
    reason: str
    cost_at_time: Decimal = Field(
        ...,
        description="Product average cost when the change happened"
    )
    linked_transaction_id: Optional[UUID] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class StockAlertKind(str, Enum):
    LOW_STOCK = "LOW_STOCK"
    NEGATIVE_STOCK = "NEGATIVE_STOCK"


class StockAlert(BaseModel):
    """Raised after a sale leaves a product at or below its threshold."""

    kind: StockAlertKind
    product_id: UUID
    product_name: str
    quantity: int
    reorder_threshold: int

    @property
    def message(self) -> str:
        if self.kind == StockAlertKind.NEGATIVE_STOCK:
            return (
                f'"{self.product_name}" is oversold: {self.quantity} units on hand. '
                "Record the missing stock to correct it."
            )
        return f'"{self.product_name}" is down to {self.quantity} units.'


class StockReceipt(BaseModel):
    """One line of a bulk stock import (spreadsheet row)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    quantity_added: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    unit_cost: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    selling_price: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    reorder_threshold: Optional[int] = None


class BulkImportResult(BaseModel):
    """Products updated by a bulk import, and the names that failed."""

    added: list[Product] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
