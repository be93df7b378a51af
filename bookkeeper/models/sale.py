"""
Sale Session Models

Logging a sale can pause halfway: when an item name does not match a
product exactly, the caller has to pick a candidate or say whether the
line is a product or a service.

DESIGN DECISION: The pause is not a blocking wait. The partial sale is
persisted as a PendingSale and the caller gets a DisambiguationRequest
with an opaque token. Resuming is a separate call carrying the choice.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from bookkeeper.models.inventory import StockAlert
from bookkeeper.models.transaction import (
    PaymentMethod,
    SaleItemDraft,
    SaleTransaction,
)


class ResolutionKind(str, Enum):
    """What the caller is being asked about an unresolved item."""
    PRODUCT_CHOICE = "PRODUCT_CHOICE"  # "Did you mean one of these?"
    ITEM_TYPE = "ITEM_TYPE"            # "Is this a product or a service?"


class ResolutionChoice(str, Enum):
    """Non-product answers accepted by resolve_item."""
    NONE = "none"        # none of the offered candidates
    SERVICE = "service"
    PRODUCT = "product"  # a new product, created on the fly


class ProductCandidate(BaseModel):
    candidate_id: UUID
    candidate_name: str


class PendingSale(BaseModel):
    """
    A sale suspended at an unresolved item.

    `items` holds every draft; resolved drafts have `product_id` or
    `is_service` set. Resolution restarts at `current_index`.
    """

    token: UUID = Field(default_factory=uuid4)
    owner_id: str
    items: list[SaleItemDraft]
    current_index: int = Field(default=0, ge=0)
    awaiting: Optional[ResolutionKind] = Field(
        default=None,
        description="None until the sale first pauses"
    )
    candidates: list[ProductCandidate] = Field(default_factory=list)

    customer_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    bank_id: Optional[UUID] = None
    sale_date: Optional[date] = None
    due_date: Optional[date] = None
    logged_by: str = "Owner"

    created_at: datetime = Field(default_factory=datetime.utcnow)


class DisambiguationRequest(BaseModel):
    """What the caller must answer before the sale can continue."""

    token: UUID
    owner_id: str
    item_index: int
    item_name: str
    kind: ResolutionKind
    candidates: list[ProductCandidate] = Field(default_factory=list)

    @property
    def prompt(self) -> str:
        if self.kind == ResolutionKind.PRODUCT_CHOICE:
            return f'I couldn\'t find exactly "{self.item_name}". Did you mean one of these?'
        return (
            f'I don\'t see "{self.item_name}" in your inventory. '
            "Is this a product or a service?"
        )


class SaleStatus(str, Enum):
    COMPLETED = "completed"
    NEEDS_RESOLUTION = "needs_resolution"


class SaleOutcome(BaseModel):
    """Result of log_sale / resolve_item."""

    status: SaleStatus
    transaction: Optional[SaleTransaction] = None
    request: Optional[DisambiguationRequest] = None
    alerts: list[StockAlert] = Field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.status == SaleStatus.COMPLETED
