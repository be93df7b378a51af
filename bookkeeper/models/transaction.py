"""
Transaction Models for Bookkeeper

A transaction is the immutable record of one financial event.
Every balance in the system (stock, receivables, bank cash) is a
function of these records.

DESIGN DECISION: Transactions are a tagged union discriminated on `type`.
Each variant carries only the fields that make sense for it, sharing
a common envelope. Storage round-trips go through `TransactionAdapter`
so the correct variant is always rebuilt from a stored document.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
)


MAX_NAME_LENGTH = 200
MAX_CATEGORY_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000


# =============================================================================
# ENUMS
# =============================================================================

class TransactionType(str, Enum):
    """Kinds of financial events the engine records."""
    SALE = "SALE"
    EXPENSE = "EXPENSE"
    CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"


class PaymentMethod(str, Enum):
    """
    How a sale was settled.

    CREDIT sales raise the customer's receivable.
    CASH and BANK sales only touch a bank ledger when a bank is linked.
    """
    CASH = "CASH"
    CREDIT = "CREDIT"
    BANK = "BANK"


# =============================================================================
# SALE LINE ITEMS
# =============================================================================

class SaleItem(BaseModel):
    """
    One resolved line on a sale.

    CRITICAL: unit_cost_snapshot is fixed when the sale is created.
    It is never recomputed from the product's current cost and is the
    only source of historical cost of goods sold.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    product_id: Optional[UUID] = Field(
        default=None,
        description="Inventory product sold (None for services)"
    )
    product_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_NAME_LENGTH,
    )
    quantity: int = Field(
        ...,
        gt=0,
        description="Units sold"
    )
    unit_price: Decimal = Field(
        ...,
        ge=0,
        description="Selling price per unit"
    )
    unit_cost_snapshot: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Product average cost at the moment of sale"
    )
    is_service: bool = False

    @property
    def is_stock_item(self) -> bool:
        """True when this line moves inventory."""
        return not self.is_service and self.product_id is not None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def line_cost(self) -> Decimal:
        if not self.is_stock_item:
            return Decimal("0")
        return self.unit_cost_snapshot * self.quantity


# =============================================================================
# TRANSACTION VARIANTS
# =============================================================================

class TransactionBase(BaseModel):
    """
    Envelope shared by every transaction type.

    `amount` is always a positive magnitude; the direction of its effect
    on the ledgers is implied by the transaction type.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(
        ...,
        min_length=1,
        description="Business that owns this record"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Positive magnitude of the event"
    )
    transaction_date: date = Field(
        default_factory=date.today,
        description="Business date of the event"
    )
    description: str = Field(
        default="",
        max_length=MAX_DESCRIPTION_LENGTH,
    )
    bank_id: Optional[UUID] = Field(
        default=None,
        description="Bank account touched by this event, if any"
    )
    logged_by: str = Field(
        default="Owner",
        max_length=100,
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class SaleTransaction(TransactionBase):
    """A sale of products and/or services."""

    type: Literal[TransactionType.SALE] = TransactionType.SALE
    items: list[SaleItem] = Field(..., min_length=1)
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    payment_method: PaymentMethod = PaymentMethod.CASH
    due_date: Optional[date] = Field(
        default=None,
        description="When a credit sale is expected to be paid"
    )

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        """Accept 'credit', 'Cash', ... from callers."""
        if isinstance(v, str):
            return v.upper()
        return v

    @property
    def cost_of_goods_sold(self) -> Decimal:
        return sum((item.line_cost for item in self.items), Decimal("0"))


class ExpenseTransaction(TransactionBase):
    """Money spent by the business."""

    type: Literal[TransactionType.EXPENSE] = TransactionType.EXPENSE
    category: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CATEGORY_LENGTH,
    )


class CustomerPaymentTransaction(TransactionBase):
    """A customer settling (part of) their receivable."""

    type: Literal[TransactionType.CUSTOMER_PAYMENT] = TransactionType.CUSTOMER_PAYMENT
    customer_id: UUID
    customer_name: Optional[str] = None


Transaction = Annotated[
    Union[SaleTransaction, ExpenseTransaction, CustomerPaymentTransaction],
    Field(discriminator="type"),
]

TransactionAdapter: TypeAdapter[Transaction] = TypeAdapter(Transaction)


# =============================================================================
# CALLER INPUT
# =============================================================================

class SaleItemDraft(BaseModel):
    """
    A sale line as supplied by the caller, before validation and
    product resolution.

    Numeric fields accept NaN so the validator can report it as an
    input problem instead of failing on construction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    product_name: Optional[str] = None
    quantity: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    unit_price: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    is_service: bool = False
    product_id: Optional[UUID] = Field(
        default=None,
        description="Set once the line is matched to an inventory product"
    )


# =============================================================================
# EDITS
# =============================================================================

class TransactionEdit(BaseModel):
    """
    Changes requested for an existing transaction.

    Only fields that were explicitly set are applied, so a caller can
    unlink a bank by passing `bank_id=None`.

    For single-item sales `quantity` and `unit_price` edit that item;
    on multi-item sales `item_index` selects the line.
    """

    description: Optional[str] = None
    transaction_date: Optional[date] = None
    amount: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    category: Optional[str] = None
    bank_id: Optional[UUID] = None

    # Sale-only fields
    item_index: int = Field(default=0, ge=0)
    quantity: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    unit_price: Optional[Decimal] = Field(default=None, allow_inf_nan=True)
    items: Optional[list[SaleItemDraft]] = None
    payment_method: Optional[PaymentMethod] = None
    customer_name: Optional[str] = None
    due_date: Optional[date] = None

    def was_set(self, field_name: str) -> bool:
        return field_name in self.model_fields_set

    @field_validator("payment_method", mode="before")
    @classmethod
    def normalize_payment_method(cls, v):
        if isinstance(v, str):
            return v.upper()
        return v
