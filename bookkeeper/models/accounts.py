"""
Balance Account Models

Customers and bank accounts are both a name plus one running balance
mutated by signed deltas. They share a base model so the same storage
and ledger code serves both.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class LedgerAccount(BaseModel):
    """A named running balance owned by one business."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    owner_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Unique per owner, compared case-insensitively"
    )
    balance: Decimal = Field(default=Decimal("0"))
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def name_key(self) -> str:
        return self.name.casefold()


class Customer(LedgerAccount):
    """
    A customer of the business.

    `balance` is the receivable: it rises on credit sales and
    falls when the customer pays.
    """

    contact_info: Optional[str] = Field(default=None, max_length=200)

    @property
    def balance_owed(self) -> Decimal:
        return self.balance


class BankAccount(LedgerAccount):
    """A bank (or mobile money) account holding business cash."""
