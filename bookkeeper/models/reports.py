"""
Report Models

Read-only datasets derived from the transaction history. Renderers
(PDF, spreadsheet export, dashboard) live outside the engine and only
consume these structures.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from bookkeeper.models.transaction import PaymentMethod, TransactionType


class CategoryTotal(BaseModel):
    category: str
    amount: Decimal


class ProfitAndLoss(BaseModel):
    """
    Profit and loss for one owner over an inclusive date range.

    COGS comes from the cost snapshots stored on each sale, so the
    statement for a past period never moves when product costs change.
    """

    owner_id: str
    start: date
    end: date
    total_sales: Decimal = Decimal("0")
    total_cogs: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    top_expenses_by_category: list[CategoryTotal] = Field(default_factory=list)


class SalesReportRow(BaseModel):
    transaction_id: UUID
    transaction_date: date
    customer_name: str
    description: str
    amount: Decimal
    payment_method: PaymentMethod


class ExpenseReportRow(BaseModel):
    transaction_id: UUID
    transaction_date: date
    category: str
    description: str
    amount: Decimal


class CogsReportRow(BaseModel):
    transaction_id: UUID
    transaction_date: date
    product_name: str
    quantity: int
    unit_cost: Decimal
    total_cost: Decimal


class InventoryReportRow(BaseModel):
    product_id: UUID
    name: str
    quantity: int
    average_cost: Decimal
    selling_price: Decimal
    stock_value: Decimal
    is_low_stock: bool


class SalesReport(BaseModel):
    rows: list[SalesReportRow] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class ExpenseReport(BaseModel):
    rows: list[ExpenseReportRow] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class CogsReport(BaseModel):
    rows: list[CogsReportRow] = Field(default_factory=list)
    total: Decimal = Decimal("0")


class InventoryReport(BaseModel):
    rows: list[InventoryReportRow] = Field(default_factory=list)
    total_value: Decimal = Decimal("0")


class MonthlyBucket(BaseModel):
    """One month on the dashboard chart, labelled like 'Mar 25'."""

    label: str
    year: int
    month: int
    sales: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")


class RecentTransaction(BaseModel):
    transaction_id: UUID
    type: TransactionType
    transaction_date: date
    amount: Decimal
    description: str


class DashboardStats(BaseModel):
    months: list[MonthlyBucket] = Field(default_factory=list)
    total_revenue: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    net_profit: Decimal = Decimal("0")
    recent_transactions: list[RecentTransaction] = Field(default_factory=list)


class DueCreditSale(BaseModel):
    transaction_id: UUID
    customer_id: Optional[UUID]
    customer_name: str
    amount: Decimal
    due_date: date
