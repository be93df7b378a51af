"""
Reporting Aggregator

DESIGN DECISION: Reports are DERIVED, never stored.
Every figure here is recomputed from the transaction history and the
current ledgers on each call, and nothing in this module writes.

COGS comes from the unit_cost_snapshot stored on each sale line, never
from a product's current average cost, so a past period's profit does
not move when stock is later bought at a different price.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Optional

from bookkeeper.config import get_settings
from bookkeeper.models.accounts import BankAccount, Customer
from bookkeeper.models.inventory import Product
from bookkeeper.models.reports import (
    CategoryTotal,
    CogsReport,
    CogsReportRow,
    DashboardStats,
    DueCreditSale,
    ExpenseReport,
    ExpenseReportRow,
    InventoryReport,
    InventoryReportRow,
    MonthlyBucket,
    ProfitAndLoss,
    RecentTransaction,
    SalesReport,
    SalesReportRow,
)
from bookkeeper.models.transaction import (
    PaymentMethod,
    Transaction,
    TransactionType,
)
from bookkeeper.services.ledgers import (
    BankBalanceLedger,
    CustomerBalanceLedger,
    InventoryLedger,
)
from bookkeeper.services.storage import TransactionStorageInterface
from bookkeeper.validation import InvalidInputError


def _month_shift(year: int, month: int, offset: int) -> tuple[int, int]:
    """(year, month) moved by `offset` months."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


class ReportAggregator:
    """
    Read-only views over one owner's books.

    GUARANTEES:
    - Only returns real data from storage
    - Never mutates a ledger
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        inventory: InventoryLedger,
        customers: CustomerBalanceLedger,
        banks: BankBalanceLedger,
    ):
        self._transactions = transactions
        self._inventory = inventory
        self._customers = customers
        self._banks = banks
        self._settings = get_settings().app

    @staticmethod
    def _check_range(start: date, end: date) -> None:
        if start > end:
            raise InvalidInputError.single(
                "start", f"Start date {start} is after end date {end}", "out_of_range",
            )

    async def list_transactions(
        self,
        owner_id: str,
        transaction_type: Optional[TransactionType],
        start: date,
        end: date,
    ) -> list[Transaction]:
        self._check_range(start, end)
        return await self._transactions.list_by_owner_and_range(
            owner_id, transaction_type, start, end,
        )

    async def compute_profit_and_loss(
        self,
        owner_id: str,
        start: date,
        end: date,
        top_n: Optional[int] = None,
    ) -> ProfitAndLoss:
        """
        Profit and loss over [start, end].

        gross_profit = sales - COGS; net_profit = gross_profit - expenses.
        Expense categories are sorted by amount (largest first), then name.
        """
        top_n = top_n or self._settings.top_expense_categories
        transactions = await self.list_transactions(owner_id, None, start, end)

        total_sales = Decimal("0")
        total_cogs = Decimal("0")
        total_expenses = Decimal("0")
        by_category: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))

        for txn in transactions:
            if txn.type == TransactionType.SALE:
                total_sales += txn.amount
                total_cogs += txn.cost_of_goods_sold
            elif txn.type == TransactionType.EXPENSE:
                total_expenses += txn.amount
                by_category[txn.category] += txn.amount

        categories = sorted(by_category.items(), key=lambda kv: (-kv[1], kv[0]))
        gross_profit = total_sales - total_cogs

        return ProfitAndLoss(
            owner_id=owner_id,
            start=start,
            end=end,
            total_sales=total_sales,
            total_cogs=total_cogs,
            total_expenses=total_expenses,
            gross_profit=gross_profit,
            net_profit=gross_profit - total_expenses,
            top_expenses_by_category=[
                CategoryTotal(category=name, amount=amount)
                for name, amount in categories[:top_n]
            ],
        )

    async def list_products(self, owner_id: str) -> list[Product]:
        return await self._inventory.list_products(owner_id)

    async def list_bank_balances(self, owner_id: str) -> list[BankAccount]:
        return await self._banks.list_balances(owner_id)

    async def list_customers_with_balance(self, owner_id: str) -> list[Customer]:
        return await self._customers.list_with_balance(owner_id)

    # =========================================================================
    # Report datasets
    # =========================================================================

    async def sales_report(self, owner_id: str, start: date, end: date) -> SalesReport:
        sales = await self.list_transactions(owner_id, TransactionType.SALE, start, end)
        rows = [
            SalesReportRow(
                transaction_id=sale.id,
                transaction_date=sale.transaction_date,
                customer_name=sale.customer_name or self._settings.walk_in_customer_name,
                description=sale.description,
                amount=sale.amount,
                payment_method=sale.payment_method,
            )
            for sale in sales
        ]
        return SalesReport(rows=rows, total=sum((r.amount for r in rows), Decimal("0")))

    async def expense_report(self, owner_id: str, start: date, end: date) -> ExpenseReport:
        expenses = await self.list_transactions(owner_id, TransactionType.EXPENSE, start, end)
        rows = [
            ExpenseReportRow(
                transaction_id=expense.id,
                transaction_date=expense.transaction_date,
                category=expense.category,
                description=expense.description,
                amount=expense.amount,
            )
            for expense in expenses
        ]
        return ExpenseReport(rows=rows, total=sum((r.amount for r in rows), Decimal("0")))

    async def cogs_report(self, owner_id: str, start: date, end: date) -> CogsReport:
        """One row per stock line sold; services carry no cost."""
        sales = await self.list_transactions(owner_id, TransactionType.SALE, start, end)
        rows = []
        for sale in sales:
            for item in sale.items:
                if not item.is_stock_item:
                    continue
                rows.append(CogsReportRow(
                    transaction_id=sale.id,
                    transaction_date=sale.transaction_date,
                    product_name=item.product_name,
                    quantity=item.quantity,
                    unit_cost=item.unit_cost_snapshot,
                    total_cost=item.line_cost,
                ))
        return CogsReport(rows=rows, total=sum((r.total_cost for r in rows), Decimal("0")))

    async def inventory_report(self, owner_id: str) -> InventoryReport:
        products = await self._inventory.list_products(owner_id)
        rows = [
            InventoryReportRow(
                product_id=p.id,
                name=p.name,
                quantity=p.quantity,
                average_cost=p.average_cost,
                selling_price=p.selling_price,
                stock_value=p.stock_value,
                is_low_stock=p.is_low_stock,
            )
            for p in products
        ]
        return InventoryReport(
            rows=rows,
            total_value=sum((r.stock_value for r in rows), Decimal("0")),
        )

    async def dashboard_stats(self, owner_id: str, today: date, months: int = 12) -> DashboardStats:
        """
        Monthly sales/expense buckets for the `months` months ending with
        today's month, their totals, and the five latest transactions.
        """
        if months < 1:
            raise InvalidInputError.single("months", "At least one month is required", "out_of_range")

        buckets: dict[tuple[int, int], MonthlyBucket] = {}
        for offset in range(-(months - 1), 1):
            year, month = _month_shift(today.year, today.month, offset)
            buckets[(year, month)] = MonthlyBucket(
                label=date(year, month, 1).strftime("%b %y"),
                year=year,
                month=month,
            )

        first_year, first_month = next(iter(buckets))
        transactions = await self.list_transactions(
            owner_id, None, date(first_year, first_month, 1), today,
        )

        total_revenue = Decimal("0")
        total_expenses = Decimal("0")
        for txn in transactions:
            bucket = buckets[(txn.transaction_date.year, txn.transaction_date.month)]
            if txn.type == TransactionType.SALE:
                bucket.sales += txn.amount
                total_revenue += txn.amount
            elif txn.type == TransactionType.EXPENSE:
                bucket.expenses += txn.amount
                total_expenses += txn.amount

        recent = await self._transactions.list_recent(owner_id, limit=5)

        return DashboardStats(
            months=list(buckets.values()),
            total_revenue=total_revenue,
            total_expenses=total_expenses,
            net_profit=total_revenue - total_expenses,
            recent_transactions=[
                RecentTransaction(
                    transaction_id=txn.id,
                    type=txn.type,
                    transaction_date=txn.transaction_date,
                    amount=txn.amount,
                    description=txn.description,
                )
                for txn in recent
            ],
        )

    async def due_credit_sales(self, owner_id: str, start: date, end: date) -> list[DueCreditSale]:
        """Credit sales whose due date falls within [start, end], soonest first."""
        self._check_range(start, end)
        # Due dates never precede the sale date
        sales = await self._transactions.list_by_owner_and_range(
            owner_id, TransactionType.SALE, date.min, end,
        )
        due = [
            DueCreditSale(
                transaction_id=sale.id,
                customer_id=sale.customer_id,
                customer_name=sale.customer_name or self._settings.walk_in_customer_name,
                amount=sale.amount,
                due_date=sale.due_date,
            )
            for sale in sales
            if sale.payment_method == PaymentMethod.CREDIT
            and sale.due_date is not None
            and start <= sale.due_date <= end
        ]
        return sorted(due, key=lambda d: d.due_date)
