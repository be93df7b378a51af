"""
Tests for input validation.

Validation must catch every bad field before a workflow writes anything.
"""

import pytest
from datetime import date
from decimal import Decimal

from bookkeeper.models import (
    PaymentMethod,
    SaleItemDraft,
    TransactionEdit,
    TransactionType,
)
from bookkeeper.validation import InputValidator, InvalidInputError


@pytest.fixture
def check() -> InputValidator:
    return InputValidator(max_amount=Decimal("1000000"))


def draft(name="Soap", quantity="2", price="80", **kwargs) -> SaleItemDraft:
    return SaleItemDraft(
        product_name=name,
        quantity=None if quantity is None else Decimal(quantity),
        unit_price=None if price is None else Decimal(price),
        **kwargs,
    )


class TestSaleValidation:
    """Tests for validate_sale."""

    def test_valid_sale(self, check):
        """A normal cash sale passes."""
        result = check.validate_sale([draft()], PaymentMethod.CASH, None)
        assert result.is_valid

    def test_empty_sale(self, check):
        """No items is an error."""
        result = check.validate_sale([], PaymentMethod.CASH, None)
        assert not result.is_valid
        assert result.issues[0].field == "items"

    def test_missing_quantity(self, check):
        """Quantity is required on every line."""
        result = check.validate_sale([draft(quantity=None)], PaymentMethod.CASH, None)
        assert result.issues[0].field == "items[0].quantity"
        assert result.issues[0].issue_type == "missing"

    def test_nan_quantity(self, check):
        """NaN is not a quantity."""
        result = check.validate_sale([draft(quantity="NaN")], PaymentMethod.CASH, None)
        assert result.issues[0].issue_type == "not_a_number"

    def test_fractional_quantity(self, check):
        """Half a bar of soap cannot be sold."""
        result = check.validate_sale([draft(quantity="1.5")], PaymentMethod.CASH, None)
        assert result.issues[0].issue_type == "not_whole"

    def test_zero_quantity(self, check):
        """Quantity must be positive."""
        result = check.validate_sale([draft(quantity="0")], PaymentMethod.CASH, None)
        assert result.issues[0].issue_type == "out_of_range"

    def test_negative_price(self, check):
        """Prices cannot be negative."""
        result = check.validate_sale([draft(price="-1")], PaymentMethod.CASH, None)
        assert result.issues[0].field == "items[0].unit_price"

    def test_free_item_allowed(self, check):
        """A zero price is a giveaway, not an error."""
        result = check.validate_sale([draft(price="0")], PaymentMethod.CASH, None)
        assert result.is_valid

    def test_every_bad_line_reported(self, check):
        """Issues from all lines are collected."""
        result = check.validate_sale(
            [draft(quantity=None), draft(name="", price="-3")],
            PaymentMethod.CASH,
            None,
        )
        fields = {issue.field for issue in result.errors}
        assert fields == {"items[0].quantity", "items[1].product_name", "items[1].unit_price"}

    def test_credit_needs_customer(self, check):
        """A credit sale without a customer is rejected."""
        result = check.validate_sale([draft()], PaymentMethod.CREDIT, "  ")
        assert not result.is_valid
        assert result.issues[-1].field == "customer_name"

    def test_due_date_before_sale_date(self, check):
        """A credit sale cannot fall due before it happened."""
        result = check.validate_sale(
            [draft()], PaymentMethod.CREDIT, "Alice",
            sale_date=date(2025, 3, 10), due_date=date(2025, 3, 1),
        )
        assert result.issues[0].field == "due_date"

    def test_total_above_maximum(self, check):
        """Absurd totals are caught."""
        result = check.validate_sale([draft(quantity="1000", price="5000")], PaymentMethod.CASH, None)
        assert result.issues[0].issue_type == "suspicious_value"


class TestOtherWorkflows:
    """Tests for expense, payment, stock and bank validation."""

    def test_expense_amount_must_be_positive(self, check):
        """Zero-value expenses are refused."""
        result = check.validate_expense(Decimal("0"), "Rent")
        assert not result.is_valid

    def test_expense_needs_category(self, check):
        """Category is required."""
        result = check.validate_expense(Decimal("10"), "")
        assert result.issues[0].field == "category"

    def test_non_numeric_amount(self, check):
        """Text that isn't a number is reported, not raised."""
        result = check.validate_expense("twelve", "Rent")
        assert result.issues[0].issue_type == "not_a_number"

    def test_overlong_text_is_reported(self, check):
        """Names, categories and descriptions past their limits are input errors."""
        expense = check.validate_expense(Decimal("10"), "R" * 101, "x" * 1001)
        stock = check.validate_stock_receipt("S" * 201, Decimal("1"), Decimal("5"), Decimal("8"))
        sale = check.validate_sale([draft()], PaymentMethod.CREDIT, "A" * 201)

        assert [i.field for i in expense.issues] == ["category", "description"]
        assert stock.issues[0].issue_type == "out_of_range"
        assert sale.issues[0].field == "customer_name"

    def test_payment_needs_customer(self, check):
        """Payments need a customer name."""
        result = check.validate_customer_payment(None, Decimal("10"))
        assert result.issues[0].field == "customer_name"

    def test_stock_receipt_allows_zero_quantity(self, check):
        """Zero quantity is a cost correction."""
        result = check.validate_stock_receipt("Soap", Decimal("0"), Decimal("50"), Decimal("80"))
        assert result.is_valid

    def test_stock_receipt_negative_threshold(self, check):
        """Thresholds cannot be negative."""
        result = check.validate_stock_receipt("Soap", Decimal("1"), Decimal("50"), Decimal("80"), -1)
        assert result.issues[0].field == "reorder_threshold"

    def test_bank_account_needs_name(self, check):
        """Bank accounts need a name."""
        result = check.validate_bank_account(" ", Decimal("0"))
        assert not result.is_valid

    def test_bank_account_negative_opening_allowed(self, check):
        """An overdrawn account can be opened as it is."""
        result = check.validate_bank_account("Main", Decimal("-50"))
        assert result.is_valid


class TestEditValidation:
    """Tests for validate_edit."""

    def test_sale_amount_not_editable(self, check):
        """A sale's amount follows its items."""
        result = check.validate_edit(
            TransactionEdit(amount=Decimal("10")), TransactionType.SALE, 1,
        )
        assert result.issues[0].issue_type == "not_editable"

    def test_expense_amount_editable(self, check):
        """Expense amounts can change."""
        result = check.validate_edit(
            TransactionEdit(amount=Decimal("10")), TransactionType.EXPENSE, 0,
        )
        assert result.is_valid

    def test_quantity_not_editable_on_expense(self, check):
        """Sale-only fields are refused on other types."""
        result = check.validate_edit(
            TransactionEdit(quantity=Decimal("2")), TransactionType.EXPENSE, 0,
        )
        assert result.issues[0].field == "quantity"

    def test_category_only_on_expense(self, check):
        """Payments have no category."""
        result = check.validate_edit(
            TransactionEdit(category="Rent"), TransactionType.CUSTOMER_PAYMENT, 0,
        )
        assert result.issues[0].field == "category"

    def test_item_index_out_of_range(self, check):
        """Editing item 3 of a one-item sale fails."""
        result = check.validate_edit(
            TransactionEdit(item_index=2, quantity=Decimal("1")), TransactionType.SALE, 1,
        )
        assert result.issues[0].field == "item_index"


class TestOutcomeHelpers:
    """Tests for ensure_valid and the friendly summary."""

    def test_ensure_valid_raises_with_issues(self, check):
        """Failed results become InvalidInputError carrying every issue."""
        result = check.validate_expense(None, None)
        with pytest.raises(InvalidInputError) as exc:
            check.ensure_valid(result)
        assert len(exc.value.issues) == 2
        assert exc.value.operation == "log_expense"

    def test_summary_lists_errors(self, check):
        """The summary is readable by the shop owner."""
        result = check.validate_expense(Decimal("-5"), "Rent")
        summary = check.get_user_friendly_summary(result)
        assert "Amount must be greater than zero" in summary

    def test_summary_when_valid(self, check):
        """Clean results say so."""
        result = check.validate_expense(Decimal("5"), "Rent")
        assert check.get_user_friendly_summary(result) == "All checks passed."


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
