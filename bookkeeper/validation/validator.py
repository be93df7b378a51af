"""
Input Validation

DESIGN DECISION: Every workflow validates its whole input before the
first write. Validation happens in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Numbers that are actually numbers (no NaN / infinity)
- Whole-unit quantities

STAGE 2 - SEMANTIC VALIDATION:
- Sign and range checks (negative prices, absurd amounts)
- Cross-field rules (a credit sale needs a customer)

Stage 2 only runs on fields that passed stage 1, so each bad field is
reported once, with the most basic problem.

IMPORTANT: Validation NEVER silently fixes issues.
It reports them and the workflow refuses to run.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from bookkeeper.config import get_settings
from bookkeeper.models.transaction import (
    MAX_CATEGORY_LENGTH,
    MAX_DESCRIPTION_LENGTH,
    MAX_NAME_LENGTH,
    PaymentMethod,
    SaleItemDraft,
    TransactionEdit,
    TransactionType,
)
from bookkeeper.models.validation import ValidationIssue, ValidationResult


def as_decimal(value) -> Optional[Decimal]:
    if value is None or isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def is_finite_number(value) -> bool:
    value = as_decimal(value)
    return value is not None and value.is_finite()


def whole_quantity(value) -> int:
    """Convert an already validated quantity to int."""
    return int(as_decimal(value))


class InputValidator:
    """
    Validates caller input for the orchestrator's workflows.

    Each validate_* method returns a ValidationResult; `ensure_valid`
    turns a failed result into InvalidInputError.
    """

    def __init__(self, max_amount: Optional[Decimal] = None):
        self._max_amount = (
            max_amount
            if max_amount is not None
            else get_settings().app.max_transaction_amount
        )

    # -------------------------------------------------------------------------
    # Field checks
    # -------------------------------------------------------------------------

    def _check_number(
        self,
        value,
        field: str,
        label: str,
        *,
        required: bool = True,
        whole: bool = False,
        positive: bool = False,
    ) -> list[ValidationIssue]:
        """Stage 1 then stage 2 for one numeric field."""
        try:
            value = as_decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            return [ValidationIssue(
                field=field,
                issue_type="not_a_number",
                message=f"{label} must be a number",
            )]
        if value is None:
            if not required:
                return []
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
            )]

        if not is_finite_number(value):
            return [ValidationIssue(
                field=field,
                issue_type="not_a_number",
                message=f"{label} must be a number",
            )]

        if whole and value != value.to_integral_value():
            return [ValidationIssue(
                field=field,
                issue_type="not_whole",
                message=f"{label} must be a whole number",
                suggested_fix="Quantities are counted in whole units",
            )]

        if positive and value <= 0:
            return [ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{label} must be greater than zero",
            )]

        if value < 0:
            return [ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{label} cannot be negative",
            )]

        if not whole and value > self._max_amount:
            return [ValidationIssue(
                field=field,
                issue_type="suspicious_value",
                message=f"{label} ({value:,}) is above the allowed maximum",
                suggested_fix="Please check the amount for extra digits",
            )]

        return []

    def _check_text(
        self,
        value: Optional[str],
        field: str,
        label: str,
        max_length: int = MAX_NAME_LENGTH,
    ) -> list[ValidationIssue]:
        if value is None or not value.strip():
            return [ValidationIssue(
                field=field,
                issue_type="missing",
                message=f"{label} is required",
            )]
        if len(value.strip()) > max_length:
            return [ValidationIssue(
                field=field,
                issue_type="out_of_range",
                message=f"{label} is longer than {max_length} characters",
            )]
        return []

    # -------------------------------------------------------------------------
    # Workflows
    # -------------------------------------------------------------------------

    def validate_sale_items(self, items: list[SaleItemDraft]) -> list[ValidationIssue]:
        if not items:
            return [ValidationIssue(
                field="items",
                issue_type="missing",
                message="A sale needs at least one item",
            )]

        issues = []
        for index, item in enumerate(items):
            prefix = f"items[{index}]"
            issues.extend(self._check_text(item.product_name, f"{prefix}.product_name", "Item name"))
            issues.extend(self._check_number(
                item.quantity, f"{prefix}.quantity", "Quantity", whole=True, positive=True,
            ))
            issues.extend(self._check_number(
                item.unit_price, f"{prefix}.unit_price", "Price",
            ))

        if not issues:
            total = sum((item.quantity * item.unit_price for item in items), Decimal("0"))
            if total > self._max_amount:
                issues.append(ValidationIssue(
                    field="items",
                    issue_type="suspicious_value",
                    message=f"Sale total ({total:,}) is above the allowed maximum",
                    suggested_fix="Please check the quantities and prices",
                ))
        return issues

    def validate_sale(
        self,
        items: list[SaleItemDraft],
        payment_method: PaymentMethod,
        customer_name: Optional[str],
        sale_date: Optional[date] = None,
        due_date: Optional[date] = None,
    ) -> ValidationResult:
        issues = self.validate_sale_items(items)
        if due_date is not None and due_date < (sale_date or date.today()):
            issues.append(ValidationIssue(
                field="due_date",
                issue_type="out_of_range",
                message="Due date cannot be before the sale date",
            ))
        if customer_name and customer_name.strip():
            issues.extend(self._check_text(customer_name, "customer_name", "Customer name"))
        if payment_method == PaymentMethod.CREDIT and not (customer_name and customer_name.strip()):
            issues.append(ValidationIssue(
                field="customer_name",
                issue_type="missing",
                message="A credit sale needs a customer name",
                suggested_fix="Tell me who is buying on credit",
            ))
        return ValidationResult(operation="log_sale", issues=issues)

    def validate_expense(
        self,
        amount: Optional[Decimal],
        category: Optional[str],
        description: Optional[str] = None,
    ) -> ValidationResult:
        issues = self._check_number(amount, "amount", "Amount", positive=True)
        issues.extend(self._check_text(category, "category", "Category", MAX_CATEGORY_LENGTH))
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            issues.append(ValidationIssue(
                field="description",
                issue_type="out_of_range",
                message=f"Description is longer than {MAX_DESCRIPTION_LENGTH} characters",
            ))
        return ValidationResult(operation="log_expense", issues=issues)

    def validate_customer_payment(
        self,
        customer_name: Optional[str],
        amount: Optional[Decimal],
    ) -> ValidationResult:
        issues = self._check_text(customer_name, "customer_name", "Customer name")
        issues.extend(self._check_number(amount, "amount", "Amount", positive=True))
        return ValidationResult(operation="log_customer_payment", issues=issues)

    def validate_stock_receipt(
        self,
        name: Optional[str],
        quantity_added: Optional[Decimal],
        unit_cost: Optional[Decimal],
        selling_price: Optional[Decimal],
        reorder_threshold: Optional[int] = None,
    ) -> ValidationResult:
        issues = self._check_text(name, "name", "Product name")
        issues.extend(self._check_number(
            quantity_added, "quantity_added", "Quantity", whole=True,
        ))
        issues.extend(self._check_number(unit_cost, "unit_cost", "Cost price"))
        issues.extend(self._check_number(selling_price, "selling_price", "Selling price"))
        if reorder_threshold is not None and reorder_threshold < 0:
            issues.append(ValidationIssue(
                field="reorder_threshold",
                issue_type="out_of_range",
                message="Reorder threshold cannot be negative",
            ))
        return ValidationResult(operation="receive_stock", issues=issues)

    def validate_bank_account(self, name: Optional[str], opening_balance: Optional[Decimal]) -> ValidationResult:
        issues = self._check_text(name, "name", "Account name")
        if opening_balance is not None and not is_finite_number(opening_balance):
            issues.append(ValidationIssue(
                field="opening_balance",
                issue_type="not_a_number",
                message="Opening balance must be a number",
            ))
        return ValidationResult(operation="create_bank_account", issues=issues)

    def validate_edit(
        self,
        changes: TransactionEdit,
        transaction_type: TransactionType,
        item_count: int,
    ) -> ValidationResult:
        """Check an edit against the type of the transaction it targets."""
        issues = []
        is_sale = transaction_type == TransactionType.SALE

        if changes.was_set("amount"):
            if is_sale:
                issues.append(ValidationIssue(
                    field="amount",
                    issue_type="not_editable",
                    message="A sale's amount comes from its items",
                    suggested_fix="Edit the quantity or price instead",
                ))
            else:
                issues.extend(self._check_number(changes.amount, "amount", "Amount", positive=True))

        sale_fields = ["quantity", "unit_price", "items", "payment_method", "customer_name", "due_date"]
        if not is_sale:
            for field_name in sale_fields:
                if changes.was_set(field_name):
                    issues.append(ValidationIssue(
                        field=field_name,
                        issue_type="not_editable",
                        message=f"'{field_name}' only applies to sales",
                    ))

        if changes.was_set("category"):
            if transaction_type != TransactionType.EXPENSE:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="not_editable",
                    message="Only expenses have a category",
                ))
            else:
                issues.extend(self._check_text(
                    changes.category, "category", "Category", MAX_CATEGORY_LENGTH,
                ))

        if is_sale:
            if changes.was_set("items"):
                issues.extend(self.validate_sale_items(changes.items or []))
            elif changes.was_set("quantity") or changes.was_set("unit_price"):
                if changes.item_index >= item_count:
                    issues.append(ValidationIssue(
                        field="item_index",
                        issue_type="out_of_range",
                        message=f"The sale has no item number {changes.item_index + 1}",
                    ))
                if changes.was_set("quantity"):
                    issues.extend(self._check_number(
                        changes.quantity, "quantity", "Quantity", whole=True, positive=True,
                    ))
                if changes.was_set("unit_price"):
                    issues.extend(self._check_number(changes.unit_price, "unit_price", "Price"))

        return ValidationResult(operation="edit_transaction", issues=issues)

    # -------------------------------------------------------------------------
    # Outcome helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def ensure_valid(result: ValidationResult) -> None:
        """
        Raises:
            InvalidInputError: If the result has any error-severity issue
        """
        if not result.is_valid:
            raise InvalidInputError(result.errors, operation=result.operation)

    @staticmethod
    def get_user_friendly_summary(result: ValidationResult) -> str:
        """
        Summary of validation results for the person typing the entry.
        """
        if result.is_valid and not result.warnings:
            return "All checks passed."

        lines = []
        if result.errors:
            lines.append("Some details need fixing:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines).strip()


class InvalidInputError(Exception):
    """Caller input failed validation; nothing was written."""

    def __init__(self, issues: list[ValidationIssue], operation: str = ""):
        self.issues = issues
        self.operation = operation
        summary = "; ".join(issue.message for issue in issues) or "invalid input"
        super().__init__(summary)

    @classmethod
    def single(cls, field: str, message: str, issue_type: str = "invalid_value") -> "InvalidInputError":
        return cls([ValidationIssue(field=field, issue_type=issue_type, message=message)])
