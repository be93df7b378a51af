"""
Accounting Orchestrator for Bookkeeper

This module ties the ledgers together and defines the end-to-end
workflows for:
1. Sales (validate -> resolve items -> record -> move stock -> post balance)
2. Expenses, customer payments, stock receipts
3. Edits and deletions (reverse -> rewrite -> re-apply)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until the whole input has been validated
- Every ledger effect of a transaction comes from `effects_for`, so
  undoing a transaction is applying exactly the same effects negated
- Every step is audited

STORAGE HAS NO MULTI-DOCUMENT TRANSACTIONS. Workflows write one
document at a time in a fixed order. If a ledger write fails after the
transaction record was written, the failure is logged with the
transaction id and step index and raised to the caller; nothing is
rolled back automatically.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from bookkeeper.audit import AuditLogger
from bookkeeper.config import Settings, get_settings
from bookkeeper.models.accounts import BankAccount, Customer
from bookkeeper.models.inventory import (
    BulkImportResult,
    InventoryReason,
    Product,
    StockAlert,
    StockReceipt,
)
from bookkeeper.models.sale import (
    DisambiguationRequest,
    PendingSale,
    ProductCandidate,
    ResolutionChoice,
    ResolutionKind,
    SaleOutcome,
    SaleStatus,
)
from bookkeeper.models.transaction import (
    MAX_DESCRIPTION_LENGTH,
    CustomerPaymentTransaction,
    ExpenseTransaction,
    PaymentMethod,
    SaleItem,
    SaleItemDraft,
    SaleTransaction,
    Transaction,
    TransactionAdapter,
    TransactionEdit,
    TransactionType,
)
from bookkeeper.models.validation import ValidationIssue, ValidationResult
from bookkeeper.queries import ReportAggregator
from bookkeeper.services.ledgers import (
    BankBalanceLedger,
    CustomerBalanceLedger,
    InventoryLedger,
    KeyedLocks,
)
from bookkeeper.services.storage import (
    GoogleSheetsClient,
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryInventoryAuditStorage,
    InMemoryPendingSaleStorage,
    InMemoryProductStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    PendingSaleStorageInterface,
    StorageError,
    TransactionStorageInterface,
    create_google_sheets_storages,
)
from bookkeeper.validation import (
    InputValidator,
    InvalidInputError,
    as_decimal,
    whole_quantity,
)


logger = structlog.get_logger("bookkeeper.orchestrator")

# Generated sale descriptions name at most this many lines
DESCRIPTION_ITEM_LIMIT = 5


# =============================================================================
# LEDGER EFFECTS
# =============================================================================

class EffectTarget(str, Enum):
    STOCK = "stock"
    CUSTOMER = "customer"
    BANK = "bank"


class LedgerEffect(BaseModel):
    """One signed change a transaction makes to one ledger."""

    target: EffectTarget
    target_id: UUID
    amount: Decimal

    def negated(self) -> "LedgerEffect":
        return self.model_copy(update={"amount": -self.amount})

    def describe(self) -> str:
        return f"{self.target.value} {self.target_id} {self.amount:+}"


def effects_for(transaction: Transaction) -> list[LedgerEffect]:
    """
    Every ledger change implied by a transaction, in posting order.

    SALE: stock -q per product line; CREDIT -> customer +amount,
          otherwise bank +amount when a bank is linked.
    EXPENSE: bank -amount when a bank is linked.
    CUSTOMER_PAYMENT: customer -amount; bank +amount when linked.
    """
    effects = []

    if transaction.type == TransactionType.SALE:
        for item in transaction.items:
            if item.is_stock_item:
                effects.append(LedgerEffect(
                    target=EffectTarget.STOCK,
                    target_id=item.product_id,
                    amount=Decimal(-item.quantity),
                ))
        if transaction.payment_method == PaymentMethod.CREDIT:
            if transaction.customer_id is not None:
                effects.append(LedgerEffect(
                    target=EffectTarget.CUSTOMER,
                    target_id=transaction.customer_id,
                    amount=transaction.amount,
                ))
        elif transaction.bank_id is not None:
            effects.append(LedgerEffect(
                target=EffectTarget.BANK,
                target_id=transaction.bank_id,
                amount=transaction.amount,
            ))

    elif transaction.type == TransactionType.EXPENSE:
        if transaction.bank_id is not None:
            effects.append(LedgerEffect(
                target=EffectTarget.BANK,
                target_id=transaction.bank_id,
                amount=-transaction.amount,
            ))

    elif transaction.type == TransactionType.CUSTOMER_PAYMENT:
        effects.append(LedgerEffect(
            target=EffectTarget.CUSTOMER,
            target_id=transaction.customer_id,
            amount=-transaction.amount,
        ))
        if transaction.bank_id is not None:
            effects.append(LedgerEffect(
                target=EffectTarget.BANK,
                target_id=transaction.bank_id,
                amount=transaction.amount,
            ))

    return effects


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class AccountingOrchestrator:
    """
    Runs every workflow that changes the books.

    Concurrency: edits and deletes of one transaction are serialised
    on the transaction id, resumptions of one pending sale on its token.
    Stock and balance writes are serialised inside the ledgers, so the
    orchestrator never holds a product or account key itself.
    """

    def __init__(
        self,
        transactions: TransactionStorageInterface,
        pending_sales: PendingSaleStorageInterface,
        inventory: InventoryLedger,
        customers: CustomerBalanceLedger,
        banks: BankBalanceLedger,
        validator: Optional[InputValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self._transactions = transactions
        self._pending = pending_sales
        self._inventory = inventory
        self._customers = customers
        self._banks = banks
        self._validator = validator or InputValidator()
        self._audit_logger = audit_logger or AuditLogger()
        self._locks = locks or KeyedLocks()
        self._settings = get_settings().app

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _ensure_valid(self, owner_id: str, result: ValidationResult) -> None:
        if not result.is_valid:
            await self._audit_logger.log_validation_failed(owner_id, result)
            self._validator.ensure_valid(result)

    async def _require_bank(self, owner_id: str, bank_id: Optional[UUID]) -> Optional[BankAccount]:
        if bank_id is None:
            return None
        bank = await self._banks.get(owner_id, bank_id)
        if bank is None:
            raise NotFoundError(f"Bank account not found: {bank_id}")
        return bank

    @staticmethod
    def _payment_method(value: Union[PaymentMethod, str, None]) -> PaymentMethod:
        if value is None:
            return PaymentMethod.CASH
        if isinstance(value, PaymentMethod):
            return value
        try:
            return PaymentMethod(value.strip().upper())
        except ValueError:
            raise InvalidInputError.single(
                "payment_method",
                f"Unknown payment method '{value}' (use cash, credit or bank)",
            )

    async def _sale_drafts(
        self, owner_id: str, items: list[Union[SaleItemDraft, dict]],
    ) -> list[SaleItemDraft]:
        """Parse caller lines; unparseable ones are input errors, not crashes."""
        drafts = []
        issues = []
        for index, item in enumerate(items):
            if isinstance(item, SaleItemDraft):
                drafts.append(item)
                continue
            try:
                drafts.append(SaleItemDraft.model_validate(item))
            except ValidationError as e:
                issues.extend(
                    ValidationIssue(
                        field=f"items[{index}]." + ".".join(str(part) for part in error["loc"]),
                        issue_type="invalid_value",
                        message=f"Line {index + 1}: {error['msg']}",
                    )
                    for error in e.errors()
                )
        await self._ensure_valid(owner_id, ValidationResult(operation="log_sale", issues=issues))
        return drafts

    def _sale_description(self, items: list[SaleItem], customer_name: Optional[str]) -> str:
        shown = items[:DESCRIPTION_ITEM_LIMIT]
        lines = ", ".join(f"{item.quantity} x {item.product_name}" for item in shown)
        if len(items) > len(shown):
            lines += f" and {len(items) - len(shown)} more"
        description = f"{lines} sold to {customer_name or self._settings.walk_in_customer_name}"
        if len(description) > MAX_DESCRIPTION_LENGTH:
            description = description[: MAX_DESCRIPTION_LENGTH - 3] + "..."
        return description

    async def _apply_effects(
        self,
        transaction: Transaction,
        effects: list[LedgerEffect],
        phase: str,
    ) -> list[StockAlert]:
        """
        Post effects in order.

        Raises:
            PostingFailureError / ReversalFailureError: On the first failing step
        """
        owner_id = transaction.owner_id
        alerts = []
        if phase == "reverse":
            stock_reason = f"{transaction.type.value}_REVERSAL"
        else:
            stock_reason = transaction.type.value

        for step_index, effect in enumerate(effects):
            try:
                if effect.target == EffectTarget.STOCK:
                    product = await self._inventory.adjust_stock(
                        owner_id,
                        effect.target_id,
                        int(effect.amount),
                        stock_reason,
                        linked_transaction_id=transaction.id,
                    )
                    if effect.amount < 0:
                        alert = self._inventory.stock_alert_for(product)
                        if alert is not None:
                            alerts.append(alert)
                elif effect.target == EffectTarget.CUSTOMER:
                    await self._customers.apply_delta(owner_id, effect.target_id, effect.amount)
                else:
                    await self._banks.apply_delta(owner_id, effect.target_id, effect.amount)
            except Exception as e:
                await self._audit_logger.log_ledger_step_failed(
                    owner_id=owner_id,
                    transaction_id=transaction.id,
                    phase=phase,
                    step_index=step_index,
                    step=effect.describe(),
                    error_message=str(e),
                )
                error_cls = ReversalFailureError if phase == "reverse" else PostingFailureError
                raise error_cls(transaction.id, step_index, effect.describe(), str(e)) from e

        for alert in alerts:
            await self._audit_logger.log_stock_alert(owner_id, alert, correlation_id=transaction.id)
        return alerts

    async def reverse_effects(self, transaction: Transaction) -> None:
        """
        Undo every ledger effect of a stored transaction.

        Stock moves back with reason '<TYPE>_REVERSAL'.

        Raises:
            ReversalFailureError: If any step fails (already logged)
        """
        effects = [effect.negated() for effect in effects_for(transaction)]
        await self._apply_effects(transaction, effects, phase="reverse")

    async def _post(self, transaction: Transaction) -> tuple[Transaction, list[StockAlert]]:
        """Append a validated transaction, then apply its effects."""
        stored = await self._transactions.append(transaction.owner_id, transaction)
        alerts = await self._apply_effects(stored, effects_for(stored), phase="apply")
        await self._audit_logger.log_transaction_created(stored)
        logger.info(
            "Transaction recorded",
            owner_id=stored.owner_id,
            transaction_id=str(stored.id),
            type=stored.type.value,
            amount=str(stored.amount),
        )
        return stored, alerts

    # -------------------------------------------------------------------------
    # Sales
    # -------------------------------------------------------------------------

    async def log_sale(
        self,
        owner_id: str,
        items: list[Union[SaleItemDraft, dict]],
        customer_name: Optional[str] = None,
        payment_method: Union[PaymentMethod, str, None] = PaymentMethod.CASH,
        bank_id: Optional[UUID] = None,
        sale_date: Optional[date] = None,
        due_date: Optional[date] = None,
        logged_by: Optional[str] = None,
    ) -> SaleOutcome:
        """
        Record a sale, pausing when an item name needs the caller's help.

        Returns:
            SaleOutcome: COMPLETED with the transaction, or NEEDS_RESOLUTION
            with a DisambiguationRequest to answer through resolve_item

        Raises:
            InvalidInputError: Bad item or header data (nothing written)
            NotFoundError: Unknown bank account (nothing written)
        """
        drafts = await self._sale_drafts(owner_id, items)
        method = self._payment_method(payment_method)
        customer_name = customer_name.strip() if customer_name and customer_name.strip() else None

        await self._ensure_valid(
            owner_id, self._validator.validate_sale(drafts, method, customer_name, sale_date, due_date),
        )
        await self._require_bank(owner_id, bank_id)

        pending = PendingSale(
            owner_id=owner_id,
            items=drafts,
            customer_name=customer_name,
            payment_method=method,
            bank_id=bank_id,
            sale_date=sale_date,
            due_date=due_date,
            logged_by=logged_by or "Owner",
        )
        return await self._advance(pending)

    async def _advance(self, pending: PendingSale) -> SaleOutcome:
        """Resolve items from current_index on; suspend or complete."""
        owner_id = pending.owner_id

        for index in range(pending.current_index, len(pending.items)):
            draft = pending.items[index]
            if draft.is_service or draft.product_id is not None:
                continue

            product = await self._inventory.find_by_exact_name(owner_id, draft.product_name)
            if product is not None:
                pending.items[index] = draft.model_copy(update={"product_id": product.id})
                continue

            candidates = await self._inventory.find_by_fuzzy_name(
                owner_id, draft.product_name, self._settings.fuzzy_match_limit,
            )
            pending.current_index = index
            if candidates:
                pending.awaiting = ResolutionKind.PRODUCT_CHOICE
                pending.candidates = [
                    ProductCandidate(candidate_id=p.id, candidate_name=p.name)
                    for p in candidates
                ]
            else:
                pending.awaiting = ResolutionKind.ITEM_TYPE
                pending.candidates = []
            return await self._suspend(pending)

        return await self._complete_sale(pending)

    async def _suspend(self, pending: PendingSale) -> SaleOutcome:
        await self._pending.save(pending.owner_id, pending)
        item = pending.items[pending.current_index]
        await self._audit_logger.log_sale_suspended(
            owner_id=pending.owner_id,
            token=pending.token,
            item_name=item.product_name,
            kind=pending.awaiting.value,
            candidate_count=len(pending.candidates),
        )
        return SaleOutcome(
            status=SaleStatus.NEEDS_RESOLUTION,
            request=DisambiguationRequest(
                token=pending.token,
                owner_id=pending.owner_id,
                item_index=pending.current_index,
                item_name=item.product_name,
                kind=pending.awaiting,
                candidates=pending.candidates,
            ),
        )

    async def _complete_sale(self, pending: PendingSale) -> SaleOutcome:
        owner_id = pending.owner_id
        items = []
        for draft in pending.items:
            quantity = whole_quantity(draft.quantity)
            if draft.is_service:
                items.append(SaleItem(
                    product_name=draft.product_name,
                    quantity=quantity,
                    unit_price=draft.unit_price,
                    is_service=True,
                ))
                continue
            product = await self._inventory.get_product(owner_id, draft.product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {draft.product_id}")
            items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                unit_price=draft.unit_price,
                unit_cost_snapshot=product.average_cost,
            ))

        customer: Optional[Customer] = None
        if pending.customer_name:
            customer = await self._customers.find_or_create(owner_id, pending.customer_name)

        sale = SaleTransaction(
            owner_id=owner_id,
            amount=sum((item.line_total for item in items), Decimal("0")),
            transaction_date=pending.sale_date or date.today(),
            description=self._sale_description(
                items, customer.name if customer else None,
            ),
            bank_id=pending.bank_id,
            logged_by=pending.logged_by,
            items=items,
            customer_id=customer.id if customer else None,
            customer_name=customer.name if customer else None,
            payment_method=pending.payment_method,
            due_date=pending.due_date,
        )

        stored = await self._transactions.append(owner_id, sale)
        # The sale is on the books now; resuming this token again must not re-post it
        await self._pending.delete(owner_id, pending.token)
        alerts = await self._apply_effects(stored, effects_for(stored), phase="apply")
        await self._audit_logger.log_transaction_created(stored)

        logger.info(
            "Sale recorded",
            owner_id=owner_id,
            transaction_id=str(stored.id),
            amount=str(stored.amount),
            alerts=len(alerts),
        )
        return SaleOutcome(status=SaleStatus.COMPLETED, transaction=stored, alerts=alerts)

    async def resolve_item(
        self,
        owner_id: str,
        token: UUID,
        choice: Union[UUID, ResolutionChoice, str],
    ) -> SaleOutcome:
        """
        Answer a DisambiguationRequest and continue the sale.

        Args:
            choice: A candidate product id, "none" (none of the candidates),
                    "service", or "product" (create the product if needed)

        Raises:
            NotFoundError: Unknown or already finished token
            InvalidInputError: Choice doesn't fit the question asked
        """
        async with self._locks.hold((owner_id, "pending_sale", token)):
            pending = await self._pending.get(owner_id, token)
            if pending is None:
                raise NotFoundError(f"No pending sale for token {token}")

            index = pending.current_index
            draft = pending.items[index]
            choice = self._parse_choice(choice)

            if isinstance(choice, UUID):
                offered = {c.candidate_id for c in pending.candidates}
                if pending.awaiting != ResolutionKind.PRODUCT_CHOICE or choice not in offered:
                    raise InvalidInputError.single(
                        "choice", "That product was not one of the options offered",
                    )
                pending.items[index] = draft.model_copy(update={"product_id": choice})
                pending.current_index = index + 1
            elif choice == ResolutionChoice.NONE:
                if pending.awaiting != ResolutionKind.PRODUCT_CHOICE:
                    raise InvalidInputError.single(
                        "choice", "Please answer 'product' or 'service'",
                    )
                pending.awaiting = ResolutionKind.ITEM_TYPE
                pending.candidates = []
                await self._audit_logger.log_sale_resumed(owner_id, token, choice.value)
                return await self._suspend(pending)
            elif choice == ResolutionChoice.SERVICE:
                pending.items[index] = draft.model_copy(update={"is_service": True})
                pending.current_index = index + 1
            else:
                product = await self._inventory.find_or_create(owner_id, draft.product_name)
                pending.items[index] = draft.model_copy(update={"product_id": product.id})
                pending.current_index = index + 1

            await self._audit_logger.log_sale_resumed(
                owner_id, token, str(choice.value if isinstance(choice, ResolutionChoice) else choice),
            )
            return await self._advance(pending)

    @staticmethod
    def _parse_choice(choice) -> Union[UUID, ResolutionChoice]:
        if isinstance(choice, (UUID, ResolutionChoice)):
            return choice
        text = str(choice).strip().lower()
        try:
            return ResolutionChoice(text)
        except ValueError:
            pass
        try:
            return UUID(text)
        except ValueError:
            raise InvalidInputError.single(
                "choice", f"'{choice}' is not a product id, 'none', 'service' or 'product'",
            )

    async def cancel_pending_sale(self, owner_id: str, token: UUID) -> bool:
        """Drop a suspended sale. Nothing was posted, so nothing to undo."""
        async with self._locks.hold((owner_id, "pending_sale", token)):
            deleted = await self._pending.delete(owner_id, token)
        if deleted:
            await self._audit_logger.log_sale_cancelled(owner_id, token)
        return deleted

    # -------------------------------------------------------------------------
    # Expenses, payments, stock
    # -------------------------------------------------------------------------

    async def log_expense(
        self,
        owner_id: str,
        amount,
        category: str,
        description: str = "",
        bank_id: Optional[UUID] = None,
        expense_date: Optional[date] = None,
        logged_by: Optional[str] = None,
    ) -> ExpenseTransaction:
        await self._ensure_valid(owner_id, self._validator.validate_expense(amount, category, description))
        await self._require_bank(owner_id, bank_id)

        expense = ExpenseTransaction(
            owner_id=owner_id,
            amount=as_decimal(amount),
            category=category.strip(),
            description=description or category.strip(),
            bank_id=bank_id,
            transaction_date=expense_date or date.today(),
            logged_by=logged_by or "Owner",
        )
        stored, _ = await self._post(expense)
        return stored

    async def log_customer_payment(
        self,
        owner_id: str,
        customer_name: str,
        amount,
        bank_id: Optional[UUID] = None,
        payment_date: Optional[date] = None,
        logged_by: Optional[str] = None,
    ) -> CustomerPaymentTransaction:
        await self._ensure_valid(
            owner_id, self._validator.validate_customer_payment(customer_name, amount),
        )
        await self._require_bank(owner_id, bank_id)

        customer = await self._customers.find_or_create(owner_id, customer_name)
        payment = CustomerPaymentTransaction(
            owner_id=owner_id,
            amount=as_decimal(amount),
            customer_id=customer.id,
            customer_name=customer.name,
            description=f"Payment from {customer.name}",
            bank_id=bank_id,
            transaction_date=payment_date or date.today(),
            logged_by=logged_by or "Owner",
        )
        stored, _ = await self._post(payment)
        return stored

    async def receive_stock(
        self,
        owner_id: str,
        name: str,
        quantity_added,
        unit_cost,
        selling_price,
        reorder_threshold: Optional[int] = None,
        bank_id: Optional[UUID] = None,
    ) -> Product:
        """
        Receive stock; when paid from a bank, debit quantity x unit cost.

        Raises:
            InvalidInputError: Bad receipt data (nothing written)
            NotFoundError: Unknown bank account (nothing written)
        """
        await self._ensure_valid(owner_id, self._validator.validate_stock_receipt(
            name, quantity_added, unit_cost, selling_price, reorder_threshold,
        ))
        await self._require_bank(owner_id, bank_id)

        product = await self._inventory.receive_stock(
            owner_id, name, quantity_added, unit_cost, selling_price, reorder_threshold,
        )
        qty = whole_quantity(quantity_added)
        await self._audit_logger.log_stock_received(product, qty)

        outlay = qty * as_decimal(unit_cost)
        if bank_id is not None and outlay > 0:
            try:
                await self._banks.apply_delta(owner_id, bank_id, -outlay)
            except Exception as e:
                await self._audit_logger.log_error(
                    error_type="stock_purchase_debit_failed",
                    error_message=str(e),
                    details={
                        "product_id": str(product.id),
                        "bank_id": str(bank_id),
                        "amount": str(outlay),
                    },
                    owner_id=owner_id,
                )
                raise
        return product

    async def receive_stock_bulk(
        self,
        owner_id: str,
        entries: list[Union[StockReceipt, dict]],
    ) -> BulkImportResult:
        """
        Import many stock lines; each one stands alone.

        Failed lines are collected in `errors` instead of stopping the import.
        """
        result = BulkImportResult()
        for row_number, raw in enumerate(entries, start=1):
            try:
                entry = raw if isinstance(raw, StockReceipt) else StockReceipt.model_validate(raw)
            except ValidationError as e:
                result.errors.append(f"Row {row_number}: {e.errors()[0]['msg']}")
                continue

            label = entry.name or f"Row {row_number}"
            try:
                product = await self.receive_stock(
                    owner_id,
                    entry.name,
                    entry.quantity_added,
                    entry.unit_cost,
                    entry.selling_price if entry.selling_price is not None else Decimal("0"),
                    entry.reorder_threshold,
                )
                result.added.append(product)
            except (InvalidInputError, StorageError) as e:
                result.errors.append(f"{label}: {e}")

        logger.info(
            "Bulk stock import finished",
            owner_id=owner_id,
            added=len(result.added),
            errors=len(result.errors),
        )
        return result

    async def create_bank_account(
        self,
        owner_id: str,
        name: str,
        opening_balance=Decimal("0"),
    ) -> BankAccount:
        """
        Raises:
            DuplicateNameError: If the owner already has a bank of that name
        """
        await self._ensure_valid(
            owner_id, self._validator.validate_bank_account(name, opening_balance),
        )
        opening = as_decimal(opening_balance) or Decimal("0")
        bank = await self._banks.create(owner_id, name, opening)
        await self._audit_logger.log_bank_account_created(owner_id, bank.id, bank.name, opening)
        return bank

    # -------------------------------------------------------------------------
    # Deletion and edits
    # -------------------------------------------------------------------------

    async def delete_transaction(self, owner_id: str, transaction_id: UUID) -> bool:
        """
        Reverse a transaction's effects, then delete it.

        Raises:
            NotFoundError: If the transaction doesn't exist
            ReversalFailureError: If undoing an effect fails (record kept)
        """
        async with self._locks.hold((owner_id, "transaction", transaction_id)):
            transaction = await self._transactions.get(owner_id, transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")

            await self.reverse_effects(transaction)
            deleted = await self._transactions.delete(owner_id, transaction_id)

        await self._audit_logger.log_transaction_deleted(transaction)
        logger.info("Transaction deleted", owner_id=owner_id, transaction_id=str(transaction_id))
        return deleted

    async def edit_transaction(
        self,
        owner_id: str,
        transaction_id: UUID,
        changes: TransactionEdit,
    ) -> Transaction:
        """
        Change a stored transaction and keep every ledger consistent.

        Order: load -> build and validate the new document -> reverse the
        original -> replace -> apply the new document's effects.
        Any input problem is raised before the first write.

        Raises:
            NotFoundError: Unknown transaction (or bank)
            InvalidInputError: The edit doesn't make sense for this transaction
            ReversalFailureError / PostingFailureError: A ledger write failed
        """
        async with self._locks.hold((owner_id, "transaction", transaction_id)):
            original = await self._transactions.get(owner_id, transaction_id)
            if original is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")

            item_count = len(original.items) if original.type == TransactionType.SALE else 0
            await self._ensure_valid(
                owner_id, self._validator.validate_edit(changes, original.type, item_count),
            )
            updated = await self._build_edited(original, changes)

            await self.reverse_effects(original)
            replaced = await self._transactions.replace(owner_id, transaction_id, updated)
            await self._apply_effects(replaced, effects_for(replaced), phase="apply")

        changed_fields = sorted(changes.model_fields_set - {"item_index"})
        await self._audit_logger.log_transaction_edited(original, replaced, changed_fields)
        logger.info(
            "Transaction edited",
            owner_id=owner_id,
            transaction_id=str(transaction_id),
            changed_fields=changed_fields,
        )
        return replaced

    async def _build_edited(self, original: Transaction, changes: TransactionEdit) -> Transaction:
        """Merge an edit into a copy of the original and validate the result."""
        owner_id = original.owner_id
        data = original.model_dump()

        if changes.was_set("description") and changes.description is not None:
            data["description"] = changes.description
        if changes.was_set("transaction_date") and changes.transaction_date is not None:
            data["transaction_date"] = changes.transaction_date
        if changes.was_set("bank_id"):
            await self._require_bank(owner_id, changes.bank_id)
            data["bank_id"] = changes.bank_id

        if original.type == TransactionType.SALE:
            await self._merge_sale_edit(original, changes, data)
        else:
            if changes.was_set("amount"):
                data["amount"] = as_decimal(changes.amount)
            if changes.was_set("category"):
                data["category"] = changes.category.strip()

        try:
            return TransactionAdapter.validate_python(data)
        except ValidationError as e:
            raise InvalidInputError.single("transaction", f"Edited transaction is invalid: {e}")

    async def _merge_sale_edit(
        self,
        original: SaleTransaction,
        changes: TransactionEdit,
        data: dict,
    ) -> None:
        owner_id = original.owner_id
        items = [item.model_copy() for item in original.items]
        items_changed = False

        if changes.was_set("items"):
            items = []
            for index, draft in enumerate(changes.items):
                if draft.is_service:
                    items.append(SaleItem(
                        product_name=draft.product_name,
                        quantity=whole_quantity(draft.quantity),
                        unit_price=as_decimal(draft.unit_price),
                        is_service=True,
                    ))
                    continue
                product = await self._inventory.find_by_exact_name(owner_id, draft.product_name)
                if product is None:
                    raise InvalidInputError.single(
                        f"items[{index}].product_name",
                        f'No product named "{draft.product_name}"',
                        "not_found",
                    )
                items.append(SaleItem(
                    product_id=product.id,
                    product_name=product.name,
                    quantity=whole_quantity(draft.quantity),
                    unit_price=as_decimal(draft.unit_price),
                    unit_cost_snapshot=product.average_cost,
                ))
            items_changed = True
        elif changes.was_set("quantity") or changes.was_set("unit_price"):
            updates = {}
            if changes.was_set("quantity"):
                updates["quantity"] = whole_quantity(changes.quantity)
            if changes.was_set("unit_price"):
                updates["unit_price"] = as_decimal(changes.unit_price)
            items[changes.item_index] = items[changes.item_index].model_copy(update=updates)
            items_changed = True

        customer_name = original.customer_name
        if changes.was_set("customer_name"):
            name = (changes.customer_name or "").strip()
            if name:
                customer = await self._customers.find_or_create(owner_id, name)
                data["customer_id"] = customer.id
                customer_name = customer.name
            else:
                data["customer_id"] = None
                customer_name = None
            data["customer_name"] = customer_name
            items_changed = True

        if changes.was_set("payment_method") and changes.payment_method is not None:
            data["payment_method"] = changes.payment_method
        if changes.was_set("due_date"):
            data["due_date"] = changes.due_date

        if data["payment_method"] == PaymentMethod.CREDIT and data.get("customer_id") is None:
            raise InvalidInputError.single(
                "customer_name", "A credit sale needs a customer name", "missing",
            )

        data["items"] = [item.model_dump() for item in items]
        data["amount"] = sum((item.line_total for item in items), Decimal("0"))
        if items_changed and not changes.was_set("description"):
            data["description"] = self._sale_description(items, customer_name)


# =============================================================================
# ERRORS
# =============================================================================

class ReconciliationRequiredError(Exception):
    """
    A ledger write failed after the transaction record changed.

    The books are inconsistent until someone reconciles by hand; the
    audit log holds the transaction id and the failing step.
    """

    def __init__(self, transaction_id: UUID, step_index: int, step: str, message: str = ""):
        self.transaction_id = transaction_id
        self.step_index = step_index
        self.step = step
        super().__init__(
            f"Transaction {transaction_id}: step {step_index} ({step}) failed: {message}"
        )


class ReversalFailureError(ReconciliationRequiredError):
    """Undoing an effect failed during delete or edit."""
    pass


class PostingFailureError(ReconciliationRequiredError):
    """Applying an effect failed after append or replace."""
    pass


# =============================================================================
# FACTORY
# =============================================================================

def create_app_components(
    settings: Optional[Settings] = None,
) -> tuple[AccountingOrchestrator, ReportAggregator, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Uses Google Sheets when `storage_backend` is "google_sheets" and the
    credentials work; otherwise keeps the books in memory.

    Returns:
        (orchestrator, reports, sheets_client)
    """
    settings = settings or get_settings()
    sheets_client = None
    storages = None

    if settings.app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            storages = create_google_sheets_storages(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("Google Sheets storage not configured", error=str(e))
            sheets_client = None
            storages = None

    if storages is None:
        storages = {
            "transactions": InMemoryTransactionStorage(),
            "products": InMemoryProductStorage(),
            "inventory_audit": InMemoryInventoryAuditStorage(),
            "customers": InMemoryAccountStorage("customer"),
            "banks": InMemoryAccountStorage("bank account"),
            "pending_sales": InMemoryPendingSaleStorage(),
            "audit": InMemoryAuditStorage(),
        }

    locks = KeyedLocks()
    validator = InputValidator(settings.app.max_transaction_amount)
    inventory = InventoryLedger(
        storages["products"],
        storages["inventory_audit"],
        locks=locks,
        validator=validator,
        default_reorder_threshold=settings.app.default_reorder_threshold,
    )
    customers = CustomerBalanceLedger(storages["customers"], locks=locks)
    banks = BankBalanceLedger(storages["banks"], locks=locks)

    orchestrator = AccountingOrchestrator(
        transactions=storages["transactions"],
        pending_sales=storages["pending_sales"],
        inventory=inventory,
        customers=customers,
        banks=banks,
        validator=validator,
        audit_logger=AuditLogger(storages["audit"]),
        locks=locks,
    )
    reports = ReportAggregator(storages["transactions"], inventory, customers, banks)

    return orchestrator, reports, sheets_client
