"""
Audit Logger

DESIGN DECISION: Every change to the books is logged.
This provides:
1. Complete traceability
2. Enough context to reconcile by hand after a half-finished workflow
3. A history the owner can read back

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the workflow if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from bookkeeper.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from bookkeeper.models.inventory import Product, StockAlert, StockAlertKind
from bookkeeper.models.transaction import Transaction
from bookkeeper.models.validation import ValidationResult
from bookkeeper.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and owner visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("bookkeeper.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_created(self, transaction: Transaction) -> None:
        event = AuditEventBuilder.transaction_created(
            owner_id=transaction.owner_id,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
            logged_by=transaction.logged_by,
        )
        await self.log(event)

    async def log_transaction_edited(
        self,
        original: Transaction,
        updated: Transaction,
        changed_fields: list[str],
    ) -> None:
        event = AuditEventBuilder.transaction_edited(
            owner_id=updated.owner_id,
            transaction_id=updated.id,
            changed_fields=changed_fields,
            old_amount=str(original.amount),
            new_amount=str(updated.amount),
        )
        await self.log(event)

    async def log_transaction_deleted(self, transaction: Transaction) -> None:
        event = AuditEventBuilder.transaction_deleted(
            owner_id=transaction.owner_id,
            transaction_id=transaction.id,
            transaction_type=transaction.type.value,
            amount=str(transaction.amount),
        )
        await self.log(event)

    async def log_stock_received(self, product: Product, quantity_added: int) -> None:
        event = AuditEventBuilder.stock_received(
            owner_id=product.owner_id,
            product_id=product.id,
            product_name=product.name,
            quantity_added=quantity_added,
            average_cost=str(product.average_cost),
        )
        await self.log(event)

    async def log_stock_alert(
        self,
        owner_id: str,
        alert: StockAlert,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.stock_alert(
            owner_id=owner_id,
            product_id=alert.product_id,
            message=alert.message,
            quantity=alert.quantity,
            negative=alert.kind == StockAlertKind.NEGATIVE_STOCK,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_sale_suspended(
        self,
        owner_id: str,
        token: UUID,
        item_name: str,
        kind: str,
        candidate_count: int,
    ) -> None:
        event = AuditEventBuilder.sale_suspended(
            owner_id=owner_id,
            token=token,
            item_name=item_name,
            kind=kind,
            candidate_count=candidate_count,
        )
        await self.log(event)

    async def log_sale_resumed(self, owner_id: str, token: UUID, choice: str) -> None:
        await self.log(AuditEventBuilder.sale_resumed(owner_id, token, choice))

    async def log_sale_cancelled(self, owner_id: str, token: UUID) -> None:
        await self.log(AuditEventBuilder.sale_cancelled(owner_id, token))

    async def log_bank_account_created(
        self,
        owner_id: str,
        bank_id: UUID,
        name: str,
        opening_balance: Decimal,
    ) -> None:
        event = AuditEventBuilder.bank_account_created(
            owner_id=owner_id,
            bank_id=bank_id,
            name=name,
            opening_balance=str(opening_balance),
        )
        await self.log(event)

    async def log_validation_failed(self, owner_id: str, result: ValidationResult) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            owner_id=owner_id,
            operation=result.operation,
            issues=[issue.model_dump() for issue in result.issues],
        )
        await self.log(event)

    async def log_ledger_step_failed(
        self,
        owner_id: str,
        transaction_id: UUID,
        phase: str,
        step_index: int,
        step: str,
        error_message: str,
    ) -> None:
        """Log a ledger write that failed after the transaction record changed."""
        event = AuditEventBuilder.ledger_step_failed(
            owner_id=owner_id,
            transaction_id=transaction_id,
            phase=phase,
            step_index=step_index,
            step=step,
            error_message=error_message,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[str] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            owner_id=owner_id,
        )
        await self.log(event)
