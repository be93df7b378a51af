"""
Audit Models for Bookkeeper

Every change to the books is logged for audit purposes.
This provides:
1. Complete traceability of all ledger mutations
2. Enough context to reconcile by hand when a workflow fails halfway
3. Accountability (who logged what, on whose books)

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Transaction lifecycle
    TRANSACTION_CREATED = "transaction_created"
    TRANSACTION_EDITED = "transaction_edited"
    TRANSACTION_DELETED = "transaction_deleted"

    # Inventory
    STOCK_RECEIVED = "stock_received"
    LOW_STOCK = "low_stock"
    NEGATIVE_STOCK = "negative_stock"

    # Sale resolution
    SALE_SUSPENDED = "sale_suspended"
    SALE_RESUMED = "sale_resumed"
    SALE_CANCELLED = "sale_cancelled"

    # Accounts
    BANK_ACCOUNT_CREATED = "bank_account_created"

    # Failures
    VALIDATION_FAILED = "validation_failed"
    POSTING_FAILED = "posting_failed"
    REVERSAL_FAILED = "reversal_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every ledger mutation creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Whose books
    owner_id: Optional[str] = None

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'product')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one sale and its stock moves)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "owner_id": self.owner_id,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, owner_id, entity_type,
         entity_id, correlation_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.owner_id or "",
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_created(owner_id, txn_id, "SALE", "240")
        event = AuditEventBuilder.reversal_failed(owner_id, txn_id, 2, "bank", "boom")
    """

    @staticmethod
    def transaction_created(
        owner_id: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        logged_by: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=transaction_id,
            description=f"{transaction_type} recorded: {amount}",
            details={
                "transaction_type": transaction_type,
                "amount": amount,
                "logged_by": logged_by,
            },
        )

    @staticmethod
    def transaction_edited(
        owner_id: str,
        transaction_id: UUID,
        changed_fields: list[str],
        old_amount: str,
        new_amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_EDITED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=transaction_id,
            description=f"Transaction edited: {', '.join(changed_fields) or 'no fields'}",
            details={
                "changed_fields": changed_fields,
                "old_amount": old_amount,
                "new_amount": new_amount,
            },
        )

    @staticmethod
    def transaction_deleted(
        owner_id: str,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=transaction_id,
            description=f"{transaction_type} deleted and its effects reversed",
            details={
                "transaction_type": transaction_type,
                "amount": amount,
            },
        )

    @staticmethod
    def stock_received(
        owner_id: str,
        product_id: UUID,
        product_name: str,
        quantity_added: int,
        average_cost: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STOCK_RECEIVED,
            owner_id=owner_id,
            entity_type="product",
            entity_id=product_id,
            description=f"Received {quantity_added} x {product_name}",
            details={
                "quantity_added": quantity_added,
                "average_cost": average_cost,
            },
        )

    @staticmethod
    def stock_alert(
        owner_id: str,
        product_id: UUID,
        message: str,
        quantity: int,
        negative: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.NEGATIVE_STOCK if negative else AuditEventType.LOW_STOCK
            ),
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            entity_type="product",
            entity_id=product_id,
            correlation_id=correlation_id,
            description=message,
            details={"quantity": quantity},
        )

    @staticmethod
    def sale_suspended(
        owner_id: str,
        token: UUID,
        item_name: str,
        kind: str,
        candidate_count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALE_SUSPENDED,
            owner_id=owner_id,
            entity_type="pending_sale",
            entity_id=token,
            correlation_id=token,
            description=f'Sale waiting on "{item_name}" ({kind})',
            details={
                "item_name": item_name,
                "kind": kind,
                "candidate_count": candidate_count,
            },
        )

    @staticmethod
    def sale_resumed(
        owner_id: str,
        token: UUID,
        choice: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALE_RESUMED,
            owner_id=owner_id,
            entity_type="pending_sale",
            entity_id=token,
            correlation_id=token,
            description=f"Sale resumed with choice: {choice}",
            details={"choice": choice},
        )

    @staticmethod
    def sale_cancelled(owner_id: str, token: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SALE_CANCELLED,
            owner_id=owner_id,
            entity_type="pending_sale",
            entity_id=token,
            correlation_id=token,
            description="Pending sale cancelled",
        )

    @staticmethod
    def bank_account_created(
        owner_id: str,
        bank_id: UUID,
        name: str,
        opening_balance: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BANK_ACCOUNT_CREATED,
            owner_id=owner_id,
            entity_type="bank_account",
            entity_id=bank_id,
            description=f'Bank account "{name}" created',
            details={"opening_balance": opening_balance},
        )

    @staticmethod
    def validation_failed(
        owner_id: str,
        operation: str,
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            owner_id=owner_id,
            description=f"{operation} rejected with {len(issues)} issues",
            details={
                "operation": operation,
                "issues": issues,
            },
        )

    @staticmethod
    def ledger_step_failed(
        owner_id: str,
        transaction_id: UUID,
        phase: str,
        step_index: int,
        step: str,
        error_message: str,
    ) -> AuditEvent:
        """A ledger mutation failed after the transaction record was written."""
        event_type = (
            AuditEventType.REVERSAL_FAILED
            if phase == "reverse"
            else AuditEventType.POSTING_FAILED
        )
        return AuditEvent(
            event_type=event_type,
            severity=AuditSeverity.CRITICAL,
            owner_id=owner_id,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=transaction_id,
            description=f"Ledger {phase} failed at step {step_index}: {step}",
            error_code=event_type.value,
            error_message=error_message,
            details={
                "phase": phase,
                "step_index": step_index,
                "step": step,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        owner_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            owner_id=owner_id,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
