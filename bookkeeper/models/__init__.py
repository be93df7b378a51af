"""
Data Models Package

This package contains all Pydantic models used in Bookkeeper.
All data flowing through the engine must conform to these schemas.
"""

from bookkeeper.models.accounts import (
    BankAccount,
    Customer,
    LedgerAccount,
)
from bookkeeper.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from bookkeeper.models.inventory import (
    BulkImportResult,
    InventoryAuditEntry,
    InventoryReason,
    Product,
    StockAlert,
    StockAlertKind,
    StockReceipt,
)
from bookkeeper.models.reports import (
    CategoryTotal,
    CogsReport,
    DashboardStats,
    DueCreditSale,
    ExpenseReport,
    InventoryReport,
    ProfitAndLoss,
    SalesReport,
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

__all__ = [
    # Accounts
    "BankAccount",
    "Customer",
    "LedgerAccount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Inventory
    "BulkImportResult",
    "InventoryAuditEntry",
    "InventoryReason",
    "Product",
    "StockAlert",
    "StockAlertKind",
    "StockReceipt",
    # Reports
    "CategoryTotal",
    "CogsReport",
    "DashboardStats",
    "DueCreditSale",
    "ExpenseReport",
    "InventoryReport",
    "ProfitAndLoss",
    "SalesReport",
    # Sale sessions
    "DisambiguationRequest",
    "PendingSale",
    "ProductCandidate",
    "ResolutionChoice",
    "ResolutionKind",
    "SaleOutcome",
    "SaleStatus",
    # Transactions
    "CustomerPaymentTransaction",
    "ExpenseTransaction",
    "PaymentMethod",
    "SaleItem",
    "SaleItemDraft",
    "SaleTransaction",
    "Transaction",
    "TransactionAdapter",
    "TransactionEdit",
    "TransactionType",
    # Validation
    "ValidationIssue",
    "ValidationResult",
]
