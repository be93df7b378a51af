"""Services package."""

from bookkeeper.services.ledgers import (
    BankBalanceLedger,
    CustomerBalanceLedger,
    InventoryLedger,
    KeyedLocks,
)
from bookkeeper.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateNameError,
    GoogleSheetsClient,
    NotFoundError,
    StorageError,
    TransactionStorageInterface,
)

__all__ = [
    # Ledgers
    "BankBalanceLedger",
    "CustomerBalanceLedger",
    "InventoryLedger",
    "KeyedLocks",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateNameError",
    "GoogleSheetsClient",
    "NotFoundError",
    "StorageError",
    "TransactionStorageInterface",
]
