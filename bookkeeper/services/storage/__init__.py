"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and local runs. Both follow the same interfaces, so they are swappable.
"""

from bookkeeper.services.storage.interface import (
    AccountStorageInterface,
    AuditStorageInterface,
    ConnectionError,
    DuplicateNameError,
    InventoryAuditStorageInterface,
    NotFoundError,
    PendingSaleStorageInterface,
    ProductStorageInterface,
    StorageError,
    TransactionStorageInterface,
)
from bookkeeper.services.storage.memory import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryInventoryAuditStorage,
    InMemoryPendingSaleStorage,
    InMemoryProductStorage,
    InMemoryTransactionStorage,
)
from bookkeeper.services.storage.google_sheets import (
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsInventoryAuditStorage,
    GoogleSheetsPendingSaleStorage,
    GoogleSheetsProductStorage,
    GoogleSheetsTransactionStorage,
    create_google_sheets_storages,
)

__all__ = [
    # Interfaces
    "AccountStorageInterface",
    "AuditStorageInterface",
    "InventoryAuditStorageInterface",
    "PendingSaleStorageInterface",
    "ProductStorageInterface",
    "TransactionStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateNameError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAccountStorage",
    "InMemoryAuditStorage",
    "InMemoryInventoryAuditStorage",
    "InMemoryPendingSaleStorage",
    "InMemoryProductStorage",
    "InMemoryTransactionStorage",
    # Google Sheets implementation
    "GoogleSheetsAccountStorage",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsInventoryAuditStorage",
    "GoogleSheetsPendingSaleStorage",
    "GoogleSheetsProductStorage",
    "GoogleSheetsTransactionStorage",
    "create_google_sheets_storages",
]
