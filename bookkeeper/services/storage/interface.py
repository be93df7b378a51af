"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally simple - we're not building a full ORM.
Every method writes at most one document: there is no multi-document
transaction, and the orchestrator is written with that in mind.

OWNERSHIP: every method takes `owner_id` as its first argument and
never reads or writes another owner's documents.
"""

from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal
from typing import Generic, Optional, TypeVar
from uuid import UUID

from bookkeeper.models.accounts import LedgerAccount
from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.inventory import InventoryAuditEntry, Product
from bookkeeper.models.sale import PendingSale
from bookkeeper.models.transaction import Transaction, TransactionType


AccountT = TypeVar("AccountT", bound=LedgerAccount)


class TransactionStorageInterface(ABC):
    """
    The ledger store: one document per financial event.

    Documents are only validated structurally here; business rules
    belong to the orchestrator.
    """

    @abstractmethod
    async def append(self, owner_id: str, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Stamps the creation time and returns the stored copy.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        """Point lookup. Returns None if absent or owned by someone else."""
        pass

    @abstractmethod
    async def list_by_owner_and_range(
        self,
        owner_id: str,
        transaction_type: Optional[TransactionType],
        start: date,
        end: date,
    ) -> list[Transaction]:
        """
        Transactions dated within [start, end], oldest first.

        Args:
            owner_id: Business whose books are scanned
            transaction_type: Restrict to one type, or None for all
            start: First date included
            end: Last date included
        """
        pass

    @abstractmethod
    async def list_recent(self, owner_id: str, limit: int = 5) -> list[Transaction]:
        """Most recent transactions, newest first."""
        pass

    @abstractmethod
    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        """Delete a transaction. Returns False if nothing was deleted."""
        pass

    @abstractmethod
    async def replace(
        self,
        owner_id: str,
        transaction_id: UUID,
        new_document: Transaction,
    ) -> Transaction:
        """
        Overwrite a stored transaction, keeping its id.

        Raises:
            NotFoundError: If the transaction doesn't exist
        """
        pass


class ProductStorageInterface(ABC):
    """Products, unique per owner by case-insensitive name."""

    @abstractmethod
    async def insert(self, owner_id: str, product: Product) -> Product:
        """
        Raises:
            DuplicateNameError: If the owner already has a product of that name
        """
        pass

    @abstractmethod
    async def get(self, owner_id: str, product_id: UUID) -> Optional[Product]:
        pass

    @abstractmethod
    async def find_by_name(self, owner_id: str, name: str) -> Optional[Product]:
        """Case-insensitive exact name match."""
        pass

    @abstractmethod
    async def search_by_name(self, owner_id: str, text: str, limit: int) -> list[Product]:
        """Case-insensitive substring match, first `limit` hits."""
        pass

    @abstractmethod
    async def update(self, owner_id: str, product: Product) -> Product:
        """
        Raises:
            NotFoundError: If the product doesn't exist
        """
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[Product]:
        """All products, sorted by name."""
        pass


class InventoryAuditStorageInterface(ABC):
    """
    Inventory audit trail.

    Append-only - entries are never modified or deleted.
    """

    @abstractmethod
    async def append_entry(self, owner_id: str, entry: InventoryAuditEntry) -> InventoryAuditEntry:
        pass

    @abstractmethod
    async def list_by_product(self, owner_id: str, product_id: UUID) -> list[InventoryAuditEntry]:
        """Entries for one product in chronological order."""
        pass


class AccountStorageInterface(ABC, Generic[AccountT]):
    """
    Named running balances (customers, bank accounts).

    The only balance mutation is a signed increment, so two writers
    adding deltas never overwrite each other's work.
    """

    @abstractmethod
    async def insert(self, owner_id: str, account: AccountT) -> AccountT:
        """
        Raises:
            DuplicateNameError: If the owner already has an account of that name
        """
        pass

    @abstractmethod
    async def get(self, owner_id: str, account_id: UUID) -> Optional[AccountT]:
        pass

    @abstractmethod
    async def find_by_name(self, owner_id: str, name: str) -> Optional[AccountT]:
        """Case-insensitive exact name match."""
        pass

    @abstractmethod
    async def increment_balance(
        self,
        owner_id: str,
        account_id: UUID,
        amount: Decimal,
    ) -> AccountT:
        """
        Add a signed amount to the stored balance.

        Returns:
            The account after the change

        Raises:
            NotFoundError: If the account doesn't exist
        """
        pass

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[AccountT]:
        """All accounts, sorted by name."""
        pass


class PendingSaleStorageInterface(ABC):
    """Sales suspended while waiting for the caller to resolve an item."""

    @abstractmethod
    async def save(self, owner_id: str, pending: PendingSale) -> PendingSale:
        """Insert or overwrite by token."""
        pass

    @abstractmethod
    async def get(self, owner_id: str, token: UUID) -> Optional[PendingSale]:
        pass

    @abstractmethod
    async def delete(self, owner_id: str, token: UUID) -> bool:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        owner_id: str,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """One owner's events sharing a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """One owner's events for one entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        owner_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """One owner's most recent events, newest first."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateNameError(StorageError):
    """An entity with the same (owner, name) already exists."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
