"""
In-Memory Storage Implementation

Used for tests and for running the engine locally without Google
credentials. Documents are kept per owner in plain dicts; every read
and write goes through a deep copy so callers can never mutate stored
state behind the storage layer's back.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Generic, Optional
from uuid import UUID

from bookkeeper.models.audit import AuditEvent
from bookkeeper.models.inventory import InventoryAuditEntry, Product
from bookkeeper.models.sale import PendingSale
from bookkeeper.models.transaction import Transaction, TransactionType
from bookkeeper.services.storage.interface import (
    AccountStorageInterface,
    AccountT,
    AuditStorageInterface,
    DuplicateNameError,
    InventoryAuditStorageInterface,
    NotFoundError,
    PendingSaleStorageInterface,
    ProductStorageInterface,
    TransactionStorageInterface,
)


class InMemoryTransactionStorage(TransactionStorageInterface):
    """Ledger store backed by a dict per owner."""

    def __init__(self):
        self._docs: dict[str, dict[UUID, Transaction]] = {}

    def _owner(self, owner_id: str) -> dict[UUID, Transaction]:
        return self._docs.setdefault(owner_id, {})

    async def append(self, owner_id: str, transaction: Transaction) -> Transaction:
        stored = transaction.model_copy(
            update={"owner_id": owner_id, "created_at": datetime.utcnow()},
            deep=True,
        )
        self._owner(owner_id)[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        doc = self._owner(owner_id).get(transaction_id)
        return doc.model_copy(deep=True) if doc else None

    async def list_by_owner_and_range(
        self,
        owner_id: str,
        transaction_type: Optional[TransactionType],
        start: date,
        end: date,
    ) -> list[Transaction]:
        matches = [
            doc for doc in self._owner(owner_id).values()
            if start <= doc.transaction_date <= end
            and (transaction_type is None or doc.type == transaction_type)
        ]
        matches.sort(key=lambda t: (t.transaction_date, t.created_at))
        return [doc.model_copy(deep=True) for doc in matches]

    async def list_recent(self, owner_id: str, limit: int = 5) -> list[Transaction]:
        docs = sorted(
            self._owner(owner_id).values(),
            key=lambda t: (t.transaction_date, t.created_at),
            reverse=True,
        )
        return [doc.model_copy(deep=True) for doc in docs[:limit]]

    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        return self._owner(owner_id).pop(transaction_id, None) is not None

    async def replace(
        self,
        owner_id: str,
        transaction_id: UUID,
        new_document: Transaction,
    ) -> Transaction:
        docs = self._owner(owner_id)
        if transaction_id not in docs:
            raise NotFoundError(f"Transaction not found: {transaction_id}")
        stored = new_document.model_copy(
            update={
                "id": transaction_id,
                "owner_id": owner_id,
                "updated_at": datetime.utcnow(),
            },
            deep=True,
        )
        docs[transaction_id] = stored
        return stored.model_copy(deep=True)


class InMemoryProductStorage(ProductStorageInterface):

    def __init__(self):
        self._docs: dict[str, dict[UUID, Product]] = {}

    def _owner(self, owner_id: str) -> dict[UUID, Product]:
        return self._docs.setdefault(owner_id, {})

    async def insert(self, owner_id: str, product: Product) -> Product:
        if await self.find_by_name(owner_id, product.name):
            raise DuplicateNameError(f'A product named "{product.name}" already exists.')
        stored = product.model_copy(update={"owner_id": owner_id}, deep=True)
        self._owner(owner_id)[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get(self, owner_id: str, product_id: UUID) -> Optional[Product]:
        doc = self._owner(owner_id).get(product_id)
        return doc.model_copy(deep=True) if doc else None

    async def find_by_name(self, owner_id: str, name: str) -> Optional[Product]:
        key = name.strip().casefold()
        for doc in self._owner(owner_id).values():
            if doc.name_key == key:
                return doc.model_copy(deep=True)
        return None

    async def search_by_name(self, owner_id: str, text: str, limit: int) -> list[Product]:
        needle = text.strip().casefold()
        hits = [
            doc.model_copy(deep=True)
            for doc in self._owner(owner_id).values()
            if needle and needle in doc.name_key
        ]
        return hits[:limit]

    async def update(self, owner_id: str, product: Product) -> Product:
        docs = self._owner(owner_id)
        if product.id not in docs:
            raise NotFoundError(f"Product not found: {product.id}")
        stored = product.model_copy(
            update={"owner_id": owner_id, "updated_at": datetime.utcnow()},
            deep=True,
        )
        docs[product.id] = stored
        return stored.model_copy(deep=True)

    async def list_by_owner(self, owner_id: str) -> list[Product]:
        docs = sorted(self._owner(owner_id).values(), key=lambda p: p.name_key)
        return [doc.model_copy(deep=True) for doc in docs]


class InMemoryInventoryAuditStorage(InventoryAuditStorageInterface):

    def __init__(self):
        self._entries: dict[str, list[InventoryAuditEntry]] = {}

    async def append_entry(self, owner_id: str, entry: InventoryAuditEntry) -> InventoryAuditEntry:
        stored = entry.model_copy(update={"owner_id": owner_id})
        self._entries.setdefault(owner_id, []).append(stored)
        return stored

    async def list_by_product(self, owner_id: str, product_id: UUID) -> list[InventoryAuditEntry]:
        return [e for e in self._entries.get(owner_id, []) if e.product_id == product_id]


class InMemoryAccountStorage(AccountStorageInterface[AccountT], Generic[AccountT]):
    """Serves both customers and bank accounts."""

    def __init__(self, kind: str = "account"):
        self._kind = kind
        self._docs: dict[str, dict[UUID, AccountT]] = {}

    def _owner(self, owner_id: str) -> dict[UUID, AccountT]:
        return self._docs.setdefault(owner_id, {})

    async def insert(self, owner_id: str, account: AccountT) -> AccountT:
        if await self.find_by_name(owner_id, account.name):
            raise DuplicateNameError(
                f'A {self._kind} named "{account.name}" already exists.'
            )
        stored = account.model_copy(update={"owner_id": owner_id}, deep=True)
        self._owner(owner_id)[stored.id] = stored
        return stored.model_copy(deep=True)

    async def get(self, owner_id: str, account_id: UUID) -> Optional[AccountT]:
        doc = self._owner(owner_id).get(account_id)
        return doc.model_copy(deep=True) if doc else None

    async def find_by_name(self, owner_id: str, name: str) -> Optional[AccountT]:
        key = name.strip().casefold()
        for doc in self._owner(owner_id).values():
            if doc.name_key == key:
                return doc.model_copy(deep=True)
        return None

    async def increment_balance(
        self,
        owner_id: str,
        account_id: UUID,
        amount: Decimal,
    ) -> AccountT:
        docs = self._owner(owner_id)
        doc = docs.get(account_id)
        if doc is None:
            raise NotFoundError(f"{self._kind.capitalize()} not found: {account_id}")
        updated = doc.model_copy(
            update={"balance": doc.balance + amount, "updated_at": datetime.utcnow()}
        )
        docs[account_id] = updated
        return updated.model_copy(deep=True)

    async def list_by_owner(self, owner_id: str) -> list[AccountT]:
        docs = sorted(self._owner(owner_id).values(), key=lambda a: a.name_key)
        return [doc.model_copy(deep=True) for doc in docs]


class InMemoryPendingSaleStorage(PendingSaleStorageInterface):

    def __init__(self):
        self._docs: dict[str, dict[UUID, PendingSale]] = {}

    async def save(self, owner_id: str, pending: PendingSale) -> PendingSale:
        stored = pending.model_copy(update={"owner_id": owner_id}, deep=True)
        self._docs.setdefault(owner_id, {})[stored.token] = stored
        return stored.model_copy(deep=True)

    async def get(self, owner_id: str, token: UUID) -> Optional[PendingSale]:
        doc = self._docs.get(owner_id, {}).get(token)
        return doc.model_copy(deep=True) if doc else None

    async def delete(self, owner_id: str, token: UUID) -> bool:
        return self._docs.get(owner_id, {}).pop(token, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def _owned(self, owner_id: str) -> list[AuditEvent]:
        return [e for e in self._events if e.owner_id == owner_id]

    async def get_events_by_correlation_id(self, owner_id: str, correlation_id: UUID) -> list[AuditEvent]:
        events = [e for e in self._owned(owner_id) if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self, owner_id: str, entity_type: str, entity_id: UUID,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._owned(owner_id)
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(self, owner_id: str, limit: int = 100) -> list[AuditEvent]:
        return sorted(self._owned(owner_id), key=lambda e: e.timestamp, reverse=True)[:limit]
