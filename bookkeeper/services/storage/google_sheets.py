"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the hosted storage backend because:
1. Shop owners can view their books directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (fine for a small business)
- No multi-row transactions (the orchestrator orders its writes instead)
- Limited query capabilities (we filter in Python)

Every collection uses the same five-column layout: the document id, its
owner, a lookup key (case-folded name or linked id), the last write time
and the full document as JSON. The audit log keeps its own flat layout
so it stays readable in the spreadsheet.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Callable, Generic, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from bookkeeper.config import get_settings
from bookkeeper.models.accounts import BankAccount, Customer
from bookkeeper.models.audit import AuditEvent, AuditEventType, AuditSeverity
from bookkeeper.models.inventory import InventoryAuditEntry, Product
from bookkeeper.models.sale import PendingSale
from bookkeeper.models.transaction import (
    Transaction,
    TransactionAdapter,
    TransactionType,
)
from bookkeeper.services.storage.interface import (
    AccountStorageInterface,
    AccountT,
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


logger = structlog.get_logger("bookkeeper.storage")

# Column layout shared by every document sheet
DOCUMENT_COLUMNS = [
    "id",
    "owner_id",
    "key",
    "updated_at",
    "payload_json",
]

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
]

DocT = TypeVar("DocT")


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(
        self,
        title: str,
        columns: list[str],
        rows: int = 1000,
    ) -> gspread.Worksheet:
        """Get or create a worksheet, writing the header row on creation."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    @property
    def settings(self):
        return self._settings


class DocumentSheet(Generic[DocT]):
    """
    One collection stored as JSON documents, one per row.

    Rows for every owner live in the same worksheet; reads filter on
    the owner column in Python.
    """

    def __init__(
        self,
        client: GoogleSheetsClient,
        title: str,
        dump: Callable[[DocT], str],
        load: Callable[[str], DocT],
    ):
        self._client = client
        self._title = title
        self._dump = dump
        self._load = load

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, DOCUMENT_COLUMNS)

    def rows_for_owner(self, owner_id: str) -> list[tuple[int, list[str]]]:
        """(sheet row number, row) pairs belonging to one owner."""
        all_rows = self._sheet().get_all_values()[1:]  # Skip header
        matches = []
        for idx, row in enumerate(all_rows, start=2):  # Row 1 is header
            if len(row) >= len(DOCUMENT_COLUMNS) and row[1] == owner_id:
                matches.append((idx, row))
        return matches

    def load_all(self, owner_id: str) -> list[DocT]:
        docs = []
        for _, row in self.rows_for_owner(owner_id):
            try:
                docs.append(self._load(row[4]))
            except Exception as e:
                logger.warning(
                    "Skipping malformed row",
                    sheet=self._title,
                    row_id=row[0],
                    error=str(e),
                )
        return docs

    def find(self, owner_id: str, doc_id: str) -> Optional[tuple[int, DocT]]:
        for idx, row in self.rows_for_owner(owner_id):
            if row[0] == doc_id:
                return idx, self._load(row[4])
        return None

    def find_by_key(self, owner_id: str, key: str) -> Optional[DocT]:
        for _, row in self.rows_for_owner(owner_id):
            if row[2] == key:
                return self._load(row[4])
        return None

    def to_row(self, doc_id: str, owner_id: str, key: str, doc: DocT) -> list[str]:
        return [
            doc_id,
            owner_id,
            key,
            datetime.utcnow().isoformat(),
            self._dump(doc),
        ]

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append(self, doc_id: str, owner_id: str, key: str, doc: DocT) -> None:
        self._sheet().append_row(
            self.to_row(doc_id, owner_id, key, doc),
            value_input_option="RAW",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def overwrite(self, row_number: int, doc_id: str, owner_id: str, key: str, doc: DocT) -> None:
        self._sheet().update(
            values=[self.to_row(doc_id, owner_id, key, doc)],
            range_name=f"A{row_number}:E{row_number}",
            value_input_option="RAW",
        )

    def delete_row(self, row_number: int) -> None:
        self._sheet().delete_rows(row_number)


def _model_loader(model_cls: type[BaseModel]) -> Callable[[str], BaseModel]:
    return model_cls.model_validate_json


def _model_dump(doc: BaseModel) -> str:
    return doc.model_dump_json()


class GoogleSheetsTransactionStorage(TransactionStorageInterface):
    """
    Google Sheets implementation of the ledger store.

    The lookup key column holds the transaction type so the sheet can
    be filtered by hand.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._docs: DocumentSheet[Transaction] = DocumentSheet(
            self._client,
            self._client.settings.transactions_sheet_name,
            dump=lambda t: t.model_dump_json(),
            load=TransactionAdapter.validate_json,
        )

    async def append(self, owner_id: str, transaction: Transaction) -> Transaction:
        try:
            stored = transaction.model_copy(
                update={"owner_id": owner_id, "created_at": datetime.utcnow()}
            )
            self._docs.append(str(stored.id), owner_id, stored.type.value, stored)
            return stored
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        try:
            found = self._docs.find(owner_id, str(transaction_id))
            return found[1] if found else None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def list_by_owner_and_range(
        self,
        owner_id: str,
        transaction_type: Optional[TransactionType],
        start: date,
        end: date,
    ) -> list[Transaction]:
        try:
            docs = [
                doc for doc in self._docs.load_all(owner_id)
                if start <= doc.transaction_date <= end
                and (transaction_type is None or doc.type == transaction_type)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        docs.sort(key=lambda t: (t.transaction_date, t.created_at))
        return docs

    async def list_recent(self, owner_id: str, limit: int = 5) -> list[Transaction]:
        try:
            docs = self._docs.load_all(owner_id)
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        docs.sort(key=lambda t: (t.transaction_date, t.created_at), reverse=True)
        return docs[:limit]

    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        try:
            found = self._docs.find(owner_id, str(transaction_id))
            if found is None:
                return False
            self._docs.delete_row(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")

    async def replace(
        self,
        owner_id: str,
        transaction_id: UUID,
        new_document: Transaction,
    ) -> Transaction:
        try:
            found = self._docs.find(owner_id, str(transaction_id))
            if found is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            stored = new_document.model_copy(
                update={
                    "id": transaction_id,
                    "owner_id": owner_id,
                    "updated_at": datetime.utcnow(),
                }
            )
            self._docs.overwrite(
                found[0], str(transaction_id), owner_id, stored.type.value, stored
            )
            return stored
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to replace transaction: {e}")


class GoogleSheetsProductStorage(ProductStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._docs: DocumentSheet[Product] = DocumentSheet(
            self._client,
            self._client.settings.products_sheet_name,
            dump=_model_dump,
            load=_model_loader(Product),
        )

    async def insert(self, owner_id: str, product: Product) -> Product:
        stored = product.model_copy(update={"owner_id": owner_id})
        try:
            if self._docs.find_by_key(owner_id, stored.name_key):
                raise DuplicateNameError(f'A product named "{stored.name}" already exists.')
            self._docs.append(str(stored.id), owner_id, stored.name_key, stored)
            return stored
        except DuplicateNameError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save product: {e}")

    async def get(self, owner_id: str, product_id: UUID) -> Optional[Product]:
        try:
            found = self._docs.find(owner_id, str(product_id))
            return found[1] if found else None
        except Exception as e:
            raise StorageError(f"Failed to get product: {e}")

    async def find_by_name(self, owner_id: str, name: str) -> Optional[Product]:
        try:
            return self._docs.find_by_key(owner_id, name.strip().casefold())
        except Exception as e:
            raise StorageError(f"Failed to look up product: {e}")

    async def search_by_name(self, owner_id: str, text: str, limit: int) -> list[Product]:
        needle = text.strip().casefold()
        if not needle:
            return []
        try:
            hits = [p for p in self._docs.load_all(owner_id) if needle in p.name_key]
        except Exception as e:
            raise StorageError(f"Failed to search products: {e}")
        return hits[:limit]

    async def update(self, owner_id: str, product: Product) -> Product:
        try:
            found = self._docs.find(owner_id, str(product.id))
            if found is None:
                raise NotFoundError(f"Product not found: {product.id}")
            stored = product.model_copy(
                update={"owner_id": owner_id, "updated_at": datetime.utcnow()}
            )
            self._docs.overwrite(found[0], str(stored.id), owner_id, stored.name_key, stored)
            return stored
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update product: {e}")

    async def list_by_owner(self, owner_id: str) -> list[Product]:
        try:
            docs = self._docs.load_all(owner_id)
        except Exception as e:
            raise StorageError(f"Failed to list products: {e}")
        return sorted(docs, key=lambda p: p.name_key)


class GoogleSheetsInventoryAuditStorage(InventoryAuditStorageInterface):
    """
    Inventory audit trail. The key column holds the linked transaction
    id (blank for receipts and manual adjustments).
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._docs: DocumentSheet[InventoryAuditEntry] = DocumentSheet(
            self._client,
            self._client.settings.inventory_audit_sheet_name,
            dump=_model_dump,
            load=_model_loader(InventoryAuditEntry),
        )

    async def append_entry(self, owner_id: str, entry: InventoryAuditEntry) -> InventoryAuditEntry:
        stored = entry.model_copy(update={"owner_id": owner_id})
        key = str(stored.linked_transaction_id) if stored.linked_transaction_id else ""
        try:
            self._docs.append(str(stored.id), owner_id, key, stored)
        except Exception as e:
            raise StorageError(f"Failed to write inventory audit entry: {e}")
        return stored

    async def list_by_product(self, owner_id: str, product_id: UUID) -> list[InventoryAuditEntry]:
        try:
            entries = [e for e in self._docs.load_all(owner_id) if e.product_id == product_id]
        except Exception as e:
            raise StorageError(f"Failed to read inventory audit: {e}")
        return sorted(entries, key=lambda e: e.timestamp)


class GoogleSheetsAccountStorage(AccountStorageInterface[AccountT], Generic[AccountT]):
    """
    Customers or bank accounts, depending on the model class given.

    increment_balance reads and rewrites the row in one synchronous
    sequence; callers serialise writers per account with the ledger
    locks.
    """

    def __init__(
        self,
        model_cls: type[AccountT],
        sheet_name: str,
        client: Optional[GoogleSheetsClient] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._kind = "customer" if model_cls is Customer else "bank account"
        self._docs: DocumentSheet[AccountT] = DocumentSheet(
            self._client,
            sheet_name,
            dump=_model_dump,
            load=_model_loader(model_cls),
        )

    async def insert(self, owner_id: str, account: AccountT) -> AccountT:
        stored = account.model_copy(update={"owner_id": owner_id})
        try:
            if self._docs.find_by_key(owner_id, stored.name_key):
                raise DuplicateNameError(
                    f'A {self._kind} named "{stored.name}" already exists.'
                )
            self._docs.append(str(stored.id), owner_id, stored.name_key, stored)
            return stored
        except DuplicateNameError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save {self._kind}: {e}")

    async def get(self, owner_id: str, account_id: UUID) -> Optional[AccountT]:
        try:
            found = self._docs.find(owner_id, str(account_id))
            return found[1] if found else None
        except Exception as e:
            raise StorageError(f"Failed to get {self._kind}: {e}")

    async def find_by_name(self, owner_id: str, name: str) -> Optional[AccountT]:
        try:
            return self._docs.find_by_key(owner_id, name.strip().casefold())
        except Exception as e:
            raise StorageError(f"Failed to look up {self._kind}: {e}")

    async def increment_balance(
        self,
        owner_id: str,
        account_id: UUID,
        amount: Decimal,
    ) -> AccountT:
        try:
            found = self._docs.find(owner_id, str(account_id))
            if found is None:
                raise NotFoundError(f"{self._kind.capitalize()} not found: {account_id}")
            row_number, account = found
            updated = account.model_copy(
                update={
                    "balance": account.balance + amount,
                    "updated_at": datetime.utcnow(),
                }
            )
            self._docs.overwrite(row_number, str(account_id), owner_id, updated.name_key, updated)
            return updated
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {self._kind} balance: {e}")

    async def list_by_owner(self, owner_id: str) -> list[AccountT]:
        try:
            docs = self._docs.load_all(owner_id)
        except Exception as e:
            raise StorageError(f"Failed to list {self._kind}s: {e}")
        return sorted(docs, key=lambda a: a.name_key)


class GoogleSheetsPendingSaleStorage(PendingSaleStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._docs: DocumentSheet[PendingSale] = DocumentSheet(
            self._client,
            self._client.settings.pending_sales_sheet_name,
            dump=_model_dump,
            load=_model_loader(PendingSale),
        )

    async def save(self, owner_id: str, pending: PendingSale) -> PendingSale:
        stored = pending.model_copy(update={"owner_id": owner_id})
        token = str(stored.token)
        try:
            found = self._docs.find(owner_id, token)
            if found is None:
                self._docs.append(token, owner_id, "", stored)
            else:
                self._docs.overwrite(found[0], token, owner_id, "", stored)
            return stored
        except Exception as e:
            raise StorageError(f"Failed to save pending sale: {e}")

    async def get(self, owner_id: str, token: UUID) -> Optional[PendingSale]:
        try:
            found = self._docs.find(owner_id, str(token))
            return found[1] if found else None
        except Exception as e:
            raise StorageError(f"Failed to get pending sale: {e}")

    async def delete(self, owner_id: str, token: UUID) -> bool:
        try:
            found = self._docs.find(owner_id, str(token))
            if found is None:
                return False
            self._docs.delete_row(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete pending sale: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
        )

    def _load_events(self, keep: Callable[[list], bool]) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0] or not keep(row):
                continue
            try:
                events.append(self._row_to_event(row))
            except Exception:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning(
                "Failed to write audit event",
                event_id=str(event.event_id),
                error=str(e),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        owner_id: str,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = self._load_events(
                lambda row: (
                    len(row) > 7
                    and row[4] == owner_id
                    and row[7] == str(correlation_id)
                )
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_events_by_entity(
        self,
        owner_id: str,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            events = self._load_events(
                lambda row: (
                    len(row) > 6
                    and row[4] == owner_id
                    and row[5] == entity_type
                    and row[6] == str(entity_id)
                )
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        owner_id: str,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._load_events(lambda row: len(row) > 4 and row[4] == owner_id)
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]


def create_google_sheets_storages(client: Optional[GoogleSheetsClient] = None) -> dict:
    """Build every Sheets-backed store over one shared client."""
    client = client or GoogleSheetsClient()
    settings = client.settings
    return {
        "transactions": GoogleSheetsTransactionStorage(client),
        "products": GoogleSheetsProductStorage(client),
        "inventory_audit": GoogleSheetsInventoryAuditStorage(client),
        "customers": GoogleSheetsAccountStorage(
            Customer, settings.customers_sheet_name, client
        ),
        "banks": GoogleSheetsAccountStorage(
            BankAccount, settings.bank_accounts_sheet_name, client
        ),
        "pending_sales": GoogleSheetsPendingSaleStorage(client),
        "audit": GoogleSheetsAuditStorage(client),
    }
