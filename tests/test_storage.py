"""
Tests for the storage backends.

The Google Sheets stores run against an in-process fake of the
worksheet API, so no credentials or network access are needed.
"""

import pytest
from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from bookkeeper.audit import AuditLogger
from bookkeeper.models import (
    AuditEventBuilder,
    BankAccount,
    ExpenseTransaction,
    PendingSale,
    Product,
    SaleItem,
    SaleItemDraft,
    SaleTransaction,
)
from bookkeeper.orchestrator import AccountingOrchestrator
from bookkeeper.services.ledgers import (
    BankBalanceLedger,
    CustomerBalanceLedger,
    InventoryLedger,
    KeyedLocks,
)
from bookkeeper.services.storage import (
    DuplicateNameError,
    GoogleSheetsAccountStorage,
    GoogleSheetsAuditStorage,
    GoogleSheetsPendingSaleStorage,
    GoogleSheetsProductStorage,
    GoogleSheetsTransactionStorage,
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    NotFoundError,
    create_google_sheets_storages,
)
from bookkeeper.validation import InputValidator

from tests.conftest import OTHER_OWNER, OWNER


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the document sheets."""

    def __init__(self, header: list[str]):
        self.rows = [list(header)]

    def get_all_values(self) -> list[list[str]]:
        return [list(row) for row in self.rows]

    def append_row(self, row, value_input_option=None):
        self.rows.append([str(cell) for cell in row])

    def update(self, values, range_name, value_input_option=None):
        row_number = int(range_name.split(":")[0][1:])
        self.rows[row_number - 1] = [str(cell) for cell in values[0]]

    def delete_rows(self, index: int):
        del self.rows[index - 1]


class FakeSheetsClient:
    """Stands in for GoogleSheetsClient; worksheets are created on first use."""

    def __init__(self):
        self.sheets: dict[str, FakeWorksheet] = {}
        self.settings = SimpleNamespace(
            transactions_sheet_name="Transactions",
            products_sheet_name="Products",
            inventory_audit_sheet_name="InventoryAudit",
            customers_sheet_name="Customers",
            bank_accounts_sheet_name="BankAccounts",
            pending_sales_sheet_name="PendingSales",
            audit_sheet_name="AuditLog",
        )

    def get_sheet(self, title, columns, rows=1000):
        if title not in self.sheets:
            self.sheets[title] = FakeWorksheet(columns)
        return self.sheets[title]


@pytest.fixture
def sheets_client() -> FakeSheetsClient:
    return FakeSheetsClient()


def expense(amount="25", day=1, **kwargs) -> ExpenseTransaction:
    return ExpenseTransaction(
        owner_id=OWNER,
        amount=Decimal(amount),
        category="Rent",
        transaction_date=date(2025, 3, day),
        **kwargs,
    )


class TestInMemoryTransactions:
    """Tests for InMemoryTransactionStorage."""

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self):
        """Mutating a returned document does not change storage."""
        storage = InMemoryTransactionStorage()
        stored = await storage.append(OWNER, expense())
        stored.description = "changed"

        assert (await storage.get(OWNER, stored.id)).description == ""

    @pytest.mark.asyncio
    async def test_replace_missing(self):
        """Replacing an unknown id raises NotFoundError."""
        storage = InMemoryTransactionStorage()
        with pytest.raises(NotFoundError):
            await storage.replace(OWNER, uuid4(), expense())

    @pytest.mark.asyncio
    async def test_owners_are_isolated(self):
        """One owner never sees another's records."""
        storage = InMemoryTransactionStorage()
        stored = await storage.append(OWNER, expense())

        assert await storage.get(OTHER_OWNER, stored.id) is None
        assert await storage.list_recent(OTHER_OWNER) == []


class TestGoogleSheetsTransactions:
    """Tests for GoogleSheetsTransactionStorage."""

    @pytest.mark.asyncio
    async def test_round_trip_keeps_variant(self, sheets_client):
        """A stored sale comes back as a SaleTransaction with its items."""
        storage = GoogleSheetsTransactionStorage(sheets_client)
        sale = SaleTransaction(
            owner_id=OWNER,
            amount=Decimal("240"),
            items=[SaleItem(
                product_id=uuid4(), product_name="Soap", quantity=3,
                unit_price=Decimal("80"), unit_cost_snapshot=Decimal("50"),
            )],
        )

        await storage.append(OWNER, sale)
        loaded = await storage.get(OWNER, sale.id)

        assert isinstance(loaded, SaleTransaction)
        assert loaded.items[0].unit_cost_snapshot == Decimal("50")
        row = sheets_client.sheets["Transactions"].rows[1]
        assert row[:3] == [str(sale.id), OWNER, "SALE"]

    @pytest.mark.asyncio
    async def test_range_and_order(self, sheets_client):
        """Range is inclusive and sorted by date."""
        storage = GoogleSheetsTransactionStorage(sheets_client)
        for day in [9, 2, 5]:
            await storage.append(OWNER, expense(day=day))

        found = await storage.list_by_owner_and_range(OWNER, None, date(2025, 3, 2), date(2025, 3, 5))
        assert [t.transaction_date.day for t in found] == [2, 5]

    @pytest.mark.asyncio
    async def test_replace_and_delete(self, sheets_client):
        """Replace rewrites the row in place; delete removes it."""
        storage = GoogleSheetsTransactionStorage(sheets_client)
        original = await storage.append(OWNER, expense())
        await storage.append(OWNER, expense(day=2))

        replaced = await storage.replace(
            OWNER, original.id, original.model_copy(update={"amount": Decimal("99")}),
        )
        assert replaced.amount == Decimal("99")
        assert (await storage.get(OWNER, original.id)).amount == Decimal("99")
        assert len(sheets_client.sheets["Transactions"].rows) == 3

        assert await storage.delete(OWNER, original.id) is True
        assert await storage.get(OWNER, original.id) is None
        assert await storage.delete(OWNER, original.id) is False

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped(self, sheets_client):
        """A hand-edited broken row does not break listings."""
        storage = GoogleSheetsTransactionStorage(sheets_client)
        await storage.append(OWNER, expense())
        sheets_client.sheets["Transactions"].rows.append(
            ["bad", OWNER, "EXPENSE", "", "{not json"],
        )

        assert len(await storage.list_recent(OWNER)) == 1


class TestGoogleSheetsProducts:
    """Tests for GoogleSheetsProductStorage."""

    @pytest.mark.asyncio
    async def test_duplicate_names_rejected(self, sheets_client):
        """Names are unique per owner, ignoring case."""
        storage = GoogleSheetsProductStorage(sheets_client)
        await storage.insert(OWNER, Product(owner_id=OWNER, name="Soap"))

        with pytest.raises(DuplicateNameError):
            await storage.insert(OWNER, Product(owner_id=OWNER, name="SOAP"))
        await storage.insert(OTHER_OWNER, Product(owner_id=OTHER_OWNER, name="Soap"))

    @pytest.mark.asyncio
    async def test_update_and_search(self, sheets_client):
        """Updates persist; search is a substring match."""
        storage = GoogleSheetsProductStorage(sheets_client)
        soap = await storage.insert(OWNER, Product(owner_id=OWNER, name="Bar Soap"))

        await storage.update(OWNER, soap.model_copy(update={"quantity": 12}))

        hits = await storage.search_by_name(OWNER, "soap", 3)
        assert [p.quantity for p in hits] == [12]
        assert await storage.search_by_name(OWNER, "   ", 3) == []

    @pytest.mark.asyncio
    async def test_update_missing(self, sheets_client):
        """Updating an unknown product raises NotFoundError."""
        storage = GoogleSheetsProductStorage(sheets_client)
        with pytest.raises(NotFoundError):
            await storage.update(OWNER, Product(owner_id=OWNER, name="Ghost"))


class TestGoogleSheetsAccountsAndPending:
    """Tests for account and pending sale sheets."""

    @pytest.mark.asyncio
    async def test_increment_balance(self, sheets_client):
        """Balances are read, adjusted and rewritten."""
        storage = GoogleSheetsAccountStorage(BankAccount, "BankAccounts", sheets_client)
        bank = await storage.insert(OWNER, BankAccount(owner_id=OWNER, name="Main", balance=Decimal("10")))

        updated = await storage.increment_balance(OWNER, bank.id, Decimal("-4.50"))

        assert updated.balance == Decimal("5.50")
        assert (await storage.get(OWNER, bank.id)).balance == Decimal("5.50")

    @pytest.mark.asyncio
    async def test_increment_unknown(self, sheets_client):
        """Unknown accounts raise NotFoundError."""
        storage = GoogleSheetsAccountStorage(BankAccount, "BankAccounts", sheets_client)
        with pytest.raises(NotFoundError):
            await storage.increment_balance(OWNER, uuid4(), Decimal("1"))

    @pytest.mark.asyncio
    async def test_pending_sale_saved_once(self, sheets_client):
        """Saving the same token twice keeps one row."""
        storage = GoogleSheetsPendingSaleStorage(sheets_client)
        pending = PendingSale(
            owner_id=OWNER,
            items=[SaleItemDraft(product_name="soap", quantity=Decimal("1"), unit_price=Decimal("5"))],
        )

        await storage.save(OWNER, pending)
        await storage.save(OWNER, pending.model_copy(update={"current_index": 0, "logged_by": "Ama"}))

        assert len(sheets_client.sheets["PendingSales"].rows) == 2
        assert (await storage.get(OWNER, pending.token)).logged_by == "Ama"
        assert await storage.delete(OWNER, pending.token) is True
        assert await storage.get(OWNER, pending.token) is None


class TestGoogleSheetsAudit:
    """Tests for GoogleSheetsAuditStorage."""

    @pytest.mark.asyncio
    async def test_events_round_trip(self, sheets_client):
        """Events written as rows are read back by correlation id."""
        storage = GoogleSheetsAuditStorage(sheets_client)
        txn_id = uuid4()
        event = AuditEventBuilder.transaction_created(OWNER, txn_id, "SALE", "240", "Owner")

        assert await storage.append_event(event) is True
        found = await storage.get_events_by_correlation_id(OWNER, txn_id)

        assert len(found) == 1
        assert found[0].event_id == event.event_id
        assert found[0].details["amount"] == "240"

    @pytest.mark.asyncio
    async def test_reads_are_scoped_to_owner(self, sheets_client):
        """Another business never sees these events."""
        storage = GoogleSheetsAuditStorage(sheets_client)
        txn_id = uuid4()
        await storage.append_event(
            AuditEventBuilder.transaction_created(OWNER, txn_id, "SALE", "240", "Owner")
        )

        assert await storage.get_events_by_correlation_id(OTHER_OWNER, txn_id) == []
        assert await storage.get_recent_events(OTHER_OWNER) == []
        assert len(await storage.get_recent_events(OWNER)) == 1


class TestInMemoryAudit:
    """Tests for InMemoryAuditStorage."""

    @pytest.mark.asyncio
    async def test_reads_are_scoped_to_owner(self):
        """Recent, entity and correlation reads only return the owner's events."""
        storage = InMemoryAuditStorage()
        txn_id = uuid4()
        await storage.append_event(
            AuditEventBuilder.transaction_created(OWNER, txn_id, "SALE", "240", "Owner")
        )
        await storage.append_event(
            AuditEventBuilder.transaction_created(OTHER_OWNER, uuid4(), "EXPENSE", "10", "Owner")
        )

        recent = await storage.get_recent_events(OWNER)

        assert [e.owner_id for e in recent] == [OWNER]
        assert await storage.get_events_by_correlation_id(OTHER_OWNER, txn_id) == []
        assert len(await storage.get_events_by_correlation_id(OWNER, txn_id)) == 1


class TestSheetsBackedEngine:
    """The whole engine over the Sheets stores."""

    @pytest.mark.asyncio
    async def test_sale_over_sheets(self, sheets_client):
        """Receive, sell and delete with every ledger kept in sheets."""
        storages = create_google_sheets_storages(sheets_client)
        locks = KeyedLocks()
        validator = InputValidator(max_amount=Decimal("1000000000"))
        inventory = InventoryLedger(
            storages["products"], storages["inventory_audit"],
            locks=locks, validator=validator, default_reorder_threshold=5,
        )
        banks = BankBalanceLedger(storages["banks"], locks=locks)
        orchestrator = AccountingOrchestrator(
            transactions=storages["transactions"],
            pending_sales=storages["pending_sales"],
            inventory=inventory,
            customers=CustomerBalanceLedger(storages["customers"], locks=locks),
            banks=banks,
            validator=validator,
            audit_logger=AuditLogger(storages["audit"]),
            locks=locks,
        )

        soap = await orchestrator.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        bank = await orchestrator.create_bank_account(OWNER, "Main", Decimal("0"))
        outcome = await orchestrator.log_sale(
            OWNER,
            [{"product_name": "soap", "quantity": 3, "unit_price": 80}],
            bank_id=bank.id,
        )

        assert (await inventory.get_product(OWNER, soap.id)).quantity == 7
        assert (await banks.get(OWNER, bank.id)).balance == Decimal("240")

        await orchestrator.delete_transaction(OWNER, outcome.transaction.id)

        assert (await inventory.get_product(OWNER, soap.id)).quantity == 10
        assert (await banks.get(OWNER, bank.id)).balance == Decimal("0")
        assert len(sheets_client.sheets["Transactions"].rows) == 1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
