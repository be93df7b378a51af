"""
Shared fixtures: a complete engine over in-memory storage.

Every test gets fresh storage, so nothing leaks between tests.
"""

from decimal import Decimal

import pytest

from bookkeeper.audit import AuditLogger
from bookkeeper.orchestrator import AccountingOrchestrator
from bookkeeper.queries import ReportAggregator
from bookkeeper.services.ledgers import (
    BankBalanceLedger,
    CustomerBalanceLedger,
    InventoryLedger,
    KeyedLocks,
)
from bookkeeper.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryInventoryAuditStorage,
    InMemoryPendingSaleStorage,
    InMemoryProductStorage,
    InMemoryTransactionStorage,
)
from bookkeeper.validation import InputValidator


OWNER = "shop-001"
OTHER_OWNER = "shop-002"


@pytest.fixture
def owner_id() -> str:
    return OWNER


@pytest.fixture
def storages() -> dict:
    return {
        "transactions": InMemoryTransactionStorage(),
        "products": InMemoryProductStorage(),
        "inventory_audit": InMemoryInventoryAuditStorage(),
        "customers": InMemoryAccountStorage("customer"),
        "banks": InMemoryAccountStorage("bank account"),
        "pending_sales": InMemoryPendingSaleStorage(),
        "audit": InMemoryAuditStorage(),
    }


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def validator() -> InputValidator:
    return InputValidator(max_amount=Decimal("1000000000"))


@pytest.fixture
def inventory(storages, locks, validator) -> InventoryLedger:
    return InventoryLedger(
        storages["products"],
        storages["inventory_audit"],
        locks=locks,
        validator=validator,
        default_reorder_threshold=5,
    )


@pytest.fixture
def customers(storages, locks) -> CustomerBalanceLedger:
    return CustomerBalanceLedger(storages["customers"], locks=locks)


@pytest.fixture
def banks(storages, locks) -> BankBalanceLedger:
    return BankBalanceLedger(storages["banks"], locks=locks)


@pytest.fixture
def orchestrator(storages, inventory, customers, banks, validator, locks) -> AccountingOrchestrator:
    return AccountingOrchestrator(
        transactions=storages["transactions"],
        pending_sales=storages["pending_sales"],
        inventory=inventory,
        customers=customers,
        banks=banks,
        validator=validator,
        audit_logger=AuditLogger(storages["audit"]),
        locks=locks,
    )


@pytest.fixture
def reports(storages, inventory, customers, banks) -> ReportAggregator:
    return ReportAggregator(storages["transactions"], inventory, customers, banks)
