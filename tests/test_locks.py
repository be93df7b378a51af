"""
Tests for per-key locking and concurrent ledger writes.

The product store used here yields to the event loop between reading a
product and writing it back, so unserialized writers would lose updates.
"""

import asyncio
import pytest
from decimal import Decimal

from bookkeeper.services.ledgers import KeyedLocks
from bookkeeper.services.storage import (
    InMemoryAccountStorage,
    InMemoryAuditStorage,
    InMemoryInventoryAuditStorage,
    InMemoryPendingSaleStorage,
    InMemoryProductStorage,
    InMemoryTransactionStorage,
)

from tests.conftest import OWNER


class SlowProductStorage(InMemoryProductStorage):
    """Yields after every read and records whether each write held the product lock."""

    def __init__(self, locks: KeyedLocks):
        super().__init__()
        self._keyed_locks = locks
        self.writes_under_lock: list[bool] = []

    async def get(self, owner_id, product_id):
        product = await super().get(owner_id, product_id)
        await asyncio.sleep(0)
        return product

    async def update(self, owner_id, product):
        self.writes_under_lock.append(
            self._keyed_locks.is_locked((owner_id, "product", product.id))
        )
        return await super().update(owner_id, product)


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def storages(locks) -> dict:
    return {
        "transactions": InMemoryTransactionStorage(),
        "products": SlowProductStorage(locks),
        "inventory_audit": InMemoryInventoryAuditStorage(),
        "customers": InMemoryAccountStorage("customer"),
        "banks": InMemoryAccountStorage("bank account"),
        "pending_sales": InMemoryPendingSaleStorage(),
        "audit": InMemoryAuditStorage(),
    }


class TestKeyedLocks:
    """Tests for KeyedLocks."""

    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        """A second holder waits until the first releases."""
        locks = KeyedLocks()
        key = (OWNER, "product", "soap")
        order = []

        async def worker(name: str):
            async with locks.hold(key):
                order.append(f"{name} in")
                await asyncio.sleep(0)
                order.append(f"{name} out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order == ["a in", "a out", "b in", "b out"]

    @pytest.mark.asyncio
    async def test_different_keys_do_not_contend(self):
        """Holding one key leaves the others free."""
        locks = KeyedLocks()
        async with locks.hold((OWNER, "product", "soap")):
            assert locks.is_locked((OWNER, "product", "soap"))
            assert not locks.is_locked((OWNER, "product", "rice"))
            async with locks.hold((OWNER, "product", "rice")):
                assert locks.is_locked((OWNER, "product", "rice"))

    @pytest.mark.asyncio
    async def test_overlapping_sets_do_not_deadlock(self):
        """Keys requested in opposite orders are taken in one order."""
        locks = KeyedLocks()
        first = (OWNER, "bank_account", "main")
        second = (OWNER, "product", "soap")

        async def worker(*keys):
            async with locks.hold(*keys):
                await asyncio.sleep(0)

        await asyncio.wait_for(
            asyncio.gather(worker(first, second), worker(second, first)),
            timeout=1,
        )

    @pytest.mark.asyncio
    async def test_released_keys_are_forgotten(self):
        """No lock outlives its last holder or waiter."""
        locks = KeyedLocks()
        key = (OWNER, "transaction", "t-1")

        async def worker():
            async with locks.hold(key):
                await asyncio.sleep(0)

        await asyncio.gather(worker(), worker(), worker())

        assert len(locks) == 0
        assert not locks.is_locked(key)

    @pytest.mark.asyncio
    async def test_cancelled_waiter_is_forgotten(self):
        """A waiter cancelled before acquiring leaves nothing behind."""
        locks = KeyedLocks()
        key = (OWNER, "product", "soap")

        async with locks.hold(key):
            waiter = asyncio.create_task(self._take(locks, key))
            await asyncio.sleep(0)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter

        assert len(locks) == 0

    @staticmethod
    async def _take(locks: KeyedLocks, key):
        async with locks.hold(key):
            pass


class TestConcurrentWorkflows:
    """Concurrent workflows touching the same documents."""

    @pytest.mark.asyncio
    async def test_concurrent_sales_of_one_product(self, orchestrator, inventory, banks, storages, locks):
        """Every sale's stock movement and bank credit lands exactly once."""
        soap = await orchestrator.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        bank = await orchestrator.create_bank_account(OWNER, "Main Account", Decimal("1000"))

        outcomes = await asyncio.gather(*[
            orchestrator.log_sale(
                OWNER,
                [{"product_name": "Soap", "quantity": 1, "unit_price": 80}],
                bank_id=bank.id,
            )
            for _ in range(8)
        ])

        assert all(o.transaction is not None for o in outcomes)
        assert (await inventory.get_product(OWNER, soap.id)).quantity == 2
        assert (await banks.get(OWNER, bank.id)).balance == Decimal("1640")
        assert storages["products"].writes_under_lock
        assert all(storages["products"].writes_under_lock)
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_concurrent_receipts_keep_average_cost(self, orchestrator, inventory):
        """Interleaved receipts still produce the sequential AVCO result."""
        soap = await orchestrator.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))

        await asyncio.gather(
            orchestrator.receive_stock(OWNER, "Soap", 10, Decimal("80"), Decimal("100")),
            orchestrator.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("100")),
        )

        product = await inventory.get_product(OWNER, soap.id)
        assert product.quantity == 30
        assert product.average_cost == Decimal("60")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
