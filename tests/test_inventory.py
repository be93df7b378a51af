"""
Tests for the inventory valuation ledger.

AVCO arithmetic, oversell handling and the stock audit trail.
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from bookkeeper.models import InventoryReason, Product, StockAlertKind
from bookkeeper.services.ledgers import InventoryLedger
from bookkeeper.services.ledgers.inventory import weighted_average_cost
from bookkeeper.services.storage import NotFoundError
from bookkeeper.validation import InvalidInputError

from tests.conftest import OTHER_OWNER, OWNER


class TestWeightedAverageCost:
    """Tests for the AVCO formula."""

    def test_blends_old_and_new_stock(self):
        """10 @ 50 plus 10 @ 70 averages to 60."""
        cost = weighted_average_cost(10, Decimal("50"), 10, Decimal("70"))
        assert cost == Decimal("60")

    def test_empty_stock_takes_new_cost(self):
        """Nothing on hand means the new cost is the average."""
        cost = weighted_average_cost(0, Decimal("0"), 4, Decimal("12.50"))
        assert cost == Decimal("12.50")

    def test_zero_denominator_falls_back_to_unit_cost(self):
        """Receiving exactly the oversold amount must not divide by zero."""
        cost = weighted_average_cost(-5, Decimal("50"), 5, Decimal("40"))
        assert cost == Decimal("40")

    def test_negative_result_falls_back_to_unit_cost(self):
        """Oversold stock cannot drag the average below zero."""
        cost = weighted_average_cost(-2, Decimal("100"), 3, Decimal("10"))
        assert cost == Decimal("10")


class TestReceiveStock:
    """Tests for InventoryLedger.receive_stock."""

    @pytest.mark.asyncio
    async def test_new_product_created(self, inventory):
        """First receipt creates the product at the unit cost."""
        product = await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))

        assert product.name == "Soap"
        assert product.quantity == 10
        assert product.average_cost == Decimal("50")
        assert product.selling_price == Decimal("80")
        assert product.reorder_threshold == 5

    @pytest.mark.asyncio
    async def test_second_receipt_recomputes_average(self, inventory):
        """AVCO blends the two purchases."""
        await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        product = await inventory.receive_stock(OWNER, "soap", 10, Decimal("70"), Decimal("90"))

        assert product.quantity == 20
        assert product.average_cost == Decimal("60")
        assert product.selling_price == Decimal("90")

    @pytest.mark.asyncio
    async def test_zero_quantity_overwrites_cost(self, inventory):
        """A receipt of nothing is a manual cost correction."""
        await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        product = await inventory.receive_stock(OWNER, "Soap", 0, Decimal("55"), Decimal("80"))

        assert product.quantity == 10
        assert product.average_cost == Decimal("55")

    @pytest.mark.asyncio
    async def test_receipt_after_exact_oversell(self, inventory):
        """Quantity back to zero, cost taken from the receipt."""
        soap = await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        await inventory.adjust_stock(OWNER, soap.id, -15, InventoryReason.SALE)

        product = await inventory.receive_stock(OWNER, "Soap", 5, Decimal("40"), Decimal("80"))

        assert product.quantity == 0
        assert product.average_cost == Decimal("40")

    @pytest.mark.asyncio
    async def test_threshold_only_changes_when_given(self, inventory):
        """Omitting the threshold keeps the stored one."""
        await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"), reorder_threshold=2)
        product = await inventory.receive_stock(OWNER, "Soap", 1, Decimal("50"), Decimal("80"))
        assert product.reorder_threshold == 2

    @pytest.mark.asyncio
    async def test_negative_quantity_rejected(self, inventory, storages):
        """Negative receipts are input errors and write nothing."""
        with pytest.raises(InvalidInputError):
            await inventory.receive_stock(OWNER, "Soap", -3, Decimal("50"), Decimal("80"))
        assert await storages["products"].list_by_owner(OWNER) == []

    @pytest.mark.asyncio
    async def test_fractional_quantity_rejected(self, inventory):
        """Stock is counted in whole units."""
        with pytest.raises(InvalidInputError) as exc:
            await inventory.receive_stock(OWNER, "Soap", Decimal("2.5"), Decimal("50"), Decimal("80"))
        assert exc.value.issues[0].issue_type == "not_whole"

    @pytest.mark.asyncio
    async def test_negative_cost_rejected(self, inventory):
        """Cost price cannot be negative."""
        with pytest.raises(InvalidInputError):
            await inventory.receive_stock(OWNER, "Soap", 3, Decimal("-1"), Decimal("80"))

    @pytest.mark.asyncio
    async def test_receipt_writes_audit_entry(self, inventory):
        """Every receipt leaves exactly one STOCK_RECEIVED row."""
        product = await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        await inventory.receive_stock(OWNER, "Soap", 0, Decimal("55"), Decimal("80"))

        history = await inventory.stock_history(OWNER, product.id)
        assert [e.reason for e in history] == ["STOCK_RECEIVED", "STOCK_RECEIVED"]
        assert [e.delta for e in history] == [10, 0]
        assert history[1].cost_at_time == Decimal("55")


class TestAdjustStock:
    """Tests for InventoryLedger.adjust_stock."""

    @pytest.mark.asyncio
    async def test_oversell_allowed(self, inventory):
        """Decrements below zero are recorded, not refused."""
        soap = await inventory.receive_stock(OWNER, "Soap", 2, Decimal("50"), Decimal("80"))
        product = await inventory.adjust_stock(OWNER, soap.id, -5, InventoryReason.SALE)

        assert product.quantity == -3
        assert product.average_cost == Decimal("50")

    @pytest.mark.asyncio
    async def test_adjust_keeps_cost_and_logs(self, inventory):
        """Adjustments record the current cost and the linked transaction."""
        soap = await inventory.receive_stock(OWNER, "Soap", 10, Decimal("50"), Decimal("80"))
        txn_id = uuid4()
        await inventory.adjust_stock(OWNER, soap.id, -3, "SALE", linked_transaction_id=txn_id)

        history = await inventory.stock_history(OWNER, soap.id)
        last = history[-1]
        assert last.delta == -3
        assert last.reason == "SALE"
        assert last.cost_at_time == Decimal("50")
        assert last.linked_transaction_id == txn_id

    @pytest.mark.asyncio
    async def test_unknown_product(self, inventory):
        """Adjusting a missing product raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await inventory.adjust_stock(OWNER, uuid4(), -1, InventoryReason.SALE)

    @pytest.mark.asyncio
    async def test_other_owner_cannot_see_product(self, inventory):
        """Products are scoped to their owner."""
        soap = await inventory.receive_stock(OWNER, "Soap", 1, Decimal("50"), Decimal("80"))
        with pytest.raises(NotFoundError):
            await inventory.adjust_stock(OTHER_OWNER, soap.id, -1, "SALE")


class TestProductLookup:
    """Tests for name lookups and find_or_create."""

    @pytest.mark.asyncio
    async def test_exact_match_is_case_insensitive(self, inventory):
        """'SOAP' finds 'Soap'."""
        await inventory.receive_stock(OWNER, "Soap", 1, Decimal("50"), Decimal("80"))
        product = await inventory.find_by_exact_name(OWNER, "  SOAP ")
        assert product is not None
        assert product.name == "Soap"

    @pytest.mark.asyncio
    async def test_fuzzy_match_is_substring(self, inventory):
        """'soap' suggests 'Bar Soap' and 'Soap Refill' but not 'Shampoo'."""
        for name in ["Bar Soap", "Soap Refill", "Shampoo"]:
            await inventory.receive_stock(OWNER, name, 1, Decimal("5"), Decimal("8"))

        matches = await inventory.find_by_fuzzy_name(OWNER, "soap")
        assert sorted(p.name for p in matches) == ["Bar Soap", "Soap Refill"]

    @pytest.mark.asyncio
    async def test_fuzzy_match_respects_limit(self, inventory):
        """No more than `limit` candidates come back."""
        for i in range(5):
            await inventory.receive_stock(OWNER, f"Rice {i}", 1, Decimal("5"), Decimal("8"))
        matches = await inventory.find_by_fuzzy_name(OWNER, "rice", limit=3)
        assert len(matches) == 3

    @pytest.mark.asyncio
    async def test_find_or_create_is_idempotent(self, inventory):
        """Second call returns the product made by the first."""
        first = await inventory.find_or_create(OWNER, "Candles")
        second = await inventory.find_or_create(OWNER, "candles")

        assert first.id == second.id
        assert first.quantity == 0
        assert first.average_cost == Decimal("0")
        assert len(await inventory.list_products(OWNER)) == 1


class TestStockAlerts:
    """Tests for stock_alert_for."""

    def test_no_alert_above_threshold(self):
        """Plenty of stock, no alert."""
        product = Product(owner_id=OWNER, name="Soap", quantity=7, reorder_threshold=5)
        assert InventoryLedger.stock_alert_for(product) is None

    def test_low_stock_alert(self):
        """At the threshold the alert is LOW_STOCK."""
        product = Product(owner_id=OWNER, name="Soap", quantity=5, reorder_threshold=5)
        alert = InventoryLedger.stock_alert_for(product)
        assert alert.kind == StockAlertKind.LOW_STOCK

    def test_negative_stock_alert(self):
        """Below zero the alert is NEGATIVE_STOCK."""
        product = Product(owner_id=OWNER, name="Soap", quantity=-1, reorder_threshold=5)
        alert = InventoryLedger.stock_alert_for(product)
        assert alert.kind == StockAlertKind.NEGATIVE_STOCK
        assert alert.quantity == -1


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
