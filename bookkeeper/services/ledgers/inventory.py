"""
Inventory Valuation Ledger

Tracks stock on hand and weighted-average cost (AVCO) per product.

DESIGN DECISION: average_cost only moves when stock is received.
Sales and reversals change quantity at the current cost, so the cost
snapshot taken by a sale stays meaningful. Every quantity change writes
one InventoryAuditEntry.

Oversell is allowed: quantity can go negative and adjust_stock never
refuses a decrement.
"""

from decimal import Decimal
from typing import Optional, Union
from uuid import UUID

import structlog

from bookkeeper.config import get_settings
from bookkeeper.models.inventory import (
    InventoryAuditEntry,
    InventoryReason,
    Product,
    StockAlert,
    StockAlertKind,
)
from bookkeeper.services.ledgers.locks import KeyedLocks
from bookkeeper.services.storage.interface import (
    InventoryAuditStorageInterface,
    NotFoundError,
    ProductStorageInterface,
)
from bookkeeper.validation.validator import InputValidator, as_decimal, whole_quantity


def weighted_average_cost(
    old_quantity: int,
    old_cost: Decimal,
    quantity_added: int,
    unit_cost: Decimal,
) -> Decimal:
    """
    New average cost after receiving stock.

    Falls back to unit_cost when earlier oversells leave nothing (or
    less than nothing) to average against.
    """
    denominator = old_quantity + quantity_added
    if denominator <= 0:
        return unit_cost
    cost = (old_quantity * old_cost + quantity_added * unit_cost) / denominator
    if cost < 0:
        return unit_cost
    return cost


class InventoryLedger:
    """Products, stock levels and the inventory audit trail."""

    def __init__(
        self,
        products: ProductStorageInterface,
        audit_entries: InventoryAuditStorageInterface,
        locks: Optional[KeyedLocks] = None,
        validator: Optional[InputValidator] = None,
        default_reorder_threshold: Optional[int] = None,
    ):
        self._products = products
        self._entries = audit_entries
        self._locks = locks or KeyedLocks()
        self._validator = validator or InputValidator()
        self._default_threshold = (
            default_reorder_threshold
            if default_reorder_threshold is not None
            else get_settings().app.default_reorder_threshold
        )
        self._logger = structlog.get_logger("bookkeeper.inventory")

    @staticmethod
    def _product_key(owner_id: str, product_id: UUID) -> tuple:
        return (owner_id, "product", product_id)

    @staticmethod
    def _name_key(owner_id: str, name: str) -> tuple:
        return (owner_id, "product_name", name.strip().casefold())

    async def _record(
        self,
        owner_id: str,
        product: Product,
        delta: int,
        reason: str,
        linked_transaction_id: Optional[UUID] = None,
    ) -> None:
        await self._entries.append_entry(
            owner_id,
            InventoryAuditEntry(
                owner_id=owner_id,
                product_id=product.id,
                delta=delta,
                reason=reason,
                cost_at_time=product.average_cost,
                linked_transaction_id=linked_transaction_id,
            ),
        )

    async def receive_stock(
        self,
        owner_id: str,
        name: str,
        quantity_added,
        unit_cost,
        selling_price,
        reorder_threshold: Optional[int] = None,
    ) -> Product:
        """
        Record a stock purchase (or a manual cost correction).

        - New product: created at `unit_cost` with `quantity_added` units.
        - Existing product, quantity_added > 0: AVCO recomputed.
        - Existing product, quantity_added == 0: cost overwritten.

        Selling price is always overwritten; the reorder threshold only
        when given.

        Raises:
            InvalidInputError: Missing name, negative or fractional quantity,
                negative or non-numeric prices
        """
        self._validator.ensure_valid(self._validator.validate_stock_receipt(
            name, quantity_added, unit_cost, selling_price, reorder_threshold,
        ))
        qty = whole_quantity(quantity_added)
        cost = as_decimal(unit_cost)
        price = as_decimal(selling_price)
        name = name.strip()

        async with self._locks.hold(self._name_key(owner_id, name)):
            existing = await self._products.find_by_name(owner_id, name)

            if existing is None:
                product = await self._products.insert(owner_id, Product(
                    owner_id=owner_id,
                    name=name,
                    quantity=qty,
                    average_cost=cost,
                    selling_price=price,
                    reorder_threshold=(
                        reorder_threshold
                        if reorder_threshold is not None
                        else self._default_threshold
                    ),
                ))
            else:
                async with self._locks.hold(self._product_key(owner_id, existing.id)):
                    # Re-read under the product lock; a sale may have moved it
                    current = await self._products.get(owner_id, existing.id)
                    if qty > 0:
                        new_cost = weighted_average_cost(
                            current.quantity, current.average_cost, qty, cost,
                        )
                    else:
                        new_cost = cost
                    updates = {
                        "quantity": current.quantity + qty,
                        "average_cost": new_cost,
                        "selling_price": price,
                    }
                    if reorder_threshold is not None:
                        updates["reorder_threshold"] = reorder_threshold
                    product = await self._products.update(
                        owner_id, current.model_copy(update=updates),
                    )

            await self._record(owner_id, product, qty, InventoryReason.STOCK_RECEIVED.value)

        self._logger.info(
            "Stock received",
            owner_id=owner_id,
            product_id=str(product.id),
            quantity_added=qty,
            quantity=product.quantity,
            average_cost=str(product.average_cost),
        )
        return product

    async def adjust_stock(
        self,
        owner_id: str,
        product_id: UUID,
        delta: int,
        reason: Union[InventoryReason, str],
        linked_transaction_id: Optional[UUID] = None,
    ) -> Product:
        """
        Apply a signed quantity change at the current average cost.

        Never fails for insufficient stock.

        Raises:
            NotFoundError: If the product doesn't exist
        """
        reason_value = reason.value if isinstance(reason, InventoryReason) else reason

        async with self._locks.hold(self._product_key(owner_id, product_id)):
            product = await self._products.get(owner_id, product_id)
            if product is None:
                raise NotFoundError(f"Product not found: {product_id}")
            product = await self._products.update(
                owner_id,
                product.model_copy(update={"quantity": product.quantity + delta}),
            )
            await self._record(owner_id, product, delta, reason_value, linked_transaction_id)

        self._logger.info(
            "Stock adjusted",
            owner_id=owner_id,
            product_id=str(product_id),
            delta=delta,
            reason=reason_value,
            quantity=product.quantity,
        )
        return product

    async def find_by_exact_name(self, owner_id: str, name: str) -> Optional[Product]:
        return await self._products.find_by_name(owner_id, name)

    async def find_by_fuzzy_name(self, owner_id: str, text: str, limit: int = 3) -> list[Product]:
        """Case-insensitive substring match, unranked."""
        return await self._products.search_by_name(owner_id, text, limit)

    async def get_product(self, owner_id: str, product_id: UUID) -> Optional[Product]:
        return await self._products.get(owner_id, product_id)

    async def find_or_create(self, owner_id: str, name: str) -> Product:
        """Look a product up by name, creating it with no stock and no cost."""
        name = name.strip()
        async with self._locks.hold(self._name_key(owner_id, name)):
            product = await self._products.find_by_name(owner_id, name)
            if product is not None:
                return product
            product = await self._products.insert(owner_id, Product(
                owner_id=owner_id,
                name=name,
                reorder_threshold=self._default_threshold,
            ))

        self._logger.info("Product created", owner_id=owner_id, product_id=str(product.id), name=name)
        return product

    async def list_products(self, owner_id: str) -> list[Product]:
        return await self._products.list_by_owner(owner_id)

    async def stock_history(self, owner_id: str, product_id: UUID) -> list[InventoryAuditEntry]:
        return await self._entries.list_by_product(owner_id, product_id)

    @staticmethod
    def stock_alert_for(product: Product) -> Optional[StockAlert]:
        """LOW_STOCK at or below the threshold, NEGATIVE_STOCK below zero."""
        if product.quantity < 0:
            kind = StockAlertKind.NEGATIVE_STOCK
        elif product.is_low_stock:
            kind = StockAlertKind.LOW_STOCK
        else:
            return None
        return StockAlert(
            kind=kind,
            product_id=product.id,
            product_name=product.name,
            quantity=product.quantity,
            reorder_threshold=product.reorder_threshold,
        )
