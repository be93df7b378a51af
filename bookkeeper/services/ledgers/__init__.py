"""Ledger services: inventory valuation and running balances."""

from bookkeeper.services.ledgers.balances import (
    BalanceLedger,
    BankBalanceLedger,
    CustomerBalanceLedger,
)
from bookkeeper.services.ledgers.inventory import InventoryLedger, weighted_average_cost
from bookkeeper.services.ledgers.locks import KeyedLocks

__all__ = [
    "BalanceLedger",
    "BankBalanceLedger",
    "CustomerBalanceLedger",
    "InventoryLedger",
    "KeyedLocks",
    "weighted_average_cost",
]
