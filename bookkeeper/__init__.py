"""
Bookkeeper - Source Package

A small-business bookkeeping engine: sales, expenses, customer credit
and bank balances, with inventory valuation and profit-and-loss derived
from the transaction history.

DESIGN PRINCIPLES:
1. Every balance is reproducible from the transaction history
2. Validate everything before the first write
3. Undo is the exact inverse of apply
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Bookkeeper Team"
