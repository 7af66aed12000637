"""
Smart Tracker - Savings Ledger Package

The savings core of a personal finance tracker: derives a user's
cumulative savings from their transactions and keeps savings goals
consistent with the ledger entries that fund them.

DESIGN PRINCIPLES:
1. The ledger is the source of truth, a goal's saved amount is a cache
2. Fail early, fail visibly
3. No silent corrections
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Smart Tracker Team"
