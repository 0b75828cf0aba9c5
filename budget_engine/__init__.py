"""
Budget Engine - Source Package

The accumulation and reconciliation engine behind a personal finance
tracker: it turns a ledger of budgets, expenses, credits and credit-card
charges into category summaries, carry-forward balances, an unassigned
credit pool and a single bank balance figure.

DESIGN PRINCIPLES:
1. The ledger is the only source of truth; everything else is derived
2. Money is Decimal, never float
3. Recompute is single-flight, throttled and debounced
4. Failures keep the last good aggregates
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Engine Team"
