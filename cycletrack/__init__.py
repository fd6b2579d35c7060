"""
Cycletrack - Source Package

The recurring cycle engine of a personal-finance tracker. It turns a
small set of recurrence parameters into a schedule of expected events
(loan installments, budget periods, goal contributions) and reconciles
that schedule against the actual payments and transactions.

DESIGN PRINCIPLES:
1. The engine is pure: same inputs, same cycles
2. Fail early on malformed recurrence parameters
3. Nothing is force-matched or silently dropped
4. Ledgers are read, never written
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Cycletrack Team"
