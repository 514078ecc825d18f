"""
SpendXP - Source Package

The ledger and progression engine behind a money-tracking app for
teenagers: transactions, budgets, savings goals, xp/levels, streaks,
quests and parent-supervised spending limits.

DESIGN PRINCIPLES:
1. Validate at the boundary, compute purely inside
2. A rejected transaction leaves no trace
3. Persist the whole snapshot, then notify
4. Every state transition is auditable
5. Storage and advice backends are swappable
"""

__version__ = "1.0.0"
__author__ = "SpendXP Team"
