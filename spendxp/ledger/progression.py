"""
Progression Engine

Pure functions over `Progression` state: xp awards with the level-up
cascade, xp formulas for logged transactions and the daily streak rule.
Nothing in here touches storage or raises; inputs are validated upstream.
"""

from datetime import datetime
from decimal import Decimal
from typing import NamedTuple, Optional

from spendxp.ledger.currency import round_half_up, round_to_int
from spendxp.ledger.ledger import local_date
from spendxp.models.finance import CategoryRole, Progression, Transaction


LEVEL_GROWTH = Decimal("1.5")
GOAL_COMPLETION_BONUS_XP = 50


class XpOutcome(NamedTuple):
    progression: Progression
    levels_gained: int


def apply_xp(state: Progression, delta: int) -> XpOutcome:
    """
    Add xp and level up as many times as the new total allows.

    Each level-up consumes the current threshold and grows the next one by
    1.5x, rounded half-up to an integer. Thresholds therefore depend on the
    path taken and are carried in state.
    """
    xp = state.xp + delta
    level = state.level
    threshold = state.xp_to_next_level

    while xp >= threshold:
        xp -= threshold
        level += 1
        threshold = int(round_half_up(threshold * LEVEL_GROWTH))

    updated = state.model_copy(
        update={"xp": xp, "level": level, "xp_to_next_level": threshold}
    )
    return XpOutcome(updated, level - state.level)


def transaction_xp(amount: Decimal, role: CategoryRole) -> int:
    """
    Xp earned by logging a transaction.

    Income earns round(amount / 4) + 5; everything else, savings included,
    earns round(amount / 2) + 10.
    """
    if role is CategoryRole.INCOME:
        return round_to_int(amount / 4) + 5
    return round_to_int(amount / 2) + 10


def day_difference(last: datetime, now: datetime) -> int:
    """Whole local calendar days from `last` to `now`."""
    return (now.date() - local_date(last, now)).days


def next_streak(
    streak: int,
    last_expense: Optional[Transaction],
    now: datetime,
) -> int:
    """
    Streak after logging a non-income transaction at `now`.

    `last_expense` is the most recent non-income entry in ledger order,
    looked up before the new transaction is appended.
    """
    if last_expense is None:
        return 1

    days = day_difference(last_expense.date, now)
    if days == 0:
        return streak
    if days == 1:
        return streak + 1
    # Missed a day or more
    return 1


def apply_transaction(
    state: Progression,
    amount: Decimal,
    role: CategoryRole,
    last_expense: Optional[Transaction],
    now: datetime,
) -> XpOutcome:
    """Xp award and streak update for one logged transaction, as one state change."""
    streak = state.streak
    if role is not CategoryRole.INCOME:
        streak = next_streak(streak, last_expense, now)

    outcome = apply_xp(state, transaction_xp(amount, role))
    return XpOutcome(
        outcome.progression.model_copy(update={"streak": streak}),
        outcome.levels_gained,
    )
