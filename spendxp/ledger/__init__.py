"""
Ledger & Progression Engine

Pure state-transition rules: how a logged transaction moves spending
windows, budgets, xp, levels, streaks, goals and quests.
"""

from spendxp.ledger.budgets import (
    BudgetStatus,
    budget_alert,
    budget_change_message,
    budget_watch,
    monthly_category_spending,
)
from spendxp.ledger.categories import (
    DEFAULT_CATEGORIES,
    CategoryNotFound,
    CategoryStore,
)
from spendxp.ledger.controls import LimitExceeded, ParentalControlGate
from spendxp.ledger.currency import (
    CURRENCIES,
    convert_base_amount,
    format_amount,
    round_half_up,
)
from spendxp.ledger.goals import ContributionResult, apply_contribution, new_goal
from spendxp.ledger.ledger import Ledger, local_now, period_start
from spendxp.ledger.progression import (
    GOAL_COMPLETION_BONUS_XP,
    XpOutcome,
    apply_transaction,
    apply_xp,
    next_streak,
    transaction_xp,
)
from spendxp.ledger.quests import ClaimResult, QuestEvaluator, claim_reward, quests_for

__all__ = [
    "BudgetStatus",
    "budget_alert",
    "budget_change_message",
    "budget_watch",
    "monthly_category_spending",
    "DEFAULT_CATEGORIES",
    "CategoryNotFound",
    "CategoryStore",
    "LimitExceeded",
    "ParentalControlGate",
    "CURRENCIES",
    "convert_base_amount",
    "format_amount",
    "round_half_up",
    "ContributionResult",
    "apply_contribution",
    "new_goal",
    "Ledger",
    "local_now",
    "period_start",
    "GOAL_COMPLETION_BONUS_XP",
    "XpOutcome",
    "apply_transaction",
    "apply_xp",
    "next_streak",
    "transaction_xp",
    "ClaimResult",
    "QuestEvaluator",
    "claim_reward",
    "quests_for",
]
