"""
Quest Tracker

Quest completion is never stored. It is re-derived from the ledger and the
categories every time it is asked for, so a quest can become complete and
then incomplete again (overspending a budget) before it is claimed. The
claimed set is the only durable record, and claiming is one-way.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AbstractSet, NamedTuple, Optional, Union

from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.currency import convert_base_amount
from spendxp.ledger.ledger import Ledger
from spendxp.ledger.progression import XpOutcome, apply_xp
from spendxp.models.finance import CurrencyCode, Progression
from spendxp.models.quest import QUESTS, Quest, QuestCategory, QuestType


SAVINGS_WINDOW = timedelta(days=7)


class QuestProgress(NamedTuple):
    progress: Union[int, Decimal]
    target: Union[int, Decimal]


class ClaimResult(NamedTuple):
    claimed: frozenset[str]
    outcome: Optional[XpOutcome]

    @property
    def awarded(self) -> bool:
        return self.outcome is not None


class QuestEvaluator:
    """
    Evaluates quest predicates against one snapshot of the user's data.

    `quiz_answers` holds the ids of quiz quests answered correctly in this
    session; it is not persisted.
    """

    def __init__(
        self,
        ledger: Ledger,
        categories: CategoryStore,
        currency: CurrencyCode,
        now: datetime,
        quiz_answers: AbstractSet[str] = frozenset(),
    ):
        self._ledger = ledger
        self._categories = categories
        self._currency = currency
        self._now = now
        self._quiz_answers = quiz_answers

    def expenses_logged_today(self) -> int:
        return self._ledger.count_on_day(
            self._categories.is_not_income, self._now.date(), self._now
        )

    def saved_this_week(self) -> Decimal:
        return self._ledger.sum_in_period(
            self._categories.is_savings, self._now - SAVINGS_WINDOW
        )

    def savings_target(self, quest: Quest) -> Decimal:
        return convert_base_amount(quest.target, self._currency)

    def progress(self, quest: Quest) -> QuestProgress:
        """Current progress and target, for display."""
        if quest.type is QuestType.LOG_TRANSACTIONS:
            return QuestProgress(self.expenses_logged_today(), quest.target)
        if quest.type is QuestType.SAVE_TO_GOAL:
            return QuestProgress(self.saved_this_week(), self.savings_target(quest))
        if quest.type is QuestType.STAY_UNDER_BUDGET:
            category = self._categories.get(quest.target)
            spent = self._ledger.month_to_date(quest.target, self._now)
            budget = category.budget if category and category.budget is not None else Decimal("0")
            return QuestProgress(spent, budget)
        return QuestProgress(1 if quest.id in self._quiz_answers else 0, quest.target)

    def is_complete(self, quest: Quest) -> bool:
        if quest.type is QuestType.LOG_TRANSACTIONS:
            return self.expenses_logged_today() >= quest.target
        if quest.type is QuestType.SAVE_TO_GOAL:
            return self.saved_this_week() >= self.savings_target(quest)
        if quest.type is QuestType.STAY_UNDER_BUDGET:
            category = self._categories.get(quest.target)
            if category is None or category.budget is None:
                return False
            return self._ledger.month_to_date(category.id, self._now) <= category.budget
        if quest.type is QuestType.QUIZ:
            return quest.id in self._quiz_answers
        return False

    def is_claimable(self, quest: Quest, claimed: AbstractSet[str]) -> bool:
        return quest.id not in claimed and self.is_complete(quest)


def quests_for(category: QuestCategory) -> list[Quest]:
    return [q for q in QUESTS if q.category is category]


def claim_reward(
    reward_id: str,
    xp_reward: int,
    claimed: AbstractSet[str],
    progression: Progression,
) -> ClaimResult:
    """
    Award a one-time reward.

    No-op if `reward_id` is already in `claimed`. Used for quests and for
    learning modules, which share the same claim-once semantics.
    """
    if reward_id in claimed:
        return ClaimResult(frozenset(claimed), None)
    outcome = apply_xp(progression, xp_reward)
    return ClaimResult(frozenset(claimed) | {reward_id}, outcome)
