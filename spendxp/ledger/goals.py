"""
Goal contributions.

A contribution moves a goal towards its target and is mirrored in the
ledger as a Savings transaction of the full requested amount. Only the
goal side lives here; the session drives the mirrored transaction through
the normal pipeline.
"""

from decimal import Decimal
from typing import NamedTuple, Optional
from uuid import uuid4

from spendxp.models.finance import Goal


class ContributionResult(NamedTuple):
    goal: Goal
    applied: bool
    completed: bool


def new_goal(name: str, target_amount: Decimal, video_url: Optional[str] = None) -> Goal:
    return Goal(
        id=uuid4().hex,
        name=name,
        target_amount=target_amount,
        current_amount=Decimal("0"),
        video_url=video_url.strip() if video_url and video_url.strip() else None,
    )


def apply_contribution(goal: Goal, amount: Decimal) -> ContributionResult:
    """
    Add `amount` to a goal, clamped at its target.

    A goal that is already complete ignores contributions. `completed` is
    True only for the contribution that reaches the target.
    """
    if goal.is_complete:
        return ContributionResult(goal, applied=False, completed=False)

    raw = goal.current_amount + amount
    updated = goal.model_copy(update={"current_amount": min(raw, goal.target_amount)})
    return ContributionResult(updated, applied=True, completed=raw >= goal.target_amount)


def contribution_description(goal: Goal) -> str:
    return f'Contribution to "{goal.name}"'
