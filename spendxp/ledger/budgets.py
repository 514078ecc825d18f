"""
Budget Watch

Month-to-date spending against each category's budget: the alert raised
when a logged transaction crosses a budget, the parent notification for
budget edits, and the summaries shown on the dashboard.
"""

from datetime import datetime
from decimal import Decimal
from typing import NamedTuple, Optional

from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.currency import format_amount
from spendxp.ledger.ledger import Ledger
from spendxp.models.finance import Category, CurrencyCode


class BudgetStatus(NamedTuple):
    category: Category
    spent: Decimal
    budget: Optional[Decimal]

    @property
    def over_budget(self) -> bool:
        return bool(self.budget) and self.spent > self.budget


def budget_alert(
    category: Category,
    ledger_after: Ledger,
    notifications_enabled: bool,
    now: datetime,
) -> Optional[str]:
    """
    Budget-exceeded alert for a transaction just appended to `ledger_after`.

    Fires whenever month-to-date spend on the category, including the new
    transaction, is above the budget.
    """
    if not category.is_spending or not notifications_enabled:
        return None
    if not category.budget:
        return None
    spent = ledger_after.month_to_date(category.id, now)
    if spent > category.budget:
        return f"Budget Alert: You've exceeded your monthly budget for {category.name}!"
    return None


def budget_change_message(
    before: Category,
    after: Category,
    currency: CurrencyCode,
) -> Optional[str]:
    """Parent notification text for a budget edit, or None if nothing changed."""
    old, new = before.budget, after.budget
    if old == new:
        return None
    if old is None:
        return (
            f"Parent Notification: A new budget for \"{before.name}\" was set to "
            f"{format_amount(new, currency)}."
        )
    if new is None:
        return (
            f"Parent Notification: The budget for \"{before.name}\" "
            f"({format_amount(old, currency)}) was removed."
        )
    return (
        f"Parent Notification: The budget for \"{before.name}\" was changed from "
        f"{format_amount(old, currency)} to {format_amount(new, currency)}."
    )


def monthly_category_spending(
    ledger: Ledger,
    categories: CategoryStore,
    now: datetime,
) -> list[BudgetStatus]:
    """Month-to-date spend for every non-income category."""
    return [
        BudgetStatus(c, ledger.month_to_date(c.id, now), c.budget)
        for c in categories.spending_categories()
    ]


def budget_watch(
    ledger: Ledger,
    categories: CategoryStore,
    now: datetime,
    limit: int = 3,
) -> list[BudgetStatus]:
    """The largest budgets first, with their month-to-date spend."""
    budgeted = [
        c for c in categories.spending_categories()
        if c.budget is not None and c.budget > 0
    ]
    budgeted.sort(key=lambda c: c.budget, reverse=True)
    return [
        BudgetStatus(c, ledger.month_to_date(c.id, now), c.budget)
        for c in budgeted[:limit]
    ]
