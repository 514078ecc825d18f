"""
Parental Control Gate

Two checks around a transaction submission:
- pre-check: reject a spending transaction that would push the period's
  spending past the parent's limit
- post-check: after the transaction is recorded, decide whether the parent
  should hear about it

Income and savings transactions pass through both checks untouched.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.currency import format_amount
from spendxp.ledger.ledger import Ledger, period_start
from spendxp.models.finance import Category, CurrencyCode, ParentalControls


class LimitExceeded(Exception):
    """A transaction would breach the parental spending limit."""

    def __init__(self, period: str, limit: Decimal, spent: Decimal, amount: Decimal):
        self.period = period
        self.limit = limit
        self.spent = spent
        self.amount = amount
        super().__init__(f"This transaction exceeds the {period} spending limit.")


class ParentalControlGate:
    """
    Applies one user's parental controls to transaction submissions.
    """

    def __init__(self, controls: ParentalControls, currency: CurrencyCode):
        self._controls = controls
        self._currency = currency

    @property
    def limit_active(self) -> bool:
        # An enabled limit without an amount is not enforced
        return (
            self._controls.spending_limit_enabled
            and bool(self._controls.spending_limit_amount)
        )

    def spent_this_period(
        self,
        ledger: Ledger,
        categories: CategoryStore,
        now: datetime,
    ) -> Decimal:
        start = period_start(self._controls.spending_limit_period, now)
        return ledger.sum_in_period(categories.is_spending, start)

    def pre_check(
        self,
        ledger: Ledger,
        categories: CategoryStore,
        category: Category,
        amount: Decimal,
        now: datetime,
    ) -> None:
        """
        Raise LimitExceeded if `amount` would breach the configured limit.

        Must be called with the ledger as it was before the submission.
        """
        if not category.is_spending or not self.limit_active:
            return

        limit = self._controls.spending_limit_amount
        spent = self.spent_this_period(ledger, categories, now)
        if spent + amount > limit:
            raise LimitExceeded(
                period=self._controls.effective_period.value,
                limit=limit,
                spent=spent,
                amount=amount,
            )

    def alert_for(
        self,
        category: Category,
        amount: Decimal,
        description: str,
    ) -> Optional[str]:
        """Parental alert text for a recorded transaction, or None."""
        if not category.is_spending or not self._controls.notifications_enabled:
            return None
        if amount < self._controls.effective_threshold:
            return None
        return (
            "Parental Alert: A transaction of "
            f"{format_amount(amount, self._currency)} for \"{description}\" "
            "was just logged."
        )
