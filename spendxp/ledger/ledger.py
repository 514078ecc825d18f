"""
The Ledger

DESIGN DECISION: The ledger is an ordered sequence, newest first by
insertion. Recency queries ("most recent expense") use sequence position,
not the transaction date. Imported transactions can carry dates older than
entries already in the ledger; they are still the most recent entries as
far as the streak rules are concerned.

All period windows are computed on local calendar time, where "local" is
the timezone of the `now` value the caller supplies.
"""

from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, Iterator, Optional

from spendxp.models.finance import LimitPeriod, Transaction


CategoryPredicate = Callable[[str], bool]


def local_now() -> datetime:
    """The current time as an aware datetime in the system timezone."""
    return datetime.now().astimezone()


def _is_system_local(now: datetime) -> bool:
    # `astimezone()` stamps a fixed offset; the system zone still knows DST
    return isinstance(now.tzinfo, timezone) and now.utcoffset() == now.astimezone().utcoffset()


def to_local(moment: datetime, now: datetime) -> datetime:
    if _is_system_local(now):
        return moment.astimezone()
    return moment.astimezone(now.tzinfo)


def local_date(moment: datetime, now: datetime) -> date:
    """Calendar date of `moment` in the timezone of `now`."""
    return to_local(moment, now).date()


def local_midnight(day: date, now: datetime) -> datetime:
    """
    Midnight starting `day` in the timezone of `now`.

    The offset is resolved for that date, so a boundary on the other side
    of a DST change gets its own offset rather than the one `now` carries.
    """
    naive = datetime.combine(day, time())
    if _is_system_local(now):
        return naive.astimezone()
    return naive.replace(tzinfo=now.tzinfo)


def start_of_day(now: datetime) -> datetime:
    return local_midnight(now.date(), now)


def start_of_week(now: datetime) -> datetime:
    """Local midnight of the most recent Sunday (weeks start on Sunday)."""
    days_since_sunday = (now.weekday() + 1) % 7
    return local_midnight(now.date() - timedelta(days=days_since_sunday), now)


def start_of_month(now: datetime) -> datetime:
    return local_midnight(now.date().replace(day=1), now)


def period_start(period: Optional[LimitPeriod], now: datetime) -> datetime:
    """
    Start of the spending-limit window containing `now`.

    An unset period is treated as monthly.
    """
    if period is LimitPeriod.DAILY:
        return start_of_day(now)
    if period is LimitPeriod.WEEKLY:
        return start_of_week(now)
    return start_of_month(now)


class Ledger:
    """
    Immutable, newest-first collection of transactions.

    `append` returns a new ledger so that every derived value of a
    submission can be computed from one consistent snapshot.
    """

    __slots__ = ("_entries",)

    def __init__(self, transactions: Iterable[Transaction] = ()):
        self._entries: tuple[Transaction, ...] = tuple(transactions)

    def __iter__(self) -> Iterator[Transaction]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Ledger({len(self._entries)} transactions)"

    @property
    def transactions(self) -> tuple[Transaction, ...]:
        return self._entries

    def append(self, transaction: Transaction) -> "Ledger":
        """Record a transaction as the newest entry. No validation happens here."""
        return Ledger((transaction, *self._entries))

    def prepend_batch(self, transactions: Iterable[Transaction]) -> "Ledger":
        """Place a batch in front of the ledger, keeping the batch's own order."""
        return Ledger((*transactions, *self._entries))

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return next((t for t in self._entries if t.id == transaction_id), None)

    def recent(self, limit: int = 5) -> list[Transaction]:
        return list(self._entries[:limit])

    def sum_in_period(
        self,
        category_predicate: CategoryPredicate,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> Decimal:
        """
        Sum amounts of matching transactions dated in [start, end).

        With no `end` the window is open: later-dated transactions count too.
        """
        total = Decimal("0")
        for t in self._entries:
            if not category_predicate(t.category_id):
                continue
            if t.date < start:
                continue
            if end is not None and t.date >= end:
                continue
            total += t.amount
        return total

    def sum_for_category(
        self,
        category_id: str,
        start: datetime,
        end: Optional[datetime] = None,
    ) -> Decimal:
        return self.sum_in_period(lambda cid: cid == category_id, start, end)

    def month_to_date(self, category_id: str, now: datetime) -> Decimal:
        """Spend on one category since the first of the current local month."""
        return self.sum_for_category(category_id, start_of_month(now))

    def most_recent(self, category_predicate: CategoryPredicate) -> Optional[Transaction]:
        """First matching transaction in storage order."""
        return next(
            (t for t in self._entries if category_predicate(t.category_id)),
            None,
        )

    def count_on_day(
        self,
        category_predicate: CategoryPredicate,
        day: date,
        now: datetime,
    ) -> int:
        """Number of matching transactions whose local date is `day`."""
        return sum(
            1 for t in self._entries
            if category_predicate(t.category_id) and local_date(t.date, now) == day
        )

    def total(self, category_predicate: CategoryPredicate) -> Decimal:
        return sum(
            (t.amount for t in self._entries if category_predicate(t.category_id)),
            Decimal("0"),
        )
