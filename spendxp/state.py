"""
Application State

DESIGN DECISION: The whole per-account state lives in one explicit object
owned by the session. There are no module-level singletons, so two sessions
(or two tests) never share a ledger.

Stored records are upgraded to the current shape exactly once, when they are
loaded. Everything downstream may assume the canonical shape.
"""

from typing import Any, Iterable, Optional

from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.currency import is_supported
from spendxp.ledger.ledger import Ledger
from spendxp.ledger.progression import apply_xp
from spendxp.models.finance import (
    Category,
    CurrencyCode,
    Goal,
    Investment,
    Progression,
    Transaction,
    UserProfile,
)
from spendxp.services.notifications import NotificationQueue
from spendxp.services.storage.interface import (
    CATEGORIES_FIELD,
    CLAIMED_QUESTS_FIELD,
    COMPLETED_MODULES_FIELD,
    GOALS_FIELD,
    INVESTMENTS_FIELD,
    TRANSACTIONS_FIELD,
    USER_FIELD,
)


CURRENT_SCHEMA_VERSION = 2

# Progression used to be stored flat on the user record
_LEGACY_PROGRESSION_KEYS = ("level", "xp", "xpToNextLevel", "streak")


class NoActiveSession(Exception):
    """An operation needs an open account and none is open."""

    def __init__(self, operation: str = "this operation"):
        super().__init__(f"Open an account before {operation}.")


# =============================================================================
# MIGRATION
# =============================================================================

def migrate_user_record(
    raw: dict[str, Any],
    default_currency: CurrencyCode = CurrencyCode.USD,
) -> dict[str, Any]:
    """
    Upgrade a stored user record to the current shape.

    Missing sub-records get their defaults, an unknown currency falls back
    to `default_currency`, and the flat level/xp/streak fields of old
    records move under `progression`. The input is not modified.
    """
    record = dict(raw)

    if not record.get("preferences"):
        record["preferences"] = {"notifications": True}
    if not record.get("security"):
        record["security"] = {"twoFactorEnabled": False}
    if record.get("linkedAccounts") is None:
        record["linkedAccounts"] = []
    if not record.get("parentalControls"):
        record["parentalControls"] = {"spendingLimitEnabled": False}

    currency = record.get("currency")
    if not currency or not is_supported(currency):
        record["currency"] = CurrencyCode(default_currency).value

    if "progression" not in record:
        legacy = {
            key: record.pop(key)
            for key in _LEGACY_PROGRESSION_KEYS
            if key in record
        }
        record["progression"] = legacy
    else:
        for key in _LEGACY_PROGRESSION_KEYS:
            record.pop(key, None)

    record["progression"] = _normalize_progression(record["progression"])
    record["schemaVersion"] = CURRENT_SCHEMA_VERSION
    return record


def _normalize_progression(raw: dict[str, Any]) -> dict[str, Any]:
    """Settle any xp left at or above the threshold by running the cascade."""
    level = max(int(raw.get("level", 1) or 1), 1)
    threshold = int(raw.get("xpToNextLevel", 100) or 100)
    xp = max(int(raw.get("xp", 0) or 0), 0)
    streak = max(int(raw.get("streak", 0) or 0), 0)

    base = Progression.model_construct(
        level=level, xp=0, xp_to_next_level=max(threshold, 1), streak=streak
    )
    settled = apply_xp(base, xp).progression
    return {
        "level": settled.level,
        "xp": settled.xp,
        "xpToNextLevel": settled.xp_to_next_level,
        "streak": settled.streak,
    }


def load_categories(raw: Optional[list]) -> CategoryStore:
    """Categories without a role resolve it from their name on validation."""
    if not raw:
        return CategoryStore.with_defaults()
    return CategoryStore(Category.model_validate(item) for item in raw)


def load_transactions(raw: Optional[list]) -> Ledger:
    # Records without a source predate account linking and were manual
    return Ledger(Transaction.model_validate(item) for item in raw or [])


# =============================================================================
# STATE
# =============================================================================

class AppState:
    """
    Everything the engine knows about the open account.

    `quiz_results` (first answer per quiz quest) is session-only and never
    persisted.
    """

    def __init__(
        self,
        account_key: str,
        user: UserProfile,
        categories: CategoryStore,
        ledger: Ledger,
        goals: Iterable[Goal] = (),
        investments: Iterable[Investment] = (),
        claimed_quests: Iterable[str] = (),
        completed_modules: Iterable[str] = (),
        notifications: Optional[NotificationQueue] = None,
    ):
        self.account_key = account_key
        self.user = user
        self.categories = categories
        self.ledger = ledger
        self.goals: list[Goal] = list(goals)
        self.investments: list[Investment] = list(investments)
        self.claimed_quests: frozenset[str] = frozenset(claimed_quests)
        self.completed_modules: frozenset[str] = frozenset(completed_modules)
        self.quiz_results: dict[str, bool] = {}
        self.notifications = notifications or NotificationQueue()

    @property
    def currency(self) -> CurrencyCode:
        return self.user.currency

    @property
    def progression(self) -> Progression:
        return self.user.progression

    @progression.setter
    def progression(self, value: Progression) -> None:
        self.user = self.user.model_copy(update={"progression": value})

    @property
    def quiz_answers(self) -> frozenset[str]:
        """Quiz quests answered correctly in this session."""
        return frozenset(q for q, correct in self.quiz_results.items() if correct)

    def get_goal(self, goal_id: str) -> Optional[Goal]:
        return next((g for g in self.goals if g.id == goal_id), None)

    def get_investment(self, investment_id: str) -> Optional[Investment]:
        return next((i for i in self.investments if i.id == investment_id), None)

    def serialize(self, field: str) -> Any:
        """JSON-compatible snapshot of one persisted field."""
        if field == USER_FIELD:
            return self.user.to_storage()
        if field == CATEGORIES_FIELD:
            return [c.to_storage() for c in self.categories]
        if field == TRANSACTIONS_FIELD:
            return [t.to_storage() for t in self.ledger]
        if field == GOALS_FIELD:
            return [g.to_storage() for g in self.goals]
        if field == INVESTMENTS_FIELD:
            return [i.to_storage() for i in self.investments]
        if field == CLAIMED_QUESTS_FIELD:
            return sorted(self.claimed_quests)
        if field == COMPLETED_MODULES_FIELD:
            return sorted(self.completed_modules)
        raise KeyError(field)

    @classmethod
    def from_storage(
        cls,
        account_key: str,
        fields: dict[str, Any],
        default_currency: CurrencyCode = CurrencyCode.USD,
        notifications: Optional[NotificationQueue] = None,
    ) -> "AppState":
        """Build state from raw stored fields, migrating on the way in."""
        user = UserProfile.model_validate(
            migrate_user_record(fields[USER_FIELD], default_currency)
        )
        return cls(
            account_key=account_key,
            user=user,
            categories=load_categories(fields.get(CATEGORIES_FIELD)),
            ledger=load_transactions(fields.get(TRANSACTIONS_FIELD)),
            goals=(Goal.model_validate(g) for g in fields.get(GOALS_FIELD) or []),
            investments=(
                Investment.model_validate(i) for i in fields.get(INVESTMENTS_FIELD) or []
            ),
            claimed_quests=fields.get(CLAIMED_QUESTS_FIELD) or [],
            completed_modules=fields.get(COMPLETED_MODULES_FIELD) or [],
            notifications=notifications,
        )
