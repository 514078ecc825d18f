"""
Main Orchestrator for SpendXP

This module ties together all the components and defines the end-to-end
flows of one user session:
1. Account lifecycle (create, open, close, PIN and parent PIN)
2. Transaction submission (validate -> gate -> ledger -> alerts -> progression)
3. Goals, quests and learning modules
4. Categories, budgets, parental controls, linked accounts, investments

DESIGN DECISION: The orchestrator enforces the ordering rules:
- The parental gate sees the ledger as it was before the submission
- Every change of a submission is persisted before any alert is queued
- Xp and streak move together in one persisted change
- Every step is audited

Persistence failures never undo an in-memory change. They are audited and
the session carries on with its own state as the source of truth.
"""

import random
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Iterable, NamedTuple, Optional
from uuid import UUID, uuid4

from spendxp.agents import AdviceServiceFailure, AnalystAgent, CoachAgent
from spendxp.audit import AuditLogger, create_correlation_id
from spendxp.config import get_settings
from spendxp.config.settings import AppSettings
from spendxp.ledger.budgets import (
    BudgetStatus,
    budget_alert,
    budget_change_message,
    budget_watch,
    monthly_category_spending,
)
from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.controls import LimitExceeded, ParentalControlGate
from spendxp.ledger.goals import (
    ContributionResult,
    apply_contribution,
    contribution_description,
    new_goal,
)
from spendxp.ledger.investments import new_investment
from spendxp.ledger.ledger import Ledger, local_now
from spendxp.ledger.progression import (
    GOAL_COMPLETION_BONUS_XP,
    XpOutcome,
    apply_transaction,
    apply_xp,
    transaction_xp,
)
from spendxp.ledger.quests import QuestEvaluator, QuestProgress, claim_reward, quests_for
from spendxp.models.audit import AuditEventBuilder, AuditEventType
from spendxp.models.finance import (
    AccountKind,
    Category,
    CurrencyCode,
    Goal,
    Investment,
    InvestmentType,
    LinkedAccount,
    ParentalControls,
    Preferences,
    Progression,
    Security,
    Transaction,
    TransactionSource,
    UserProfile,
)
from spendxp.models.notification import NotificationKind
from spendxp.models.quest import (
    InvestmentModule,
    Quest,
    QuestCategory,
    QuestType,
    get_module,
    get_quest,
)
from spendxp.services.credentials import check_login_pin, hash_pin, verify_pin
from spendxp.services.notifications import NotificationQueue
from spendxp.services.storage import (
    ACCOUNT_FIELDS,
    AuditStorageInterface,
    InMemoryPersistence,
    JsonFilePersistence,
    NotFoundError,
    PersistenceInterface,
    StorageError,
    normalize_account_key,
)
from spendxp.services.storage.interface import (
    CATEGORIES_FIELD,
    CLAIMED_QUESTS_FIELD,
    COMPLETED_MODULES_FIELD,
    GOALS_FIELD,
    INVESTMENTS_FIELD,
    TRANSACTIONS_FIELD,
    USER_FIELD,
)
from spendxp.state import AppState, NoActiveSession, migrate_user_record
from spendxp.validation import InputValidator, ValidationError, ValidationIssue


def _require_quest(quest_id: str) -> Quest:
    quest = get_quest(quest_id)
    if quest is None:
        raise NotFoundError(f"Quest not found: {quest_id}")
    return quest


def _require_module(module_id: str) -> InvestmentModule:
    module = get_module(module_id)
    if module is None:
        raise NotFoundError(f"Module not found: {module_id}")
    return module


class SubmissionResult(NamedTuple):
    """What a logged transaction did to the user's progression."""

    transaction: Transaction
    xp_awarded: int
    levels_gained: int
    streak: int


class Session:
    """
    One user's session against a persistence backend.

    Flow of `log_transaction`:
    1. Validate → reject bad input before anything else
    2. Gate pre-check → LimitExceeded if the parental limit would be breached
    3. Append → new ledger snapshot, persisted whole
    4. Progression → xp, level cascade and streak in one persisted change
    5. Parental alert → queued if the parent wants to hear about it
    6. Budget alert → queued if the category is now over budget

    The session never retries a failed write.
    """

    def __init__(
        self,
        persistence: PersistenceInterface,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[InputValidator] = None,
        app_settings: Optional[AppSettings] = None,
        coach: Optional[CoachAgent] = None,
        analyst: Optional[AnalystAgent] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self._persistence = persistence
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or InputValidator()
        self._settings = app_settings or get_settings().app
        self._coach = coach
        self._analyst = analyst
        self._clock = clock
        self._state: Optional[AppState] = None

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    @property
    def is_open(self) -> bool:
        return self._state is not None

    @property
    def state(self) -> AppState:
        if self._state is None:
            raise NoActiveSession()
        return self._state

    @property
    def user(self) -> UserProfile:
        return self.state.user

    @property
    def notifications(self) -> NotificationQueue:
        return self.state.notifications

    def _now(self, now: Optional[datetime]) -> datetime:
        return now if now is not None else self._clock()

    def _new_queue(self) -> NotificationQueue:
        return NotificationQueue(self._settings.notification_delay_seconds)

    def _default_currency(self) -> CurrencyCode:
        try:
            return CurrencyCode(self._settings.default_currency)
        except ValueError:
            return CurrencyCode.USD

    async def _persist(self, *fields: str) -> bool:
        """
        Write whole snapshots of the given fields.

        Returns False if any write failed; failures are audited, not raised.
        """
        state = self.state
        ok = True
        for field in fields:
            try:
                await self._persistence.save(state.account_key, field, state.serialize(field))
            except StorageError as e:
                ok = False
                await self._audit_logger.log_persistence_failed(
                    state.account_key, field, str(e)
                )
        return ok

    async def create_account(
        self,
        name: str,
        email: str,
        currency: Any = CurrencyCode.USD,
        pin: Optional[str] = None,
    ) -> UserProfile:
        """
        Create an account and open a session on it.

        New accounts start at level 1 with two-factor enabled, parental
        controls off and the default categories.

        Raises:
            ValidationError: If the input is invalid or the account exists
        """
        cleaned_name, cleaned_email, code = self._validator.validate_account(
            name, email, currency
        )
        cleaned_pin = self._validator.validate_pin(pin) if pin is not None else None
        account_key = normalize_account_key(cleaned_email)

        if await self._persistence.account_exists(account_key):
            raise ValidationError([ValidationIssue(
                field="email",
                issue_type="duplicate",
                message="An account with this email already exists.",
            )])

        user = UserProfile(
            name=cleaned_name,
            email=cleaned_email,
            currency=code,
            progression=Progression(level=1, xp=0, xp_to_next_level=100, streak=0),
            security=Security(
                pin_hash=hash_pin(cleaned_pin) if cleaned_pin else None,
                two_factor_enabled=True,
            ),
            parental_controls=ParentalControls(
                spending_limit_enabled=False,
                notifications_enabled=False,
            ),
            preferences=Preferences(notifications=True),
        )
        self._state = AppState(
            account_key=account_key,
            user=user,
            categories=CategoryStore.with_defaults(),
            ledger=Ledger(),
            notifications=self._new_queue(),
        )
        await self._persist(*ACCOUNT_FIELDS)
        await self._audit_logger.log(AuditEventBuilder.account_created(account_key, code.value))
        return user

    async def open(self, email: str, pin: Optional[str] = None) -> UserProfile:
        """
        Load an existing account.

        Raises:
            NotFoundError: If no account exists for the e-mail
            AuthenticationError: If a required PIN is missing or wrong
        """
        account_key = normalize_account_key(email)
        raw_user = await self._persistence.load(account_key, USER_FIELD)
        if raw_user is None:
            raise NotFoundError("No account found with that email.")

        security = raw_user.get("security") or {}
        check_login_pin(pin, security.get("pinHash"), bool(security.get("twoFactorEnabled")))

        fields = {USER_FIELD: raw_user}
        for field in ACCOUNT_FIELDS:
            if field != USER_FIELD:
                fields[field] = await self._persistence.load(account_key, field)

        self._state = AppState.from_storage(
            account_key,
            fields,
            default_currency=self._default_currency(),
            notifications=self._new_queue(),
        )
        await self._audit_logger.log(AuditEventBuilder.session_opened(account_key))
        return self._state.user

    async def close(self) -> None:
        """Log out: drop all in-memory state."""
        if self._state is None:
            return
        account_key = self._state.account_key
        self._state = None
        await self._audit_logger.log(AuditEventBuilder.session_closed(account_key))

    async def reset_pin(self, email: str, new_pin: str) -> UserProfile:
        """Replace the login PIN of an account and open it."""
        cleaned_pin = self._validator.validate_pin(new_pin)
        account_key = normalize_account_key(email)
        raw_user = await self._persistence.load(account_key, USER_FIELD)
        if raw_user is None:
            raise NotFoundError("No account found.")

        record = migrate_user_record(raw_user, self._default_currency())
        user = UserProfile.model_validate(record)
        security = user.security.model_copy(update={"pin_hash": hash_pin(cleaned_pin)})
        await self._persistence.save(
            account_key,
            USER_FIELD,
            user.model_copy(update={"security": security}).to_storage(),
        )
        return await self.open(email, cleaned_pin)

    async def update_security(
        self,
        two_factor_enabled: bool,
        new_pin: Optional[str] = None,
    ) -> Security:
        """Toggle two-factor; a new PIN replaces the old one, otherwise it is kept."""
        state = self.state
        updates: dict[str, Any] = {"two_factor_enabled": two_factor_enabled}
        if new_pin:
            updates["pin_hash"] = hash_pin(self._validator.validate_pin(new_pin))
        security = state.user.security.model_copy(update=updates)
        state.user = state.user.model_copy(update={"security": security})
        await self._persist(USER_FIELD)
        return security

    @property
    def has_parent_pin(self) -> bool:
        return bool(self.user.security.parent_pin_hash)

    async def set_parent_pin(self, pin: str) -> None:
        state = self.state
        security = state.user.security.model_copy(
            update={"parent_pin_hash": hash_pin(self._validator.validate_pin(pin))}
        )
        state.user = state.user.model_copy(update={"security": security})
        await self._persist(USER_FIELD)

    def verify_parent_pin(self, pin: str) -> bool:
        """True if `pin` opens parent mode."""
        return verify_pin(pin, self.user.security.parent_pin_hash)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    async def log_transaction(
        self,
        amount: Any,
        category_id: str,
        description: str,
        now: Optional[datetime] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SubmissionResult:
        """
        Submit a manual transaction through the full pipeline.

        Raises:
            ValidationError: If the input is invalid
            LimitExceeded: If the parental spending limit would be breached;
                nothing is recorded in that case
        """
        state = self.state
        now = self._now(now)
        correlation_id = correlation_id or create_correlation_id()

        # Step 1: Validate
        try:
            parsed, category, cleaned = self._validator.validate_transaction(
                amount, category_id, description, state.categories
            )
        except ValidationError as e:
            await self._audit_logger.log_validation_failed(
                state.account_key, "log_transaction", e.as_dicts(), correlation_id
            )
            raise

        # Step 2: Gate pre-check against the ledger as it stands
        gate = ParentalControlGate(state.user.parental_controls, state.currency)
        try:
            gate.pre_check(state.ledger, state.categories, category, parsed, now)
        except LimitExceeded as e:
            await self._audit_logger.log_transaction_rejected(
                state.account_key, str(parsed), category.id, e.period, correlation_id
            )
            raise

        # Step 3: Append and persist
        last_expense = state.ledger.most_recent(state.categories.is_not_income)
        transaction = Transaction(
            id=f"tx-{uuid4().hex}",
            amount=parsed,
            category_id=category.id,
            description=cleaned,
            date=now,
            source=TransactionSource.MANUAL,
        )
        state.ledger = state.ledger.append(transaction)
        await self._persist(TRANSACTIONS_FIELD)
        await self._audit_logger.log_transaction_logged(
            state.account_key,
            transaction.id,
            str(parsed),
            category.id,
            transaction.source.value,
            correlation_id,
        )

        # Step 4: Xp and streak in one change
        before = state.progression
        outcome = apply_transaction(before, parsed, category.role, last_expense, now)
        state.progression = outcome.progression
        await self._persist(USER_FIELD)
        xp = transaction_xp(parsed, category.role)
        await self._audit_logger.log_progression(
            state.account_key,
            xp,
            "transaction",
            before.level,
            outcome.progression.level,
            correlation_id,
            old_streak=before.streak,
            new_streak=outcome.progression.streak,
        )

        # Step 5: Parental alert, queued only once every change is persisted
        parental = gate.alert_for(category, parsed, cleaned)
        if parental:
            state.notifications.emit(
                NotificationKind.PARENTAL_ALERT, parental, now, correlation_id
            )
            await self._audit_logger.log_alert_queued(
                state.account_key, AuditEventType.PARENTAL_ALERT_QUEUED, parental, correlation_id
            )

        # Step 6: Budget alert
        over_budget = budget_alert(
            category, state.ledger, state.user.preferences.notifications, now
        )
        if over_budget:
            state.notifications.emit(
                NotificationKind.BUDGET_ALERT, over_budget, now, correlation_id
            )
            await self._audit_logger.log_alert_queued(
                state.account_key, AuditEventType.BUDGET_ALERT_QUEUED, over_budget, correlation_id
            )

        return SubmissionResult(
            transaction, xp, outcome.levels_gained, outcome.progression.streak
        )

    async def _award_xp(self, xp: int, reason: str, correlation_id: Optional[UUID] = None) -> XpOutcome:
        state = self.state
        before = state.progression
        outcome = apply_xp(before, xp)
        state.progression = outcome.progression
        await self._persist(USER_FIELD)
        await self._audit_logger.log_progression(
            state.account_key,
            xp,
            reason,
            before.level,
            outcome.progression.level,
            correlation_id or create_correlation_id(),
        )
        return outcome

    # =========================================================================
    # GOALS
    # =========================================================================

    async def add_goal(
        self,
        name: str,
        target_amount: Any,
        video_url: Optional[str] = None,
    ) -> Goal:
        state = self.state
        cleaned, target = self._validator.validate_goal(name, target_amount)
        goal = new_goal(cleaned, target, video_url)
        state.goals.append(goal)
        await self._persist(GOALS_FIELD)
        await self._audit_logger.log_goal_event(
            state.account_key,
            AuditEventType.GOAL_CREATED,
            goal.id,
            f"Goal \"{goal.name}\" created",
            {"target_amount": str(target)},
        )
        return goal

    async def contribute_to_goal(
        self,
        goal_id: str,
        amount: Any,
        now: Optional[datetime] = None,
    ) -> Optional[ContributionResult]:
        """
        Put money towards a goal.

        Returns None, changing nothing, for an unknown or completed goal.
        The full requested amount is logged as a Savings transaction even
        when the goal only absorbs part of it. If that transaction cannot be
        logged the contribution still stands.
        """
        state = self.state
        parsed = self._validator.validate_positive_amount(amount)
        goal = state.get_goal(goal_id)
        if goal is None or goal.is_complete:
            return None

        now = self._now(now)
        correlation_id = create_correlation_id()
        result = apply_contribution(goal, parsed)
        state.goals = [result.goal if g.id == goal_id else g for g in state.goals]
        await self._persist(GOALS_FIELD)
        await self._audit_logger.log_goal_event(
            state.account_key,
            AuditEventType.GOAL_CONTRIBUTED,
            goal.id,
            f"Contributed {parsed} to \"{goal.name}\"",
            {"amount": str(parsed), "current_amount": str(result.goal.current_amount)},
            correlation_id,
        )

        savings = state.categories.savings
        if savings is not None:
            try:
                await self.log_transaction(
                    parsed,
                    savings.id,
                    contribution_description(goal),
                    now=now,
                    correlation_id=correlation_id,
                )
            except (ValidationError, LimitExceeded) as e:
                await self._audit_logger.log_error(
                    "contribution_transaction_failed",
                    str(e),
                    {"goal_id": goal.id},
                    correlation_id,
                )

        if result.completed:
            await self._audit_logger.log_goal_event(
                state.account_key,
                AuditEventType.GOAL_COMPLETED,
                goal.id,
                f"Goal \"{goal.name}\" completed",
                correlation_id=correlation_id,
            )
            await self._award_xp(GOAL_COMPLETION_BONUS_XP, "goal_completed", correlation_id)

        return result

    # =========================================================================
    # QUESTS & LEARNING
    # =========================================================================

    def _evaluator(self, now: Optional[datetime]) -> QuestEvaluator:
        state = self.state
        return QuestEvaluator(
            state.ledger,
            state.categories,
            state.currency,
            self._now(now),
            state.quiz_answers,
        )

    def quest_board(self, category: QuestCategory) -> list[Quest]:
        return quests_for(category)

    def quest_progress(self, quest_id: str, now: Optional[datetime] = None) -> QuestProgress:
        return self._evaluator(now).progress(_require_quest(quest_id))

    def is_quest_complete(self, quest_id: str, now: Optional[datetime] = None) -> bool:
        return self._evaluator(now).is_complete(_require_quest(quest_id))

    def claimable(self, quest_id: str, now: Optional[datetime] = None) -> bool:
        return self._evaluator(now).is_claimable(_require_quest(quest_id), self.state.claimed_quests)

    def answer_quest_quiz(self, quest_id: str, option: int) -> bool:
        """
        Answer the question of a quiz quest.

        The first answer in a session sticks; later answers return it.
        """
        quest = _require_quest(quest_id)
        if quest.type is not QuestType.QUIZ:
            raise ValueError(f"Quest {quest_id} has no quiz")
        results = self.state.quiz_results
        if quest_id not in results:
            results[quest_id] = quest.quiz.is_correct(option)
        return results[quest_id]

    async def claim_quest(self, quest_id: str) -> bool:
        """
        Collect a quest's xp reward.

        No-op returning False if the quest was already claimed.
        """
        state = self.state
        quest = _require_quest(quest_id)
        result = claim_reward(quest.id, quest.xp_reward, state.claimed_quests, state.progression)
        if not result.awarded:
            return False
        before = state.progression
        state.progression = result.outcome.progression
        state.claimed_quests = result.claimed
        await self._persist(USER_FIELD, CLAIMED_QUESTS_FIELD)
        await self._audit_logger.log_reward_claimed(
            state.account_key, AuditEventType.QUEST_CLAIMED, "quest", quest.id, quest.xp_reward
        )
        await self._audit_logger.log_progression(
            state.account_key,
            quest.xp_reward,
            "quest",
            before.level,
            state.progression.level,
            create_correlation_id(),
        )
        return True

    async def complete_module(self, module_id: str) -> bool:
        """Award a learning module's xp once; False if already completed."""
        state = self.state
        module = _require_module(module_id)
        result = claim_reward(
            module.id, module.xp_reward, state.completed_modules, state.progression
        )
        if not result.awarded:
            return False
        before = state.progression
        state.progression = result.outcome.progression
        state.completed_modules = result.claimed
        await self._persist(USER_FIELD, COMPLETED_MODULES_FIELD)
        await self._audit_logger.log_reward_claimed(
            state.account_key, AuditEventType.MODULE_COMPLETED, "module", module.id, module.xp_reward
        )
        await self._audit_logger.log_progression(
            state.account_key,
            module.xp_reward,
            "module",
            before.level,
            state.progression.level,
            create_correlation_id(),
        )
        return True

    async def answer_module_quiz(self, module_id: str, option: int) -> bool:
        """Answer a module's quiz; a correct answer completes the module."""
        module = _require_module(module_id)
        correct = module.quiz.is_correct(option)
        if correct:
            await self.complete_module(module_id)
        return correct

    # =========================================================================
    # CATEGORIES & BUDGETS
    # =========================================================================

    async def add_category(self, name: str, emoji: str, color: str = "bg-gray-500") -> Category:
        state = self.state
        cleaned_name, cleaned_emoji = self._validator.validate_category(name, emoji)
        category = state.categories.add(cleaned_name, cleaned_emoji, color)
        await self._persist(CATEGORIES_FIELD)
        return category

    async def update_category(
        self,
        category_id: str,
        name: Optional[str] = None,
        emoji: Optional[str] = None,
        color: Optional[str] = None,
    ) -> Category:
        """Rename or restyle a category. Its role never changes."""
        state = self.state
        existing = state.categories.require(category_id)
        cleaned_name, cleaned_emoji = self._validator.validate_category(
            name if name is not None else existing.name,
            emoji if emoji is not None else existing.emoji,
        )
        updated = state.categories.replace(existing.model_copy(update={
            "name": cleaned_name,
            "emoji": cleaned_emoji,
            "color": color or existing.color,
        }))
        await self._persist(CATEGORIES_FIELD)
        return updated

    async def set_budget(
        self,
        category_id: str,
        budget: Any,
        now: Optional[datetime] = None,
    ) -> Category:
        """
        Set, change or clear (None / empty) a category's monthly budget.

        A parent with notifications enabled is told about the change.
        """
        state = self.state
        cleaned = self._validator.validate_budget(budget)
        before, after = state.categories.set_budget(category_id, cleaned)
        await self._persist(CATEGORIES_FIELD)
        await self._audit_logger.log_settings_changed(
            state.account_key,
            AuditEventType.BUDGET_CHANGED,
            "category",
            category_id,
            f"Budget for {after.name} set to {cleaned}",
            {
                "old": str(before.budget) if before.budget is not None else None,
                "new": str(cleaned) if cleaned is not None else None,
            },
        )

        if state.user.parental_controls.notifications_enabled:
            message = budget_change_message(before, after, state.currency)
            if message:
                state.notifications.emit(NotificationKind.BUDGET_CHANGED, message, self._now(now))
        return after

    # =========================================================================
    # PARENTAL CONTROLS & PREFERENCES
    # =========================================================================

    async def update_parental_controls(self, **changes: Any) -> ParentalControls:
        """Merge a partial update into the parental controls."""
        state = self.state
        cleaned = self._validator.validate_parental_changes(changes)
        controls = state.user.parental_controls.model_copy(update=cleaned)
        state.user = state.user.model_copy(update={"parental_controls": controls})
        await self._persist(USER_FIELD)
        await self._audit_logger.log_settings_changed(
            state.account_key,
            AuditEventType.PARENTAL_CONTROLS_UPDATED,
            "parental_controls",
            None,
            "Parental controls updated",
            {k: str(v) if v is not None else None for k, v in cleaned.items()},
        )
        return controls

    async def set_notifications_enabled(self, enabled: bool) -> None:
        state = self.state
        state.user = state.user.model_copy(
            update={"preferences": Preferences(notifications=bool(enabled))}
        )
        await self._persist(USER_FIELD)

    # =========================================================================
    # LINKED ACCOUNTS
    # =========================================================================

    async def link_account(
        self,
        provider: str,
        kind: AccountKind,
        transactions: Iterable[Transaction] = (),
        balance: Optional[Decimal] = None,
        now: Optional[datetime] = None,
    ) -> LinkedAccount:
        """
        Connect an external account and import its transactions.

        Imported transactions go in front of the ledger as a batch. They do
        not pass the parental gate and earn no xp or streak.
        """
        state = self.state
        cleaned = (provider or "").strip()
        if not cleaned:
            raise ValidationError([ValidationIssue(
                field="provider",
                issue_type="missing",
                message="Please choose a provider.",
            )])
        kind = AccountKind(kind)
        now = self._now(now)
        label = "Checking" if kind is AccountKind.BANK else "Credit"
        account = LinkedAccount(
            id=f"acc-{uuid4().hex[:12]}",
            provider=cleaned,
            type=kind,
            mask=f"{label} ...{random.randint(1000, 9999)}",
            balance=balance,
            connected_at=now,
        )
        imported = [
            t.model_copy(update={"source": TransactionSource.LINKED}) for t in transactions
        ]

        state.user = state.user.model_copy(
            update={"linked_accounts": [*state.user.linked_accounts, account]}
        )
        state.ledger = state.ledger.prepend_batch(imported)
        await self._persist(USER_FIELD, TRANSACTIONS_FIELD)
        await self._audit_logger.log_settings_changed(
            state.account_key,
            AuditEventType.ACCOUNT_LINKED,
            "linked_account",
            account.id,
            f"Linked {cleaned} ({account.mask})",
            {"imported": len(imported)},
        )
        return account

    # =========================================================================
    # INVESTMENTS
    # =========================================================================

    async def add_investment(
        self,
        account_name: str,
        current_value: Any,
        type: InvestmentType = InvestmentType.STOCKS,
        ticker: Optional[str] = None,
        projected_growth: Any = 0,
    ) -> Investment:
        state = self.state
        name, value, cleaned_ticker, growth = self._validator.validate_investment(
            account_name, current_value, ticker, projected_growth
        )
        investment = new_investment(name, value, InvestmentType(type), cleaned_ticker, growth)
        state.investments.append(investment)
        await self._persist(INVESTMENTS_FIELD)
        await self._log_investment(investment.id, "added")
        return investment

    async def update_investment(
        self,
        investment_id: str,
        account_name: Optional[str] = None,
        current_value: Any = None,
        type: Optional[InvestmentType] = None,
        ticker: Optional[str] = None,
        projected_growth: Any = None,
    ) -> Investment:
        state = self.state
        existing = state.get_investment(investment_id)
        if existing is None:
            raise NotFoundError(f"Investment not found: {investment_id}")
        name, value, cleaned_ticker, growth = self._validator.validate_investment(
            account_name if account_name is not None else existing.account_name,
            current_value if current_value is not None else existing.current_value,
            ticker if ticker is not None else existing.ticker,
            projected_growth if projected_growth is not None else existing.projected_growth,
        )
        updated = existing.model_copy(update={
            "account_name": name,
            "current_value": value,
            "ticker": cleaned_ticker,
            "type": InvestmentType(type) if type is not None else existing.type,
            "projected_growth": growth,
        })
        state.investments = [updated if i.id == investment_id else i for i in state.investments]
        await self._persist(INVESTMENTS_FIELD)
        await self._log_investment(investment_id, "updated")
        return updated

    async def delete_investment(self, investment_id: str) -> bool:
        state = self.state
        remaining = [i for i in state.investments if i.id != investment_id]
        if len(remaining) == len(state.investments):
            return False
        state.investments = remaining
        await self._persist(INVESTMENTS_FIELD)
        await self._log_investment(investment_id, "deleted")
        return True

    async def _log_investment(self, investment_id: str, action: str) -> None:
        await self._audit_logger.log_settings_changed(
            self.state.account_key,
            AuditEventType.INVESTMENT_CHANGED,
            "investment",
            investment_id,
            f"Investment {action}",
            {"action": action},
        )

    # =========================================================================
    # ADVICE
    # =========================================================================

    async def ask_coach(self, question: str) -> str:
        """
        Raises:
            AdviceServiceFailure: With a message safe to show the user
        """
        if self._coach is None:
            self._coach = CoachAgent()
        try:
            return await self._coach.ask(question)
        except AdviceServiceFailure as e:
            await self._audit_logger.log_advice_failed("coach", str(e.cause or e))
            raise

    async def analyze_investment(self, investment_id: str) -> str:
        """
        Raises:
            NotFoundError: If the investment does not exist
            AnalysisRateLimited: If asked again within the cooldown
            AdviceServiceFailure: With a message safe to show the user
        """
        investment = self.state.get_investment(investment_id)
        if investment is None:
            raise NotFoundError(f"Investment not found: {investment_id}")
        if self._analyst is None:
            self._analyst = AnalystAgent()
        try:
            return await self._analyst.analyze(investment)
        except AdviceServiceFailure as e:
            await self._audit_logger.log_advice_failed("analyst", str(e.cause or e))
            raise

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    def monthly_category_spending(self, now: Optional[datetime] = None) -> list[BudgetStatus]:
        state = self.state
        return monthly_category_spending(state.ledger, state.categories, self._now(now))

    def budget_watch(self, limit: int = 3, now: Optional[datetime] = None) -> list[BudgetStatus]:
        state = self.state
        return budget_watch(state.ledger, state.categories, self._now(now), limit)

    def total_spent(self) -> Decimal:
        """Everything ever spent, income and savings excluded."""
        state = self.state
        return state.ledger.total(state.categories.is_spending)

    def recent_activity(self, limit: int = 5) -> list[Transaction]:
        return self.state.ledger.recent(limit)


# =============================================================================
# FACTORY
# =============================================================================

def create_app_components(
    settings: Optional[AppSettings] = None,
) -> tuple[Session, Optional[AuditStorageInterface]]:
    """
    Factory function to create a session on the configured backend.

    Returns:
        (session, audit_storage)
    """
    settings = settings or get_settings().app
    audit_storage: Optional[AuditStorageInterface] = None

    if settings.storage_backend == "sheets":
        from spendxp.services.storage.google_sheets import (
            GoogleSheetsAuditStorage,
            GoogleSheetsClient,
            GoogleSheetsPersistence,
        )

        client = GoogleSheetsClient()
        persistence: PersistenceInterface = GoogleSheetsPersistence(client)
        audit_storage = GoogleSheetsAuditStorage(client)
    elif settings.storage_backend == "json":
        persistence = JsonFilePersistence(settings.data_path)
    else:
        persistence = InMemoryPersistence()

    session = Session(
        persistence=persistence,
        audit_logger=AuditLogger(audit_storage),
        app_settings=settings,
    )
    return session, audit_storage
