"""
Tests for the session orchestrator

End-to-end flows against in-memory storage with a fixed clock. Advice
agents get a stand-in model object, so no network access happens.
"""

import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from spendxp.agents import AdviceServiceFailure, AnalysisRateLimited, AnalystAgent, CoachAgent
from spendxp.agents.advice import COACH_ERROR_MESSAGE
from spendxp.audit import AuditLogger
from spendxp.config.settings import AppSettings, GeminiSettings
from spendxp.ledger.controls import LimitExceeded
from spendxp.models.audit import AuditEventType
from spendxp.models.finance import (
    AccountKind,
    CategoryRole,
    CurrencyCode,
    InvestmentType,
    Transaction,
    TransactionSource,
)
from spendxp.models.notification import NotificationKind
from spendxp.orchestrator import Session
from spendxp.services.credentials import AuthenticationError
from spendxp.services.notifications import CollectingSink
from spendxp.services.storage import (
    InMemoryAuditStorage,
    InMemoryPersistence,
    NotFoundError,
    PersistenceFailure,
)
from spendxp.state import NoActiveSession
from spendxp.validation import ValidationError


TZ = timezone(timedelta(hours=-5))
NOW = datetime(2024, 3, 14, 12, 0, tzinfo=TZ)
EMAIL = "sam@example.com"


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for a google.generativeai GenerativeModel."""

    def __init__(self, text="Saving is like levelling up 🎮", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return FakeResponse(self.text)


class FlakyPersistence(InMemoryPersistence):
    """Fails every write once `failing` is switched on."""

    def __init__(self):
        super().__init__()
        self.failing = False

    async def save(self, account_key, field, value):
        if self.failing:
            raise PersistenceFailure(f"cannot write {field}")
        await super().save(account_key, field, value)


class QueueWatchingPersistence(InMemoryPersistence):
    """Records how many notifications were pending at each write."""

    def __init__(self):
        super().__init__()
        self.session = None
        self.pending_at_save = []

    async def save(self, account_key, field, value):
        if self.session is not None and self.session.is_open:
            self.pending_at_save.append((field, len(self.session.notifications)))
        await super().save(account_key, field, value)


def make_session(persistence=None, audit_storage=None, **kwargs):
    return Session(
        persistence=persistence or InMemoryPersistence(),
        audit_logger=AuditLogger(audit_storage),
        app_settings=AppSettings(storage_backend="memory", notification_delay_seconds=0.5),
        clock=lambda: NOW,
        **kwargs,
    )


async def new_account(session, **kwargs):
    await session.create_account("Sam", EMAIL, kwargs.pop("currency", "USD"), **kwargs)
    return session


class TestAccountLifecycle:
    """Tests for creating, opening and closing accounts."""

    def test_create_account_defaults(self):
        """A new account starts at level 1 with the default categories."""
        async def scenario():
            persistence = InMemoryPersistence()
            session = await new_account(make_session(persistence))
            user = session.user
            assert user.progression.level == 1
            assert user.progression.xp_to_next_level == 100
            assert user.security.two_factor_enabled
            assert not user.parental_controls.spending_limit_enabled
            assert user.preferences.notifications
            assert len(session.state.categories) == 8
            assert await persistence.account_exists(EMAIL)
            assert await persistence.load(EMAIL, "goals") == []
        asyncio.run(scenario())

    def test_duplicate_account_rejected(self):
        async def scenario():
            persistence = InMemoryPersistence()
            await new_account(make_session(persistence))
            with pytest.raises(ValidationError, match="already exists"):
                await make_session(persistence).create_account("Other", " SAM@example.com", "USD")
        asyncio.run(scenario())

    def test_unsupported_currency_rejected(self):
        async def scenario():
            with pytest.raises(ValidationError, match="Unsupported currency"):
                await make_session().create_account("Sam", EMAIL, "XYZ")
        asyncio.run(scenario())

    def test_open_requires_pin_when_two_factor_enabled(self):
        async def scenario():
            persistence = InMemoryPersistence()
            session = await new_account(make_session(persistence), pin="1234")
            await session.close()
            assert not session.is_open
            with pytest.raises(AuthenticationError, match="PIN required"):
                await session.open(EMAIL)
            with pytest.raises(AuthenticationError, match="Incorrect PIN"):
                await session.open(EMAIL, "9999")
            user = await session.open("Sam@Example.com", "1234")
            assert user.email == EMAIL
        asyncio.run(scenario())

    def test_open_unknown_account(self):
        async def scenario():
            with pytest.raises(NotFoundError):
                await make_session().open("nobody@example.com")
        asyncio.run(scenario())

    def test_reset_pin_opens_session(self):
        async def scenario():
            persistence = InMemoryPersistence()
            await new_account(make_session(persistence), pin="1234")
            session = make_session(persistence)
            await session.reset_pin(EMAIL, "4321")
            assert session.is_open
            await session.close()
            await session.open(EMAIL, "4321")
        asyncio.run(scenario())

    def test_update_security_keeps_pin(self):
        async def scenario():
            session = await new_account(make_session(), pin="1234")
            old_hash = session.user.security.pin_hash
            security = await session.update_security(False)
            assert not security.two_factor_enabled
            assert security.pin_hash == old_hash
        asyncio.run(scenario())

    def test_parent_pin(self):
        async def scenario():
            session = await new_account(make_session())
            assert not session.has_parent_pin
            await session.set_parent_pin("5555")
            assert session.verify_parent_pin("5555")
            assert not session.verify_parent_pin("1111")
        asyncio.run(scenario())

    def test_operations_need_open_session(self):
        async def scenario():
            session = make_session()
            with pytest.raises(NoActiveSession):
                await session.log_transaction("5", "cat-food", "Snack")
        asyncio.run(scenario())

    def test_open_migrates_legacy_records(self):
        """Old records with flat progression and no sub-records load cleanly."""
        async def scenario():
            persistence = InMemoryPersistence()
            await persistence.save("old@example.com", "user", {
                "name": "Old",
                "email": "old@example.com",
                "level": 2,
                "xp": 30,
                "xpToNextLevel": 150,
                "streak": 4,
                "currency": "XYZ",
            })
            await persistence.save("old@example.com", "categories", [
                {"id": "cat-income", "name": "Income", "emoji": "💰", "color": "bg-brand-green"},
                {"id": "cat-savings", "name": "Savings", "emoji": "🏦", "color": "bg-blue-500"},
            ])
            await persistence.save("old@example.com", "transactions", [{
                "id": "t1",
                "amount": 12.5,
                "categoryId": "cat-food",
                "description": "Lunch",
                "date": "2024-03-13T17:00:00Z",
            }])
            session = make_session(persistence)
            user = await session.open("old@example.com")
            assert user.progression.level == 2
            assert user.progression.xp == 30
            assert user.progression.streak == 4
            assert user.currency is CurrencyCode.USD
            assert user.preferences.notifications
            assert not user.security.two_factor_enabled
            assert user.linked_accounts == []
            assert session.state.categories.get("cat-savings").role is CategoryRole.SAVINGS
            assert session.state.ledger.transactions[0].source is TransactionSource.MANUAL
        asyncio.run(scenario())


class TestTransactionPipeline:
    """Tests for log_transaction end to end."""

    def test_log_expense_awards_xp_and_streak(self):
        async def scenario():
            persistence = InMemoryPersistence()
            session = await new_account(make_session(persistence))
            result = await session.log_transaction("25", "cat-food", "Pizza")
            assert result.xp_awarded == 23
            assert result.streak == 1
            assert session.user.progression.xp == 23
            stored = await persistence.load(EMAIL, "transactions")
            assert len(stored) == 1
            assert stored[0]["description"] == "Pizza"
            stored_user = await persistence.load(EMAIL, "user")
            assert stored_user["progression"]["xp"] == 23
        asyncio.run(scenario())

    def test_income_does_not_touch_streak(self):
        async def scenario():
            session = await new_account(make_session())
            result = await session.log_transaction("40", "cat-income", "Allowance")
            assert result.xp_awarded == 15
            assert result.streak == 0
        asyncio.run(scenario())

    def test_level_up_from_one_transaction(self):
        async def scenario():
            session = await new_account(make_session())
            result = await session.log_transaction("200", "cat-shopping", "Shoes")
            # round(200 / 2) + 10 = 110
            assert result.levels_gained == 1
            assert session.user.progression.level == 2
            assert session.user.progression.xp == 10
            assert session.user.progression.xp_to_next_level == 150
        asyncio.run(scenario())

    def test_invalid_input_rejected_and_audited(self):
        async def scenario():
            audit = InMemoryAuditStorage()
            session = await new_account(make_session(audit_storage=audit))
            with pytest.raises(ValidationError):
                await session.log_transaction("abc", "cat-food", "Pizza")
            assert len(session.state.ledger) == 0
            types = [e.event_type for e in audit.events]
            assert AuditEventType.VALIDATION_FAILED in types
        asyncio.run(scenario())

    def test_limit_rejection_leaves_no_trace(self):
        """90 spent against a 100 limit: 15 more is rejected outright."""
        async def scenario():
            audit = InMemoryAuditStorage()
            session = await new_account(make_session(audit_storage=audit))
            await session.update_parental_controls(
                spending_limit_enabled=True, spending_limit_amount="100"
            )
            await session.log_transaction("90", "cat-food", "Groceries")
            xp_before = session.user.progression.xp
            with pytest.raises(LimitExceeded, match="monthly spending limit"):
                await session.log_transaction("15", "cat-food", "Snacks")
            assert len(session.state.ledger) == 1
            assert session.user.progression.xp == xp_before
            assert len(session.notifications) == 0
            assert audit.events[-1].event_type is AuditEventType.TRANSACTION_REJECTED
            # Income is never limited
            await session.log_transaction("500", "cat-income", "Birthday")
        asyncio.run(scenario())

    def test_alerts_queued_in_order(self):
        async def scenario():
            session = await new_account(make_session())
            await session.set_budget("cat-food", "100")
            await session.update_parental_controls(notifications_enabled=True)
            await session.log_transaction("90", "cat-food", "Groceries")
            await session.log_transaction("15", "cat-food", "Snacks")

            sink = CollectingSink()
            assert session.notifications.drain(sink, NOW) == 0
            assert session.notifications.drain(sink, NOW + timedelta(seconds=1)) == 3
            assert sink.messages == [
                'Parental Alert: A transaction of $90.00 for "Groceries" was just logged.',
                'Parental Alert: A transaction of $15.00 for "Snacks" was just logged.',
                "Budget Alert: You've exceeded your monthly budget for Food!",
            ]
        asyncio.run(scenario())

    def test_alerts_queued_after_every_write(self):
        """Ledger and progression are both persisted before an alert is queued."""
        async def scenario():
            persistence = QueueWatchingPersistence()
            session = make_session(persistence)
            persistence.session = session
            await new_account(session)
            await session.set_budget("cat-food", "10")
            await session.update_parental_controls(notifications_enabled=True)
            persistence.pending_at_save.clear()

            await session.log_transaction("15", "cat-food", "Snacks")
            assert persistence.pending_at_save == [("transactions", 0), ("user", 0)]
            kinds = [n.kind for n in session.notifications.pending]
            assert kinds == [NotificationKind.PARENTAL_ALERT, NotificationKind.BUDGET_ALERT]
        asyncio.run(scenario())

    def test_budget_alert_respects_preference(self):
        async def scenario():
            session = await new_account(make_session())
            await session.set_budget("cat-food", "10")
            await session.set_notifications_enabled(False)
            await session.log_transaction("15", "cat-food", "Snacks")
            assert len(session.notifications) == 0
        asyncio.run(scenario())

    def test_budget_change_notifies_parent(self):
        async def scenario():
            session = await new_account(make_session())
            await session.update_parental_controls(notifications_enabled=True)
            await session.set_budget("cat-gaming", "50")
            pending = session.notifications.pending
            assert pending[0].kind is NotificationKind.BUDGET_CHANGED
            assert pending[0].message == (
                'Parent Notification: A new budget for "Gaming" was set to $50.00.'
            )
        asyncio.run(scenario())

    def test_persistence_failure_keeps_memory_state(self):
        async def scenario():
            persistence = FlakyPersistence()
            audit = InMemoryAuditStorage()
            session = await new_account(make_session(persistence, audit))
            persistence.failing = True
            result = await session.log_transaction("10", "cat-food", "Lunch")
            assert len(session.state.ledger) == 1
            assert session.user.progression.xp == result.xp_awarded
            failed = [e for e in audit.events if e.event_type is AuditEventType.PERSISTENCE_FAILED]
            assert {e.entity_id for e in failed} == {"transactions", "user"}
        asyncio.run(scenario())


class TestGoalsAndRewards:
    """Tests for goal contributions, quests and learning modules."""

    def test_contribution_flow(self):
        """Clamp at target, bonus once, later contributions ignored."""
        async def scenario():
            session = await new_account(make_session())
            goal = await session.add_goal("Bike", "100")

            first = await session.contribute_to_goal(goal.id, "90")
            assert first.goal.current_amount == Decimal("90")
            assert not first.completed
            # round(90 / 2) + 10
            assert session.user.progression.xp == 55

            second = await session.contribute_to_goal(goal.id, "30")
            assert second.goal.current_amount == Decimal("100")
            assert second.completed
            # 55 + (15 + 10) + 50 bonus = 130 -> level 2 with 30 left
            assert session.user.progression.level == 2
            assert session.user.progression.xp == 30

            latest = session.state.ledger.transactions[0]
            assert latest.amount == Decimal("30")
            assert latest.category_id == "cat-savings"
            assert latest.description == 'Contribution to "Bike"'

            assert await session.contribute_to_goal(goal.id, "10") is None
            assert session.user.progression.xp == 30
            assert len(session.state.ledger) == 2
        asyncio.run(scenario())

    def test_contribution_to_unknown_goal(self):
        async def scenario():
            session = await new_account(make_session())
            assert await session.contribute_to_goal("missing", "10") is None
        asyncio.run(scenario())

    def test_contribution_completes_save_quest(self):
        async def scenario():
            session = await new_account(make_session())
            goal = await session.add_goal("Headphones", "50")
            assert not session.claimable("q3")
            await session.contribute_to_goal(goal.id, "20")
            assert session.claimable("q3")
            assert session.quest_progress("q3") == (Decimal("20"), Decimal("20.00"))
        asyncio.run(scenario())

    def test_quiz_first_answer_sticks(self):
        async def scenario():
            session = await new_account(make_session())
            assert session.answer_quest_quiz("q1", 0) is False
            assert session.answer_quest_quiz("q1", 1) is False
            assert not session.claimable("q1")
        asyncio.run(scenario())

    def test_claim_quest_once(self):
        async def scenario():
            persistence = InMemoryPersistence()
            session = await new_account(make_session(persistence))
            assert session.answer_quest_quiz("q1", 1)
            assert session.claimable("q1")
            assert await session.claim_quest("q1")
            assert session.user.progression.xp == 30
            assert not await session.claim_quest("q1")
            assert session.user.progression.xp == 30
            assert not session.claimable("q1")
            assert await persistence.load(EMAIL, "claimed-quests") == ["q1"]
        asyncio.run(scenario())

    def test_unknown_quest(self):
        async def scenario():
            session = await new_account(make_session())
            with pytest.raises(NotFoundError):
                await session.claim_quest("q99")
        asyncio.run(scenario())

    def test_module_quiz_completes_once(self):
        async def scenario():
            session = await new_account(make_session())
            assert not await session.answer_module_quiz("m1", 0)
            assert "m1" not in session.state.completed_modules
            assert await session.answer_module_quiz("m1", 1)
            assert session.user.progression.level == 2
            assert session.user.progression.xp == 0
            assert await session.answer_module_quiz("m1", 1)
            assert session.user.progression.xp == 0
        asyncio.run(scenario())


class TestAccountsAndInvestments:
    """Tests for linked accounts, categories and investments."""

    def test_link_account_bypasses_gate_and_xp(self):
        async def scenario():
            session = await new_account(make_session())
            await session.update_parental_controls(
                spending_limit_enabled=True, spending_limit_amount="10"
            )
            await session.log_transaction("5", "cat-food", "Gum")
            progression = session.user.progression
            imported = [
                Transaction(
                    id="tx-link-1",
                    amount=Decimal("12.50"),
                    category_id="cat-food",
                    description="Chase: Lunch",
                    date=NOW,
                ),
                Transaction(
                    id="tx-link-2",
                    amount=Decimal("29.99"),
                    category_id="cat-shopping",
                    description="Chase: Online Store",
                    date=NOW - timedelta(days=1),
                ),
            ]
            account = await session.link_account("Chase", AccountKind.BANK, imported)
            assert account.mask.startswith("Checking ...")
            assert [t.id for t in session.state.ledger][:2] == ["tx-link-1", "tx-link-2"]
            assert session.state.ledger.transactions[0].source is TransactionSource.LINKED
            assert session.user.progression == progression
            assert len(session.user.linked_accounts) == 1
        asyncio.run(scenario())

    def test_backdated_import_becomes_most_recent_expense(self):
        """Streak continuity follows ledger order, not dates."""
        async def scenario():
            session = await new_account(make_session())
            await session.log_transaction("5", "cat-food", "Gum", now=NOW - timedelta(days=1))
            assert session.user.progression.streak == 1
            old = Transaction(
                id="tx-link-old",
                amount=Decimal("3"),
                category_id="cat-food",
                description="Card: Coffee",
                date=NOW - timedelta(days=5),
            )
            await session.link_account("Visa", AccountKind.CARD, [old])
            result = await session.log_transaction("5", "cat-food", "Gum")
            assert result.streak == 1
        asyncio.run(scenario())

    def test_category_management(self):
        async def scenario():
            session = await new_account(make_session())
            category = await session.add_category("Pets", "🐶", "bg-brand-teal")
            assert session.state.categories.get(category.id).name == "Pets"
            renamed = await session.update_category("cat-savings", name="Piggy Bank")
            assert renamed.role is CategoryRole.SAVINGS
            with pytest.raises(ValidationError):
                await session.set_budget("cat-food", "-1")
        asyncio.run(scenario())

    def test_long_names_rejected_before_models(self):
        """Overlong names raise the boundary error and change nothing."""
        async def scenario():
            session = await new_account(make_session())
            with pytest.raises(ValidationError, match="Goal name"):
                await session.add_goal("x" * 150, "100")
            with pytest.raises(ValidationError, match="Category name"):
                await session.add_category("y" * 80, "🍕")
            assert session.state.goals == []
            assert len(session.state.categories) == 8
        asyncio.run(scenario())

    def test_summaries(self):
        async def scenario():
            session = await new_account(make_session())
            await session.log_transaction("100", "cat-income", "Allowance")
            await session.log_transaction("20", "cat-food", "Lunch")
            await session.log_transaction("30", "cat-savings", "Stash")
            await session.log_transaction("5", "cat-gaming", "Skin")
            assert session.total_spent() == Decimal("25")
            assert [t.description for t in session.recent_activity(2)] == ["Skin", "Stash"]
            spending = {s.category.id: s.spent for s in session.monthly_category_spending()}
            assert "cat-income" not in spending
            assert spending["cat-food"] == Decimal("20")
        asyncio.run(scenario())

    def test_investment_crud(self):
        async def scenario():
            persistence = InMemoryPersistence()
            session = await new_account(make_session(persistence))
            inv = await session.add_investment("Apple", "150", InvestmentType.STOCKS, "aapl", 8)
            assert inv.ticker == "AAPL"
            updated = await session.update_investment(inv.id, current_value="175")
            assert updated.current_value == Decimal("175")
            assert updated.ticker == "AAPL"
            assert len(await persistence.load(EMAIL, "investments")) == 1
            assert await session.delete_investment(inv.id)
            assert not await session.delete_investment(inv.id)
            assert session.state.investments == []
        asyncio.run(scenario())


class TestAdvice:
    """Tests for the coach and analyst agents."""

    settings = GeminiSettings(api_key="test-key")

    def test_coach_answers(self):
        async def scenario():
            model = FakeModel()
            session = await new_account(make_session(coach=CoachAgent(self.settings, model)))
            answer = await session.ask_coach("What is compound interest?")
            assert answer == "Saving is like levelling up 🎮"
            assert model.prompts == ["What is compound interest?"]
        asyncio.run(scenario())

    def test_coach_failure_is_wrapped_and_audited(self):
        async def scenario():
            audit = InMemoryAuditStorage()
            coach = CoachAgent(self.settings, FakeModel(error=RuntimeError("quota")))
            session = await new_account(make_session(audit_storage=audit, coach=coach))
            with pytest.raises(AdviceServiceFailure) as exc:
                await session.ask_coach("Help?")
            assert exc.value.user_message == COACH_ERROR_MESSAGE
            assert audit.events[-1].event_type is AuditEventType.ADVICE_FAILED
        asyncio.run(scenario())

    def test_analyst_cooldown(self):
        async def scenario():
            ticks = iter([100.0, 102.0, 106.0])
            model = FakeModel(text="Apple makes phones 📱")
            analyst = AnalystAgent(self.settings, model, clock=lambda: next(ticks))
            session = await new_account(make_session(analyst=analyst))
            inv = await session.add_investment("Apple", "100", ticker="AAPL")

            assert await session.analyze_investment(inv.id) == "Apple makes phones 📱"
            assert '"$AAPL"' in model.prompts[0]
            with pytest.raises(AnalysisRateLimited):
                await session.analyze_investment(inv.id)
            assert await session.analyze_investment(inv.id)
        asyncio.run(scenario())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
