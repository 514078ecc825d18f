"""
Tests for storage backends, record migration, notifications and credentials

Storage tests use the in-memory backend, the JSON file backend under
pytest's tmp_path, and the Google Sheets backend over a fake worksheet.
"""

import asyncio
import json
import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from spendxp.ledger.categories import CategoryStore
from spendxp.ledger.ledger import Ledger
from spendxp.models.finance import CategoryRole, CurrencyCode, Goal, Transaction, UserProfile
from spendxp.models.notification import NotificationKind
from spendxp.services.credentials import (
    AuthenticationError,
    check_login_pin,
    hash_pin,
    verify_pin,
)
from spendxp.services.notifications import CollectingSink, NotificationQueue, NotificationSink
from spendxp.services.storage import (
    ACCOUNT_FIELDS,
    InMemoryPersistence,
    JsonFilePersistence,
    normalize_account_key,
)
from spendxp.services.storage.google_sheets import (
    CHUNK_SIZE,
    DATA_COLUMNS,
    GoogleSheetsPersistence,
)
from spendxp.state import (
    CURRENT_SCHEMA_VERSION,
    AppState,
    load_categories,
    migrate_user_record,
)


TZ = timezone(timedelta(hours=-5))
NOW = datetime(2024, 3, 14, 12, 0, tzinfo=TZ)
KEY = "sam@example.com"


class TestInMemoryPersistence:
    """Tests for the in-memory backend."""

    def test_load_missing_returns_none(self):
        async def scenario():
            store = InMemoryPersistence()
            assert await store.load(KEY, "user") is None
            assert not await store.account_exists(KEY)
        asyncio.run(scenario())

    def test_loaded_values_are_copies(self):
        """Mutating a loaded value never changes what is stored."""
        async def scenario():
            store = InMemoryPersistence()
            await store.save(KEY, "goals", [{"id": "g1"}])
            loaded = await store.load(KEY, "goals")
            loaded.append({"id": "g2"})
            assert await store.load(KEY, "goals") == [{"id": "g1"}]
        asyncio.run(scenario())

    def test_delete_account(self):
        async def scenario():
            store = InMemoryPersistence()
            await store.save(KEY, "user", {"name": "Sam"})
            assert await store.account_exists(KEY)
            await store.delete_account(KEY)
            assert not await store.account_exists(KEY)
        asyncio.run(scenario())


class TestJsonFilePersistence:
    """Tests for the JSON file backend."""

    def test_round_trip(self, tmp_path):
        async def scenario():
            store = JsonFilePersistence(tmp_path / "data")
            await store.save(KEY, "user", {"name": "Sam", "currency": "EUR"})
            await store.save(KEY, "claimed-quests", ["q1"])
            reopened = JsonFilePersistence(tmp_path / "data")
            assert await reopened.load(KEY, "user") == {"name": "Sam", "currency": "EUR"}
            assert await reopened.load(KEY, "claimed-quests") == ["q1"]
            assert await reopened.account_exists(KEY)
        asyncio.run(scenario())

    def test_file_name_hides_email(self, tmp_path):
        async def scenario():
            store = JsonFilePersistence(tmp_path)
            await store.save(KEY, "user", {"name": "Sam"})
            names = [p.name for p in tmp_path.iterdir()]
            assert len(names) == 1
            assert "sam" not in names[0]
            assert names[0].endswith(".json")
        asyncio.run(scenario())

    def test_accounts_are_separate(self, tmp_path):
        async def scenario():
            store = JsonFilePersistence(tmp_path)
            await store.save(KEY, "user", {"name": "Sam"})
            assert not await store.account_exists("alex@example.com")
        asyncio.run(scenario())

    def test_delete_missing_account_is_fine(self, tmp_path):
        async def scenario():
            store = JsonFilePersistence(tmp_path)
            await store.delete_account(KEY)
        asyncio.run(scenario())

    def test_account_key_normalization(self):
        assert normalize_account_key("  Sam@Example.COM ") == KEY


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the data sheet."""

    def __init__(self):
        self.rows = [list(DATA_COLUMNS)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, range_name, values, value_input_option=None):
        idx = int(range_name.split(":")[0][1:])
        self.rows[idx - 1] = list(values[0])

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheet = FakeWorksheet()

    def get_data_sheet(self):
        return self.sheet


def stored_transactions(count):
    return [
        Transaction(
            id=f"tx-{n:05d}",
            amount=Decimal("4.75"),
            category_id="cat-food",
            description=f"Pizza slice 🍕 number {n}",
            date=NOW,
        ).to_storage()
        for n in range(count)
    ]


class TestGoogleSheetsPersistence:
    """Tests for the Sheets backend against an in-memory worksheet."""

    def test_large_field_is_split_under_cell_limit(self):
        """A long ledger is spread over rows that each fit in one cell."""
        async def scenario():
            client = FakeSheetsClient()
            store = GoogleSheetsPersistence(client)
            records = stored_transactions(600)
            assert len(json.dumps(records, ensure_ascii=False)) > 50_000

            await store.save(KEY, "transactions", records)
            data_rows = client.sheet.rows[1:]
            assert len(data_rows) > 1
            assert all(len(row[3]) <= CHUNK_SIZE for row in data_rows)
            assert [row[2] for row in data_rows] == [str(n) for n in range(len(data_rows))]
            assert await store.load(KEY, "transactions") == records
        asyncio.run(scenario())

    def test_shrinking_value_drops_extra_chunks(self):
        async def scenario():
            client = FakeSheetsClient()
            store = GoogleSheetsPersistence(client)
            await store.save(KEY, "transactions", stored_transactions(600))
            await store.save(KEY, "user", {"name": "Sam"})
            short = stored_transactions(3)
            await store.save(KEY, "transactions", short)
            assert [row[1] for row in client.sheet.rows[1:]] == ["transactions", "user"]
            assert await store.load(KEY, "transactions") == short
            assert await store.load(KEY, "user") == {"name": "Sam"}
        asyncio.run(scenario())

    def test_accounts_and_delete(self):
        async def scenario():
            client = FakeSheetsClient()
            store = GoogleSheetsPersistence(client)
            await store.save(KEY, "user", {"name": "Sam"})
            await store.save("alex@example.com", "user", {"name": "Alex"})
            await store.save(KEY, "transactions", stored_transactions(600))
            await store.delete_account(KEY)
            assert not await store.account_exists(KEY)
            assert await store.load("alex@example.com", "user") == {"name": "Alex"}
            assert len(client.sheet.rows) == 2
        asyncio.run(scenario())


class TestMigration:
    """Tests for upgrading stored user records."""

    def test_flat_progression_moves_under_progression(self):
        record = migrate_user_record({
            "name": "Sam",
            "email": KEY,
            "level": 3,
            "xp": 10,
            "xpToNextLevel": 225,
            "streak": 2,
            "currency": "EUR",
        })
        assert record["progression"] == {
            "level": 3, "xp": 10, "xpToNextLevel": 225, "streak": 2,
        }
        assert "level" not in record
        assert record["currency"] == "EUR"
        assert record["schemaVersion"] == CURRENT_SCHEMA_VERSION

    def test_input_not_modified(self):
        raw = {"name": "Sam", "email": KEY, "xp": 5}
        migrate_user_record(raw)
        assert raw == {"name": "Sam", "email": KEY, "xp": 5}

    def test_unknown_currency_falls_back(self):
        record = migrate_user_record({"name": "Sam", "email": KEY, "currency": "XYZ"}, CurrencyCode.GBP)
        assert record["currency"] == "GBP"

    def test_missing_sub_records_get_defaults(self):
        record = migrate_user_record({"name": "Sam", "email": KEY})
        assert record["preferences"] == {"notifications": True}
        assert record["security"] == {"twoFactorEnabled": False}
        assert record["linkedAccounts"] == []
        assert record["parentalControls"] == {"spendingLimitEnabled": False}
        assert record["progression"]["level"] == 1
        assert record["progression"]["xpToNextLevel"] == 100

    def test_overflowing_xp_is_settled(self):
        """xp stored at or above the threshold runs the level cascade."""
        record = migrate_user_record({
            "name": "Sam",
            "email": KEY,
            "progression": {"level": 1, "xp": 120, "xpToNextLevel": 100, "streak": 0},
        })
        assert record["progression"]["level"] == 2
        assert record["progression"]["xp"] == 20
        assert record["progression"]["xpToNextLevel"] == 150

    def test_migrated_record_is_valid(self):
        user = UserProfile.model_validate(migrate_user_record({
            "name": "Sam", "email": KEY, "level": 2, "xp": 30, "xpToNextLevel": 150,
        }))
        assert user.progression.level == 2

    def test_empty_categories_load_defaults(self):
        store = load_categories([])
        assert store.savings is not None
        assert store.savings.role is CategoryRole.SAVINGS


class TestAppState:
    """Tests for serializing and reloading the whole account state."""

    def test_serialize_and_reload(self):
        user = UserProfile(name="Sam", email=KEY, currency=CurrencyCode.EUR)
        ledger = Ledger([
            Transaction(
                id="t1",
                amount=Decimal("12.50"),
                category_id="cat-food",
                description="Lunch",
                date=NOW,
            ),
        ])
        state = AppState(
            account_key=KEY,
            user=user,
            categories=CategoryStore.with_defaults(),
            ledger=ledger,
            goals=[Goal(id="g1", name="Bike", target_amount=Decimal("100"))],
            claimed_quests=["q3", "q1"],
        )
        fields = {field: state.serialize(field) for field in ACCOUNT_FIELDS}
        assert fields["claimed-quests"] == ["q1", "q3"]
        assert fields["transactions"][0]["categoryId"] == "cat-food"

        reloaded = AppState.from_storage(KEY, fields)
        assert reloaded.currency is CurrencyCode.EUR
        assert reloaded.ledger.transactions[0].amount == Decimal("12.50")
        assert reloaded.get_goal("g1").name == "Bike"
        assert reloaded.claimed_quests == frozenset({"q1", "q3"})
        assert reloaded.quiz_results == {}

    def test_unknown_field(self):
        state = AppState(KEY, UserProfile(name="Sam", email=KEY), CategoryStore.with_defaults(), Ledger())
        with pytest.raises(KeyError):
            state.serialize("nickname")

    def test_progression_setter_replaces_user(self):
        state = AppState(KEY, UserProfile(name="Sam", email=KEY), CategoryStore.with_defaults(), Ledger())
        original = state.user
        state.progression = state.progression.model_copy(update={"streak": 3})
        assert state.user.progression.streak == 3
        assert original.progression.streak == 0


class BrokenSink(NotificationSink):
    def deliver(self, notification):
        raise RuntimeError("toast service down")


class TestNotificationQueue:
    """Tests for deferred alert delivery."""

    def test_not_due_before_delay(self):
        queue = NotificationQueue(delay_seconds=0.5)
        queue.emit(NotificationKind.BUDGET_ALERT, "over", NOW)
        assert queue.due(NOW + timedelta(seconds=0.2)) == []
        assert len(queue) == 1

    def test_drain_keeps_emission_order(self):
        queue = NotificationQueue(delay_seconds=0.5)
        queue.emit(NotificationKind.PARENTAL_ALERT, "first", NOW)
        queue.emit(NotificationKind.BUDGET_ALERT, "second", NOW)
        sink = CollectingSink()
        assert queue.drain(sink, NOW + timedelta(seconds=1)) == 2
        assert sink.messages == ["first", "second"]
        assert len(queue) == 0

    def test_only_due_notifications_leave(self):
        queue = NotificationQueue(delay_seconds=0.5)
        queue.emit(NotificationKind.PARENTAL_ALERT, "early", NOW)
        queue.emit(NotificationKind.PARENTAL_ALERT, "late", NOW + timedelta(seconds=5))
        sink = CollectingSink()
        queue.drain(sink, NOW + timedelta(seconds=1))
        assert sink.messages == ["early"]
        assert [n.message for n in queue.pending] == ["late"]

    def test_sink_failure_drops_notification(self):
        queue = NotificationQueue(delay_seconds=0)
        queue.emit(NotificationKind.BUDGET_ALERT, "over", NOW)
        assert queue.drain(BrokenSink(), NOW) == 0
        assert len(queue) == 0

    def test_clear(self):
        queue = NotificationQueue()
        queue.emit(NotificationKind.BUDGET_CHANGED, "changed", NOW)
        queue.clear()
        assert queue.pending == []


class TestCredentials:
    """Tests for PIN hashing and login checks."""

    def test_hash_is_sha256_hex(self):
        digest = hash_pin("1234")
        assert len(digest) == 64
        assert digest == hash_pin("1234")

    def test_verify(self):
        digest = hash_pin("1234")
        assert verify_pin("1234", digest)
        assert not verify_pin("4321", digest)
        assert not verify_pin(None, digest)
        assert not verify_pin("1234", None)

    def test_no_pin_needed_without_two_factor(self):
        check_login_pin(None, hash_pin("1234"), two_factor_enabled=False)

    def test_no_pin_needed_when_none_set(self):
        check_login_pin(None, None, two_factor_enabled=True)

    def test_missing_and_wrong_pin(self):
        digest = hash_pin("1234")
        with pytest.raises(AuthenticationError, match="PIN required"):
            check_login_pin("", digest, two_factor_enabled=True)
        with pytest.raises(AuthenticationError, match="Incorrect PIN"):
            check_login_pin("0000", digest, two_factor_enabled=True)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
