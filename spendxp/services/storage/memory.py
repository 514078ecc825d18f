"""
In-memory storage backends.

Used by the test-suite and for throwaway sessions. Values are deep-copied on
the way in and out so callers can never mutate stored state by reference.
"""

import copy
from typing import Any, Optional

from spendxp.models.audit import AuditEvent
from spendxp.services.storage.interface import (
    USER_FIELD,
    AuditStorageInterface,
    PersistenceInterface,
)


class InMemoryPersistence(PersistenceInterface):

    def __init__(self):
        self._data: dict[str, dict[str, Any]] = {}

    async def load(self, account_key: str, field: str) -> Optional[Any]:
        value = self._data.get(account_key, {}).get(field)
        return copy.deepcopy(value)

    async def save(self, account_key: str, field: str, value: Any) -> None:
        self._data.setdefault(account_key, {})[field] = copy.deepcopy(value)

    async def account_exists(self, account_key: str) -> bool:
        return USER_FIELD in self._data.get(account_key, {})

    async def delete_account(self, account_key: str) -> None:
        self._data.pop(account_key, None)


class InMemoryAuditStorage(AuditStorageInterface):

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(
        self,
        account: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = [e for e in reversed(self._events) if account is None or e.account == account]
        return events[:limit]
