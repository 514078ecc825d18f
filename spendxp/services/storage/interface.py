"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the JSON file backend for local use and Google Sheets for sharing
2. Use in-memory storage for testing
3. Keep the engine decoupled from where records live

The interface is intentionally a namespaced key/value store: one JSON value
per (account, field). Whole collections are written as one unit, so a reader
never sees half of an update.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from spendxp.models.audit import AuditEvent


# Fields stored per account
USER_FIELD = "user"
CATEGORIES_FIELD = "categories"
TRANSACTIONS_FIELD = "transactions"
GOALS_FIELD = "goals"
INVESTMENTS_FIELD = "investments"
CLAIMED_QUESTS_FIELD = "claimed-quests"
COMPLETED_MODULES_FIELD = "completed-modules"

ACCOUNT_FIELDS = (
    USER_FIELD,
    CATEGORIES_FIELD,
    TRANSACTIONS_FIELD,
    GOALS_FIELD,
    INVESTMENTS_FIELD,
    CLAIMED_QUESTS_FIELD,
    COMPLETED_MODULES_FIELD,
)


def normalize_account_key(email: str) -> str:
    """Account keys are e-mail addresses, case- and whitespace-insensitive."""
    return email.lower().strip()


class PersistenceInterface(ABC):
    """
    Abstract interface for per-account persistence.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def load(self, account_key: str, field: str) -> Optional[Any]:
        """
        Load one field of an account.

        Returns:
            The stored JSON-compatible value, or None if the field is absent.
            Absence is never an error; callers fall back to defaults.
        """
        pass

    @abstractmethod
    async def save(self, account_key: str, field: str, value: Any) -> None:
        """
        Replace one field of an account.

        Raises:
            PersistenceFailure: If the write fails
        """
        pass

    @abstractmethod
    async def account_exists(self, account_key: str) -> bool:
        """True if a user record is stored for the account."""
        pass

    @abstractmethod
    async def delete_account(self, account_key: str) -> None:
        """Remove every field stored for the account."""
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        account: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events, optionally for one account.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class PersistenceFailure(StorageError):
    """A write to the storage backend failed."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
