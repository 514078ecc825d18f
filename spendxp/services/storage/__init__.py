"""
Storage Services Package

Provides abstract interfaces and concrete implementations for per-account
persistence and the audit log. The Google Sheets backend is imported lazily
by `create_app_components` so gspread is only touched when it is selected.
"""

from spendxp.services.storage.interface import (
    ACCOUNT_FIELDS,
    AuditStorageInterface,
    ConnectionError,
    NotFoundError,
    PersistenceFailure,
    PersistenceInterface,
    StorageError,
    normalize_account_key,
)
from spendxp.services.storage.json_file import JsonFilePersistence
from spendxp.services.storage.memory import InMemoryAuditStorage, InMemoryPersistence

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "PersistenceInterface",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "PersistenceFailure",
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryPersistence",
    "JsonFilePersistence",
    # Helpers
    "ACCOUNT_FIELDS",
    "normalize_account_key",
]
