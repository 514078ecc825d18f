"""
JSON File Storage

One JSON document per account under the configured data directory. Each save
rewrites the document through a temporary file and an atomic rename.
"""

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Optional

from spendxp.services.storage.interface import (
    USER_FIELD,
    PersistenceFailure,
    PersistenceInterface,
    StorageError,
)


class JsonFilePersistence(PersistenceInterface):
    """
    File-backed persistence.

    File names are derived from a hash of the account key so that e-mail
    addresses never appear on disk as paths.
    """

    def __init__(self, data_dir: Path):
        self._dir = Path(data_dir)

    def _path(self, account_key: str) -> Path:
        digest = hashlib.sha256(account_key.encode("utf-8")).hexdigest()[:32]
        return self._dir / f"account-{digest}.json"

    def _read(self, account_key: str) -> dict[str, Any]:
        path = self._path(account_key)
        if not path.exists():
            return {}
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(f"Failed to read account data: {e}")

    async def load(self, account_key: str, field: str) -> Optional[Any]:
        return self._read(account_key).get(field)

    async def save(self, account_key: str, field: str, value: Any) -> None:
        path = self._path(account_key)
        try:
            document = self._read(account_key)
            document[field] = value
            self._dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            with tmp.open("w", encoding="utf-8") as fh:
                json.dump(document, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, path)
        except (OSError, TypeError, StorageError) as e:
            raise PersistenceFailure(f"Failed to save {field}: {e}")

    async def account_exists(self, account_key: str) -> bool:
        return USER_FIELD in self._read(account_key)

    async def delete_account(self, account_key: str) -> None:
        try:
            self._path(account_key).unlink(missing_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Failed to delete account: {e}")
