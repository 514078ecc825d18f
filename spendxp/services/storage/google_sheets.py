"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a shared backend because:
1. A parent can open the spreadsheet and see the raw records
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (one teenager's ledger is small)
- No transactions (a large field spans several chunk rows, written one
  row at a time)
- Limited query capabilities (we filter in Python)

Connecting is retried; writes are not. A failed write surfaces as
PersistenceFailure and the session keeps its in-memory state.
"""

import json
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from spendxp.config import get_settings
from spendxp.models.audit import AuditEvent, AuditEventType, AuditSeverity
from spendxp.services.storage.interface import (
    USER_FIELD,
    AuditStorageInterface,
    ConnectionError,
    PersistenceFailure,
    PersistenceInterface,
    StorageError,
)


# Column mappings for the Data sheet
DATA_COLUMNS = [
    "account",
    "field",
    "chunk",
    "value_json",
    "updated_at",
]

# Sheets rejects cells over 50,000 characters. Chunks are counted in code
# points and an emoji is two characters to Sheets, so stay well under half.
CHUNK_SIZE = 20_000

# Column mappings for Audit sheet
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "account",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for connecting.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_data_sheet(self) -> gspread.Worksheet:
        """Get or create the Data worksheet."""
        return self._get_or_create(self._settings.data_sheet_name, DATA_COLUMNS, 1000)

    def get_audit_sheet(self) -> gspread.Worksheet:
        """Get or create the Audit worksheet."""
        return self._get_or_create(self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000)


class GoogleSheetsPersistence(PersistenceInterface):
    """
    Google Sheets implementation of account persistence.

    Each (account, field) is stored as JSON split over one or more rows,
    numbered by the `chunk` column and joined back in that order on load.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _find_rows(self, rows: list[list[str]], account_key: str, field: str) -> list[int]:
        """1-based sheet row indices of (account, field) in chunk order, skipping the header."""
        found = []
        for idx, row in enumerate(rows[1:], start=2):
            if len(row) >= 3 and row[0] == account_key and row[1] == field:
                chunk = int(row[2]) if row[2].isdigit() else 0
                found.append((chunk, idx))
        return [idx for _, idx in sorted(found)]

    async def load(self, account_key: str, field: str) -> Optional[Any]:
        try:
            rows = self._client.get_data_sheet().get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read {field}: {e}")

        indices = self._find_rows(rows, account_key, field)
        text = "".join(
            rows[idx - 1][3] if len(rows[idx - 1]) > 3 else ""
            for idx in indices
        )
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt value for {field}: {e}")

    async def save(self, account_key: str, field: str, value: Any) -> None:
        try:
            sheet = self._client.get_data_sheet()
            rows = sheet.get_all_values()
            text = json.dumps(value, ensure_ascii=False)
            chunks = [text[i:i + CHUNK_SIZE] for i in range(0, len(text), CHUNK_SIZE)]
            updated_at = datetime.now(timezone.utc).isoformat()
            existing = self._find_rows(rows, account_key, field)

            for number, chunk in enumerate(chunks):
                payload = [account_key, field, str(number), chunk, updated_at]
                if number < len(existing):
                    idx = existing[number]
                    sheet.update(
                        range_name=f"A{idx}:E{idx}",
                        values=[payload],
                        value_input_option="RAW",
                    )
                else:
                    sheet.append_row(payload, value_input_option="RAW")

            # Drop chunks left over from a longer previous value, bottom-up
            for idx in sorted(existing[len(chunks):], reverse=True):
                sheet.delete_rows(idx)
        except Exception as e:
            raise PersistenceFailure(f"Failed to save {field}: {e}")

    async def account_exists(self, account_key: str) -> bool:
        return await self.load(account_key, USER_FIELD) is not None

    async def delete_account(self, account_key: str) -> None:
        try:
            sheet = self._client.get_data_sheet()
            rows = sheet.get_all_values()
            # Delete bottom-up so indices stay valid
            for idx in range(len(rows), 1, -1):
                row = rows[idx - 1]
                if row and row[0] == account_key:
                    sheet.delete_rows(idx)
        except Exception as e:
            raise PersistenceFailure(f"Failed to delete account: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            account=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_recent_events(
        self,
        account: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            if account is not None and (len(row) < 5 or row[4] != account):
                continue
            try:
                events.append(self._row_to_event(row))
            except (ValueError, IndexError):
                continue  # Skip malformed rows

        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
