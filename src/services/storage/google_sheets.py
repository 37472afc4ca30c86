"""
Google Sheets Remote Store

DESIGN DECISION: Google Sheets is used as the remote store because:
1. Users can view their synced state and ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions (upserts are find-row-then-write; the SyncCoordinator
  serializes pushes per key so two writes for one key never race)
- Limited query capabilities (we filter in Python)

gspread is blocking, so every sheet call runs in a worker thread. Pushes for
different keys therefore never block each other on the event loop.
"""

import asyncio
import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from src.audit.logger import get_logger
from src.config import get_settings
from src.models.ledger import LedgerEntry, LedgerEntryType
from src.models.sync import RemoteRecord
from src.services.clock import Clock, SystemClock
from src.services.storage.interface import (
    ConnectionError,
    LedgerRemoteInterface,
    RemoteKeyValueInterface,
    StorageError,
)


# Column mappings for the user settings sheet
SETTINGS_COLUMNS = [
    "user_id",
    "key",
    "value_json",
    "updated_at",
]

# Column mappings for the ledger sheet
LEDGER_COLUMNS = [
    "id",
    "timestamp",
    "user_id",
    "entry_type",
    "subject_id",
    "payload_json",
    "description",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
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

    def _get_or_create_sheet(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
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

    def get_settings_sheet(self) -> gspread.Worksheet:
        """Get or create the user settings worksheet."""
        return self._get_or_create_sheet(
            self._settings.settings_sheet_name, SETTINGS_COLUMNS, rows=1000
        )

    def get_ledger_sheet(self) -> gspread.Worksheet:
        """Get or create the ledger worksheet."""
        return self._get_or_create_sheet(
            self._settings.ledger_sheet_name, LEDGER_COLUMNS, rows=5000
        )


class GoogleSheetsRemoteStore(RemoteKeyValueInterface, LedgerRemoteInterface):
    """
    Google Sheets implementation of the remote key-value service and ledger.

    Settings are stored one row per (user_id, key) with the value JSON-encoded.
    Ledger entries are appended one row per entry and never rewritten.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        clock: Optional[Clock] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._clock = clock or SystemClock()
        self._logger = get_logger(__name__)

    # -------------------------------------------------------------------------
    # Row conversion
    # -------------------------------------------------------------------------

    def _row_to_record(self, row: list) -> RemoteRecord:
        """Convert a settings row to a RemoteRecord."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        value_json = safe_get(2)
        updated_at = safe_get(3)
        return RemoteRecord(
            user_id=safe_get(0),
            key=safe_get(1),
            value=json.loads(value_json) if value_json else None,
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )

    def _row_to_entry(self, row: list) -> LedgerEntry:
        """Convert a ledger row to a LedgerEntry."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return LedgerEntry(
            id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            user_id=safe_get(2),
            entry_type=LedgerEntryType(safe_get(3)),
            subject_id=safe_get(4),
            payload=json.loads(safe_get(5)) if safe_get(5) else {},
            description=safe_get(6),
        )

    # -------------------------------------------------------------------------
    # Blocking sheet operations (run in a worker thread)
    # -------------------------------------------------------------------------

    def _find_settings_row(self, sheet: gspread.Worksheet, user_id: str, key: str):
        all_rows = sheet.get_all_values()
        # Row 1 is the header; sheet rows are 1-based
        for idx, row in enumerate(all_rows[1:], start=2):
            if len(row) > 1 and row[0] == user_id and row[1] == key:
                return idx, row
        return None, None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _fetch_sync(self, user_id: str, key: str) -> Optional[RemoteRecord]:
        sheet = self._client.get_settings_sheet()
        _, row = self._find_settings_row(sheet, user_id, key)
        if row is None:
            return None
        return self._row_to_record(row)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _upsert_sync(self, user_id: str, key: str, value: Any) -> RemoteRecord:
        sheet = self._client.get_settings_sheet()
        updated_at = self._clock.now()
        new_row = [user_id, key, json.dumps(value), updated_at.isoformat()]

        idx, _ = self._find_settings_row(sheet, user_id, key)
        if idx is None:
            sheet.append_row(new_row, value_input_option="RAW")
        else:
            sheet.update(
                range_name=f"A{idx}:D{idx}",
                values=[new_row],
                value_input_option="RAW",
            )
        return RemoteRecord(user_id=user_id, key=key, value=value, updated_at=updated_at)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append_sync(self, entry: LedgerEntry) -> LedgerEntry:
        sheet = self._client.get_ledger_sheet()
        sheet.append_row(entry.to_sheets_row(), value_input_option="RAW")
        return entry

    def _list_sync(self, user_id: str) -> list[LedgerEntry]:
        sheet = self._client.get_ledger_sheet()
        all_rows = sheet.get_all_values()[1:]

        entries = []
        for row in all_rows:
            if len(row) > 2 and row[2] == user_id:
                try:
                    entries.append(self._row_to_entry(row))
                except (ValueError, json.JSONDecodeError) as e:
                    self._logger.warning("ledger_row_skipped", row_id=row[0], error=str(e))
                    continue

        # Sort chronologically
        entries.sort(key=lambda e: e.timestamp)
        return entries

    # -------------------------------------------------------------------------
    # Interface
    # -------------------------------------------------------------------------

    async def fetch(self, user_id: str, key: str) -> Optional[RemoteRecord]:
        """Fetch a user's value for a key."""
        try:
            return await asyncio.to_thread(self._fetch_sync, user_id, key)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to fetch '{key}': {e}")

    async def upsert(self, user_id: str, key: str, value: Any) -> RemoteRecord:
        """Insert or replace a user's value for a key."""
        try:
            return await asyncio.to_thread(self._upsert_sync, user_id, key, value)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save '{key}': {e}")

    async def append_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Append a ledger entry."""
        try:
            return await asyncio.to_thread(self._append_sync, entry)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to append ledger entry: {e}")

    async def list_entries(self, user_id: str) -> list[LedgerEntry]:
        """All of a user's ledger entries, oldest first."""
        try:
            return await asyncio.to_thread(self._list_sync, user_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list ledger entries: {e}")
