"""
Tests for the Google Sheets remote store (with a mocked sheets client).
"""

import asyncio
import json
import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from src.models.ledger import LedgerEntry, LedgerEntryType
from src.services.clock import FixedClock
from src.services.storage import GoogleSheetsRemoteStore, StorageError
from src.services.storage.google_sheets import LEDGER_COLUMNS, SETTINGS_COLUMNS


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, tzinfo=timezone.utc))


@pytest.fixture
def settings_sheet():
    sheet = MagicMock()
    sheet.get_all_values.return_value = [
        SETTINGS_COLUMNS,
        ["user-1", "accounts", json.dumps([{"id": "a1"}]), "2024-04-01T00:00:00+00:00"],
        ["user-2", "accounts", json.dumps([]), "2024-04-01T00:00:00+00:00"],
    ]
    return sheet


@pytest.fixture
def ledger_sheet():
    return MagicMock()


@pytest.fixture
def remote(settings_sheet, ledger_sheet, clock):
    client = MagicMock()
    client.get_settings_sheet.return_value = settings_sheet
    client.get_ledger_sheet.return_value = ledger_sheet
    return GoogleSheetsRemoteStore(client=client, clock=clock)


def entry(user_id, subject_id, day):
    return LedgerEntry(
        user_id=user_id,
        entry_type=LedgerEntryType.BILL_PAYMENT,
        subject_id=subject_id,
        timestamp=datetime(2024, 5, day, tzinfo=timezone.utc),
        payload={"amount": "10.00"},
    )


class TestKeyValue:
    """User-scoped values, one row per user and key."""

    def test_fetch_existing(self, remote):
        record = asyncio.run(remote.fetch("user-1", "accounts"))
        assert record.value == [{"id": "a1"}]
        assert record.updated_at == datetime(2024, 4, 1, tzinfo=timezone.utc)

    def test_fetch_missing(self, remote):
        assert asyncio.run(remote.fetch("user-1", "bills")) is None

    def test_upsert_updates_existing_row(self, remote, settings_sheet, clock):
        record = asyncio.run(remote.upsert("user-2", "accounts", [1]))
        assert record.updated_at == clock.now()
        settings_sheet.update.assert_called_once_with(
            range_name="A3:D3",
            values=[["user-2", "accounts", "[1]", clock.now().isoformat()]],
            value_input_option="RAW",
        )
        settings_sheet.append_row.assert_not_called()

    def test_upsert_appends_new_row(self, remote, settings_sheet, clock):
        asyncio.run(remote.upsert("user-1", "bills", []))
        settings_sheet.append_row.assert_called_once_with(
            ["user-1", "bills", "[]", clock.now().isoformat()],
            value_input_option="RAW",
        )


class TestLedger:
    """Append-only ledger rows."""

    def test_append_writes_row(self, remote, ledger_sheet):
        new_entry = entry("user-1", "bill-1", 2)
        stored = asyncio.run(remote.append_entry(new_entry))
        assert stored == new_entry
        ledger_sheet.append_row.assert_called_once_with(
            new_entry.to_sheets_row(),
            value_input_option="RAW",
        )

    def test_list_filters_user_and_sorts(self, remote, ledger_sheet):
        later = entry("user-1", "bill-2", 9)
        earlier = entry("user-1", "bill-1", 3)
        ledger_sheet.get_all_values.return_value = [
            LEDGER_COLUMNS,
            later.to_sheets_row(),
            entry("user-2", "bill-3", 1).to_sheets_row(),
            ["not-a-uuid", "yesterday", "user-1", "bill_payment", "bill-4", "", ""],
            earlier.to_sheets_row(),
        ]

        entries = asyncio.run(remote.list_entries("user-1"))
        assert [e.subject_id for e in entries] == ["bill-1", "bill-2"]
        assert entries[0].payload == {"amount": "10.00"}

    def test_list_failure_becomes_storage_error(self, remote, ledger_sheet):
        ledger_sheet.get_all_values.side_effect = RuntimeError("quota exceeded")
        with pytest.raises(StorageError, match="quota exceeded"):
            asyncio.run(remote.list_entries("user-1"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
