"""
Tests for the transaction log.

Test strategy:
1. Appends get fresh ids and clock timestamps and reach the remote
2. Failed appends come back as error results carrying the entry
3. Undo appends a reversal and never touches the original
4. Load refreshes the local cache, falling back to it when offline
"""

import asyncio
import pytest
from datetime import datetime, timezone

from src.ledger import TransactionLog
from src.models.ledger import LedgerEntryBuilder, LedgerEntryType, LoadSource
from src.services.clock import FixedClock
from src.services.storage import InMemoryBackend, InMemoryRemoteStore, LocalLedgerStore


USER = "user-1"


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return LocalLedgerStore(InMemoryBackend(), clock=clock, schema_version="3.1")


@pytest.fixture
def remote(clock):
    return InMemoryRemoteStore(clock=clock)


@pytest.fixture
def log(store, remote, clock):
    return TransactionLog(store, remote, clock=clock, log_key="transaction_log")


class TestAppend:
    """Recording financial actions."""

    def test_append_records_entry(self, log, remote, clock):
        result = asyncio.run(log.append(
            USER,
            LedgerEntryType.BILL_PAYMENT,
            "bill-1",
            {"amount": "120.00", "month": "2024-05"},
            "Paid electricity for 2024-05",
        ))

        assert result.ok
        assert result.entry.user_id == USER
        assert result.entry.timestamp == clock.now()
        assert result.entry.payload["amount"] == "120.00"
        assert asyncio.run(remote.list_entries(USER)) == [result.entry]
        assert log.entries(USER) == [result.entry]

    def test_append_accepts_type_string(self, log):
        result = asyncio.run(log.append(USER, "income_received", "income-1"))
        assert result.ok
        assert result.entry.entry_type == LedgerEntryType.INCOME_RECEIVED

    def test_every_append_gets_a_fresh_id(self, log):
        async def scenario():
            first = await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1")
            second = await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1")
            return first, second

        first, second = asyncio.run(scenario())
        assert first.entry.id != second.entry.id

    def test_unknown_type_is_rejected(self, log, remote):
        result = asyncio.run(log.append(USER, "bill_forgotten", "bill-1"))
        assert not result.ok
        assert result.error.startswith("Invalid ledger entry")
        assert remote.upserts == []

    def test_missing_user_is_rejected(self, log):
        result = asyncio.run(log.append("", LedgerEntryType.BILL_PAYMENT, "bill-1"))
        assert result.error == "User id missing for transaction logging."
        assert result.entry is None

    def test_offline_append_returns_error_with_entry(self, log, remote):
        remote.offline = True

        result = asyncio.run(log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1"))
        assert not result.ok
        assert result.error.startswith("Failed to log transaction:")
        assert result.entry is not None
        assert result.entry.subject_id == "bill-1"
        assert log.entries(USER) == []

    def test_built_entry_is_restamped(self, log, clock):
        built = LedgerEntryBuilder.bill_payment(USER, "bill-1", "Rent", "1200.00", "2024-05")
        clock.advance(hours=1)

        result = asyncio.run(log.append_entry(built))
        assert result.ok
        assert result.entry.id != built.id
        assert result.entry.timestamp == clock.now()
        assert result.entry.description == "Paid Rent for 2024-05"

    def test_history_filters_by_subject(self, log, clock):
        async def scenario():
            await log.append(USER, LedgerEntryType.BILL_CREATED, "bill-1")
            clock.advance(minutes=1)
            await log.append(USER, LedgerEntryType.ACCOUNT_CREATED, "acct-1")
            clock.advance(minutes=1)
            await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1")

        asyncio.run(scenario())
        history = log.history(USER, "bill-1")
        assert [e.entry_type for e in history] == [
            LedgerEntryType.BILL_CREATED,
            LedgerEntryType.BILL_PAYMENT,
        ]


class TestUndo:
    """Reversal entries."""

    def test_undo_appends_reversal(self, log, clock):
        async def scenario():
            paid = await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1", {"amount": "50"})
            clock.advance(minutes=1)
            undone = await log.undo(USER, paid.entry.id, reason="wrong bill")
            return paid, undone

        paid, undone = asyncio.run(scenario())
        assert undone.ok
        assert undone.entry.entry_type == LedgerEntryType.UNDO
        assert undone.entry.subject_id == "bill-1"
        assert undone.entry.payload["reverses"] == str(paid.entry.id)
        assert undone.entry.payload["reversed_payload"] == {"amount": "50"}
        assert undone.entry.payload["reason"] == "wrong bill"
        assert log.entries(USER) == [paid.entry, undone.entry]

    def test_entry_cannot_be_undone_twice(self, log, clock):
        async def scenario():
            paid = await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1")
            clock.advance(minutes=1)
            await log.undo(USER, paid.entry.id)
            clock.advance(minutes=1)
            return await log.undo(USER, paid.entry.id)

        result = asyncio.run(scenario())
        assert not result.ok
        assert "already undone" in result.error

    def test_undo_entry_cannot_be_undone(self, log, clock):
        async def scenario():
            paid = await log.append(USER, LedgerEntryType.BILL_PAYMENT, "bill-1")
            clock.advance(minutes=1)
            undone = await log.undo(USER, paid.entry.id)
            return await log.undo(USER, undone.entry.id)

        result = asyncio.run(scenario())
        assert result.error == "An undo entry cannot itself be undone."

    def test_unknown_entry(self, log):
        result = asyncio.run(log.undo(USER, "not-an-id"))
        assert result.error == "Ledger entry not found: not-an-id"


class TestLoad:
    """Pulling the ledger."""

    def test_load_refreshes_cache(self, store, remote, clock):
        writer = TransactionLog(store, remote, clock=clock, log_key="transaction_log")
        asyncio.run(writer.append(USER, LedgerEntryType.ACCOUNT_CREATED, "acct-1"))

        fresh_store = LocalLedgerStore(InMemoryBackend(), clock=clock, schema_version="3.1")
        reader = TransactionLog(fresh_store, remote, clock=clock, log_key="transaction_log")
        assert reader.entries(USER) == []

        loaded = asyncio.run(reader.load(USER))
        assert loaded.source == LoadSource.PRIMARY
        assert loaded.warning is None
        assert [e.subject_id for e in loaded.data] == ["acct-1"]
        assert [e.subject_id for e in reader.entries(USER)] == ["acct-1"]

    def test_offline_load_returns_cache_with_warning(self, log, remote):
        asyncio.run(log.append(USER, LedgerEntryType.ACCOUNT_CREATED, "acct-1"))
        remote.offline = True

        loaded = asyncio.run(log.load(USER))
        assert loaded.warning == "Failed to fetch transaction history from the cloud."
        assert [e.subject_id for e in loaded.data] == ["acct-1"]

    def test_entries_are_per_user(self, log):
        async def scenario():
            await log.append(USER, LedgerEntryType.ACCOUNT_CREATED, "acct-1")
            await log.append("user-2", LedgerEntryType.ACCOUNT_CREATED, "acct-2")

        asyncio.run(scenario())
        assert [e.subject_id for e in log.entries(USER)] == ["acct-1"]
        assert [e.subject_id for e in log.entries("user-2")] == ["acct-2"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
