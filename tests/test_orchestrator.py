"""
Tests for the session wiring and settings.
"""

import asyncio
import pytest
from datetime import date, datetime, timezone

from pydantic import ValidationError

from src.config import get_settings
from src.config.settings import LedgerSettings
from src.models.ledger import LedgerEntryType, LoadSource
from src.models.obligation import Obligation
from src.models.recurrence import RecurrenceDescriptor
from src.orchestrator import create_ledger_components, create_offline_session
from src.services.clock import FixedClock
from src.services.storage import InMemoryBackend, InMemoryRemoteStore


USER = "user-1"


@pytest.fixture(autouse=True)
def fast_debounce(monkeypatch):
    monkeypatch.setenv("LEDGER_DEBOUNCE_SECONDS", "0.01")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 6, 12, 8, 0, tzinfo=timezone.utc))


class TestLedgerSession:
    """End-to-end flow through a session."""

    def test_record_appends_then_updates_state(self, clock):
        remote = InMemoryRemoteStore(clock=clock)
        session = create_ledger_components(
            USER, backend=InMemoryBackend(), remote=remote, clock=clock
        )

        async def scenario():
            history = await session.open({"bills": []})
            result = await session.record(
                LedgerEntryType.BILL_CREATED,
                "bill-1",
                {"name": "Rent"},
                "Bill created: Rent",
                key="bills",
                new_value=lambda bills: [*bills, {"id": "bill-1"}],
            )
            await session.close()
            return history, result

        history, result = asyncio.run(scenario())
        assert history.source == LoadSource.PRIMARY
        assert result.ok
        assert session.slice("bills").value == [{"id": "bill-1"}]
        assert remote.value_of(USER, "bills") == [{"id": "bill-1"}]
        assert [e.subject_id for e in session.transaction_log.entries(USER)] == ["bill-1"]

    def test_failed_append_leaves_state_alone(self, clock):
        remote = InMemoryRemoteStore(clock=clock)
        session = create_ledger_components(
            USER, backend=InMemoryBackend(), remote=remote, clock=clock
        )

        async def scenario():
            await session.open({"bills": []})
            remote.offline = True
            result = await session.record(
                LedgerEntryType.BILL_DELETED,
                "bill-1",
                key="bills",
                new_value=["changed"],
            )
            await session.close()
            return result

        result = asyncio.run(scenario())
        assert not result.ok
        assert session.slice("bills").value == []

    def test_offline_session_without_remote(self, clock, tmp_path, monkeypatch):
        monkeypatch.setenv("LEDGER_STORAGE_DIR", str(tmp_path))
        session = create_ledger_components(USER, use_remote=False, clock=clock)

        async def scenario():
            history = await session.open({"accounts": []})
            session.slice("accounts").set([{"id": "acct-1"}])
            await session.close()
            return history

        history = asyncio.run(scenario())
        assert history.warning == "Failed to fetch transaction history from the cloud."
        assert list(tmp_path.glob("*.json"))
        assert session.coordinator.get("accounts").data == [{"id": "acct-1"}]

    def test_reminders_use_the_session_clock(self, clock):
        session = create_offline_session(USER, clock=clock)
        rent = Obligation(
            id="rent",
            name="Rent",
            recurrence=RecurrenceDescriptor.monthly(15),
        )
        reminders = session.reminders([rent])
        assert [(r.obligation_id, r.due_date) for r in reminders] == [("rent", date(2024, 6, 15))]
        assert [r.obligation_id for r in session.upcoming([rent])] == ["rent"]


class TestSettings:
    """Tests for ledger settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_DEBOUNCE_SECONDS")
        settings = LedgerSettings(_env_file=None)
        assert settings.schema_version == "3.1"
        assert settings.debounce_seconds == 1.0
        assert settings.override_grace_days == 7
        assert settings.reminder_days_list == [3, 1, 0]

    def test_env_override(self):
        assert get_settings().ledger.debounce_seconds == 0.01

    def test_invalid_reminder_days(self):
        with pytest.raises(ValidationError):
            LedgerSettings(reminder_days="3,soon", _env_file=None)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
