"""
Tests for the local ledger store.

Test strategy:
1. Envelope and backup rotation on put
2. Recovery from corrupt primaries (backup, then default)
3. Write failures reported as results, never raised
4. The JSON file backend against a temporary directory
"""

import json
import pytest
from datetime import datetime, timezone

from src.models.ledger import LoadSource
from src.services.clock import FixedClock
from src.services.storage import (
    InMemoryBackend,
    JsonFileBackend,
    LocalLedgerStore,
    backup_key,
    user_scoped_key,
)


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend, clock):
    return LocalLedgerStore(backend, clock=clock, schema_version="3.1")


def envelope(data, version, timestamp="2024-01-01T00:00:00+00:00"):
    return json.dumps({"data": data, "timestamp": timestamp, "version": version})


class TestPutAndGet:
    """Basic persistence through the envelope."""

    def test_round_trip(self, store, clock):
        result = store.put("accounts", [{"id": "a1", "balance": "10.00"}])
        assert result.ok
        loaded = store.get("accounts")
        assert loaded.data == [{"id": "a1", "balance": "10.00"}]
        assert loaded.source == LoadSource.PRIMARY
        assert loaded.schema_version == "3.1"
        assert loaded.timestamp == clock.now()
        assert loaded.warning is None

    def test_serialized_envelope_shape(self, store, backend):
        store.put("theme", "dark")
        stored = json.loads(backend.read("theme"))
        assert stored == {
            "data": "dark",
            "timestamp": "2024-05-01T09:30:00Z",
            "version": "3.1",
        }

    def test_missing_key_returns_default(self, store):
        loaded = store.get("missing", {"a": 1})
        assert loaded.data == {"a": 1}
        assert loaded.source == LoadSource.DEFAULT
        assert loaded.timestamp is None
        assert loaded.warning is None

    def test_previous_blob_rotated_to_backup(self, store, backend, clock):
        store.put("bills", ["first"])
        clock.advance(minutes=5)
        store.put("bills", ["second"])

        backup = json.loads(backend.read(backup_key("bills")))
        assert backup["data"] == ["first"]
        assert store.get("bills").data == ["second"]

    def test_delete_removes_backup(self, store, backend):
        store.put("bills", [1])
        store.put("bills", [2])
        assert store.delete("bills")
        assert backend.keys() == []
        assert store.get("bills", []).source == LoadSource.DEFAULT


class TestRecovery:
    """Corrupt primaries fall back to the backup, then to the default."""

    def test_corrupt_primary_recovers_backup(self, store, backend, clock):
        first_written = clock.now()
        store.put("bills", ["first"])
        clock.advance(minutes=5)
        store.put("bills", ["second"])
        backend.write("bills", "{not json")

        loaded = store.get("bills")
        assert loaded.data == ["first"]
        assert loaded.source == LoadSource.BACKUP
        assert loaded.recovered
        assert loaded.timestamp == first_written
        assert not loaded.version_mismatch
        assert loaded.warning is None

    def test_backup_from_older_version_is_flagged(self, clock):
        backend = InMemoryBackend({
            "bills": "garbage",
            "bills_backup": envelope(["old"], "2.0"),
        })
        store = LocalLedgerStore(backend, clock=clock, schema_version="3.1")

        loaded = store.get("bills")
        assert loaded.data == ["old"]
        assert loaded.version_mismatch
        assert loaded.schema_version == "2.0"
        assert loaded.warning == (
            "Recovered data for 'bills' from an older backup version (2.0). Please review."
        )

    def test_corrupt_primary_without_backup_returns_default(self, clock):
        backend = InMemoryBackend({"bills": "{{{"})
        store = LocalLedgerStore(backend, clock=clock, schema_version="3.1")

        loaded = store.get("bills", [])
        assert loaded.data == []
        assert loaded.source == LoadSource.DEFAULT
        assert loaded.warning == "Data for 'bills' was corrupted and could not be recovered."

    def test_corrupt_primary_and_backup_returns_default(self, clock):
        backend = InMemoryBackend({"bills": "{{{", "bills_backup": "}}}"})
        store = LocalLedgerStore(backend, clock=clock, schema_version="3.1")
        assert store.get("bills", "fallback").data == "fallback"

    def test_corrupt_primary_is_not_rotated(self, clock):
        backend = InMemoryBackend({
            "bills": "garbage",
            "bills_backup": envelope(["good"], "3.1"),
        })
        store = LocalLedgerStore(backend, clock=clock, schema_version="3.1")

        assert store.put("bills", ["new"]).ok
        assert json.loads(backend.read("bills_backup"))["data"] == ["good"]

    def test_legacy_raw_value_is_migrated(self, clock):
        backend = InMemoryBackend({
            "accounts": json.dumps([1, 2, 3]),
            "prefs": json.dumps({"theme": "dark"}),
        })
        store = LocalLedgerStore(backend, clock=clock, schema_version="3.1")

        loaded = store.get("accounts")
        assert loaded.data == [1, 2, 3]
        assert loaded.source == LoadSource.PRIMARY
        assert loaded.timestamp is None
        assert loaded.schema_version is None
        assert store.get("prefs").data == {"theme": "dark"}

    def test_schema_version_key_is_accepted(self, clock):
        raw = json.dumps({
            "data": [1],
            "timestamp": "2024-01-01T00:00:00+00:00",
            "schema_version": "3.1",
        })
        store = LocalLedgerStore(InMemoryBackend({"k": raw}), clock=clock, schema_version="3.1")
        assert store.get("k").schema_version == "3.1"


class TestWriteFailures:
    """Write failures are returned, not raised."""

    def test_backend_failure_returns_error(self, store, backend):
        store.put("bills", ["kept"])
        backend.fail_writes = True

        result = store.put("bills", ["lost"])
        assert not result.ok
        assert result.blob is None
        assert "bills" in result.error
        assert store.get("bills").data == ["kept"]

    def test_unserializable_value_returns_error(self, store):
        result = store.put("bills", object())
        assert not result.ok
        assert "cannot be stored" in result.error


class TestKeys:
    """Key helpers."""

    def test_user_scoped_key(self):
        assert user_scoped_key("user-1", "accounts") == "user-1:accounts"
        assert user_scoped_key("", "accounts") == "accounts"

    def test_backup_key(self):
        assert backup_key("user-1:accounts") == "user-1:accounts_backup"


class TestJsonFileBackend:
    """File-per-key backend on a temporary directory."""

    def test_write_and_read(self, tmp_path):
        backend = JsonFileBackend(tmp_path / "ledger")
        backend.write("user-1:accounts", '{"a": 1}')
        assert backend.read("user-1:accounts") == '{"a": 1}'
        assert backend.keys() == ["user-1:accounts"]

    def test_missing_key_reads_none(self, tmp_path):
        backend = JsonFileBackend(tmp_path)
        assert backend.read("nothing") is None
        assert not backend.delete("nothing")

    def test_no_temporary_files_left_behind(self, tmp_path):
        backend = JsonFileBackend(tmp_path)
        backend.write("k", "1")
        backend.write("k", "2")
        assert [p.suffix for p in tmp_path.iterdir()] == [".json"]

    def test_put_over_undecodable_primary(self, tmp_path, clock):
        """A primary that is not UTF-8 is skipped at rotation, not fatal."""
        store = LocalLedgerStore(JsonFileBackend(tmp_path), clock=clock, schema_version="3.1")
        store.put("accounts", [1])
        store.put("accounts", [2])
        (tmp_path / "accounts.json").write_bytes(b"\xff\xfe garbage")

        assert store.get("accounts").data == [1]
        result = store.put("accounts", [3])
        assert result.ok
        assert store.get("accounts").data == [3]
        backup = json.loads((tmp_path / "accounts_backup.json").read_text(encoding="utf-8"))
        assert backup["data"] == [1]

    def test_store_over_files(self, tmp_path, clock):
        store = LocalLedgerStore(JsonFileBackend(tmp_path), clock=clock, schema_version="3.1")
        store.put("user-1:bills", ["first"])
        store.put("user-1:bills", ["second"])
        (tmp_path / "user-1%3Abills.json").write_text("corrupt", encoding="utf-8")

        loaded = store.get("user-1:bills")
        assert loaded.data == ["first"]
        assert loaded.recovered


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
