import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from chatwarden.datatypes.identity import Identity
from chatwarden.storage import warning_store
from chatwarden.storage.warning_store import (
    LoadResult,
    PersistResult,
    WarningStore,
    atomic_write_json,
    normalize_counts,
    quarantine_path_for,
    temp_path_for,
)


ALICE = Identity("6591234567")
BOB = Identity("6598765432")


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.mark.asyncio
async def test_load_missing_file_starts_empty(tmp_path):
    store = WarningStore(tmp_path / "data" / "warnings.json")
    assert await store.load() is LoadResult.MISSING
    assert len(store) == 0
    assert not store.degraded
    assert (tmp_path / "data").is_dir()


@pytest.mark.asyncio
async def test_load_reads_existing_counts(tmp_path):
    path = tmp_path / "warnings.json"
    path.write_text(json.dumps({"6591234567": 2, "6598765432": 1}), encoding="utf-8")

    store = WarningStore(path)
    assert await store.load() is LoadResult.LOADED
    assert store.get(ALICE) == 2
    assert store.get(BOB) == 1


@pytest.mark.asyncio
async def test_load_empty_file_is_empty_store(tmp_path):
    path = tmp_path / "warnings.json"
    path.write_text("", encoding="utf-8")

    store = WarningStore(path)
    assert await store.load() is LoadResult.LOADED
    assert len(store) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["{not json", "[1, 2]", '{"6591234567": "two"}', '{"6591234567": -1}'])
async def test_corrupt_file_is_quarantined(tmp_path, content):
    path = tmp_path / "warnings.json"
    path.write_text(content, encoding="utf-8")

    store = WarningStore(path)
    assert await store.load() is LoadResult.QUARANTINED
    assert len(store) == 0
    assert not path.exists()

    quarantined = list(tmp_path.glob("warnings.json.corrupt.*"))
    assert len(quarantined) == 1
    assert quarantined[0].read_text(encoding="utf-8") == content


@pytest.mark.asyncio
async def test_quarantined_file_is_not_overwritten_by_next_persist(tmp_path):
    path = tmp_path / "warnings.json"
    path.write_text("{broken", encoding="utf-8")

    store = WarningStore(path)
    await store.load()
    store.increment(ALICE)
    assert await store.persist() is PersistResult.WRITTEN

    assert read_json(path) == {"6591234567": 1}
    quarantined = list(tmp_path.glob("warnings.json.corrupt.*"))
    assert quarantined[0].read_text(encoding="utf-8") == "{broken"


@pytest.mark.asyncio
async def test_invalid_utf8_file_is_quarantined(tmp_path):
    path = tmp_path / "warnings.json"
    content = b'{"6591234567": 2}\xff\xfe'
    path.write_bytes(content)

    store = WarningStore(path)
    assert await store.load() is LoadResult.QUARANTINED
    assert len(store) == 0
    assert not store.degraded

    quarantined = list(tmp_path.glob("warnings.json.corrupt.*"))
    assert len(quarantined) == 1
    assert quarantined[0].read_bytes() == content


@pytest.mark.asyncio
async def test_unpreservable_corrupt_file_is_never_overwritten(tmp_path, monkeypatch):
    path = tmp_path / "warnings.json"
    path.write_text("{broken", encoding="utf-8")

    def refuse(src, dst):
        raise OSError("read-only file system")

    monkeypatch.setattr(warning_store.os, "replace", refuse)
    monkeypatch.setattr(warning_store.shutil, "copyfile", refuse)

    store = WarningStore(path)
    assert await store.load() is LoadResult.QUARANTINE_FAILED
    assert store.degraded

    store.increment(ALICE)
    assert await store.persist() is PersistResult.SKIPPED
    assert await store.flush() is PersistResult.SKIPPED
    monkeypatch.undo()

    assert path.read_text(encoding="utf-8") == "{broken"
    assert list(tmp_path.glob("warnings.json.corrupt.*")) == []
    assert store.get(ALICE) == 1


def test_quarantine_path_is_filesystem_safe(tmp_path):
    now = datetime(2024, 5, 1, 12, 30, 15, 123000, tzinfo=timezone.utc)
    path = quarantine_path_for(tmp_path / "warnings.json", now)
    assert path.name == "warnings.json.corrupt.2024-05-01T12-30-15-123Z"


def test_normalize_counts_absorbs_legacy_keys():
    counts = normalize_counts({"6591234567@c.us": 1, "6591234567": 3, "nobody": 4, "6598765432": 0})
    assert counts == {ALICE: 3}


@pytest.mark.asyncio
async def test_persist_writes_full_mapping_atomically(tmp_path):
    path = tmp_path / "warnings.json"
    store = WarningStore(path)
    await store.load()

    store.increment(ALICE)
    store.increment(ALICE)
    store.increment(BOB)
    assert await store.persist() is PersistResult.WRITTEN

    assert read_json(path) == {"6591234567": 2, "6598765432": 1}
    assert not temp_path_for(path).exists()


@pytest.mark.asyncio
async def test_reload_after_persist_round_trips(tmp_path):
    path = tmp_path / "warnings.json"
    store = WarningStore(path)
    await store.load()
    store.increment(ALICE)
    await store.persist()

    reloaded = WarningStore(path)
    assert await reloaded.load() is LoadResult.LOADED
    assert reloaded.snapshot() == {"6591234567": 1}


@pytest.mark.asyncio
async def test_crash_before_rename_keeps_previous_version(tmp_path, monkeypatch):
    path = tmp_path / "warnings.json"
    path.write_text(json.dumps({"6591234567": 1}), encoding="utf-8")

    def crash_on_replace(src, dst):
        raise OSError("power loss")

    monkeypatch.setattr(warning_store.os, "replace", crash_on_replace)
    with pytest.raises(OSError):
        atomic_write_json(path, json.dumps({"6591234567": 2}))

    assert read_json(path) == {"6591234567": 1}
    assert not temp_path_for(path).exists()


def test_stale_temp_file_is_overwritten(tmp_path):
    path = tmp_path / "warnings.json"
    temp_path_for(path).write_text("garbage from an earlier crash", encoding="utf-8")

    atomic_write_json(path, json.dumps({"6591234567": 2}))

    assert read_json(path) == {"6591234567": 2}
    assert not temp_path_for(path).exists()


@pytest.mark.asyncio
async def test_write_failure_switches_to_memory_only(tmp_path, monkeypatch):
    calls = []

    def failing_write(path, payload):
        calls.append(payload)
        raise OSError("read-only file system")

    monkeypatch.setattr(warning_store, "atomic_write_json", failing_write)

    store = WarningStore(tmp_path / "warnings.json")
    await store.load()
    store.increment(ALICE)
    assert await store.persist() is PersistResult.FAILED
    assert store.degraded

    # No further writes are attempted, but in-memory updates keep working
    store.increment(ALICE)
    assert await store.persist() is PersistResult.SKIPPED
    assert await store.flush() is PersistResult.SKIPPED
    assert len(calls) == 1
    assert store.get(ALICE) == 2


@pytest.mark.asyncio
async def test_unreadable_file_switches_to_memory_only(tmp_path, monkeypatch):
    path = tmp_path / "warnings.json"
    path.write_text("{}", encoding="utf-8")

    def unreadable(self, *args, **kwargs):
        raise PermissionError("denied")

    monkeypatch.setattr(Path, "read_bytes", unreadable)
    store = WarningStore(path)
    assert await store.load() is LoadResult.UNREADABLE
    monkeypatch.undo()

    assert store.degraded
    store.increment(ALICE)
    assert await store.persist() is PersistResult.SKIPPED
    assert read_json(path) == {}


@pytest.mark.asyncio
async def test_concurrent_persists_are_coalesced(tmp_path, monkeypatch):
    writes = []
    real_write = warning_store.atomic_write_json

    def recording_write(path, payload):
        writes.append(json.loads(payload))
        real_write(path, payload)

    monkeypatch.setattr(warning_store, "atomic_write_json", recording_write)

    path = tmp_path / "warnings.json"
    store = WarningStore(path)
    await store.load()

    pending = []
    for _ in range(10):
        store.increment(ALICE)
        pending.append(asyncio.ensure_future(store.persist()))
    results = await asyncio.gather(*pending)

    assert all(result is PersistResult.WRITTEN for result in results)
    assert 1 <= len(writes) < 10
    assert writes[-1] == {"6591234567": 10}
    assert read_json(path) == {"6591234567": 10}


@pytest.mark.asyncio
async def test_reset_and_clear(tmp_path):
    store = WarningStore(tmp_path / "warnings.json")
    store.increment(ALICE)
    store.increment(BOB)

    assert store.reset(ALICE) is True
    assert store.reset(ALICE) is False
    assert ALICE not in store
    assert store.clear() == 1
    assert store.snapshot() == {}

    assert await store.flush() is PersistResult.WRITTEN
    assert read_json(tmp_path / "warnings.json") == {}
