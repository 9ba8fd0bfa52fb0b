import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from chatwarden.datatypes.identity import Identity
from chatwarden.scheduler.maintenance_scheduler import MaintenanceScheduler, PeriodicTask
from chatwarden.storage.dedup_ledger import DedupLedger
from chatwarden.storage.warning_store import WarningStore


@pytest.mark.asyncio
async def test_run_once_trims_ledger_and_persists_store(tmp_path):
    store = WarningStore(tmp_path / "warnings.json")
    store.increment(Identity("6591234567"))
    ledger = DedupLedger(ttl_seconds=60, max_entries=10, trim_floor=5)
    ledger.mark_seen("expired", timestamp=0.0)

    scheduler = MaintenanceScheduler(store, ledger, interval=15)
    await scheduler.run_once()

    assert not ledger.seen("expired")
    assert json.loads((tmp_path / "warnings.json").read_text(encoding="utf-8")) == {"6591234567": 1}


@pytest.mark.asyncio
async def test_periodic_task_runs_repeatedly_until_shutdown():
    ticks = 0

    async def tick():
        nonlocal ticks
        ticks += 1

    task = PeriodicTask("test", tick, interval=0.01)
    task.start()
    assert task.running
    await asyncio.sleep(0.1)
    await task.shutdown()

    assert ticks >= 2
    assert not task.running


@pytest.mark.asyncio
async def test_periodic_task_survives_tick_errors():
    tick = AsyncMock(side_effect=[RuntimeError("boom"), None, None, None, None, None, None, None, None, None])

    task = PeriodicTask("flaky", tick, interval=0.01)
    task.start()
    await asyncio.sleep(0.1)
    await task.shutdown()

    assert tick.await_count >= 2


@pytest.mark.asyncio
async def test_start_is_idempotent():
    task = PeriodicTask("single", AsyncMock(), interval=10)
    task.start()
    first = task._task
    task.start()

    assert task._task is first
    await task.shutdown()


@pytest.mark.asyncio
async def test_shutdown_without_start_is_safe():
    scheduler = MaintenanceScheduler(MagicMock(), MagicMock(), interval=15)
    await scheduler.shutdown()
    assert not scheduler.running
