"""Periodic maintenance of moderation state.

Runs on a fixed interval, independent of message volume: persists the warning
store through its coalescing persist path and trims the dedup ledger.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

from chatwarden.storage.dedup_ledger import DedupLedger
from chatwarden.storage.warning_store import WarningStore
from chatwarden.util.logger import get_logger

logger = get_logger("maintenance_scheduler")


class PeriodicTask:
    """
    Reusable runner for a coroutine that should execute every ``interval`` seconds.

    Args:
        name: Human-readable name for logging (e.g., "maintenance", "polling").
        tick: Async callable run once per interval.
        interval: Seconds to sleep between runs.
    """

    def __init__(self, name: str, tick: Callable[[], Awaitable[object]], interval: float) -> None:
        self._name = name
        self._tick = tick
        self._interval = interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run_loop(self) -> None:
        logger.info("[%s] Starting periodic task (interval=%.1fs)", self._name, self._interval)
        try:
            while True:
                await asyncio.sleep(self._interval)
                try:
                    await self._tick()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("[%s] Unexpected error during periodic run: %s", self._name, exc, exc_info=True)
        except asyncio.CancelledError:
            logger.info("[%s] Periodic task cancelled", self._name)
            raise

    def start(self) -> None:
        """Start the background task if not already running."""
        if self.running:
            logger.warning("[%s] Task already running", self._name)
            return
        self._task = asyncio.create_task(self._run_loop(), name=f"{self._name}-loop")

    async def shutdown(self) -> None:
        if self._task and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        logger.info("[%s] Scheduler shutdown complete", self._name)


class MaintenanceScheduler(PeriodicTask):
    """Autosaves the warning store and trims the dedup ledger."""

    def __init__(self, store: WarningStore, ledger: DedupLedger, interval: float) -> None:
        super().__init__("maintenance", self.run_once, interval)
        self._store = store
        self._ledger = ledger

    async def run_once(self) -> None:
        self._ledger.trim()
        await self._store.persist()
