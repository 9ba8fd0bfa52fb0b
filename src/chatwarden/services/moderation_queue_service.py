"""
Moderation Queue Service.

Serializes message handling through a single asyncio.Queue and one persistent
worker task. The transport callback only calls :meth:`enqueue`, which never
blocks; the worker runs each message's full decision procedure before taking
the next one, so strike increments and removal decisions cannot interleave.
"""

from __future__ import annotations

import asyncio
from typing import Any

from chatwarden.datatypes.action_datatypes import Decision, ModerationOutcome
from chatwarden.moderation.moderation_engine import ModerationEngine
from chatwarden.util.logger import get_logger

logger = get_logger("moderation_queue_service")


class ModerationQueueService:
    """
    Unbounded FIFO queue feeding a single consumer.

    Design notes
    ------------
    * One asyncio.Queue for the whole process.
    * One persistent worker coroutine, started lazily on the first message.
    * If the worker task dies, the next enqueue transparently restarts it.
    * An exception while processing one message is logged and the message is
      discarded; the worker moves on to the next one.
    """

    def __init__(self, engine: ModerationEngine) -> None:
        self._engine = engine
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._worker: asyncio.Task | None = None
        self._closed = False
        self.processed = 0
        self.failed = 0

    # ------------------------------------------------------
    # Public API
    # ------------------------------------------------------

    def enqueue(self, message: Any) -> None:
        """Place a message on the queue and make sure the worker is running.

        Safe to call directly from a transport event callback.
        """
        if self._closed:
            logger.debug("[QUEUE SERVICE] Dropping message enqueued after shutdown")
            return
        self._queue.put_nowait(message)

        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run_worker(), name="modq-worker")
            logger.debug("[QUEUE SERVICE] Started queue worker")

    @property
    def depth(self) -> int:
        return self._queue.qsize()

    async def join(self) -> None:
        """Wait until every enqueued message has been processed."""
        await self._queue.join()

    async def shutdown(self, drain_timeout: float | None = 5.0) -> None:
        """Stop accepting messages, let queued ones finish, then stop the worker."""
        self._closed = True
        if self._worker is not None and not self._worker.done():
            try:
                await asyncio.wait_for(self._queue.join(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning("[QUEUE SERVICE] %d message(s) still queued at shutdown", self._queue.qsize())
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
        self._worker = None
        logger.info("[QUEUE SERVICE] Queue worker shut down.")

    # -------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------

    async def _run_worker(self) -> None:
        logger.debug("[QUEUE SERVICE] Worker running")
        while True:
            message = await self._queue.get()
            try:
                outcome = await self.process_one(message)
                self._log_outcome(outcome)
            finally:
                self._queue.task_done()

    async def process_one(self, message: Any) -> ModerationOutcome:
        """Run one message through the engine, isolating any failure."""
        try:
            outcome = await self._engine.process_message(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.failed += 1
            logger.exception("[QUEUE SERVICE] Error processing queued message; discarding it")
            return ModerationOutcome(Decision.ERROR)
        self.processed += 1
        return outcome

    @staticmethod
    def _log_outcome(outcome: ModerationOutcome) -> None:
        if outcome.decision.is_violation:
            logger.info(
                "[QUEUE SERVICE] %s %s (term=%r, strikes=%d)",
                outcome.decision,
                outcome.identity,
                outcome.term,
                outcome.count,
            )
        else:
            logger.debug("[QUEUE SERVICE] %s", outcome.decision)
