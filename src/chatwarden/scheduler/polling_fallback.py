"""Polling fallback for missed deliveries.

Real-time delivery from a chat client can silently drop messages. Every
``interval`` seconds this task fetches the most recent messages of each target
group and enqueues the ones the dedup ledger has not seen. Messages already in
the queue but not yet processed may be enqueued twice; the engine's ledger
check discards the second copy.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from chatwarden.scheduler.maintenance_scheduler import PeriodicTask
from chatwarden.storage.dedup_ledger import DedupLedger
from chatwarden.transport.base import ChatTransport, TransportError
from chatwarden.util.logger import get_logger

logger = get_logger("polling_fallback")


class PollingFallback(PeriodicTask):
    """
    Fetch-and-enqueue loop over the target groups.

    Args:
        transport: Transport used to look up groups and fetch messages.
        ledger: Dedup ledger consulted to skip messages already processed.
        enqueue: Callable that places a message on the processing queue.
        group_names: Names of the groups to poll.
        interval: Seconds between polls.
        limit: Maximum messages fetched per group per poll.
    """

    def __init__(
        self,
        transport: ChatTransport,
        ledger: DedupLedger,
        enqueue: Callable[[Any], None],
        group_names: tuple[str, ...],
        interval: float,
        limit: int,
    ) -> None:
        super().__init__("polling", self.poll_once, interval)
        self._transport = transport
        self._ledger = ledger
        self._enqueue = enqueue
        self._group_names = group_names
        self._limit = limit
        self._chat_refs: Dict[str, Any] = {}

    async def poll_once(self) -> int:
        """Poll every target group once. Returns how many messages were enqueued."""
        enqueued = 0
        for group_name in self._group_names:
            chat_ref = await self._resolve(group_name)
            if chat_ref is None:
                continue
            try:
                messages = await self._transport.fetch_recent_messages(chat_ref, self._limit)
            except TransportError as exc:
                logger.warning("[polling] Poll fetch failed for %r: %s", group_name, exc)
                continue

            for message in messages:
                message_id = self._transport.get_message_id(message)
                if not message_id or self._ledger.seen(message_id):
                    continue
                self._enqueue(message)
                enqueued += 1

        if enqueued:
            logger.debug("[polling] Enqueued %d missed message(s)", enqueued)
        return enqueued

    async def _resolve(self, group_name: str) -> Any | None:
        chat_ref = self._chat_refs.get(group_name)
        if chat_ref is not None:
            return chat_ref
        try:
            chat_ref = await self._transport.find_group(group_name)
        except TransportError as exc:
            logger.warning("[polling] Failed to look up group %r: %s", group_name, exc)
            return None
        if chat_ref is not None:
            self._chat_refs[group_name] = chat_ref
        return chat_ref
