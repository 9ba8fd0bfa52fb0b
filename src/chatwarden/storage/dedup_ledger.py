"""
Bounded record of processed message identifiers.

Transports deliver at least once, and the polling fallback re-reads messages the
real-time listener has already seen. The ledger lets the engine skip those
repeats. It is bounded both by age and by size; an identifier that has been
evicted may be processed again if it is redelivered.
"""

from __future__ import annotations

import time
from collections import OrderedDict

from chatwarden.util.logger import get_logger

logger = get_logger("dedup_ledger")


DEFAULT_TTL_SECONDS = 24 * 3600
DEFAULT_MAX_ENTRIES = 25_000
DEFAULT_TRIM_FLOOR = 15_000
DEFAULT_HARD_CAP = 30_000


class DedupLedger:
    """
    Insertion-ordered set of message ids with first-seen timestamps.

    Parameters
    ----------
    ttl_seconds:
        Entries older than this are dropped by :meth:`trim`.
    max_entries:
        Size ceiling checked by :meth:`trim`.
    trim_floor:
        Size the ledger is cut down to once it exceeds ``max_entries``.
    hard_cap:
        Size at which :meth:`mark_seen` trims inline instead of waiting for
        the next scheduled trim.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        trim_floor: int = DEFAULT_TRIM_FLOOR,
        hard_cap: int | None = DEFAULT_HARD_CAP,
    ) -> None:
        if trim_floor > max_entries:
            raise ValueError("trim_floor must not exceed max_entries")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.trim_floor = trim_floor
        self.hard_cap = max(hard_cap, max_entries) if hard_cap is not None else None
        self._entries: OrderedDict[str, float] = OrderedDict()

    def seen(self, message_id: str | None) -> bool:
        return bool(message_id) and message_id in self._entries

    def mark_seen(self, message_id: str, timestamp: float | None = None) -> bool:
        """Record ``message_id``. Returns False if it was already recorded.

        The first-seen timestamp is kept; marking again does not refresh it.
        """
        if message_id in self._entries:
            return False
        self._entries[message_id] = time.time() if timestamp is None else timestamp
        if self.hard_cap is not None and len(self._entries) > self.hard_cap:
            self.trim()
        return True

    def trim(self, now: float | None = None) -> int:
        """Drop expired entries from the front, then enforce the size ceiling.

        Entries are assumed to be roughly time-ordered, so the age scan stops
        at the first entry still within the TTL. Returns the number removed.
        """
        cutoff = (time.time() if now is None else now) - self.ttl_seconds
        removed = 0

        while self._entries:
            seen_at = next(iter(self._entries.values()))
            if seen_at >= cutoff:
                break
            self._entries.popitem(last=False)
            removed += 1

        if len(self._entries) > self.max_entries:
            excess = len(self._entries) - self.trim_floor
            for _ in range(excess):
                self._entries.popitem(last=False)
            removed += excess

        if removed:
            logger.debug("[DEDUP] Trimmed %d processed id(s); %d remain", removed, len(self._entries))
        return removed

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries
