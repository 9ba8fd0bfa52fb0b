"""
Durable identity -> strike count storage.

Responsibilities:
- Keep strike counts in memory for fast reads and updates
- Persist the full mapping as a single JSON object using write-to-temp then
  rename, so the canonical file is always a complete old or new version
- Coalesce persist requests so at most one write is in flight at a time
- Quarantine an unreadable file instead of overwriting it
- Fall back to memory-only operation for the rest of the process lifetime
  once the storage medium rejects a write

File layout::

    {
      "6591234567": 2,
      "6598765432": 1
    }
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict

import jsonschema

from chatwarden.datatypes.identity import Identity, digits_only
from chatwarden.util.logger import get_logger

logger = get_logger("warning_store")


WARNINGS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": {"type": "integer", "minimum": 0},
}


class LoadResult(Enum):
    """Outcome of :meth:`WarningStore.load`."""

    LOADED = "loaded"
    MISSING = "missing"
    QUARANTINED = "quarantined"
    QUARANTINE_FAILED = "quarantine_failed"
    UNREADABLE = "unreadable"


class PersistResult(Enum):
    """Outcome of :meth:`WarningStore.persist`."""

    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + ".tmp")


def quarantine_path_for(path: Path, now: datetime | None = None) -> Path:
    """Return ``<file>.corrupt.<ISO-timestamp>`` with filesystem-safe separators."""
    stamp = (now or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z").replace(":", "-").replace(".", "-")
    return path.with_name(f"{path.name}.corrupt.{stamp}")


def atomic_write_json(path: Path, payload: str) -> None:
    """Write ``payload`` to a sibling temp file and rename it over ``path``.

    A stale temp file from an earlier crash is overwritten. On failure the
    temp file is removed and the error is re-raised.
    """
    tmp_path = temp_path_for(path)
    try:
        with tmp_path.open("w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def normalize_counts(raw: Dict[str, Any]) -> Dict[Identity, int]:
    """Convert a validated JSON mapping into identity-keyed counts.

    Keys are reduced to their digits to absorb older key formats such as
    ``"6591234567@c.us"``. Keys without any digits are dropped. When two keys
    collapse onto the same identity the larger count is kept. Zero counts are
    not stored.
    """
    counts: Dict[Identity, int] = {}
    for key, value in raw.items():
        digits = digits_only(key)
        if not digits:
            logger.warning("[WARNING STORE] Dropping entry with non-numeric key %r", key)
            continue
        count = int(value)
        if count <= 0:
            continue
        identity = Identity(digits)
        counts[identity] = max(count, counts.get(identity, 0))
    return counts


class WarningStore:
    """
    In-memory strike counts backed by an atomically written JSON file.

    All reads and updates operate on the in-memory map. :meth:`persist`
    schedules a write of the full map; requests arriving while a write is in
    flight are merged into a single follow-up write.

    Parameters
    ----------
    path:
        Location of the canonical JSON file.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._counts: Dict[Identity, int] = {}
        self._degraded = False
        self._dirty = False
        self._writer: asyncio.Task[PersistResult] | None = None
        self._last_result = PersistResult.SKIPPED

    # --------------------------
    # In-memory API
    # --------------------------
    def get(self, identity: Identity) -> int:
        return self._counts.get(identity, 0)

    def increment(self, identity: Identity) -> int:
        """Add one strike for ``identity`` and return the new count."""
        count = self._counts.get(identity, 0) + 1
        self._counts[identity] = count
        return count

    def reset(self, identity: Identity) -> bool:
        """Remove the record for ``identity``. Returns True if one existed."""
        return self._counts.pop(identity, None) is not None

    def clear(self) -> int:
        """Remove every record and return how many were removed."""
        removed = len(self._counts)
        self._counts.clear()
        return removed

    def snapshot(self) -> Dict[str, int]:
        """Return a plain ``{digits: count}`` copy of the current state."""
        return {str(identity): count for identity, count in self._counts.items()}

    @property
    def degraded(self) -> bool:
        """True once the store has switched to memory-only operation."""
        return self._degraded

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, identity: object) -> bool:
        return identity in self._counts

    # --------------------------
    # Loading
    # --------------------------
    async def load(self) -> LoadResult:
        """Replace the in-memory map with the contents of the canonical file.

        A missing file yields an empty store. A file that cannot be parsed or
        does not match the expected shape is moved aside to
        ``<file>.corrupt.<timestamp>`` and the store starts empty. If it cannot
        be preserved, or any other read failure occurs, the store switches to
        memory-only mode so the file on disk is never overwritten.
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            # A read-only medium can still hold a readable file
            pass

        try:
            raw_bytes = await asyncio.to_thread(self.path.read_bytes)
        except FileNotFoundError:
            self._counts = {}
            logger.info("[WARNING STORE] No warnings file at %s; starting empty", self.path)
            return LoadResult.MISSING
        except OSError as exc:
            self._counts = {}
            self._enter_degraded_mode("read", exc)
            return LoadResult.UNREADABLE

        try:
            data = json.loads(raw_bytes.decode("utf-8") or "{}")
            jsonschema.validate(data, WARNINGS_SCHEMA)
        except (UnicodeDecodeError, json.JSONDecodeError, jsonschema.ValidationError) as exc:
            self._counts = {}
            if not await asyncio.to_thread(self._quarantine, exc):
                # The only copy of the old data is still at the canonical path
                self._enter_degraded_mode("quarantine", OSError(f"could not preserve corrupted file: {exc}"))
                return LoadResult.QUARANTINE_FAILED
            return LoadResult.QUARANTINED

        self._counts = normalize_counts(data)
        logger.info("[WARNING STORE] Loaded %d warning record(s) from %s", len(self._counts), self.path)
        return LoadResult.LOADED

    def _quarantine(self, error: Exception) -> bool:
        """Preserve the corrupted file under a timestamped name. Returns False if neither a move nor a copy worked."""
        corrupt_path = quarantine_path_for(self.path)
        try:
            os.replace(self.path, corrupt_path)
        except OSError as rename_exc:
            logger.error("[WARNING STORE] Failed to move corrupted warnings file aside: %s", rename_exc)
            try:
                shutil.copyfile(self.path, corrupt_path)
            except OSError as copy_exc:
                logger.error("[WARNING STORE] Failed to copy corrupted warnings file: %s", copy_exc)
                return False
        logger.warning(
            "[WARNING STORE] Warnings file corrupted (%s); moved to %s. Starting with empty warnings store.",
            error,
            corrupt_path,
        )
        return True

    # --------------------------
    # Persistence
    # --------------------------
    def request_persist(self) -> asyncio.Task[PersistResult]:
        """Schedule a write of the current state and return the writer task.

        If a writer is already running it picks up this request with one more
        write after its current one. Must be called from a running event loop.
        """
        self._dirty = True
        if self._writer is None or self._writer.done():
            self._writer = asyncio.get_running_loop().create_task(self._drain(), name="warning-store-writer")
        return self._writer

    async def persist(self) -> PersistResult:
        """Write the current state and wait until a write containing it has finished."""
        if self._degraded:
            return PersistResult.SKIPPED
        return await asyncio.shield(self.request_persist())

    async def flush(self) -> PersistResult:
        """Wait for any in-flight write, then write once more. Used at shutdown."""
        if self._writer is not None and not self._writer.done():
            await asyncio.shield(self._writer)
        return await self.persist()

    async def _drain(self) -> PersistResult:
        result = self._last_result
        while self._dirty and not self._degraded:
            self._dirty = False
            payload = json.dumps(self.snapshot(), indent=2, sort_keys=True)
            try:
                await asyncio.to_thread(self._write, payload)
                result = PersistResult.WRITTEN
            except OSError as exc:
                self._enter_degraded_mode("write", exc)
                result = PersistResult.FAILED
        if self._degraded and result is not PersistResult.FAILED:
            result = PersistResult.SKIPPED
        self._last_result = result
        return result

    def _write(self, payload: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            pass
        atomic_write_json(self.path, payload)

    def _enter_degraded_mode(self, operation: str, error: OSError) -> None:
        if self._degraded:
            return
        self._degraded = True
        logger.error(
            "[WARNING STORE] Failed to %s warnings file %s (%s). Continuing with in-memory store only.",
            operation,
            self.path,
            error,
        )
