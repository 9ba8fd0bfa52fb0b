"""
Moderation decision engine.

The engine owns every piece of mutable moderation state (mode, warning store,
dedup ledger) and runs the per-message decision procedure:

  1. Skip messages already in the dedup ledger, then record the message
     (messages without an id bypass the ledger but are still moderated)
  2. Skip messages outside the moderated groups, from the bot itself, or empty
  3. Execute operator commands (these bypass the content policy and the mode)
  4. Stop if moderation is inactive or the sender cannot be identified
  5. Match the text against the banned terms
  6. Delete the message, add a strike and persist the store
  7. Warn below the threshold, remove the sender at or above it

Callers must run :meth:`ModerationEngine.process_message` for one message at a
time; the queue service guarantees this.
"""

from __future__ import annotations

from typing import Any, Dict

from chatwarden.configuration.app_configuration import ModerationSettings
from chatwarden.datatypes.action_datatypes import Decision, ModerationMode, ModerationOutcome
from chatwarden.datatypes.command_datatypes import Command, CommandType
from chatwarden.datatypes.identity import Identity, is_authorized, resolve_identity
from chatwarden.moderation.command_interpreter import CommandInterpreter
from chatwarden.moderation.text_matcher import BannedTermMatcher, normalize_text
from chatwarden.storage.dedup_ledger import DedupLedger
from chatwarden.storage.warning_store import LoadResult, WarningStore
from chatwarden.transport.base import CapabilityError, ChatTransport, TransportError
from chatwarden.util.logger import get_logger

logger = get_logger("moderation_engine")


DELETE_FAILED_NOTICE = (
    "⚠️ I detected banned content but I couldn't delete it. "
    "Please set me as group admin to allow moderation actions."
)


class ModerationEngine:
    """
    Engine context tying the matcher, interpreter, store and ledger together.

    Parameters
    ----------
    settings:
        Immutable policy and tuning values.
    transport:
        Chat transport used to read messages and issue actions.
    store:
        Warning store; built from ``settings.warnings_file`` when omitted.
    ledger:
        Dedup ledger; built from the ``settings.dedup_*`` values when omitted.
    """

    def __init__(
        self,
        settings: ModerationSettings,
        transport: ChatTransport,
        store: WarningStore | None = None,
        ledger: DedupLedger | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.store = store or WarningStore(settings.warnings_file)
        self.ledger = ledger or DedupLedger(
            ttl_seconds=settings.dedup_ttl_seconds,
            max_entries=settings.dedup_max_entries,
            trim_floor=settings.dedup_trim_floor,
            hard_cap=settings.dedup_hard_cap,
        )
        self.matcher = BannedTermMatcher(settings.banned_terms)
        self.interpreter = CommandInterpreter(settings.default_country_code)
        self.mode = ModerationMode.ACTIVE if settings.moderation_active else ModerationMode.INACTIVE
        self.self_identity: Identity | None = None
        self._scope = frozenset(settings.target_groups)

    # ------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------

    async def load_state(self) -> LoadResult:
        """Load persisted warnings. Call once before messages start flowing."""
        result = await self.store.load()
        logger.info(
            "[ENGINE] Moderation %s. Target groups: %s",
            self.mode,
            " | ".join(self.settings.target_groups) or "<none>",
        )
        return result

    async def on_transport_ready(self) -> None:
        """Cache the bot's own identity and announce in every target group."""
        try:
            self.self_identity = resolve_identity(
                await self.transport.get_self_raw_id(), self.settings.default_country_code
            )
        except TransportError as exc:
            logger.warning("[ENGINE] Could not fetch own id on ready: %s", exc)

        if self.settings.announce_on_ready:
            await self.announce_startup()

    async def announce_startup(self) -> int:
        """Post the ONLINE banner to each target group. Returns how many were sent."""
        sent = 0
        for group_name in self.settings.target_groups:
            try:
                chat_ref = await self.transport.find_group(group_name)
            except TransportError as exc:
                logger.error("[ENGINE] Failed to look up group %r: %s", group_name, exc)
                continue
            if chat_ref is None:
                logger.warning("[ENGINE] Target group %r not found. Startup notification not sent.", group_name)
                continue
            if await self._safe_send(chat_ref, self._startup_banner(group_name)):
                sent += 1
        return sent

    async def shutdown(self) -> None:
        """Flush the warning store one last time."""
        result = await self.store.flush()
        logger.info("[ENGINE] Final warnings flush: %s", result.value)

    # ------------------------------------------------------
    # Mode
    # ------------------------------------------------------

    @property
    def active(self) -> bool:
        return self.mode is ModerationMode.ACTIVE

    async def set_mode(self, mode: ModerationMode, actor: Identity | None = None) -> bool:
        """Switch moderation mode. Returns True if the mode changed.

        Starting moderation clears every warning record when
        ``reset_warnings_on_start`` is configured.
        """
        if mode is self.mode:
            return False
        self.mode = mode
        logger.info("[ENGINE] Moderation %s by %s", "started" if self.active else "stopped", actor or "console")
        if self.active and self.settings.reset_warnings_on_start:
            cleared = self.store.clear()
            logger.info("[ENGINE] Cleared %d warning record(s) on start", cleared)
            await self.store.persist()
        return True

    # ------------------------------------------------------
    # Decision procedure
    # ------------------------------------------------------

    async def process_message(self, message: Any) -> ModerationOutcome:
        """Run the full decision procedure for one inbound message."""
        transport = self.transport

        message_id = transport.get_message_id(message)
        if message_id:
            if self.ledger.seen(message_id):
                return ModerationOutcome(Decision.DUPLICATE)
            self.ledger.mark_seen(message_id)
        else:
            # Nothing to deduplicate on; moderate it anyway
            logger.debug("[ENGINE] Message without id; skipping dedup ledger")

        group_name = transport.get_group_name(message)
        if not transport.is_group_message(message) or group_name not in self._scope:
            return ModerationOutcome(Decision.OUT_OF_SCOPE)

        raw_sender = transport.get_sender_raw_id(message)
        identity = resolve_identity(raw_sender, self.settings.default_country_code)
        if identity is not None and self.self_identity is not None and identity == self.self_identity:
            return ModerationOutcome(Decision.IGNORED, identity=identity)

        body = transport.get_body(message)
        normalized = normalize_text(body)
        if not normalized:
            return ModerationOutcome(Decision.IGNORED, identity=identity)

        chat_ref = transport.get_chat_ref(message)
        command = self.interpreter.interpret(
            identity,
            is_authorized(identity, self.settings.allowed_numbers),
            normalized,
        )
        if command is not None:
            await self.execute_command(command, chat_ref, raw_sender)
            return ModerationOutcome(Decision.COMMAND, identity=identity, command=command)

        if not self.active:
            return ModerationOutcome(Decision.INACTIVE, identity=identity)

        if identity is None:
            logger.debug("[ENGINE] Discarding unattributable message %s", message_id)
            return ModerationOutcome(Decision.UNATTRIBUTABLE)

        term = self.matcher.match(normalized)
        if term is None:
            return ModerationOutcome(Decision.CLEAN, identity=identity)

        return await self._enforce(message, chat_ref, group_name or "", raw_sender, identity, term)

    async def _enforce(
        self,
        message: Any,
        chat_ref: Any,
        group_name: str,
        raw_sender: str,
        identity: Identity,
        term: str,
    ) -> ModerationOutcome:
        logger.info("[ENGINE] Banned content (%r) detected from %s in %r", term, identity, group_name)

        deleted = await self._delete_with_retry(message, chat_ref)

        count = self.store.increment(identity)
        await self.store.persist()

        threshold = self.settings.warnings_threshold
        if count < threshold:
            await self._send_warning(chat_ref, group_name, raw_sender, identity, count)
            return ModerationOutcome(Decision.WARNED, identity=identity, count=count, term=term, deleted=deleted)

        removed = await self._remove_offender(chat_ref, raw_sender, identity, count)
        decision = Decision.REMOVED if removed else Decision.REMOVAL_FAILED
        return ModerationOutcome(decision, identity=identity, count=count, term=term, deleted=deleted)

    # ------------------------------------------------------
    # Commands
    # ------------------------------------------------------

    async def execute_command(self, command: Command, chat_ref: Any, raw_sender: str = "") -> None:
        """Execute a recognized command and reply in the chat it came from."""
        if command.type is CommandType.START:
            changed = await self.set_mode(ModerationMode.ACTIVE, command.sender)
            await self._safe_send(chat_ref, "✅ Moderation started." if changed else "✅ Moderation is already active.")

        elif command.type is CommandType.STOP:
            changed = await self.set_mode(ModerationMode.INACTIVE, command.sender)
            await self._safe_send(chat_ref, "⛔ Moderation stopped." if changed else "⛔ Moderation is already stopped.")

        elif command.type is CommandType.CHECK_WARNINGS and command.target is not None:
            count = self.store.get(command.target)
            await self._safe_send(chat_ref, f"Warnings for {command.target}: {count}")

        elif command.type is CommandType.RESET_WARNINGS and command.target is not None:
            self.store.reset(command.target)
            await self.store.persist()
            logger.info("[ENGINE] Warnings for %s reset by %s", command.target, command.sender)
            await self._safe_send(chat_ref, f"Warnings for {command.target} reset to 0.")

        elif command.type is CommandType.USAGE:
            await self._safe_send(chat_ref, command.usage)

        elif command.type is CommandType.DENIED:
            verb = "start" if command.attempted is CommandType.START else "stop"
            mentions = (raw_sender,) if raw_sender else ()
            await self._safe_send(chat_ref, f"❌ You are not authorized to {verb} moderation.", mentions)

    # ------------------------------------------------------
    # Transport actions
    # ------------------------------------------------------

    async def _delete_with_retry(self, message: Any, chat_ref: Any) -> bool:
        """Delete for everyone, retrying once with a refreshed handle.

        A missing privilege is not retried. When the message cannot be
        deleted the group is told the bot needs admin rights.
        """
        try:
            await self.transport.delete_message(message, for_everyone=True)
            return True
        except CapabilityError as exc:
            error: Exception = exc
        except TransportError as exc:
            error = exc
            try:
                refreshed = await self.transport.refresh_message(message)
                if refreshed is not None:
                    await self.transport.delete_message(refreshed, for_everyone=True)
                    logger.info("[ENGINE] Deleted offending message after refresh")
                    return True
            except TransportError as retry_exc:
                error = retry_exc

        logger.warning("[ENGINE] Failed to delete offending message (bot may not be admin): %s", error)
        await self._safe_send(chat_ref, DELETE_FAILED_NOTICE)
        return False

    async def _send_warning(self, chat_ref: Any, group_name: str, raw_sender: str, identity: Identity, count: int) -> None:
        """Warn the offender privately, falling back to a mention in the group."""
        text = (
            f'You have received a warning for using banned language in "{group_name}". '
            f"Warning {count}/{self.settings.warnings_threshold}. Please follow group rules."
        )
        try:
            await self.transport.send_text(raw_sender, text)
            return
        except TransportError as exc:
            logger.debug("[ENGINE] Private warning to %s failed (%s); mentioning in group", identity, exc)
        if not await self._safe_send(chat_ref, f"@{identity} {text}", (raw_sender,)):
            logger.warning("[ENGINE] Failed to notify %s privately or in group", identity)

    async def _remove_offender(self, chat_ref: Any, raw_sender: str, identity: Identity, count: int) -> bool:
        """Announce and remove the offender. On success their record is cleared."""
        logger.info("[ENGINE] Warnings threshold reached for %s (%d). Attempting removal.", identity, count)
        await self._safe_send(chat_ref, f"🚫 @{identity} reached {count} warnings and will be removed.", (raw_sender,))
        try:
            await self.transport.remove_participant(chat_ref, raw_sender)
        except TransportError as exc:
            logger.error("[ENGINE] Failed to remove participant %s (ensure bot is admin): %s", identity, exc)
            await self._safe_send(
                chat_ref,
                f"⚠️ I would remove @{identity} for repeated banned language, but I couldn't. "
                "Please make me a group admin or remove them manually.",
                (raw_sender,),
            )
            return False

        self.store.reset(identity)
        await self.store.persist()
        logger.info("[ENGINE] Removed %s for repeated use of banned language", identity)
        return True

    async def _safe_send(self, chat_ref: Any, text: str, mentions: tuple[str, ...] = ()) -> bool:
        try:
            await self.transport.send_text(chat_ref, text, mentions)
            return True
        except TransportError as exc:
            logger.warning("[ENGINE] sendText to %s failed: %s", chat_ref, exc)
        except Exception as exc:
            logger.error("[ENGINE] Unexpected error sending to %s: %s", chat_ref, exc, exc_info=True)
        return False

    # ------------------------------------------------------
    # Introspection
    # ------------------------------------------------------

    def _startup_banner(self, group_name: str) -> str:
        admins = ", ".join(identity.display() for identity in self.settings.allowed_numbers)
        return "\n".join([
            "🤖 Moderation Bot ONLINE",
            f'Group: "{group_name}"',
            f"Moderation state: {'*Active*' if self.active else '*Inactive*'}.",
            "",
            "How to control moderation:",
            '• Admins listed in configuration can start moderation by sending the command: "start moderation"',
            '• To stop moderation send: "stop moderation"',
            f"Configured admin numbers: {admins or 'No admin numbers configured.'}",
            "",
            "Note: The bot needs to be a group admin to delete messages or remove participants.",
        ])

    def status(self) -> Dict[str, Any]:
        return {
            "mode": str(self.mode),
            "warning_records": len(self.store),
            "store_degraded": self.store.degraded,
            "processed_ids": len(self.ledger),
            "target_groups": list(self.settings.target_groups),
            "threshold": self.settings.warnings_threshold,
        }
