"""
Operator command recognition.

Start and stop commands are exact matches against a static synonym table.
Warning administration commands are prefix matches followed by a target token.
Only authorized principals may run commands; an unauthorized start or stop
attempt is turned into a DENIED command so the engine can answer it.
"""

from __future__ import annotations

from chatwarden.datatypes.command_datatypes import Command, CommandType
from chatwarden.datatypes.identity import DEFAULT_COUNTRY_CODE, Identity, resolve_identity
from chatwarden.util.logger import get_logger

logger = get_logger("command_interpreter")


MODE_COMMANDS: dict[str, CommandType] = {
    **dict.fromkeys(
        ("start moderation", "startmod", "start moderation now", "start", "enable moderation", "enable"),
        CommandType.START,
    ),
    **dict.fromkeys(
        ("stop moderation", "stopmod", "stop", "disable moderation", "disable"),
        CommandType.STOP,
    ),
}

WARNING_COMMANDS: tuple[tuple[str, CommandType], ...] = (
    ("check warnings", CommandType.CHECK_WARNINGS),
    ("reset warnings", CommandType.RESET_WARNINGS),
)

USAGE_HINTS: dict[CommandType, str] = {
    CommandType.CHECK_WARNINGS: "Usage: check warnings <phoneDigits>",
    CommandType.RESET_WARNINGS: "Usage: reset warnings <phoneDigits>",
}


class CommandInterpreter:
    """Turns normalized message text into :class:`Command` values.

    Parameters
    ----------
    country_code:
        Country code used to expand local numbers given as command targets.
    """

    def __init__(self, country_code: str = DEFAULT_COUNTRY_CODE) -> None:
        self._country_code = country_code

    def interpret(
        self,
        sender: Identity | None,
        is_authorized: bool,
        normalized_body: str,
    ) -> Command | None:
        """Return the command carried by ``normalized_body``, if any.

        ``normalized_body`` must already be trimmed, whitespace-collapsed and
        lowercased. Returns None when the text is not a command the sender may
        run, in which case the message continues through the content policy.
        """
        mode_command = MODE_COMMANDS.get(normalized_body)
        if mode_command is not None:
            if not is_authorized:
                logger.warning(
                    "[COMMANDS] Unauthorized %s attempt by %s",
                    mode_command,
                    sender if sender is not None else "<unknown>",
                )
                return Command(CommandType.DENIED, sender=sender, attempted=mode_command)
            return Command(mode_command, sender=sender)

        if not is_authorized:
            return None

        for prefix, command_type in WARNING_COMMANDS:
            if normalized_body == prefix or normalized_body.startswith(prefix + " "):
                return self._parse_warning_command(command_type, sender, normalized_body[len(prefix):])

        return None

    def _parse_warning_command(self, command_type: CommandType, sender: Identity | None, remainder: str) -> Command:
        tokens = remainder.split()
        target = resolve_identity(tokens[0], self._country_code) if tokens else None
        if target is None:
            return Command(CommandType.USAGE, sender=sender, usage=USAGE_HINTS[command_type], attempted=command_type)
        return Command(command_type, sender=sender, target=target)
