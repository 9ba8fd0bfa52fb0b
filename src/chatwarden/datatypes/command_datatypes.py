"""
Operator command types.

Commands are recognized from normalized chat text and represented as a tagged
variant: a :class:`CommandType` plus the parsed target, if any.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from chatwarden.datatypes.identity import Identity


class CommandType(Enum):
    """Enumeration of operator commands."""

    START = "start"
    STOP = "stop"
    CHECK_WARNINGS = "check_warnings"
    RESET_WARNINGS = "reset_warnings"
    USAGE = "usage"
    DENIED = "denied"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class Command:
    """A recognized operator command.

    Attributes:
        type: Which command was recognized.
        sender: Identity of the sender, None when unattributable.
        target: Identity the command applies to (check/reset warnings only).
        usage: Usage hint to reply with (USAGE only).
        attempted: The command the sender tried to run (DENIED only).
    """
    type: CommandType
    sender: Identity | None = None
    target: Identity | None = None
    usage: str = ""
    attempted: CommandType | None = None
