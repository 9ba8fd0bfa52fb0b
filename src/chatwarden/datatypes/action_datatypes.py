"""
Decision types produced by the moderation engine.

Every processed message yields a :class:`ModerationOutcome` describing what the
engine decided and the state it left behind, which the queue worker logs.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from chatwarden.datatypes.command_datatypes import Command
from chatwarden.datatypes.identity import Identity


class ModerationMode(Enum):
    """Whether the content policy is being enforced."""

    INACTIVE = "inactive"
    ACTIVE = "active"

    def __str__(self) -> str:
        return self.value


class Decision(Enum):
    """Enumeration of per-message decisions."""

    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    OUT_OF_SCOPE = "out_of_scope"
    COMMAND = "command"
    INACTIVE = "inactive"
    UNATTRIBUTABLE = "unattributable"
    CLEAN = "clean"
    WARNED = "warned"
    REMOVED = "removed"
    REMOVAL_FAILED = "removal_failed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value

    @property
    def is_violation(self) -> bool:
        return self in (Decision.WARNED, Decision.REMOVED, Decision.REMOVAL_FAILED)


@dataclass(slots=True)
class ModerationOutcome:
    """Result of running one message through the decision procedure.

    Attributes:
        decision: What the engine decided.
        identity: Sender identity, if one could be derived.
        count: Strike count reached by a violation, 0 for other decisions.
        term: Banned term that matched, for violations.
        command: Command that was executed, for COMMAND decisions.
        deleted: Whether the offending message was deleted.
    """
    decision: Decision
    identity: Identity | None = None
    count: int = 0
    term: str | None = None
    command: Command | None = None
    deleted: bool = False
