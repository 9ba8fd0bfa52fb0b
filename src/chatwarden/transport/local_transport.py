"""
In-process loopback transport.

Keeps groups, messages and moderation actions in memory. It backs the dry-run
mode of the runtime, where the operator injects messages from the console, and
gives tests a transport whose capabilities can be switched off one by one.
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from chatwarden.transport.base import CapabilityError, ChatTransport, TransportError
from chatwarden.util.logger import get_logger

logger = get_logger("local_transport")


@dataclass(slots=True)
class LocalMessage:
    """A message held by the loopback transport."""
    message_id: Optional[str]
    body: str
    sender: str
    chat: str
    is_group: bool = True
    timestamp: float = field(default_factory=time.time)


@dataclass(slots=True)
class LocalGroup:
    """A group chat with its participants and the bot's privileges in it."""
    name: str
    participants: Set[str] = field(default_factory=set)
    bot_is_admin: bool = True
    history: List[LocalMessage] = field(default_factory=list)


@dataclass(slots=True)
class SentText:
    chat: str
    text: str
    mentions: tuple[str, ...] = ()


class LocalTransport(ChatTransport):
    """Loopback :class:`ChatTransport` implementation.

    Parameters
    ----------
    self_id:
        Raw id the bot is "logged in" as.
    """

    def __init__(self, self_id: str = "6500000000@c.us") -> None:
        super().__init__()
        self.self_id = self_id
        self.groups: Dict[str, LocalGroup] = {}
        self.sent: List[SentText] = []
        self.deleted: List[str] = []
        self.removed: List[tuple[str, str]] = []
        self.unreachable: Set[str] = set()
        self.refreshable = True
        self.delete_failures = 0
        self.started = False
        self._ids = itertools.count(1)

    # --------------------------
    # Test and console helpers
    # --------------------------
    def add_group(self, name: str, participants: Iterable[str] = (), bot_is_admin: bool = True) -> LocalGroup:
        group = LocalGroup(name=name, participants=set(participants), bot_is_admin=bot_is_admin)
        self.groups[name] = group
        return group

    def make_message(
        self,
        chat: str,
        sender: str,
        body: str,
        *,
        message_id: Optional[str] = None,
        is_group: bool = True,
    ) -> LocalMessage:
        """Build a message and record it in the group's history without delivering it."""
        message = LocalMessage(
            message_id=message_id if message_id is not None else f"local-{next(self._ids)}",
            body=body,
            sender=sender,
            chat=chat,
            is_group=is_group,
        )
        group = self.groups.get(chat)
        if is_group and group is not None:
            group.participants.add(sender)
            group.history.append(message)
        return message

    def inject(self, chat: str, sender: str, body: str, **kwargs: Any) -> LocalMessage:
        """Build a message and deliver it to the message subscribers."""
        message = self.make_message(chat, sender, body, **kwargs)
        self.dispatch_message(message)
        return message

    def texts_to(self, chat: str) -> List[str]:
        return [sent.text for sent in self.sent if sent.chat == chat]

    # --------------------------
    # Message accessors
    # --------------------------
    def get_message_id(self, message: LocalMessage) -> Optional[str]:
        return message.message_id

    def get_body(self, message: LocalMessage) -> str:
        return message.body or ""

    def get_sender_raw_id(self, message: LocalMessage) -> str:
        return message.sender or ""

    def get_group_name(self, message: LocalMessage) -> Optional[str]:
        return message.chat if message.is_group else None

    def is_group_message(self, message: LocalMessage) -> bool:
        return message.is_group

    def get_chat_ref(self, message: LocalMessage) -> str:
        return message.chat

    def get_timestamp(self, message: LocalMessage) -> Optional[float]:
        return message.timestamp

    # --------------------------
    # Actions
    # --------------------------
    async def send_text(self, chat_ref: str, text: str, mentions: Iterable[str] = ()) -> None:
        if chat_ref in self.unreachable:
            raise TransportError(f"cannot send to {chat_ref}")
        self.sent.append(SentText(chat=chat_ref, text=text, mentions=tuple(mentions)))

    async def delete_message(self, message: LocalMessage, for_everyone: bool = True) -> None:
        group = self.groups.get(message.chat)
        if group is None or not group.bot_is_admin:
            raise CapabilityError("bot is not a group admin")
        if self.delete_failures > 0:
            self.delete_failures -= 1
            raise TransportError("message handle is stale")
        if message in group.history:
            group.history.remove(message)
        self.deleted.append(message.message_id or "")

    async def remove_participant(self, chat_ref: str, raw_sender_id: str) -> None:
        group = self.groups.get(chat_ref)
        if group is None or not group.bot_is_admin:
            raise CapabilityError("bot is not a group admin")
        group.participants.discard(raw_sender_id)
        self.removed.append((chat_ref, raw_sender_id))

    async def refresh_message(self, message: LocalMessage) -> LocalMessage | None:
        return message if self.refreshable else None

    async def find_group(self, name: str) -> str | None:
        return name if name in self.groups else None

    async def fetch_recent_messages(self, chat_ref: str, limit: int) -> List[LocalMessage]:
        group = self.groups.get(chat_ref)
        if group is None:
            return []
        return sorted(group.history[-limit:], key=lambda m: m.timestamp)

    async def get_self_raw_id(self) -> Optional[str]:
        return self.self_id

    # --------------------------
    # Lifecycle
    # --------------------------
    async def start(self) -> None:
        self.started = True
        logger.info("[LOCAL TRANSPORT] Loopback transport ready (%d group(s))", len(self.groups))
        await self.dispatch_ready()

    async def close(self) -> None:
        if not self.started:
            return
        self.started = False
        await self.dispatch_disconnected("closed")
