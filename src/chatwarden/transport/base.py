"""
Chat transport capability interface.

The moderation core never talks to a chat network directly. It reads message
fields and requests actions through a :class:`ChatTransport`, which a concrete
client binding implements. Message and chat objects are opaque to the core;
only the binding knows their shape.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Iterable, List, Optional

MessageCallback = Callable[[Any], Any]
ReadyCallback = Callable[[], Awaitable[None]]
DisconnectedCallback = Callable[[str], Awaitable[None]]


class TransportError(Exception):
    """A transport call was rejected or failed."""


class CapabilityError(TransportError):
    """The transport lacks the privilege for an action (e.g. not a group admin)."""


class ChatTransport(ABC):
    """Narrow set of capabilities the moderation core consumes.

    Action methods raise :class:`TransportError` on failure. Event
    subscriptions register callbacks; the message callback is invoked
    synchronously and must return immediately.
    """

    def __init__(self) -> None:
        self._message_callbacks: List[MessageCallback] = []
        self._ready_callbacks: List[ReadyCallback] = []
        self._disconnected_callbacks: List[DisconnectedCallback] = []

    # --------------------------
    # Message accessors
    # --------------------------
    @abstractmethod
    def get_message_id(self, message: Any) -> Optional[str]: ...

    @abstractmethod
    def get_body(self, message: Any) -> str: ...

    @abstractmethod
    def get_sender_raw_id(self, message: Any) -> str: ...

    @abstractmethod
    def get_group_name(self, message: Any) -> Optional[str]: ...

    @abstractmethod
    def is_group_message(self, message: Any) -> bool: ...

    @abstractmethod
    def get_chat_ref(self, message: Any) -> Any: ...

    def get_timestamp(self, message: Any) -> Optional[float]:
        return None

    # --------------------------
    # Actions
    # --------------------------
    @abstractmethod
    async def send_text(self, chat_ref: Any, text: str, mentions: Iterable[str] = ()) -> None: ...

    @abstractmethod
    async def delete_message(self, message: Any, for_everyone: bool = True) -> None: ...

    @abstractmethod
    async def remove_participant(self, chat_ref: Any, raw_sender_id: str) -> None: ...

    async def refresh_message(self, message: Any) -> Any | None:
        """Return a fresh handle for ``message``, or None if the binding cannot refresh."""
        return None

    async def find_group(self, name: str) -> Any | None:
        """Return the chat reference of the group called ``name``, if joined."""
        return None

    async def fetch_recent_messages(self, chat_ref: Any, limit: int) -> List[Any]:
        """Return up to ``limit`` recent messages of a chat, oldest first."""
        return []

    async def get_self_raw_id(self) -> Optional[str]:
        """Return the raw id of the account the transport is logged in as."""
        return None

    # --------------------------
    # Lifecycle
    # --------------------------
    @abstractmethod
    async def start(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    # --------------------------
    # Event subscriptions
    # --------------------------
    def on_message(self, callback: MessageCallback) -> None:
        self._message_callbacks.append(callback)

    def on_ready(self, callback: ReadyCallback) -> None:
        self._ready_callbacks.append(callback)

    def on_disconnected(self, callback: DisconnectedCallback) -> None:
        self._disconnected_callbacks.append(callback)

    def dispatch_message(self, message: Any) -> None:
        for callback in self._message_callbacks:
            callback(message)

    async def dispatch_ready(self) -> None:
        for callback in self._ready_callbacks:
            await callback()

    async def dispatch_disconnected(self, reason: str) -> None:
        for callback in self._disconnected_callbacks:
            await callback(reason)
