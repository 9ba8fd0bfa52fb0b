"""Chat transport capability interface and the in-process loopback binding."""

from chatwarden.transport.base import CapabilityError, ChatTransport, TransportError

__all__ = ["CapabilityError", "ChatTransport", "TransportError"]
