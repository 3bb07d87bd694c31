"""Core data types and errors for wabridge."""

from .entities import Chat, ConnectionState, Contact, InboundMessage, LastMessage, MessageRecord
from .errors import BridgeError, NotConnectedError, PairingTimeoutError, UpstreamError, ValidationError

__all__ = [
    "BridgeError",
    "Chat",
    "ConnectionState",
    "Contact",
    "InboundMessage",
    "LastMessage",
    "MessageRecord",
    "NotConnectedError",
    "PairingTimeoutError",
    "UpstreamError",
    "ValidationError",
]
