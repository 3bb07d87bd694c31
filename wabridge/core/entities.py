from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any


@dataclass(slots=True)
class ConnectionState:
    connected: bool = False
    connecting: bool = False
    pairing_code: str | None = None
    phone_number: str | None = None
    error: str | None = None
    qr: str | None = None

    def copy(self) -> ConnectionState:
        return ConnectionState(**{f.name: getattr(self, f.name) for f in fields(self)})

    def to_dict(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "connecting": self.connecting,
            "pairingCode": self.pairing_code,
            "phoneNumber": self.phone_number,
            "error": self.error,
            "qr": self.qr,
        }


@dataclass(slots=True)
class LastMessage:
    body: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"body": self.body, "timestamp": self.timestamp}


@dataclass(slots=True)
class MessageRecord:
    id: str
    body: str
    timestamp: int
    is_outgoing: bool
    from_jid: str | None = None
    type: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "body": self.body,
            "timestamp": self.timestamp,
            "isOutgoing": self.is_outgoing,
        }
        if self.from_jid is not None:
            data["from"] = self.from_jid
        if self.type is not None:
            data["type"] = self.type
        return data


@dataclass(slots=True)
class Chat:
    id: str
    name: str
    is_group: bool = False
    timestamp: int = 0
    last_message: LastMessage | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "isGroup": self.is_group,
            "timestamp": self.timestamp,
            "lastMessage": self.last_message.to_dict() if self.last_message else None,
        }


@dataclass(slots=True)
class Contact:
    id: str
    name: str
    number: str
    is_group: bool = False

    @classmethod
    def from_chat(cls, chat: Chat) -> Contact:
        return cls(id=chat.id, name=chat.name, number=chat.id.split("@", 1)[0], is_group=chat.is_group)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "number": self.number, "isGroup": self.is_group}


@dataclass(slots=True)
class InboundMessage:
    """A decoded incoming message already routed to its chat."""

    id: str
    chat_id: str
    sender: str
    from_me: bool = False
    timestamp: int = 0
    text: str | None = None
    content_type: str | None = None
    content: dict[str, Any] = field(default_factory=dict)
