"""In-memory chat list and per-chat message cache."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Any

from wabridge.core.entities import Chat, Contact, InboundMessage, LastMessage, MessageRecord

MEDIA_PLACEHOLDER = "[Media]"

# content types whose ``text`` is the message itself rather than a media caption
TEXT_CONTENT_TYPES = frozenset({None, "text", "unknown"})


def extract_body(message: InboundMessage) -> str:
    """Best-effort text: plain/extended text, then image caption, then a placeholder.

    waton folds video, document and other media captions into ``text`` as
    well; only image captions are surfaced here.
    """
    if message.content_type == "image":
        caption = message.text or message.content.get("caption")
        if isinstance(caption, str) and caption:
            return caption
        return MEDIA_PLACEHOLDER
    if message.content_type in TEXT_CONTENT_TYPES and message.text:
        return message.text
    return MEDIA_PLACEHOLDER


def to_record(message: InboundMessage) -> MessageRecord:
    return MessageRecord(
        id=message.id,
        body=extract_body(message),
        timestamp=message.timestamp,
        is_outgoing=message.from_me,
        from_jid=message.chat_id,
        type=message.content_type,
    )


def group_to_chat(group: dict[str, Any]) -> Chat:
    return Chat(
        id=str(group.get("id") or ""),
        name=group.get("subject") or "Unknown",
        is_group=True,
        timestamp=int(group.get("creation") or 0),
        last_message=None,
    )


class ChatProjection:
    """Chats and messages seen during this process lifetime.

    Nothing is evicted. Writers run on the client loop thread and readers on
    request threads, so every access goes through one lock and readers get
    serialized copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chats: list[Chat] = []
        self._messages_by_chat: dict[str, list[MessageRecord]] = {}

    def list_chats(self) -> list[dict[str, Any]]:
        with self._lock:
            return [chat.to_dict() for chat in self._chats]

    def list_contacts(self) -> list[dict[str, Any]]:
        with self._lock:
            return [Contact.from_chat(chat).to_dict() for chat in self._chats]

    def list_messages(self, chat_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return [record.to_dict() for record in self._messages_by_chat.get(chat_id, [])]

    def message_count(self, chat_id: str) -> int:
        with self._lock:
            return len(self._messages_by_chat.get(chat_id, []))

    def ingest(self, messages: Iterable[InboundMessage]) -> int:
        count = 0
        for message in messages:
            record = to_record(message)
            with self._lock:
                self._messages_by_chat.setdefault(message.chat_id, []).append(record)
                self._touch_chat(message.chat_id, record)
            count += 1
        return count

    def record_outgoing(self, chat_id: str, record: MessageRecord) -> None:
        with self._lock:
            self._messages_by_chat.setdefault(chat_id, []).append(record)

    def replace_chats(self, chats: Iterable[Chat]) -> None:
        with self._lock:
            self._chats = list(chats)

    def reset(self) -> None:
        with self._lock:
            self._chats = []
            self._messages_by_chat = {}

    def _touch_chat(self, chat_id: str, record: MessageRecord) -> None:
        last = LastMessage(body=record.body, timestamp=record.timestamp)
        for chat in self._chats:
            if chat.id == chat_id:
                chat.last_message = last
                chat.timestamp = record.timestamp
                return
        self._chats.insert(
            0,
            Chat(
                id=chat_id,
                name=chat_id.split("@", 1)[0],
                is_group=chat_id.endswith("@g.us"),
                timestamp=record.timestamp,
                last_message=last,
            ),
        )
