"""Adapter between the waton socket client and the bridge session."""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from waton.client.client import WAClient
from waton.client.groups import GroupsAPI
from waton.client.messages import MessagesAPI
from waton.core.entities import Message
from waton.core.events import ConnectionEvent
from waton.core.jid import S_WHATSAPP_NET, jid_decode, jid_encode, jid_normalized_user
from waton.infra.storage_sqlite import SQLiteStorage
from waton.protocol.binary_node import BinaryNode
from waton.utils.process_message import process_incoming_message

from wabridge.core.entities import InboundMessage

logger = logging.getLogger(__name__)

NOTIFY = "notify"
APPEND = "append"

# lifecycle updates emitted right after waton mutates AuthCreds
CREDENTIAL_UPDATES = frozenset({"pairing-signed", "open"})

MessageDecoder = Callable[[BinaryNode, WAClient], Awaitable[Message]]


@dataclass(slots=True)
class ClientHandlers:
    """Typed callbacks a protocol client reports to."""

    on_connection: Callable[[ConnectionEvent], Awaitable[None]]
    on_messages: Callable[[list[InboundMessage], str], Awaitable[None]]
    on_disconnected: Callable[[Exception], Awaitable[None]]


class ProtocolClient(Protocol):
    @property
    def registered(self) -> bool: ...

    @property
    def authenticated(self) -> bool: ...

    async def connect(self) -> None: ...

    async def request_pairing_code(self, phone_number: str) -> str: ...

    async def send_text(self, to_jid: str, text: str) -> str: ...

    async def fetch_groups(self) -> list[dict[str, Any]]: ...

    async def logout(self) -> None: ...

    async def close(self) -> None: ...


def normalize_jid_for_chat(jid: str) -> str:
    if not jid:
        return ""
    normalized = jid_normalized_user(jid)
    parsed = jid_decode(normalized)
    if not parsed or not parsed.user:
        return normalized or jid
    server = parsed.server.lower()
    if server in {"s.whatsapp.net", "hosted"}:
        return jid_encode(parsed.user, S_WHATSAPP_NET)
    if server in {"hosted.lid", "lid"}:
        return jid_encode(parsed.user, "lid")
    return jid_encode(parsed.user, parsed.server)


def route_chat(
    *,
    from_jid: str,
    participant_jid: str,
    destination_jid: str,
    me_jids: set[str],
) -> tuple[str, str, bool]:
    """Return ``(chat_jid, sender_jid, from_me)`` for an incoming message."""
    from_norm = normalize_jid_for_chat(from_jid)
    participant_norm = normalize_jid_for_chat(participant_jid) if participant_jid else ""
    destination_norm = normalize_jid_for_chat(destination_jid) if destination_jid else ""

    if from_norm.endswith("@g.us"):
        sender = participant_norm or from_norm
        return from_norm, sender, sender in me_jids

    if from_norm in me_jids:
        chat = destination_norm or participant_norm or from_norm
        return chat, from_norm, True

    sender = from_norm or participant_norm
    return sender, sender, False


def delivery_kind(message: Message) -> str:
    """History sync and protocol payloads are not live chat traffic."""
    if message.history_sync_type is not None or message.protocol_type is not None:
        return APPEND
    return NOTIFY


class WatonProtocolClient:
    """Owns one :class:`WAClient` generation and forwards its callbacks."""

    def __init__(
        self,
        storage: SQLiteStorage,
        handlers: ClientHandlers,
        *,
        decoder: MessageDecoder = process_incoming_message,
        **config_overrides: Any,
    ) -> None:
        self.storage = storage
        self.client = WAClient(storage, **config_overrides)
        self.messages = MessagesAPI(self.client)
        self.groups = GroupsAPI(self.client)
        self._handlers = handlers
        self._decoder = decoder

        self.client.on_connection_update = self._on_connection_update
        self.client.on_disconnected = handlers.on_disconnected
        self.client.on_message = self._on_node

    @property
    def registered(self) -> bool:
        creds = self.client.creds
        return bool(creds and creds.registered)

    @property
    def authenticated(self) -> bool:
        return self.client.is_authenticated

    def me_jids(self) -> set[str]:
        creds = self.client.creds
        if creds is None or not creds.me:
            return set()
        out: set[str] = set()
        for key in ("id", "lid"):
            raw = creds.me.get(key)
            if isinstance(raw, str) and raw:
                out.add(normalize_jid_for_chat(raw))
        return out

    async def connect(self) -> None:
        await self.client.connect()

    async def request_pairing_code(self, phone_number: str) -> str:
        return await self.client.request_pairing_code(phone_number)

    async def send_text(self, to_jid: str, text: str) -> str:
        return await self.messages.send_text(to_jid, text)

    async def fetch_groups(self) -> list[dict[str, Any]]:
        groups = await self.groups.group_fetch_all_participating()
        return list(groups.values())

    async def logout(self) -> None:
        await self.client.logout()

    async def close(self) -> None:
        with contextlib.suppress(Exception):
            await self.client.disconnect()
        with contextlib.suppress(Exception):
            await self.storage.close()

    async def _on_connection_update(self, event: ConnectionEvent) -> None:
        if event.status in CREDENTIAL_UPDATES and self.client.creds is not None:
            try:
                await self.storage.save_creds(self.client.creds)
                logger.debug("credentials persisted after %s", event.status)
            except Exception:
                logger.exception("failed to persist credentials")
        await self._handlers.on_connection(event)

    async def _on_node(self, node: BinaryNode) -> None:
        if node.tag != "message":
            return
        try:
            inbound, kind = await self._decode(node)
        except Exception:
            logger.exception("failed to route incoming message %s", node.attrs.get("id"))
            return
        if not inbound.chat_id:
            return
        await self._handlers.on_messages([inbound], kind)

    async def _decode(self, node: BinaryNode) -> tuple[InboundMessage, str]:
        attrs = dict(node.attrs)
        raw_from = str(attrs.get("from") or "")
        raw_participant = str(attrs.get("participant") or "")
        raw_destination = str(attrs.get("recipient") or attrs.get("to") or "")

        try:
            message = await self._decoder(node, self.client)
        except Exception as exc:
            logger.warning("failed to decode message %s: %s", attrs.get("id"), exc)
            message = Message(
                id=str(attrs.get("id") or ""),
                from_jid=raw_from,
                participant=raw_participant or None,
                message_type=str(attrs.get("type") or "unknown"),
            )

        destination = message.destination_jid if isinstance(message.destination_jid, str) else raw_destination
        chat_jid, sender_jid, from_me = route_chat(
            from_jid=message.from_jid or raw_from,
            participant_jid=message.participant or raw_participant,
            destination_jid=destination,
            me_jids=self.me_jids(),
        )
        inbound = InboundMessage(
            id=message.id or str(attrs.get("id") or f"local-{int(time.time() * 1000)}"),
            chat_id=chat_jid,
            sender=sender_jid,
            from_me=from_me,
            timestamp=message.timestamp or _node_timestamp(node) or int(time.time()),
            text=message.text,
            content_type=message.content_type or message.message_type or None,
            content=dict(message.content or {}),
        )
        return inbound, delivery_kind(message)


def _node_timestamp(node: BinaryNode) -> int | None:
    raw = node.attrs.get("t")
    if raw is None:
        return None
    try:
        return int(str(raw))
    except ValueError:
        return None
