import pytest
from waton.core.entities import Message
from waton.core.events import ConnectionEvent
from waton.infra.storage_sqlite import SQLiteStorage
from waton.protocol.binary_node import BinaryNode
from waton.utils.auth import init_auth_creds
from waton.utils.process_message import process_incoming_message

from wabridge.client.protocol import (
    APPEND,
    NOTIFY,
    ClientHandlers,
    WatonProtocolClient,
    delivery_kind,
    normalize_jid_for_chat,
    route_chat,
)

ME = "6280000000000@s.whatsapp.net"
PEER = "6281234567890@s.whatsapp.net"
GROUP = "120363000000000000@g.us"


class _Recorder:
    def __init__(self) -> None:
        self.batches = []
        self.statuses = []

    async def on_connection(self, event) -> None:
        self.statuses.append(event.status)

    async def on_messages(self, messages, kind) -> None:
        self.batches.append((messages, kind))

    async def on_disconnected(self, exc) -> None:
        return None

    def handlers(self) -> ClientHandlers:
        return ClientHandlers(
            on_connection=self.on_connection,
            on_messages=self.on_messages,
            on_disconnected=self.on_disconnected,
        )


def _adapter(recorder: _Recorder, decoder) -> WatonProtocolClient:
    return WatonProtocolClient(SQLiteStorage(":memory:"), recorder.handlers(), decoder=decoder)


def test_normalize_jid_for_chat_drops_device_and_maps_servers() -> None:
    assert normalize_jid_for_chat("6281234567890:12@s.whatsapp.net") == PEER
    assert normalize_jid_for_chat("6281234567890@hosted") == PEER
    assert normalize_jid_for_chat("99887766@hosted.lid") == "99887766@lid"
    assert normalize_jid_for_chat(GROUP) == GROUP
    assert normalize_jid_for_chat("") == ""


def test_route_chat_for_direct_message() -> None:
    assert route_chat(from_jid=PEER, participant_jid="", destination_jid="", me_jids={ME}) == (PEER, PEER, False)


def test_route_chat_for_group_message() -> None:
    chat, sender, from_me = route_chat(
        from_jid=GROUP, participant_jid="6281234567890:3@s.whatsapp.net", destination_jid="", me_jids={ME}
    )
    assert (chat, sender, from_me) == (GROUP, PEER, False)

    _, _, mine = route_chat(from_jid=GROUP, participant_jid=ME, destination_jid="", me_jids={ME})
    assert mine is True


def test_route_chat_for_own_message_uses_destination() -> None:
    assert route_chat(from_jid=ME, participant_jid="", destination_jid=PEER, me_jids={ME}) == (PEER, ME, True)


def test_delivery_kind() -> None:
    assert delivery_kind(Message(id="1", from_jid=PEER, text="hi")) == NOTIFY
    assert delivery_kind(Message(id="2", from_jid=PEER, history_sync_type=2)) == APPEND
    assert delivery_kind(Message(id="3", from_jid=PEER, protocol_type="REVOKE")) == APPEND


@pytest.mark.asyncio
async def test_incoming_message_is_routed_to_handlers() -> None:
    recorder = _Recorder()

    async def _decode(node, client):
        return Message(
            id="ABC",
            from_jid=PEER,
            timestamp=1700000000,
            text="hello",
            content_type="text",
            content={"text": "hello"},
        )

    adapter = _adapter(recorder, _decode)
    await adapter._on_node(BinaryNode(tag="message", attrs={"id": "ABC", "from": PEER}, content=[]))

    assert len(recorder.batches) == 1
    messages, kind = recorder.batches[0]
    assert kind == NOTIFY
    inbound = messages[0]
    assert inbound.id == "ABC"
    assert inbound.chat_id == PEER
    assert inbound.sender == PEER
    assert inbound.from_me is False
    assert inbound.timestamp == 1700000000
    assert inbound.text == "hello"
    assert inbound.content_type == "text"


@pytest.mark.asyncio
async def test_history_sync_is_marked_append() -> None:
    recorder = _Recorder()

    async def _decode(node, client):
        return Message(id="H1", from_jid=PEER, history_sync_type=1)

    adapter = _adapter(recorder, _decode)
    await adapter._on_node(BinaryNode(tag="message", attrs={"id": "H1", "from": PEER}, content=[]))

    assert recorder.batches[0][1] == APPEND


@pytest.mark.asyncio
async def test_decode_failure_falls_back_to_node_attrs() -> None:
    recorder = _Recorder()

    async def _decode(node, client):
        raise ValueError("no session")

    adapter = _adapter(recorder, _decode)
    node = BinaryNode(
        tag="message",
        attrs={"id": "E1", "from": GROUP, "participant": PEER, "t": "1700000123", "type": "media"},
        content=[],
    )
    await adapter._on_node(node)

    inbound = recorder.batches[0][0][0]
    assert inbound.id == "E1"
    assert inbound.chat_id == GROUP
    assert inbound.sender == PEER
    assert inbound.timestamp == 1700000123
    assert inbound.text is None
    assert inbound.content_type == "media"


@pytest.mark.asyncio
async def test_non_message_nodes_are_ignored() -> None:
    recorder = _Recorder()

    async def _decode(node, client):
        raise AssertionError("decoder should not run")

    adapter = _adapter(recorder, _decode)
    await adapter._on_node(BinaryNode(tag="receipt", attrs={"id": "R1", "from": PEER}, content=[]))

    assert recorder.batches == []


@pytest.mark.asyncio
async def test_pairing_signed_and_open_persist_credentials() -> None:
    saved = []
    recorder = _Recorder()

    class _Storage(SQLiteStorage):
        async def save_creds(self, creds) -> None:
            saved.append(creds)

    adapter = WatonProtocolClient(_Storage(":memory:"), recorder.handlers())
    adapter.client.creds = init_auth_creds()

    await adapter.client.on_connection_update(ConnectionEvent(status="connecting", qr="ref,noise,identity,adv"))
    await adapter.client.on_connection_update(ConnectionEvent(status="pairing-signed"))
    await adapter.client.on_connection_update(ConnectionEvent(status="open"))

    assert saved == [adapter.client.creds, adapter.client.creds]
    assert recorder.statuses == ["connecting", "pairing-signed", "open"]


@pytest.mark.asyncio
async def test_credential_save_failure_still_forwards_update() -> None:
    recorder = _Recorder()

    class _Storage(SQLiteStorage):
        async def save_creds(self, creds) -> None:
            raise OSError("disk full")

    adapter = WatonProtocolClient(_Storage(":memory:"), recorder.handlers())
    adapter.client.creds = init_auth_creds()

    await adapter.client.on_connection_update(ConnectionEvent(status="open"))

    assert recorder.statuses == ["open"]


@pytest.mark.asyncio
async def test_unregistered_adapter_reports_state() -> None:
    adapter = _adapter(_Recorder(), process_incoming_message)
    assert adapter.registered is False
    assert adapter.authenticated is False
    assert adapter.me_jids() == set()
