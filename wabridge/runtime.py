from __future__ import annotations

import asyncio
import atexit
import base64
import concurrent.futures
import contextlib
import functools
import logging
import threading
import time
from collections.abc import Callable, Coroutine
from typing import Any

import qrcode
from waton.core.events import ConnectionEvent

from wabridge.client.protocol import NOTIFY, ClientHandlers, ProtocolClient, WatonProtocolClient
from wabridge.client.reconnect import ReconnectPolicy, is_logged_out
from wabridge.config import BridgeConfig, load_config
from wabridge.core.entities import ConnectionState, InboundMessage, MessageRecord
from wabridge.core.errors import NotConnectedError, UpstreamError
from wabridge.infra.session_store import SessionStore
from wabridge.pairing import PairingOutcome, PairingResult, clean_phone_number, wait_for_pairing_outcome
from wabridge.projections import ChatProjection, group_to_chat

logger = logging.getLogger(__name__)

ClientFactory = Callable[[SessionStore, ClientHandlers], ProtocolClient]


def qr_svg_data_url(qr_text: str) -> str:
    qr = qrcode.QRCode(border=1)
    qr.add_data(qr_text)
    qr.make(fit=True)
    matrix = qr.get_matrix()
    size = len(matrix)
    cells: list[str] = []
    for y, row in enumerate(matrix):
        for x, is_dark in enumerate(row):
            if is_dark:
                cells.append(f"<rect x='{x}' y='{y}' width='1' height='1'/>")
    svg = (
        f"<svg xmlns='http://www.w3.org/2000/svg' viewBox='0 0 {size} {size}' shape-rendering='crispEdges'>"
        "<rect width='100%' height='100%' fill='white'/>"
        "<g fill='black'>"
        + "".join(cells)
        + "</g></svg>"
    )
    encoded = base64.b64encode(svg.encode("utf-8")).decode("ascii")
    return f"data:image/svg+xml;base64,{encoded}"


def waton_client_factory(store: SessionStore, handlers: ClientHandlers) -> ProtocolClient:
    return WatonProtocolClient(store.open_storage(), handlers)


class SessionManager:
    """Single WhatsApp session shared by every HTTP request.

    The protocol client lives on a private asyncio loop running in a daemon
    thread. Request threads hand coroutines to that loop and block on the
    result. Each client instance gets a generation number; callbacks from an
    older generation are dropped.
    """

    def __init__(
        self,
        config: BridgeConfig | None = None,
        *,
        client_factory: ClientFactory | None = None,
        store: SessionStore | None = None,
    ) -> None:
        self.config = config or load_config()
        self.store = store or SessionStore(self.config.session_dir)
        self.store.ensure()
        self.projection = ChatProjection()
        self._client_factory = client_factory or waton_client_factory
        self._policy = ReconnectPolicy(
            base_delay=self.config.reconnect_base_delay,
            factor=self.config.reconnect_factor,
            max_delay=self.config.reconnect_max_delay,
            max_attempts=self.config.reconnect_max_attempts,
        )

        self._state_lock = threading.Lock()
        self._state = ConnectionState()

        self._client: ProtocolClient | None = None
        self._generation = 0
        self._phone_number: str | None = None
        self._ready: asyncio.Event | None = None
        self._background: set[asyncio.Task[Any]] = set()
        self._reconnect_task: asyncio.Task[Any] | None = None
        self._pairing_task: asyncio.Task[Any] | None = None

        self._loop = asyncio.new_event_loop()
        self._started = threading.Event()
        self._thread = threading.Thread(target=self._run_loop, name="wabridge-loop", daemon=True)
        self._thread.start()
        self._started.wait(timeout=2.0)
        self._connect_guard = asyncio.Lock()

        atexit.register(self.close)

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._started.set()
        self._loop.run_forever()

    def _run_coro_sync(self, coro: Coroutine[Any, Any, Any]) -> Any:
        fut = asyncio.run_coroutine_threadsafe(coro, self._loop)
        try:
            return fut.result(timeout=self.config.request_timeout)
        except concurrent.futures.TimeoutError:
            fut.cancel()
            raise UpstreamError("Timed out waiting for the WhatsApp client") from None

    # state access, safe from any thread

    def _set_state(self, **updates: Any) -> None:
        with self._state_lock:
            for key, value in updates.items():
                setattr(self._state, key, value)

    def state_snapshot(self) -> ConnectionState:
        with self._state_lock:
            return self._state.copy()

    def connection_state(self) -> dict[str, Any]:
        return self.state_snapshot().to_dict()

    @property
    def is_connected(self) -> bool:
        return self.state_snapshot().connected

    def list_chats(self) -> list[dict[str, Any]]:
        return self.projection.list_chats()

    def list_contacts(self) -> list[dict[str, Any]]:
        return self.projection.list_contacts()

    def list_messages(self, chat_id: str) -> list[dict[str, Any]]:
        return self.projection.list_messages(chat_id)

    # blocking entry points for request threads

    def connect(self, phone_number: str | None = None) -> None:
        self._run_coro_sync(self._connect_async(phone_number))

    def request_pairing_code(self, phone_number: object) -> PairingResult:
        cleaned = clean_phone_number(phone_number)
        return self._run_coro_sync(self._request_pairing_async(cleaned))

    def send_text(self, chat_id: str, text: str) -> MessageRecord:
        return self._run_coro_sync(self._send_text_async(chat_id, text))

    def disconnect(self) -> None:
        self._run_coro_sync(self._disconnect_async())

    def close(self) -> None:
        if not self._loop.is_running():
            return
        with contextlib.suppress(Exception):
            self._run_coro_sync(self._shutdown_async())
        self._loop.call_soon_threadsafe(self._loop.stop)

    # loop-side implementation

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
        task = self._loop.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    def _handlers_for(self, generation: int) -> ClientHandlers:
        return ClientHandlers(
            on_connection=functools.partial(self._on_connection, generation),
            on_messages=functools.partial(self._on_messages, generation),
            on_disconnected=functools.partial(self._on_disconnected, generation),
        )

    def _detach_client(self) -> ProtocolClient | None:
        client = self._client
        self._client = None
        self._generation += 1
        return client

    @staticmethod
    async def _close_client(client: ProtocolClient | None) -> None:
        if client is None:
            return
        try:
            await client.close()
        except Exception:
            logger.exception("failed to close protocol client")

    async def _connect_async(self, phone_number: str | None) -> None:
        async with self._connect_guard:
            if self._client is not None and self._client.authenticated:
                return

            await self._close_client(self._detach_client())
            generation = self._generation
            ready = asyncio.Event()
            self._ready = ready
            self._phone_number = phone_number

            try:
                client = self._client_factory(self.store, self._handlers_for(generation))
                self._client = client
                await client.connect()
            except Exception as exc:
                logger.error("connection error: %s", exc)
                self._set_state(error=str(exc), connecting=False)
                await self._close_client(self._detach_client())
                raise

            if phone_number and not client.registered:
                self._set_state(connecting=True)
                self._pairing_task = self._spawn(self._pair_when_ready(generation, client, ready, phone_number))

    async def _pair_when_ready(
        self,
        generation: int,
        client: ProtocolClient,
        ready: asyncio.Event,
        phone_number: str,
    ) -> None:
        try:
            await asyncio.wait_for(ready.wait(), timeout=self.config.pairing_ready_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "no pairing readiness signal after %.1fs; requesting code anyway",
                self.config.pairing_ready_timeout,
            )
        if generation != self._generation:
            return

        try:
            code = await client.request_pairing_code(phone_number)
        except Exception as exc:
            logger.error("error requesting pairing code: %s", exc)
            if generation == self._generation:
                self._set_state(error=str(exc) or "Failed to generate pairing code", connecting=False)
            return

        if generation == self._generation:
            self._set_state(pairing_code=code)
            logger.info("pairing code issued")

    async def _request_pairing_async(self, phone_number: str) -> PairingResult:
        self._set_state(phone_number=phone_number, connecting=True, error=None, pairing_code=None)
        try:
            await self._connect_async(phone_number)
        except Exception as exc:
            self._set_state(connecting=False, error=str(exc))
            raise UpstreamError(str(exc) or "Failed to generate pairing code") from exc
        result = await wait_for_pairing_outcome(
            self.state_snapshot,
            attempts=self.config.pairing_poll_attempts,
            interval=self.config.pairing_poll_interval,
        )
        if result.outcome is PairingOutcome.CONNECTED:
            self._set_state(connecting=False)
        return result

    async def _send_text_async(self, chat_id: str, text: str) -> MessageRecord:
        client = self._client
        if client is None or not self.state_snapshot().connected:
            raise NotConnectedError()
        message_id = await client.send_text(chat_id, text)
        record = MessageRecord(id=message_id, body=text, timestamp=int(time.time()), is_outgoing=True)
        self.projection.record_outgoing(chat_id, record)
        return record

    async def _disconnect_async(self) -> None:
        self._cancel_pending()
        async with self._connect_guard:
            client = self._detach_client()
            failure: Exception | None = None
            if client is not None:
                try:
                    await client.logout()
                except Exception as exc:
                    logger.error("logout failed: %s", exc)
                    failure = exc
                await self._close_client(client)

            with self._state_lock:
                self._state = ConnectionState()
            self.projection.reset()
            self._policy.reset()
            self._phone_number = None
            await asyncio.to_thread(self.store.reset)

        if failure is not None:
            raise UpstreamError(str(failure) or "Logout failed") from failure
        logger.info("session disconnected and cleared")

    async def _shutdown_async(self) -> None:
        self._cancel_pending()
        for task in list(self._background):
            task.cancel()
        await self._close_client(self._detach_client())

    def _cancel_pending(self) -> None:
        for task in (self._reconnect_task, self._pairing_task):
            if task is not None and not task.done():
                task.cancel()
        self._reconnect_task = None
        self._pairing_task = None

    def _schedule_reconnect(self, reason: BaseException | None) -> None:
        delay = self._policy.next_delay()
        if delay is None:
            logger.error("giving up after %d reconnect attempts", self._policy.attempts)
            self._set_state(connected=False, connecting=False, error="Reconnect attempts exhausted")
            return
        logger.info(
            "connection lost (%s); reconnecting in %.1fs (attempt %d)",
            reason,
            delay,
            self._policy.attempts,
        )
        self._reconnect_task = self._spawn(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self._connect_async(self._phone_number)
        except Exception as exc:
            self._schedule_reconnect(exc)

    async def _load_chats(self, generation: int) -> None:
        client = self._client
        if client is None or generation != self._generation:
            return
        try:
            groups = await client.fetch_groups()
        except Exception as exc:
            logger.error("error loading chats: %s", exc)
            return
        if generation != self._generation:
            return
        chats = [group_to_chat(group) for group in groups]
        self.projection.replace_chats(chats)
        logger.info("loaded %d group chats", len(chats))

    # client callbacks

    async def _on_connection(self, generation: int, event: ConnectionEvent) -> None:
        if generation != self._generation:
            return
        if event.qr:
            self._set_state(qr=event.qr)
            if self._ready is not None:
                self._ready.set()

        if event.status == "open":
            self._set_state(connected=True, connecting=False, pairing_code=None, qr=None, error=None)
            self._policy.reset()
            if self._ready is not None:
                self._ready.set()
            logger.info("WhatsApp connected")
            self._spawn(self._load_chats(generation))
        elif event.status == "close":
            self._set_state(connected=False, connecting=False)
            logger.info("connection closed: %s", event.reason)

    async def _on_messages(self, generation: int, messages: list[InboundMessage], kind: str) -> None:
        if generation != self._generation or kind != NOTIFY:
            return
        self.projection.ingest(messages)

    async def _on_disconnected(self, generation: int, reason: Exception) -> None:
        if generation != self._generation:
            return
        self._set_state(connected=False, connecting=False)
        self._spawn(self._close_client(self._detach_client()))
        if is_logged_out(reason):
            logger.warning("logged out; the device has to be paired again")
            self._set_state(error="Logged out")
            return
        self._schedule_reconnect(reason)
