from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import unquote

from flask import Flask, jsonify, request
from flask_cors import CORS

from wabridge.config import BridgeConfig, load_config
from wabridge.core.entities import ConnectionState, MessageRecord
from wabridge.core.errors import BridgeError, NotConnectedError, PairingTimeoutError
from wabridge.infra.logger import configure_logging
from wabridge.pairing import PAIRING_INSTRUCTIONS, PairingOutcome, PairingResult
from wabridge.runtime import SessionManager, qr_svg_data_url

logger = logging.getLogger(__name__)


class SessionManagerLike(Protocol):
    def state_snapshot(self) -> ConnectionState: ...

    def list_chats(self) -> list[dict[str, Any]]: ...

    def list_contacts(self) -> list[dict[str, Any]]: ...

    def list_messages(self, chat_id: str) -> list[dict[str, Any]]: ...

    def request_pairing_code(self, phone_number: object) -> PairingResult: ...

    def send_text(self, chat_id: str, text: str) -> MessageRecord: ...

    def disconnect(self) -> None: ...


def _fail(message: str, status: int):
    return jsonify({"success": False, "message": message}), status


def _utc_now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


def create_app(
    *,
    testing: bool = False,
    session: SessionManagerLike | None = None,
    config: BridgeConfig | None = None,
) -> Flask:
    bridge_config = config or load_config()
    app = Flask(__name__)
    app.config["TESTING"] = testing
    CORS(app, origins=bridge_config.frontend_url, supports_credentials=True)

    manager = session or SessionManager(bridge_config)
    app.config["BRIDGE_CONFIG"] = bridge_config
    app.config["SESSION_MANAGER"] = manager

    def _not_connected():
        if manager.state_snapshot().connected:
            return None
        return _fail(NotConnectedError().message, NotConnectedError.status_code)

    @app.get("/api/health")
    def health():
        return jsonify(
            {
                "success": True,
                "status": "ok",
                "timestamp": _utc_now_iso(),
                "platform": bridge_config.platform,
            }
        )

    @app.get("/api/connection-status")
    def connection_status():
        state = manager.state_snapshot()
        return jsonify(
            {
                "success": True,
                "connected": state.connected,
                "connecting": state.connecting,
                "error": state.error,
                "hasPairingCode": bool(state.pairing_code),
            }
        )

    @app.get("/api/qr")
    def qr():
        state = manager.state_snapshot()
        return jsonify(
            {
                "success": True,
                "qr": state.qr,
                "qrImageDataUrl": qr_svg_data_url(state.qr) if state.qr else None,
            }
        )

    @app.post("/api/request-pairing-code")
    def request_pairing_code():
        data = request.get_json(silent=True) or {}
        try:
            result = manager.request_pairing_code(data.get("phoneNumber"))
        except BridgeError as exc:
            if exc.status_code >= 500:
                logger.error("error requesting pairing code: %s", exc.message)
            return _fail(exc.message, exc.status_code)
        except Exception as exc:
            logger.exception("error requesting pairing code")
            return _fail(str(exc) or "Failed to generate pairing code", 500)

        if result.outcome is PairingOutcome.PAIRED:
            return jsonify({"success": True, "pairingCode": result.pairing_code, "message": PAIRING_INSTRUCTIONS})
        if result.outcome is PairingOutcome.CONNECTED:
            return jsonify({"success": True, "message": "Already connected", "connected": True})
        if result.outcome is PairingOutcome.ERRORED:
            return _fail(result.error or "Failed to generate pairing code", 500)
        timeout = PairingTimeoutError()
        return _fail(timeout.message, timeout.status_code)

    @app.get("/api/chats")
    def chats():
        blocked = _not_connected()
        if blocked:
            return blocked
        return jsonify({"success": True, "chats": manager.list_chats()})

    @app.get("/api/chats/<path:chat_id>/messages")
    def chat_messages(chat_id: str):
        blocked = _not_connected()
        if blocked:
            return blocked
        try:
            messages = manager.list_messages(unquote(chat_id))
        except Exception as exc:
            logger.exception("error listing messages")
            return _fail(str(exc), 500)
        return jsonify({"success": True, "messages": messages})

    @app.post("/api/chats/<path:chat_id>/messages")
    def send_message(chat_id: str):
        blocked = _not_connected()
        if blocked:
            return blocked

        data = request.get_json(silent=True) or {}
        text = data.get("message")
        if not text or not isinstance(text, str):
            return _fail("Message content is required", 400)

        try:
            record = manager.send_text(unquote(chat_id), text)
        except BridgeError as exc:
            return _fail(exc.message, exc.status_code)
        except Exception as exc:
            logger.exception("error sending message")
            return _fail(str(exc) or "Send failed", 500)
        return jsonify({"success": True, "message": record.to_dict()})

    @app.get("/api/contacts")
    def contacts():
        blocked = _not_connected()
        if blocked:
            return blocked
        try:
            items = manager.list_contacts()
        except Exception as exc:
            logger.exception("error listing contacts")
            return _fail(str(exc), 500)
        return jsonify({"success": True, "contacts": items})

    @app.post("/api/disconnect")
    def disconnect():
        try:
            manager.disconnect()
        except BridgeError as exc:
            return _fail(exc.message, exc.status_code)
        except Exception as exc:
            logger.exception("error disconnecting")
            return _fail(str(exc) or "Failed to disconnect", 500)
        return jsonify({"success": True, "message": "Disconnected successfully"})

    return app


def _parse_args(config: BridgeConfig) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the WhatsApp REST bridge.")
    parser.add_argument("--host", default=config.host)
    parser.add_argument("--port", default=config.port, type=int)
    parser.add_argument("--debug", action="store_true")
    return parser.parse_args()


def main() -> None:
    config = load_config()
    args = _parse_args(config)
    log = configure_logging(config.log_level)
    app = create_app(config=config)
    log.info("WhatsApp server running on port %s", args.port)
    log.info("Platform: %s", config.platform)
    log.info("Session directory: %s", config.session_dir)
    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True, use_reloader=False)


if __name__ == "__main__":
    main()
