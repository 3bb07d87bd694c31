"""Environment-driven bridge configuration."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

VERCEL_SESSION_DIR = "/tmp/whatsapp-session"

DEFAULT_BRIDGE_CONFIG = {
    "host": "0.0.0.0",
    "port": 3001,
    "frontend_url": "*",
    "log_level": "INFO",
    "reconnect_base_delay": 3.0,
    "reconnect_factor": 2.0,
    "reconnect_max_delay": 60.0,
    "reconnect_max_attempts": 10,
    "pairing_poll_attempts": 30,
    "pairing_poll_interval": 0.5,
    "pairing_ready_timeout": 10.0,
    "request_timeout": 60.0,
}


@dataclass(slots=True)
class BridgeConfig:
    session_dir: str
    platform: str = "standalone"
    host: str = DEFAULT_BRIDGE_CONFIG["host"]
    port: int = DEFAULT_BRIDGE_CONFIG["port"]
    frontend_url: str = DEFAULT_BRIDGE_CONFIG["frontend_url"]
    log_level: str = DEFAULT_BRIDGE_CONFIG["log_level"]
    reconnect_base_delay: float = DEFAULT_BRIDGE_CONFIG["reconnect_base_delay"]
    reconnect_factor: float = DEFAULT_BRIDGE_CONFIG["reconnect_factor"]
    reconnect_max_delay: float = DEFAULT_BRIDGE_CONFIG["reconnect_max_delay"]
    reconnect_max_attempts: int = DEFAULT_BRIDGE_CONFIG["reconnect_max_attempts"]
    pairing_poll_attempts: int = DEFAULT_BRIDGE_CONFIG["pairing_poll_attempts"]
    pairing_poll_interval: float = DEFAULT_BRIDGE_CONFIG["pairing_poll_interval"]
    pairing_ready_timeout: float = DEFAULT_BRIDGE_CONFIG["pairing_ready_timeout"]
    request_timeout: float = DEFAULT_BRIDGE_CONFIG["request_timeout"]


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def default_session_dir(env: Mapping[str, str]) -> str:
    if env.get("VERCEL"):
        return VERCEL_SESSION_DIR
    return str(Path.cwd() / "session")


def load_config(environ: Mapping[str, str] | None = None) -> BridgeConfig:
    """Build a :class:`BridgeConfig` from environment variables."""

    env = os.environ if environ is None else environ
    defaults = DEFAULT_BRIDGE_CONFIG
    return BridgeConfig(
        session_dir=env.get("SESSION_DIR") or default_session_dir(env),
        platform="vercel" if env.get("VERCEL") else "standalone",
        host=env.get("HOST") or defaults["host"],
        port=_env_int(env, "PORT", defaults["port"]),
        frontend_url=env.get("FRONTEND_URL") or defaults["frontend_url"],
        log_level=(env.get("LOG_LEVEL") or defaults["log_level"]).upper(),
        reconnect_base_delay=_env_float(env, "RECONNECT_BASE_DELAY", defaults["reconnect_base_delay"]),
        reconnect_factor=_env_float(env, "RECONNECT_FACTOR", defaults["reconnect_factor"]),
        reconnect_max_delay=_env_float(env, "RECONNECT_MAX_DELAY", defaults["reconnect_max_delay"]),
        reconnect_max_attempts=_env_int(env, "RECONNECT_MAX_ATTEMPTS", defaults["reconnect_max_attempts"]),
        pairing_poll_attempts=_env_int(env, "PAIRING_POLL_ATTEMPTS", defaults["pairing_poll_attempts"]),
        pairing_poll_interval=_env_float(env, "PAIRING_POLL_INTERVAL", defaults["pairing_poll_interval"]),
        pairing_ready_timeout=_env_float(env, "PAIRING_READY_TIMEOUT", defaults["pairing_ready_timeout"]),
        request_timeout=_env_float(env, "REQUEST_TIMEOUT", defaults["request_timeout"]),
    )
