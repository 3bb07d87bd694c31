"""REST bridge over the waton WhatsApp Web multi-device client."""

__version__ = "0.1.0"

__all__ = [
    "BridgeConfig",
    "load_config",
    "SessionManager",
    "create_app",
    "BridgeError",
]


def __getattr__(name: str) -> object:
    """Lazy exports so importing the package does not pull in flask or waton."""
    if name in {"BridgeConfig", "load_config"}:
        from .config import BridgeConfig, load_config

        return {"BridgeConfig": BridgeConfig, "load_config": load_config}[name]

    if name == "SessionManager":
        from .runtime import SessionManager

        return SessionManager

    if name == "create_app":
        from .server import create_app

        return create_app

    if name == "BridgeError":
        from .core.errors import BridgeError

        return BridgeError

    raise AttributeError(f"module 'wabridge' has no attribute {name!r}")
