"""Client package public exports."""

from .protocol import ClientHandlers, ProtocolClient, WatonProtocolClient
from .reconnect import ReconnectPolicy, is_logged_out

__all__ = ["ClientHandlers", "ProtocolClient", "ReconnectPolicy", "WatonProtocolClient", "is_logged_out"]
