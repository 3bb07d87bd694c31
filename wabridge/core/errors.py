from __future__ import annotations


class BridgeError(Exception):
    """Base exception for wabridge. Carries the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(BridgeError):
    """Raised when request input is malformed."""

    status_code = 400


class NotConnectedError(BridgeError):
    """Raised when an operation needs a live WhatsApp connection."""

    status_code = 503

    def __init__(self, message: str = "WhatsApp not connected") -> None:
        super().__init__(message)


class PairingTimeoutError(BridgeError):
    """Raised when no pairing code shows up within the poll window."""

    status_code = 408

    def __init__(self, message: str = "Timeout waiting for pairing code. Please try again.") -> None:
        super().__init__(message)


class UpstreamError(BridgeError):
    """Raised when the protocol client fails an operation."""

    status_code = 500
