"""
Domain-specific exception hierarchy for the booking bridge.
"""

from __future__ import annotations

from typing import Any


class BookingBridgeError(Exception):
    """Base class for all application-level errors."""


class UpstreamError(BookingBridgeError):
    """Raised when an upstream call fails in transport or returns unparseable data."""


class SimplyBookAPIError(UpstreamError):
    """Raised when SimplyBook answers with a JSON-RPC error object."""

    def __init__(self, message: str, code: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data

    @classmethod
    def from_payload(cls, error: Any) -> "SimplyBookAPIError":
        if isinstance(error, dict):
            return cls(
                message=str(error.get("message") or "Unknown error"),
                code=error.get("code"),
                data=error.get("data"),
            )
        return cls(message=str(error))


class InvalidRequestError(BookingBridgeError):
    """Raised when caller input cannot be used (unknown unit, bad start time)."""


class AuthenticationError(BookingBridgeError):
    """Raised when authentication or token handling fails."""


class SlotConflictError(BookingBridgeError):
    """Raised when the requested slot is no longer free."""

    def __init__(self, message: str = "This time slot is no longer available") -> None:
        super().__init__(message)


class BookingError(BookingBridgeError):
    """Raised when a booking cannot be completed."""


class BookingNotFoundError(BookingBridgeError):
    """Raised when a booking lookup returns nothing."""


class ConversionsConfigError(BookingBridgeError):
    """Raised when the Conversions API pixel or token is not configured."""


class ConversionsAPIError(BookingBridgeError):
    """Raised when the Facebook Conversions API rejects or drops a request."""
