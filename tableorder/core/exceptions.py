"""
Domain Error Taxonomy

Every failure the ordering core can report to a caller. Services raise
these; the FastAPI layer maps them to JSON error responses using the
status code carried by each class.

    InvalidToken       table admission token missing or expired (terminal)
    InvalidItems       empty cart, bad quantity or unknown menu item (terminal)
    IllegalTransition  status regression or wrong lifecycle stage
    Conflict           a concurrent write won the race; re-read and retry
    NotFound           referenced order or item does not exist
"""

from typing import Optional


class OrderingError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code: int = 400
    error_code: str = "ordering_error"
    default_message: str = "Order request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "success": False,
            "error": self.error_code,
            "message": self.message,
        }


class InvalidToken(OrderingError):
    status_code = 401
    error_code = "invalid_token"
    default_message = "Table access has expired. Please scan the QR code again."


class InvalidItems(OrderingError):
    status_code = 400
    error_code = "invalid_items"
    default_message = "Order items are invalid"


class IllegalTransition(OrderingError):
    status_code = 409
    error_code = "illegal_transition"
    default_message = "Status change is not allowed"


class Conflict(OrderingError):
    status_code = 409
    error_code = "conflict"
    default_message = "Order was modified concurrently, reload and retry"


class NotFound(OrderingError):
    status_code = 404
    error_code = "not_found"
    default_message = "Not found"


class Unauthorized(OrderingError):
    """Shared-secret header missing or wrong."""
    status_code = 401
    error_code = "unauthorized"
    default_message = "Missing or invalid webhook secret"
