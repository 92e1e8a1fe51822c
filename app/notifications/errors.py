"""
Priority Transfers Notify - Error Types

Raised by the workflow and converted to JSON responses by the routes.
"""
from typing import List, Optional


class NotificationError(Exception):
    """Base class for notification failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(NotificationError):
    """Missing or malformed request fields. Raised before any side effect."""

    status_code = 400

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[List[str]] = None):
        super().__init__(message)
        self.missing_fields = list(missing_fields or [])
        self.invalid_fields = list(invalid_fields or [])

    @classmethod
    def missing(cls, fields: List[str]) -> "ValidationError":
        return cls(f"Missing required fields: {', '.join(fields)}", missing_fields=fields)


class TransportError(NotificationError):
    """The mail transport rejected or failed to deliver a message."""

    status_code = 500

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.reason = reason


class NotFoundError(NotificationError):
    """No active reminder for the requested booking."""

    status_code = 404

    def __init__(self, booking_id: str):
        super().__init__(f"No scheduled reminder found for booking {booking_id}")
        self.booking_id = booking_id
