"""
Error taxonomy for the order service.

Each error carries the HTTP status it maps to, so the API layer can turn any
of them into a response with a single exception handler.
"""

from fastapi import status


class OrderServiceError(Exception):
    """Base class for errors reported to API callers."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Internal server error."
    code: str = "internal_error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(OrderServiceError):
    """Bad phone format or missing/invalid order fields."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"
    default_message = "Invalid request data."


class SessionUnavailableError(OrderServiceError):
    """The messaging session is not ready; the caller should retry later."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "session_unavailable"
    default_message = "Messaging service unavailable. Please try again in a few moments."


class StorageError(OrderServiceError):
    """Connection or statement failure in the relational store."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "storage_error"
    default_message = "Failed to process the order."


class ReferentialError(StorageError):
    """An order referenced a customer row that does not exist."""


class NotificationSendError(Exception):
    """A message could not be delivered. Logged only, never surfaced to callers."""
