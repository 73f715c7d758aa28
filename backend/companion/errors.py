"""
Error taxonomy for the chat orchestration layer.

Errors raised before the event stream opens become JSON HTTP responses;
errors after that point are sent in-band as ``{"type": "error"}`` events.
"""

from fastapi import status


class ChatError(Exception):
    """Base class for errors with a public message and an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Failed to process chat request"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    """Missing or malformed request fields."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Missing required fields"


class Unauthorized(ChatError):
    """No credential, or an invalid one."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class Forbidden(ChatError):
    """Valid credential for the wrong owner."""
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


class NotFound(ChatError):
    """The addressed row does not exist (or is not visible to the caller)."""
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class SessionNotFound(NotFound):
    default_message = "Session not found"


class ProviderError(ChatError):
    """The hosted LLM capability failed."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Assistant provider error"


class PersistenceError(ChatError):
    """A must-succeed database write failed."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to save message"

