from __future__ import annotations

from supportchat.app.chat.contracts import (
    ChatConfigurationError,
    ChatValidationError,
    ConversationNotFoundError,
    StorageUnavailableError,
)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again later."


def client_error_message(exc: Exception, *, production: bool) -> str:
    """Message safe to return to API clients for ``exc``."""
    if isinstance(exc, (ChatValidationError, StorageUnavailableError)):
        return str(exc)
    if not production:
        return str(exc) or GENERIC_ERROR_MESSAGE
    if isinstance(exc, ConversationNotFoundError):
        return "Conversation not found"
    if isinstance(exc, ChatConfigurationError):
        return "Service configuration error"
    return GENERIC_ERROR_MESSAGE


def status_code_for(exc: Exception) -> int:
    if isinstance(exc, ChatValidationError):
        return 400
    if isinstance(exc, ConversationNotFoundError):
        return 404
    if isinstance(exc, ChatConfigurationError):
        return 503
    return 500
