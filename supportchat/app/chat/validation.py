from __future__ import annotations

from uuid import UUID

from supportchat.app.chat.contracts import ChatValidationError

DEFAULT_MAX_MESSAGE_LENGTH = 5000


def is_valid_session_id(value: object) -> bool:
    """Accept only the canonical dashed 8-4-4-4-12 UUID form."""
    if not isinstance(value, str) or not value:
        return False
    try:
        parsed = UUID(value)
    except ValueError:
        return False
    # UUID() also parses bare hex, braces and urn:uuid: prefixes.
    return str(parsed) == value.lower()


def validate_message(
    message: object, *, max_length: int = DEFAULT_MAX_MESSAGE_LENGTH
) -> str:
    """Return the trimmed message or raise ``ChatValidationError``."""
    if not message or not isinstance(message, str):
        raise ChatValidationError("Message is required and must be a string")
    trimmed = message.strip()
    if not trimmed:
        raise ChatValidationError("Message cannot be empty")
    if len(trimmed) > max_length:
        raise ChatValidationError(
            f"Message exceeds maximum length of {max_length} characters"
        )
    return trimmed
