from __future__ import annotations

from supportchat.app.chat.contracts import (
    ChatValidationError,
    ConversationNotFoundError,
)
from supportchat.app.chat.validation import is_valid_session_id
from supportchat.app.storage.contracts import ConversationRecord, RecordStore


def check_session_format(session_id: object) -> None:
    if session_id is None or session_id == "":
        return
    if not is_valid_session_id(session_id):
        raise ChatValidationError("Invalid session ID format")


def resolve_session_for_send(store: RecordStore, session_id: object) -> str:
    """Map a client session token to an existing conversation id.

    Missing tokens and well-formed tokens that do not resolve both start a new
    conversation. Malformed tokens are rejected.
    """
    if session_id is None or session_id == "":
        return store.create_conversation().id
    check_session_format(session_id)

    existing = store.get_conversation(str(session_id))
    if existing is None:
        return store.create_conversation().id
    return existing.id


def require_existing_session(
    store: RecordStore, session_id: object
) -> ConversationRecord:
    if session_id is None or session_id == "":
        raise ConversationNotFoundError("Session ID is required")
    if not is_valid_session_id(session_id):
        raise ConversationNotFoundError("Invalid session ID format")

    conversation = store.get_conversation(str(session_id))
    if conversation is None:
        raise ConversationNotFoundError("Conversation not found")
    return conversation
