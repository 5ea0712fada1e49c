from __future__ import annotations

import asyncio
import logging

from supportchat.app.chat.contracts import (
    ChatConfigurationError,
    ChatReply,
    ConversationHistory,
    HistoryMessage,
    StorageUnavailableError,
)
from supportchat.app.chat.history import build_model_turns, normalize_sender
from supportchat.app.chat.session import (
    check_session_format,
    require_existing_session,
    resolve_session_for_send,
)
from supportchat.app.chat.validation import validate_message
from supportchat.app.llm.providers import CompletionProvider, generate_reply
from supportchat.app.storage.contracts import (
    SENDER_AI,
    SENDER_USER,
    RecordStore,
    StorageError,
)
from supportchat.core.config import AppConfig

LOGGER = logging.getLogger(__name__)

SEND_STORAGE_MESSAGE = "Database error. Please try again later."
HISTORY_STORAGE_MESSAGE = "Failed to fetch conversation history"


class ChatService:
    def __init__(
        self,
        config: AppConfig,
        *,
        store: RecordStore,
        provider: CompletionProvider | None,
    ) -> None:
        self._config = config
        self._store = store
        self._provider = provider

    async def send(self, message: object, session_id: object = None) -> ChatReply:
        text = validate_message(message, max_length=self._config.max_message_length)
        check_session_format(session_id)
        if self._provider is None:
            raise ChatConfigurationError("Completion API key is not configured")

        try:
            conversation_id = await asyncio.to_thread(
                resolve_session_for_send, self._store, session_id
            )
            await asyncio.to_thread(
                self._store.append_message,
                conversation_id=conversation_id,
                sender=SENDER_USER,
                text=text,
            )
            stored = await asyncio.to_thread(self._store.list_messages, conversation_id)
        except StorageError as exc:
            self._log_storage_failure("send", exc)
            raise StorageUnavailableError(SEND_STORAGE_MESSAGE) from exc

        turns = build_model_turns(stored, history_limit=self._config.history_limit)
        reply = await generate_reply(
            self._provider,
            turns,
            max_output_tokens=self._config.max_output_tokens,
            temperature=self._config.temperature,
        )

        try:
            await asyncio.to_thread(
                self._store.append_message,
                conversation_id=conversation_id,
                sender=SENDER_AI,
                text=reply,
            )
        except StorageError as exc:
            self._log_storage_failure("send", exc)
            raise StorageUnavailableError(SEND_STORAGE_MESSAGE) from exc

        return ChatReply(reply=reply, session_id=conversation_id)

    async def history(self, session_id: object) -> ConversationHistory:
        try:
            conversation = await asyncio.to_thread(
                require_existing_session, self._store, session_id
            )
            stored = await asyncio.to_thread(self._store.list_messages, conversation.id)
        except StorageError as exc:
            self._log_storage_failure("history", exc)
            raise StorageUnavailableError(HISTORY_STORAGE_MESSAGE) from exc

        return ConversationHistory(
            messages=tuple(
                HistoryMessage(
                    id=row.id,
                    sender=normalize_sender(row.sender),
                    text=row.text,
                    created_at=row.created_at,
                )
                for row in stored
            ),
            session_id=conversation.id,
        )

    def _log_storage_failure(self, operation: str, exc: StorageError) -> None:
        if self._config.is_production:
            LOGGER.error(
                "Storage failure during %s: %s: %s",
                operation,
                type(exc).__name__,
                exc,
            )
            return
        LOGGER.error("Storage failure during %s", operation, exc_info=exc)
