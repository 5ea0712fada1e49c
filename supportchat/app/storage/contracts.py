from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

SENDER_USER = "user"
SENDER_AI = "ai"


class StorageError(Exception):
    pass


@dataclass(frozen=True)
class ConversationRecord:
    id: str
    created_at: datetime


@dataclass(frozen=True)
class MessageRecord:
    id: str
    conversation_id: str
    sender: str
    text: str
    created_at: datetime


class RecordStore(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def create_conversation(self) -> ConversationRecord: ...

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None: ...

    def append_message(
        self, *, conversation_id: str, sender: str, text: str
    ) -> MessageRecord: ...

    def list_messages(self, conversation_id: str) -> list[MessageRecord]: ...
