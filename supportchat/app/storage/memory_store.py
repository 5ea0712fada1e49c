from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from supportchat.app.storage.contracts import (
    ConversationRecord,
    MessageRecord,
    StorageError,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InMemoryRecordStore:
    conversations: dict[str, ConversationRecord] = field(default_factory=dict)
    messages_by_conversation: dict[str, list[MessageRecord]] = field(
        default_factory=dict
    )
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def open(self) -> None:
        return None

    def close(self) -> None:
        return None

    def create_conversation(self) -> ConversationRecord:
        record = ConversationRecord(id=str(uuid4()), created_at=_utcnow())
        with self._lock:
            self.conversations[record.id] = record
            self.messages_by_conversation[record.id] = []
        return record

    def get_conversation(self, conversation_id: str) -> ConversationRecord | None:
        with self._lock:
            return self.conversations.get(conversation_id)

    def append_message(
        self, *, conversation_id: str, sender: str, text: str
    ) -> MessageRecord:
        with self._lock:
            messages = self.messages_by_conversation.get(conversation_id)
            if messages is None:
                raise StorageError(f"Unknown conversation: {conversation_id}")
            created_at = _utcnow()
            if messages and created_at < messages[-1].created_at:
                created_at = messages[-1].created_at
            record = MessageRecord(
                id=str(uuid4()),
                conversation_id=conversation_id,
                sender=sender,
                text=text,
                created_at=created_at,
            )
            messages.append(record)
        return record

    def list_messages(self, conversation_id: str) -> list[MessageRecord]:
        with self._lock:
            return list(self.messages_by_conversation.get(conversation_id, []))
