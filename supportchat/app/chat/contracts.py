from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


class ChatValidationError(Exception):
    pass


class ConversationNotFoundError(Exception):
    pass


class StorageUnavailableError(Exception):
    pass


class ChatConfigurationError(Exception):
    pass


@dataclass(frozen=True)
class Turn:
    role: str
    content: str


@dataclass(frozen=True)
class ChatReply:
    reply: str
    session_id: str


@dataclass(frozen=True)
class HistoryMessage:
    id: str
    sender: str
    text: str
    created_at: datetime


@dataclass(frozen=True)
class ConversationHistory:
    messages: tuple[HistoryMessage, ...]
    session_id: str
