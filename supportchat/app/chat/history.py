from __future__ import annotations

from collections.abc import Iterable

from supportchat.app.chat.contracts import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    Turn,
)
from supportchat.app.storage.contracts import SENDER_AI, SENDER_USER, MessageRecord

DEFAULT_HISTORY_LIMIT = 10

SYSTEM_PROMPT = """You are a helpful and friendly customer support agent for an ecommerce store. Your goal is to assist customers with their questions and concerns in a professional, empathetic manner.

Store Information:
- Shipping: We ship to USA, India, and Europe
- Delivery Time: 5-7 business days
- Returns: Accepted within 14 days of purchase
- Support Hours: Monday-Friday, 9am-6pm IST

Guidelines:
- Be concise but thorough
- If you don't know something, acknowledge it and offer to help find the answer
- Always maintain a positive, helpful tone
- Use the customer's name if provided, otherwise use friendly language
- For shipping/returns questions, provide clear information based on the store policies above"""


def normalize_sender(sender: object) -> str:
    # Unknown stored values are read as AI turns.
    return SENDER_USER if sender == SENDER_USER else SENDER_AI


def role_for_sender(sender: object) -> str:
    return ROLE_USER if sender == SENDER_USER else ROLE_ASSISTANT


def build_model_turns(
    messages: Iterable[MessageRecord],
    *,
    history_limit: int = DEFAULT_HISTORY_LIMIT,
) -> list[Turn]:
    turns = [
        Turn(role=role_for_sender(message.sender), content=message.text)
        for message in messages
    ]
    recent = turns[-history_limit:] if history_limit > 0 else []
    return [Turn(role=ROLE_SYSTEM, content=SYSTEM_PROMPT), *recent]
