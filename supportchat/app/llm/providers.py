from __future__ import annotations

import logging
from collections.abc import Sequence

from supportchat.app.chat.contracts import ROLE_SYSTEM, ROLE_USER, Turn
from supportchat.core.config import AppConfig

LOGGER = logging.getLogger(__name__)

FAILURE_UNAUTHORIZED = "unauthorized"
FAILURE_RATE_LIMITED = "rate_limited"
FAILURE_UNAVAILABLE = "unavailable"
FAILURE_TIMEOUT = "timeout"
FAILURE_MALFORMED = "malformed_empty"

EMPTY_REPLY = "Sorry, I was unable to generate a response. Please try again."
UNAVAILABLE_REPLY = (
    "Our support agent is temporarily unavailable. Please try again shortly."
)

FALLBACK_REPLIES = {
    FAILURE_MALFORMED: EMPTY_REPLY,
    FAILURE_UNAUTHORIZED: UNAVAILABLE_REPLY,
    FAILURE_RATE_LIMITED: UNAVAILABLE_REPLY,
    FAILURE_UNAVAILABLE: UNAVAILABLE_REPLY,
    FAILURE_TIMEOUT: UNAVAILABLE_REPLY,
}


class CompletionError(Exception):
    def __init__(self, kind: str, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class CompletionProvider:
    name = "base"

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        raise NotImplementedError


class OpenAICompletionProvider(CompletionProvider):
    name = "openai"

    def __init__(
        self, *, api_key: str, model: str, client: object | None = None
    ) -> None:
        import openai

        self._openai = openai
        self._model = model
        self._client = client or openai.AsyncOpenAI(api_key=api_key)

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        openai = self._openai
        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": turn.role, "content": turn.content} for turn in turns],
                max_tokens=max_output_tokens,
                temperature=temperature,
            )
        except (openai.AuthenticationError, openai.PermissionDeniedError) as exc:
            raise CompletionError(FAILURE_UNAUTHORIZED, "Invalid OpenAI API key") from exc
        except openai.RateLimitError as exc:
            raise CompletionError(
                FAILURE_RATE_LIMITED, "OpenAI rate limit exceeded"
            ) from exc
        except openai.APITimeoutError as exc:
            raise CompletionError(FAILURE_TIMEOUT, "OpenAI request timed out") from exc
        except openai.APIError as exc:
            raise CompletionError(
                FAILURE_UNAVAILABLE, f"OpenAI service unavailable: {exc}"
            ) from exc

        choices = getattr(response, "choices", None) or []
        message = getattr(choices[0], "message", None) if choices else None
        content = getattr(message, "content", None)
        if not isinstance(content, str) or not content.strip():
            raise CompletionError(FAILURE_MALFORMED, "OpenAI returned an empty response")
        return content


class GeminiCompletionProvider(CompletionProvider):
    name = "google"

    def __init__(
        self, *, api_key: str, model: str, client: object | None = None
    ) -> None:
        from google import genai
        from google.genai import errors, types

        self._errors = errors
        self._types = types
        self._model = model
        self._client = client or genai.Client(api_key=api_key)

    def _contents(self, turns: Sequence[Turn]) -> tuple[str | None, list[object]]:
        types = self._types
        system_parts = [turn.content for turn in turns if turn.role == ROLE_SYSTEM]
        contents = [
            types.Content(
                role="user" if turn.role == ROLE_USER else "model",
                parts=[types.Part(text=turn.content)],
            )
            for turn in turns
            if turn.role != ROLE_SYSTEM
        ]
        system_instruction = "\n\n".join(system_parts) if system_parts else None
        return system_instruction, contents

    async def complete(
        self,
        turns: Sequence[Turn],
        *,
        max_output_tokens: int,
        temperature: float,
    ) -> str:
        import httpx

        errors = self._errors
        system_instruction, contents = self._contents(turns)
        try:
            response = await self._client.aio.models.generate_content(
                model=self._model,
                contents=contents,
                config=self._types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    max_output_tokens=max_output_tokens,
                    temperature=temperature,
                ),
            )
        except errors.ClientError as exc:
            if exc.code in {401, 403}:
                raise CompletionError(
                    FAILURE_UNAUTHORIZED, "Invalid Gemini API key"
                ) from exc
            if exc.code == 429:
                raise CompletionError(
                    FAILURE_RATE_LIMITED, "Gemini rate limit exceeded"
                ) from exc
            raise CompletionError(
                FAILURE_UNAVAILABLE, f"Gemini request rejected: {exc}"
            ) from exc
        except errors.APIError as exc:
            raise CompletionError(
                FAILURE_UNAVAILABLE, f"Gemini service unavailable: {exc}"
            ) from exc
        except httpx.TimeoutException as exc:
            raise CompletionError(FAILURE_TIMEOUT, "Gemini request timed out") from exc

        text = getattr(response, "text", None)
        if not isinstance(text, str) or not text.strip():
            raise CompletionError(FAILURE_MALFORMED, "Gemini returned an empty response")
        return text


async def generate_reply(
    provider: CompletionProvider,
    turns: Sequence[Turn],
    *,
    max_output_tokens: int,
    temperature: float,
) -> str:
    """Return reply text for ``turns``; provider failures become fallback text."""
    try:
        text = await provider.complete(
            turns,
            max_output_tokens=max_output_tokens,
            temperature=temperature,
        )
    except CompletionError as exc:
        LOGGER.error(
            "Completion provider %s failed (%s): %s", provider.name, exc.kind, exc
        )
        return FALLBACK_REPLIES.get(exc.kind, UNAVAILABLE_REPLY)
    except Exception:
        LOGGER.exception("Completion provider %s raised unexpectedly", provider.name)
        return UNAVAILABLE_REPLY

    resolved = text.strip() if isinstance(text, str) else ""
    if not resolved:
        LOGGER.error("Completion provider %s returned empty output", provider.name)
        return EMPTY_REPLY
    return resolved


def build_completion_provider(config: AppConfig) -> CompletionProvider | None:
    if config.completion_backend == "google":
        if not config.gemini_api_key:
            LOGGER.warning("GEMINI_API_KEY is not set; chat replies are disabled")
            return None
        return GeminiCompletionProvider(
            api_key=config.gemini_api_key, model=config.gemini_model
        )

    if config.completion_backend != "openai":
        LOGGER.warning(
            "Unknown COMPLETION_BACKEND %r; using openai", config.completion_backend
        )
    if not config.openai_api_key:
        LOGGER.warning("OPENAI_API_KEY is not set; chat replies are disabled")
        return None
    return OpenAICompletionProvider(
        api_key=config.openai_api_key, model=config.openai_model
    )
