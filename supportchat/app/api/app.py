from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from supportchat.app.admission.service import (
    RateLimitExceeded,
    build_api_limiter,
    build_chat_admission,
)
from supportchat.app.api.errors import client_error_message, status_code_for
from supportchat.app.api.middleware import (
    UNKNOWN_ORIGIN,
    ApiRateLimitMiddleware,
    BodySizeLimitMiddleware,
    RequestTimeoutMiddleware,
)
from supportchat.app.chat.contracts import (
    ChatConfigurationError,
    ChatValidationError,
    ConversationNotFoundError,
    StorageUnavailableError,
)
from supportchat.app.chat.service import ChatService
from supportchat.app.llm.providers import CompletionProvider, build_completion_provider
from supportchat.app.storage.contracts import RecordStore
from supportchat.app.storage.memory_store import InMemoryRecordStore
from supportchat.app.storage.sql_store import SqlRecordStore
from supportchat.core.config import AppConfig, configure_logging, load_app_config

LOGGER = logging.getLogger(__name__)


class ChatMessageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Checked by ChatService so bad values map to 400 instead of 422.
    message: Any = None
    session_id: Any = Field(default=None, alias="sessionId")


def build_record_store(config: AppConfig) -> RecordStore:
    if not config.database_url:
        LOGGER.warning("DATABASE_URL is not set; using in-memory record store")
        return InMemoryRecordStore()
    return SqlRecordStore(config.database_url, echo=config.database_echo)


def _request_origin(request: Request) -> str:
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ORIGIN


async def _body_session_id(request: Request) -> str | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    session_id = payload.get("sessionId")
    if isinstance(session_id, str) and session_id:
        return session_id
    return None


def create_app(
    *,
    config: AppConfig | None = None,
    store: RecordStore | None = None,
    provider: CompletionProvider | None = None,
) -> FastAPI:
    config = config or load_app_config()
    configure_logging(config)
    record_store = store if store is not None else build_record_store(config)
    completion_provider = provider or build_completion_provider(config)
    chat_service = ChatService(
        config, store=record_store, provider=completion_provider
    )
    api_limiter = build_api_limiter(config)
    chat_admission = build_chat_admission(config)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        record_store.open()
        try:
            yield
        finally:
            record_store.close()

    app = FastAPI(title=config.app_name, version=config.app_version, lifespan=lifespan)
    app.state.config = config

    # Last added runs first: CORS, timeout, body size, general rate limit.
    app.add_middleware(ApiRateLimitMiddleware, limiter=api_limiter)
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=config.max_body_bytes)
    app.add_middleware(
        RequestTimeoutMiddleware, timeout_seconds=config.request_timeout_seconds
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Content-Type", "Authorization"],
    )

    def _http_error(exc: Exception) -> HTTPException:
        return HTTPException(
            status_code=status_code_for(exc),
            detail=client_error_message(exc, production=config.is_production),
        )

    async def admit_chat_request(request: Request, response: Response) -> None:
        read_only = request.method == "GET"
        session_id = None if read_only else await _body_session_id(request)
        try:
            decision = chat_admission.admit(
                origin=_request_origin(request),
                session_id=session_id,
                read_only=read_only,
            )
        except RateLimitExceeded as exc:
            raise HTTPException(
                status_code=429,
                detail=str(exc),
                headers=exc.decision.headers(),
            ) from exc
        for name, value in decision.headers().items():
            response.headers[name] = value

    router = APIRouter(prefix="/chat", dependencies=[Depends(admit_chat_request)])

    @router.get("/history/{session_id}")
    async def chat_history(session_id: str) -> dict[str, object]:
        try:
            history = await chat_service.history(session_id)
        except (ConversationNotFoundError, StorageUnavailableError) as exc:
            raise _http_error(exc) from exc
        return {
            "messages": [
                {
                    "id": message.id,
                    "sender": message.sender,
                    "text": message.text,
                    "createdAt": message.created_at.isoformat(),
                }
                for message in history.messages
            ],
            "sessionId": history.session_id,
        }

    @router.post("/message")
    async def chat_message(payload: ChatMessageRequest) -> dict[str, str]:
        try:
            result = await chat_service.send(payload.message, payload.session_id)
        except (
            ChatValidationError,
            ChatConfigurationError,
            StorageUnavailableError,
        ) as exc:
            raise _http_error(exc) from exc
        return {"reply": result.reply, "sessionId": result.session_id}

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(router)

    @app.exception_handler(RequestValidationError)
    async def invalid_request_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        LOGGER.info("Rejected malformed request body: %s", exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Invalid request body"})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        _request: Request, exc: Exception
    ) -> JSONResponse:
        if config.is_production:
            LOGGER.error("Unhandled error: %s: %s", type(exc).__name__, exc)
        else:
            LOGGER.error("Unhandled error", exc_info=exc)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app
