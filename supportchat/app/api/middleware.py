from __future__ import annotations

import asyncio
import logging

from fastapi import HTTPException
from starlette.datastructures import MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from supportchat.app.admission.service import (
    FixedWindowRateLimiter,
    RateLimitExceeded,
    enforce,
    should_refund,
)

LOGGER = logging.getLogger(__name__)

UNKNOWN_ORIGIN = "unknown"
BODY_TOO_LARGE_MESSAGE = "Request body too large"


def scope_origin(scope: Scope) -> str:
    client = scope.get("client")
    if client and client[0]:
        return str(client[0])
    return UNKNOWN_ORIGIN


class RequestTimeoutMiddleware:
    def __init__(self, app: ASGIApp, *, timeout_seconds: float) -> None:
        self.app = app
        self.timeout_seconds = timeout_seconds

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(
                self.app(scope, receive, send_wrapper), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            LOGGER.warning(
                "Request %s %s timed out after %ss",
                scope.get("method"),
                scope.get("path"),
                self.timeout_seconds,
            )
            if response_started:
                return
            response = JSONResponse(
                {"detail": "Request timeout. Please try again."}, status_code=408
            )
            await response(scope, receive, send)


class RequestBodyTooLarge(HTTPException):
    def __init__(self) -> None:
        super().__init__(status_code=413, detail=BODY_TOO_LARGE_MESSAGE)


class BodySizeLimitMiddleware:
    """Reject bodies over ``max_body_bytes``, declared or streamed."""

    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def _reject(self, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse({"detail": BODY_TOO_LARGE_MESSAGE}, status_code=413)
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        for name, value in scope.get("headers", []):
            if name != b"content-length":
                continue
            try:
                length = int(value)
            except ValueError:
                length = 0
            if length > self.max_body_bytes:
                await self._reject(scope, receive, send)
                return

        # Chunked uploads carry no Content-Length; count what arrives.
        received = 0
        response_started = False

        async def receive_wrapper() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise RequestBodyTooLarge()
            return message

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await self.app(scope, receive_wrapper, send_wrapper)
        except RequestBodyTooLarge:
            if response_started:
                raise
            await self._reject(scope, receive, send)


class ApiRateLimitMiddleware:
    def __init__(self, app: ASGIApp, *, limiter: FixedWindowRateLimiter) -> None:
        self.app = app
        self.limiter = limiter

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        key = scope_origin(scope)
        try:
            decision = enforce(self.limiter, key)
        except RateLimitExceeded as exc:
            response = JSONResponse(
                {"detail": str(exc)},
                status_code=429,
                headers=exc.decision.headers(),
            )
            await response(scope, receive, send)
            return

        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                headers = MutableHeaders(scope=message)
                for name, value in decision.headers().items():
                    if name not in headers:
                        headers[name] = value
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            if should_refund(self.limiter.rule, status_code):
                self.limiter.refund(decision)
