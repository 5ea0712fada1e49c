from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEVELOPMENT_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class RateLimitSettings:
    window_seconds: int
    max_requests: int


@dataclass(frozen=True)
class AppConfig:
    app_name: str
    app_version: str
    environment: str
    log_level: str
    database_url: str | None
    database_echo: bool
    completion_backend: str
    openai_api_key: str | None
    openai_model: str
    gemini_api_key: str | None
    gemini_model: str
    max_message_length: int
    history_limit: int
    max_output_tokens: int
    temperature: float
    request_timeout_seconds: float
    max_body_bytes: int
    frontend_url: str
    api_rate_limit: RateLimitSettings
    daily_rate_limit: RateLimitSettings
    origin_rate_limit: RateLimitSettings
    session_rate_limit: RateLimitSettings
    api_limit_skip_successful: bool
    api_limit_skip_failed: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origins(self) -> list[str]:
        if not self.is_production:
            return list(DEVELOPMENT_ORIGINS)
        return [url.strip() for url in self.frontend_url.split(",") if url.strip()]


def load_dotenv_file(path: str = ".env") -> bool:
    env_path = Path(path)
    if not env_path.exists() or not env_path.is_file():
        return False

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line.removeprefix("export ").strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        os.environ.setdefault(key, _strip_quotes(value.strip()))

    return True


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    return value


def _read_optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if not value:
        return None
    stripped = value.strip()
    return stripped if stripped else None


def _read_bool_env(name: str, default: bool) -> bool:
    value = _read_optional_env(name)
    if value is None:
        return default
    normalized = value.lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    return default


def _read_int_env(name: str, default: int) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_float_env(name: str, default: float, *, maximum: float | None = None) -> float:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if parsed < 0:
        return default
    if maximum is not None and parsed > maximum:
        return maximum
    return parsed


def _read_rate_limit(prefix: str, *, window_seconds: int, max_requests: int) -> RateLimitSettings:
    return RateLimitSettings(
        window_seconds=_read_int_env(f"{prefix}_WINDOW_SECONDS", window_seconds),
        max_requests=_read_int_env(f"{prefix}_MAX", max_requests),
    )


def load_app_config() -> AppConfig:
    return AppConfig(
        app_name=os.getenv("APP_NAME", "Support Chat"),
        app_version=os.getenv("APP_VERSION", "0.1.0"),
        environment=(
            _read_optional_env("APP_ENV")
            or _read_optional_env("NODE_ENV")
            or "development"
        ).lower(),
        log_level=(_read_optional_env("LOG_LEVEL") or "INFO").upper(),
        database_url=_read_optional_env("DATABASE_PUBLIC_URL")
        or _read_optional_env("DATABASE_URL"),
        database_echo=_read_bool_env("DATABASE_ECHO", default=False),
        completion_backend=(
            _read_optional_env("COMPLETION_BACKEND") or "openai"
        ).lower(),
        openai_api_key=_read_optional_env("OPENAI_API_KEY"),
        openai_model=_read_optional_env("OPENAI_MODEL") or "gpt-3.5-turbo",
        gemini_api_key=_read_optional_env("GEMINI_API_KEY")
        or _read_optional_env("GOOGLE_API_KEY"),
        gemini_model=_read_optional_env("GEMINI_MODEL") or "gemini-2.5-flash",
        max_message_length=_read_int_env("MAX_MESSAGE_LENGTH", default=5000),
        history_limit=_read_int_env("HISTORY_LIMIT", default=10),
        max_output_tokens=_read_int_env("MAX_OUTPUT_TOKENS", default=500),
        temperature=_read_float_env("TEMPERATURE", default=0.7, maximum=2.0),
        request_timeout_seconds=_read_float_env(
            "REQUEST_TIMEOUT_SECONDS", default=30.0
        )
        or 30.0,
        max_body_bytes=_read_int_env("MAX_BODY_BYTES", default=100 * 1024),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
        api_rate_limit=_read_rate_limit(
            "RATE_LIMIT_API", window_seconds=15 * 60, max_requests=100
        ),
        daily_rate_limit=_read_rate_limit(
            "RATE_LIMIT_DAILY", window_seconds=24 * 60 * 60, max_requests=200
        ),
        origin_rate_limit=_read_rate_limit(
            "RATE_LIMIT_CHAT", window_seconds=15 * 60, max_requests=50
        ),
        session_rate_limit=_read_rate_limit(
            "RATE_LIMIT_SESSION", window_seconds=15 * 60, max_requests=20
        ),
        api_limit_skip_successful=_read_bool_env(
            "RATE_LIMIT_API_SKIP_SUCCESSFUL", default=False
        ),
        api_limit_skip_failed=_read_bool_env(
            "RATE_LIMIT_API_SKIP_FAILED", default=False
        ),
    )


def configure_logging(config: AppConfig) -> None:
    level = logging.getLevelName(config.log_level)
    if not isinstance(level, int):
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger().setLevel(level)
