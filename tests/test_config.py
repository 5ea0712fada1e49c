from __future__ import annotations

from supportchat.core.config import load_app_config, load_dotenv_file

CONFIG_ENV_VARS = (
    "APP_ENV",
    "NODE_ENV",
    "DATABASE_URL",
    "DATABASE_PUBLIC_URL",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "COMPLETION_BACKEND",
    "MAX_MESSAGE_LENGTH",
    "HISTORY_LIMIT",
    "TEMPERATURE",
    "FRONTEND_URL",
    "RATE_LIMIT_CHAT_MAX",
    "RATE_LIMIT_API_SKIP_SUCCESSFUL",
)


def _clear_env(monkeypatch) -> None:
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_load_app_config_uses_reference_defaults(monkeypatch) -> None:
    _clear_env(monkeypatch)

    config = load_app_config()

    assert config.environment == "development"
    assert config.database_url is None
    assert config.max_message_length == 5000
    assert config.history_limit == 10
    assert config.max_output_tokens == 500
    assert config.temperature == 0.7
    assert config.request_timeout_seconds == 30.0
    assert config.api_rate_limit.max_requests == 100
    assert config.daily_rate_limit.window_seconds == 24 * 60 * 60
    assert config.daily_rate_limit.max_requests == 200
    assert config.origin_rate_limit.max_requests == 50
    assert config.session_rate_limit.max_requests == 20
    assert config.api_limit_skip_successful is False


def test_load_app_config_prefers_public_database_url(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("DATABASE_URL", "postgresql://internal/db")
    monkeypatch.setenv("DATABASE_PUBLIC_URL", "postgresql://public/db")

    assert load_app_config().database_url == "postgresql://public/db"


def test_invalid_numeric_values_fall_back_to_defaults(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("MAX_MESSAGE_LENGTH", "lots")
    monkeypatch.setenv("HISTORY_LIMIT", "-3")
    monkeypatch.setenv("TEMPERATURE", "warm")
    monkeypatch.setenv("RATE_LIMIT_CHAT_MAX", "7")
    monkeypatch.setenv("RATE_LIMIT_API_SKIP_SUCCESSFUL", "yes")

    config = load_app_config()

    assert config.max_message_length == 5000
    assert config.history_limit == 10
    assert config.temperature == 0.7
    assert config.origin_rate_limit.max_requests == 7
    assert config.api_limit_skip_successful is True


def test_gemini_key_falls_back_to_google_api_key(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("GOOGLE_API_KEY", "google-key")
    monkeypatch.setenv("COMPLETION_BACKEND", "Google")

    config = load_app_config()

    assert config.gemini_api_key == "google-key"
    assert config.completion_backend == "google"


def test_cors_origins_split_frontend_url_in_production(monkeypatch) -> None:
    _clear_env(monkeypatch)
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("FRONTEND_URL", "https://shop.example, https://www.shop.example")

    config = load_app_config()

    assert config.is_production is True
    assert config.cors_origins == ["https://shop.example", "https://www.shop.example"]


def test_cors_origins_allow_localhost_outside_production(make_config) -> None:
    config = make_config(environment="development", frontend_url="https://ignored")

    assert config.cors_origins == ["http://localhost:3000", "http://127.0.0.1:3000"]


def test_load_dotenv_file_does_not_override_existing_values(
    tmp_path, monkeypatch
) -> None:
    monkeypatch.setenv("OPENAI_API_KEY", "from-shell")
    monkeypatch.setenv("OPENAI_MODEL", "placeholder")
    monkeypatch.delenv("OPENAI_MODEL")
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local settings\n"
        "export OPENAI_API_KEY=from-file\n"
        "OPENAI_MODEL='gpt-4o-mini'\n",
        encoding="utf-8",
    )

    assert load_dotenv_file(str(env_file)) is True
    config = load_app_config()

    assert config.openai_api_key == "from-shell"
    assert config.openai_model == "gpt-4o-mini"


def test_load_dotenv_file_missing_file_returns_false(tmp_path) -> None:
    assert load_dotenv_file(str(tmp_path / "missing.env")) is False
