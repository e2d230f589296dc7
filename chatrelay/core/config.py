from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_SYSTEM_DIRECTIVE = (
    "You are a helpful AI assistant integrated into a Telegram bot. "
    "Be concise but informative in your responses."
)


class MissingConfigurationError(RuntimeError):
    pass


@dataclass(frozen=True)
class AppConfig:
    telegram_bot_token: str
    openai_api_key: str
    app_name: str
    port: int
    log_level: str
    openai_base_url: str
    openai_model: str
    openai_max_tokens: int
    openai_temperature: float
    completion_timeout_seconds: float
    max_transcript_messages: int
    max_sessions: int
    enable_freeform_chat: bool
    enable_telegram_polling: bool
    telegram_poll_timeout_seconds: int
    system_directive: str


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


def _read_int_env(name: str, default: int, *, minimum: int = 1) -> int:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return parsed if parsed >= minimum else default


def _read_float_env(
    name: str, default: float, *, upper: float, minimum: float = 0.0
) -> float:
    value = _read_optional_env(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    if not parsed >= minimum:
        return default
    if parsed > upper:
        return upper
    return parsed


def load_app_config() -> AppConfig:
    telegram_bot_token = _read_optional_env("TELEGRAM_BOT_TOKEN")
    openai_api_key = _read_optional_env("OPENAI_API_KEY")
    if telegram_bot_token is None or openai_api_key is None:
        missing = [
            name
            for name, value in (
                ("TELEGRAM_BOT_TOKEN", telegram_bot_token),
                ("OPENAI_API_KEY", openai_api_key),
            )
            if value is None
        ]
        raise MissingConfigurationError(
            "Missing required environment variables: "
            + ", ".join(missing)
            + ". Please check your .env file."
        )

    return AppConfig(
        telegram_bot_token=telegram_bot_token,
        openai_api_key=openai_api_key,
        app_name=os.getenv("APP_NAME", "Telegram ChatGPT Bot Server"),
        port=_read_int_env("PORT", default=3000),
        log_level=(_read_optional_env("LOG_LEVEL") or "INFO").upper(),
        openai_base_url=(
            _read_optional_env("OPENAI_BASE_URL") or "https://api.openai.com/v1"
        ).rstrip("/"),
        openai_model=_read_optional_env("OPENAI_MODEL") or "gpt-3.5-turbo",
        openai_max_tokens=_read_int_env("OPENAI_MAX_TOKENS", default=1000),
        openai_temperature=_read_float_env(
            "OPENAI_TEMPERATURE", default=0.7, upper=2.0
        ),
        completion_timeout_seconds=_read_float_env(
            "COMPLETION_TIMEOUT_SECONDS", default=30.0, upper=300.0, minimum=1.0
        ),
        max_transcript_messages=_read_int_env(
            "MAX_TRANSCRIPT_MESSAGES", default=20, minimum=2
        ),
        max_sessions=_read_int_env("MAX_SESSIONS", default=0, minimum=0),
        enable_freeform_chat=_read_bool_env("ENABLE_FREEFORM_CHAT", default=False),
        enable_telegram_polling=_read_bool_env(
            "ENABLE_TELEGRAM_POLLING", default=True
        ),
        telegram_poll_timeout_seconds=_read_int_env(
            "TELEGRAM_POLL_TIMEOUT_SECONDS", default=30, minimum=0
        ),
        system_directive=_read_optional_env("SYSTEM_DIRECTIVE")
        or DEFAULT_SYSTEM_DIRECTIVE,
    )
