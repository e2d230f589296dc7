from __future__ import annotations

import pytest

from chatrelay.app.channel.contracts import ChannelDeliveryError, FormatHint
from chatrelay.app.completion.contracts import CompletionError
from chatrelay.app.sessions.contracts import Transcript
from chatrelay.core.config import DEFAULT_SYSTEM_DIRECTIVE, AppConfig


class FakeChannel:
    def __init__(self) -> None:
        self.sent: list[tuple[int | str, str, FormatHint]] = []
        self.typing: list[int | str] = []
        self.fail_send = False
        self.fail_typing = False
        self.typing_error: Exception | None = None

    async def send(
        self,
        chat_id: int | str,
        text: str,
        format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        if self.fail_send:
            raise ChannelDeliveryError("chat not found")
        self.sent.append((chat_id, text, format_hint))

    async def send_typing(self, chat_id: int | str) -> None:
        self.typing.append(chat_id)
        if self.typing_error is not None:
            raise self.typing_error
        if self.fail_typing:
            raise ChannelDeliveryError("typing rejected")

    @property
    def texts(self) -> list[str]:
        return [text for _, text, _ in self.sent]


class ScriptedCompletion:
    """Replays queued replies or errors; falls back to ``reply <n>``."""

    def __init__(self) -> None:
        self.outcomes: list[str | CompletionError] = []
        self.calls: list[Transcript] = []

    async def complete(self, transcript: Transcript) -> str:
        self.calls.append(transcript)
        if not self.outcomes:
            return f"reply {len(self.calls)}"
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, CompletionError):
            raise outcome
        return outcome


@pytest.fixture
def channel() -> FakeChannel:
    return FakeChannel()


@pytest.fixture
def completion() -> ScriptedCompletion:
    return ScriptedCompletion()


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        telegram_bot_token="123456:test-token",
        openai_api_key="sk-test",
        app_name="Telegram ChatGPT Bot Server",
        port=3000,
        log_level="INFO",
        openai_base_url="https://api.openai.test/v1",
        openai_model="gpt-3.5-turbo",
        openai_max_tokens=1000,
        openai_temperature=0.7,
        completion_timeout_seconds=30.0,
        max_transcript_messages=20,
        max_sessions=0,
        enable_freeform_chat=False,
        enable_telegram_polling=False,
        telegram_poll_timeout_seconds=30,
        system_directive=DEFAULT_SYSTEM_DIRECTIVE,
    )
