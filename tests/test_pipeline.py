from __future__ import annotations

import asyncio
import logging

import httpx
import pytest

from chatrelay.app.completion.client import CompletionClient
from chatrelay.app.completion.contracts import (
    CompletionError,
    CompletionErrorKind,
    CompletionSettings,
)
from chatrelay.app.pipeline.contracts import (
    PIPELINE_STAGE_DISPATCHED,
    PIPELINE_STAGE_PERSISTED,
)
from chatrelay.app.pipeline.service import RequestPipeline
from chatrelay.app.response.messages import ERROR_NOTICES
from chatrelay.app.sessions.contracts import (
    ROLE_ASSISTANT,
    ROLE_SYSTEM,
    ROLE_USER,
    Transcript,
    Turn,
)
from chatrelay.app.sessions.store import SessionStore

SYSTEM_TURN = Turn(role=ROLE_SYSTEM, content="be helpful")


class _GatedCompletion:
    def __init__(self) -> None:
        self.calls: list[Transcript] = []
        self.release = asyncio.Event()

    async def complete(self, transcript: Transcript) -> str:
        self.calls.append(transcript)
        await self.release.wait()
        return f"answer {len(self.calls)}"


def _store() -> SessionStore:
    return SessionStore(system_directive="be helpful")


def _pipeline(store, completion, channel, max_messages: int = 20) -> RequestPipeline:
    return RequestPipeline(
        store=store,
        completion=completion,
        channel=channel,
        max_messages=max_messages,
    )


@pytest.mark.asyncio
async def test_successful_exchange_records_both_turns(channel, completion) -> None:
    store = _store()
    completion.outcomes.append("4")
    pipeline = _pipeline(store, completion, channel)

    outcome = await pipeline.handle(user_id="u1", chat_id=42, text="What is 2+2?")

    assert outcome.stage == PIPELINE_STAGE_DISPATCHED
    assert outcome.delivered is True
    assert outcome.reply_text == "4"
    assert store.get_or_create("u1") == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="What is 2+2?"),
        Turn(role=ROLE_ASSISTANT, content="4"),
    )
    assert completion.calls[0] == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="What is 2+2?"),
    )
    assert channel.texts == ["4"]


@pytest.mark.asyncio
@pytest.mark.parametrize("text", [None, "", "   \n"])
async def test_empty_message_is_ignored(channel, completion, text) -> None:
    store = _store()
    pipeline = _pipeline(store, completion, channel)

    outcome = await pipeline.handle(user_id="u1", chat_id=42, text=text)

    assert outcome.ignored is True
    assert store.count() == 0
    assert completion.calls == []
    assert channel.sent == []
    assert channel.typing == []


@pytest.mark.asyncio
async def test_rate_limited_failure_keeps_user_turn_only(channel, completion) -> None:
    store = _store()
    completion.outcomes.append(
        CompletionError(CompletionErrorKind.RATE_LIMITED, "429", status_code=429)
    )
    pipeline = _pipeline(store, completion, channel)

    outcome = await pipeline.handle(user_id="u1", chat_id=42, text="hello?")

    assert outcome.error_kind is CompletionErrorKind.RATE_LIMITED
    assert channel.texts == [ERROR_NOTICES[CompletionErrorKind.RATE_LIMITED]]
    assert store.get_or_create("u1") == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="hello?"),
    )


@pytest.mark.asyncio
async def test_unsendable_completion_request_still_records_question(channel) -> None:
    store = _store()
    client = CompletionClient(
        CompletionSettings(
            api_key="sk-test\u201d",
            base_url="https://api.openai.test/v1",
            model="gpt-3.5-turbo",
            max_tokens=1000,
            temperature=0.7,
            timeout_seconds=30.0,
        ),
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    pipeline = _pipeline(store, client, channel)

    outcome = await pipeline.handle(user_id="u1", chat_id=42, text="hi")
    await client.aclose()

    assert outcome.error_kind is CompletionErrorKind.UNKNOWN
    assert channel.texts == [ERROR_NOTICES[CompletionErrorKind.UNKNOWN]]
    assert store.get_or_create("u1") == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="hi"),
    )


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", list(CompletionErrorKind))
async def test_each_error_kind_dispatches_its_notice(channel, completion, kind) -> None:
    completion.outcomes.append(CompletionError(kind, "failed"))
    pipeline = _pipeline(_store(), completion, channel)

    await pipeline.handle(user_id="u1", chat_id=42, text="hello?")

    assert channel.texts == [ERROR_NOTICES[kind]]


@pytest.mark.asyncio
async def test_transcript_stays_bounded_over_many_exchanges(
    channel, completion
) -> None:
    store = _store()
    pipeline = _pipeline(store, completion, channel, max_messages=20)
    exchange_turns: list[Turn] = []

    for index in range(1, 26):
        await pipeline.handle(user_id="u1", chat_id=42, text=f"question {index}")
        exchange_turns.append(Turn(role=ROLE_USER, content=f"question {index}"))
        exchange_turns.append(Turn(role=ROLE_ASSISTANT, content=f"reply {index}"))

    transcript = store.get_or_create("u1")
    assert len(transcript) == 20
    assert transcript[0] == SYSTEM_TURN
    assert list(transcript[1:]) == exchange_turns[-19:]
    assert all(len(call) <= 20 for call in completion.calls)
    assert all(call[0] == SYSTEM_TURN for call in completion.calls)


@pytest.mark.asyncio
async def test_typing_signal_failure_does_not_block_reply(channel, completion) -> None:
    channel.fail_typing = True
    pipeline = _pipeline(_store(), completion, channel)

    outcome = await pipeline.handle(user_id="u1", chat_id=42, text="hi")
    await asyncio.sleep(0)

    assert channel.typing == [42]
    assert outcome.stage == PIPELINE_STAGE_DISPATCHED
    assert channel.texts == ["reply 1"]


@pytest.mark.asyncio
async def test_unexpected_typing_error_is_logged_and_dropped(
    channel, completion, caplog
) -> None:
    channel.typing_error = RuntimeError(
        "Cannot send a request, as the client has been closed."
    )
    pipeline = _pipeline(_store(), completion, channel)

    with caplog.at_level(logging.DEBUG, logger="chatrelay.app.pipeline.service"):
        outcome = await pipeline.handle(user_id="u1", chat_id=42, text="hi")
        for _ in range(3):
            await asyncio.sleep(0)

    assert outcome.stage == PIPELINE_STAGE_DISPATCHED
    assert channel.texts == ["reply 1"]
    assert any(
        "Typing signal dropped" in message and "client has been closed" in message
        for message in caplog.messages
    )


@pytest.mark.asyncio
async def test_delivery_failure_is_logged_and_transcript_persisted(
    channel, completion, caplog
) -> None:
    channel.fail_send = True
    store = _store()
    pipeline = _pipeline(store, completion, channel)

    with caplog.at_level(logging.ERROR, logger="chatrelay.app.pipeline.service"):
        outcome = await pipeline.handle(user_id="u1", chat_id=42, text="hi")

    assert outcome.stage == PIPELINE_STAGE_PERSISTED
    assert outcome.delivered is False
    assert len(store.get_or_create("u1")) == 3
    assert any("Failed to deliver" in message for message in caplog.messages)


@pytest.mark.asyncio
async def test_same_user_messages_are_serialized(channel) -> None:
    store = _store()
    completion = _GatedCompletion()
    pipeline = _pipeline(store, completion, channel)

    first = asyncio.create_task(
        pipeline.handle(user_id="u1", chat_id=42, text="first")
    )
    second = asyncio.create_task(
        pipeline.handle(user_id="u1", chat_id=42, text="second")
    )
    for _ in range(5):
        await asyncio.sleep(0)

    assert len(completion.calls) == 1
    assert pipeline.users_in_flight == 1

    completion.release.set()
    await asyncio.gather(first, second)

    assert store.get_or_create("u1") == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="first"),
        Turn(role=ROLE_ASSISTANT, content="answer 1"),
        Turn(role=ROLE_USER, content="second"),
        Turn(role=ROLE_ASSISTANT, content="answer 2"),
    )
    assert completion.calls[1][-2] == Turn(role=ROLE_ASSISTANT, content="answer 1")
    assert channel.texts == ["answer 1", "answer 2"]
    assert pipeline.users_in_flight == 0


@pytest.mark.asyncio
async def test_same_user_failure_then_success_keeps_both_questions(channel) -> None:
    store = _store()

    class _FailThenAnswer:
        def __init__(self) -> None:
            self.calls = 0

        async def complete(self, transcript: Transcript) -> str:
            self.calls += 1
            await asyncio.sleep(0)
            if self.calls == 1:
                raise CompletionError(CompletionErrorKind.SERVICE_UNAVAILABLE, "500")
            return "second answer"

    pipeline = _pipeline(store, _FailThenAnswer(), channel)

    await asyncio.gather(
        pipeline.handle(user_id="u1", chat_id=42, text="first"),
        pipeline.handle(user_id="u1", chat_id=42, text="second"),
    )

    assert store.get_or_create("u1") == (
        SYSTEM_TURN,
        Turn(role=ROLE_USER, content="first"),
        Turn(role=ROLE_USER, content="second"),
        Turn(role=ROLE_ASSISTANT, content="second answer"),
    )


@pytest.mark.asyncio
async def test_different_users_complete_concurrently(channel) -> None:
    store = _store()
    completion = _GatedCompletion()
    pipeline = _pipeline(store, completion, channel)

    tasks = [
        asyncio.create_task(pipeline.handle(user_id=user, chat_id=user, text="hi"))
        for user in ("u1", "u2")
    ]
    for _ in range(5):
        await asyncio.sleep(0)

    assert len(completion.calls) == 2
    assert pipeline.users_in_flight == 2

    completion.release.set()
    await asyncio.gather(*tasks)

    assert store.count() == 2


@pytest.mark.asyncio
async def test_clear_waits_for_in_flight_request(channel) -> None:
    store = _store()
    completion = _GatedCompletion()
    pipeline = _pipeline(store, completion, channel)

    pending = asyncio.create_task(
        pipeline.handle(user_id="u1", chat_id=42, text="first")
    )
    for _ in range(3):
        await asyncio.sleep(0)
    clearing = asyncio.create_task(pipeline.clear("u1"))
    for _ in range(3):
        await asyncio.sleep(0)

    assert not clearing.done()

    completion.release.set()
    await asyncio.gather(pending, clearing)

    assert store.count() == 0


@pytest.mark.asyncio
async def test_pipeline_logs_structured_event(channel, completion, caplog) -> None:
    pipeline = _pipeline(_store(), completion, channel)

    with caplog.at_level(logging.INFO, logger="chatrelay.app.pipeline.service"):
        await pipeline.handle(user_id="u1", chat_id=42, text="hi")

    events = [m for m in caplog.messages if m.startswith("pipeline_event")]
    assert len(events) == 1
    assert '"user_id": "u1"' in events[0]
    assert '"stage": "dispatched"' in events[0]
    assert '"transcript_length": 3' in events[0]
