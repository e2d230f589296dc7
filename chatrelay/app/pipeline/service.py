from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace

from chatrelay.app.channel.contracts import (
    ChannelDeliveryError,
    FormatHint,
    OutboundChannel,
)
from chatrelay.app.completion.client import CompletionBackend
from chatrelay.app.completion.contracts import CompletionError
from chatrelay.app.observability.service import create_trace, emit_pipeline_event
from chatrelay.app.pipeline.contracts import (
    PIPELINE_STAGE_DISPATCHED,
    PIPELINE_STAGE_PERSISTED,
    PIPELINE_STAGE_RECEIVED,
    PipelineOutcome,
)
from chatrelay.app.pipeline.locks import KeyedLocks
from chatrelay.app.response.messages import error_notice
from chatrelay.app.sessions.contracts import (
    DEFAULT_MAX_MESSAGES,
    ROLE_ASSISTANT,
    ROLE_USER,
    Turn,
)
from chatrelay.app.sessions.store import SessionStore
from chatrelay.app.sessions.trimming import trim_transcript

LOGGER = logging.getLogger(__name__)


class RequestPipeline:
    """Runs one user message through session, completion and dispatch.

    Work for the same user id is serialized: a later message does not load
    the session until the earlier one has persisted its transcript and sent
    its reply. Different users proceed concurrently; the completion call is
    the only await that yields between them.
    """

    def __init__(
        self,
        *,
        store: SessionStore,
        completion: CompletionBackend,
        channel: OutboundChannel,
        max_messages: int = DEFAULT_MAX_MESSAGES,
    ) -> None:
        self._store = store
        self._completion = completion
        self._channel = channel
        self._max_messages = max_messages
        self._locks = KeyedLocks()
        self._signal_tasks: set[asyncio.Task[None]] = set()

    @property
    def users_in_flight(self) -> int:
        return self._locks.active_keys()

    async def handle(
        self,
        *,
        user_id: str,
        chat_id: int | str,
        text: str | None,
    ) -> PipelineOutcome:
        if text is None or not text.strip():
            return PipelineOutcome(stage=PIPELINE_STAGE_RECEIVED)

        started_at = time.perf_counter()
        async with self._locks.hold(user_id):
            transcript = self._store.get_or_create(user_id)
            transcript = (*transcript, Turn(role=ROLE_USER, content=text))
            transcript = trim_transcript(transcript, self._max_messages)

            self._signal_typing(chat_id)
            try:
                reply = await self._completion.complete(transcript)
            except CompletionError as exc:
                LOGGER.error(
                    "Error processing message for user_id=%s: %s", user_id, exc
                )
                self._store.replace(user_id, transcript)
                outcome = PipelineOutcome(
                    stage=PIPELINE_STAGE_PERSISTED,
                    reply_text=error_notice(exc.kind),
                    error_kind=exc.kind,
                )
            else:
                transcript = trim_transcript(
                    (*transcript, Turn(role=ROLE_ASSISTANT, content=reply)),
                    self._max_messages,
                )
                self._store.replace(user_id, transcript)
                outcome = PipelineOutcome(
                    stage=PIPELINE_STAGE_PERSISTED, reply_text=reply
                )

            if await self._dispatch(chat_id, outcome.reply_text or ""):
                outcome = replace(
                    outcome, stage=PIPELINE_STAGE_DISPATCHED, delivered=True
                )

        emit_pipeline_event(
            create_trace(
                user_id=user_id,
                stage=outcome.stage,
                error_kind=outcome.error_kind.value if outcome.error_kind else None,
                transcript_length=len(transcript),
                started_at=started_at,
            ),
            logger=LOGGER,
        )
        return outcome

    async def clear(self, user_id: str) -> None:
        async with self._locks.hold(user_id):
            self._store.clear(user_id)

    def _signal_typing(self, chat_id: int | str) -> None:
        task = asyncio.create_task(self._send_typing(chat_id))
        self._signal_tasks.add(task)
        task.add_done_callback(self._signal_tasks.discard)

    async def _send_typing(self, chat_id: int | str) -> None:
        try:
            await self._channel.send_typing(chat_id)
        except Exception as exc:
            LOGGER.debug("Typing signal dropped for chat_id=%s: %s", chat_id, exc)

    async def _dispatch(self, chat_id: int | str, text: str) -> bool:
        try:
            await self._channel.send(chat_id, text, FormatHint.PLAIN)
        except ChannelDeliveryError as exc:
            LOGGER.error("Failed to deliver reply to chat_id=%s: %s", chat_id, exc)
            return False
        return True
