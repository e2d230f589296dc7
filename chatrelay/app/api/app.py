from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatrelay.app.api.models import HealthResponse, StatsResponse, StatusResponse
from chatrelay.app.channel.contracts import OutboundChannel
from chatrelay.app.channel.telegram import TelegramChannel, TelegramPoller
from chatrelay.app.commands.router import CommandRouter
from chatrelay.app.completion.client import CompletionBackend, CompletionClient
from chatrelay.app.completion.contracts import CompletionSettings
from chatrelay.app.observability.service import memory_usage, utc_timestamp
from chatrelay.app.pipeline.service import RequestPipeline
from chatrelay.app.sessions.store import SessionStore
from chatrelay.core.config import AppConfig, load_app_config

LOGGER = logging.getLogger(__name__)


def _build_completion_client(config: AppConfig) -> CompletionClient:
    return CompletionClient(
        CompletionSettings(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            model=config.openai_model,
            max_tokens=config.openai_max_tokens,
            temperature=config.openai_temperature,
            timeout_seconds=config.completion_timeout_seconds,
        )
    )


def create_app(
    config: AppConfig | None = None,
    *,
    channel: OutboundChannel | None = None,
    completion: CompletionBackend | None = None,
) -> FastAPI:
    config = config or load_app_config()
    started_at = time.monotonic()

    owned_completion = (
        _build_completion_client(config) if completion is None else None
    )
    owned_channel = (
        TelegramChannel(
            token=config.telegram_bot_token,
            poll_timeout_seconds=config.telegram_poll_timeout_seconds,
        )
        if channel is None
        else None
    )
    active_channel: OutboundChannel = channel or owned_channel
    session_store = SessionStore(
        system_directive=config.system_directive,
        max_sessions=config.max_sessions,
    )
    pipeline = RequestPipeline(
        store=session_store,
        completion=completion or owned_completion,
        channel=active_channel,
        max_messages=config.max_transcript_messages,
    )
    command_router = CommandRouter(
        pipeline=pipeline,
        channel=active_channel,
        allow_freeform=config.enable_freeform_chat,
    )
    poller = (
        TelegramPoller(channel=owned_channel, handler=command_router.route)
        if owned_channel is not None and config.enable_telegram_polling
        else None
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if poller:
            await poller.start()
        LOGGER.info("%s started on port %s", config.app_name, config.port)
        try:
            yield
        finally:
            if poller:
                await poller.stop()
            if owned_channel:
                await owned_channel.aclose()
            if owned_completion:
                await owned_completion.aclose()

    app = FastAPI(title=config.app_name, version="1.0.0", lifespan=lifespan)
    app.state.config = config
    app.state.session_store = session_store
    app.state.pipeline = pipeline
    app.state.command_router = command_router

    @app.get("/")
    async def root() -> StatusResponse:
        return StatusResponse(
            status="running",
            message=config.app_name,
            timestamp=utc_timestamp(),
        )

    @app.get("/health")
    async def health() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            uptime_seconds=round(time.monotonic() - started_at, 3),
            memory=memory_usage(),
            timestamp=utc_timestamp(),
        )

    @app.get("/stats")
    async def stats() -> StatsResponse:
        return StatsResponse(
            active_conversations=session_store.count(),
            users_in_flight=pipeline.users_in_flight,
            timestamp=utc_timestamp(),
        )

    return app
