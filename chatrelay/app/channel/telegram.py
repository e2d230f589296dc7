from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from chatrelay.app.channel.contracts import (
    ChannelDeliveryError,
    FormatHint,
    InboundMessage,
)

LOGGER = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"
TELEGRAM_MESSAGE_LIMIT = 4096
POLL_ERROR_BACKOFF_SECONDS = 5.0

InboundHandler = Callable[[InboundMessage], Awaitable[None]]


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    if len(text) <= limit:
        return [text]
    parts: list[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        parts.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        parts.append(remaining)
    return parts


def parse_update(update: dict[str, Any]) -> InboundMessage | None:
    message = update.get("message")
    if not isinstance(message, dict):
        return None
    sender = message.get("from")
    chat = message.get("chat")
    if not isinstance(sender, dict) or not isinstance(chat, dict):
        return None
    sender_id = sender.get("id")
    chat_id = chat.get("id")
    if sender_id is None or chat_id is None:
        return None
    text = message.get("text")
    return InboundMessage(
        sender_user_id=str(sender_id),
        chat_id=chat_id,
        text=text if isinstance(text, str) else None,
    )


class TelegramChannel:
    def __init__(
        self,
        *,
        token: str,
        poll_timeout_seconds: int = 30,
        api_url: str = TELEGRAM_API_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._poll_timeout_seconds = poll_timeout_seconds
        self._client = httpx.AsyncClient(
            base_url=f"{api_url.rstrip('/')}/bot{token}",
            timeout=httpx.Timeout(20.0, read=poll_timeout_seconds + 10.0),
            transport=transport,
        )

    async def _call(self, method: str, payload: dict[str, object]) -> Any:
        try:
            response = await self._client.post(f"/{method}", json=payload)
        except httpx.HTTPError as exc:
            raise ChannelDeliveryError(
                f"Telegram {method} failed: {exc.__class__.__name__}"
            ) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise ChannelDeliveryError(
                f"Telegram {method} returned HTTP {response.status_code}"
            ) from exc
        if not isinstance(body, dict) or not body.get("ok"):
            description = body.get("description") if isinstance(body, dict) else None
            raise ChannelDeliveryError(
                f"Telegram {method} rejected: {description or response.status_code}"
            )
        return body.get("result")

    async def send(
        self,
        chat_id: int | str,
        text: str,
        format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None:
        for part in split_message(text):
            payload: dict[str, object] = {"chat_id": chat_id, "text": part}
            if format_hint is FormatHint.MARKDOWN:
                payload["parse_mode"] = "Markdown"
            await self._call("sendMessage", payload)

    async def send_typing(self, chat_id: int | str) -> None:
        await self._call("sendChatAction", {"chat_id": chat_id, "action": "typing"})

    async def get_updates(self, offset: int | None) -> list[dict[str, Any]]:
        payload: dict[str, object] = {
            "timeout": self._poll_timeout_seconds,
            "allowed_updates": ["message"],
        }
        if offset is not None:
            payload["offset"] = offset
        result = await self._call("getUpdates", payload)
        if not isinstance(result, list):
            return []
        return [update for update in result if isinstance(update, dict)]

    async def aclose(self) -> None:
        await self._client.aclose()


class TelegramPoller:
    """Long-polls ``getUpdates`` and hands each message to ``handler``.

    Every inbound message runs as its own task so slow completions for one
    user do not hold up other users. Ordering per user is the handler's
    concern.
    """

    def __init__(
        self,
        *,
        channel: TelegramChannel,
        handler: InboundHandler,
        error_backoff_seconds: float = POLL_ERROR_BACKOFF_SECONDS,
    ) -> None:
        self._channel = channel
        self._handler = handler
        self._error_backoff_seconds = error_backoff_seconds
        self._offset: int | None = None
        self._task: asyncio.Task[None] | None = None
        self._in_flight: set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="telegram-poller")
        LOGGER.info("Telegram bot is active and polling for messages")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def poll_once(self) -> int:
        updates = await self._channel.get_updates(self._offset)
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = update_id + 1
            message = parse_update(update)
            if message is None:
                continue
            task = asyncio.create_task(self._dispatch(message))
            self._in_flight.add(task)
            task.add_done_callback(self._in_flight.discard)
        return len(updates)

    async def _run(self) -> None:
        while True:
            try:
                await self.poll_once()
            except ChannelDeliveryError as exc:
                LOGGER.error("Polling error: %s", exc)
                await asyncio.sleep(self._error_backoff_seconds)

    async def _dispatch(self, message: InboundMessage) -> None:
        try:
            await self._handler(message)
        except Exception:
            LOGGER.exception(
                "Unhandled error for message from user_id=%s",
                message.sender_user_id,
            )
