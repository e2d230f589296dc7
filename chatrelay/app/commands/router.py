from __future__ import annotations

import logging
import re

from chatrelay.app.channel.contracts import (
    ChannelDeliveryError,
    FormatHint,
    InboundMessage,
    OutboundChannel,
)
from chatrelay.app.commands.contracts import CommandKind, RoutedCommand
from chatrelay.app.pipeline.service import RequestPipeline
from chatrelay.app.response.messages import (
    ASK_MISSING_QUESTION_TEXT,
    ASK_USAGE_TEXT,
    CLEAR_CONFIRMATION_TEXT,
    HELP_TEXT,
    WELCOME_TEXT,
)

LOGGER = logging.getLogger(__name__)

COMMAND_PATTERN = re.compile(
    r"^/(?P<name>[A-Za-z0-9_]+)(?:@[A-Za-z0-9_]+)?(?P<rest>.*)$", re.DOTALL
)

CANNED_REPLIES: dict[CommandKind, tuple[str, FormatHint]] = {
    CommandKind.START: (WELCOME_TEXT, FormatHint.MARKDOWN),
    CommandKind.ASK_MISSING_QUESTION: (
        ASK_MISSING_QUESTION_TEXT,
        FormatHint.MARKDOWN,
    ),
    CommandKind.ASK_USAGE: (ASK_USAGE_TEXT, FormatHint.MARKDOWN),
    CommandKind.HELP: (HELP_TEXT, FormatHint.MARKDOWN),
}


def classify_text(text: str | None, *, allow_freeform: bool) -> RoutedCommand:
    if text is None:
        return RoutedCommand(kind=CommandKind.IGNORED)

    match = COMMAND_PATTERN.match(text)
    if not match:
        if allow_freeform:
            return RoutedCommand(kind=CommandKind.FREEFORM, argument=text)
        return RoutedCommand(kind=CommandKind.IGNORED)

    name = match.group("name")
    rest = match.group("rest")
    if name == "start":
        return RoutedCommand(kind=CommandKind.START)
    if name == "ask":
        if not rest:
            return RoutedCommand(kind=CommandKind.ASK_USAGE)
        if not rest[0].isspace():
            return RoutedCommand(kind=CommandKind.IGNORED)
        question = rest.strip()
        if not question:
            return RoutedCommand(kind=CommandKind.ASK_MISSING_QUESTION)
        return RoutedCommand(kind=CommandKind.ASK, argument=question)
    if name == "clear":
        return RoutedCommand(kind=CommandKind.CLEAR)
    if name == "help":
        return RoutedCommand(kind=CommandKind.HELP)
    return RoutedCommand(kind=CommandKind.IGNORED)


class CommandRouter:
    def __init__(
        self,
        *,
        pipeline: RequestPipeline,
        channel: OutboundChannel,
        allow_freeform: bool = False,
    ) -> None:
        self._pipeline = pipeline
        self._channel = channel
        self._allow_freeform = allow_freeform

    async def route(self, message: InboundMessage) -> RoutedCommand:
        command = classify_text(message.text, allow_freeform=self._allow_freeform)

        if command.kind in {CommandKind.ASK, CommandKind.FREEFORM}:
            await self._pipeline.handle(
                user_id=message.sender_user_id,
                chat_id=message.chat_id,
                text=command.argument,
            )
        elif command.kind is CommandKind.CLEAR:
            await self._pipeline.clear(message.sender_user_id)
            await self._reply(
                message.chat_id, CLEAR_CONFIRMATION_TEXT, FormatHint.PLAIN
            )
        elif command.kind in CANNED_REPLIES:
            text, format_hint = CANNED_REPLIES[command.kind]
            await self._reply(message.chat_id, text, format_hint)

        return command

    async def _reply(
        self, chat_id: int | str, text: str, format_hint: FormatHint
    ) -> None:
        try:
            await self._channel.send(chat_id, text, format_hint)
        except ChannelDeliveryError as exc:
            LOGGER.error("Failed to deliver reply to chat_id=%s: %s", chat_id, exc)
