from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class FormatHint(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"


class ChannelDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class InboundMessage:
    sender_user_id: str
    chat_id: int | str
    text: str | None


class OutboundChannel(Protocol):
    async def send(
        self,
        chat_id: int | str,
        text: str,
        format_hint: FormatHint = FormatHint.PLAIN,
    ) -> None: ...

    async def send_typing(self, chat_id: int | str) -> None: ...
