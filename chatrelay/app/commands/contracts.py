from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CommandKind(str, Enum):
    START = "start"
    ASK = "ask"
    ASK_MISSING_QUESTION = "ask_missing_question"
    ASK_USAGE = "ask_usage"
    CLEAR = "clear"
    HELP = "help"
    FREEFORM = "freeform"
    IGNORED = "ignored"


@dataclass(frozen=True)
class RoutedCommand:
    kind: CommandKind
    argument: str | None = None
