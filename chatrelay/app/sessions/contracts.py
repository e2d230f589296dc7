from __future__ import annotations

from dataclasses import dataclass

ROLE_SYSTEM = "system"
ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"

DEFAULT_MAX_MESSAGES = 20


@dataclass(frozen=True)
class Turn:
    role: str
    content: str


Transcript = tuple[Turn, ...]
