from __future__ import annotations

import logging
from collections import OrderedDict

from chatrelay.app.sessions.contracts import ROLE_SYSTEM, Transcript, Turn

LOGGER = logging.getLogger(__name__)


class SessionStore:
    """In-memory transcripts keyed by platform user id.

    Lives for the process lifetime. With ``max_sessions`` above zero the
    least recently used session is evicted when a new one would exceed the
    bound; zero keeps every session until it is cleared.
    """

    def __init__(self, *, system_directive: str, max_sessions: int = 0) -> None:
        self._system_turn = Turn(role=ROLE_SYSTEM, content=system_directive)
        self._max_sessions = max(0, max_sessions)
        self._transcripts: OrderedDict[str, Transcript] = OrderedDict()

    def get_or_create(self, user_id: str) -> Transcript:
        transcript = self._transcripts.get(user_id)
        if transcript is None:
            transcript = (self._system_turn,)
            self._transcripts[user_id] = transcript
            self._evict_overflow()
        else:
            self._transcripts.move_to_end(user_id)
        return transcript

    def replace(self, user_id: str, transcript: Transcript) -> None:
        self._transcripts[user_id] = tuple(transcript)
        self._transcripts.move_to_end(user_id)
        self._evict_overflow()

    def clear(self, user_id: str) -> None:
        self._transcripts.pop(user_id, None)

    def count(self) -> int:
        return len(self._transcripts)

    def _evict_overflow(self) -> None:
        if not self._max_sessions:
            return
        while len(self._transcripts) > self._max_sessions:
            evicted_user_id, _ = self._transcripts.popitem(last=False)
            LOGGER.info("session_evicted user_id=%s", evicted_user_id)
