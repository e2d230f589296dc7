from __future__ import annotations

from chatrelay.app.sessions.contracts import DEFAULT_MAX_MESSAGES, Transcript


def trim_transcript(
    transcript: Transcript,
    max_messages: int = DEFAULT_MAX_MESSAGES,
) -> Transcript:
    """Bound a transcript to ``max_messages`` turns.

    The leading system turn always survives; the remaining slots go to the
    most recent turns, in their original order.
    """
    if max_messages < 2:
        raise ValueError("max_messages must leave room for the system turn")
    if len(transcript) <= max_messages:
        return transcript
    return (transcript[0], *transcript[-(max_messages - 1) :])
