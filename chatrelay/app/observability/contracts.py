from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PipelineTrace:
    trace_id: str
    user_id: str
    stage: str
    error_kind: str | None
    transcript_length: int
    latency_ms: int
