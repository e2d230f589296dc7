from __future__ import annotations

import json
import logging
import resource
import sys
import time
from datetime import datetime, timezone
from uuid import uuid4

from chatrelay.app.observability.contracts import PipelineTrace


def create_trace(
    *,
    user_id: str,
    stage: str,
    error_kind: str | None,
    transcript_length: int,
    started_at: float,
) -> PipelineTrace:
    elapsed_ms = int((time.perf_counter() - started_at) * 1000)
    return PipelineTrace(
        trace_id=f"trace-{uuid4().hex[:10]}",
        user_id=user_id,
        stage=stage,
        error_kind=error_kind,
        transcript_length=transcript_length,
        latency_ms=max(elapsed_ms, 0),
    )


def emit_pipeline_event(
    trace: PipelineTrace,
    logger: logging.Logger | None = None,
) -> None:
    active_logger = logger or logging.getLogger(__name__)
    payload = {
        "trace_id": trace.trace_id,
        "user_id": trace.user_id,
        "stage": trace.stage,
        "error_kind": trace.error_kind,
        "transcript_length": trace.transcript_length,
        "latency_ms": trace.latency_ms,
    }
    active_logger.info("pipeline_event %s", json.dumps(payload, sort_keys=True))


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def memory_usage() -> dict[str, int]:
    usage = resource.getrusage(resource.RUSAGE_SELF)
    return {"max_rss_kb": max_rss_kb(usage.ru_maxrss)}


def max_rss_kb(ru_maxrss: int, platform: str = sys.platform) -> int:
    # Linux reports kilobytes, macOS reports bytes.
    if platform == "darwin":
        return int(ru_maxrss) // 1024
    return int(ru_maxrss)
