from __future__ import annotations

from dataclasses import dataclass

from chatrelay.app.completion.contracts import CompletionErrorKind

PIPELINE_STAGE_RECEIVED = "received"
PIPELINE_STAGE_PERSISTED = "persisted"
PIPELINE_STAGE_DISPATCHED = "dispatched"


@dataclass(frozen=True)
class PipelineOutcome:
    stage: str
    reply_text: str | None = None
    error_kind: CompletionErrorKind | None = None
    delivered: bool = False

    @property
    def ignored(self) -> bool:
        return self.stage == PIPELINE_STAGE_RECEIVED
