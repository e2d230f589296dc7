from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CompletionErrorKind(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"


STATUS_ERROR_KINDS: dict[int, CompletionErrorKind] = {
    401: CompletionErrorKind.UNAUTHORIZED,
    429: CompletionErrorKind.RATE_LIMITED,
    500: CompletionErrorKind.SERVICE_UNAVAILABLE,
    502: CompletionErrorKind.SERVICE_UNAVAILABLE,
    503: CompletionErrorKind.SERVICE_UNAVAILABLE,
    504: CompletionErrorKind.SERVICE_UNAVAILABLE,
}


class CompletionError(Exception):
    def __init__(
        self,
        kind: CompletionErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass(frozen=True)
class CompletionSettings:
    api_key: str
    base_url: str
    model: str
    max_tokens: int
    temperature: float
    timeout_seconds: float


def classify_status(status_code: int) -> CompletionErrorKind:
    return STATUS_ERROR_KINDS.get(status_code, CompletionErrorKind.UNKNOWN)
