from __future__ import annotations

import logging
from typing import Protocol

import httpx

from chatrelay.app.completion.contracts import (
    CompletionError,
    CompletionErrorKind,
    CompletionSettings,
    classify_status,
)
from chatrelay.app.sessions.contracts import Transcript

LOGGER = logging.getLogger(__name__)


class CompletionBackend(Protocol):
    async def complete(self, transcript: Transcript) -> str: ...


class CompletionClient:
    """Chat-completion adapter for OpenAI-compatible ``/chat/completions``.

    ``complete`` returns the first generated message or raises
    ``CompletionError`` carrying a classified kind. Transport failures,
    timeouts and malformed requests are reported as ``UNKNOWN``; nothing is
    retried.
    """

    def __init__(
        self,
        settings: CompletionSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._client = httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_seconds,
            transport=transport,
        )

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._settings.api_key}",
            "Content-Type": "application/json",
        }

    def build_payload(self, transcript: Transcript) -> dict[str, object]:
        return {
            "model": self._settings.model,
            "messages": [
                {"role": turn.role, "content": turn.content} for turn in transcript
            ],
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
        }

    async def complete(self, transcript: Transcript) -> str:
        try:
            response = await self._client.post(
                "/chat/completions",
                headers=self._headers,
                json=self.build_payload(transcript),
            )
        except httpx.TimeoutException as exc:
            raise CompletionError(
                CompletionErrorKind.UNKNOWN, "Completion request timed out"
            ) from exc
        except Exception as exc:
            # Covers httpx transport errors and request-building failures
            # such as non-ASCII header values or an invalid base URL.
            raise CompletionError(
                CompletionErrorKind.UNKNOWN,
                f"Completion request failed: {exc.__class__.__name__}",
            ) from exc

        if response.status_code != 200:
            kind = classify_status(response.status_code)
            LOGGER.warning(
                "completion_failed status=%s kind=%s body=%s",
                response.status_code,
                kind.value,
                response.text[:500],
            )
            raise CompletionError(
                kind,
                f"Completion API returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        return _extract_reply(response)

    async def aclose(self) -> None:
        await self._client.aclose()


def _extract_reply(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError as exc:
        raise CompletionError(
            CompletionErrorKind.UNKNOWN, "Completion API returned invalid JSON"
        ) from exc

    choices = body.get("choices") if isinstance(body, dict) else None
    if not isinstance(choices, list) or not choices:
        raise CompletionError(
            CompletionErrorKind.UNKNOWN, "Completion API returned no choices"
        )
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str):
        raise CompletionError(
            CompletionErrorKind.UNKNOWN, "Completion API returned no message content"
        )
    return content
