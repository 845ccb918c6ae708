"""Completion gateway boundary and its HTTP adapter."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx
from httpx_sse import SSEError, aconnect_sse

from .config import settings
from .entities import GenerationConfig
from .errors import CompletionGatewayError

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], Awaitable[None] | None]


@dataclass(frozen=True)
class CompletionResult:
    content: str
    model: str
    provider: str
    usage: dict[str, int] = field(default_factory=dict)


class CompletionGateway(Protocol):
    async def generate(self, prompt: str, config: GenerationConfig) -> CompletionResult: ...

    async def stream(
        self, prompt: str, config: GenerationConfig, on_chunk: ChunkCallback
    ) -> str: ...


def _request_body(prompt: str, config: GenerationConfig, *, stream: bool) -> dict[str, Any]:
    body: dict[str, Any] = {
        "prompt": prompt,
        "provider": config.provider,
        "model": config.resolved_model,
        "temperature": config.temperature,
        "max_tokens": config.max_tokens,
        "stream": stream,
    }
    if config.system_prompt:
        body["system"] = config.system_prompt
    return body


def _extract_usage(payload: dict[str, Any]) -> dict[str, int]:
    usage = payload.get("usage")
    if not isinstance(usage, dict):
        return {}
    return {k: int(v) for k, v in usage.items() if isinstance(v, (int, float))}


class HttpCompletionGateway:
    """Async client for a completion server that fronts the model providers.

    ``POST /completions`` returns ``{"content", "model", "provider", "usage"}``.
    ``POST /completions/stream`` is an SSE stream of ``{"delta": "..."}`` events
    terminated by a ``[DONE]`` data line.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.completion_api_url).rstrip("/")
        self._timeout = httpx.Timeout(timeout_seconds or settings.completion_timeout)
        self._client = httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, *, body: Any | None = None) -> httpx.Response:
        try:
            resp = await self._client.request(method, path, json=body)
            resp.raise_for_status()
            return resp
        except httpx.RequestError as e:
            raise CompletionGatewayError(f"Completion request failed ({method} {path}): {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise CompletionGatewayError(
                f"Completion API error {status} ({method} {path}): {e.response.text}"
            ) from e

    async def generate(self, prompt: str, config: GenerationConfig) -> CompletionResult:
        resp = await self._request(
            "POST", "/completions", body=_request_body(prompt, config, stream=False)
        )
        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise CompletionGatewayError(
                f"Invalid JSON response from completion server: {resp.text[:200]}"
            ) from exc

        if not isinstance(payload, dict) or not isinstance(payload.get("content"), str):
            raise CompletionGatewayError(f"Unexpected completion response: {payload}")

        if not payload["content"].strip():
            logger.warning("Completion server returned empty content for %s", config.provider)

        return CompletionResult(
            content=payload["content"],
            model=payload.get("model") or config.resolved_model,
            provider=payload.get("provider") or config.provider,
            usage=_extract_usage(payload),
        )

    async def stream(self, prompt: str, config: GenerationConfig, on_chunk: ChunkCallback) -> str:
        chunks: list[str] = []
        try:
            async with aconnect_sse(
                self._client,
                "POST",
                "/completions/stream",
                json=_request_body(prompt, config, stream=True),
            ) as event_source:
                event_source.response.raise_for_status()
                async for sse in event_source.aiter_sse():
                    if not sse.data:
                        continue
                    if sse.data.strip() == "[DONE]":
                        break
                    try:
                        evt = json.loads(sse.data)
                    except json.JSONDecodeError:
                        continue
                    if not isinstance(evt, dict):
                        continue
                    if sse.event == "error" or "error" in evt:
                        raise CompletionGatewayError(f"Completion stream error: {evt}")
                    delta = evt.get("delta")
                    if not isinstance(delta, str) or not delta:
                        continue
                    chunks.append(delta)
                    result = on_chunk(delta)
                    if hasattr(result, "__await__"):
                        await result
        except httpx.HTTPStatusError as e:
            raise CompletionGatewayError(
                f"Completion stream error {e.response.status_code}"
            ) from e
        except (httpx.RequestError, SSEError) as e:
            raise CompletionGatewayError(f"Error streaming completion: {e}") from e
        return "".join(chunks)
