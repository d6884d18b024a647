"""Chat-completion transport used for job description generation."""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from orgflow.core.metrics import llm_request_duration_seconds

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when the model cannot be called or returns nothing usable."""


def _extract_content(payload: dict) -> str | None:
    choices = payload.get("choices") or []
    first = choices[0] if choices else None
    message = (first or {}).get("message") or {}
    raw = message.get("content")
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, list):
        text = "".join(
            part["text"]
            for part in raw
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )
        return text.strip() or None
    return None


class ChatCompletionClient:
    """Thin async wrapper around an OpenAI-compatible chat completions API."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        temperature: float = 0.5,
        max_tokens: int = 5000,
        response_format: dict[str, Any] | None = None,
    ) -> str:
        """Return the trimmed text of the first choice."""
        if not self.api_key:
            raise LLMError("OPENAI_API_KEY is not configured")

        body: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_completion_tokens": max_tokens,
        }
        if response_format is not None:
            body["response_format"] = response_format

        client = await self._get_client()
        started = time.perf_counter()
        try:
            resp = await client.post("/chat/completions", json=body)
        except httpx.HTTPError as exc:
            raise LLMError(f"Chat completion request failed: {exc}") from exc
        finally:
            llm_request_duration_seconds.labels(model=self.model).observe(
                time.perf_counter() - started
            )

        if resp.status_code >= 400:
            raise LLMError(f"Chat completion failed ({resp.status_code}): {resp.text[:500]}")

        try:
            payload = resp.json()
        except ValueError as exc:
            raise LLMError("Chat completion returned invalid JSON") from exc

        content = _extract_content(payload) if isinstance(payload, dict) else None
        if not content:
            logger.error("Chat completion without usable content (model=%s)", self.model)
            raise LLMError("Empty chat completion response")
        return content
