from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

import httpx

from aios.core.config.settings import LLMSettings, RetrySettings
from aios.core.http.client import build_http_client, post_json_with_retry
from aios.core.http.errors import AiosHTTPError
from aios.core.infra.retry import Sleeper


def text_part(text: str) -> dict[str, Any]:
    return {"parts": [{"text": text}]}


def user_content(text: str) -> dict[str, Any]:
    return {"role": "user", **text_part(text)}


def extract_text(response: dict[str, Any]) -> str | None:
    """Return ``candidates[0].content.parts[0].text`` or None when any hop is missing."""
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return None
    content = candidates[0].get("content")
    if not isinstance(content, dict):
        return None
    parts = content.get("parts")
    if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
        return None
    text = parts[0].get("text")
    return text if isinstance(text, str) and text else None


def extract_attributions(response: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = response.get("candidates")
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    metadata = candidates[0].get("groundingMetadata")
    if not isinstance(metadata, dict):
        return []
    attributions = metadata.get("groundingAttributions")
    if not isinstance(attributions, list):
        return []
    return [item for item in attributions if isinstance(item, dict)]


class GeminiClient:
    def __init__(
        self,
        llm: LLMSettings,
        retry: RetrySettings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self.llm = llm
        self.retry = retry or RetrySettings()
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self.logger = logging.getLogger("aios.llm")

    @property
    def endpoint(self) -> str:
        return f"{self.llm.base_url.rstrip('/')}/models/{self.llm.model}:generateContent"

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = build_http_client(self.llm.timeout_s)
        return self._client

    async def generate(self, payload: dict[str, Any], kind: str) -> dict[str, Any]:
        start = time.perf_counter()
        params = {"key": self.llm.api_key.get_secret_value()}
        ok = False
        try:
            response = await post_json_with_retry(
                self._http(),
                self.endpoint,
                json=payload,
                params=params,
                policy=self.retry.policy(),
                sleep=self._sleep,
                label=f"llm:{kind}",
            )
            ok = True
            return response
        except AiosHTTPError as exc:
            self.logger.warning("llm_call_failed", extra={"extra_fields": {"kind": kind, "error": str(exc)}})
            raise
        finally:
            self.logger.info(
                "llm_call",
                extra={
                    "extra_fields": {
                        "model": self.llm.model,
                        "kind": kind,
                        "duration_ms": int((time.perf_counter() - start) * 1000),
                        "ok": ok,
                    }
                },
            )

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
