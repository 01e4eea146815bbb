from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from aios.core.config.settings import LLMSettings, RetrySettings
from aios.core.models.gemini import GeminiClient


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in (
        "AIOS_CONFIG",
        "AIOS_LLM_API_KEY",
        "AIOS_LLM_BASE_URL",
        "AIOS_LLM_MODEL",
        "AIOS_RETRY_MAX_ATTEMPTS",
        "AIOS_RETRY_INITIAL_DELAY_MS",
        "AIOS_APP_ID",
        "AIOS_STORE_BACKEND",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AIOS_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("AIOS_LOG_TO_FILE", "off")


def text_response(text: str, **candidate: object) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}, **candidate}]}


def classifier_response(intent: str, tool: str, query: str) -> dict:
    reply = {"intent": intent, "tool_triggered": tool, "arguments": {"query": query}}
    return text_response(json.dumps(reply))


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def gemini_factory(sleep_recorder: SleepRecorder) -> Callable[[Callable[[httpx.Request], httpx.Response]], GeminiClient]:
    def build(handler: Callable[[httpx.Request], httpx.Response]) -> GeminiClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return GeminiClient(
            LLMSettings(api_key="test-key", base_url="http://llm.local/v1beta", model="test-model"),
            RetrySettings(),
            client=http_client,
            sleep=sleep_recorder,
        )

    return build
