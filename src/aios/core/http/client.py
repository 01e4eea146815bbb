from __future__ import annotations

import asyncio
import os
from typing import Any

import httpx

from aios.core.infra.retry import (
    AttemptOutcome,
    Fatal,
    Retry,
    RetryExhaustedError,
    RetryPolicy,
    Sleeper,
    Success,
    run_with_retry,
)
from aios.core.logging.redact import redact_url

from .errors import AiosHTTPNetworkError, AiosHTTPStatusError, AiosHTTPTimeoutError, LLMOutputError

_RETRYABLE_EXCEPTIONS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.RemoteProtocolError,
    httpx.NetworkError,
)
_DEFAULT_TIMEOUT_S = 45.0
_DEFAULT_CONNECT_TIMEOUT_S = 5.0
_DEFAULT_USER_AGENT = "AIos/1.0"


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500


def build_timeout(total_s: float | None = None) -> httpx.Timeout:
    connect_s = max(0.1, _get_float_env("AIOS_HTTP_CONNECT_TIMEOUT_S", _DEFAULT_CONNECT_TIMEOUT_S))
    read_total = max(0.1, total_s if total_s is not None else _DEFAULT_TIMEOUT_S)
    return httpx.Timeout(read_total, connect=min(connect_s, read_total))


def build_http_client(timeout_s: float | None = None) -> httpx.AsyncClient:
    user_agent = os.getenv("AIOS_HTTP_USER_AGENT", _DEFAULT_USER_AGENT)
    return httpx.AsyncClient(timeout=build_timeout(timeout_s), headers={"User-Agent": user_agent})


async def post_json_with_retry(
    client: httpx.AsyncClient,
    url: str,
    *,
    json: Any,
    params: dict[str, str] | None = None,
    policy: RetryPolicy | None = None,
    sleep: Sleeper = asyncio.sleep,
    label: str = "request",
) -> dict[str, Any]:
    safe_url = redact_url(url)

    async def attempt() -> AttemptOutcome[dict[str, Any]]:
        try:
            response = await client.post(
                url,
                json=json,
                params=params,
                headers={"Content-Type": "application/json"},
            )
        except _RETRYABLE_EXCEPTIONS as exc:
            return Retry(f"transport:{exc.__class__.__name__}")
        except httpx.HTTPError as exc:
            return Fatal(AiosHTTPNetworkError(f"HTTP request error for {safe_url}: {exc.__class__.__name__}"))

        status = response.status_code
        if is_retryable_status(status):
            return Retry(f"status:{status}")
        if not 200 <= status < 300:
            return Fatal(AiosHTTPStatusError(f"HTTP status {status} for {safe_url}", status_code=status))
        try:
            payload = response.json()
        except ValueError:
            return Fatal(LLMOutputError(f"Response from {safe_url} was not valid JSON"))
        return Success(payload if isinstance(payload, dict) else {"data": payload})

    try:
        return await run_with_retry(attempt, policy=policy, sleep=sleep, label=label)
    except RetryExhaustedError as exc:
        raise AiosHTTPTimeoutError(
            f"HTTP request to {safe_url} timed out after {exc.attempts} attempts ({exc.last_reason})",
            attempts=exc.attempts,
            last_reason=exc.last_reason,
        ) from exc
