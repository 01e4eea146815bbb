from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from aios.core.http.errors import AiosHTTPError, AiosHTTPTimeoutError
from aios.core.logging.redact import redact_string
from aios.core.models.gemini import GeminiClient, extract_text, text_part, user_content
from aios.core.models.prompts import ORCHESTRATION_SCHEMA, ORCHESTRATOR_SYSTEM_PROMPT

from .schemas import OrchestrationResult

logger = logging.getLogger("aios.orchestrator")

PARSE_FAILURE_DETAIL = "Failed to parse LLM response."
TIMEOUT_DETAIL = "API call timed out after multiple retries."


def build_classifier_payload(text: str) -> dict[str, Any]:
    return {
        "contents": [user_content(text)],
        "systemInstruction": text_part(ORCHESTRATOR_SYSTEM_PROMPT),
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": ORCHESTRATION_SCHEMA,
        },
    }


class IntentClassifier:
    """First round trip: map raw user text onto one of the fixed intents.

    Every failure, whether transport, timeout or a reply that does not fit the
    schema, comes back as an ``error``-intent result; ``classify`` does not raise
    for them.
    """

    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def classify(self, text: str) -> OrchestrationResult:
        try:
            response = await self.client.generate(build_classifier_payload(text), kind="classifier")
        except AiosHTTPTimeoutError:
            return OrchestrationResult.failure("API Timeout", TIMEOUT_DETAIL)
        except AiosHTTPError as exc:
            return OrchestrationResult.failure("API Failure", redact_string(str(exc)))

        raw = extract_text(response)
        if raw is None:
            logger.warning("classifier_reply_missing_content")
            return OrchestrationResult.failure("System Error", PARSE_FAILURE_DETAIL)

        try:
            return OrchestrationResult.from_reply_json(raw)
        except ValidationError as exc:
            logger.warning(
                "classifier_reply_invalid",
                extra={"extra_fields": {"errors": exc.error_count()}},
            )
            return OrchestrationResult.failure("System Error", PARSE_FAILURE_DETAIL)
