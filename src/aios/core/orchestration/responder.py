from __future__ import annotations

from typing import Any

from aios.core.http.errors import AiosHTTPError
from aios.core.logging.redact import redact_string
from aios.core.models.gemini import GeminiClient, extract_attributions, extract_text, text_part, user_content
from aios.core.models.prompts import responder_system_prompt

from .schemas import MAX_CITATIONS, Intent, ResponderOutput

NO_TEXT_DIAGNOSTIC = "The responder failed to generate a response (no text returned)."


class ResponderError(RuntimeError):
    """The responder call failed; distinct from a successful but unhelpful answer."""


def build_responder_payload(text: str, grounded: bool) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "contents": [user_content(text)],
        "systemInstruction": text_part(responder_system_prompt(grounded)),
    }
    if grounded:
        payload["tools"] = [{"google_search": {}}]
    return payload


def extract_citations(attributions: list[dict[str, Any]], limit: int = MAX_CITATIONS) -> list[str]:
    citations: list[str] = []
    for attribution in attributions:
        web = attribution.get("web")
        if not isinstance(web, dict):
            continue
        label = web.get("title") or web.get("uri")
        if not isinstance(label, str) or not label or label in citations:
            continue
        citations.append(label)
        if len(citations) >= limit:
            break
    return citations


class GroundedResponder:
    def __init__(self, client: GeminiClient) -> None:
        self.client = client

    async def respond(self, text: str, intent: Intent) -> ResponderOutput:
        grounded = intent == Intent.KNOWLEDGE_RESPONSE
        try:
            response = await self.client.generate(build_responder_payload(text, grounded), kind="responder")
        except AiosHTTPError as exc:
            raise ResponderError(f"Response Generator failed: {redact_string(str(exc))}") from exc

        body = extract_text(response)
        if body is None:
            return ResponderOutput(body=NO_TEXT_DIAGNOSTIC)
        citations = extract_citations(extract_attributions(response)) if grounded else []
        return ResponderOutput(body=body, citations=citations)
