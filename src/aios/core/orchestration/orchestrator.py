from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import uuid4

import httpx

from aios.core.config.settings import AiosSettings
from aios.core.infra.retry import Sleeper
from aios.core.logging.context import get_log_context, log_context
from aios.core.messages.schemas import ChatMessage
from aios.core.messages.store import MessageLog, MessageWriteError, build_message_log
from aios.core.models.gemini import GeminiClient
from aios.core.observability.trace import Trace

from .classifier import IntentClassifier
from .responder import GroundedResponder, ResponderError
from .schemas import RESPONDER_INTENTS, TOOL_INTENTS, Intent, OrchestrationResult

logger = logging.getLogger("aios.orchestrator")


class SubmissionState(str, Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    RESPONDING = "responding"
    MOCKING = "mocking"
    FAILING = "failing"
    PERSISTING = "persisting"


class SubmissionInFlightError(RuntimeError):
    pass


class EmptySubmissionError(ValueError):
    pass


@dataclass
class SubmissionOutcome:
    submission_id: str
    intent: Intent
    messages: list[ChatMessage]
    states: list[str] = field(default_factory=list)
    trace_events: list[dict[str, Any]] = field(default_factory=list)
    write_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.write_error is None

    @property
    def system_text(self) -> str:
        return self.messages[-1].text


def orchestration_summary(result: OrchestrationResult) -> str:
    return (
        f"Intent Classified: {result.intent.value}. "
        f"Tool: {result.tool_label}. "
        f'Summary: "{result.argument_summary}".'
    )


def mock_continuation(result: OrchestrationResult) -> str:
    return (
        "\n\nTool Execution Mock: The UI would now transition to the generated application form "
        f'for {result.tool_label} with request "{result.argument_summary}".'
    )


def failure_continuation(result: OrchestrationResult) -> str:
    return f"\n\n--- Orchestration Failure ---\n{result.tool_label}. Details: {result.argument_summary}"


class Orchestrator:
    """Drives one submission through classify, branch, respond or mock, then persist.

    At most one submission per user runs at a time. The in-flight flag is
    released whatever happens after it is taken.
    """

    def __init__(
        self,
        classifier: IntentClassifier,
        responder: GroundedResponder,
        message_log: MessageLog,
        client: GeminiClient | None = None,
    ) -> None:
        self.classifier = classifier
        self.responder = responder
        self.message_log = message_log
        self.client = client
        self._in_flight: set[str] = set()

    @classmethod
    def from_settings(
        cls,
        settings: AiosSettings,
        http_client: httpx.AsyncClient | None = None,
        message_log: MessageLog | None = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> "Orchestrator":
        client = GeminiClient(settings.llm, settings.retry, client=http_client, sleep=sleep)
        return cls(
            classifier=IntentClassifier(client),
            responder=GroundedResponder(client),
            message_log=message_log or build_message_log(settings.store),
            client=client,
        )

    def is_busy(self, user_id: str) -> bool:
        return user_id in self._in_flight

    async def submit(self, user_id: str, text: str) -> SubmissionOutcome:
        cleaned = text.strip()
        if not cleaned:
            raise EmptySubmissionError("Submission text must not be empty")
        if user_id in self._in_flight:
            raise SubmissionInFlightError(f"A submission is already in flight for {user_id}")

        self._in_flight.add(user_id)
        submission_id = uuid4().hex
        try:
            with log_context(submission_id=submission_id, user_id=user_id):
                return await self._run(submission_id, user_id, cleaned)
        finally:
            self._in_flight.discard(user_id)

    async def _run(self, submission_id: str, user_id: str, text: str) -> SubmissionOutcome:
        trace = Trace(submission_id=submission_id, correlation_id=get_log_context().get("correlation_id"))
        trace.enter(SubmissionState.CLASSIFYING.value)
        try:
            result = await self.classifier.classify(text)
        except Exception as exc:
            logger.exception("classifier_raised")
            result = OrchestrationResult.failure("API Failure", str(exc) or exc.__class__.__name__)

        summary = orchestration_summary(result)
        if result.intent in RESPONDER_INTENTS:
            trace.enter(SubmissionState.RESPONDING.value, {"intent": result.intent.value})
            try:
                answer = await self.responder.respond(text, result.intent)
                final_text = f"{summary}\n\n--- AIos Response ---\n{answer.render()}"
                trace.emit("ResponderSucceeded", {"citations": len(answer.citations)})
            except ResponderError as exc:
                final_text = f"{summary}\n\n--- Response Generation Failed ---\nError: {exc}"
                trace.emit("ResponderFailed", {"error": str(exc)})
        elif result.intent in TOOL_INTENTS:
            trace.enter(SubmissionState.MOCKING.value, {"intent": result.intent.value})
            final_text = summary + mock_continuation(result)
        else:
            trace.enter(SubmissionState.FAILING.value, {"tool_label": result.tool_label})
            final_text = summary + failure_continuation(result)

        records = [
            ChatMessage.user_query(user_id=user_id, text=text),
            ChatMessage.system(text=final_text, kind=result.intent.value),
        ]
        trace.enter(SubmissionState.PERSISTING.value, {"records": len(records)})
        write_error: str | None = None
        try:
            records = await asyncio.to_thread(self.message_log.append_atomic, records)
        except MessageWriteError as exc:
            write_error = f"Failed to send message: {exc}"
            trace.emit("PersistFailed", {"error": str(exc)})
        trace.enter(SubmissionState.IDLE.value)

        logger.info(
            "submission_completed",
            extra={
                "extra_fields": {
                    "intent": result.intent.value,
                    "states": trace.states,
                    "persisted": write_error is None,
                }
            },
        )
        return SubmissionOutcome(
            submission_id=submission_id,
            intent=result.intent,
            messages=records,
            states=trace.states,
            trace_events=trace.events,
            write_error=write_error,
        )

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
