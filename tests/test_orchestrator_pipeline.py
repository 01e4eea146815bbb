from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from aios.core.messages.schemas import SYSTEM_ACTOR_ID, USER_QUERY_TYPE
from aios.core.messages.store import InMemoryMessageLog
from aios.core.orchestration.classifier import IntentClassifier
from aios.core.orchestration.orchestrator import Orchestrator, SubmissionInFlightError
from aios.core.orchestration.responder import GroundedResponder, ResponderError
from aios.core.orchestration.schemas import Intent, OrchestrationResult, ResponderOutput
from conftest import classifier_response, text_response


class RecordingLog(InMemoryMessageLog):
    def __init__(self) -> None:
        super().__init__()
        self.append_calls: list[int] = []

    def append_atomic(self, records):
        self.append_calls.append(len(records))
        return super().append_atomic(records)


class StubClassifier:
    def __init__(self, result: OrchestrationResult | None = None, error: Exception | None = None) -> None:
        self.result = result
        self.error = error

    async def classify(self, text: str) -> OrchestrationResult:
        if self.error is not None:
            raise self.error
        return self.result


class StubResponder:
    def __init__(self, output: ResponderOutput | None = None, error: Exception | None = None) -> None:
        self.output = output or ResponderOutput(body="stub answer")
        self.error = error
        self.calls: list[tuple[str, Intent]] = []

    async def respond(self, text: str, intent: Intent) -> ResponderOutput:
        self.calls.append((text, intent))
        if self.error is not None:
            raise self.error
        return self.output


def _result(intent: Intent, tool: str = "Tool", summary: str = "summary") -> OrchestrationResult:
    return OrchestrationResult(intent=intent, tool_label=tool, argument_summary=summary)


@pytest.mark.asyncio
async def test_calendar_request_is_mocked_end_to_end(gemini_factory) -> None:
    requests: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        return httpx.Response(200, json=classifier_response("calendar_tool", "Calendar API", "lunch Friday"))

    client = gemini_factory(handler)
    log = RecordingLog()
    orchestrator = Orchestrator(IntentClassifier(client), GroundedResponder(client), log)

    outcome = await orchestrator.submit("user-1234567890", "Schedule lunch Friday")

    assert outcome.ok
    assert outcome.intent is Intent.CALENDAR_TOOL
    assert outcome.states == ["classifying", "mocking", "persisting", "idle"]
    assert outcome.system_text.startswith('Intent Classified: calendar_tool. Tool: Calendar API. Summary: "lunch Friday".')
    assert "Tool Execution Mock" in outcome.system_text
    assert len(requests) == 1
    assert all("generationConfig" in body for body in requests)
    assert log.append_calls == [2]


@pytest.mark.parametrize("intent", [Intent.GENERAL_CHAT, Intent.KNOWLEDGE_RESPONSE])
@pytest.mark.asyncio
async def test_conversational_intents_call_responder_once(intent) -> None:
    responder = StubResponder(ResponderOutput(body="Sure.", citations=["A"]))
    log = RecordingLog()
    orchestrator = Orchestrator(StubClassifier(_result(intent, "Responder", "say hi")), responder, log)

    outcome = await orchestrator.submit("u1", "  hi there  ")

    assert responder.calls == [("hi there", intent)]
    assert outcome.states == ["classifying", "responding", "persisting", "idle"]
    assert outcome.system_text == (
        f'Intent Classified: {intent.value}. Tool: Responder. Summary: "say hi".'
        "\n\n--- AIos Response ---\nSure.\n\nSources: A"
    )
    user_message, system_message = log.list_messages()
    assert user_message.type == USER_QUERY_TYPE
    assert user_message.text == "hi there"
    assert system_message.type == intent.value
    assert system_message.user_id == SYSTEM_ACTOR_ID
    assert system_message.is_system is True


@pytest.mark.parametrize("intent", [Intent.CALENDAR_TOOL, Intent.COMMUNICATION_TOOL, Intent.IMAGE_GENERATION])
@pytest.mark.asyncio
async def test_tool_intents_never_call_responder(intent) -> None:
    responder = StubResponder()
    orchestrator = Orchestrator(StubClassifier(_result(intent, "Some Tool", "do it")), responder, RecordingLog())

    outcome = await orchestrator.submit("u1", "do it")

    assert responder.calls == []
    assert "mocking" in outcome.states
    assert "Some Tool" in outcome.system_text
    assert '"do it"' in outcome.system_text


@pytest.mark.asyncio
async def test_error_intent_goes_straight_to_failing() -> None:
    responder = StubResponder()
    classifier = StubClassifier(OrchestrationResult.failure("API Timeout", "API call timed out after multiple retries."))
    log = RecordingLog()
    orchestrator = Orchestrator(classifier, responder, log)

    outcome = await orchestrator.submit("u1", "hello")

    assert responder.calls == []
    assert outcome.states == ["classifying", "failing", "persisting", "idle"]
    assert outcome.system_text.startswith('Intent Classified: error. Tool: API Timeout. Summary: "API call timed out')
    assert "--- Orchestration Failure ---" in outcome.system_text
    assert log.append_calls == [2]


@pytest.mark.asyncio
async def test_classifier_exception_is_absorbed_into_error_intent() -> None:
    log = RecordingLog()
    orchestrator = Orchestrator(StubClassifier(error=RuntimeError("socket closed")), StubResponder(), log)

    outcome = await orchestrator.submit("u1", "hello")

    assert outcome.intent is Intent.ERROR
    assert "Tool: API Failure" in outcome.system_text
    assert "socket closed" in outcome.system_text
    assert len(log.list_messages()) == 2


@pytest.mark.asyncio
async def test_responder_failure_is_reported_distinctly() -> None:
    responder = StubResponder(error=ResponderError("Response Generator failed: HTTP status 403"))
    log = RecordingLog()
    orchestrator = Orchestrator(StubClassifier(_result(Intent.GENERAL_CHAT)), responder, log)

    outcome = await orchestrator.submit("u1", "hello")

    assert "--- Response Generation Failed ---" in outcome.system_text
    assert "HTTP status 403" in outcome.system_text
    assert "--- AIos Response ---" not in outcome.system_text
    assert log.append_calls == [2]


@pytest.mark.asyncio
async def test_in_flight_submission_is_rejected_and_flag_released() -> None:
    release = asyncio.Event()

    class SlowClassifier:
        async def classify(self, text: str) -> OrchestrationResult:
            await release.wait()
            return _result(Intent.IMAGE_GENERATION, "Imagen Tool", text)

    log = RecordingLog()
    orchestrator = Orchestrator(SlowClassifier(), StubResponder(), log)

    first = asyncio.create_task(orchestrator.submit("u1", "draw a cat"))
    await asyncio.sleep(0)
    assert orchestrator.is_busy("u1")

    with pytest.raises(SubmissionInFlightError):
        await orchestrator.submit("u1", "draw a dog")

    other_user = asyncio.create_task(orchestrator.submit("u2", "draw a bird"))
    await asyncio.sleep(0)
    assert orchestrator.is_busy("u2")

    release.set()
    await asyncio.gather(first, other_user)

    assert not orchestrator.is_busy("u1")
    assert not orchestrator.is_busy("u2")
    assert log.append_calls == [2, 2]


@pytest.mark.asyncio
async def test_blank_submission_is_rejected_before_any_work() -> None:
    log = RecordingLog()
    orchestrator = Orchestrator(StubClassifier(_result(Intent.GENERAL_CHAT)), StubResponder(), log)

    with pytest.raises(ValueError):
        await orchestrator.submit("u1", "   ")

    assert log.append_calls == []
    assert not orchestrator.is_busy("u1")


@pytest.mark.asyncio
async def test_write_failure_is_reported_and_releases_flag() -> None:
    class BrokenLog(RecordingLog):
        def _persist(self, batch) -> None:
            raise OSError("disk full")

    log = BrokenLog()
    orchestrator = Orchestrator(StubClassifier(_result(Intent.CALENDAR_TOOL)), StubResponder(), log)

    outcome = await orchestrator.submit("u1", "book it")

    assert not outcome.ok
    assert outcome.write_error == "Failed to send message: disk full"
    assert log.append_calls == [2]
    assert log.list_messages() == []
    assert not orchestrator.is_busy("u1")
