from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from .deps import get_message_log, get_orchestrator
from .identity import get_user_id
from aios.core.messages.store import MessageLog
from aios.core.orchestration.orchestrator import EmptySubmissionError, Orchestrator, SubmissionInFlightError

router = APIRouter()


class ChatRequest(BaseModel):
    message: str


@router.post("/")
async def chat(
    request: ChatRequest,
    user_id: str = Depends(get_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        outcome = await orchestrator.submit(user_id, request.message)
    except EmptySubmissionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SubmissionInFlightError as exc:
        raise HTTPException(status_code=409, detail="submission already in flight") from exc
    return {
        "submission_id": outcome.submission_id,
        "intent": outcome.intent.value,
        "states": outcome.states,
        "messages": [message.model_dump() for message in outcome.messages],
        "error": outcome.write_error,
    }


@router.get("/messages")
def list_messages(message_log: MessageLog = Depends(get_message_log)) -> dict:
    return {"messages": [message.model_dump() for message in message_log.list_messages()]}


@router.get("/status")
def status(
    user_id: str = Depends(get_user_id),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> dict[str, object]:
    return {"user_id": user_id, "busy": orchestrator.is_busy(user_id)}
