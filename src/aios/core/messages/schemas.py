from __future__ import annotations

from uuid import uuid4

from pydantic import BaseModel, Field

SYSTEM_ACTOR_ID = "AIos_gNode"
SYSTEM_DISPLAY_ID = "AIos Core"
USER_QUERY_TYPE = "user_query"


class ChatMessage(BaseModel):
    id: str = Field(default_factory=lambda: uuid4().hex)
    text: str
    user_id: str
    user_display_id: str
    type: str
    is_system: bool = False
    # Assigned by the message log at commit time.
    timestamp: float | None = None
    seq: int | None = None

    @classmethod
    def user_query(cls, user_id: str, text: str) -> "ChatMessage":
        return cls(text=text, user_id=user_id, user_display_id=user_id[:8], type=USER_QUERY_TYPE)

    @classmethod
    def system(cls, text: str, kind: str) -> "ChatMessage":
        return cls(
            text=text,
            user_id=SYSTEM_ACTOR_ID,
            user_display_id=SYSTEM_DISPLAY_ID,
            type=kind,
            is_system=True,
        )

    def sort_key(self) -> tuple[float, int]:
        return (self.timestamp or 0.0, self.seq or 0)


class CommitBatch(BaseModel):
    """One line of the JSONL log; a torn line loses the whole batch, never half of it."""

    commit_seq: int
    timestamp: float
    records: list[ChatMessage]
