from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Intent(str, Enum):
    CALENDAR_TOOL = "calendar_tool"
    COMMUNICATION_TOOL = "communication_tool"
    IMAGE_GENERATION = "image_generation"
    KNOWLEDGE_RESPONSE = "knowledge_response"
    GENERAL_CHAT = "general_chat"
    ERROR = "error"


RESPONDER_INTENTS = frozenset({Intent.GENERAL_CHAT, Intent.KNOWLEDGE_RESPONSE})
TOOL_INTENTS = frozenset({Intent.CALENDAR_TOOL, Intent.COMMUNICATION_TOOL, Intent.IMAGE_GENERATION})

MAX_CITATIONS = 3


class ClassifierArguments(BaseModel):
    model_config = ConfigDict(extra="ignore")

    query: str


class ClassifierReply(BaseModel):
    """Wire shape of the structured classifier reply."""

    model_config = ConfigDict(extra="ignore")

    intent: Intent
    tool_triggered: str
    arguments: ClassifierArguments


class OrchestrationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: Intent
    tool_label: str
    argument_summary: str

    @classmethod
    def from_reply_json(cls, raw: str) -> "OrchestrationResult":
        reply = ClassifierReply.model_validate_json(raw)
        return cls(intent=reply.intent, tool_label=reply.tool_triggered, argument_summary=reply.arguments.query)

    @classmethod
    def failure(cls, tool_label: str, detail: str) -> "OrchestrationResult":
        return cls(intent=Intent.ERROR, tool_label=tool_label, argument_summary=detail)

    @property
    def is_error(self) -> bool:
        return self.intent is Intent.ERROR


class ResponderOutput(BaseModel):
    body: str
    citations: list[str] = Field(default_factory=list, max_length=MAX_CITATIONS)

    def render(self) -> str:
        if not self.citations:
            return self.body
        return f"{self.body}\n\nSources: {', '.join(self.citations)}"
