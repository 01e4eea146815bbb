from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Trace:
    submission_id: str
    correlation_id: str | None = None
    states: list[str] = field(default_factory=list)
    events: list[dict[str, Any]] = field(default_factory=list)

    def enter(self, state: str, payload: dict[str, Any] | None = None) -> None:
        self.states.append(state)
        self.emit("StateEntered", {"state": state, **(payload or {})})

    def emit(self, name: str, payload: dict[str, Any]) -> None:
        enriched_payload = dict(payload)
        enriched_payload.setdefault("submission_id", self.submission_id)
        if self.correlation_id:
            enriched_payload.setdefault("correlation_id", self.correlation_id)
        self.events.append({"event": name, "payload": enriched_payload})
