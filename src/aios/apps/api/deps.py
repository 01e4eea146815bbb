from __future__ import annotations

from functools import lru_cache

from aios.core.config.settings import AiosSettings, load_settings
from aios.core.messages.store import MessageLog, build_message_log
from aios.core.orchestration.orchestrator import Orchestrator


@lru_cache(maxsize=1)
def get_settings() -> AiosSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_message_log() -> MessageLog:
    return build_message_log(get_settings().store)


@lru_cache(maxsize=1)
def get_orchestrator() -> Orchestrator:
    return Orchestrator.from_settings(get_settings(), message_log=get_message_log())
