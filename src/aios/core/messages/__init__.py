from .schemas import SYSTEM_ACTOR_ID, USER_QUERY_TYPE, ChatMessage, CommitBatch
from .store import (
    InMemoryMessageLog,
    JsonlMessageLog,
    MessageLog,
    MessageWriteError,
    build_message_log,
    collection_path,
)

__all__ = [
    "ChatMessage",
    "CommitBatch",
    "InMemoryMessageLog",
    "JsonlMessageLog",
    "MessageLog",
    "MessageWriteError",
    "SYSTEM_ACTOR_ID",
    "USER_QUERY_TYPE",
    "build_message_log",
    "collection_path",
]
