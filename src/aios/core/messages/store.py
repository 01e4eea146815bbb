from __future__ import annotations

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from aios.core.config.settings import StoreSettings

from .schemas import ChatMessage, CommitBatch

logger = logging.getLogger("aios.messages")

Subscriber = Callable[[list[ChatMessage]], None]
Unsubscribe = Callable[[], None]


class MessageWriteError(RuntimeError):
    pass


def collection_path(app_id: str) -> str:
    return f"artifacts/{app_id}/public/data/messages"


class MessageLog(ABC):
    """Append-only shared chat log.

    ``append_atomic`` commits every record of one call or none of them.
    Subscribers receive the full ordered log on subscribe and after each commit,
    in commit order: a snapshot older than one already delivered is dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._delivery_lock = threading.RLock()
        self._subscribers: dict[int, Subscriber] = {}
        self._delivered: dict[int, int] = {}
        self._next_subscriber = 0
        self._last_timestamp = 0.0
        self._last_seq = 0
        self._last_commit = 0

    @abstractmethod
    def _persist(self, batch: CommitBatch) -> None:
        ...

    @abstractmethod
    def _load(self) -> list[ChatMessage]:
        ...

    @contextmanager
    def _commit_guard(self) -> Iterator[None]:
        yield

    def list_messages(self) -> list[ChatMessage]:
        with self._lock:
            messages = self._load()
        return sorted(messages, key=lambda message: message.sort_key())

    def append_atomic(self, records: Sequence[ChatMessage]) -> list[ChatMessage]:
        if not records:
            return []
        with self._lock:
            try:
                with self._commit_guard():
                    batch = self._stamp(records)
                    self._persist(batch)
            except OSError as exc:
                logger.error("message_append_failed", extra={"extra_fields": {"records": len(records)}}, exc_info=True)
                raise MessageWriteError(str(exc)) from exc
            self._last_timestamp = batch.timestamp
            self._last_seq = batch.records[-1].seq or self._last_seq
            self._last_commit = batch.commit_seq
            subscribers = dict(self._subscribers)
            snapshot = self._snapshot() if subscribers else None

        if snapshot is not None:
            self._publish(batch.commit_seq, snapshot, subscribers)
        return list(batch.records)

    def subscribe(self, callback: Subscriber) -> Unsubscribe:
        with self._lock:
            token = self._next_subscriber
            self._next_subscriber += 1
            self._subscribers[token] = callback
            commit_seq = self._last_commit
            snapshot = self._snapshot()
        if snapshot is not None:
            self._publish(commit_seq, snapshot, {token: callback})

        def unsubscribe() -> None:
            with self._lock:
                self._subscribers.pop(token, None)
            with self._delivery_lock:
                self._delivered.pop(token, None)

        return unsubscribe

    def _stamp(self, records: Sequence[ChatMessage]) -> CommitBatch:
        timestamp = max(time.time(), self._last_timestamp + 1e-6)
        committed: list[ChatMessage] = []
        seq = self._last_seq
        for record in records:
            seq += 1
            committed.append(record.model_copy(update={"timestamp": timestamp, "seq": seq}))
        return CommitBatch(commit_seq=self._last_commit + 1, timestamp=timestamp, records=committed)

    def _snapshot(self) -> list[ChatMessage] | None:
        try:
            messages = self._load()
        except OSError:
            logger.error("message_snapshot_failed", exc_info=True)
            return None
        return sorted(messages, key=lambda message: message.sort_key())

    def _publish(self, commit_seq: int, snapshot: list[ChatMessage], subscribers: dict[int, Subscriber]) -> None:
        with self._delivery_lock:
            for token, callback in subscribers.items():
                if self._delivered.get(token, -1) >= commit_seq:
                    continue
                self._delivered[token] = commit_seq
                self._deliver(callback, snapshot)

    def _deliver(self, callback: Subscriber, snapshot: list[ChatMessage]) -> None:
        try:
            callback(list(snapshot))
        except Exception:
            logger.exception("message_subscriber_failed")

    def _restore_counters(self, batches: list[CommitBatch]) -> None:
        for batch in batches:
            self._last_commit = max(self._last_commit, batch.commit_seq)
            self._last_timestamp = max(self._last_timestamp, batch.timestamp)
            for record in batch.records:
                self._last_seq = max(self._last_seq, record.seq or 0)


class InMemoryMessageLog(MessageLog):
    def __init__(self) -> None:
        super().__init__()
        self._batches: list[CommitBatch] = []

    def _persist(self, batch: CommitBatch) -> None:
        self._batches.append(batch)

    def _load(self) -> list[ChatMessage]:
        return [record for batch in self._batches for record in batch.records]


class JsonlMessageLog(MessageLog):
    def __init__(self, state_dir: str | Path, app_id: str, lock_timeout_s: float = 2.0) -> None:
        super().__init__()
        self.app_id = app_id
        self.directory = Path(state_dir) / "artifacts" / app_id
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / "messages.jsonl"
        self.lock_path = self.directory / "messages.lock"
        self.lock_mode = os.getenv("AIOS_STORE_LOCK_MODE", "file").casefold()
        self.lock_timeout_s = lock_timeout_s
        with self._lock:
            self._restore_counters(self._read_batches())

    @contextmanager
    def _commit_guard(self) -> Iterator[None]:
        # Other processes may have appended since the last commit here.
        with self._file_lock():
            self._drop_torn_tail()
            self._restore_counters(self._read_batches())
            yield

    def _persist(self, batch: CommitBatch) -> None:
        line = batch.model_dump_json() + "\n"
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(line)
            handle.flush()
            os.fsync(handle.fileno())

    def _load(self) -> list[ChatMessage]:
        return [record for batch in self._read_batches() for record in batch.records]

    def _read_batches(self) -> list[CommitBatch]:
        if not self.path.exists():
            return []
        batches: list[CommitBatch] = []
        with self.path.open("r", encoding="utf-8") as handle:
            for line in handle:
                raw = line.strip()
                if not raw:
                    continue
                try:
                    batches.append(CommitBatch.model_validate(json.loads(raw)))
                except (json.JSONDecodeError, ValueError):
                    continue
        return batches

    def _drop_torn_tail(self) -> None:
        if not self.path.exists():
            return
        data = self.path.read_bytes()
        if not data or data.endswith(b"\n"):
            return
        cut = data.rfind(b"\n") + 1
        with self.path.open("r+b") as handle:
            handle.truncate(cut)
        logger.warning("message_log_torn_tail_dropped", extra={"extra_fields": {"bytes": len(data) - cut}})

    @contextmanager
    def _file_lock(self) -> Iterator[None]:
        if self.lock_mode != "file":
            yield
            return

        deadline = time.monotonic() + self.lock_timeout_s
        while True:
            try:
                fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.close(fd)
                break
            except FileExistsError:
                if time.monotonic() >= deadline:
                    raise TimeoutError(f"message log lock {self.lock_path} is held by another writer") from None
                time.sleep(0.01)

        try:
            yield
        finally:
            try:
                self.lock_path.unlink()
            except FileNotFoundError:
                pass


def build_message_log(settings: StoreSettings) -> MessageLog:
    if settings.backend == "memory":
        return InMemoryMessageLog()
    return JsonlMessageLog(state_dir=settings.state_dir, app_id=settings.app_id)
