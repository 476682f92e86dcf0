"""Append-only persistence of storytelling sessions and their analyses."""

from __future__ import annotations

import json
import logging
import threading
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidConfigError, SessionNotFoundError
from .schema import DEFAULT_PRESET, AttributeTuple, SoundscapeSelection, StoryPreset

_LOGGER = logging.getLogger("soundstory.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class StorySession(BaseModel):
    id: str = Field(default_factory=_new_id)
    user_id: str | None = None
    preset: StoryPreset = DEFAULT_PRESET
    started_at: datetime = Field(default_factory=_utcnow)
    ended_at: datetime | None = None

    model_config = ConfigDict(frozen=True, extra="forbid")


class AnalysisRecord(BaseModel):
    id: str = Field(default_factory=_new_id)
    session_id: str
    timestamp: datetime = Field(default_factory=_utcnow)
    transcript: str
    attributes: AttributeTuple
    selection: SoundscapeSelection

    model_config = ConfigDict(frozen=True, extra="forbid")


class HistoryPage(BaseModel):
    analyses: tuple[AnalysisRecord, ...]
    total: int

    model_config = ConfigDict(frozen=True)


class SessionStore(Protocol):
    def start_session(
        self, *, user_id: str | None = None, preset: StoryPreset = DEFAULT_PRESET
    ) -> StorySession: ...

    def get_session(self, session_id: str) -> StorySession: ...

    def end_session(self, session_id: str) -> StorySession: ...

    def append_analysis(
        self,
        session_id: str,
        attributes: AttributeTuple,
        selection: SoundscapeSelection,
        transcript: str,
        *,
        timestamp: datetime | None = None,
    ) -> AnalysisRecord: ...

    def recent_attributes(self, session_id: str, limit: int = 5) -> list[AttributeTuple]: ...

    def history(self, session_id: str, *, limit: int = 50, offset: int = 0) -> HistoryPage: ...


class InMemorySessionStore:
    """Process-local store; analyses are kept per session in arrival order."""

    def __init__(self) -> None:
        self._sessions: dict[str, StorySession] = {}
        self._analyses: dict[str, list[AnalysisRecord]] = {}
        self._lock = threading.Lock()

    def start_session(
        self, *, user_id: str | None = None, preset: StoryPreset = DEFAULT_PRESET
    ) -> StorySession:
        session = StorySession(user_id=user_id, preset=preset)
        self._put_session(session)
        _LOGGER.info("Session %s created (preset=%s)", session.id, session.preset)
        return session

    def get_session(self, session_id: str) -> StorySession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"session not found: {session_id}")
        return session

    def end_session(self, session_id: str) -> StorySession:
        session = self.get_session(session_id)
        ended = session.model_copy(update={"ended_at": _utcnow()})
        self._put_session(ended)
        _LOGGER.info("Session %s ended", session_id)
        return ended

    def append_analysis(
        self,
        session_id: str,
        attributes: AttributeTuple,
        selection: SoundscapeSelection,
        transcript: str,
        *,
        timestamp: datetime | None = None,
    ) -> AnalysisRecord:
        self.get_session(session_id)
        record = AnalysisRecord(
            session_id=session_id,
            timestamp=timestamp or _utcnow(),
            transcript=transcript,
            attributes=attributes,
            selection=selection,
        )
        self._put_analysis(record)
        return record

    def recent_attributes(self, session_id: str, limit: int = 5) -> list[AttributeTuple]:
        self.get_session(session_id)
        if limit <= 0:
            return []
        with self._lock:
            records = list(self._analyses.get(session_id, ()))
        return [record.attributes for record in records[-limit:]]

    def history(self, session_id: str, *, limit: int = 50, offset: int = 0) -> HistoryPage:
        self.get_session(session_id)
        with self._lock:
            records = list(self._analyses.get(session_id, ()))
        newest_first = records[::-1]
        page = newest_first[max(0, offset) : max(0, offset) + max(0, limit)]
        return HistoryPage(analyses=tuple(reversed(page)), total=len(records))

    def _put_session(self, session: StorySession) -> None:
        with self._lock:
            self._sessions[session.id] = session
            self._analyses.setdefault(session.id, [])

    def _put_analysis(self, record: AnalysisRecord) -> None:
        with self._lock:
            self._analyses.setdefault(record.session_id, []).append(record)


class JsonlSessionStore(InMemorySessionStore):
    """In-memory store mirrored to an append-only JSON-lines file."""

    def __init__(self, path: str | Path) -> None:
        super().__init__()
        self._path = Path(path).expanduser()
        self._write_lock = threading.Lock()
        if self._path.exists():
            self._replay(self._iter_rows())

    @property
    def path(self) -> Path:
        return self._path

    def _iter_rows(self) -> Iterable[dict[str, Any]]:
        with self._path.open("r", encoding="utf-8") as handle:
            for number, line in enumerate(handle, start=1):
                stripped = line.strip()
                if not stripped:
                    continue
                try:
                    row = json.loads(stripped)
                except json.JSONDecodeError as exc:
                    raise InvalidConfigError(f"{self._path}:{number}: invalid JSON") from exc
                match row:
                    case {"kind": str(), "data": dict()}:
                        yield row
                    case _:
                        _LOGGER.warning("Skipping malformed row %s:%d", self._path, number)

    def _replay(self, rows: Iterable[dict[str, Any]]) -> None:
        count = 0
        for row in rows:
            try:
                match row["kind"]:
                    case "session":
                        super()._put_session(StorySession.model_validate(row["data"]))
                    case "analysis":
                        super()._put_analysis(AnalysisRecord.model_validate(row["data"]))
                    case other:
                        _LOGGER.warning("Skipping unknown row kind %r", other)
                        continue
            except ValidationError as exc:
                raise InvalidConfigError(f"{self._path}: invalid {row['kind']} row") from exc
            count += 1
        _LOGGER.info("Replayed %d rows from %s", count, self._path)

    def _append(self, kind: str, model: BaseModel) -> None:
        line = json.dumps({"kind": kind, "data": model.model_dump(mode="json")})
        with self._write_lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")

    def _put_session(self, session: StorySession) -> None:
        # Disk first: a failed write leaves memory untouched.
        self._append("session", session)
        super()._put_session(session)

    def _put_analysis(self, record: AnalysisRecord) -> None:
        self._append("analysis", record)
        super()._put_analysis(record)
