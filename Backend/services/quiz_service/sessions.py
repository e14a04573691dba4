# services/quiz_service/sessions.py
"""
Per-identity, per-day attempt sessions.

Both stores expose the same keyed interface:

    get(identity_key, date_key) -> AttemptSession | None
    set(identity_key, date_key, session)
    delete(identity_key, date_key)

MemorySessionStore   guests, admins and practice runs. Process-local, entries
                     expire after a TTL and are lost on restart.
PlayerSessionStore   signed-in players, persisted under Player/{uid}/QuizAttempts/{dateKey}.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from cachetools import TTLCache

from .store import DocumentStore, attempts_path

NOT_STARTED = "NOT_STARTED"
STARTED = "STARTED"
NOT_SOLVED = "NOT_SOLVED"
SOLVED = "SOLVED"


@dataclass
class AttemptSession:
    question_id: str
    attempt_count: int = 0
    solved: bool = False
    solved_on_attempt: Optional[int] = None
    elapsed_ms: Optional[float] = None
    points_earned: Optional[int] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

    @property
    def state(self) -> str:
        if self.solved:
            return SOLVED
        if self.attempt_count > 0:
            return NOT_SOLVED
        return STARTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questionId": self.question_id,
            "attemptCount": self.attempt_count,
            "solved": self.solved,
            "solvedOnAttempt": self.solved_on_attempt,
            "elapsedMs": self.elapsed_ms,
            "pointsEarned": self.points_earned,
            "startedAt": self.started_at,
            "completedAt": self.completed_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AttemptSession":
        return cls(
            question_id=data.get("questionId") or "",
            attempt_count=int(data.get("attemptCount") or 0),
            solved=bool(data.get("solved")),
            solved_on_attempt=data.get("solvedOnAttempt"),
            elapsed_ms=data.get("elapsedMs"),
            points_earned=data.get("pointsEarned"),
            started_at=data.get("startedAt"),
            completed_at=data.get("completedAt"),
        )


def session_state(session: Optional[AttemptSession]) -> str:
    return NOT_STARTED if session is None else session.state


class SessionStore:
    def get(self, identity_key: str, date_key: str) -> Optional[AttemptSession]:
        raise NotImplementedError

    def set(self, identity_key: str, date_key: str, session: AttemptSession) -> None:
        raise NotImplementedError

    def delete(self, identity_key: str, date_key: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    """TTL map keyed by (identity, date). Concurrent writers: last one wins."""

    def __init__(self, ttl_seconds: float, maxsize: int = 10000, timer=None):
        kwargs = {"timer": timer} if timer is not None else {}
        self._cache = TTLCache(maxsize=maxsize, ttl=ttl_seconds, **kwargs)
        self._lock = threading.Lock()

    def get(self, identity_key, date_key):
        with self._lock:
            session = self._cache.get((identity_key, date_key))
        return replace(session) if session is not None else None

    def set(self, identity_key, date_key, session):
        with self._lock:
            self._cache[(identity_key, date_key)] = replace(session)

    def delete(self, identity_key, date_key):
        with self._lock:
            self._cache.pop((identity_key, date_key), None)

    def __len__(self):
        with self._lock:
            return len(self._cache)


class PlayerSessionStore(SessionStore):
    def __init__(self, store: DocumentStore):
        self.store = store

    def get(self, identity_key, date_key):
        data = self.store.get(attempts_path(identity_key), date_key)
        return AttemptSession.from_dict(data) if data else None

    def set(self, identity_key, date_key, session):
        self.store.put(attempts_path(identity_key), date_key, {"dateKey": date_key, **session.to_dict()})

    def delete(self, identity_key, date_key):
        self.store.delete(attempts_path(identity_key), date_key)
