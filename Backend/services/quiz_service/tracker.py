# services/quiz_service/tracker.py
"""
Daily quiz orchestration: today / start / submit for guests, players and admins.

Per (identity, day) the session moves NOT_STARTED -> STARTED -> NOT_SOLVED* -> SOLVED.
SOLVED is terminal: later start/submit calls return the stored result.

- Players: attempts persisted; the completion write is transactional and is
  the only source of truth for "already completed".
- Guests: process-local sessions keyed by guest token, never persisted.
- Admins: process-local, no completion write, no attempt limit; start after
  solving resets the session so a question can be re-tested.
- Practice: same flow on a separate short-lived session map, never touches
  completion records.
"""

from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .answer_checker import check_answer
from .errors import RolloverError, ThrottledError, ValidationError
from .mapper import Question
from .progress import PlayerProgressStore
from .scoring import calculate_points
from .selection import SelectionService
from .sessions import AttemptSession, SessionStore
from .utils import Clock, iso_timestamp, parse_date_key, today_key, utc_now

logger = logging.getLogger(__name__)

GUEST = "guest"
USER = "user"
ADMIN = "admin"


@dataclass(frozen=True)
class Identity:
    kind: str
    id: Optional[str]
    display_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.id}"

    @property
    def is_admin(self) -> bool:
        return self.kind == ADMIN

    @property
    def is_user(self) -> bool:
        return self.kind == USER

    @classmethod
    def guest(cls, token: Optional[str]) -> "Identity":
        token = token.strip() if isinstance(token, str) else None
        return cls(GUEST, token or None)


class DailyQuizService:
    def __init__(
        self,
        selection: SelectionService,
        progress: PlayerProgressStore,
        player_sessions: SessionStore,
        guest_sessions: SessionStore,
        practice_sessions: SessionStore,
        clock: Clock = utc_now,
        timezone_name: str = "UTC",
        max_attempts: int = 10,
    ):
        self.selection = selection
        self.progress = progress
        self.player_sessions = player_sessions
        self.guest_sessions = guest_sessions
        self.practice_sessions = practice_sessions
        self.clock = clock
        self.timezone_name = timezone_name
        self.max_attempts = max_attempts

    # ==================================================================
    # Helpers
    # ==================================================================

    def today_key(self) -> str:
        return today_key(self.clock(), self.timezone_name)

    def _now_iso(self) -> str:
        return iso_timestamp(self.clock())

    def _sessions_for(self, identity: Identity, practice: bool):
        """(store, key) holding this identity's session."""
        if practice:
            return self.practice_sessions, identity.key
        if identity.is_user:
            return self.player_sessions, identity.id
        return self.guest_sessions, identity.key

    def _require_identity(self, identity: Identity):
        if not identity.id:
            raise ValidationError("guest_token_required", "guestToken is required for guests")

    def _quiz_date(self, identity: Identity, requested: Optional[str]) -> str:
        today = self.today_key()
        if requested is None or requested == "" or requested == "today" or requested == today:
            return today
        if not identity.is_admin:
            raise ValidationError("invalid_date", "only date=today is allowed", date=requested)
        if parse_date_key(requested) is None:
            raise ValidationError("invalid_date", "date must be YYYY-MM-DD", date=requested)
        return requested

    def _completed_view(self, date_key, points, completed_at) -> Dict[str, Any]:
        out: Dict[str, Any] = {"alreadyCompleted": True, "quizDate": date_key}
        if points is not None:
            out["pointsEarned"] = points
        if completed_at:
            out["completedAt"] = completed_at
        return out

    def _stored_completion(self, identity: Identity, date_key: str, practice: bool,
                           session: Optional[AttemptSession]) -> Optional[Dict[str, Any]]:
        if identity.is_user and not practice:
            record = self.progress.get_completion(identity.id, date_key)
            if record:
                return self._completed_view(date_key, record.get("pointsAwarded"), record.get("createdAt"))
            return None
        if session is not None and session.solved:
            return self._completed_view(date_key, session.points_earned, session.completed_at)
        return None

    # ==================================================================
    # Operations
    # ==================================================================

    def today(self, identity: Identity, date: Optional[str] = None) -> Dict[str, Any]:
        """
        {"hasQuiz": bool, "quizDate": "YYYY-MM-DD", "questionId"?,
         "alreadyCompleted"?, "pointsEarned"?, "completedAt"?}
        """
        date_key = self._quiz_date(identity, date)
        question = self.selection.resolve(date_key, persist=date_key == self.today_key())
        if question is None:
            return {"hasQuiz": False, "quizDate": date_key}

        out: Dict[str, Any] = {"hasQuiz": True, "quizDate": date_key, "questionId": question.id}
        if identity.id:
            store, key = self._sessions_for(identity, practice=False)
            done = self._stored_completion(identity, date_key, False, store.get(key, date_key))
            if done:
                out.update(done)
                return out
        out["alreadyCompleted"] = False
        return out

    def start(self, identity: Identity, practice: bool = False) -> Dict[str, Any]:
        issued_token = None
        if identity.kind == GUEST and not identity.id:
            issued_token = uuid.uuid4().hex
            identity = Identity.guest(issued_token)

        date_key = self.today_key()
        question = self.selection.resolve(date_key)
        if question is None:
            return {"hasQuiz": False, "quizDate": date_key}

        store, key = self._sessions_for(identity, practice)
        session = store.get(key, date_key)

        replay = identity.is_admin or practice
        if not replay:
            done = self._stored_completion(identity, date_key, practice, session)
            if done:
                return done

        already_started = (
            session is not None
            and session.question_id == question.id
            and not (replay and session.solved)
        )
        if not already_started:
            session = AttemptSession(question_id=question.id, started_at=self._now_iso())
            store.set(key, date_key, session)

        out = {
            "hasQuiz": True,
            "quizDate": date_key,
            "question": question.public_dict(),
            "alreadyStarted": already_started,
            "attemptCount": session.attempt_count,
        }
        if practice:
            out["practice"] = True
        if issued_token:
            out["guestToken"] = issued_token
        return out

    def submit(
        self,
        identity: Identity,
        question_id: Any,
        answer: Any,
        elapsed_ms: Any = None,
        practice: bool = False,
    ) -> Dict[str, Any]:
        self._require_identity(identity)
        if not isinstance(question_id, str) or not question_id.strip():
            raise ValidationError("invalid_request", "questionId is required")
        question_id = question_id.strip()

        date_key = self.today_key()
        question = self.selection.resolve(date_key)
        if question is None:
            return {"hasQuiz": False, "quizDate": date_key}

        store, key = self._sessions_for(identity, practice)
        session = store.get(key, date_key)

        done = self._stored_completion(identity, date_key, practice, session)
        if done:
            if practice:
                done["practice"] = True
            return done

        if question_id != question.id or (session is not None and session.question_id != question.id):
            logger.info("[quiz] Rollover for %s on %s: submitted %s, today is %s",
                        identity.key, date_key, question_id, question.id)
            raise RolloverError(question.public_dict(), date_key)

        if session is None:
            session = AttemptSession(question_id=question.id, started_at=self._now_iso())

        limited = self.max_attempts > 0 and not identity.is_admin and not practice
        if limited and session.attempt_count >= self.max_attempts:
            logger.info("[quiz] Attempt limit reached for %s on %s", identity.key, date_key)
            raise ThrottledError("attempt_limit_reached", "No attempts left today",
                                 attemptCount=session.attempt_count, quizDate=date_key)

        attempt_number = session.attempt_count + 1
        session.attempt_count = attempt_number
        check = check_answer(question, answer)

        if not check.correct:
            store.set(key, date_key, session)
            out = {
                "correct": False,
                "attemptNumber": attempt_number,
                "feedback": check.feedback(),
                "quizDate": date_key,
            }
            if limited:
                out["attemptsRemaining"] = max(self.max_attempts - attempt_number, 0)
            if practice:
                out["practice"] = True
            return out

        return self._finish(identity, question, session, store, key, date_key,
                            attempt_number, elapsed_ms, practice)

    def _finish(self, identity, question: Question, session, store, key, date_key,
                attempt_number, elapsed_ms, practice) -> Dict[str, Any]:
        breakdown = calculate_points(question.base_points, attempt_number, elapsed_ms)
        points = breakdown.total
        out: Dict[str, Any] = {
            "correct": True,
            "attemptNumber": attempt_number,
            "pointsEarned": points,
            "pointsBreakdown": breakdown.to_dict(),
            "quizDate": date_key,
            **question.answer_fields(),
        }
        if question.explanation:
            out["explanation"] = question.explanation

        completed_at = self._now_iso()
        if identity.is_user and not practice:
            result = self.progress.record_completion(
                identity.id, date_key, question.id, points, attempt_number,
                elapsed_ms if isinstance(elapsed_ms, (int, float)) else None,
                identity.display_name,
            )
            points = result.points_awarded
            completed_at = result.completed_at
            if result.already_completed:
                session.solved = True
                session.points_earned = points
                session.completed_at = completed_at
                store.set(key, date_key, session)
                return self._completed_view(date_key, points, completed_at)
            out["totalPoints"] = result.total_points
            out["streakDays"] = result.streak_days
            out["longestStreak"] = result.longest_streak

        session.solved = True
        session.solved_on_attempt = attempt_number
        session.elapsed_ms = elapsed_ms if isinstance(elapsed_ms, (int, float)) else None
        session.points_earned = points
        session.completed_at = completed_at
        store.set(key, date_key, session)
        if practice:
            out["practice"] = True
        return out
