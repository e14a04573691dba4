# services/quiz_service/container.py
"""Builds the quiz service graph for one app (or one CLI run)."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

from .admin_questions import AdminQuestionService
from .importer import QuestionImporter
from .progress import PlayerProgressStore
from .questions import QuestionRepository
from .schedule import ScheduleStore
from .selection import SelectionService
from .sessions import MemorySessionStore, PlayerSessionStore
from .store import DocumentStore, FirestoreDocumentStore, MemoryDocumentStore
from .tracker import DailyQuizService
from .utils import Clock, today_key, utc_now

logger = logging.getLogger(__name__)


@dataclass
class QuizServices:
    store: DocumentStore
    questions: QuestionRepository
    schedule: ScheduleStore
    selection: SelectionService
    progress: PlayerProgressStore
    daily: DailyQuizService
    admin: AdminQuestionService
    importer: QuestionImporter
    clock: Clock
    timezone_name: str
    leaderboard_default_limit: int
    leaderboard_max_limit: int

    def today_key(self) -> str:
        return today_key(self.clock(), self.timezone_name)


def make_store(backend: str) -> DocumentStore:
    backend = (backend or "firestore").strip().lower()
    if backend == "memory":
        logger.warning("[quiz] Using in-memory document store; data is lost on restart")
        return MemoryDocumentStore()
    if backend == "firestore":
        return FirestoreDocumentStore()
    raise ValueError(f"Unknown QUIZ_STORE_BACKEND: {backend!r}")


def build_services(config, store: Optional[DocumentStore] = None, clock: Optional[Clock] = None) -> QuizServices:
    """`config` is the Config class or any object carrying the same attributes."""
    clock = clock or utc_now
    store = store if store is not None else make_store(config.QUIZ_STORE_BACKEND)

    questions = QuestionRepository(store)
    schedule = ScheduleStore(store, questions, clock)
    selection = SelectionService(questions, schedule)
    progress = PlayerProgressStore(store, clock)
    daily = DailyQuizService(
        selection=selection,
        progress=progress,
        player_sessions=PlayerSessionStore(store),
        guest_sessions=MemorySessionStore(config.GUEST_SESSION_TTL_SECONDS, config.SESSION_CACHE_MAXSIZE),
        practice_sessions=MemorySessionStore(config.PRACTICE_SESSION_TTL_SECONDS, config.SESSION_CACHE_MAXSIZE),
        clock=clock,
        timezone_name=config.QUIZ_TIMEZONE,
        max_attempts=config.QUIZ_MAX_ATTEMPTS,
    )
    return QuizServices(
        store=store,
        questions=questions,
        schedule=schedule,
        selection=selection,
        progress=progress,
        daily=daily,
        admin=AdminQuestionService(store, questions, clock),
        importer=QuestionImporter(store, clock),
        clock=clock,
        timezone_name=config.QUIZ_TIMEZONE,
        leaderboard_default_limit=config.LEADERBOARD_DEFAULT_LIMIT,
        leaderboard_max_limit=config.LEADERBOARD_MAX_LIMIT,
    )
