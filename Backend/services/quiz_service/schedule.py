# services/quiz_service/schedule.py
"""
Persisted date -> question assignments (collection QUIZ_SCHEDULE, doc id = dateKey).

Entry:
    {"dateKey": "2025-03-01", "questionId": "...", "puzzleId": "...",
     "createdAt": iso, "updatedAt": iso, "source": "admin"|"fallback"|"migration"}

At most one entry per date. Entries are write-once except through overwrite(),
which keeps the original createdAt.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .errors import ConflictError, ValidationError
from .mapper import Question
from .questions import QuestionRepository
from .store import DocumentStore, SCHEDULE
from .utils import Clock, iso_timestamp, is_valid_date_key, utc_now

logger = logging.getLogger(__name__)


@dataclass
class MigrationResult:
    written: int = 0
    skipped_existing: int = 0
    skipped_invalid: int = 0
    skipped_unknown_question: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "written": self.written,
            "skippedExisting": self.skipped_existing,
            "skippedInvalid": self.skipped_invalid,
            "skippedUnknownQuestion": self.skipped_unknown_question,
        }


class ScheduleStore:
    def __init__(self, store: DocumentStore, questions: QuestionRepository, clock: Clock = utc_now):
        self.store = store
        self.questions = questions
        self.clock = clock

    def _now_iso(self) -> str:
        return iso_timestamp(self.clock())

    def _entry(self, date_key: str, question: Question, source: str,
               created_at: Optional[str] = None) -> Dict[str, Any]:
        now = self._now_iso()
        return {
            "dateKey": date_key,
            "questionId": question.id,
            "puzzleId": question.owner_id,
            "createdAt": created_at or now,
            "updatedAt": now,
            "source": source,
        }

    # ==================================================================
    # Reads
    # ==================================================================

    def get(self, date_key: str) -> Optional[Dict[str, Any]]:
        if not is_valid_date_key(date_key):
            return None
        return self.store.get(SCHEDULE, date_key)

    def get_question_id(self, date_key: str) -> Optional[str]:
        entry = self.get(date_key)
        if not entry:
            return None
        qid = entry.get("questionId")
        return qid if isinstance(qid, str) and qid else None

    def list(self, start: Optional[str] = None, end: Optional[str] = None) -> List[Dict[str, Any]]:
        """Entries sorted by date, optionally bounded (inclusive) by start/end."""
        for label, value in (("start", start), ("end", end)):
            if value is not None and not is_valid_date_key(value):
                raise ValidationError("invalid_date", f"{label} must be YYYY-MM-DD", date=value)
        out = []
        for doc_id, data in self.store.query(SCHEDULE):
            key = data.get("dateKey") or doc_id
            if start and key < start:
                continue
            if end and key > end:
                continue
            out.append({**data, "dateKey": key})
        out.sort(key=lambda e: e["dateKey"])
        return out

    # ==================================================================
    # Writes
    # ==================================================================

    def pin(self, date_key: str, question: Question) -> Tuple[bool, Dict[str, Any]]:
        """Write-if-absent used by selection fallback. Returns (created, current entry)."""
        return self.store.create(SCHEDULE, date_key, self._entry(date_key, question, "fallback"))

    def _validate(self, date_key, question_id, today: str) -> Question:
        if not is_valid_date_key(date_key):
            raise ValidationError("invalid_date", "date must be a real YYYY-MM-DD calendar date",
                                  date=date_key)
        if date_key < today:
            raise ValidationError("date_in_past", "date is before today", date=date_key, today=today)
        if not isinstance(question_id, str) or not question_id.strip():
            raise ValidationError("invalid_question", "questionId is required")
        question = self.questions.get(question_id.strip())
        if question is None:
            raise ValidationError("invalid_question", f"question {question_id} does not resolve",
                                  questionId=question_id)
        return question

    def assign(self, date_key: str, question_id: str, today: str) -> Dict[str, Any]:
        """Admin set: future/today only, never replaces an existing entry."""
        question = self._validate(date_key, question_id, today)
        created, current = self.store.create(SCHEDULE, date_key, self._entry(date_key, question, "admin"))
        if not created:
            logger.info("[schedule] %s already scheduled with %s", date_key, current.get("questionId"))
            raise ConflictError("already_scheduled", f"{date_key} already has a question",
                                date=date_key, existing=current)
        logger.info("[schedule] Assigned %s -> %s", date_key, question.id)
        return current

    def overwrite(self, date_key: str, question_id: str, today: str) -> Dict[str, Any]:
        """Explicit admin overwrite. createdAt survives, updatedAt is fresh."""
        question = self._validate(date_key, question_id, today)

        def _apply(txn):
            existing = txn.get(SCHEDULE, date_key)
            created_at = existing.get("createdAt") if existing else None
            entry = self._entry(date_key, question, "admin", created_at)
            txn.set(SCHEDULE, date_key, entry)
            return entry

        entry = self.store.transaction(_apply)
        logger.info("[schedule] Overwrote %s -> %s", date_key, question.id)
        return entry

    def migrate(self, entries: Iterable[Any], force: bool = False, dry_run: bool = False) -> MigrationResult:
        """
        Load entries from the old file-based schedule ({dateKey, questionId, assignedAt}).
        Existing dates are skipped unless force; createdAt prefers the stored
        value, then assignedAt.
        """
        result = MigrationResult()
        for raw in entries:
            raw = raw if isinstance(raw, dict) else {}
            date_key = raw.get("dateKey").strip() if isinstance(raw.get("dateKey"), str) else ""
            question_id = raw.get("questionId").strip() if isinstance(raw.get("questionId"), str) else ""
            if not date_key or not question_id or not is_valid_date_key(date_key):
                result.skipped_invalid += 1
                logger.warning("[schedule] skip invalid entry dateKey=%r questionId=%r",
                               raw.get("dateKey"), raw.get("questionId"))
                continue

            question = self.questions.get(question_id)
            if question is None:
                result.skipped_unknown_question += 1
                logger.warning("[schedule] skip unknown question %s for %s", question_id, date_key)
                continue

            existing = self.store.get(SCHEDULE, date_key)
            if existing is not None and not force:
                result.skipped_existing += 1
                continue

            created_at = (existing or {}).get("createdAt") or _parse_iso(raw.get("assignedAt"))
            entry = self._entry(date_key, question, "migration", created_at)
            if not dry_run:
                self.store.put(SCHEDULE, date_key, entry)
            result.written += 1
            logger.info("[schedule]%s upsert %s -> %s", "[dry-run]" if dry_run else "",
                        date_key, question.id)
        return result


def _parse_iso(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return iso_timestamp(parsed)
