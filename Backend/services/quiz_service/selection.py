# services/quiz_service/selection.py
"""
Resolves "the question for date D".

1. A schedule entry that still resolves wins.
2. Otherwise pick ordered[date_hash(D) % n] over every valid question, with
   candidates ordered by (numeric id suffix, id) so storage order never matters.
3. The fallback is pinned to the schedule with write-if-absent, so the day's
   question stays put even if the bank changes later. If another request
   pinned first, its choice is used.
"""

from __future__ import annotations
import logging
import re
from typing import List, Optional

from .mapper import Question
from .questions import QuestionRepository
from .schedule import ScheduleStore

logger = logging.getLogger(__name__)

_NUMERIC_SUFFIX = re.compile(r"(\d+)$")


def date_hash(date_key: str) -> int:
    """Base-31 polynomial over character codes, wrapped to unsigned 32-bit."""
    h = 0
    for ch in date_key:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    return h


def candidate_sort_key(question: Question):
    m = _NUMERIC_SUFFIX.search(question.id)
    # ids with a numeric suffix sort first, by number
    if m:
        return (0, int(m.group(1)), question.id)
    return (1, 0, question.id)


def order_candidates(questions: List[Question]) -> List[Question]:
    return sorted(questions, key=candidate_sort_key)


def fallback_question(date_key: str, questions: List[Question]) -> Optional[Question]:
    ordered = order_candidates(questions)
    if not ordered:
        return None
    return ordered[date_hash(date_key) % len(ordered)]


class SelectionService:
    def __init__(self, questions: QuestionRepository, schedule: ScheduleStore):
        self.questions = questions
        self.schedule = schedule

    def resolve(self, date_key: str, persist: bool = True) -> Optional[Question]:
        """persist=False computes the same answer without pinning a fallback (admin previews)."""
        entry = self.schedule.get(date_key)
        if entry:
            question = self.questions.get(entry.get("questionId"))
            if question is not None:
                return question
            logger.error("[quiz] Scheduled question %s for %s does not resolve; using fallback",
                         entry.get("questionId"), date_key)

        question = fallback_question(date_key, self.questions.list_all())
        if question is None:
            logger.warning("[quiz] No valid questions available for %s", date_key)
            return None

        if entry is None and persist:
            created, current = self.schedule.pin(date_key, question)
            if created:
                logger.info("[quiz] Pinned fallback %s for %s", question.id, date_key)
            elif current.get("questionId") != question.id:
                winner = self.questions.get(current.get("questionId"))
                if winner is not None:
                    return winner
        return question
