# services/quiz_service/admin_questions.py
"""
Admin CRUD over both question generations behind one id.

- create: always a new v2 document, id "quiz_{topic-slug}_{6 hex}"
- update/delete of a v2 id: the document itself
- update/delete of a legacy id "{puzzleId}_q{n}": only element n of the
  container changes. Deleted elements become None so sibling ids (and any
  schedule entries pointing at them) stay valid. Name/Topic/Reward are
  recomputed from the first live element; the container is removed with its
  last live element. Each legacy edit is one read-modify-write transaction
  on the container.

Every write goes through mapper.validate_question_input first.
"""

from __future__ import annotations
import logging
import secrets
from typing import Any, Dict, List

from . import mapper
from .answer_checker import check_answer
from .errors import ConflictError, NotFoundError, ValidationError
from .mapper import Question
from .questions import QuestionRepository
from .scoring import calculate_points
from .store import DocumentStore, LEGACY_PUZZLES, V2_QUESTIONS
from .utils import Clock, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

CREATE_ID_RETRIES = 5


def make_question_id(topic) -> str:
    return f"quiz_{mapper.topic_to_slug(topic)}_{secrets.token_hex(3)}"


class AdminQuestionService:
    def __init__(self, store: DocumentStore, questions: QuestionRepository, clock: Clock = utc_now):
        self.store = store
        self.questions = questions
        self.clock = clock

    def _now_iso(self) -> str:
        return iso_timestamp(self.clock())

    # ==================================================================
    # Reads
    # ==================================================================

    def list(self) -> List[Dict[str, Any]]:
        return [q.to_dict() for q in self.questions.list_all()]

    def get(self, question_id: str) -> Dict[str, Any]:
        question = self.questions.get(question_id)
        if question is None:
            raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)
        return question.to_dict()

    # ==================================================================
    # Writes
    # ==================================================================

    def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        question = mapper.validate_question_input(payload)
        now = self._now_iso()
        doc = mapper.to_v2_document(question, now)
        topic = question.tags[0] if question.tags else None

        for _ in range(CREATE_ID_RETRIES):
            qid = make_question_id(topic)
            created, _current = self.store.create(V2_QUESTIONS, qid, doc)
            if created:
                logger.info("[admin] Created question %s", qid)
                return mapper.map_v2_document(qid, doc).to_dict()
            logger.info("[admin] Generated id %s already taken; retrying", qid)
        raise ConflictError("id_exhausted", "could not allocate a unique question id")

    def update(self, question_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        location = self.questions.locate(question_id)
        if location is None:
            raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)
        kind, owner_id, index = location
        question = mapper.validate_question_input(payload, question_id)

        if kind == "v2":
            existing = self.store.get(V2_QUESTIONS, owner_id) or {}
            doc = mapper.to_v2_document(question, self._now_iso())
            for keep in ("createdAt", "legacyId"):
                if existing.get(keep):
                    doc[keep] = existing[keep]
            self.store.put(V2_QUESTIONS, owner_id, doc)
            logger.info("[admin] Updated v2 question %s", owner_id)
            return mapper.map_v2_document(owner_id, doc).to_dict()

        def _apply(txn):
            container = txn.get(LEGACY_PUZZLES, owner_id)
            if not mapper.is_quiz_container(container) or index >= len(container["Questions"]) \
                    or not isinstance(container["Questions"][index], dict):
                raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)
            elements = list(container["Questions"])
            elements[index] = mapper.to_legacy_element(question)
            updated = _summarize(owner_id, {**container, "Questions": elements})
            txn.set(LEGACY_PUZZLES, owner_id, updated)
            return updated

        container = self.store.transaction(_apply)
        logger.info("[admin] Updated legacy question %s", question_id)
        mapped = mapper.map_legacy_question(owner_id, container, container["Questions"][index], index)
        if mapped is None:
            # stored shape failed to map back; should not happen after validation
            raise ValidationError("invalid_question", "question could not be stored in legacy form")
        return mapped.to_dict()

    def delete(self, question_id: str) -> Dict[str, Any]:
        location = self.questions.locate(question_id)
        if location is None:
            raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)
        kind, owner_id, index = location

        if kind == "v2":
            self.store.delete(V2_QUESTIONS, owner_id)
            logger.info("[admin] Deleted v2 question %s", owner_id)
            return {"ok": True, "deleted": question_id}

        def _apply(txn) -> bool:
            container = txn.get(LEGACY_PUZZLES, owner_id)
            if not mapper.is_quiz_container(container) or index >= len(container["Questions"]) \
                    or not isinstance(container["Questions"][index], dict):
                raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)
            elements = list(container["Questions"])
            elements[index] = None
            if not any(isinstance(e, dict) for e in elements):
                txn.delete(LEGACY_PUZZLES, owner_id)
                return True
            txn.set(LEGACY_PUZZLES, owner_id, _summarize(owner_id, {**container, "Questions": elements}))
            return False

        container_deleted = self.store.transaction(_apply)
        if container_deleted:
            logger.info("[admin] Deleted legacy container %s (last question removed)", owner_id)
        else:
            logger.info("[admin] Deleted legacy question %s", question_id)
        return {"ok": True, "deleted": question_id, "containerDeleted": container_deleted}

    # ==================================================================
    # Test submit
    # ==================================================================

    def test_submit(self, question_id: Any, answer: Any, elapsed_ms: Any = None) -> Dict[str, Any]:
        """Check + score as a first attempt; nothing is recorded."""
        if not isinstance(question_id, str) or not question_id.strip():
            raise ValidationError("invalid_request", "questionId is required")
        if elapsed_ms is not None and (
            isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, (int, float))
        ):
            raise ValidationError("invalid_request", "elapsedMs must be a number")
        question = self.questions.get(question_id.strip())
        if question is None:
            raise NotFoundError("not_found", f"question {question_id} not found", questionId=question_id)

        check = check_answer(question, answer)
        out: Dict[str, Any] = {
            "questionId": question.id,
            "correct": check.correct,
            "feedback": check.feedback(),
            **question.answer_fields(),
        }
        if check.correct:
            breakdown = calculate_points(question.base_points, 1, elapsed_ms or 0)
            out["pointsEarned"] = breakdown.total
            out["pointsBreakdown"] = breakdown.to_dict()
        if question.explanation:
            out["explanation"] = question.explanation
        return out


def _summarize(puzzle_id: str, container: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute Name/Topic/Reward from the first live element."""
    first: Question = next(
        iter(mapper.map_legacy_container(puzzle_id, {**container, "Type": "Quiz"})), None
    )
    if first is None:
        return container
    out = dict(container)
    out["Type"] = "Quiz"
    out["Name"] = first.prompt
    out["Reward"] = first.base_points
    if first.tags:
        out["Topic"] = first.tags[0]
    return out
