# services/quiz_service/questions.py
"""
Read side of the question bank: both storage generations behind one lookup.
"""

from __future__ import annotations
import logging
from typing import Dict, List, Optional, Tuple

from . import mapper
from .mapper import Question
from .store import DocumentStore, LEGACY_PUZZLES, V2_QUESTIONS

logger = logging.getLogger(__name__)


class QuestionRepository:
    def __init__(self, store: DocumentStore):
        self.store = store

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_v2(self) -> List[Question]:
        out = []
        for doc_id, data in self.store.query(V2_QUESTIONS):
            question = mapper.map_v2_document(doc_id, data)
            if question is None:
                logger.warning("[quiz] Skipping invalid v2 question %s", doc_id)
                continue
            out.append(question)
        return out

    def list_legacy(self) -> List[Question]:
        out = []
        for puzzle_id, data in self.store.query(LEGACY_PUZZLES, "Type", "Quiz"):
            out.extend(mapper.map_legacy_container(puzzle_id, data))
        return out

    def list_all(self) -> List[Question]:
        """
        Every valid question, sorted by id. A legacy question whose id or
        content signature matches a v2 question is dropped (already migrated).
        """
        v2 = self.list_v2()
        seen_ids = {q.id for q in v2}
        seen_sigs = {q.signature for q in v2}
        merged = list(v2)
        for question in self.list_legacy():
            if question.id in seen_ids or question.signature in seen_sigs:
                continue
            seen_ids.add(question.id)
            seen_sigs.add(question.signature)
            merged.append(question)
        merged.sort(key=lambda q: q.id)
        return merged

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, question_id: str) -> Optional[Question]:
        """
        Resolve a composite id. v2 documents are checked first; an id ending
        in _q{n} then resolves to element n of legacy container {prefix}.
        """
        if not isinstance(question_id, str) or not question_id.strip():
            return None
        question_id = question_id.strip()

        data = self.store.get(V2_QUESTIONS, question_id)
        if data is not None:
            return mapper.map_v2_document(question_id, data)

        parsed = mapper.parse_legacy_id(question_id)
        if parsed is None:
            return None
        puzzle_id, index = parsed
        container = self.get_legacy_container(puzzle_id)
        if container is None or index >= len(container["Questions"]):
            return None
        return mapper.map_legacy_question(puzzle_id, container, container["Questions"][index], index)

    def get_legacy_container(self, puzzle_id: str) -> Optional[Dict]:
        data = self.store.get(LEGACY_PUZZLES, puzzle_id)
        if not mapper.is_quiz_container(data):
            return None
        return data

    def locate(self, question_id: str) -> Optional[Tuple[str, str, Optional[int]]]:
        """
        Storage location of a question id:
            ("v2", doc_id, None) or ("legacy", puzzle_id, index)
        """
        if not isinstance(question_id, str) or not question_id:
            return None
        if self.store.get(V2_QUESTIONS, question_id) is not None:
            return ("v2", question_id, None)
        parsed = mapper.parse_legacy_id(question_id)
        if parsed is None:
            return None
        puzzle_id, index = parsed
        container = self.get_legacy_container(puzzle_id)
        if container is None or index >= len(container["Questions"]):
            return None
        if not isinstance(container["Questions"][index], dict):
            return None
        return ("legacy", puzzle_id, index)
