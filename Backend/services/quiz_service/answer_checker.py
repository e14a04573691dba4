# services/quiz_service/answer_checker.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .mapper import MCQ, Question


@dataclass(frozen=True)
class AnswerCheck:
    correct: bool
    selected_index: Optional[int] = None
    selected_indices: Optional[Tuple[int, ...]] = None

    def feedback(self) -> Dict[str, Any]:
        if self.selected_indices is not None:
            return {"selectedIndices": list(self.selected_indices)}
        return {"selectedIndex": self.selected_index}


def _as_index(value) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _extract_index(answer) -> int:
    if isinstance(answer, dict):
        answer = answer.get("selectedIndex")
    idx = _as_index(answer)
    return -1 if idx is None else idx


def _extract_indices(answer) -> Optional[Tuple[int, ...]]:
    if isinstance(answer, dict):
        answer = answer.get("selectedIndices")
    if not isinstance(answer, (list, tuple)):
        return None
    indices = [_as_index(v) for v in answer]
    if any(i is None for i in indices):
        return None
    return tuple(sorted(set(indices)))


def check_answer(question: Question, answer: Any) -> AnswerCheck:
    """
    mcq:        int or {"selectedIndex": int}
    select-all: [int, ...] or {"selectedIndices": [...]}, compared as sets

    Anything else is simply an incorrect answer; this never raises.
    """
    if question.type == MCQ:
        idx = _extract_index(answer)
        return AnswerCheck(correct=idx == question.correct_index, selected_index=idx)

    indices = _extract_indices(answer)
    if indices is None:
        return AnswerCheck(correct=False, selected_indices=())
    return AnswerCheck(correct=set(indices) == set(question.correct_indices),
                       selected_indices=indices)
