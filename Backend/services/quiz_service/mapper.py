# services/quiz_service/mapper.py
"""
Canonical quiz question + mapping from both stored shapes.

Stored shapes:
- Legacy puzzle container (collection "Puzzle"):
    {"Type": "Quiz", "Name": ..., "Topic": ..., "Reward": 100,
     "Questions": [{"prompt"|"Prompt"|"question"|...: ..., "answer": ...,
                    "answers": [...], "other": [...], "SV": 150, "type": ...}, ...]}
  Each element maps to one question with id "{puzzleId}_q{index}".
- v2 question document (collection "QuizQuestions"):
    {"schemaVersion": 2, "type": "mcq"|"select-all", "prompt": ..., "choices": [...],
     "correctIndex" | "correctIndices", "basePoints", "difficulty", "tags", "topic",
     "explanation", "createdAt", "updatedAt", "legacyId"?}

Mapping never raises: an unusable document maps to None (or an empty list).
Admin writes and imports go through validate_question_input(), which does raise.
"""

from __future__ import annotations
import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .errors import ValidationError
from .utils import collapse_whitespace

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

MCQ = "mcq"
SELECT_ALL = "select-all"
QUESTION_TYPES = (MCQ, SELECT_ALL)

SCHEMA_VERSION = 2
DEFAULT_BASE_POINTS = 100

SELECT_ALL_SYNONYMS = {
    "select-all", "select_all", "selectall",
    "multi-select", "multi_select", "multiselect",
    "multiple-choice", "multiple_choice",
}

# Ordered accessors per logical field of a legacy question blob
PROMPT_FIELDS = (
    "prompt", "Prompt", "question", "Question", "text", "Text",
    "statement", "Statement", "label", "Label", "title", "Title", "body", "Body",
)
CONTAINER_NAME_FIELDS = ("Name", "name")

LEGACY_ID_RE = re.compile(r"^(.+)_q(\d+)$", re.IGNORECASE)

# ============================================================================
# Canonical question
# ============================================================================

@dataclass(frozen=True)
class Question:
    id: str
    type: str
    prompt: str
    choices: Tuple[str, ...]
    base_points: float
    difficulty: int
    correct_index: Optional[int] = None
    correct_indices: Tuple[int, ...] = ()
    tags: Tuple[str, ...] = ()
    explanation: Optional[str] = None
    source: str = "v2"
    puzzle_id: Optional[str] = None
    signature: str = field(default="", compare=False)

    @property
    def owner_id(self) -> str:
        """Document that stores this question (container id for legacy)."""
        return self.puzzle_id or self.id

    def answer_fields(self) -> Dict[str, Any]:
        if self.type == MCQ:
            return {"correctIndex": self.correct_index}
        return {"correctIndices": list(self.correct_indices)}

    def public_dict(self) -> Dict[str, Any]:
        """Shape sent to players: no answer fields, no explanation."""
        return {
            "id": self.id,
            "type": self.type,
            "prompt": self.prompt,
            "choices": list(self.choices),
            "basePoints": self.base_points,
            "difficulty": self.difficulty,
            "tags": list(self.tags),
        }

    def to_dict(self) -> Dict[str, Any]:
        out = self.public_dict()
        out.update(self.answer_fields())
        out["source"] = self.source
        out["puzzleId"] = self.owner_id
        if self.explanation:
            out["explanation"] = self.explanation
        return out


# ============================================================================
# Field helpers
# ============================================================================

def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def _first_non_empty(values) -> Optional[str]:
    for value in values:
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _dedupe(values) -> List:
    return list(dict.fromkeys(values))


def normalize_tags(raw, topic_fallback: Optional[str] = None) -> Tuple[str, ...]:
    tags = _dedupe(t.lower() for t in _string_list(raw))
    if not tags and isinstance(topic_fallback, str) and topic_fallback.strip():
        tags = [topic_fallback.strip().lower()]
    return tuple(tags)


def normalize_question_type(raw) -> str:
    """Collapse the known synonyms onto "mcq" / "select-all". Unknown -> mcq."""
    value = raw.strip().lower() if isinstance(raw, str) else ""
    return SELECT_ALL if value in SELECT_ALL_SYNONYMS else MCQ


def normalize_prompt(raw) -> Optional[str]:
    if not isinstance(raw, str):
        return None
    return collapse_whitespace(raw) or None


def derive_difficulty(base_points) -> int:
    if base_points <= 100:
        return 1
    if base_points <= 150:
        return 2
    return 3


def _difficulty(raw, base_points) -> int:
    if _is_int(raw) and raw in (1, 2, 3):
        return raw
    return derive_difficulty(base_points)


def build_signature(
    qtype: str,
    prompt: str,
    choices,
    base_points,
    correct_index: Optional[int],
    correct_indices,
    tags,
) -> str:
    """Content fingerprint used to spot a legacy question already migrated to v2."""
    norm = lambda s: collapse_whitespace(s).lower()
    if qtype == MCQ:
        answer_key = f"mcq:{correct_index}"
    else:
        answer_key = "sa:" + ",".join(str(i) for i in sorted(correct_indices))
    return "::".join([
        qtype,
        norm(prompt),
        _points_text(base_points),
        answer_key,
        "|".join(norm(c) for c in choices),
        ",".join(sorted(t.strip().lower() for t in tags)),
    ])


def _points_text(value) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _make_question(qid, qtype, prompt, choices, base_points, difficulty, *,
                   correct_index=None, correct_indices=(), tags=(), explanation=None,
                   source="v2", puzzle_id=None) -> Question:
    choices = tuple(choices)
    correct_indices = tuple(correct_indices)
    tags = tuple(tags)
    return Question(
        id=qid,
        type=qtype,
        prompt=prompt,
        choices=choices,
        base_points=base_points,
        difficulty=difficulty,
        correct_index=correct_index if qtype == MCQ else None,
        correct_indices=correct_indices if qtype == SELECT_ALL else (),
        tags=tags,
        explanation=explanation,
        source=source,
        puzzle_id=puzzle_id,
        signature=build_signature(
            qtype, prompt, choices, base_points, correct_index, correct_indices, tags
        ),
    )


# ============================================================================
# v2 documents
# ============================================================================

def map_v2_document(doc_id: str, data: Dict[str, Any]) -> Optional[Question]:
    """
    Map one v2 document. Returns None when the document is not schemaVersion 2
    or breaks an invariant. Blank and duplicate choices are rejected rather
    than dropped: dropping would shift the stored answer indices.
    """
    if not isinstance(data, dict) or data.get("schemaVersion") != SCHEMA_VERSION:
        return None

    qtype = normalize_question_type(data.get("type"))
    prompt = normalize_prompt(data.get("prompt"))
    base_points = data.get("basePoints")
    raw_choices = data.get("choices")
    choices = _string_list(raw_choices)

    if not prompt or not _is_number(base_points) or len(choices) < 2:
        return None
    if len(choices) != len(raw_choices):
        logger.warning("[quiz] v2 question %s has blank or non-string choices; skipped", doc_id)
        return None
    if len(set(choices)) != len(choices):
        logger.warning("[quiz] v2 question %s has duplicate choices; skipped", doc_id)
        return None

    topic = data.get("topic") if isinstance(data.get("topic"), str) else None
    common = dict(
        tags=normalize_tags(data.get("tags"), topic),
        explanation=_first_non_empty([data.get("explanation")]),
        source="v2",
    )
    difficulty = _difficulty(data.get("difficulty"), base_points)

    if qtype == MCQ:
        idx = data.get("correctIndex")
        if not _is_int(idx) or not 0 <= idx < len(choices):
            return None
        return _make_question(doc_id, MCQ, prompt, choices, base_points, difficulty,
                              correct_index=idx, **common)

    raw = data.get("correctIndices")
    if not isinstance(raw, list) or not all(_is_int(i) for i in raw):
        return None
    indices = sorted(set(raw))
    if not indices or len(indices) >= len(choices):
        return None
    if not all(0 <= i < len(choices) for i in indices):
        return None
    return _make_question(doc_id, SELECT_ALL, prompt, choices, base_points, difficulty,
                          correct_indices=indices, **common)


# ============================================================================
# Legacy containers
# ============================================================================

def legacy_question_id(puzzle_id: str, index: int) -> str:
    return f"{puzzle_id}_q{index}"


def parse_legacy_id(question_id: str) -> Optional[Tuple[str, int]]:
    """"abc_q3" -> ("abc", 3); anything without the suffix -> None."""
    if not isinstance(question_id, str):
        return None
    m = LEGACY_ID_RE.match(question_id)
    if not m:
        return None
    return m.group(1), int(m.group(2))


def is_quiz_container(data) -> bool:
    return isinstance(data, dict) and data.get("Type") == "Quiz" and isinstance(
        data.get("Questions"), list
    )


def _legacy_prompt(container: Dict[str, Any], blob: Dict[str, Any], index: int) -> str:
    prompt = normalize_prompt(_first_non_empty(blob.get(f) for f in PROMPT_FIELDS))
    if prompt:
        return prompt
    name = _first_non_empty(container.get(f) for f in CONTAINER_NAME_FIELDS) or "Quiz"
    return f"{name} - Question {index + 1}"


def _legacy_points(container: Dict[str, Any], blob: Dict[str, Any]):
    if _is_number(blob.get("SV")):
        return blob["SV"]
    if _is_number(container.get("Reward")):
        return container["Reward"]
    return DEFAULT_BASE_POINTS


def map_legacy_question(
    puzzle_id: str, container: Dict[str, Any], blob: Any, index: int
) -> Optional[Question]:
    """Map one element of a legacy container. Tombstones and non-dicts map to None."""
    if not isinstance(blob, dict):
        return None

    qtype = normalize_question_type(blob.get("type"))
    qid = legacy_question_id(puzzle_id, index)
    base_points = _legacy_points(container, blob)
    topic = container.get("Topic") if isinstance(container.get("Topic"), str) else None
    common = dict(
        tags=normalize_tags(blob.get("tags"), topic),
        explanation=_first_non_empty([blob.get("explanation")]),
        source="legacy",
        puzzle_id=puzzle_id,
    )
    prompt = _legacy_prompt(container, blob, index)
    difficulty = _difficulty(blob.get("difficulty"), base_points)

    if qtype == MCQ:
        other = _dedupe(_string_list(blob.get("other")))
        correct = _first_non_empty([blob.get("answer"), *_string_list(blob.get("answers"))])
        if correct is None:
            if not other:
                return None
            correct = other[0]
            logger.warning(
                "[quiz] %s has no answer; promoting first 'other' entry %r to correct",
                qid, correct,
            )
        choices = _dedupe([correct, *[c for c in other if c != correct]])
        if len(choices) < 2:
            return None
        return _make_question(qid, MCQ, prompt, choices, base_points, difficulty,
                              correct_index=0, **common)

    correct_list = _string_list(blob.get("answers"))
    if not correct_list:
        single = _first_non_empty([blob.get("answer")])
        correct_list = [single] if single else []
    correct_list = _dedupe(correct_list)
    distractors = _dedupe(c for c in _string_list(blob.get("other")) if c not in correct_list)
    if not correct_list or not distractors:
        return None
    choices = correct_list + distractors
    return _make_question(qid, SELECT_ALL, prompt, choices, base_points, difficulty,
                          correct_indices=range(len(correct_list)), **common)


def map_legacy_container(puzzle_id: str, data: Dict[str, Any]) -> List[Question]:
    if not is_quiz_container(data):
        return []
    out = []
    for index, blob in enumerate(data["Questions"]):
        question = map_legacy_question(puzzle_id, data, blob, index)
        if question is not None:
            out.append(question)
    return out


# ============================================================================
# Validation for writes (admin + import)
# ============================================================================

def validate_question_input(payload: Any, question_id: str = "", label: str = "question") -> Question:
    """
    Strict validation of a canonical question payload. Raises ValidationError
    (code "invalid_question") describing the first problem found.
    """
    def fail(message):
        raise ValidationError("invalid_question", f"{label} {message}")

    if not isinstance(payload, dict):
        fail("must be an object")

    raw_type = payload.get("type")
    qtype = raw_type.strip().lower() if isinstance(raw_type, str) else ""
    if qtype not in QUESTION_TYPES:
        fail("type must be mcq or select-all")

    prompt = normalize_prompt(payload.get("prompt"))
    if not prompt:
        fail("prompt must be non-empty")

    base_points = payload.get("basePoints")
    if not _is_number(base_points) or base_points < 0:
        fail("basePoints must be a non-negative number")

    raw_choices = payload.get("choices")
    if not isinstance(raw_choices, list) or not all(isinstance(c, str) for c in raw_choices):
        fail("choices must be an array of strings")
    choices = _string_list(raw_choices)
    if len(choices) != len(raw_choices):
        fail("choices must not be empty strings")
    if len(choices) < 2:
        fail("requires at least 2 choices")
    if len(set(choices)) != len(choices):
        fail("choices must be unique after trimming")

    tags = normalize_tags(payload.get("tags"), payload.get("topic"))
    explanation = _first_non_empty([payload.get("explanation")])
    difficulty = payload.get("difficulty")
    if difficulty is not None and not (_is_int(difficulty) and difficulty in (1, 2, 3)):
        fail("difficulty must be 1, 2 or 3")
    difficulty = _difficulty(difficulty, base_points)

    if qtype == MCQ:
        idx = payload.get("correctIndex")
        if not _is_int(idx) or not 0 <= idx < len(choices):
            fail("has invalid correctIndex")
        return _make_question(question_id, MCQ, prompt, choices, base_points, difficulty,
                              correct_index=idx, tags=tags, explanation=explanation)

    raw = payload.get("correctIndices")
    if not isinstance(raw, list) or not raw:
        fail("select-all needs correctIndices")
    if not all(_is_int(i) for i in raw):
        fail("correctIndices must be integers")
    if len(set(raw)) != len(raw):
        fail("correctIndices must be unique")
    if not all(0 <= i < len(choices) for i in raw):
        fail("correctIndices out of range")
    if len(raw) >= len(choices):
        fail("select-all must include at least one incorrect choice")
    return _make_question(question_id, SELECT_ALL, prompt, choices, base_points, difficulty,
                          correct_indices=sorted(raw), tags=tags, explanation=explanation)


# ============================================================================
# Serialization back to storage
# ============================================================================

def to_v2_document(question: Question, now_iso: str) -> Dict[str, Any]:
    doc: Dict[str, Any] = {
        "schemaVersion": SCHEMA_VERSION,
        "type": question.type,
        "prompt": question.prompt,
        "choices": list(question.choices),
        **question.answer_fields(),
        "basePoints": question.base_points,
        "difficulty": question.difficulty,
        "createdAt": now_iso,
        "updatedAt": now_iso,
    }
    if question.explanation:
        doc["explanation"] = question.explanation
    if question.tags:
        doc["tags"] = list(question.tags)
        doc["topic"] = question.tags[0]
    return doc


def to_legacy_element(question: Question) -> Dict[str, Any]:
    """
    Legacy blob that maps back to the same question. Correct answers go in
    `answer`/`answers`, distractors in `other`, points in `SV`.
    """
    blob: Dict[str, Any] = {
        "type": question.type,
        "prompt": question.prompt,
        "SV": question.base_points,
        "difficulty": question.difficulty,
    }
    if question.type == MCQ:
        blob["answer"] = question.choices[question.correct_index]
        blob["other"] = [c for i, c in enumerate(question.choices) if i != question.correct_index]
    else:
        correct = set(question.correct_indices)
        blob["answers"] = [c for i, c in enumerate(question.choices) if i in correct]
        blob["other"] = [c for i, c in enumerate(question.choices) if i not in correct]
    if question.tags:
        blob["tags"] = list(question.tags)
    if question.explanation:
        blob["explanation"] = question.explanation
    return blob


def topic_to_slug(topic: Optional[str]) -> str:
    """"Campus Life!" -> "campus-life"; empty -> "quiz"; max 24 chars."""
    value = (topic if isinstance(topic, str) else "quiz").strip().lower()
    slug = re.sub(r"[^a-z0-9]+", "-", value).strip("-")
    return slug[:24] if slug else "quiz"
