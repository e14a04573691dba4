# services/quiz_service/importer.py
"""
Bulk import of v2 questions from an export file.

Input envelope:
    {"version": 2, "source": "...", "generatedAt": "...",
     "questions": [{"legacyId", "type", "prompt", "basePoints", "choices",
                    "correctIndex" | "correctIndices", "tags"?, "explanation"?,
                    "difficulty"?}, ...]}

Each row gets a deterministic document id:
    quiz_{slug(tags[0])}_{sha1(lower(legacyId) + "::" + collapsed prompt)[:6]}
so re-running an unchanged batch writes nothing new.

Row outcomes: import | overwrite_existing | skip_existing | legacy_id_conflict | invalid
Rows that hash to the same id within one batch are all invalid; that pass runs
before anything is written.
"""

from __future__ import annotations
import hashlib
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from . import mapper
from .errors import ValidationError
from .mapper import Question
from .store import DocumentStore, V2_QUESTIONS
from .utils import Clock, collapse_whitespace, iso_timestamp, utc_now

logger = logging.getLogger(__name__)

IMPORT = "import"
OVERWRITE_EXISTING = "overwrite_existing"
SKIP_EXISTING = "skip_existing"
LEGACY_ID_CONFLICT = "legacy_id_conflict"
INVALID = "invalid"


# ============================================================================
# Envelope + rows
# ============================================================================

def load_envelope(raw: Any) -> Dict[str, Any]:
    if not isinstance(raw, dict):
        raise ValidationError("invalid_envelope", "input must be a JSON object")
    if raw.get("version") != 2:
        raise ValidationError("invalid_envelope", "version must be 2")
    for key in ("source", "generatedAt"):
        value = raw.get(key)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError("invalid_envelope", f"{key} must be a non-empty string")
    if not isinstance(raw.get("questions"), list):
        raise ValidationError("invalid_envelope", "questions must be an array")
    return {
        "source": raw["source"].strip(),
        "generatedAt": raw["generatedAt"].strip(),
        "questions": raw["questions"],
    }


def build_target_id(legacy_id: str, prompt: str, tags) -> str:
    key = f"{legacy_id.strip().lower()}::{collapse_whitespace(prompt)}"
    digest = hashlib.sha1(key.encode("utf-8")).hexdigest()[:6]
    topic = tags[0] if tags else None
    return f"quiz_{mapper.topic_to_slug(topic)}_{digest}"


@dataclass
class ImportRow:
    index: int
    legacy_id: str
    question: Question
    target_id: str


def validate_import_row(raw: Any, index: int) -> ImportRow:
    label = f"question[{index}]"
    if not isinstance(raw, dict):
        raise ValidationError("invalid_question", f"{label} must be an object")
    legacy_id = raw.get("legacyId")
    if not isinstance(legacy_id, str) or not legacy_id.strip():
        raise ValidationError("invalid_question", f"{label} legacyId must be non-empty")
    question = mapper.validate_question_input(raw, label=label)
    target_id = build_target_id(legacy_id, question.prompt, question.tags)
    return ImportRow(index, legacy_id.strip(), question, target_id)


def _summarize_prompt(prompt: str) -> str:
    return prompt if len(prompt) <= 80 else prompt[:77] + "..."


# ============================================================================
# Report
# ============================================================================

@dataclass
class ImportReport:
    """Outcome of one run. A dry run produces the same report as a live run
    against the same store, except that its `dryRun` flag is true."""

    source: str
    generated_at: str
    dry_run: bool
    overwrite: bool
    total: int
    input_path: Optional[str] = None
    valid: int = 0
    id_collisions: int = 0
    items: List[Dict[str, Any]] = field(default_factory=list)

    def add(self, legacy_id, target_id, action, reason=None):
        item = {"legacyId": legacy_id, "firestoreId": target_id, "action": action}
        if reason:
            item["reason"] = reason
        self.items.append(item)

    def count(self, action: str) -> int:
        return sum(1 for item in self.items if item["action"] == action)

    @property
    def has_problems(self) -> bool:
        return bool(self.count(INVALID) or self.id_collisions or self.count(LEGACY_ID_CONFLICT))

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "source": self.source,
            "generatedAt": self.generated_at,
            "dryRun": self.dry_run,
            "overwrite": self.overwrite,
            "total": self.total,
            "valid": self.valid,
            "imported": self.count(IMPORT),
            "overwritten": self.count(OVERWRITE_EXISTING),
            "skippedExisting": self.count(SKIP_EXISTING),
            "legacyIdConflicts": self.count(LEGACY_ID_CONFLICT),
            "invalid": self.count(INVALID),
            "idCollisions": self.id_collisions,
            "items": list(self.items),
        }
        if self.input_path:
            out["inputPath"] = self.input_path
        return out


# ============================================================================
# Importer
# ============================================================================

class QuestionImporter:
    def __init__(self, store: DocumentStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    def _existing_index(self):
        """(docs by id, doc id by legacyId, legacyIds claimed by more than one doc)"""
        by_doc: Dict[str, Dict[str, Any]] = {}
        by_legacy: Dict[str, str] = {}
        duplicated = set()
        for doc_id, data in self.store.query(V2_QUESTIONS):
            by_doc[doc_id] = data
            legacy_id = data.get("legacyId")
            if not isinstance(legacy_id, str) or not legacy_id.strip():
                continue
            legacy_id = legacy_id.strip()
            prior = by_legacy.get(legacy_id)
            if prior is not None and prior != doc_id:
                duplicated.add(legacy_id)
                continue
            by_legacy[legacy_id] = doc_id
        return by_doc, by_legacy, duplicated

    def run(self, envelope: Any, dry_run: bool = False, overwrite: bool = False,
            input_path: Optional[str] = None) -> ImportReport:
        envelope = load_envelope(envelope)
        rows_raw = envelope["questions"]
        report = ImportReport(
            source=envelope["source"],
            generated_at=envelope["generatedAt"],
            dry_run=dry_run,
            overwrite=overwrite,
            total=len(rows_raw),
            input_path=input_path,
        )

        # 1) row validation + duplicate legacyIds inside the batch
        rows: List[ImportRow] = []
        seen_legacy = set()
        for index, raw in enumerate(rows_raw):
            try:
                row = validate_import_row(raw, index)
            except ValidationError as e:
                legacy_id = raw.get("legacyId") if isinstance(raw, dict) else None
                if not isinstance(legacy_id, str) or not legacy_id.strip():
                    legacy_id = f"question[{index}]"
                report.add(legacy_id.strip(), "", INVALID, e.message)
                continue
            if row.legacy_id in seen_legacy:
                report.add(row.legacy_id, row.target_id, INVALID,
                           f"Duplicate legacyId in input: {row.legacy_id}")
                continue
            seen_legacy.add(row.legacy_id)
            rows.append(row)
        report.valid = len(rows)

        # 2) batch-wide id collision pass
        groups: "OrderedDict[str, List[ImportRow]]" = OrderedDict()
        for row in rows:
            groups.setdefault(row.target_id, []).append(row)
        runnable = []
        for target_id, group in groups.items():
            if len(group) == 1:
                runnable.append(group[0])
                continue
            report.id_collisions += 1
            details = ", ".join(
                f"{r.legacy_id} ({_summarize_prompt(r.question.prompt)})" for r in group
            )
            for r in group:
                report.add(r.legacy_id, target_id, INVALID,
                           f"Doc ID collision: {target_id} generated by {details}")
        runnable.sort(key=lambda r: r.index)

        # 3) compare against stored documents, then write
        by_doc, by_legacy, duplicated = self._existing_index()
        now = iso_timestamp(self.clock())
        for row in runnable:
            if row.legacy_id in duplicated:
                report.add(row.legacy_id, row.target_id, LEGACY_ID_CONFLICT,
                           f"Multiple existing docs already use legacyId {row.legacy_id}")
                continue
            claimed_by = by_legacy.get(row.legacy_id)
            if claimed_by is not None and claimed_by != row.target_id:
                report.add(row.legacy_id, row.target_id, LEGACY_ID_CONFLICT,
                           f"legacyId {row.legacy_id} already exists on doc {claimed_by}")
                continue
            existing = by_doc.get(row.target_id)
            if existing is not None and not overwrite:
                report.add(row.legacy_id, row.target_id, SKIP_EXISTING,
                           f"doc {row.target_id} already exists")
                continue

            payload = self._payload(row, now, existing)
            if not dry_run:
                self.store.put(V2_QUESTIONS, row.target_id, payload)
            if existing is not None:
                report.add(row.legacy_id, row.target_id, OVERWRITE_EXISTING,
                           f"doc {row.target_id} already exists")
            else:
                report.add(row.legacy_id, row.target_id, IMPORT)

        logger.info(
            "[import] %s rows: %s imported, %s overwritten, %s skipped, %s conflicts, %s invalid%s",
            report.total, report.count(IMPORT), report.count(OVERWRITE_EXISTING),
            report.count(SKIP_EXISTING), report.count(LEGACY_ID_CONFLICT), report.count(INVALID),
            " (dry run)" if dry_run else "",
        )
        return report

    @staticmethod
    def _payload(row: ImportRow, now: str, existing: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        doc = mapper.to_v2_document(row.question, now)
        if existing and isinstance(existing.get("createdAt"), str) and existing["createdAt"].strip():
            doc["createdAt"] = existing["createdAt"].strip()
        doc["legacyId"] = row.legacy_id
        return doc
