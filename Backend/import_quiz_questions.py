# import_quiz_questions.py
"""
Bulk-import v2 quiz questions into Firestore.

Usage:
    python import_quiz_questions.py data/quiz-questions.v2.json [--dry-run] [--overwrite]

Prints the JSON report; exits 1 when any row is invalid, collides, or hits a
legacyId conflict.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from config import Config
from services.quiz_service.container import make_store
from services.quiz_service.errors import ValidationError
from services.quiz_service.importer import QuestionImporter

logger = logging.getLogger("import_quiz_questions")

DEFAULT_INPUT = "data/quiz-questions.v2.json"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Import v2 quiz questions")
    parser.add_argument("path", nargs="?", default=DEFAULT_INPUT, help="input JSON file")
    parser.add_argument("--dry-run", action="store_true", help="report without writing")
    parser.add_argument("--overwrite", action="store_true", help="replace docs that already exist")
    return parser.parse_args(argv)


def main(argv=None, store=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=Config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    path = Path(args.path).resolve()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.error("[import] Could not read %s: %s", path, e)
        return 1

    store = store if store is not None else make_store(Config.QUIZ_STORE_BACKEND)
    try:
        report = QuestionImporter(store).run(
            raw, dry_run=args.dry_run, overwrite=args.overwrite, input_path=str(path)
        )
    except ValidationError as e:
        logger.error("[import] %s", e.message)
        return 1

    print(json.dumps(report.to_dict(), indent=2))
    return 1 if report.has_problems else 0


if __name__ == "__main__":
    sys.exit(main())
