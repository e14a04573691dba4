# migrate_schedule.py
"""
Move the old file-based quiz schedule into the QUIZ_SCHEDULE collection.

Usage:
    python migrate_schedule.py [data/schedule.json] [--force] [--dry-run]

Accepts either a bare array of {dateKey, questionId, assignedAt} or
{"schedule": [...]}. Existing dates are left alone unless --force.
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
from services.quiz_service.questions import QuestionRepository
from services.quiz_service.schedule import ScheduleStore

logger = logging.getLogger("migrate_schedule")


def coerce_entries(raw):
    if isinstance(raw, list):
        return raw
    if isinstance(raw, dict) and isinstance(raw.get("schedule"), list):
        return raw["schedule"]
    return []


def main(argv=None, store=None) -> int:
    parser = argparse.ArgumentParser(description="Migrate schedule.json into Firestore")
    parser.add_argument("path", nargs="?", default="data/schedule.json")
    parser.add_argument("--force", action="store_true", help="overwrite dates that already exist")
    parser.add_argument("--dry-run", action="store_true", help="log what would change")
    args = parser.parse_args(argv)
    logging.basicConfig(level=Config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")

    path = Path(args.path).resolve()
    entries = coerce_entries(json.loads(path.read_text(encoding="utf-8")))
    if not entries:
        logger.info("[migrate-schedule] No schedule entries found in %s", path)
        return 0
    logger.info("[migrate-schedule] Loaded %d entries from %s (force=%s, dryRun=%s)",
                len(entries), path, args.force, args.dry_run)

    store = store if store is not None else make_store(Config.QUIZ_STORE_BACKEND)
    schedule = ScheduleStore(store, QuestionRepository(store))
    result = schedule.migrate(entries, force=args.force, dry_run=args.dry_run)
    logger.info("[migrate-schedule] complete %s", result.to_dict())
    print(json.dumps(result.to_dict()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
