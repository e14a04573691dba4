# services/quiz_service/progress.py
"""
Signed-in player progress: completion records and the Player aggregate.

Completion:  Player/{uid}/QuizCompletions/{dateKey}
    {"dateKey", "questionId", "pointsAwarded", "attemptsUsed", "elapsedMs", "createdAt"}

Aggregate:   Player/{uid}
    {"displayName", "totalPoints", "streakDays", "longestStreak",
     "lastCompletedDateKey", "isAdmin", "createdAt", "updatedAt"}

record_completion() writes both in one transaction, so a day is awarded at
most once per player no matter how many requests race.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .store import DocumentStore, PLAYERS, completions_path
from .utils import Clock, iso_timestamp, previous_date_key, utc_now

logger = logging.getLogger(__name__)


def _number(value, default=0):
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


@dataclass(frozen=True)
class CompletionResult:
    already_completed: bool
    points_awarded: int
    completed_at: Optional[str]
    total_points: int = 0
    streak_days: int = 0
    longest_streak: int = 0


class PlayerProgressStore:
    def __init__(self, store: DocumentStore, clock: Clock = utc_now):
        self.store = store
        self.clock = clock

    # ==================================================================
    # Reads
    # ==================================================================

    def get_player(self, uid: str) -> Optional[Dict[str, Any]]:
        return self.store.get(PLAYERS, uid)

    def is_admin(self, uid: str) -> bool:
        player = self.get_player(uid) or {}
        return player.get("isAdmin") is True

    def get_completion(self, uid: str, date_key: str) -> Optional[Dict[str, Any]]:
        return self.store.get(completions_path(uid), date_key)

    def list_players(self) -> List[Tuple[str, Dict[str, Any]]]:
        return self.store.query(PLAYERS)

    # ==================================================================
    # Completion
    # ==================================================================

    def record_completion(
        self,
        uid: str,
        date_key: str,
        question_id: str,
        points: int,
        attempts_used: int,
        elapsed_ms=None,
        display_name: Optional[str] = None,
    ) -> CompletionResult:
        """
        Write-once completion for (uid, date_key) plus the aggregate update.
        If a completion already exists nothing is written and the stored
        points come back with already_completed=True.
        """
        now_iso = iso_timestamp(self.clock())
        yesterday = previous_date_key(date_key)
        path = completions_path(uid)

        def _apply(txn) -> CompletionResult:
            existing = txn.get(path, date_key)
            player = txn.get(PLAYERS, uid) or {}
            if existing is not None:
                return CompletionResult(
                    already_completed=True,
                    points_awarded=int(_number(existing.get("pointsAwarded"))),
                    completed_at=existing.get("createdAt"),
                    total_points=int(_number(player.get("totalPoints"))),
                    streak_days=int(_number(player.get("streakDays"))),
                    longest_streak=int(_number(player.get("longestStreak"))),
                )

            streak = int(_number(player.get("streakDays")))
            last = player.get("lastCompletedDateKey")
            if last == yesterday:
                streak += 1
            elif last != date_key:
                streak = 1
            streak = max(streak, 1)
            longest = max(int(_number(player.get("longestStreak"))), streak)
            total = int(_number(player.get("totalPoints"))) + int(points)

            txn.set(path, date_key, {
                "dateKey": date_key,
                "questionId": question_id,
                "pointsAwarded": int(points),
                "attemptsUsed": attempts_used,
                "elapsedMs": elapsed_ms,
                "createdAt": now_iso,
            })
            updated = {
                **player,
                "totalPoints": total,
                "streakDays": streak,
                "longestStreak": longest,
                "lastCompletedDateKey": date_key,
                "updatedAt": now_iso,
            }
            updated.setdefault("createdAt", now_iso)
            if display_name and not player.get("displayName"):
                updated["displayName"] = display_name
            txn.set(PLAYERS, uid, updated)
            return CompletionResult(
                already_completed=False,
                points_awarded=int(points),
                completed_at=now_iso,
                total_points=total,
                streak_days=streak,
                longest_streak=longest,
            )

        result = self.store.transaction(_apply)
        if result.already_completed:
            logger.info("[quiz] %s already completed %s (%s pts)", uid, date_key, result.points_awarded)
        else:
            logger.info("[quiz] %s completed %s: +%s pts, streak %s", uid, date_key,
                        result.points_awarded, result.streak_days)
        return result
