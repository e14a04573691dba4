# services/quiz_service/leaderboard.py
"""
Leaderboard computed on read from Player aggregates.

Order: longestStreak desc, totalPoints desc, name asc.
Ties on (longestStreak, totalPoints) share a rank; the next group is ranked by
its 1-based position, so (10,500), (10,500), (8,900) -> 1, 1, 3.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .progress import PlayerProgressStore
from .utils import previous_date_key

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


@dataclass(frozen=True)
class LeaderboardRow:
    username: str
    longest_streak: int
    current_streak: int
    total_points: int


def parse_limit(raw: Any, default: int = DEFAULT_LIMIT, ceiling: int = MAX_LIMIT) -> int:
    """Query-string limit: missing/garbage/non-positive -> default, capped at ceiling."""
    if isinstance(raw, bool):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return min(value, ceiling)


def rank_entries(rows: Iterable[LeaderboardRow], limit: int = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
    ordered = sorted(rows, key=lambda r: (-r.longest_streak, -r.total_points, r.username))
    out = []
    rank = 0
    prev: Optional[Tuple[int, int]] = None
    for i, row in enumerate(ordered):
        pair = (row.longest_streak, row.total_points)
        if pair != prev:
            rank = i + 1
            prev = pair
        if len(out) >= limit:
            break
        out.append({
            "rank": rank,
            "username": row.username,
            "longestStreak": row.longest_streak,
            "currentStreak": row.current_streak,
            "totalPoints": row.total_points,
        })
    return out


def _int(value) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def row_from_player(uid: str, data: Dict[str, Any], today: str) -> LeaderboardRow:
    streak = _int(data.get("streakDays"))
    last = data.get("lastCompletedDateKey")
    # a streak only counts while the last completion is today or yesterday
    if last not in (today, previous_date_key(today)):
        streak = 0
    name = data.get("displayName")
    if not isinstance(name, str) or not name.strip():
        name = uid
    return LeaderboardRow(
        username=name.strip(),
        longest_streak=max(_int(data.get("longestStreak")), _int(data.get("streakDays"))),
        current_streak=streak,
        total_points=_int(data.get("totalPoints")),
    )


def build_leaderboard(progress: PlayerProgressStore, today: str, limit: int = DEFAULT_LIMIT) -> Dict[str, Any]:
    rows = [
        row_from_player(uid, data, today)
        for uid, data in progress.list_players()
        if data.get("isAdmin") is not True
    ]
    return {"entries": rank_entries(rows, limit)}
