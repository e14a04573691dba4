# services/quiz_service/scoring.py
"""
Daily quiz point formula.

    attempt multiplier   1 -> 1.00, 2 -> 0.60, 3 -> 0.40, 4+ -> 0.25
    first-try bonus      50% of base, attempt 1 only
    speed bonus          attempt 1 only; 25% of base at 0 ms decaying
                         linearly to 0 at 60 s (elapsed clamped to 0..300 s)

All parts are floored integers. Example: base 100, attempt 1, 0 ms -> 100 + 50 + 25 = 175
"""

from __future__ import annotations
import math
from dataclasses import dataclass
from typing import Dict

ATTEMPT_MULTIPLIERS = (1.0, 0.6, 0.4, 0.25)
FIRST_TRY_BONUS_RATE = 0.5
SPEED_BONUS_RATE = 0.25
SPEED_WINDOW_MS = 60_000
MAX_ELAPSED_MS = 300_000


@dataclass(frozen=True)
class PointsBreakdown:
    attempt_multiplier: float
    base_after_multiplier: int
    first_try_bonus: int
    speed_bonus: int

    @property
    def total(self) -> int:
        return self.base_after_multiplier + self.first_try_bonus + self.speed_bonus

    def to_dict(self) -> Dict[str, float]:
        return {
            "attemptMultiplier": self.attempt_multiplier,
            "baseAfterMultiplier": self.base_after_multiplier,
            "firstTryBonus": self.first_try_bonus,
            "speedBonus": self.speed_bonus,
            "total": self.total,
        }


def attempt_multiplier(attempt_number: int) -> float:
    if attempt_number < 1:
        return 0.0
    return ATTEMPT_MULTIPLIERS[min(attempt_number, len(ATTEMPT_MULTIPLIERS)) - 1]


def clamp_elapsed(elapsed_ms) -> float:
    if isinstance(elapsed_ms, bool) or not isinstance(elapsed_ms, (int, float)) \
            or not math.isfinite(elapsed_ms):
        return MAX_ELAPSED_MS
    return min(max(elapsed_ms, 0), MAX_ELAPSED_MS)


def calculate_points(base_points, attempt_number: int, elapsed_ms) -> PointsBreakdown:
    multiplier = attempt_multiplier(attempt_number)
    base_after = math.floor(base_points * multiplier)

    first_try = 0
    speed = 0
    if attempt_number == 1:
        first_try = math.floor(base_points * FIRST_TRY_BONUS_RATE)
        elapsed = clamp_elapsed(elapsed_ms)
        if elapsed < SPEED_WINDOW_MS:
            speed = math.floor(base_points * SPEED_BONUS_RATE * (1 - elapsed / SPEED_WINDOW_MS))

    return PointsBreakdown(
        attempt_multiplier=multiplier,
        base_after_multiplier=base_after,
        first_try_bonus=first_try,
        speed_bonus=speed,
    )
