"""Difficulty-weighted split of a question target into easy/medium/hard counts."""

from __future__ import annotations

import math
from dataclasses import dataclass

MIN_COUNT = 1
MAX_COUNT = 200
BASE_EASY = 0.35
BASE_HARD = 0.30


@dataclass(frozen=True)
class DifficultyCounts:
    easy: int
    medium: int
    hard: int
    section_difficulty: int

    @property
    def total(self) -> int:
        return self.easy + self.medium + self.hard


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def compute_difficulty_counts(count: int, section_difficulty: int | float | None = 3) -> DifficultyCounts:
    """Allocate `count` questions across difficulty buckets.

    Harder sections shift weight from easy to hard. Easy and hard are rounded
    half-up; medium takes the remainder so the three always sum to the
    clamped count.
    """
    try:
        safe_count = int(count)
    except (TypeError, ValueError):
        safe_count = MIN_COUNT
    safe_count = int(_clamp(safe_count, MIN_COUNT, MAX_COUNT))
    try:
        difficulty = int(round(float(section_difficulty if section_difficulty is not None else 3)))
    except (TypeError, ValueError):
        difficulty = 3
    difficulty = int(_clamp(difficulty, 1, 5))

    bias = (difficulty - 3) / 2
    easy_ratio = _clamp(BASE_EASY - 0.15 * bias, 0.15, 0.5)
    hard_ratio = _clamp(BASE_HARD + 0.2 * bias, 0.2, 0.6)
    medium_ratio = _clamp(1 - easy_ratio - hard_ratio, 0.1, 0.7)
    total_ratio = easy_ratio + medium_ratio + hard_ratio

    easy = _round_half_up(safe_count * easy_ratio / total_ratio)
    hard = _round_half_up(safe_count * hard_ratio / total_ratio)
    medium = safe_count - easy - hard
    while medium < 0:
        if hard >= easy and hard > 0:
            hard -= 1
        else:
            easy -= 1
        medium += 1
    return DifficultyCounts(easy=easy, medium=medium, hard=hard, section_difficulty=difficulty)
