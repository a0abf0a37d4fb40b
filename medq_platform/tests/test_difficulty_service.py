"""Tests for the difficulty-weighted question split."""

from __future__ import annotations

import pytest

from medq_app.services.difficulty_service import compute_difficulty_counts


def test_default_split_for_eight_questions():
    counts = compute_difficulty_counts(8, 3)
    assert (counts.easy, counts.medium, counts.hard) == (3, 3, 2)
    assert counts.section_difficulty == 3


def test_harder_sections_shift_weight_to_hard():
    easy_section = compute_difficulty_counts(10, 1)
    hard_section = compute_difficulty_counts(10, 5)
    assert hard_section.hard > easy_section.hard
    assert hard_section.easy < easy_section.easy


@pytest.mark.parametrize("count", [1, 2, 3, 7, 8, 13, 50, 200])
@pytest.mark.parametrize("difficulty", [1, 2, 3, 4, 5])
def test_counts_always_sum_to_target(count, difficulty):
    counts = compute_difficulty_counts(count, difficulty)
    assert counts.total == count
    assert min(counts.easy, counts.medium, counts.hard) >= 0


def test_inputs_are_clamped():
    assert compute_difficulty_counts(0, 3).total == 1
    assert compute_difficulty_counts(1000, 3).total == 200
    assert compute_difficulty_counts(8, 42).section_difficulty == 5
    assert compute_difficulty_counts(8, None).section_difficulty == 3
