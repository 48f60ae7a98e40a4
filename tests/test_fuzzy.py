"""Fuzzy scorer tests."""

from __future__ import annotations

from aniki.fuzzy import (
    BONUS_CONSECUTIVE,
    SCORE_GAP_EXTENSION,
    SCORE_GAP_START,
    fuzzy_score,
)


def test_empty_pattern_scores_zero() -> None:
    assert fuzzy_score("", "anything") == 0


def test_non_subsequence_has_no_score() -> None:
    assert fuzzy_score("abc", "xyz") is None
    assert fuzzy_score("abcd", "abc") is None
    assert fuzzy_score("cba", "abc") is None


def test_matching_ignores_case_with_a_penalty() -> None:
    exact = fuzzy_score("abc", "abc")
    shouted = fuzzy_score("abc", "ABC")

    assert exact is not None and shouted is not None
    assert exact > shouted


def test_contiguous_matches_beat_scattered_ones() -> None:
    contiguous = fuzzy_score("bebop", "Cowboy Bebop")
    scattered = fuzzy_score("bebop", "Bxexbxoxp")

    assert contiguous is not None and scattered is not None
    assert contiguous > scattered


def test_word_start_beats_mid_word() -> None:
    assert fuzzy_score("k", "Kyojin") > fuzzy_score("k", "Shingeki")


def test_camel_case_transition_earns_a_bonus() -> None:
    assert fuzzy_score("gc", "getCount") > fuzzy_score("gc", "getcount")


def test_gap_costs_an_opening_then_an_extension_per_character() -> None:
    adjacent = fuzzy_score("ab", "ab")
    one_gap = fuzzy_score("ab", "axb")
    two_gap = fuzzy_score("ab", "axxb")

    assert adjacent - one_gap == BONUS_CONSECUTIVE - SCORE_GAP_START
    assert one_gap - two_gap == -SCORE_GAP_EXTENSION


def test_one_long_gap_beats_two_short_ones() -> None:
    assert fuzzy_score("abc", "abxxxxc") > fuzzy_score("abc", "axxbxxc")
