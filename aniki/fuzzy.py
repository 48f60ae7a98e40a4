"""Subsequence fuzzy scoring for ranking metadata candidates."""

from __future__ import annotations

SCORE_MATCH = 16
SCORE_GAP_START = -3
SCORE_GAP_EXTENSION = -1
BONUS_BOUNDARY = SCORE_MATCH // 2
BONUS_NON_WORD = SCORE_MATCH // 2
BONUS_CAMEL = BONUS_BOUNDARY + SCORE_GAP_EXTENSION
BONUS_CONSECUTIVE = -(SCORE_GAP_START + SCORE_GAP_EXTENSION)
BONUS_FIRST_CHAR_MULTIPLIER = 2
PENALTY_CASE_MISMATCH = 2

_NON_WORD, _LOWER, _UPPER, _DIGIT = range(4)
_UNREACHABLE = -(10**9)


def _char_class(char: str) -> int:
    if char.isdigit():
        return _DIGIT
    if char.isupper():
        return _UPPER
    if char.isalpha():
        return _LOWER
    return _NON_WORD


def _position_bonus(previous: int, current: int) -> int:
    if previous == _NON_WORD and current != _NON_WORD:
        return BONUS_BOUNDARY
    if (previous == _LOWER and current == _UPPER) or (
        previous != _DIGIT and current == _DIGIT
    ):
        return BONUS_CAMEL
    if current == _NON_WORD:
        return BONUS_NON_WORD
    return 0


def _is_subsequence(pattern: list[str], text: list[str]) -> bool:
    remaining = iter(text)
    return all(char in remaining for char in pattern)


def fuzzy_score(pattern: str, text: str) -> int | None:
    """Score how well ``pattern`` matches ``text`` as a subsequence.

    Matching ignores case but pays a small penalty for each mismatched case.
    Matches at word starts and camel-case or digit transitions earn bonuses,
    consecutive runs earn a further bonus, and gaps between matched
    characters are penalised with an opening and an extension cost.
    Returns ``None`` when ``pattern`` is not a subsequence of ``text``.
    """

    if not pattern:
        return 0
    pattern_folded = [char.lower() for char in pattern]
    text_folded = [char.lower() for char in text]
    if len(pattern_folded) > len(text_folded):
        return None
    if not _is_subsequence(pattern_folded, text_folded):
        return None

    bonuses: list[int] = []
    previous = _NON_WORD
    for char in text:
        current = _char_class(char)
        bonuses.append(_position_bonus(previous, current))
        previous = current

    width = len(text)
    previous_row = [_UNREACHABLE] * width
    for i, pattern_char in enumerate(pattern_folded):
        row = [_UNREACHABLE] * width
        gap_best = _UNREACHABLE
        for j in range(width):
            if i > 0 and j >= 2:
                gap_best = max(
                    gap_best + SCORE_GAP_EXTENSION,
                    previous_row[j - 2] + SCORE_GAP_START,
                )
            if text_folded[j] != pattern_char:
                continue

            bonus = bonuses[j]
            case_penalty = PENALTY_CASE_MISMATCH if pattern[i] != text[j] else 0
            if i == 0:
                row[j] = SCORE_MATCH + bonus * BONUS_FIRST_CHAR_MULTIPLIER - case_penalty
                continue

            best = _UNREACHABLE
            if j >= 1 and previous_row[j - 1] > _UNREACHABLE:
                best = previous_row[j - 1] + SCORE_MATCH + max(bonus, BONUS_CONSECUTIVE)
            if gap_best > _UNREACHABLE // 2:
                best = max(best, gap_best + SCORE_MATCH + bonus)
            if best > _UNREACHABLE:
                row[j] = best - case_penalty
        previous_row = row

    result = max(previous_row)
    if result <= _UNREACHABLE // 2:
        return None
    return result
