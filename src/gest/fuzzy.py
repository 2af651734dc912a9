#
# src/gest/fuzzy.py
#
"""
Subsequence fuzzy scoring for the interactive test picker.

Every query character must appear in the haystack in order (case-insensitive).
The score rewards matches on word boundaries, camelCase humps and runs of
consecutive characters, and penalizes gaps, so `Tal` ranks `TestAlpha` above
`TestTotal`.
"""

SCORE_MATCH = 16
SCORE_EXACT_CASE = 1
GAP_START = -3
GAP_EXTENSION = -1
BONUS_BOUNDARY = 8
BONUS_CAMEL = 7
BONUS_CONSECUTIVE = 4
FIRST_CHAR_MULTIPLIER = 2

SEPARATORS = frozenset(" /_-.:\t")


def _position_bonus(haystack: str, idx: int) -> int:
    if idx == 0:
        return BONUS_BOUNDARY
    prev, ch = haystack[idx - 1], haystack[idx]
    if prev in SEPARATORS:
        return BONUS_BOUNDARY
    if prev.islower() and ch.isupper():
        return BONUS_CAMEL
    if ch.isdigit() and not prev.isdigit():
        return BONUS_CAMEL
    return 0


def _match_window(haystack: str, query: str) -> tuple[int, int] | None:
    """Shortest-ending window: forward scan for the end, backward scan for the start."""
    qi = 0
    end = -1
    for idx, ch in enumerate(haystack):
        if ch == query[qi]:
            qi += 1
            if qi == len(query):
                end = idx
                break
    if end < 0:
        return None

    qi = len(query) - 1
    for idx in range(end, -1, -1):
        if haystack[idx] == query[qi]:
            qi -= 1
            if qi < 0:
                return idx, end
    return None  # unreachable: the forward scan proved a match exists


def fuzzy_match(haystack: str, query: str) -> int | None:
    """
    Scores `query` against `haystack`.

    Returns:
        None when `query` is not a subsequence of `haystack`, otherwise a
        score where higher is better. An empty query matches with score 0.
    """
    if not query:
        return 0

    hay_folded = haystack.lower()
    query_folded = query.lower()
    window = _match_window(hay_folded, query_folded)
    if window is None:
        return None
    start, end = window

    score = 0
    qi = 0
    prev_match: int | None = None
    in_gap = False
    for idx in range(start, end + 1):
        if qi < len(query_folded) and hay_folded[idx] == query_folded[qi]:
            bonus = _position_bonus(haystack, idx)
            if prev_match == idx - 1:
                bonus = max(bonus, BONUS_CONSECUTIVE)
            if qi == 0:
                bonus *= FIRST_CHAR_MULTIPLIER
            score += SCORE_MATCH + bonus
            if haystack[idx] == query[qi]:
                score += SCORE_EXACT_CASE
            prev_match = idx
            qi += 1
            in_gap = False
        else:
            score += GAP_EXTENSION if in_gap else GAP_START
            in_gap = True
    return score

# 🔼⚙️
