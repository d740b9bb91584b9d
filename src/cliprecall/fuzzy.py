"""Ordered-subsequence fuzzy matching for clipboard history search."""

from collections.abc import Sequence
from typing import TypeVar

from cliprecall.models import ClipboardEntry

T = TypeVar("T", ClipboardEntry, str)

BASE_SCORE = 1.0
CONSECUTIVE_STEP = 2.0
GAP_PENALTY = 0.05
BOUNDARY_BONUS = 1.5
BOUNDARY_CHARS = (" ", "\n")


def fuzzy_score(query: str, text: str) -> float | None:
    """Score how well ``query`` matches ``text`` as an ordered subsequence.

    Every query character must appear in the text, in order, comparing
    lower-cased forms. Consecutive matches earn a growing bonus, gaps cost
    ``0.05`` per skipped position and a match at the start of the text or
    right after a space or newline earns a flat bonus.

    Returns:
        The total score (higher is better), or None if the text does not match.
    """
    pattern = query.lower()
    chars = text.lower()
    if not pattern or len(pattern) > len(chars):
        return None

    pi = 0
    last_match = -1
    consecutive_bonus = 0.0
    total = 0.0
    for i, c in enumerate(chars):
        if pi >= len(pattern):
            break
        if c != pattern[pi]:
            continue
        distance = i - last_match if last_match >= 0 else 0
        score = BASE_SCORE
        if distance == 1:
            consecutive_bonus += CONSECUTIVE_STEP
            score += consecutive_bonus
        else:
            consecutive_bonus = 0.0
            if distance > 0:
                score -= distance * GAP_PENALTY
        if i == 0 or chars[i - 1] in BOUNDARY_CHARS:
            score += BOUNDARY_BONUS
        total += score
        last_match = i
        pi += 1

    if pi != len(pattern):
        return None
    return total


def _candidate_text(candidate: ClipboardEntry | str) -> str:
    if isinstance(candidate, str):
        return candidate
    return candidate.preview


def rank_by_fuzzy_query(entries: Sequence[T], query: str) -> list[T]:
    """Return the entries matching ``query``, best match first.

    Entries are scored against their preview text. A blank query returns the
    entries unchanged; equal scores keep their input order.
    """
    q = query.strip() if query else ""
    if not q:
        return list(entries)

    scored = []
    for entry in entries:
        score = fuzzy_score(q, _candidate_text(entry))
        if score is not None:
            scored.append((entry, score))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return [entry for entry, _ in scored]
