# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Misremembered tool call id recovery.

Models occasionally repeat a tool call id with a character or two wrong.
Stored ids are ranked by edit distance to the requested one; a single
close candidate is used silently, otherwise the closest ids are offered as
suggestions.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

MAX_SUGGESTIONS = 3


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance between two strings (insert, delete, substitute).

    Args:
        a (str): First string.
        b (str): Second string.

    Returns:
        int: Minimum number of single-character edits.
    """
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(
                min(
                    previous[j] + 1,
                    current[j - 1] + 1,
                    previous[j - 1] + (ca != cb),
                )
            )
        previous = current
    return previous[-1]


def rank_candidates(target: str, candidates: Iterable[str]) -> List[Tuple[str, int]]:
    """Candidates ordered by distance to ``target``, then by id.

    Args:
        target (str): Requested id.
        candidates (Iterable[str]): Stored ids.

    Returns:
        List[Tuple[str, int]]: ``(id, distance)`` pairs, closest first.
    """
    scored = [(candidate, levenshtein_distance(target, candidate)) for candidate in candidates]
    return sorted(scored, key=lambda pair: (pair[1], pair[0]))


def resolve_id(
    target: str,
    candidates: Iterable[str],
    max_distance: int,
) -> Tuple[Optional[str], List[str]]:
    """Pick the stored id meant by ``target``.

    Args:
        target (str): Requested id.
        candidates (Iterable[str]): Stored ids.
        max_distance (int): Largest distance accepted for auto-correction.

    Returns:
        Tuple[Optional[str], List[str]]: The match when exactly one
            candidate lies within ``max_distance`` (else ``None``), and up
            to three closest ids as suggestions.
    """
    ranked = rank_candidates(target, candidates)
    close = [candidate for candidate, distance in ranked if distance <= max_distance]
    match = close[0] if len(close) == 1 else None
    suggestions = [candidate for candidate, _ in ranked[:MAX_SUGGESTIONS]]
    return match, suggestions
