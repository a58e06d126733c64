"""Edit-distance matching for typo-tolerant queries.

Fuzzy queries expand a term into the vocabulary terms within a fixed edit
distance. The distance is capped at 2; similarity settings change how much a
fuzzy match weighs, never how far it reaches.
"""

from __future__ import annotations

from collections.abc import Iterable


MAX_EDIT_DISTANCE = 2


def levenshtein_distance(s1: str, s2: str, max_distance: int | None = None) -> int:
    """Calculate the Levenshtein (edit) distance between two strings.

    Uses dynamic programming over two rows, with early termination when
    the distance is guaranteed to exceed ``max_distance``.

    Returns:
        The minimum number of single-character insertions, deletions and
        substitutions needed to change s1 into s2. If max_distance is set and
        exceeded, returns max_distance+1.

    Examples:
        >>> levenshtein_distance("kitten", "sitting")
        3
        >>> levenshtein_distance("smith", "smyth")
        1
    """
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    if len(s1) > len(s2):
        s1, s2 = s2, s1

    m, n = len(s1), len(s2)
    if max_distance is not None and n - m > max_distance:
        return max_distance + 1

    prev_row = list(range(m + 1))
    curr_row = [0] * (m + 1)

    for j in range(1, n + 1):
        curr_row[0] = j
        row_min = j
        for i in range(1, m + 1):
            cost = 0 if s1[i - 1] == s2[j - 1] else 1
            curr_row[i] = min(
                prev_row[i] + 1,  # deletion
                curr_row[i - 1] + 1,  # insertion
                prev_row[i - 1] + cost,  # substitution
            )
            row_min = min(row_min, curr_row[i])

        if max_distance is not None and row_min > max_distance:
            return max_distance + 1

        prev_row, curr_row = curr_row, prev_row

    return prev_row[m]


def similarity(term: str, candidate: str, distance: int) -> float:
    """Lucene-style fuzzy similarity: ``1 - distance / min(len)``, floored at 0."""
    shortest = min(len(term), len(candidate)) or 1
    return max(0.0, 1.0 - distance / shortest)


def find_fuzzy_matches(
    query_term: str,
    vocabulary: Iterable[str],
    max_distance: int = MAX_EDIT_DISTANCE,
    *,
    max_expansions: int | None = None,
) -> list[tuple[str, int]]:
    """Find vocabulary terms within ``max_distance`` edits of ``query_term``.

    Returns:
        ``(term, distance)`` pairs sorted by distance then term, truncated to
        ``max_expansions`` when given. Exact matches have distance 0.
    """
    if not query_term:
        return []
    max_distance = max(0, min(max_distance, MAX_EDIT_DISTANCE))
    query_lower = query_term.lower()

    matches: list[tuple[str, int]] = []
    for term in vocabulary:
        if abs(len(query_lower) - len(term)) > max_distance:
            continue
        distance = levenshtein_distance(query_lower, term, max_distance)
        if distance <= max_distance:
            matches.append((term, distance))

    matches.sort(key=lambda item: (item[1], item[0]))
    if max_expansions is not None:
        matches = matches[:max_expansions]
    return matches
