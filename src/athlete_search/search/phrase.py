"""Positional phrase matching."""

from __future__ import annotations

from collections.abc import Sequence


def phrase_frequency(position_lists: Sequence[Sequence[int]]) -> int:
    """Count how often the terms occur at consecutive positions, in order.

    ``position_lists[i]`` holds the positions of the i-th phrase term within
    one document field. Returns 0 when the phrase does not occur.

    Examples:
        >>> phrase_frequency([[0, 4], [1, 7]])
        1
        >>> phrase_frequency([[1], [0]])
        0
    """
    if not position_lists or any(not positions for positions in position_lists):
        return 0
    later = [set(positions) for positions in position_lists[1:]]
    count = 0
    for start in position_lists[0]:
        if all(start + offset in positions for offset, positions in enumerate(later, start=1)):
            count += 1
    return count
