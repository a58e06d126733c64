"""Windowing of a ranked hit list into 1-based pages."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar


T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


@dataclass(frozen=True)
class PageRequest:
    """A clamped page request: ``page_no >= 1`` and ``1 <= page_size <= max_page_size``."""

    page_no: int = 1
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def clamped(
        cls,
        page_no: int | None,
        page_size: int | None,
        *,
        default_page_size: int = DEFAULT_PAGE_SIZE,
        max_page_size: int = MAX_PAGE_SIZE,
    ) -> PageRequest:
        page_no = 1 if page_no is None or page_no < 1 else page_no
        if page_size is None:
            page_size = default_page_size
        page_size = min(max(page_size, 1), max_page_size)
        return cls(page_no=page_no, page_size=page_size)

    @property
    def start(self) -> int:
        return (self.page_no - 1) * self.page_size

    @property
    def end(self) -> int:
        """Number of ranked hits the executor must retrieve to fill this page."""
        return self.start + self.page_size


def paginate(
    ranked_hits: Sequence[T],
    total_hits: int,
    page_no: int | None,
    page_size: int | None,
    *,
    max_page_size: int = MAX_PAGE_SIZE,
) -> tuple[list[T], int]:
    """Return the requested page of ``ranked_hits`` and the unchanged total.

    A page that starts at or past ``total_hits`` is empty.
    """
    request = PageRequest.clamped(page_no, page_size, max_page_size=max_page_size)
    if request.start >= total_hits:
        return [], total_hits
    return list(ranked_hits[request.start : min(request.end, len(ranked_hits))]), total_hits
