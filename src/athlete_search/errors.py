"""Error taxonomy shared by the search core and its adapters."""

from __future__ import annotations

from pathlib import Path


class AthleteSearchError(Exception):
    """Base class for every error raised by athlete_search."""


class ValidationError(AthleteSearchError):
    """Caller supplied invalid criteria, enum values or paging arguments.

    Raised before the index is touched and never retried.
    """

    def __init__(self, issues: list[str] | str) -> None:
        self.issues = [issues] if isinstance(issues, str) else list(issues)
        super().__init__("; ".join(self.issues))


class ResultWindowError(ValidationError):
    """Requested window exceeds the configured result ceiling."""

    def __init__(self, requested: int, ceiling: int) -> None:
        self.requested = requested
        self.ceiling = ceiling
        super().__init__(f"result window {requested} exceeds max_result_window={ceiling}")


class IndexUnavailableError(AthleteSearchError):
    """Storage failed to open, is closed, or a read/write against it failed."""


class MalformedQueryError(AthleteSearchError):
    """Free-text input could not be parsed into a query.

    Search paths recover from this locally by matching nothing.
    """

    def __init__(self, message: str, *, text: str | None = None, position: int | None = None) -> None:
        self.text = text
        self.position = position
        super().__init__(message)


class RebuildError(AthleteSearchError):
    """A single source record failed to load during a rebuild."""

    def __init__(self, path: Path | str, reason: str) -> None:
        self.path = str(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "reason": self.reason}
