"""Load crawler-produced athlete records from a directory tree of JSON files."""

from __future__ import annotations

from collections.abc import Iterator
import logging
from pathlib import Path
from typing import Any

import orjson

from athlete_search.domain.models import AthleteDocument
from athlete_search.errors import RebuildError


logger = logging.getLogger(__name__)

RECORD_ENVELOPE = "BLOG_INFO"

# Source key -> AthleteDocument field
_FIELD_MAP = {
    "name": "name",
    "age": "age_text",
    "image": "image",
    "location": "location",
    "locationIcon": "location_icon",
    "kg": "weight_code",
    "photos": "photos",
}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _photos(value: Any) -> list[Any]:
    if value is None or value == "":
        return []
    if isinstance(value, list):
        return value
    return [value]


def record_to_document(payload: dict[str, Any]) -> AthleteDocument:
    """Map one raw record (enveloped under ``BLOG_INFO`` or flat) to a document.

    Raises ``ValueError`` when the record has no usable ``id`` or ``name``.
    """
    record = payload.get(RECORD_ENVELOPE, payload)
    if not isinstance(record, dict):
        raise ValueError(f"{RECORD_ENVELOPE} is not an object")

    doc_id = _text(record.get("id"))
    if doc_id is None:
        raise ValueError("record has no id")
    fields: dict[str, Any] = {}
    for source_key, field_name in _FIELD_MAP.items():
        raw = record.get(source_key)
        fields[field_name] = _photos(raw) if field_name == "photos" else _text(raw)
    if fields["name"] is None:
        raise ValueError(f"record '{doc_id}' has no name")
    return AthleteDocument.from_fields(doc_id, fields)


class JsonRecordSource:
    """Iterate ``AthleteDocument`` values from every ``*.json`` under ``base_path``.

    Files are visited in sorted path order. A file that cannot be read or
    mapped is recorded in ``errors`` and skipped; iteration never raises for a
    bad record.
    """

    def __init__(self, base_path: Path | str) -> None:
        self.base_path = Path(base_path)
        self.errors: list[RebuildError] = []
        self.processed = 0

    @property
    def failed(self) -> int:
        return len(self.errors)

    @property
    def indexed(self) -> int:
        return self.processed - self.failed

    def discover(self) -> list[Path]:
        if not self.base_path.is_dir():
            logger.warning("Record directory missing: %s", self.base_path)
            return []
        return sorted(path for path in self.base_path.rglob("*.json") if path.is_file())

    def __iter__(self) -> Iterator[AthleteDocument]:
        self.errors = []
        self.processed = 0
        for path in self.discover():
            self.processed += 1
            try:
                document = self._load(path)
            except RebuildError as exc:
                self.errors.append(exc)
                logger.warning("Skipping record %s: %s", exc.path, exc.reason)
                continue
            if self.processed % 1000 == 0:
                logger.info("Loaded %d records from %s", self.processed, self.base_path)
            yield document

    def _load(self, path: Path) -> AthleteDocument:
        try:
            payload = orjson.loads(path.read_bytes())
        except OSError as exc:
            raise RebuildError(path, f"unreadable: {exc}") from exc
        except orjson.JSONDecodeError as exc:
            raise RebuildError(path, f"invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise RebuildError(path, f"expected a JSON object, got {type(payload).__name__}")
        try:
            return record_to_document(payload)
        except ValueError as exc:
            raise RebuildError(path, str(exc)) from exc
