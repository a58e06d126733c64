"""Domain models for indexed athletes, result pages and rebuild reports."""

from __future__ import annotations

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


_FIRST_INT = re.compile(r"\d+")


def parse_age_value(age_text: str | None) -> int | None:
    """Return the first integer in a display age such as ``"16 years"``."""
    if not age_text:
        return None
    match = _FIRST_INT.search(str(age_text))
    return int(match.group(0)) if match else None


class AthleteDocument(BaseModel):
    """One indexed athlete record.

    ``image``, ``location_icon`` and ``photos`` are carried for display and never searched.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    age_text: str | None = None
    age_value: int | None = None
    weight_code: str | None = None
    location: str | None = None
    image: str | None = None
    location_icon: str | None = None
    photos: list[Any] = Field(default_factory=list)

    @field_validator("id", "name")
    @classmethod
    def _strip_required(cls, value: str) -> str:
        return value.strip()

    @classmethod
    def from_fields(cls, doc_id: str, fields: dict[str, Any]) -> AthleteDocument:
        """Build a document from loose field values; ``age_value`` is derived when absent."""
        age_text = fields.get("age_text")
        age_value = fields.get("age_value")
        if age_value is None:
            age_value = parse_age_value(age_text)
        return cls(
            id=doc_id,
            name=fields.get("name") or "",
            age_text=None if age_text is None else str(age_text),
            age_value=age_value,
            weight_code=fields.get("weight_code"),
            location=fields.get("location"),
            image=fields.get("image"),
            location_icon=fields.get("location_icon"),
            photos=list(fields.get("photos") or []),
        )


class SearchHit(BaseModel):
    model_config = ConfigDict(frozen=True)

    doc_id: str
    score: float


class SearchPage(BaseModel):
    """One page of ranked results plus the exact total match count."""

    model_config = ConfigDict(frozen=True)

    items: list[AthleteDocument] = Field(default_factory=list)
    total: int = 0
    page_no: int = 1
    page_size: int = 10

    @property
    def total_pages(self) -> int:
        if self.total <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.model_dump() for item in self.items],
            "total": self.total,
            "page_no": self.page_no,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
        }


class RebuildReport(BaseModel):
    """Outcome of a full rebuild from source records."""

    model_config = ConfigDict(frozen=True)

    processed: int = 0
    indexed: int = 0
    failed: int = 0
    errors: list[dict[str, str]] = Field(default_factory=list)
    generation: int | None = None
