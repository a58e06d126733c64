"""
Schema definition for the athlete index.

Defines field types and the field layout, inspired by Whoosh's schema module:
- TextField: analyzed, positional fields (name, location)
- KeywordField: single-term fields (ids, codes, normalized whole values)
- NumericField: integer fields for range queries (age)
- StoredField: fields stored for display but not indexed
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from athlete_search.search.analyzers import Analyzer, get_analyzer


class FieldType(str, Enum):
    """Types of fields supported in the schema."""

    TEXT = "text"
    KEYWORD = "keyword"
    NUMERIC = "numeric"
    STORED = "stored"


@dataclass(frozen=True)
class SchemaField(ABC):
    """Base class for all schema fields."""

    name: str
    stored: bool = True
    indexed: bool = True

    @property
    @abstractmethod
    def field_type(self) -> FieldType:
        """Return the field type."""

    def analyzer(self) -> Analyzer | None:
        return None


@dataclass(frozen=True)
class TextField(SchemaField):
    """
    Analyzed text field with term positions, usable by phrase, prefix, fuzzy
    and wildcard queries.

    Args:
        name: Field name (e.g., "name", "location")
        analyzer_name: Name of analyzer to use (default: None = standard)
    """

    analyzer_name: str | None = None

    @property
    def field_type(self) -> FieldType:
        return FieldType.TEXT

    def analyzer(self) -> Analyzer:
        return get_analyzer(self.analyzer_name)


@dataclass(frozen=True)
class KeywordField(SchemaField):
    """
    Single-term field. The whole value becomes one term after the optional
    analyzer runs ("keyword" keeps it verbatim, "exact" case-folds it).
    """

    analyzer_name: str = "keyword"

    @property
    def field_type(self) -> FieldType:
        return FieldType.KEYWORD

    def analyzer(self) -> Analyzer:
        return get_analyzer(self.analyzer_name)


@dataclass(frozen=True)
class NumericField(SchemaField):
    """Integer field used for range queries."""

    @property
    def field_type(self) -> FieldType:
        return FieldType.NUMERIC


@dataclass(frozen=True)
class StoredField(SchemaField):
    """Stored-only field (not indexed)."""

    stored: bool = field(default=True, init=False)
    indexed: bool = field(default=False, init=False)

    @property
    def field_type(self) -> FieldType:
        return FieldType.STORED


@dataclass
class Schema:
    """Field layout of an index plus the unique key field.

    ``sources`` maps an indexed field to the document attribute it is built
    from, so ``name_exact`` can reuse ``name`` without a second stored copy.
    """

    fields: list[SchemaField]
    unique_field: str = "id"
    name: str = "default"
    sources: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self._field_map: dict[str, SchemaField] = {f.name: f for f in self.fields}
        if self.unique_field not in self._field_map:
            msg = f"Unique field '{self.unique_field}' not found in schema"
            raise ValueError(msg)
        self._analyzers: dict[str, Analyzer] = {}
        for schema_field in self.fields:
            analyzer = schema_field.analyzer()
            if analyzer is not None:
                self._analyzers[schema_field.name] = analyzer

    def __getitem__(self, name: str) -> SchemaField:
        return self._field_map[name]

    def __contains__(self, name: str) -> bool:
        return name in self._field_map

    def __iter__(self):
        return iter(self.fields)

    @property
    def term_fields(self) -> list[SchemaField]:
        """Fields that produce postings (text and keyword)."""
        return [f for f in self.fields if isinstance(f, (TextField, KeywordField)) and f.indexed]

    def analyzer_for(self, field_name: str) -> Analyzer:
        try:
            return self._analyzers[field_name]
        except KeyError:
            raise KeyError(f"Field '{field_name}' has no analyzer") from None

    def source_of(self, field_name: str) -> str:
        return self.sources.get(field_name, field_name)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "unique_field": self.unique_field,
            "fields": [{"name": f.name, "type": f.field_type.value} for f in self.fields],
        }


NAME = "name"
NAME_EXACT = "name_exact"
LOCATION = "location"
LOCATION_EXACT = "location_exact"
WEIGHT_CODE = "weight_code"
AGE_VALUE = "age_value"


def create_athlete_schema() -> Schema:
    """
    Create the schema for athlete search.

    Fields:
    - id: unique key (keyword)
    - name / location: analyzed text with positions
    - name_exact / location_exact: whole value, case- and accent-folded
    - weight_code: verbatim class code such as "-81" or "+100"
    - age_value: numeric age for range queries
    - age_text, image, location_icon, photos: stored only
    """
    return Schema(
        name="athletes",
        unique_field="id",
        fields=[
            KeywordField("id"),
            TextField(NAME),
            KeywordField(NAME_EXACT, stored=False, analyzer_name="exact"),
            TextField(LOCATION),
            KeywordField(LOCATION_EXACT, stored=False, analyzer_name="exact"),
            KeywordField(WEIGHT_CODE),
            NumericField(AGE_VALUE),
            StoredField("age_text"),
            StoredField("image"),
            StoredField("location_icon"),
            StoredField("photos"),
        ],
        sources={NAME_EXACT: NAME, LOCATION_EXACT: LOCATION},
    )
