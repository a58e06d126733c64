"""Immutable search criteria and the validating builder that produces them.

Following the domain-model conventions of the package:
- Value objects are immutable (frozen=True)
- Validation happens once, at construction
- No infrastructure dependencies
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from athlete_search.domain.vocabulary import AgeGroup, Continent, WeightClass
from athlete_search.errors import ValidationError


MIN_AGE = 0
MAX_AGE = 150
MIN_WEIGHT = 0
MAX_WEIGHT = 500


class SearchCriteria(BaseModel):
    """Sparse, optional constraints for one combined search.

    Every field is optional but at least one must be set. Age and weight may be
    given as a named bucket, an explicit range, or both; both contribute a
    required clause.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    keyword: str | None = None
    fuzzy_keyword: str | None = None
    similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    age_group: AgeGroup | None = None
    min_age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    max_age: int | None = Field(default=None, ge=MIN_AGE, le=MAX_AGE)
    weight_class: WeightClass | None = None
    min_weight: float | None = Field(default=None, ge=MIN_WEIGHT, le=MAX_WEIGHT)
    max_weight: float | None = Field(default=None, ge=MIN_WEIGHT, le=MAX_WEIGHT)
    continent: Continent | None = None
    country: str | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> SearchCriteria:
        if self.min_age is not None and self.max_age is not None and self.min_age > self.max_age:
            raise ValueError(f"min_age ({self.min_age}) must not exceed max_age ({self.max_age})")
        if self.min_weight is not None and self.max_weight is not None and self.min_weight > self.max_weight:
            raise ValueError(f"min_weight ({self.min_weight}) must not exceed max_weight ({self.max_weight})")
        if self.is_empty():
            raise ValueError("at least one search criterion must be set")
        return self

    def is_empty(self) -> bool:
        return not any(
            (
                self.keyword,
                self.fuzzy_keyword,
                self.age_group,
                self.min_age is not None,
                self.max_age is not None,
                self.weight_class,
                self.min_weight is not None,
                self.max_weight is not None,
                self.continent,
                self.country,
            )
        )

    @property
    def has_age_range(self) -> bool:
        return self.min_age is not None or self.max_age is not None

    @property
    def has_weight_range(self) -> bool:
        return self.min_weight is not None or self.max_weight is not None


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = " ".join(str(value).split())
    return cleaned or None


def _issues_from(exc: PydanticValidationError) -> list[str]:
    issues = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value").removeprefix("Value error, ")
        issues.append(f"{location}: {message}" if location else message)
    return issues


class CriteriaBuilder:
    """Fluent builder that accepts raw request values and yields a valid ``SearchCriteria``.

    Unknown enum values and malformed numbers are collected as issues; ``build()``
    raises a single ``ValidationError`` carrying all of them.

    Example:
        criteria = CriteriaBuilder().keyword("smith").age_group("cadet").continent("EUROPE").build()
    """

    def __init__(self) -> None:
        self._values: dict[str, object] = {}
        self._issues: list[str] = []

    def _set(self, key: str, value: object) -> CriteriaBuilder:
        if value is not None:
            self._values[key] = value
        return self

    def _enum(self, key: str, parser, raw) -> CriteriaBuilder:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return self
        try:
            return self._set(key, parser(raw))
        except ValidationError as exc:
            self._issues.extend(exc.issues)
            return self

    def _number(self, key: str, raw, cast) -> CriteriaBuilder:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            return self
        try:
            return self._set(key, cast(raw))
        except (TypeError, ValueError):
            self._issues.append(f"{key}: '{raw}' is not a number")
            return self

    def keyword(self, value: str | None) -> CriteriaBuilder:
        return self._set("keyword", _clean_text(value))

    def fuzzy_keyword(self, value: str | None, similarity: float | str | None = None) -> CriteriaBuilder:
        self._set("fuzzy_keyword", _clean_text(value))
        return self._number("similarity", similarity, float)

    def similarity(self, value: float | str | None) -> CriteriaBuilder:
        return self._number("similarity", value, float)

    def age_group(self, value: AgeGroup | str | None) -> CriteriaBuilder:
        return self._enum("age_group", AgeGroup.parse, value)

    def age_range(self, min_age: int | str | None = None, max_age: int | str | None = None) -> CriteriaBuilder:
        self._number("min_age", min_age, int)
        return self._number("max_age", max_age, int)

    def weight_class(self, value: WeightClass | str | None) -> CriteriaBuilder:
        return self._enum("weight_class", WeightClass.parse, value)

    def weight_range(
        self, min_weight: float | str | None = None, max_weight: float | str | None = None
    ) -> CriteriaBuilder:
        self._number("min_weight", min_weight, float)
        return self._number("max_weight", max_weight, float)

    def continent(self, value: Continent | str | None) -> CriteriaBuilder:
        return self._enum("continent", Continent.parse, value)

    def country(self, value: str | None) -> CriteriaBuilder:
        return self._set("country", _clean_text(value))

    def build(self) -> SearchCriteria:
        """Return the validated criteria or raise ``ValidationError`` with every issue found."""
        issues = list(self._issues)
        try:
            criteria = SearchCriteria(**self._values)
        except PydanticValidationError as exc:
            issues.extend(_issues_from(exc))
            raise ValidationError(issues) from exc
        if issues:
            raise ValidationError(issues)
        return criteria


def criteria_from_mapping(params: dict[str, object]) -> SearchCriteria:
    """Build criteria from request-style keys (``ageGroup``, ``minAge``, ``kg``...)."""

    def pick(*keys: str):
        for key in keys:
            value = params.get(key)
            if value not in (None, ""):
                return value
        return None

    return (
        CriteriaBuilder()
        .keyword(pick("keyword", "kw"))
        .fuzzy_keyword(pick("fuzzy_keyword", "fuzzyKeyword"), pick("similarity"))
        .age_group(pick("age_group", "ageGroup"))
        .age_range(pick("min_age", "minAge"), pick("max_age", "maxAge"))
        .weight_class(pick("weight_class", "weightClass", "kg"))
        .weight_range(pick("min_weight", "minWeight"), pick("max_weight", "maxWeight"))
        .continent(pick("continent"))
        .country(pick("country"))
        .build()
    )
