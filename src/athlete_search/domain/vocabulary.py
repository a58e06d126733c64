"""Closed categorical vocabularies and the continent -> country registry.

Age groups, weight classes and continents are enums that carry their bounds
and codes as data. Parsing user input goes through ``parse()`` which raises a
typed ``ValidationError`` listing the accepted values instead of a bare
``KeyError``/``ValueError``.

The registry seeds each continent with a static country table and keeps a
runtime-growable "others" set per continent. The others sets live in process
memory only; they are lost on restart.
"""

from __future__ import annotations

from enum import Enum
import logging
import threading
from typing import Self

from athlete_search.errors import ValidationError


logger = logging.getLogger(__name__)


def _parse_member(enum_cls: type[Enum], raw: str | Enum, *, kind: str, attr: str = "name") -> Enum:
    if isinstance(raw, enum_cls):
        return raw
    text = str(raw).strip()
    for member in enum_cls:
        if getattr(member, attr) == text or member.name == text.upper():
            return member
    accepted = ", ".join(str(getattr(m, attr)) for m in enum_cls)
    raise ValidationError(f"unknown {kind} '{raw}'; expected one of: {accepted}")


class AgeGroup(Enum):
    """Named age buckets with inclusive ``[min_age, max_age]`` bounds."""

    CADET = (10, 17)
    JUNIOR = (18, 20)
    SENIOR = (21, 34)
    VETERAN = (35, 150)

    def __init__(self, min_age: int, max_age: int) -> None:
        self.min_age = min_age
        self.max_age = max_age

    @classmethod
    def parse(cls, raw: str | AgeGroup) -> Self:
        return _parse_member(cls, raw, kind="age group")  # type: ignore[return-value]


class WeightClass(Enum):
    """Weight buckets keyed by their competition code.

    ``boundary`` is the weight named by the code; ``-X`` classes cover
    ``(lower, X]`` and ``+100`` is open-ended above 100.
    """

    U60 = ("-60", 0, 60)
    U66 = ("-66", 60, 66)
    U73 = ("-73", 66, 73)
    U81 = ("-81", 73, 81)
    U90 = ("-90", 81, 90)
    U100 = ("-100", 90, 100)
    O100 = ("+100", 100, None)

    def __init__(self, code: str, lower: int, upper: int | None) -> None:
        self.code = code
        self.lower = lower
        self.upper = upper

    @property
    def boundary(self) -> int:
        return self.upper if self.upper is not None else self.lower

    @property
    def open_ended(self) -> bool:
        return self.upper is None

    def overlaps(self, min_weight: float, max_weight: float) -> bool:
        """Return True when this class is selected by the range ``[min_weight, max_weight]``.

        A bounded class is selected when its boundary lies inside the range.
        The open-ended class is selected once the range reaches its boundary.
        """
        if self.open_ended:
            return max_weight >= self.boundary
        return min_weight <= self.boundary <= max_weight

    @classmethod
    def parse(cls, raw: str | WeightClass) -> Self:
        return _parse_member(cls, raw, kind="weight class", attr="code")  # type: ignore[return-value]

    @classmethod
    def in_range(cls, min_weight: float, max_weight: float) -> list[Self]:
        return [wc for wc in cls if wc.overlaps(min_weight, max_weight)]  # type: ignore[misc]


class Continent(Enum):
    ASIA = "Asia"
    EUROPE = "Europe"
    AFRICA = "Africa"
    NORTH_AMERICA = "North America"
    SOUTH_AMERICA = "South America"
    OCEANIA = "Oceania"

    @property
    def display_name(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str | Continent) -> Self:
        if isinstance(raw, str):
            raw = raw.strip().replace(" ", "_").replace("-", "_")
        return _parse_member(cls, raw, kind="continent")  # type: ignore[return-value]


_STATIC_COUNTRIES: dict[Continent, tuple[str, ...]] = {
    Continent.ASIA: (
        "China",
        "Japan",
        "South Korea",
        "North Korea",
        "Mongolia",
        "Kazakhstan",
        "Uzbekistan",
        "Tajikistan",
        "Kyrgyzstan",
        "Turkmenistan",
        "India",
        "Iran",
        "Iraq",
        "Israel",
        "Jordan",
        "Lebanon",
        "Syria",
        "Saudi Arabia",
        "United Arab Emirates",
        "Qatar",
        "Kuwait",
        "Turkey",
        "Indonesia",
        "Thailand",
        "Vietnam",
        "Philippines",
        "Singapore",
        "Malaysia",
        "Taiwan",
        "Hong Kong",
    ),
    Continent.EUROPE: (
        "France",
        "Germany",
        "Italy",
        "Spain",
        "Portugal",
        "United Kingdom",
        "Ireland",
        "Netherlands",
        "Belgium",
        "Switzerland",
        "Austria",
        "Poland",
        "Czech Republic",
        "Slovakia",
        "Hungary",
        "Romania",
        "Bulgaria",
        "Greece",
        "Serbia",
        "Croatia",
        "Slovenia",
        "Bosnia and Herzegovina",
        "Montenegro",
        "Albania",
        "Ukraine",
        "Belarus",
        "Russia",
        "Georgia",
        "Armenia",
        "Azerbaijan",
        "Moldova",
        "Lithuania",
        "Latvia",
        "Estonia",
        "Finland",
        "Sweden",
        "Norway",
        "Denmark",
        "Iceland",
    ),
    Continent.AFRICA: (
        "Egypt",
        "Morocco",
        "Algeria",
        "Tunisia",
        "Libya",
        "Senegal",
        "Nigeria",
        "Ghana",
        "Cameroon",
        "Kenya",
        "Ethiopia",
        "South Africa",
        "Angola",
        "Mozambique",
        "Zambia",
        "Zimbabwe",
        "Madagascar",
        "Mauritius",
        "Democratic Republic of the Congo",
        "Ivory Coast",
    ),
    Continent.NORTH_AMERICA: (
        "United States",
        "Canada",
        "Mexico",
        "Cuba",
        "Dominican Republic",
        "Puerto Rico",
        "Jamaica",
        "Haiti",
        "Guatemala",
        "Honduras",
        "Costa Rica",
        "Panama",
        "El Salvador",
        "Nicaragua",
    ),
    Continent.SOUTH_AMERICA: (
        "Brazil",
        "Argentina",
        "Chile",
        "Colombia",
        "Peru",
        "Venezuela",
        "Ecuador",
        "Uruguay",
        "Paraguay",
        "Bolivia",
    ),
    Continent.OCEANIA: (
        "Australia",
        "New Zealand",
        "Fiji",
        "Papua New Guinea",
        "Samoa",
        "Tonga",
    ),
}


def normalize_country(country: str) -> str:
    """Collapse inner whitespace and strip the ends."""
    return " ".join(country.split())


class VocabularyRegistry:
    """Static continent table plus per-continent runtime "others" sets.

    All reads and writes of the others sets go through one lock, so an
    ``add_other`` that has returned is visible to every later lookup.
    """

    def __init__(self, static_countries: dict[Continent, tuple[str, ...]] | None = None) -> None:
        source = static_countries if static_countries is not None else _STATIC_COUNTRIES
        self._static: dict[Continent, tuple[str, ...]] = {
            continent: tuple(source.get(continent, ())) for continent in Continent
        }
        self._others: dict[Continent, dict[str, str]] = {continent: {} for continent in Continent}
        self._lock = threading.Lock()

    def explicit_countries(self, continent: Continent | str) -> list[str]:
        return list(self._static[Continent.parse(continent)])

    def others(self, continent: Continent | str) -> list[str]:
        resolved = Continent.parse(continent)
        with self._lock:
            return sorted(self._others[resolved].values(), key=str.casefold)

    def lookup_countries(self, continent: Continent | str) -> list[str]:
        """Return the explicit countries followed by the continent's others."""
        resolved = Continent.parse(continent)
        explicit = list(self._static[resolved])
        seen = {country.casefold() for country in explicit}
        extra = [country for country in self.others(resolved) if country.casefold() not in seen]
        return explicit + extra

    def add_other(self, country: str, continent: Continent | str) -> bool:
        """Add ``country`` to the continent's others set.

        Returns True when the set grew. Adding a country that is already
        present (statically or as an other, compared case-insensitively) is a
        no-op returning False.
        """
        resolved = Continent.parse(continent)
        normalized = normalize_country(country or "")
        if not normalized:
            raise ValidationError("country must not be empty")
        key = normalized.casefold()
        if any(existing.casefold() == key for existing in self._static[resolved]):
            return False
        with self._lock:
            if key in self._others[resolved]:
                return False
            self._others[resolved][key] = normalized
        logger.info("Added other country %r to %s", normalized, resolved.name)
        return True

    def continent_of(self, country: str) -> Continent | None:
        key = normalize_country(country).casefold()
        for continent in Continent:
            if any(existing.casefold() == key for existing in self._static[continent]):
                return continent
        with self._lock:
            for continent, others in self._others.items():
                if key in others:
                    return continent
        return None

    def contains(self, country: str, continent: Continent | str) -> bool:
        key = normalize_country(country).casefold()
        return any(existing.casefold() == key for existing in self.lookup_countries(continent))


_default_registry = VocabularyRegistry()


def get_registry() -> VocabularyRegistry:
    """Return the process-wide registry seeded from the static table."""
    return _default_registry
