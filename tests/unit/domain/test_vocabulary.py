"""Unit tests for age groups, weight classes and the continent registry."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from athlete_search.domain.vocabulary import AgeGroup, Continent, VocabularyRegistry, WeightClass, normalize_country
from athlete_search.errors import ValidationError


pytestmark = pytest.mark.unit


class TestAgeGroup:
    def test_bounds(self):
        assert [(group.min_age, group.max_age) for group in AgeGroup] == [(10, 17), (18, 20), (21, 34), (35, 150)]

    @pytest.mark.parametrize("raw", ["CADET", "cadet", " Cadet ", AgeGroup.CADET])
    def test_parse_accepts_names_case_insensitively(self, raw):
        assert AgeGroup.parse(raw) is AgeGroup.CADET

    def test_parse_unknown_raises_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            AgeGroup.parse("TODDLER")
        assert "unknown age group" in str(exc_info.value)
        assert "CADET" in str(exc_info.value)


class TestWeightClass:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("-81", WeightClass.U81), ("+100", WeightClass.O100), ("U60", WeightClass.U60), ("o100", WeightClass.O100)],
    )
    def test_parse_by_code_or_name(self, raw, expected):
        assert WeightClass.parse(raw) is expected

    def test_parse_unknown_code(self):
        with pytest.raises(ValidationError):
            WeightClass.parse("-82")

    def test_boundary_and_open_ended(self):
        assert WeightClass.U81.boundary == 81
        assert not WeightClass.U81.open_ended
        assert WeightClass.O100.boundary == 100
        assert WeightClass.O100.open_ended

    def test_in_range_selects_buckets_whose_boundary_is_inside(self):
        assert WeightClass.in_range(70, 85) == [WeightClass.U73, WeightClass.U81]

    def test_in_range_boundary_is_inclusive(self):
        assert WeightClass.in_range(81, 81) == [WeightClass.U81]
        assert WeightClass.in_range(74, 80) == []

    def test_open_ended_class_selected_once_range_reaches_100(self):
        assert WeightClass.in_range(95, 100) == [WeightClass.U100, WeightClass.O100]
        assert WeightClass.in_range(120, 200) == [WeightClass.O100]
        assert WeightClass.O100 not in WeightClass.in_range(0, 99)


class TestContinent:
    @pytest.mark.parametrize("raw", ["NORTH_AMERICA", "north america", "North-America", Continent.NORTH_AMERICA])
    def test_parse_variants(self, raw):
        assert Continent.parse(raw) is Continent.NORTH_AMERICA

    def test_display_name(self):
        assert Continent.SOUTH_AMERICA.display_name == "South America"

    def test_parse_unknown(self):
        with pytest.raises(ValidationError):
            Continent.parse("ATLANTIS")


class TestVocabularyRegistry:
    def test_lookup_returns_explicit_countries(self, registry):
        countries = registry.lookup_countries(Continent.EUROPE)
        assert "France" in countries
        assert "Andorra" not in countries

    def test_add_other_is_visible_immediately(self, registry):
        assert registry.add_other("Andorra", Continent.EUROPE) is True
        assert "Andorra" in registry.lookup_countries(Continent.EUROPE)
        assert registry.others("EUROPE") == ["Andorra"]

    def test_add_other_is_idempotent_and_case_insensitive(self, registry):
        assert registry.add_other("Andorra", Continent.EUROPE) is True
        assert registry.add_other("andorra", Continent.EUROPE) is False
        assert registry.add_other("  Andorra ", "europe") is False
        assert registry.others(Continent.EUROPE) == ["Andorra"]

    def test_add_other_ignores_static_countries(self, registry):
        assert registry.add_other("france", Continent.EUROPE) is False
        assert registry.others(Continent.EUROPE) == []
        assert registry.lookup_countries(Continent.EUROPE).count("France") == 1

    def test_add_other_rejects_empty_country(self, registry):
        with pytest.raises(ValidationError):
            registry.add_other("   ", Continent.EUROPE)

    def test_others_are_per_continent(self, registry):
        registry.add_other("Andorra", Continent.EUROPE)
        assert "Andorra" not in registry.lookup_countries(Continent.ASIA)

    def test_explicit_countries_precede_others(self, registry):
        registry.add_other("Freedonia", Continent.EUROPE)
        countries = registry.lookup_countries(Continent.EUROPE)
        assert countries[-1] == "Freedonia"
        assert countries[: len(registry.explicit_countries(Continent.EUROPE))] == registry.explicit_countries(
            Continent.EUROPE
        )

    def test_continent_of_and_contains(self, registry):
        assert registry.continent_of("japan") is Continent.ASIA
        assert registry.continent_of("Andorra") is None
        registry.add_other("Andorra", Continent.EUROPE)
        assert registry.continent_of("Andorra") is Continent.EUROPE
        assert registry.contains("Andorra", Continent.EUROPE)
        assert not registry.contains("Andorra", Continent.ASIA)

    def test_concurrent_adds_keep_one_entry_per_country(self, registry):
        names = [f"Country {i % 10}" for i in range(200)]
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda name: registry.add_other(name, Continent.OCEANIA), names))
        assert sum(results) == 10
        assert len(registry.others(Continent.OCEANIA)) == 10

    def test_custom_static_table(self):
        custom = VocabularyRegistry({Continent.EUROPE: ("Freedonia",)})
        assert custom.lookup_countries(Continent.EUROPE) == ["Freedonia"]
        assert custom.lookup_countries(Continent.ASIA) == []


def test_normalize_country_collapses_whitespace():
    assert normalize_country("  South   Korea ") == "South Korea"
