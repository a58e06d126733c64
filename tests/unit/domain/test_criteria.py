"""Unit tests for SearchCriteria and CriteriaBuilder."""

from pydantic import ValidationError as PydanticValidationError
import pytest

from athlete_search.domain.criteria import CriteriaBuilder, SearchCriteria, criteria_from_mapping
from athlete_search.domain.vocabulary import AgeGroup, Continent, WeightClass
from athlete_search.errors import ValidationError


pytestmark = pytest.mark.unit


class TestCriteriaBuilder:
    def test_builds_immutable_criteria(self):
        criteria = CriteriaBuilder().keyword("  john   smith ").age_group("cadet").continent("europe").build()

        assert criteria.keyword == "john smith"
        assert criteria.age_group is AgeGroup.CADET
        assert criteria.continent is Continent.EUROPE
        with pytest.raises(PydanticValidationError):
            criteria.keyword = "other"

    def test_empty_criteria_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CriteriaBuilder().keyword("   ").build()
        assert any("at least one search criterion" in issue for issue in exc_info.value.issues)

    def test_min_age_above_max_age_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            CriteriaBuilder().age_range(30, 20).build()
        assert "min_age" in str(exc_info.value)

    def test_min_weight_above_max_weight_rejected(self):
        with pytest.raises(ValidationError):
            CriteriaBuilder().weight_range(90, 60).build()

    @pytest.mark.parametrize(("min_age", "max_age"), [(-1, None), (None, 151)])
    def test_age_out_of_bounds_rejected(self, min_age, max_age):
        with pytest.raises(ValidationError):
            CriteriaBuilder().age_range(min_age, max_age).build()

    @pytest.mark.parametrize("similarity", [-0.1, 1.5])
    def test_similarity_out_of_bounds_rejected(self, similarity):
        with pytest.raises(ValidationError):
            CriteriaBuilder().fuzzy_keyword("smith", similarity).build()

    def test_weight_over_500_rejected(self):
        with pytest.raises(ValidationError):
            CriteriaBuilder().weight_range(None, 501).build()

    def test_collects_every_issue(self):
        with pytest.raises(ValidationError) as exc_info:
            CriteriaBuilder().age_group("toddler").weight_class("-82").continent("atlantis").build()
        issues = exc_info.value.issues
        assert any("age group" in issue for issue in issues)
        assert any("weight class" in issue for issue in issues)
        assert any("continent" in issue for issue in issues)

    def test_malformed_number_reported(self):
        with pytest.raises(ValidationError) as exc_info:
            CriteriaBuilder().age_range("ten", None).build()
        assert any("not a number" in issue for issue in exc_info.value.issues)

    def test_bucket_and_range_may_both_be_set(self):
        criteria = CriteriaBuilder().age_group("SENIOR").age_range(25, 30).weight_class("-81").build()
        assert criteria.age_group is AgeGroup.SENIOR
        assert criteria.has_age_range
        assert criteria.weight_class is WeightClass.U81
        assert not criteria.has_weight_range

    def test_open_ended_range(self):
        criteria = CriteriaBuilder().weight_range(min_weight="90").build()
        assert criteria.min_weight == 90.0
        assert criteria.max_weight is None
        assert criteria.has_weight_range


class TestSearchCriteria:
    def test_unknown_field_rejected(self):
        with pytest.raises(PydanticValidationError):
            SearchCriteria(keyword="x", nickname="y")

    def test_is_empty_false_for_zero_age(self):
        criteria = SearchCriteria(min_age=0)
        assert not criteria.is_empty()


class TestCriteriaFromMapping:
    def test_accepts_request_style_keys(self):
        criteria = criteria_from_mapping(
            {"kw": "smith", "ageGroup": "CADET", "kg": "-81", "minWeight": "60", "continent": "ASIA", "pageNo": "2"}
        )
        assert criteria.keyword == "smith"
        assert criteria.age_group is AgeGroup.CADET
        assert criteria.weight_class is WeightClass.U81
        assert criteria.min_weight == 60.0
        assert criteria.continent is Continent.ASIA

    def test_blank_values_are_ignored(self):
        criteria = criteria_from_mapping({"keyword": "", "country": "Japan", "ageGroup": ""})
        assert criteria.keyword is None
        assert criteria.age_group is None
        assert criteria.country == "Japan"

    def test_fuzzy_keyword_with_similarity(self):
        criteria = criteria_from_mapping({"fuzzyKeyword": "smyth", "similarity": "0.5"})
        assert criteria.fuzzy_keyword == "smyth"
        assert criteria.similarity == 0.5
