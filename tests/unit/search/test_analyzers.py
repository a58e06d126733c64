"""Unit tests for analyzers and the athlete schema."""

import pytest

from athlete_search.search.analyzers import (
    ExactAnalyzer,
    KeywordAnalyzer,
    StandardAnalyzer,
    analyze_terms,
    fold_accents,
    get_analyzer,
    normalize_exact,
)
from athlete_search.search.schema import (
    LOCATION_EXACT,
    NAME,
    NAME_EXACT,
    WEIGHT_CODE,
    FieldType,
    KeywordField,
    Schema,
    TextField,
    create_athlete_schema,
)


pytestmark = pytest.mark.unit


class TestStandardAnalyzer:
    def test_lowercases_and_splits_words(self):
        assert analyze_terms(StandardAnalyzer(), "John SMITH") == ["john", "smith"]

    def test_positions_are_sequential(self):
        tokens = StandardAnalyzer()("Kim Min-jun")
        assert [t.text for t in tokens] == ["kim", "min", "jun"]
        assert [t.position for t in tokens] == [0, 1, 2]

    def test_folds_accents_and_apostrophes(self):
        assert analyze_terms(StandardAnalyzer(), "Côte d'Ivoire") == ["cote", "divoire"]
        assert analyze_terms(StandardAnalyzer(), "Müller") == ["muller"]

    def test_keeps_stopwords(self):
        assert analyze_terms(StandardAnalyzer(), "Jan de Vries") == ["jan", "de", "vries"]


class TestSingleTokenAnalyzers:
    def test_keyword_analyzer_is_verbatim(self):
        assert analyze_terms(KeywordAnalyzer(), "-81") == ["-81"]
        assert KeywordAnalyzer()("") == []

    def test_exact_analyzer_normalizes_whole_value(self):
        assert analyze_terms(ExactAnalyzer(), "  South   KOREA ") == ["south korea"]
        assert ExactAnalyzer()("   ") == []

    def test_normalize_exact(self):
        assert normalize_exact("Teddy  Riner") == "teddy riner"
        assert fold_accents("São Tomé") == "Sao Tome"


def test_get_analyzer_unknown_name():
    with pytest.raises(ValueError, match="Unknown analyzer"):
        get_analyzer("stemming")


class TestAthleteSchema:
    def test_field_layout(self):
        schema = create_athlete_schema()
        assert schema.unique_field == "id"
        assert schema[NAME].field_type is FieldType.TEXT
        assert schema[NAME_EXACT].field_type is FieldType.KEYWORD
        assert schema[WEIGHT_CODE].field_type is FieldType.KEYWORD
        assert schema.source_of(NAME_EXACT) == NAME
        assert schema.source_of(LOCATION_EXACT) == "location"
        assert schema.source_of(NAME) == NAME

    def test_weight_code_is_not_lowercased_or_split(self):
        schema = create_athlete_schema()
        assert analyze_terms(schema.analyzer_for(WEIGHT_CODE), "+100") == ["+100"]

    def test_stored_only_fields_have_no_analyzer(self):
        schema = create_athlete_schema()
        assert not schema["image"].indexed
        with pytest.raises(KeyError):
            schema.analyzer_for("image")

    def test_unique_field_must_exist(self):
        with pytest.raises(ValueError, match="Unique field"):
            Schema(fields=[TextField(name="name")], unique_field="id")

    def test_term_fields_cover_text_and_keyword(self):
        schema = Schema(fields=[KeywordField(name="id"), TextField(name="name")])
        assert [f.name for f in schema.term_fields] == ["id", "name"]
