"""Tests for model vocabulary normalization and tolerant JSON parsing."""

import pytest

from factgraph.core.exceptions import UpstreamError
from factgraph.services.extraction.llm_extractor import parse_extraction_output
from factgraph.services.extraction.normalization import (
    entity_key,
    normalize_entity_type,
    normalize_identifiers,
    normalize_predicate,
)
from factgraph.utils.json_parser import coerce_stringified_fields, parse_json_safely


class TestEntityTypes:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("company", "company"),
            ("Organization", "company"),
            ("  corp ", "company"),
            ("ETF", "instrument"),
            ("industry", "sector"),
            ("financial metric", "indicator"),
            ("financial-metric", "indicator"),
            ("nation", "country"),
            ("event", "event"),
        ],
    )
    def test_known_and_synonyms(self, raw, expected):
        assert normalize_entity_type(raw) == expected

    @pytest.mark.parametrize("raw", ["person", "", "widget"])
    def test_unknown_falls_back_to_concept(self, raw):
        assert normalize_entity_type(raw) == "concept"


class TestPredicates:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("SUPPLIES_TO", "SUPPLIES_TO"),
            ("supplies to", "SUPPLIES_TO"),
            ("sells-to", "SUPPLIES_TO"),
            ("affects negatively", "IMPACTS"),
            ("profits_from", "BENEFITS_FROM"),
            ("dependent on", "EXPOSED_TO"),
        ],
    )
    def test_allowed_and_synonyms(self, raw, expected):
        assert normalize_predicate(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "ACQUIRED", "competes with"])
    def test_unknown_is_dropped(self, raw):
        assert normalize_predicate(raw) is None


def test_entity_key_is_trimmed_lowercase():
    assert entity_key("  Apple Inc. ") == "apple inc."
    assert entity_key(None) == ""


class TestNormalizeIdentifiers:

    def test_values_are_stringified(self):
        out = normalize_identifiers(
            {"ticker": "AAPL", "cik": 320193, "active": True, "listed": False, "ratio": 1.5, "skip": None}
        )
        assert out == {"ticker": "AAPL", "cik": "320193", "active": "true", "listed": "false", "ratio": "1.5"}

    def test_complex_values_are_json_encoded(self):
        out = normalize_identifiers({"lei": {"code": "HWUPKR0MPOU8FGXBT394"}, "isins": ["US0378331005"]})
        assert out == {"lei": '{"code": "HWUPKR0MPOU8FGXBT394"}', "isins": '["US0378331005"]'}

    @pytest.mark.parametrize("incoming", [None, {}, {"cik": None}, {"": "x"}])
    def test_empty_results_are_none(self, incoming):
        assert normalize_identifiers(incoming) is None


class TestParseJsonSafely:

    def test_plain_object(self):
        assert parse_json_safely('{"a": 1}') == {"a": 1}

    def test_code_fence(self):
        assert parse_json_safely('```json\n{"a": [1, 2]}\n```') == {"a": [1, 2]}

    def test_bare_fence(self):
        assert parse_json_safely('```\n{"a": 1}\n```') == {"a": 1}

    def test_object_inside_prose(self):
        text = 'Here is the result:\n{"entities": [], "relations": []}\nLet me know.'
        assert parse_json_safely(text) == {"entities": [], "relations": []}

    @pytest.mark.parametrize("text", ["", "no json here", "{broken"])
    def test_unparseable_is_none(self, text):
        assert parse_json_safely(text) is None


def test_coerce_stringified_fields():
    out = coerce_stringified_fields({"entities": "[1, 2]", "relations": "not json", "other": "[]"}, ["entities", "relations"])
    assert out == {"entities": [1, 2], "relations": "not json", "other": "[]"}


class TestParseExtractionOutput:

    def test_valid_payload(self):
        text = """```json
        {"entities": [{"type": "company", "name": "Apple Inc.", "identifiers": {"ticker": "AAPL"}}],
         "relations": [{"subject": "TSMC", "predicate": "supplies to", "object": "Apple Inc.", "confidence": 0.8}]}
        ```"""

        output = parse_extraction_output(text)

        assert output.entities[0].name == "Apple Inc."
        assert output.relations[0].predicate == "supplies to"
        assert output.relations[0].confidence == 0.8

    def test_stringified_and_null_lists(self):
        text = '{"entities": "[{\\"type\\": \\"sector\\", \\"name\\": \\"Semiconductors\\"}]", "relations": null}'

        output = parse_extraction_output(text)

        assert [e.name for e in output.entities] == ["Semiconductors"]
        assert output.relations == []

    def test_missing_lists_default_empty(self):
        output = parse_extraction_output("{}")
        assert output.entities == []
        assert output.relations == []

    @pytest.mark.parametrize("text", ["not json at all", "[1, 2, 3]"])
    def test_non_object_is_upstream_error(self, text):
        with pytest.raises(UpstreamError):
            parse_extraction_output(text)

    def test_out_of_range_confidence_is_upstream_error(self):
        text = '{"relations": [{"subject": "A", "predicate": "IMPACTS", "object": "B", "confidence": 1.7}]}'
        with pytest.raises(UpstreamError):
            parse_extraction_output(text)
