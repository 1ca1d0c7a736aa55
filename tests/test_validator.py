import json

import pytest

from api_test_synth.generator.validator import extract_json, validate_batch
from api_test_synth.models import ScenarioCategory

VALID_CASE = {
    "name": "reject negative age",
    "category": "boundary",
    "expected_status": 400,
    "payload": {"age": -1},
}


class TestExtractJson:
    def test_plain_json(self):
        assert extract_json('{"a": 1}') == {"a": 1}

    def test_fenced_block(self):
        assert extract_json('Here you go:\n```json\n{"a": 1}\n```\nDone.') == {"a": 1}

    def test_embedded_object(self):
        assert extract_json('Sure! {"a": {"b": 2}} hope that helps') == {"a": {"b": 2}}

    def test_no_json(self):
        with pytest.raises(ValueError):
            extract_json("no json here")


class TestValidateBatch:
    def test_valid_batch(self):
        confidence, proposals, errors = validate_batch(json.dumps({"confidence": 0.9, "cases": [VALID_CASE]}))
        assert confidence == 0.9
        assert errors == {}
        assert proposals[0].category == ScenarioCategory.BOUNDARY
        assert proposals[0].priority == 3
        assert proposals[0].expect_success is None

    def test_invalid_case_reported_by_index(self):
        bad = {"name": "", "expected_status": 999}
        confidence, proposals, errors = validate_batch(json.dumps({"confidence": 0.8, "cases": [VALID_CASE, bad]}))
        assert len(proposals) == 1
        assert list(errors) == ["cases[1]"]
        assert "expected_status" in errors["cases[1]"]

    def test_unknown_category_rejected(self):
        case = dict(VALID_CASE, category="chaos")
        _, proposals, errors = validate_batch(json.dumps({"confidence": 0.8, "cases": [case]}))
        assert proposals == []
        assert "cases[0]" in errors

    def test_missing_confidence(self):
        confidence, proposals, errors = validate_batch(json.dumps({"cases": [VALID_CASE]}))
        assert confidence == 0.0
        assert proposals == []
        assert "_response" in errors

    def test_not_json(self):
        confidence, proposals, errors = validate_batch("I cannot help with that.")
        assert (confidence, proposals) == (0.0, [])
        assert "_response" in errors
