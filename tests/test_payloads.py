import re

from api_test_synth.analysis.constraints import DataConstraints, SchemaConstraintAnalyzer
from api_test_synth.generator.payloads import (
    LARGE_STRING_LENGTH,
    STRING_CAP,
    PayloadSynthesizer,
    integer_bounds,
    number_bounds,
    string_from_pattern,
)


def _c(schema: dict) -> DataConstraints:
    return SchemaConstraintAnalyzer().analyze(schema)


class TestValueFor:
    def test_format_values(self):
        synth = PayloadSynthesizer()
        assert synth.value_for(_c({"type": "string", "format": "email"})) == "user@example.com"
        assert synth.value_for(_c({"type": "string", "format": "uuid"})) == "3fa85f64-5717-4562-b3fc-2c963f66afa6"

    def test_context_from_field_name(self):
        synth = PayloadSynthesizer()
        assert synth.value_for(_c({"type": "string"}), "phoneNumber") == "+15550100"
        assert synth.value_for(_c({"type": "string"}), "color") == "test_color"

    def test_example_and_enum_win(self):
        synth = PayloadSynthesizer()
        assert synth.value_for(_c({"type": "string", "example": "Rex"})) == "Rex"
        assert synth.value_for(_c({"type": "string", "enum": ["sold", "pending"]})) == "sold"

    def test_integer_respects_bounds(self):
        synth = PayloadSynthesizer()
        assert synth.value_for(_c({"type": "integer", "minimum": 100})) == 100
        assert synth.value_for(_c({"type": "integer", "maximum": 10})) == 10
        assert synth.value_for(_c({"type": "integer", "minimum": 0, "maximum": 100, "multipleOf": 5})) == 45

    def test_boolean_false_hints(self):
        synth = PayloadSynthesizer()
        assert synth.value_for(_c({"type": "boolean"}), "active") is True
        assert synth.value_for(_c({"type": "boolean"}), "isDeleted") is False

    def test_string_length_fits(self):
        synth = PayloadSynthesizer()
        value = synth.value_for(_c({"type": "string", "minLength": 20, "maxLength": 25}), "name")
        assert 20 <= len(value) <= 25

    def test_unbounded_string_not_capped_to_small_length(self):
        synth = PayloadSynthesizer()
        c = _c({"type": "string"})
        assert len(synth.string_of_length(300, c)) == 300

    def test_unique_array_items(self):
        synth = PayloadSynthesizer()
        value = synth.value_for(_c({"type": "array", "minItems": 3, "uniqueItems": True, "items": {"type": "integer"}}))
        assert len(value) == 3
        assert len(set(value)) == 3

    def test_truncated_node_gets_placeholder(self):
        assert PayloadSynthesizer().value_for(DataConstraints(truncated=True), "parent") == "test_parent"


class TestBuildObject:
    SCHEMA = {
        "type": "object",
        "required": ["name"],
        "properties": {"name": {"type": "string"}, "tag": {"type": "string"}},
    }

    def test_required_only(self):
        assert PayloadSynthesizer().build_object(_c(self.SCHEMA)) == {"name": "Test Name"}

    def test_include_optional(self):
        payload = PayloadSynthesizer().build_object(_c(self.SCHEMA), include_optional=True)
        assert set(payload) == {"name", "tag"}

    def test_all_fields_when_none_required(self):
        schema = {"type": "object", "properties": {"a": {"type": "integer"}, "b": {"type": "boolean"}}}
        assert set(PayloadSynthesizer().build_object(_c(schema))) == {"a", "b"}


class TestBoundaryValues:
    def test_max_length_five(self):
        values = PayloadSynthesizer().boundary_values(_c({"type": "string", "maxLength": 5}), "code")
        by_label = {label: (value, valid) for label, value, valid in values}
        assert len(by_label["max length 5"][0]) == 5
        assert by_label["max length 5"][1] is True
        assert len(by_label["above max length 5"][0]) == 6
        assert by_label["above max length 5"][1] is False

    def test_min_length_zero_has_no_below_case(self):
        labels = [label for label, _, _ in PayloadSynthesizer().boundary_values(_c({"type": "string", "minLength": 0}))]
        assert labels == ["min length 0"]

    def test_exclusive_integer_bounds(self):
        values = PayloadSynthesizer().boundary_values(
            _c({"type": "integer", "minimum": 0, "exclusiveMinimum": True, "maximum": 10, "exclusiveMaximum": True})
        )
        assert [(v, ok) for _, v, ok in values] == [(1, True), (0, False), (9, True), (10, False)]

    def test_number_bounds(self):
        values = PayloadSynthesizer().boundary_values(_c({"type": "number", "minimum": 1.5}))
        assert [(v, ok) for _, v, ok in values] == [(1.5, True), (1.49, False)]

    def test_array_bounds(self):
        values = PayloadSynthesizer().boundary_values(
            _c({"type": "array", "minItems": 1, "maxItems": 2, "items": {"type": "string"}})
        )
        assert [(len(v), ok) for _, v, ok in values] == [(1, True), (0, False), (2, True), (3, False)]

    def test_no_bounds_no_values(self):
        assert PayloadSynthesizer().boundary_values(_c({"type": "string"})) == []


class TestLargeValue:
    def test_unbounded_string(self):
        assert len(PayloadSynthesizer().large_value(_c({"type": "string"}))) == LARGE_STRING_LENGTH

    def test_capped_by_max_length(self):
        c = _c({"type": "string", "maxLength": STRING_CAP * 10})
        assert len(PayloadSynthesizer().large_value(c)) == STRING_CAP


class TestBounds:
    def test_integer_bounds_fractional(self):
        assert integer_bounds(_c({"type": "integer", "minimum": 1.2, "maximum": 4.8})) == (2, 4)

    def test_number_bounds_exclusive(self):
        assert number_bounds(_c({"type": "number", "minimum": 0, "exclusiveMinimum": True})) == (0.01, None)


class TestStringFromPattern:
    def test_simple_patterns(self):
        for pattern in (r"^\d{3}-\d{4}$", r"^[A-Z]{2}[0-9]+$", r"^[a-z]+$"):
            value = string_from_pattern(pattern)
            assert value is not None
            assert re.search(pattern, value)

    def test_complex_pattern_returns_none(self):
        assert string_from_pattern(r"^(foo|bar)$") is None

    def test_invalid_pattern_returns_none(self):
        assert string_from_pattern("[unclosed") is None
