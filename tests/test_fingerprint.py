"""Tests for request fingerprinting."""
import pytest

from health_connect.fingerprint import canonicalize, fingerprint
from health_connect.models import HealthInsightsRequest


PAYLOAD = {
    "modelType": "gemini-flash-lite-latest",
    "age": 34,
    "gender": "female",
    "height": 170,
    "weight": 62.5,
    "bmi": 21.6,
    "bmiCategory": "Normal",
    "bloodGlucose": 92,
}


def test_deterministic():
    assert fingerprint(PAYLOAD) == fingerprint(dict(PAYLOAD))


def test_key_order_does_not_matter():
    reordered = dict(reversed(list(PAYLOAD.items())))
    assert list(reordered) != list(PAYLOAD)
    assert fingerprint(reordered) == fingerprint(PAYLOAD)


def test_nested_key_order_does_not_matter():
    a = {"outer": {"x": 1, "y": [1, {"b": 2, "a": 1}]}}
    b = {"outer": {"y": [1, {"a": 1, "b": 2}], "x": 1}}
    assert fingerprint(a) == fingerprint(b)


@pytest.mark.parametrize("field,value", [
    ("age", 35),
    ("gender", "male"),
    ("weight", 62.6),
    ("bmiCategory", "Overweight"),
    ("modelType", "gemini-2.5-flash"),
])
def test_any_field_change_changes_fingerprint(field, value):
    changed = dict(PAYLOAD, **{field: value})
    assert fingerprint(changed) != fingerprint(PAYLOAD)


def test_digest_is_at_least_128_bits():
    digest = fingerprint(PAYLOAD)
    assert len(digest) == 64
    int(digest, 16)


def test_scope_separates_endpoints():
    assert fingerprint(PAYLOAD, scope="health-insights") != fingerprint(PAYLOAD, scope="advanced-health")
    assert fingerprint(PAYLOAD, scope="health-insights") == fingerprint(PAYLOAD, scope="health-insights")


def test_canonical_form_is_compact_and_sorted():
    assert canonicalize({"b": 1, "a": [True, None]}) == '{"a":[true,null],"b":1}'


def test_normalized_string_and_numeric_input_match():
    from_strings = HealthInsightsRequest.model_validate(
        {**PAYLOAD, "age": "34", "bloodGlucose": "92", "weight": "62.5"}
    )
    from_numbers = HealthInsightsRequest.model_validate(PAYLOAD)
    assert fingerprint(from_strings.model_dump(mode="json")) == fingerprint(
        from_numbers.model_dump(mode="json")
    )


def test_non_json_input_is_a_type_error():
    with pytest.raises(TypeError):
        fingerprint({"when": object()})
