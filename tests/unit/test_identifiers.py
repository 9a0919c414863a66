import json

from liteflow.identifiers import (
    containment_needle,
    contains_identifier,
    decode_identifiers,
    encode_identifiers,
    parse_identifier,
)
from liteflow.models import Identifier


def test_encode_none_as_empty_list():
    assert encode_identifiers(None) == "[]"
    assert encode_identifiers([]) == "[]"


def test_encode_keeps_order_and_duplicates():
    encoded = encode_identifiers(
        [{"key": "a", "value": "1"}, Identifier(key="b", value="2"), {"key": "a", "value": "1"}]
    )
    assert json.loads(encoded) == [
        {"key": "a", "value": "1"},
        {"key": "b", "value": "2"},
        {"key": "a", "value": "1"},
    ]


def test_decode_skips_malformed_entries():
    raw = json.dumps([{"key": "a", "value": "1"}, {"key": "b"}, "junk", {"key": "n", "value": 7}])
    decoded = decode_identifiers(raw)
    assert decoded == [Identifier(key="a", value="1"), Identifier(key="n", value="7")]


def test_decode_handles_empty_and_invalid_blobs():
    assert decode_identifiers(None) == []
    assert decode_identifiers("") == []
    assert decode_identifiers("not json") == []
    assert decode_identifiers('{"key": "a"}') == []


def test_parse_identifier_rejects_incomplete_values():
    assert parse_identifier({"key": "a", "value": "1"}) == Identifier(key="a", value="1")
    assert parse_identifier({"key": "a", "value": ""}) is None
    assert parse_identifier({"key": "", "value": "1"}) is None
    assert parse_identifier({"key": "a"}) is None
    assert parse_identifier("a=1") is None
    assert parse_identifier(None) is None


def test_contains_identifier_matches_exact_pair():
    identifiers = [Identifier(key="a", value="1"), Identifier(key="b", value="2")]
    assert contains_identifier(identifiers, "a", "1")
    assert not contains_identifier(identifiers, "a", "2")
    assert not contains_identifier(identifiers, "c", "1")


def test_containment_needle_is_single_element_array():
    assert json.loads(containment_needle("k", "v")) == [{"key": "k", "value": "v"}]


def test_encode_stores_values_as_text_and_skips_malformed_entries():
    encoded = encode_identifiers(
        [{"key": "order_id", "value": 42}, {"key": "b"}, "junk", {"key": "ratio", "value": 0.5}]
    )
    assert json.loads(encoded) == [
        {"key": "order_id", "value": "42"},
        {"key": "ratio", "value": "0.5"},
    ]
