import json

import pytest

from khetismart.cache.codec import CacheEntry, decode, encode
from khetismart.results import ErrorKind


@pytest.mark.parametrize(
    "data",
    [
        "Prices will rise slightly before Tihar.",
        [{"date": "Oct 12", "price": 60.0}, {"date": "Oct 13", "price": 62.5}],
        {
            "items": [
                {
                    "id": "tomato-big",
                    "name": "Tomato Big",
                    "price": 65.0,
                    "unit": "kg",
                    "trend": "up",
                    "category": "Vegetable",
                }
            ],
            "sources": [{"title": "Kalimati", "uri": "https://kalimatimarket.gov.np"}],
        },
        [],
        "टमाटरको भाउ बढ्नेछ",
    ],
)
def test_decode_inverts_encode(data):
    entry = CacheEntry(timestamp=1_700_000_000_000, data=data)

    decoded = decode(encode(entry))

    assert decoded.ok
    assert decoded.value == entry


def test_encode_writes_timestamp_and_data_only():
    entry = CacheEntry(timestamp=42, data=["a"])

    assert json.loads(encode(entry)) == {"timestamp": 42, "data": ["a"]}


@pytest.mark.parametrize(
    "raw",
    [
        None,
        "",
        "not json",
        "{",
        '{"timestamp": 1, "data": [1, 2',
        "[1, 2, 3]",
        '"just a string"',
        "null",
        '{"data": []}',
        '{"timestamp": 1}',
        '{"timestamp": "1700000000000", "data": []}',
        '{"timestamp": 1.5, "data": []}',
        '{"timestamp": true, "data": []}',
        '{"timestamp": 1, "data": [], "extra": 1}',
        "[" * 100_000,
        "\x00\xff�",
    ],
)
def test_decode_reports_failure_instead_of_raising(raw):
    result = decode(raw)

    assert not result.ok
    assert result.kind is ErrorKind.DECODE


def test_decode_rejects_truncated_envelopes():
    encoded = encode(CacheEntry(timestamp=1_700_000_000_000, data=[{"date": "Oct 1", "price": 5}]))

    for cut in range(1, len(encoded)):
        assert not decode(encoded[:cut]).ok


def test_cache_entry_is_immutable():
    entry = CacheEntry(timestamp=1, data="x")

    with pytest.raises(Exception):
        entry.timestamp = 2
