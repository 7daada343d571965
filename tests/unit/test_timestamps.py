from datetime import datetime, timezone

import pytest

from services.timestamps import SENTINEL, parse_timestamp, record_timestamp

EXPECTED = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class _StoreTimestamp:
    def to_datetime(self):
        return EXPECTED


@pytest.mark.parametrize(
    "value",
    [
        EXPECTED,
        datetime(2024, 3, 1, 12, 0),
        "2024-03-01T12:00:00Z",
        "2024-03-01T12:00:00+00:00",
        EXPECTED.timestamp(),
        EXPECTED.timestamp() * 1000,
        str(int(EXPECTED.timestamp())),
        {"seconds": int(EXPECTED.timestamp()), "nanoseconds": 0},
        _StoreTimestamp(),
    ],
)
def test_supported_shapes_parse_to_the_same_instant(value):
    instant, ok = parse_timestamp(value)
    assert ok is True
    assert instant == EXPECTED


@pytest.mark.parametrize(
    "value",
    [None, "", "not a date", {"foo": 1}, [], True, float("nan"), -5, object()],
)
def test_unparseable_values_yield_sentinel(value):
    instant, ok = parse_timestamp(value)
    assert ok is False
    assert instant == SENTINEL


def test_record_timestamp_falls_back_to_created_at():
    record = {"timestamp": "garbage", "created_at": "2024-03-01T12:00:00Z"}
    assert record_timestamp(record) == (EXPECTED, True)


def test_record_timestamp_without_any_parseable_field():
    assert record_timestamp({"timestamp": None}) == (SENTINEL, False)


@pytest.mark.parametrize(
    "value",
    [
        "0001-01-01T00:00:00+05:00",
        "9999-12-31T23:59:59-05:00",
        datetime.fromisoformat("0001-01-01T00:00:00+05:00"),
    ],
)
def test_offsets_outside_the_datetime_range_yield_sentinel(value):
    assert parse_timestamp(value) == (SENTINEL, False)


def test_out_of_range_timestamp_falls_back_to_created_at():
    record = {"timestamp": "9999-12-31T23:59:59-05:00", "created_at": "2024-03-01T12:00:00Z"}
    assert record_timestamp(record) == (EXPECTED, True)
