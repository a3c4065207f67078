"""Tests for timestamp parsing."""

from datetime import UTC, datetime, timedelta, timezone

import pytest

from crm_webhooks.core.time_utils import parse_datetime, parse_datetime_or_none

EXPECTED = datetime(2026, 10, 18, 12, 0, tzinfo=UTC)


@pytest.mark.parametrize(
    "value",
    [
        "2026-10-18T12:00:00Z",
        "2026-10-18T12:00:00+00:00",
        "2026-10-18T09:00:00-03:00",
        "2026-10-18T12:00:00",
        int(EXPECTED.timestamp()),
        int(EXPECTED.timestamp()) * 1000,
        str(int(EXPECTED.timestamp()) * 1000),
        datetime(2026, 10, 18, 14, 0, tzinfo=timezone(timedelta(hours=2))),
    ],
)
def test_parse_datetime_shapes(value):
    assert parse_datetime(value) == EXPECTED


def test_parse_datetime_empty_values():
    assert parse_datetime(None) is None
    assert parse_datetime("") is None


@pytest.mark.parametrize("value", ["not a date", True, [2026]])
def test_parse_datetime_rejects_garbage(value):
    with pytest.raises(ValueError):
        parse_datetime(value)


def test_parse_datetime_or_none_swallows_garbage():
    assert parse_datetime_or_none("not a date") is None
    assert parse_datetime_or_none("2026-10-18T12:00:00Z") == EXPECTED
