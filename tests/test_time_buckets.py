from datetime import datetime, timedelta

import pytest

from app.services.time_buckets import (
    DAY,
    HOUR,
    MINUTE,
    resolve_time_range,
    truncate,
    widget_range_start,
)

NOW = datetime(2025, 1, 10, 12, 34, 56)


@pytest.mark.parametrize(
    "label, start, bucket",
    [
        ("hour", NOW - timedelta(hours=1), MINUTE),
        ("day", datetime(2025, 1, 10), MINUTE),
        ("week", NOW - timedelta(days=7), HOUR),
        ("month", NOW - timedelta(days=30), DAY),
    ],
)
def test_known_ranges(label, start, bucket):
    window = resolve_time_range(label, NOW)
    assert window.label == label
    assert window.start == start
    assert window.end == NOW
    assert window.bucket == bucket


@pytest.mark.parametrize("label", ["quarter", "", None, "DAYS"])
def test_unknown_range_behaves_like_day(label):
    window = resolve_time_range(label, NOW)
    assert window.label == "day"
    assert window.start == datetime(2025, 1, 10)
    assert window.bucket == MINUTE


def test_labels_are_case_insensitive():
    assert resolve_time_range("WEEK", NOW).bucket == HOUR


def test_truncate_to_bucket():
    ts = datetime(2025, 1, 10, 10, 2, 45, 123)
    assert truncate(ts, MINUTE) == datetime(2025, 1, 10, 10, 2)
    assert truncate(ts, HOUR) == datetime(2025, 1, 10, 10, 0)
    assert truncate(ts, DAY) == datetime(2025, 1, 10)


def test_widget_range_start():
    assert widget_range_start("1h", NOW) == NOW - timedelta(hours=1)
    assert widget_range_start("6h", NOW) == NOW - timedelta(hours=6)
    assert widget_range_start("30d", NOW) == NOW - timedelta(days=30)
    assert widget_range_start(None, NOW) == NOW - timedelta(hours=24)
    assert widget_range_start("day", NOW) == datetime(2025, 1, 10)
    assert widget_range_start("all", NOW) is None
