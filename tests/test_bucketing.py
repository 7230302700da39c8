from datetime import datetime

import pytest

from expense_insights.core.bucketing import BucketKey, bucket_of, parse_granularity, week_of_year
from expense_insights.core.errors import ValidationError


def test_monthly_bucket_uses_calendar_month():
    key = bucket_of(datetime(2024, 2, 29, 23, 59), "monthly")

    assert key == BucketKey(2024, 2, "monthly")


def test_weekly_bucket_is_sunday_based_and_zero_indexed():
    # 2024-01-01 is a Monday; the first Sunday is 2024-01-07.
    assert week_of_year(datetime(2024, 1, 1)) == 0
    assert week_of_year(datetime(2024, 1, 6)) == 0
    assert week_of_year(datetime(2024, 1, 7)) == 1
    # 2023-01-01 is itself a Sunday.
    assert week_of_year(datetime(2023, 1, 1)) == 1
    assert bucket_of(datetime(2024, 12, 31), "weekly") == BucketKey(2024, 52, "weekly")


def test_bucket_keys_order_by_year_then_period():
    keys = [
        BucketKey(2024, 1, "monthly"),
        BucketKey(2023, 12, "monthly"),
        BucketKey(2024, 0, "monthly"),
    ]

    assert sorted(keys) == [
        BucketKey(2023, 12, "monthly"),
        BucketKey(2024, 0, "monthly"),
        BucketKey(2024, 1, "monthly"),
    ]


def test_parse_granularity_defaults_and_rejects():
    assert parse_granularity(None) == "monthly"
    assert parse_granularity("") == "monthly"
    assert parse_granularity("weekly") == "weekly"
    with pytest.raises(ValidationError):
        parse_granularity("daily")


@pytest.mark.parametrize("value", ["Weekly", "WEEKLY", " monthly ", "Monthly"])
def test_parse_granularity_is_exact(value):
    with pytest.raises(ValidationError):
        parse_granularity(value)
