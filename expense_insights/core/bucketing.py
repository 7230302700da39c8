from dataclasses import dataclass

from .errors import ValidationError

WEEKLY = "weekly"
MONTHLY = "monthly"
GRANULARITIES = (WEEKLY, MONTHLY)

MONTH_ABBREVIATIONS = [
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
]


@dataclass(frozen=True, order=True)
class BucketKey:
    """A week or a month tagged with its calendar year.

    Ordered by (year, period_index); the granularity is compared last and is
    the same for every key produced by a single aggregation.
    """

    year: int
    period_index: int
    granularity: str = MONTHLY
    kind = "bucket"


def parse_granularity(value, default=MONTHLY):
    if value is None or value == "":
        return default
    if value not in GRANULARITIES:
        raise ValidationError('Invalid period. Must be "weekly" or "monthly"')
    return value


def week_of_year(timestamp):
    # Sunday-based, 0-indexed: days before the first Sunday of the year are week 0.
    return int(timestamp.strftime("%U"))


def bucket_of(timestamp, granularity):
    if granularity == WEEKLY:
        return BucketKey(timestamp.year, week_of_year(timestamp), WEEKLY)
    return BucketKey(timestamp.year, timestamp.month, MONTHLY)
