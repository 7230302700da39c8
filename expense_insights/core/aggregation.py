from dataclasses import dataclass
from decimal import Decimal
from typing import List, Union

from .bucketing import BucketKey, bucket_of


@dataclass(frozen=True)
class CategoryKey:
    name: str
    kind = "category"


@dataclass(frozen=True)
class AggregationRow:
    key: Union[CategoryKey, BucketKey]
    total: Decimal
    count: int


def _owned(owner_id, records):
    return [r for r in records if r.owner_id == owner_id]


def _group(records, key_of):
    totals = {}
    counts = {}
    for record in records:
        key = key_of(record)
        if key not in totals:
            totals[key] = Decimal("0")
            counts[key] = 0
        totals[key] += record.amount
        counts[key] += 1
    return [AggregationRow(key, totals[key], counts[key]) for key in totals]


def grand_total(owner_id, records) -> Decimal:
    total = Decimal("0")
    for record in _owned(owner_id, records):
        total += record.amount
    return total


def aggregate_by_category(owner_id, records) -> List[AggregationRow]:
    """Category totals for one owner, largest first.

    Categories with no records produce no row. Ties keep the order in which
    each category first appears in ``records``.
    """
    rows = _group(_owned(owner_id, records), lambda r: CategoryKey(r.category))
    return sorted(rows, key=lambda row: row.total, reverse=True)


def aggregate_by_time(
    owner_id,
    records,
    granularity,
    window_start=None,
) -> List[AggregationRow]:
    """Bucket totals for one owner in chronological order.

    When ``window_start`` is given, records that occurred before it are
    dropped before grouping.
    """
    owned = _owned(owner_id, records)
    if window_start is not None:
        owned = [r for r in owned if r.occurred_at >= window_start]
    rows = _group(owned, lambda r: bucket_of(r.occurred_at, granularity))
    return sorted(rows, key=lambda row: row.key)
