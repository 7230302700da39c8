import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Tuple

from .aggregation import AggregationRow, aggregate_by_category, aggregate_by_time, grand_total
from .bucketing import MONTHLY

TREND_WINDOW_DAYS = 365

LOGGER = logging.getLogger("expense_insights.report")


@dataclass(frozen=True)
class ReportModel:
    owner_label: str
    generated_period: str
    grand_total: Decimal
    category_breakdown: Tuple[AggregationRow, ...]
    trend_breakdown: Tuple[AggregationRow, ...]


def trend_window_start(now=None, days=TREND_WINDOW_DAYS):
    now = now or datetime.now()
    return now - timedelta(days=days)


def build_report(
    owner_id,
    owner_label,
    granularity=MONTHLY,
    records=(),
    now=None,
    window_days=TREND_WINDOW_DAYS,
) -> ReportModel:
    """
    Assemble everything the report document needs for one owner.
    Args:
        owner_id: Owner whose records are aggregated; other owners' records are ignored.
        owner_label: Display name printed on the report.
        granularity: "weekly" or "monthly" trend buckets.
        records: Records already fetched from the store by the caller.
        now: Reference time for the trailing trend window. Defaults to the current time.
    Returns:
        ReportModel. An owner with no records gets a zero total and empty breakdowns.
    """
    records = list(records)
    window_start = trend_window_start(now, window_days)
    report = ReportModel(
        owner_label=owner_label,
        generated_period=granularity,
        grand_total=grand_total(owner_id, records),
        category_breakdown=tuple(aggregate_by_category(owner_id, records)),
        trend_breakdown=tuple(
            aggregate_by_time(owner_id, records, granularity, window_start=window_start)
        ),
    )
    LOGGER.info(
        "Report built: %s categories, %s %s buckets",
        len(report.category_breakdown),
        len(report.trend_breakdown),
        granularity,
    )
    return report
