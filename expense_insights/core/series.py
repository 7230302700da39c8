from decimal import Decimal

from .bucketing import MONTH_ABBREVIATIONS, WEEKLY
from .categories import category_label

RECENT_LIMIT = 50


def row_label(key, granularity):
    if key.kind == "category":
        return category_label(key.name)
    if granularity == WEEKLY:
        return f"Week {key.period_index}, {key.year}"
    return f"{MONTH_ABBREVIATIONS[key.period_index - 1]} {key.year}"


def to_chart_series(rows, granularity):
    """
    Turn aggregation rows into positionally aligned chart labels and amounts.
    Args:
        rows: Category or bucket rows, already in display order.
        granularity: "weekly" or "monthly"; only used for bucket rows.
    Returns:
        Dict with "labels" (strings) and "amounts" (Decimals).
    """
    labels = []
    amounts = []
    for row in rows:
        labels.append(row_label(row.key, granularity))
        amounts.append(row.total)
    return {"labels": labels, "amounts": amounts}


def to_recent_table(records, limit=RECENT_LIMIT):
    ordered = sorted(records, key=lambda r: r.occurred_at, reverse=True)
    table = []
    for record in ordered[: max(0, limit)]:
        table.append(
            {
                "date": record.occurred_at.date().isoformat(),
                "description": record.description or "",
                "amount": record.amount,
                "category": record.category,
            }
        )
    return table


def as_amount(value):
    return float(Decimal(value).quantize(Decimal("0.01")))
