import asyncio
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Body, Depends, FastAPI, Header, HTTPException, Query, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as SchemaError

from expense_insights.config import SHEETS_BACKEND, clean_env, get_settings
from expense_insights.core.aggregation import aggregate_by_category, aggregate_by_time
from expense_insights.core.bucketing import WEEKLY, parse_granularity
from expense_insights.core.categories import FIXED_CATEGORIES
from expense_insights.core.errors import RenderError, ValidationError
from expense_insights.core.ledger import MemoryLedgerStore, SheetsLedgerStore
from expense_insights.core.renderer import REPORT_FILENAME, ReportRenderer
from expense_insights.core.report import build_report, trend_window_start
from expense_insights.core.schemas import ExpenseCreate, ReportRequest
from expense_insights.core.series import as_amount, to_chart_series, to_recent_table

logging.basicConfig(level=get_settings().log_level)
LOGGER = logging.getLogger("expense_insights")


@dataclass(frozen=True)
class Owner:
    id: str
    label: str


@lru_cache(maxsize=1)
def get_store():
    settings = get_settings()
    if settings.ledger_backend == SHEETS_BACKEND:
        LOGGER.info("Using Sheets ledger %s", settings.spreadsheet_id)
        return SheetsLedgerStore(spreadsheet_id=settings.spreadsheet_id)
    LOGGER.info("Using in-memory ledger")
    return MemoryLedgerStore()


def require_api_key(
    x_api_key: str = Header(None, alias="X-Api-Key"),
    settings=Depends(get_settings),
):
    if settings.api_key and x_api_key != settings.api_key:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


def current_owner(
    x_owner_id: str = Header(None, alias="X-Owner-Id"),
    x_owner_name: str = Header(None, alias="X-Owner-Name"),
):
    owner_id = clean_env(x_owner_id)
    if not owner_id:
        raise HTTPException(status_code=401, detail="Missing owner identity")
    return Owner(id=owner_id, label=clean_env(x_owner_name) or owner_id)


def _require_period(value):
    try:
        return parse_granularity(value)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))


def _fetch(store, owner_id, **window):
    try:
        return store.find(owner_id, **window)
    except Exception as exc:
        LOGGER.exception("Failed to fetch ledger data: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch ledger data")


def _record_json(record):
    return {
        "id": record.id,
        "date": record.occurred_at.isoformat(),
        "amount": as_amount(record.amount),
        "category": record.category,
        "description": record.description or "",
    }


def _first_error(exc):
    errors = exc.errors()
    if not errors:
        return "Invalid expense"
    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()))
    return f"{field}: {first.get('msg')}" if field else first.get("msg")


app = FastAPI(title="Expense Insights", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request, call_next):
    LOGGER.info(f"Request: {request.method} {request.url}")
    try:
        response = await call_next(request)
        LOGGER.info(f"Response: {response.status_code}")
        return response
    except Exception as e:
        LOGGER.error(f"Request failed: {e}")
        raise


@app.get("/health")
def health(settings=Depends(get_settings)):
    return {"status": "ok", "backend": settings.ledger_backend}


@app.get("/categories")
def list_categories():
    return {"categories": FIXED_CATEGORIES}


@app.get("/api/expenses", dependencies=[Depends(require_api_key)])
def list_expenses(owner: Owner = Depends(current_owner), store=Depends(get_store)):
    records = _fetch(store, owner.id)
    ordered = sorted(records, key=lambda r: r.occurred_at, reverse=True)
    return [_record_json(r) for r in ordered]


@app.post("/api/expenses", dependencies=[Depends(require_api_key)])
def add_expense(
    response: Response,
    payload: dict = Body(...),
    owner: Owner = Depends(current_owner),
    store=Depends(get_store),
):
    try:
        expense = ExpenseCreate.model_validate(payload)
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=_first_error(exc))

    try:
        result = store.append(owner.id, expense)
    except Exception as exc:
        LOGGER.exception("Error adding expense: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to write expense to ledger")

    response.status_code = 201 if result["status"] == "appended" else 200
    return _record_json(result["record"])


@app.delete("/api/expenses/{expense_id}", dependencies=[Depends(require_api_key)])
def delete_expense(expense_id: str, owner: Owner = Depends(current_owner), store=Depends(get_store)):
    try:
        deleted = store.delete(owner.id, expense_id)
    except Exception as exc:
        LOGGER.exception("Error deleting expense: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to delete expense")
    if not deleted:
        raise HTTPException(status_code=404, detail="Expense not found")
    return {"deleted": expense_id}


@app.get("/api/expenses/total", dependencies=[Depends(require_api_key)])
def expenses_total(owner: Owner = Depends(current_owner), store=Depends(get_store)):
    try:
        total = store.sum(owner.id)
    except Exception as exc:
        LOGGER.exception("Failed to fetch ledger total: %s", exc)
        raise HTTPException(status_code=500, detail="Failed to fetch ledger data")
    return {"totalSpent": as_amount(total)}


@app.get("/api/expenses/chartjs-data", dependencies=[Depends(require_api_key)])
def chart_data(
    period: str = Query("monthly"),
    owner: Owner = Depends(current_owner),
    store=Depends(get_store),
    settings=Depends(get_settings),
):
    granularity = _require_period(period)
    LOGGER.info("Chart data requested for period: %s", granularity)

    records = _fetch(store, owner.id)
    series = to_chart_series(aggregate_by_time(owner.id, records, granularity), granularity)
    table = to_recent_table(records, limit=settings.recent_limit)

    return {
        "chartData": {
            "labels": series["labels"],
            "amounts": [as_amount(a) for a in series["amounts"]],
        },
        "tableData": [dict(row, amount=as_amount(row["amount"])) for row in table],
        "period": granularity,
        "totalExpenses": len(records),
    }


@app.get("/api/insights/categories", dependencies=[Depends(require_api_key)])
def category_summary(owner: Owner = Depends(current_owner), store=Depends(get_store)):
    records = _fetch(store, owner.id)
    rows = aggregate_by_category(owner.id, records)
    if not rows:
        LOGGER.info("No expenses found for owner: %s", owner.id)
    series = to_chart_series(rows, None)
    return {
        "labels": series["labels"],
        "amounts": [as_amount(a) for a in series["amounts"]],
    }


@app.get("/api/insights/trends", dependencies=[Depends(require_api_key)])
def spending_trends(
    period: str = Query("monthly"),
    owner: Owner = Depends(current_owner),
    store=Depends(get_store),
    settings=Depends(get_settings),
):
    granularity = _require_period(period)
    window_start = trend_window_start(days=settings.trend_window_days)
    records = _fetch(store, owner.id, date_from=window_start)
    rows = aggregate_by_time(owner.id, records, granularity, window_start=window_start)

    index_name = "week" if granularity == WEEKLY else "month"
    return [
        {
            "year": row.key.year,
            index_name: row.key.period_index,
            "total": as_amount(row.total),
            "count": row.count,
        }
        for row in rows
    ]


@app.post("/api/insights/report", dependencies=[Depends(require_api_key)])
async def generate_report(
    payload: Optional[ReportRequest] = None,
    owner: Owner = Depends(current_owner),
    store=Depends(get_store),
    settings=Depends(get_settings),
):
    if payload is None or payload.type != "download":
        raise HTTPException(status_code=400, detail="Only download type is supported")
    granularity = _require_period(payload.period)

    LOGGER.info("Report generation started for owner: %s", owner.id)
    records = await run_in_threadpool(_fetch, store, owner.id)
    report = build_report(
        owner.id,
        owner.label,
        granularity,
        records,
        window_days=settings.trend_window_days,
    )

    renderer = ReportRenderer()
    try:
        pdf = await run_in_threadpool(renderer.render, report)
    except asyncio.CancelledError:
        renderer.abort()
        raise
    except RenderError as exc:
        LOGGER.exception("Report generation error: %s", exc)
        raise HTTPException(status_code=500, detail=f"Report generation failed: {exc}")

    LOGGER.info("PDF generated, buffer size: %s", len(pdf))
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={
            "Content-Disposition": f"attachment; filename={REPORT_FILENAME}",
            "Content-Length": str(len(pdf)),
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("expense_insights.main:app", host="0.0.0.0", port=get_settings().port, log_level="info")
