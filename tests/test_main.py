import io
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from pypdf import PdfReader

from expense_insights.config import Settings, get_settings
from expense_insights.core.ledger import MemoryLedgerStore
from expense_insights.core.schemas import TransactionRecord
from expense_insights.main import app, get_store

OWNER = {"X-Owner-Id": "u1", "X-Owner-Name": "alice"}


def _record(amount, when, category="food", owner="u1", record_id=None, description=""):
    return TransactionRecord(
        id=record_id or f"{owner}-{when.isoformat()}-{category}",
        owner_id=owner,
        amount=Decimal(amount),
        occurred_at=when,
        category=category,
        description=description,
    )


class SpyStore(MemoryLedgerStore):
    def __init__(self, records=None):
        super().__init__(records)
        self.find_calls = 0

    def find(self, owner_id, date_from=None, date_to=None):
        self.find_calls += 1
        return super().find(owner_id, date_from=date_from, date_to=date_to)


class BrokenStore(MemoryLedgerStore):
    def find(self, owner_id, date_from=None, date_to=None):
        raise ConnectionError("sheets unavailable")

    def sum(self, owner_id):
        raise ConnectionError("sheets unavailable")


@pytest.fixture
def use_store():
    settings = Settings()
    app.dependency_overrides[get_settings] = lambda: settings

    def _use(store):
        app.dependency_overrides[get_store] = lambda: store
        return TestClient(app)

    yield _use
    app.dependency_overrides.clear()


def test_health_and_categories(use_store):
    client = use_store(MemoryLedgerStore())

    assert client.get("/health").json()["status"] == "ok"
    assert client.get("/categories").json() == {
        "categories": ["food", "travel", "bills", "entertainment", "other"]
    }


def test_missing_owner_is_unauthorized(use_store):
    client = use_store(MemoryLedgerStore())

    assert client.get("/api/expenses").status_code == 401


def test_api_key_is_enforced_when_configured(use_store):
    client = use_store(MemoryLedgerStore())
    app.dependency_overrides[get_settings] = lambda: Settings(api_key="secret")

    assert client.get("/api/expenses", headers=OWNER).status_code == 401
    ok = client.get("/api/expenses", headers={**OWNER, "X-Api-Key": "secret"})
    assert ok.status_code == 200


def test_chart_data_monthly_series(use_store):
    store = MemoryLedgerStore(
        [
            _record("10", datetime(2024, 1, 12)),
            _record("15", datetime(2024, 2, 3), category="travel"),
        ]
    )
    client = use_store(store)

    res = client.get("/api/expenses/chartjs-data", headers=OWNER)

    assert res.status_code == 200
    body = res.json()
    assert body["chartData"] == {"labels": ["Jan 2024", "Feb 2024"], "amounts": [10.0, 15.0]}
    assert body["period"] == "monthly"
    assert body["totalExpenses"] == 2


def test_chart_data_caps_table_but_counts_everything(use_store):
    start = datetime(2024, 1, 1, 8, 0)
    records = [
        _record("2.00", start + timedelta(days=i), record_id=f"r{i}", description=f"item {i}")
        for i in range(60)
    ]
    client = use_store(MemoryLedgerStore(records))

    body = client.get("/api/expenses/chartjs-data?period=weekly", headers=OWNER).json()

    assert body["totalExpenses"] == 60
    assert len(body["tableData"]) == 50
    assert body["tableData"][0]["description"] == "item 59"
    assert body["tableData"][0]["amount"] == 2.0
    dates = [row["date"] for row in body["tableData"]]
    assert dates == sorted(dates, reverse=True)
    assert body["chartData"]["labels"][0] == "Week 0, 2024"


def test_invalid_period_is_rejected(use_store):
    store = SpyStore()
    client = use_store(store)

    res = client.get("/api/expenses/chartjs-data?period=daily", headers=OWNER)

    assert res.status_code == 400
    assert store.find_calls == 0
    assert client.get("/api/insights/trends?period=yearly", headers=OWNER).status_code == 400
    assert client.get("/api/expenses/chartjs-data?period=WEEKLY", headers=OWNER).status_code == 400
    assert store.find_calls == 0


def test_category_summary(use_store):
    store = MemoryLedgerStore(
        [
            _record("12.50", datetime(2024, 1, 1), record_id="a"),
            _record("7.00", datetime(2024, 1, 2), record_id="b"),
            _record("20.00", datetime(2024, 1, 3), category="travel", record_id="c"),
            _record("500.00", datetime(2024, 1, 3), category="bills", owner="u2"),
        ]
    )
    client = use_store(store)

    res = client.get("/api/insights/categories", headers=OWNER)

    assert res.json() == {"labels": ["Travel", "Food"], "amounts": [20.0, 19.5]}


def test_trends_use_trailing_window(use_store):
    now = datetime.now()
    store = MemoryLedgerStore(
        [
            _record("99.00", now - timedelta(days=400), record_id="old"),
            _record("5.00", now - timedelta(days=2), record_id="new"),
        ]
    )
    client = use_store(store)

    rows = client.get("/api/insights/trends", headers=OWNER).json()

    assert len(rows) == 1
    assert rows[0]["total"] == 5.0
    assert rows[0]["count"] == 1
    assert set(rows[0]) == {"year", "month", "total", "count"}


def test_total_endpoint(use_store):
    store = MemoryLedgerStore(
        [
            _record("1.25", datetime(2024, 1, 1), record_id="a"),
            _record("2.50", datetime(2024, 1, 2), record_id="b"),
        ]
    )
    client = use_store(store)

    assert client.get("/api/expenses/total", headers=OWNER).json() == {"totalSpent": 3.75}


def test_add_list_and_delete_expenses(use_store):
    client = use_store(MemoryLedgerStore())

    created = client.post(
        "/api/expenses",
        json={"amount": 12.5, "date": "2024-03-01", "category": "food", "description": "  Lunch "},
        headers=OWNER,
    )
    client.post(
        "/api/expenses",
        json={"amount": "3.00", "date": "2024-03-05", "category": "travel"},
        headers=OWNER,
    )

    assert created.status_code == 201
    assert created.json()["description"] == "Lunch"
    listed = client.get("/api/expenses", headers=OWNER).json()
    assert [row["category"] for row in listed] == ["travel", "food"]

    expense_id = created.json()["id"]
    assert client.delete(f"/api/expenses/{expense_id}", headers={"X-Owner-Id": "u2"}).status_code == 404
    assert client.delete(f"/api/expenses/{expense_id}", headers=OWNER).status_code == 200
    assert len(client.get("/api/expenses", headers=OWNER).json()) == 1


@pytest.mark.parametrize(
    "payload",
    [
        {"amount": -1, "date": "2024-03-01", "category": "food"},
        {"amount": 1.234, "date": "2024-03-01", "category": "food"},
        {"amount": 5, "date": "2024-03-01", "category": "gadgets"},
        {"amount": 5, "category": "food"},
        {"amount": 5, "date": "someday", "category": "food"},
    ],
)
def test_add_expense_validation(use_store, payload):
    store = MemoryLedgerStore()
    client = use_store(store)

    res = client.post("/api/expenses", json=payload, headers=OWNER)

    assert res.status_code == 400
    assert res.json()["detail"]
    assert store.find("u1") == []


def test_report_rejects_unsupported_type_before_querying(use_store):
    store = SpyStore([_record("1.00", datetime(2024, 1, 1))])
    client = use_store(store)

    assert client.post("/api/insights/report", json={"type": "email"}, headers=OWNER).status_code == 400
    assert client.post("/api/insights/report", json={}, headers=OWNER).status_code == 400
    assert client.post("/api/insights/report", headers=OWNER).status_code == 400
    assert store.find_calls == 0


def test_report_download(use_store):
    now = datetime.now()
    store = MemoryLedgerStore(
        [
            _record("20.00", now - timedelta(days=1), category="travel", record_id="a"),
            _record("19.50", now - timedelta(days=2), record_id="b"),
        ]
    )
    client = use_store(store)

    res = client.post("/api/insights/report", json={"type": "download"}, headers=OWNER)

    assert res.status_code == 200
    assert res.headers["content-type"] == "application/pdf"
    assert res.headers["content-disposition"] == "attachment; filename=expense-report.pdf"
    assert int(res.headers["content-length"]) == len(res.content)
    reader = PdfReader(io.BytesIO(res.content))
    text = "\n".join(page.extract_text() for page in reader.pages)
    assert "User: alice" in text
    assert "Total Spent: $39.50" in text
    assert "Travel: $20.00" in text


def test_report_for_owner_without_records(use_store):
    client = use_store(MemoryLedgerStore([_record("8.00", datetime.now(), owner="u2")]))

    res = client.post("/api/insights/report", json={"type": "download", "period": "weekly"}, headers=OWNER)

    reader = PdfReader(io.BytesIO(res.content))
    text = "\n".join(page.extract_text() for page in reader.pages).lower()
    assert "total spent: $0.00" in text
    assert "no categories" in text
    assert "no trends" in text
    assert "trends (weekly)" in text


def test_store_failure_is_reported(use_store):
    client = use_store(BrokenStore())

    assert client.get("/api/insights/categories", headers=OWNER).status_code == 500
    assert client.get("/api/expenses/total", headers=OWNER).status_code == 500
    assert client.post("/api/insights/report", json={"type": "download"}, headers=OWNER).status_code == 500
