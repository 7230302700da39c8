import logging
import os
import re
import threading
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import ValidationError as SchemaError

from .schemas import TransactionRecord, parse_amount, parse_timestamp

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
DEFAULT_HEADERS = [
    "Id",
    "Owner",
    "Date",
    "Description",
    "Amount",
    "Category",
]

_MONTH_TAB = re.compile(r"^\d{4}-\d{2}$")


def _normalize_text(value):
    if value is None:
        return ""
    return " ".join(str(value).strip().split())


def _naive(value):
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _normalize_timestamp(value):
    parsed = parse_timestamp(value)
    if parsed:
        return _naive(parsed).isoformat()
    if value is None:
        return ""
    return str(value).strip()


def _normalize_amount(value):
    parsed = parse_amount(value)
    if parsed is None:
        return None
    return parsed.quantize(Decimal("0.01"))


def _amounts_match(left, right):
    left_norm = _normalize_amount(left)
    right_norm = _normalize_amount(right)
    if left_norm is not None and right_norm is not None:
        return left_norm == right_norm
    return _normalize_text(left).lower() == _normalize_text(right).lower()


def _row_is_header(row):
    if len(row) < len(DEFAULT_HEADERS):
        return False
    return [_normalize_text(cell).lower() for cell in row[: len(DEFAULT_HEADERS)]] == [
        cell.lower() for cell in DEFAULT_HEADERS
    ]


def _in_range(occurred_at, date_from=None, date_to=None):
    if date_from is not None and occurred_at < date_from:
        return False
    if date_to is not None and occurred_at > date_to:
        return False
    return True


def get_monthly_sheet_name(when=None):
    """
    Returns the sheet name in 'YYYY-MM' format.
    """
    stamp = parse_timestamp(when) or datetime.now()
    return stamp.strftime("%Y-%m")


def get_sheets_service():
    import google.auth
    from googleapiclient.discovery import build

    credentials, _ = google.auth.default(scopes=SCOPES)
    return build("sheets", "v4", credentials=credentials)


def new_record(owner_id, expense, record_id=None):
    return TransactionRecord(
        id=record_id or uuid.uuid4().hex,
        owner_id=owner_id,
        amount=expense.amount,
        occurred_at=_naive(expense.date),
        category=expense.category,
        description=expense.description or "",
    )


class MemoryLedgerStore:
    """Process-local ledger. Records are kept per owner in insertion order."""

    def __init__(self, records=None):
        self._lock = threading.RLock()
        self._records = {}
        for record in records or []:
            self._records.setdefault(record.owner_id, []).append(record)

    def find(self, owner_id, date_from=None, date_to=None):
        with self._lock:
            owned = list(self._records.get(owner_id, []))
        return [r for r in owned if _in_range(r.occurred_at, date_from, date_to)]

    def sum(self, owner_id):
        total = Decimal("0")
        for record in self.find(owner_id):
            total += record.amount
        return total

    def append(self, owner_id, expense):
        record = new_record(owner_id, expense)
        with self._lock:
            self._records.setdefault(owner_id, []).append(record)
        return {"status": "appended", "record": record}

    def delete(self, owner_id, expense_id):
        with self._lock:
            owned = self._records.get(owner_id, [])
            for index, record in enumerate(owned):
                if record.id == expense_id:
                    del owned[index]
                    return True
        return False


class SheetsLedgerStore:
    """Google Sheets ledger with one 'YYYY-MM' tab per month."""

    def __init__(self, service=None, spreadsheet_id=None):
        self._service = service
        self._spreadsheet_id = spreadsheet_id
        self._logger = logging.getLogger("expense_insights.ledger")

    def _ensure_service(self):
        if self._service is not None:
            return self._service
        try:
            self._service = get_sheets_service()
        except Exception as exc:
            raise RuntimeError(
                "google.auth and googleapiclient are required to initialize Sheets access"
            ) from exc
        return self._service

    def _ensure_spreadsheet_id(self):
        if not self._spreadsheet_id:
            self._spreadsheet_id = os.getenv("LEDGER_SPREADSHEET_ID")
        if not self._spreadsheet_id:
            raise RuntimeError("LEDGER_SPREADSHEET_ID is not set")
        return self._spreadsheet_id

    def _sheet_names(self, service, spreadsheet_id):
        spreadsheet = service.spreadsheets().get(spreadsheetId=spreadsheet_id).execute()
        return [
            sheet.get("properties", {}).get("title", "")
            for sheet in spreadsheet.get("sheets", [])
        ]

    def _ensure_month_sheet(self, service, spreadsheet_id, month_name, sheet_names):
        if month_name in sheet_names:
            return False
        batch_update = {"requests": [{"addSheet": {"properties": {"title": month_name}}}]}
        service.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body=batch_update,
        ).execute()

        service.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=f"'{month_name}'!A1",
            valueInputOption="USER_ENTERED",
            body={"values": [DEFAULT_HEADERS]},
        ).execute()
        self._logger.info("Created month tab '%s'", month_name)
        return True

    def _read_rows(self, service, spreadsheet_id, sheet_name):
        values = (
            service.spreadsheets()
            .values()
            .get(
                spreadsheetId=spreadsheet_id,
                range=f"'{sheet_name}'!A:F",
            )
            .execute()
            .get("values", [])
        )
        start_index = 1 if values and _row_is_header(values[0]) else 0
        rows = []
        for i, row in enumerate(values[start_index:]):
            cells = [str(cell).strip() for cell in row] + [""] * (len(DEFAULT_HEADERS) - len(row))
            if not any(cells[: len(DEFAULT_HEADERS)]):
                continue
            # 1-based physical row number, header included
            rows.append((start_index + i + 1, cells))
        return rows

    def _to_record(self, cells, sheet_name, row_number):
        occurred_at = parse_timestamp(cells[2])
        try:
            return TransactionRecord(
                id=cells[0],
                owner_id=cells[1],
                occurred_at=_naive(occurred_at) if occurred_at else None,
                description=cells[3],
                amount=parse_amount(cells[4]),
                category=cells[5].lower(),
            )
        except SchemaError as exc:
            self._logger.warning(
                "Skipping malformed row %s in '%s': %s", row_number, sheet_name, exc
            )
            return None

    def _month_tabs(self, sheet_names, date_from=None, date_to=None):
        low = date_from.strftime("%Y-%m") if date_from else None
        high = date_to.strftime("%Y-%m") if date_to else None
        tabs = []
        for name in sheet_names:
            if not _MONTH_TAB.match(name):
                continue
            if low and name < low:
                continue
            if high and name > high:
                continue
            tabs.append(name)
        return sorted(tabs)

    def find(self, owner_id, date_from=None, date_to=None):
        service = self._ensure_service()
        spreadsheet_id = self._ensure_spreadsheet_id()

        records = []
        sheet_names = self._sheet_names(service, spreadsheet_id)
        for sheet_name in self._month_tabs(sheet_names, date_from, date_to):
            for row_number, cells in self._read_rows(service, spreadsheet_id, sheet_name):
                if cells[1] != owner_id:
                    continue
                record = self._to_record(cells, sheet_name, row_number)
                if record and _in_range(record.occurred_at, date_from, date_to):
                    records.append(record)
        return records

    def sum(self, owner_id):
        total = Decimal("0")
        for record in self.find(owner_id):
            total += record.amount
        return total

    def is_duplicate(self, owner_id, record, sheet_name):
        service = self._ensure_service()
        spreadsheet_id = self._ensure_spreadsheet_id()

        target_date = _normalize_timestamp(record.occurred_at)
        target_desc = _normalize_text(record.description)
        for _, cells in self._read_rows(service, spreadsheet_id, sheet_name):
            if (
                cells[1] == owner_id
                and _normalize_timestamp(cells[2]) == target_date
                and _normalize_text(cells[3]) == target_desc
                and _amounts_match(cells[4], record.amount)
            ):
                return cells[0]
        return None

    def append(self, owner_id, expense):
        service = self._ensure_service()
        spreadsheet_id = self._ensure_spreadsheet_id()

        record = new_record(owner_id, expense)
        month_name = get_monthly_sheet_name(when=record.occurred_at)
        created = self._ensure_month_sheet(
            service,
            spreadsheet_id,
            month_name,
            self._sheet_names(service, spreadsheet_id),
        )
        if not created:
            existing_id = self.is_duplicate(owner_id, record, month_name)
            if existing_id:
                self._logger.info(
                    "Duplicate skipped: %s %s %s",
                    record.occurred_at,
                    record.amount,
                    record.description,
                )
                return {"status": "duplicate", "record": record.model_copy(update={"id": existing_id})}

        row = [
            record.id,
            owner_id,
            _normalize_timestamp(record.occurred_at),
            record.description,
            str(record.amount),
            record.category,
        ]
        service.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=f"'{month_name}'!A1",
            valueInputOption="RAW",
            body={"values": [row]},
        ).execute()

        self._logger.info("Ledger appended: %s %s %s", record.occurred_at, record.amount, record.description)
        return {"status": "appended", "record": record}

    def delete(self, owner_id, expense_id):
        service = self._ensure_service()
        spreadsheet_id = self._ensure_spreadsheet_id()

        sheet_names = self._sheet_names(service, spreadsheet_id)
        for sheet_name in self._month_tabs(sheet_names):
            for row_number, cells in self._read_rows(service, spreadsheet_id, sheet_name):
                if cells[0] == expense_id and cells[1] == owner_id:
                    service.spreadsheets().values().clear(
                        spreadsheetId=spreadsheet_id,
                        range=f"'{sheet_name}'!A{row_number}:F{row_number}",
                        body={},
                    ).execute()
                    self._logger.info("Ledger row cleared: '%s'!%s", sheet_name, row_number)
                    return True
        return False
