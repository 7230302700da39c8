from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%m/%d/%Y",
    "%d-%m-%Y",
    "%m-%d-%Y",
)

CategoryName = Literal["food", "travel", "bills", "entertainment", "other"]


def parse_timestamp(value):
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if value is None:
        return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(s)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue
    return None


def parse_amount(value):
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = repr(value)
    s = str(value).strip()
    if not s:
        return None
    s = s.replace(" ", "").lstrip("$")
    if "," in s and "." in s:
        s = s.replace(",", "")
    else:
        s = s.replace(",", ".")
    try:
        return Decimal(s)
    except InvalidOperation:
        return None


def _coerce_timestamp(value):
    if isinstance(value, str):
        parsed = parse_timestamp(value)
        if parsed is None:
            raise ValueError(f"Unrecognized date: {value!r}")
        return parsed
    return value


class TransactionRecord(BaseModel):
    """A stored expense. Read-only to the aggregation core."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Store-assigned identifier.")
    owner_id: str = Field(..., description="Owner the expense belongs to.")
    amount: Decimal = Field(..., ge=0, description="Non-negative amount.")
    occurred_at: datetime = Field(..., description="When the expense happened, used as-is.")
    category: CategoryName
    description: Optional[str] = None

    @field_validator("occurred_at", mode="before")
    @classmethod
    def parse_occurred_at(cls, value):
        return _coerce_timestamp(value)


class ExpenseCreate(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    date: datetime
    category: CategoryName
    description: Optional[str] = ""

    @field_validator("date", mode="before")
    @classmethod
    def parse_date(cls, value):
        return _coerce_timestamp(value)

    @field_validator("description")
    @classmethod
    def trim_description(cls, value):
        return (value or "").strip()


class ReportRequest(BaseModel):
    type: Optional[str] = None
    period: str = "monthly"
