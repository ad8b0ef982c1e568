"""
Normalization of loosely typed Siigo purchase records.

Dates and amounts are extracted by ordered lists of strategies. Each strategy
inspects the raw record and returns a value or None; the first non-None value
wins. Records without a usable date are dropped, records without a usable
amount are kept with amount 0.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar

from loguru import logger

from .models import NormalizedInvoice, RawInvoiceRecord

T = TypeVar("T")
Strategy = Callable[[RawInvoiceRecord], Optional[T]]

DATE_FIELDS = (
    "date",
    "created",
    "creation_date",
    "created_at",
    "issue_date",
    "issueDate",
    "fecha",
    "fecha_emision",
    "emitted_at",
    "datetime",
    "timestamp",
)
AMOUNT_FIELDS = (
    "total",
    "amount",
    "value",
    "subtotal",
    "monto",
    "total_amount",
    "net_total",
)
DATE_FORMATS = (
    "%d/%m/%Y",
    "%Y/%m/%d",
    "%d-%m-%Y",
    "%Y%m%d",
    "%d/%m/%Y %H:%M:%S",
    "%a, %d %b %Y %H:%M:%S %z",
    "%d %b %Y",
    "%b %d, %Y",
)

YEAR_MONTH = re.compile(r"^(\d{4})-(\d{2})$")
ISO_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
EPOCH_DIGITS = re.compile(r"^\d{10,13}$")
NON_NUMERIC = re.compile(r"[^\d.\-]")

UNKNOWN_SUPPLIER_ID = "unknown"
UNKNOWN_SUPPLIER_NAME = "Unknown supplier"


def first_success(strategies: Sequence[Strategy[T]], record: RawInvoiceRecord) -> Optional[T]:
    """Run strategies in order and return the first non-None result."""
    for strategy in strategies:
        value = strategy(record)
        if value is not None:
            return value
    return None


# ---------- Value coercion ----------


def parse_date_value(value: Any) -> Optional[date]:
    """Parse a single date-like value (string, epoch number, date)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return _from_epoch(value)
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    match = YEAR_MONTH.match(text)
    if match:
        if not 1 <= int(match.group(2)) <= 12:
            return None
        return _month_start(match.group(1), match.group(2))

    if ISO_PREFIX.match(text):
        parsed = _from_iso(text)
        if parsed:
            return parsed

    if EPOCH_DIGITS.match(text):
        return _from_epoch(int(text))

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Coerce numbers and numeric strings ("$1,234.50") to Decimal."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    if isinstance(value, str):
        cleaned = NON_NUMERIC.sub("", value)
        if not cleaned:
            return None
        try:
            result = Decimal(cleaned)
        except InvalidOperation:
            return None
        return result if result.is_finite() else None
    return None


def _from_iso(text: str) -> Optional[date]:
    candidate = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(candidate).date()
    except ValueError:
        pass
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _from_epoch(value: float) -> Optional[date]:
    # 10 digits are seconds, anything longer is milliseconds.
    seconds = value / 1000 if abs(value) >= 10**10 else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc).date()
    except (OverflowError, OSError, ValueError):
        return None


def _month_start(year: Any, month: Any) -> Optional[date]:
    try:
        y = int(year)
        m = int(month)
    except (TypeError, ValueError):
        return None
    # Structured year/month fields clamp the month; "YYYY-MM" strings do not.
    m = max(1, min(12, m))
    try:
        return date(y, m, 1)
    except ValueError:
        return None


def _pick(mapping: Any, *keys: str) -> Any:
    if not isinstance(mapping, dict):
        return None
    for key in keys:
        value = mapping.get(key)
        if value not in (None, ""):
            return value
    return None


# ---------- Date strategies ----------


def _date_from_period(record: RawInvoiceRecord) -> Optional[date]:
    period = record.get("period")
    year = _pick(period, "year", "Y", "ano")
    month = _pick(period, "month", "M")
    if year is None or month is None:
        return None
    return _month_start(year, month)


def _date_from_year_month(record: RawInvoiceRecord) -> Optional[date]:
    year = _pick(record, "year", "ano", "yr")
    month = _pick(record, "month", "mes", "mon")
    if year is None or month is None:
        return None
    return _month_start(year, month)


def _date_field(name: str) -> Strategy[date]:
    def strategy(record: RawInvoiceRecord) -> Optional[date]:
        return parse_date_value(record.get(name))

    strategy.__name__ = f"date_from_{name}"
    return strategy


def _date_from_metadata(record: RawInvoiceRecord) -> Optional[date]:
    return parse_date_value(_pick(record.get("metadata"), "created"))


DATE_STRATEGIES: List[Strategy[date]] = [
    _date_from_period,
    _date_from_year_month,
    *(_date_field(name) for name in DATE_FIELDS),
    _date_from_metadata,
]


# ---------- Amount strategies ----------


def _amount_field(name: str) -> Strategy[Decimal]:
    def strategy(record: RawInvoiceRecord) -> Optional[Decimal]:
        return parse_decimal(record.get(name))

    strategy.__name__ = f"amount_from_{name}"
    return strategy


def _positive_sum(values: Iterable[Optional[Decimal]]) -> Optional[Decimal]:
    total = sum((v for v in values if v is not None), Decimal("0"))
    return total if total > 0 else None


def _amount_from_payments(record: RawInvoiceRecord) -> Optional[Decimal]:
    payments = record.get("payments")
    if not isinstance(payments, list) or not payments:
        return None
    return _positive_sum(
        parse_decimal(_pick(p, "value", "amount")) for p in payments
    )


def _item_amount(item: Any) -> Optional[Decimal]:
    if not isinstance(item, dict):
        return None
    explicit = parse_decimal(_pick(item, "total", "amount"))
    if explicit is not None:
        return explicit
    price = parse_decimal(item.get("price"))
    quantity = parse_decimal(item.get("quantity"))
    if price is None or quantity is None:
        return None
    return price * quantity


def _amount_from_items(record: RawInvoiceRecord) -> Optional[Decimal]:
    items = record.get("items")
    if not isinstance(items, list) or not items:
        return None
    return _positive_sum(_item_amount(item) for item in items)


AMOUNT_STRATEGIES: List[Strategy[Decimal]] = [
    *(_amount_field(name) for name in AMOUNT_FIELDS),
    _amount_from_payments,
    _amount_from_items,
]


# ---------- Public API ----------


def extract_date(record: RawInvoiceRecord) -> Optional[date]:
    if not isinstance(record, dict):
        return None
    return first_success(DATE_STRATEGIES, record)


def extract_amount(record: RawInvoiceRecord) -> Decimal:
    if not isinstance(record, dict):
        return Decimal("0")
    amount = first_success(AMOUNT_STRATEGIES, record)
    if amount is None or amount < 0:
        return Decimal("0")
    return amount


def extract_supplier(record: RawInvoiceRecord) -> tuple[str, str]:
    supplier = record.get("supplier")
    third_party = record.get("third_party")
    supplier_id = _pick(supplier, "identification") or _pick(third_party, "identification")
    supplier_name = _pick(supplier, "name") or _pick(third_party, "name")
    return (
        str(supplier_id) if supplier_id is not None else UNKNOWN_SUPPLIER_ID,
        str(supplier_name) if supplier_name is not None else UNKNOWN_SUPPLIER_NAME,
    )


def record_identity(record: RawInvoiceRecord) -> Optional[str]:
    """Business identity of a record, or None when it carries no id field."""
    for key in ("id", "number", "reference", "code"):
        value = record.get(key)
        if value is None:
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def normalize(record: RawInvoiceRecord) -> Optional[NormalizedInvoice]:
    """Convert a raw record, or return None when it has no usable date."""
    invoice_date = extract_date(record)
    if invoice_date is None:
        return None

    supplier_id, supplier_name = extract_supplier(record)
    status = record.get("status")
    return NormalizedInvoice(
        date=invoice_date,
        amount=extract_amount(record),
        supplier_id=supplier_id,
        supplier_name=supplier_name,
        record_id=str(_pick(record, "id", "document_id", "number") or "Sin ID"),
        status=status.lower() if isinstance(status, str) else None,
        kind="purchase" if ("document" in record or "document_type" in record) else "expense",
    )


def normalize_many(records: Iterable[RawInvoiceRecord]) -> tuple[List[NormalizedInvoice], int]:
    """Normalize a batch. Returns (invoices, dropped_count)."""
    invoices: List[NormalizedInvoice] = []
    dropped = 0
    for idx, record in enumerate(records):
        invoice = normalize(record) if isinstance(record, dict) else None
        if invoice is None:
            dropped += 1
            logger.debug(f"[Normalizer] Record idx={idx} has no valid date, dropped")
            continue
        invoices.append(invoice)
    if dropped:
        logger.info(f"[Normalizer] valid={len(invoices)} dropped={dropped}")
    return invoices, dropped
