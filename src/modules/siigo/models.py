"""
Internal data structures for the purchases analytics pipeline.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

RawInvoiceRecord = Dict[str, Any]

MONTH_LABELS = [
    "Ene", "Feb", "Mar", "Abr", "May", "Jun",
    "Jul", "Ago", "Sep", "Oct", "Nov", "Dic",
]


@dataclass(frozen=True)
class DateRange:
    """Inclusive date window used for upstream and client-side filtering."""

    start: Optional[date] = None
    end: Optional[date] = None

    def contains(self, value: date) -> bool:
        if self.start and value < self.start:
            return False
        if self.end and value > self.end:
            return False
        return True

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


@dataclass(frozen=True)
class NormalizedInvoice:
    """Strictly typed view of a purchase record."""

    date: date
    amount: Decimal
    supplier_id: str
    supplier_name: str
    record_id: str = ""
    status: Optional[str] = None
    kind: str = "purchase"


@dataclass
class MonthBucket:
    """Totals for one calendar month."""

    year: int
    month: int
    total_amount: Decimal = Decimal("0")
    invoice_count: int = 0

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"

    @property
    def label(self) -> str:
        return MONTH_LABELS[self.month - 1]


@dataclass
class SupplierAggregate:
    supplier_id: str
    supplier_name: str
    total_amount: Decimal = Decimal("0")
    invoice_count: int = 0


@dataclass
class AggregationResult:
    """Output of the monthly aggregator."""

    monthly_data: List[MonthBucket]
    total_amount: Decimal
    invoice_count: int
    growth_rate: Decimal
    top_suppliers: List[SupplierAggregate]
    dropped_count: int = 0


@dataclass
class FetchResult:
    """
    Records returned by the paginated fetcher.

    ``reached_end`` and ``failed_pages`` are kept apart: the first says
    Siigo signalled that no more data exists, the second lists pages that
    were given up after exhausting retries (their records are missing).
    ``undated_count`` counts records the date filter excluded for having no
    parseable date.
    """

    records: List[RawInvoiceRecord]
    pages_fetched: int = 0
    failed_pages: List[int] = field(default_factory=list)
    reached_end: bool = False
    records_before_dedupe: int = 0
    records_before_filter: int = 0
    undated_count: int = 0
    pagination: Dict[str, Any] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.reached_end and not self.failed_pages
