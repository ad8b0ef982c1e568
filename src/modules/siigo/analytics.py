"""
Purchase analytics: fetch -> normalize -> aggregate -> assemble.

The assembler turns aggregator output into the report the dashboard renders.
``AnalyticsService.build_report`` runs the whole pipeline and guarantees a
renderable report: authentication failures propagate (the router answers
401), anything else unexpected is logged and replaced by an all-zero report.
"""

from __future__ import annotations

import calendar
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from loguru import logger

from .aggregator import MonthlyAggregator
from .auth import TokenProvider
from .client import SiigoAuthError
from .fetcher import PurchaseFetcher
from .models import AggregationResult, DateRange, FetchResult, NormalizedInvoice
from .normalizer import normalize_many
from .schemas import (
    AnalyticsReport,
    CategorySummary,
    FetchSummary,
    MonthlySummary,
    RecentInvoice,
    SupplierSummary,
)

TWO_PLACES = Decimal("0.01")
RECENT_LIMIT = 10

# Siigo purchases carry no category; the dashboard shows a fixed split.
CATEGORY_SPLIT = [
    ("Servicios Profesionales", 35),
    ("Materiales y Suministros", 25),
    ("Tecnología y Software", 20),
    ("Servicios Públicos", 12),
    ("Otros Gastos", 8),
]

PERIOD_MONTHS = {"today": 1, "1m": 1, "3m": 3, "6m": 6, "1y": 12}
ERROR_STATUSES = {"error", "rejected", "cancelled"}
PENDING_STATUSES = {"pending", "draft", "in_progress"}


def _round(value: Decimal) -> float:
    return float(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def _shift_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) - months
    year, month_index = divmod(index, 12)
    month = month_index + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def resolve_period(period: str, today: Optional[date] = None) -> Tuple[DateRange, int]:
    """
    Translate a dashboard period into a date range and a window length.

    Unknown periods fall back to six months.
    """
    today = today or date.today()
    months = PERIOD_MONTHS.get(period, 6)
    if period == "today":
        return DateRange(start=today, end=today), months
    return DateRange(start=_shift_months(today, months), end=today), months


def window_for_range(date_range: DateRange, today: Optional[date] = None) -> int:
    """
    Number of calendar months spanned by a range (at least 1).

    A range without an end runs until today; a range without a start covers
    six months.
    """
    if date_range.start is None:
        return 6
    end = date_range.end or today or date.today()
    span = (end.year - date_range.start.year) * 12 + (end.month - date_range.start.month)
    return max(span + 1, 1)


def invoice_status(status: Optional[str]) -> str:
    if status in ERROR_STATUSES:
        return "error"
    if status in PENDING_STATUSES:
        return "pending"
    return "success"


class AnalyticsAssembler:
    """Builds the final ``AnalyticsReport``."""

    def assemble(
        self,
        aggregation: AggregationResult,
        invoices: List[NormalizedInvoice],
        fetch: Optional[FetchResult] = None,
    ) -> AnalyticsReport:
        total = aggregation.total_amount
        count = aggregation.invoice_count
        average = total / count if count else Decimal("0")

        return AnalyticsReport(
            total_invoices=count,
            total_amount=_round(total),
            average_amount=_round(average),
            monthly_growth=float(aggregation.growth_rate),
            top_suppliers=[
                SupplierSummary(
                    name=s.supplier_name,
                    identification=s.supplier_id,
                    total_amount=_round(s.total_amount),
                    invoice_count=s.invoice_count,
                )
                for s in aggregation.top_suppliers
            ],
            monthly_data=[
                MonthlySummary(
                    month=b.label,
                    key=b.key,
                    year=b.year,
                    amount=_round(b.total_amount),
                    count=b.invoice_count,
                )
                for b in aggregation.monthly_data
            ],
            category_breakdown=self.category_breakdown(total),
            recent_invoices=self.recent_invoices(invoices),
            fetch=self._fetch_summary(fetch, aggregation.dropped_count),
        )

    @staticmethod
    def category_breakdown(total: Decimal) -> List[CategorySummary]:
        return [
            CategorySummary(
                category=name,
                amount=_round(total * percentage / 100),
                percentage=percentage,
            )
            for name, percentage in CATEGORY_SPLIT
        ]

    @staticmethod
    def recent_invoices(
        invoices: List[NormalizedInvoice], limit: int = RECENT_LIMIT
    ) -> List[RecentInvoice]:
        # Normalized invoices always carry a valid date; undated records were
        # dropped before reaching this point.
        ordered = sorted(invoices, key=lambda inv: inv.date, reverse=True)
        return [
            RecentInvoice(
                id=inv.record_id,
                date=inv.date.isoformat(),
                supplier=inv.supplier_name,
                amount=_round(inv.amount),
                status=invoice_status(inv.status),
                type=inv.kind,
            )
            for inv in ordered[:limit]
        ]

    @staticmethod
    def _fetch_summary(fetch: Optional[FetchResult], dropped: int) -> FetchSummary:
        if fetch is None:
            return FetchSummary(records_dropped=dropped)
        return FetchSummary(
            pages_fetched=fetch.pages_fetched,
            pages_failed=list(fetch.failed_pages),
            records_fetched=fetch.records_before_dedupe,
            records_after_dedupe=fetch.records_before_filter,
            records_dropped=dropped,
            complete=fetch.complete,
        )


class AnalyticsService:
    """End-to-end purchases analytics pipeline."""

    def __init__(
        self,
        token_provider: TokenProvider,
        fetcher: PurchaseFetcher,
        aggregator: Optional[MonthlyAggregator] = None,
        assembler: Optional[AnalyticsAssembler] = None,
    ) -> None:
        self.token_provider = token_provider
        self.fetcher = fetcher
        self.aggregator = aggregator or MonthlyAggregator()
        self.assembler = assembler or AnalyticsAssembler()

    async def _token(self) -> str:
        token = await self.token_provider.get_token()
        if not token:
            raise SiigoAuthError("No se pudo obtener el token de autenticación de Siigo")
        return token

    async def build_report(
        self,
        period: str = "6m",
        date_range: Optional[DateRange] = None,
        *,
        concurrent: bool = False,
        today: Optional[date] = None,
    ) -> AnalyticsReport:
        """
        Run the analytics pipeline for a period or an explicit range.

        Raises:
            SiigoAuthError: If no token could be obtained or Siigo rejected it
        """
        today = today or date.today()
        if date_range is None or date_range.is_open:
            date_range, window = resolve_period(period, today)
        else:
            window = window_for_range(date_range, today)
        end = date_range.end or today

        token = await self._token()
        try:
            fetch = await self.fetcher.fetch_all(token, date_range, concurrent=concurrent)
        except SiigoAuthError:
            self.token_provider.invalidate()
            raise
        except Exception:
            logger.exception("[Analytics] Unexpected error fetching purchases")
            return AnalyticsReport.empty()

        try:
            invoices, dropped = normalize_many(fetch.records)
            dropped += fetch.undated_count
            aggregation = self.aggregator.aggregate(
                invoices,
                window,
                end=end,
                top_n=5,
                dropped_count=dropped,
            )
            report = self.assembler.assemble(aggregation, invoices, fetch)
        except Exception:
            logger.exception("[Analytics] Unexpected error building analytics report")
            return AnalyticsReport.empty()

        if not fetch.complete:
            logger.warning(
                f"[Analytics] Report built on incomplete data: failed_pages={fetch.failed_pages} "
                f"reached_end={fetch.reached_end}"
            )
        return report

    async def year_chart(
        self,
        year: int,
        *,
        top_n: int = 15,
        today: Optional[date] = None,
    ) -> Tuple[AggregationResult, FetchResult]:
        """
        Twelve-month (or year-to-date) view used by the purchases chart.

        Raises:
            SiigoAuthError: If no token could be obtained or Siigo rejected it
        """
        today = today or date.today()
        date_range = DateRange(start=date(year, 1, 1), end=min(date(year, 12, 31), today))
        token = await self._token()
        try:
            fetch = await self.fetcher.fetch_all(token, date_range)
        except SiigoAuthError:
            self.token_provider.invalidate()
            raise

        invoices, dropped = normalize_many(fetch.records)
        aggregation = self.aggregator.aggregate(
            invoices,
            12,
            year=year,
            end=today,
            top_n=top_n,
            dropped_count=dropped + fetch.undated_count,
        )
        return aggregation, fetch
