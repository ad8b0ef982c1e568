"""Monthly aggregation of normalized purchases."""

from collections import OrderedDict
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .models import AggregationResult, MonthBucket, NormalizedInvoice, SupplierAggregate

TWO_PLACES = Decimal("0.01")


def month_window(window_months: int, end: Optional[date] = None) -> List[Tuple[int, int]]:
    """
    Return ``window_months`` (year, month) pairs ending at ``end``'s month.

    Pairs are ordered oldest first and contain no gaps.
    """
    if window_months < 1:
        raise ValueError("window_months must be at least 1")
    end = end or date.today()
    index = end.year * 12 + (end.month - 1)
    months = []
    for i in range(index - window_months + 1, index + 1):
        year, month_index = divmod(i, 12)
        months.append((year, month_index + 1))
    return months


def year_window(year: int, today: Optional[date] = None) -> List[Tuple[int, int]]:
    """Months of ``year`` up to today's month for the current year."""
    today = today or date.today()
    last_month = today.month if year == today.year else 12
    return [(year, month) for month in range(1, last_month + 1)]


def growth_rate(buckets: List[MonthBucket]) -> Decimal:
    """
    Percentage change between the last two buckets.

    100 when the previous month is zero and the last one positive; 0 when
    there are fewer than two buckets or nothing to compare against.
    """
    if len(buckets) < 2:
        return Decimal("0")
    current = buckets[-1].total_amount
    previous = buckets[-2].total_amount
    if previous > 0:
        rate = (current - previous) / previous * 100
        return rate.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    if previous == 0 and current > 0:
        return Decimal("100")
    return Decimal("0")


def rank_suppliers(invoices: Iterable[NormalizedInvoice], top_n: int) -> List[SupplierAggregate]:
    """Group by supplier id and return the top ``top_n`` by total amount."""
    groups: Dict[str, SupplierAggregate] = OrderedDict()
    for invoice in invoices:
        aggregate = groups.get(invoice.supplier_id)
        if aggregate is None:
            aggregate = SupplierAggregate(
                supplier_id=invoice.supplier_id,
                supplier_name=invoice.supplier_name,
            )
            groups[invoice.supplier_id] = aggregate
        aggregate.total_amount += invoice.amount
        aggregate.invoice_count += 1

    # sorted() is stable, so ties keep first-seen order
    ranked = sorted(groups.values(), key=lambda s: s.total_amount, reverse=True)
    return ranked[:top_n]


class MonthlyAggregator:
    """Buckets purchases by calendar month inside a fixed window."""

    def aggregate(
        self,
        invoices: Iterable[NormalizedInvoice],
        window_months: int,
        *,
        year: Optional[int] = None,
        end: Optional[date] = None,
        top_n: int = 5,
        dropped_count: int = 0,
    ) -> AggregationResult:
        """
        Aggregate invoices into zero-filled month buckets.

        Args:
            invoices: Normalized invoices
            window_months: Number of months ending at ``end`` (ignored when
                ``year`` is given)
            year: Restrict to one calendar year
            end: Last month of the window (defaults to today)
            top_n: Number of suppliers to keep in the ranking
            dropped_count: Records dropped upstream, carried into the result

        Returns:
            AggregationResult
        """
        if year is not None:
            keys = year_window(year, end)
        else:
            keys = month_window(window_months, end)

        buckets: Dict[Tuple[int, int], MonthBucket] = OrderedDict(
            (key, MonthBucket(year=key[0], month=key[1])) for key in keys
        )

        included: List[NormalizedInvoice] = []
        outside = 0
        for invoice in invoices:
            if year is not None and invoice.date.year != year:
                outside += 1
                continue
            bucket = buckets.get((invoice.date.year, invoice.date.month))
            if bucket is None:
                outside += 1
                continue
            bucket.total_amount += invoice.amount
            bucket.invoice_count += 1
            included.append(invoice)

        monthly = list(buckets.values())
        total_amount = sum((b.total_amount for b in monthly), Decimal("0"))
        invoice_count = sum(b.invoice_count for b in monthly)

        logger.info(
            f"[Aggregator] Aggregated {invoice_count} invoices into {len(monthly)} months "
            f"({outside} outside window)"
        )

        return AggregationResult(
            monthly_data=monthly,
            total_amount=total_amount,
            invoice_count=invoice_count,
            growth_rate=growth_rate(monthly),
            top_suppliers=rank_suppliers(included, top_n),
            dropped_count=dropped_count,
        )
