"""Tests for month windows, growth rate, supplier ranking and aggregation."""

from datetime import date
from decimal import Decimal

import pytest

from src.modules.siigo.aggregator import (
    MonthlyAggregator,
    growth_rate,
    month_window,
    rank_suppliers,
    year_window,
)
from src.modules.siigo.models import MonthBucket, NormalizedInvoice


def _invoice(day, amount, supplier="900", name=None):
    return NormalizedInvoice(
        date=day,
        amount=Decimal(str(amount)),
        supplier_id=supplier,
        supplier_name=name or f"Proveedor {supplier}",
    )


def _buckets(*amounts):
    return [
        MonthBucket(year=2024, month=i + 1, total_amount=Decimal(str(a)))
        for i, a in enumerate(amounts)
    ]


class TestMonthWindow:
    def test_crosses_year_boundary(self):
        assert month_window(3, date(2024, 2, 10)) == [(2023, 12), (2024, 1), (2024, 2)]

    def test_twelve_months_without_gaps(self):
        window = month_window(12, date(2024, 6, 1))
        assert len(window) == 12
        assert window[0] == (2023, 7)
        assert window[-1] == (2024, 6)

    def test_rejects_empty_window(self):
        with pytest.raises(ValueError):
            month_window(0, date(2024, 1, 1))

    def test_year_window_current_year_is_year_to_date(self):
        assert year_window(2024, date(2024, 3, 5)) == [(2024, 1), (2024, 2), (2024, 3)]

    def test_year_window_past_year_is_complete(self):
        assert len(year_window(2023, date(2024, 3, 5))) == 12


class TestGrowthRate:
    @pytest.mark.parametrize(
        "amounts, expected",
        [
            ((100, 150), Decimal("50.00")),
            ((150, 200), Decimal("33.33")),
            ((200, 100), Decimal("-50.00")),
            ((0, 50), Decimal("100")),
            ((0, 0), Decimal("0")),
            ((50,), Decimal("0")),
        ],
    )
    def test_growth(self, amounts, expected):
        assert growth_rate(_buckets(*amounts)) == expected


class TestRankSuppliers:
    def test_top_n_by_total(self):
        invoices = [
            _invoice(date(2024, 1, 1), 300, "S1"),
            _invoice(date(2024, 1, 2), 100, "S2"),
            _invoice(date(2024, 1, 3), 200, "S3"),
        ]
        ranked = rank_suppliers(invoices, 2)
        assert [s.supplier_id for s in ranked] == ["S1", "S3"]

    def test_ties_keep_first_seen_order(self):
        invoices = [
            _invoice(date(2024, 1, 1), 100, "B"),
            _invoice(date(2024, 1, 2), 100, "A"),
        ]
        assert [s.supplier_id for s in rank_suppliers(invoices, 5)] == ["B", "A"]

    def test_groups_by_supplier(self):
        invoices = [
            _invoice(date(2024, 1, 1), 100, "S1"),
            _invoice(date(2024, 2, 1), 50, "S1"),
        ]
        (only,) = rank_suppliers(invoices, 5)
        assert only.total_amount == Decimal("150")
        assert only.invoice_count == 2


class TestMonthlyAggregator:
    def test_end_to_end_two_months(self):
        invoices = [
            _invoice(date(2024, 1, 5), 100, "A"),
            _invoice(date(2024, 1, 20), 50, "B"),
            _invoice(date(2024, 2, 3), 200, "A"),
        ]

        result = MonthlyAggregator().aggregate(invoices, 2, end=date(2024, 2, 15))

        assert [b.key for b in result.monthly_data] == ["2024-01", "2024-02"]
        assert [b.label for b in result.monthly_data] == ["Ene", "Feb"]
        assert result.monthly_data[0].total_amount == Decimal("150")
        assert result.monthly_data[0].invoice_count == 2
        assert result.monthly_data[1].total_amount == Decimal("200")
        assert result.monthly_data[1].invoice_count == 1
        assert result.total_amount == Decimal("350")
        assert result.invoice_count == 3
        assert result.growth_rate == Decimal("33.33")
        assert [s.supplier_id for s in result.top_suppliers] == ["A", "B"]

    def test_zero_filled_window(self):
        result = MonthlyAggregator().aggregate([], 6, end=date(2024, 6, 30))
        assert len(result.monthly_data) == 6
        assert all(b.invoice_count == 0 for b in result.monthly_data)
        assert result.total_amount == Decimal("0")
        assert result.growth_rate == Decimal("0")
        assert result.top_suppliers == []

    def test_invoices_outside_window_are_excluded(self):
        invoices = [
            _invoice(date(2023, 6, 1), 999, "OLD"),
            _invoice(date(2024, 2, 1), 10, "NEW"),
        ]

        result = MonthlyAggregator().aggregate(invoices, 3, end=date(2024, 2, 28))

        assert result.total_amount == Decimal("10")
        assert result.invoice_count == 1
        assert [s.supplier_id for s in result.top_suppliers] == ["NEW"]

    def test_totals_match_bucket_sums(self):
        invoices = [_invoice(date(2024, m, 1), m * 10) for m in range(1, 7)]
        result = MonthlyAggregator().aggregate(invoices, 6, end=date(2024, 6, 1))
        assert result.total_amount == sum(b.total_amount for b in result.monthly_data)
        assert result.invoice_count == sum(b.invoice_count for b in result.monthly_data)

    def test_year_mode(self):
        invoices = [
            _invoice(date(2023, 3, 10), 100),
            _invoice(date(2024, 3, 10), 500),
        ]

        result = MonthlyAggregator().aggregate(
            invoices, 12, year=2023, end=date(2024, 5, 1), dropped_count=4
        )

        assert len(result.monthly_data) == 12
        assert result.monthly_data[2].total_amount == Decimal("100")
        assert result.total_amount == Decimal("100")
        assert result.dropped_count == 4
