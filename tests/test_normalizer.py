"""Tests for date/amount extraction and record normalization."""

from datetime import date
from decimal import Decimal

import pytest

from src.modules.siigo.normalizer import (
    extract_amount,
    extract_date,
    extract_supplier,
    first_success,
    normalize,
    normalize_many,
    parse_date_value,
    parse_decimal,
)


# ---- Dates ----


class TestParseDateValue:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-15", date(2024, 1, 15)),
            ("2024-01-15T10:30:00Z", date(2024, 1, 15)),
            ("2024-01-15T23:59:59-05:00", date(2024, 1, 15)),
            ("2024-02", date(2024, 2, 1)),
            ("15/01/2024", date(2024, 1, 15)),
            ("20240115", date(2024, 1, 15)),
            (1705276800, date(2024, 1, 15)),
            (1705276800000, date(2024, 1, 15)),
            ("1705276800", date(2024, 1, 15)),
            (date(2024, 1, 15), date(2024, 1, 15)),
        ],
    )
    def test_supported_formats(self, value, expected):
        assert parse_date_value(value) == expected

    @pytest.mark.parametrize("value", [None, "", "not a date", "2024-13-45", True, {"a": 1}])
    def test_unparseable_values(self, value):
        assert parse_date_value(value) is None

    @pytest.mark.parametrize("value", ["2024-13", "2024-00"])
    def test_year_month_with_invalid_month(self, value):
        assert parse_date_value(value) is None
        assert extract_date({"date": value}) is None


class TestExtractDate:
    def test_period_object_wins_over_date_field(self):
        record = {"period": {"year": 2024, "month": 3}, "date": "2024-07-01"}
        assert extract_date(record) == date(2024, 3, 1)

    def test_top_level_year_and_month(self):
        assert extract_date({"ano": "2023", "mes": "11"}) == date(2023, 11, 1)

    def test_month_is_clamped(self):
        assert extract_date({"year": 2024, "month": 14}) == date(2024, 12, 1)

    def test_falls_through_date_fields_in_order(self):
        record = {"date": "garbage", "created": "2024-05-04"}
        assert extract_date(record) == date(2024, 5, 4)

    def test_metadata_created(self):
        record = {"metadata": {"created": "2024-06-30T12:00:00.000Z"}}
        assert extract_date(record) == date(2024, 6, 30)

    def test_year_month_string(self):
        assert extract_date({"date": "2024-07"}) == date(2024, 7, 1)

    def test_no_date(self):
        assert extract_date({"total": 100}) is None


# ---- Amounts ----


class TestAmounts:
    def test_parse_decimal_strips_currency_formatting(self):
        assert parse_decimal("$1,234.50") == Decimal("1234.50")
        assert parse_decimal("abc") is None

    def test_thousands_separator(self):
        assert extract_amount({"total": "1,234.50"}) == Decimal("1234.50")

    def test_items_only(self):
        assert extract_amount({"items": [{"price": 10, "quantity": 3}]}) == Decimal("30")

    def test_first_numeric_field(self):
        assert extract_amount({"total": "150.75", "amount": 999}) == Decimal("150.75")

    def test_payments_sum(self):
        record = {"payments": [{"value": 50}, {"value": "25.5"}]}
        assert extract_amount(record) == Decimal("75.5")

    def test_items_sum_with_price_times_quantity(self):
        record = {"items": [{"price": 10, "quantity": 3}, {"total": 5}]}
        assert extract_amount(record) == Decimal("35")

    def test_zero_item_sum_is_not_accepted(self):
        assert extract_amount({"items": [{"price": 0, "quantity": 2}]}) == Decimal("0")

    def test_missing_amount_defaults_to_zero(self):
        assert extract_amount({"date": "2024-01-01"}) == Decimal("0")

    def test_negative_amount_is_clamped(self):
        assert extract_amount({"total": -40}) == Decimal("0")

    def test_first_success_returns_first_non_none(self):
        strategies = [lambda r: None, lambda r: r["b"], lambda r: r["c"]]
        assert first_success(strategies, {"b": 2, "c": 3}) == 2


# ---- Records ----


class TestNormalize:
    def test_full_record(self):
        record = {
            "id": "abc-1",
            "document": {"id": 1},
            "date": "2024-01-15",
            "total": 100,
            "status": "Pending",
            "supplier": {"identification": "900123", "name": "Proveedor SAS"},
        }

        invoice = normalize(record)

        assert invoice.date == date(2024, 1, 15)
        assert invoice.amount == Decimal("100")
        assert invoice.supplier_id == "900123"
        assert invoice.supplier_name == "Proveedor SAS"
        assert invoice.record_id == "abc-1"
        assert invoice.status == "pending"
        assert invoice.kind == "purchase"

    def test_third_party_fallback_and_defaults(self):
        invoice = normalize({"date": "2024-01-15", "third_party": {"identification": 800}})
        assert invoice.supplier_id == "800"
        assert invoice.supplier_name == "Unknown supplier"
        assert invoice.record_id == "Sin ID"
        assert invoice.kind == "expense"

    def test_unknown_supplier(self):
        assert extract_supplier({}) == ("unknown", "Unknown supplier")

    def test_record_without_date_is_dropped(self):
        assert normalize({"total": 100}) is None

    def test_normalize_many_counts_dropped(self):
        invoices, dropped = normalize_many(
            [
                {"date": "2024-01-01", "total": 1},
                {"total": 2},
                {"created": "2024-02-01", "total": 3},
            ]
        )
        assert [inv.amount for inv in invoices] == [Decimal("1"), Decimal("3")]
        assert dropped == 1
