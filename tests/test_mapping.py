"""Tests for form -> Siigo payload mapping."""

from datetime import date

import pytest
from pydantic import ValidationError

from src.modules.siigo.mapping import build_invoice_payload, build_purchase_payload
from src.modules.siigo.schemas import InvoiceForm, PurchaseForm

TODAY = date(2024, 5, 20)


def _purchase_form(**overrides):
    data = {
        "provider": {"identification": "900123456", "branch_office": 0},
        "items": [
            {"type": "product", "code": "SKU-1", "description": "Papel", "quantity": 2, "price": 100, "hasIVA": True},
            {"type": "service", "quantity": 1, "price": 50},
        ],
    }
    data.update(overrides)
    return PurchaseForm(**data)


class TestPurchasePayload:
    def test_defaults(self, settings):
        payload = build_purchase_payload(_purchase_form(), settings, today=TODAY)

        assert payload["document"] == {"id": 1}
        assert payload["date"] == "2024-05-20"
        assert payload["supplier"] == {"identification": "900123456", "branch_office": 0}
        assert "observations" not in payload
        assert "provider_invoice" not in payload

    def test_items_and_taxes(self, settings):
        payload = build_purchase_payload(_purchase_form(), settings, today=TODAY)
        first, second = payload["items"]

        assert first == {
            "type": "Product",
            "code": "SKU-1",
            "description": "Papel",
            "quantity": 2,
            "price": 100,
            "taxes": [{"id": 13156}],
        }
        assert second["code"] == "PROD001"
        assert second["description"] == "Producto/Servicio"
        assert "taxes" not in second

    def test_payment_includes_iva(self, settings):
        payload = build_purchase_payload(_purchase_form(), settings, today=TODAY)
        # 2 * 100 * 1.19 + 50
        assert payload["payments"] == [{"id": 8468, "value": 288.0}]

    def test_optional_fields(self, settings):
        form = _purchase_form(
            document_id=25,
            date="2024-05-01",
            observations="Compra de insumos",
            cost_center=235,
            provider_invoice_prefix="FV",
            provider_invoice_number="1234",
            payment_id=77,
            iva_percentage=5,
        )

        payload = build_purchase_payload(form, settings, today=TODAY)

        assert payload["document"] == {"id": 25}
        assert payload["date"] == "2024-05-01"
        assert payload["observations"] == "Compra de insumos"
        assert payload["cost_center"] == 235
        assert payload["provider_invoice"] == {"prefix": "FV", "number": "1234"}
        assert payload["payments"] == [{"id": 77, "value": 260.0}]

    def test_item_type_mapping(self, settings):
        form = _purchase_form(
            items=[
                {"type": "activos_fijos", "quantity": 1, "price": 10},
                {"type": "account", "quantity": 1, "price": 10},
            ]
        )
        payload = build_purchase_payload(form, settings, today=TODAY)
        assert [i["type"] for i in payload["items"]] == ["FixedAsset", "Account"]

    def test_form_requires_items(self):
        with pytest.raises(ValidationError):
            PurchaseForm(provider={"identification": "1"}, items=[])

    def test_form_rejects_non_positive_quantity(self):
        with pytest.raises(ValidationError):
            PurchaseForm(provider={"identification": "1"}, items=[{"quantity": 0, "price": 1}])


class TestInvoicePayload:
    def test_sales_invoice(self, settings):
        form = InvoiceForm(
            customer={"identification": "13832081"},
            items=[{"code": "SRV-9", "description": "Asesoría", "quantity": 1, "price": 1000, "hasIVA": True}],
        )

        payload = build_invoice_payload(form, settings, today=TODAY)

        assert payload["document"] == {"id": 138531}
        assert payload["seller"] == 35260
        assert payload["date"] == "2024-05-20"
        assert payload["customer"] == {"identification": "13832081", "branch_office": 0}
        assert payload["stamp"] == {"send": True}
        assert payload["mail"] == {"send": False}
        assert payload["observations"] == "Factura generada desde formulario web"
        assert payload["items"][0]["taxes"] == [{"id": 13156}]
        assert payload["payments"] == [{"id": 8468, "value": 1190.0}]
