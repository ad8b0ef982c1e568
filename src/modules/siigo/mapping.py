"""Mapping of invoicing form data to Siigo purchase and invoice payloads."""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from .config import Settings
from .schemas import FormItem, InvoiceForm, PurchaseForm

SALES_IVA_RATE = Decimal("0.19")
TWO_PLACES = Decimal("0.01")

ITEM_TYPES = {
    "product": "Product",
    "service": "Product",
    "charge": "Product",
    "discount": "Product",
    "activos_fijos": "FixedAsset",
    "account": "Account",
}


def _money(value: Decimal) -> float:
    return float(value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


def _line_total(item: FormItem, iva_rate: Decimal) -> Decimal:
    subtotal = Decimal(str(item.quantity)) * Decimal(str(item.price))
    if item.has_iva:
        subtotal += subtotal * iva_rate
    return subtotal


def _taxes(item: FormItem, settings: Settings) -> List[Dict[str, int]]:
    return [{"id": settings.iva_tax_id}] if item.has_iva else []


def build_purchase_payload(
    form: PurchaseForm,
    settings: Settings,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Build the body for ``POST /purchases``."""
    iva_rate = Decimal(str(form.iva_percentage)) / 100
    items = []
    for item in form.items:
        entry: Dict[str, Any] = {
            "type": ITEM_TYPES.get(item.type, "Product"),
            "code": item.code or "PROD001",
            "description": item.description or "Producto/Servicio",
            "quantity": item.quantity,
            "price": item.price,
        }
        taxes = _taxes(item, settings)
        if taxes:
            entry["taxes"] = taxes
        if item.warehouse is not None:
            entry["warehouse"] = item.warehouse
        items.append(entry)

    total = sum((_line_total(item, iva_rate) for item in form.items), Decimal("0"))

    payload: Dict[str, Any] = {
        "document": {"id": form.document_id or settings.purchase_document_id},
        "date": form.date or (today or date.today()).isoformat(),
        "supplier": {
            "identification": form.provider.identification,
            "branch_office": form.provider.branch_office,
        },
        "items": items,
        "payments": [
            {
                "id": form.payment_id or settings.invoice_payment_id,
                "value": _money(total),
            }
        ],
    }
    if form.cost_center is not None:
        payload["cost_center"] = form.cost_center
    if form.provider_invoice_prefix or form.provider_invoice_number:
        payload["provider_invoice"] = {
            "prefix": form.provider_invoice_prefix or "",
            "number": form.provider_invoice_number or "",
        }
    if form.observations:
        payload["observations"] = form.observations
    return payload


def build_invoice_payload(
    form: InvoiceForm,
    settings: Settings,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Build the body for ``POST /invoices`` (sales invoice)."""
    items = []
    for item in form.items:
        entry: Dict[str, Any] = {
            "code": item.code or "PROD001",
            "description": item.description or "Producto/Servicio",
            "quantity": item.quantity,
            "price": item.price,
            "taxes": _taxes(item, settings),
        }
        if item.warehouse is not None:
            entry["warehouse"] = item.warehouse
        items.append(entry)

    total = sum((_line_total(item, SALES_IVA_RATE) for item in form.items), Decimal("0"))

    return {
        "document": {"id": settings.invoice_document_id},
        "date": (today or date.today()).isoformat(),
        "customer": {
            "identification": form.customer.identification,
            "branch_office": form.customer.branch_office,
        },
        "seller": settings.invoice_seller_id,
        "stamp": {"send": form.send_stamp},
        "mail": {"send": form.send_mail},
        "observations": form.observations or "Factura generada desde formulario web",
        "items": items,
        "payments": [{"id": settings.invoice_payment_id, "value": _money(total)}],
    }
