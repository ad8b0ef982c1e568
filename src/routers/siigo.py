"""Siigo endpoints: token, purchases, analytics and invoice submission."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from loguru import logger

from ..modules.siigo.analytics import AnalyticsService
from ..modules.siigo.auth import TokenProvider
from ..modules.siigo.client import (
    SiigoAPIError,
    SiigoAuthError,
    SiigoClient,
    SiigoConnectionError,
)
from ..modules.siigo.config import Settings, get_settings
from ..modules.siigo.di import (
    get_analytics_service,
    get_client,
    get_fetcher,
    get_token_provider,
)
from ..modules.siigo.fetcher import PurchaseFetcher
from ..modules.siigo.mapping import build_invoice_payload, build_purchase_payload
from ..modules.siigo.models import DateRange
from ..modules.siigo.schemas import (
    AnalyticsReport,
    ErrorResponse,
    InvoiceForm,
    PurchaseForm,
    SubmissionResponse,
)

router = APIRouter(prefix="/api/siigo", tags=["siigo"])

AUTH_ERROR = "Error de autenticación con Siigo"


def _error(status_code: int, message: str, details: object = None) -> JSONResponse:
    content = {"error": message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def _require_token(provider: TokenProvider) -> Optional[str]:
    token = await provider.get_token()
    if not token:
        logger.error("[Router] Siigo token unavailable")
    return token


@router.get("/token", responses={401: {"model": ErrorResponse}})
async def get_token(provider: TokenProvider = Depends(get_token_provider)):
    """Return a valid Siigo access token (cached while valid)."""
    token = await _require_token(provider)
    if not token:
        return _error(401, "No se pudo obtener el token")
    return {"token": token}


@router.get(
    "/purchases",
    responses={401: {"model": ErrorResponse}, 502: {"model": ErrorResponse}},
)
async def list_purchases(
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, alias="pageSize", ge=1, le=100),
    get_all_pages: bool = Query(False, alias="getAllPages"),
    provider: TokenProvider = Depends(get_token_provider),
    fetcher: PurchaseFetcher = Depends(get_fetcher),
):
    """
    Fetch purchases from Siigo.

    With ``getAllPages`` the first page reveals the page count and the
    remaining pages (bounded) are requested concurrently. Results are always
    re-filtered locally by date.
    """
    token = await _require_token(provider)
    if not token:
        return _error(401, AUTH_ERROR)

    date_range = DateRange(start=start_date, end=end_date)
    try:
        if not get_all_pages:
            return await fetcher.fetch_page(token, page, date_range, page_size)

        result = await fetcher.fetch_all(token, date_range, concurrent=True)
    except SiigoAuthError:
        provider.invalidate()
        return _error(401, AUTH_ERROR)
    except SiigoConnectionError as exc:
        return _error(502, "Error al obtener compras de Siigo", str(exc))

    pagination = dict(result.pagination)
    pagination.update(
        {
            "page": 1,
            "pages_fetched": result.pages_fetched,
            "pages_failed": result.failed_pages,
            "reached_end": result.reached_end,
            "complete": result.complete,
            "total_items": len(result.records),
            "original_total_items": result.records_before_filter,
            "filtered_by_server": not date_range.is_open,
        }
    )
    return {"results": result.records, "pagination": pagination}


@router.get(
    "/purchases/chart",
    responses={401: {"model": ErrorResponse}},
)
async def purchases_chart(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """Month-by-month purchases for one calendar year (year-to-date for the current year)."""
    year = year or date.today().year
    try:
        aggregation, fetch = await service.year_chart(year)
    except SiigoAuthError:
        return _error(401, AUTH_ERROR)

    return {
        "year": year,
        "totalInvoices": aggregation.invoice_count,
        "totalAmount": float(aggregation.total_amount),
        "monthlyGrowth": float(aggregation.growth_rate),
        "months": [
            {
                "name": bucket.label,
                "month": bucket.month,
                "year": bucket.year,
                "fullDate": bucket.key,
                "facturas": bucket.invoice_count,
                "monto": float(bucket.total_amount),
            }
            for bucket in aggregation.monthly_data
        ],
        "topSuppliers": [
            {
                "name": s.supplier_name,
                "identification": s.supplier_id,
                "totalAmount": float(s.total_amount),
                "invoiceCount": s.invoice_count,
            }
            for s in aggregation.top_suppliers
        ],
        "droppedRecords": aggregation.dropped_count,
        "complete": fetch.complete,
        "pagesFailed": fetch.failed_pages,
    }


@router.get(
    "/analytics",
    response_model=AnalyticsReport,
    responses={401: {"model": ErrorResponse}},
)
async def purchase_analytics(
    period: str = Query("6m", pattern="^(today|1m|3m|6m|1y)$"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    get_all_pages: bool = Query(False, alias="getAllPages"),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """
    Aggregated purchases analytics for the dashboard.

    Always answers with a renderable report except when authentication is
    unavailable (401).
    """
    date_range = DateRange(start=start_date, end=end_date)
    try:
        return await service.build_report(
            period,
            date_range,
            concurrent=get_all_pages,
        )
    except SiigoAuthError:
        return _error(401, AUTH_ERROR)


@router.post(
    "/purchases",
    response_model=SubmissionResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def create_purchase(
    form: PurchaseForm,
    settings: Settings = Depends(get_settings),
    provider: TokenProvider = Depends(get_token_provider),
    client: SiigoClient = Depends(get_client),
):
    """Register a purchase invoice in Siigo."""
    token = await _require_token(provider)
    if not token:
        return _error(401, "Token inválido")

    payload = build_purchase_payload(form, settings)
    logger.info(
        f"[Router] Sending purchase: supplier={form.provider.identification} items={len(payload['items'])}"
    )
    try:
        result = await client.create_purchase(token, payload)
    except SiigoAuthError:
        provider.invalidate()
        return _error(401, "Token inválido")
    except SiigoAPIError as exc:
        return _error(400, "Error en API Siigo", exc.details)
    except SiigoConnectionError as exc:
        return _error(502, "Error de conexión con Siigo", str(exc))

    logger.info("[Router] Purchase registered")
    return SubmissionResponse(
        success=True,
        message="Compra registrada correctamente",
        data=result if isinstance(result, dict) else {"result": result},
    )


@router.post(
    "/invoices",
    response_model=SubmissionResponse,
    responses={401: {"model": ErrorResponse}},
)
async def create_invoice(
    form: InvoiceForm,
    settings: Settings = Depends(get_settings),
    provider: TokenProvider = Depends(get_token_provider),
    client: SiigoClient = Depends(get_client),
):
    """Send a sales invoice to Siigo."""
    token = await _require_token(provider)
    if not token:
        return _error(401, "No se pudo obtener el token de autenticación")

    payload = build_invoice_payload(form, settings)
    try:
        result = await client.create_invoice(token, payload)
    except SiigoAuthError:
        provider.invalidate()
        return _error(401, "No se pudo obtener el token de autenticación")
    except SiigoAPIError as exc:
        return _error(exc.status_code, f"Error {exc.status_code}", exc.details)
    except SiigoConnectionError as exc:
        return _error(502, "Error de conexión con Siigo", str(exc))

    return SubmissionResponse(
        success=True,
        message="Factura enviada exitosamente a Siigo",
        data=result if isinstance(result, dict) else {"result": result},
    )


@router.get(
    "/search-invoice",
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
)
async def search_invoice(
    cufe: Optional[str] = Query(None),
    provider: TokenProvider = Depends(get_token_provider),
    client: SiigoClient = Depends(get_client),
):
    """Look up a purchase by CUFE."""
    if not cufe or not cufe.strip():
        return _error(400, "El parámetro CUFE es requerido")

    token = await _require_token(provider)
    if not token:
        return _error(401, AUTH_ERROR)

    logger.info(f"[Router] Searching invoice by CUFE: {cufe}")
    try:
        data = await client.search_by_cufe(token, cufe.strip())
    except SiigoAuthError:
        provider.invalidate()
        return _error(401, AUTH_ERROR)
    except SiigoAPIError as exc:
        return _error(exc.status_code, "Error al buscar la factura en Siigo", exc.details)
    except SiigoConnectionError as exc:
        return _error(502, "Error de conexión con Siigo", str(exc))

    return {"success": True, "data": data}
