"""
Pydantic schemas for the Siigo endpoints.

Request models mirror the invoicing form; response models describe the
analytics report consumed by the dashboard.
"""

from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

ItemKind = Literal["product", "service", "charge", "discount", "activos_fijos", "account"]


# ---------- Analytics report ----------


class SupplierSummary(BaseModel):
    name: str
    identification: str
    total_amount: float = Field(..., alias="totalAmount")
    invoice_count: int = Field(..., alias="invoiceCount")

    model_config = {"populate_by_name": True}


class MonthlySummary(BaseModel):
    month: str = Field(..., description="Short Spanish month label (Ene..Dic)")
    key: str = Field(..., description="YYYY-MM")
    year: int
    amount: float
    count: int


class CategorySummary(BaseModel):
    category: str
    amount: float
    percentage: float


class RecentInvoice(BaseModel):
    id: str
    date: str
    supplier: str
    amount: float
    status: Literal["success", "pending", "error"]
    type: Literal["purchase", "expense"]


class FetchSummary(BaseModel):
    """How much of the upstream data the report is built on."""

    pages_fetched: int = Field(0, alias="pagesFetched")
    pages_failed: List[int] = Field(default_factory=list, alias="pagesFailed")
    records_fetched: int = Field(0, alias="recordsFetched")
    records_after_dedupe: int = Field(0, alias="recordsAfterDedupe")
    records_dropped: int = Field(0, alias="recordsDropped")
    complete: bool = True

    model_config = {"populate_by_name": True}


class AnalyticsReport(BaseModel):
    total_invoices: int = Field(0, alias="totalInvoices")
    total_amount: float = Field(0.0, alias="totalAmount")
    average_amount: float = Field(0.0, alias="averageAmount")
    monthly_growth: float = Field(0.0, alias="monthlyGrowth")
    top_suppliers: List[SupplierSummary] = Field(default_factory=list, alias="topSuppliers")
    monthly_data: List[MonthlySummary] = Field(default_factory=list, alias="monthlyData")
    category_breakdown: List[CategorySummary] = Field(
        default_factory=list, alias="categoryBreakdown"
    )
    recent_invoices: List[RecentInvoice] = Field(default_factory=list, alias="recentInvoices")
    fetch: FetchSummary = Field(default_factory=FetchSummary)

    model_config = {"populate_by_name": True}

    @classmethod
    def empty(cls) -> "AnalyticsReport":
        """All-zero report used when the pipeline fails unexpectedly."""
        return cls(fetch=FetchSummary(complete=False))


# ---------- Submission forms ----------


class Provider(BaseModel):
    identification: str = Field(..., min_length=1)
    name: Optional[str] = None
    branch_office: int = 0


class FormItem(BaseModel):
    type: ItemKind = "product"
    code: str = ""
    description: str = ""
    quantity: float = Field(1, gt=0)
    price: float = Field(0, ge=0)
    warehouse: Optional[int] = None
    has_iva: bool = Field(False, alias="hasIVA")

    model_config = {"populate_by_name": True}


class PurchaseForm(BaseModel):
    """Purchase invoice captured by the invoicing form."""

    provider: Provider
    items: List[FormItem] = Field(..., min_length=1)
    document_id: Optional[int] = None
    date: Optional[str] = None
    observations: Optional[str] = None
    cost_center: Optional[int] = None
    provider_invoice_prefix: Optional[str] = None
    provider_invoice_number: Optional[str] = None
    payment_id: Optional[int] = None
    iva_percentage: float = Field(19, ge=0, le=100)


class InvoiceForm(BaseModel):
    """Sales invoice variant of the form."""

    customer: Provider
    items: List[FormItem] = Field(..., min_length=1)
    observations: Optional[str] = None
    send_stamp: bool = True
    send_mail: bool = False


class SubmissionResponse(BaseModel):
    success: bool
    message: str
    data: Optional[dict] = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    details: Optional[Any] = None