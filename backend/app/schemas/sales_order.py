"""Sales order schemas for API request/response."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import EmailStr, Field, field_validator

from app.models.sales_order import SalesOrderStatus
from app.schemas.base import CamelModel

SortField = Literal["orderDate", "totalAmount", "status", "customerName"]
SortOrder = Literal["asc", "desc"]


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ── Embedded values ────────────────────────────────
class CustomerAddress(CamelModel):
    street: str = ""
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""
    phone: str = ""
    email: EmailStr | None = None

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, v):
        return v or None


class SalesOrderItem(CamelModel):
    product_id: str = Field(..., min_length=1)
    product_name: str = ""
    quantity: float = Field(..., gt=0)
    unit_price: float = Field(..., gt=0)
    line_total: float = Field(..., gt=0)
    description: str = ""
    sku: str = ""
    barcode: str = ""


# ── Requests ───────────────────────────────────────
class SalesOrderCreate(CamelModel):
    order_number: str | None = Field(default=None, min_length=1, max_length=64)
    customer_id: str = ""
    customer_name: str = ""
    customer_address: CustomerAddress = Field(default_factory=CustomerAddress)
    items: list[SalesOrderItem] = Field(..., min_length=1)
    subtotal: float = Field(..., gt=0)
    tax_amount: float = Field(..., ge=0)
    total_amount: float = Field(..., gt=0)
    currency_code: str = "USD"
    payment_method: str = ""
    payment_terms: str = ""
    shipment_method: str = ""
    order_date: datetime | None = None
    notes: str = ""
    status: SalesOrderStatus = SalesOrderStatus.PENDING

    @field_validator("order_date")
    @classmethod
    def order_date_utc(cls, v):
        return _as_utc(v)


class SalesOrderUpdate(CamelModel):
    customer_id: str | None = None
    customer_name: str | None = None
    customer_address: CustomerAddress | None = None
    items: list[SalesOrderItem] | None = Field(default=None, min_length=1)
    subtotal: float | None = Field(default=None, gt=0)
    tax_amount: float | None = Field(default=None, ge=0)
    total_amount: float | None = Field(default=None, gt=0)
    currency_code: str | None = None
    payment_method: str | None = None
    payment_terms: str | None = None
    shipment_method: str | None = None
    notes: str | None = None
    status: SalesOrderStatus | None = None

    def changes(self) -> dict:
        """Fields the caller actually sent, with embedded models as plain dicts."""
        return self.model_dump(exclude_unset=True, exclude_none=True, mode="json")


class SalesOrderQuery(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    status: SalesOrderStatus | None = None
    customer_id: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    sort_by: SortField = "orderDate"
    sort_order: SortOrder = "desc"

    @field_validator("start_date", "end_date")
    @classmethod
    def bounds_utc(cls, v):
        return _as_utc(v)


# ── Responses ──────────────────────────────────────
class SalesOrderResponse(CamelModel):
    id: str
    order_number: str
    customer_id: str
    customer_name: str
    customer_address: CustomerAddress
    items: list[SalesOrderItem]
    subtotal: float
    tax_amount: float
    total_amount: float
    currency_code: str
    payment_method: str
    payment_terms: str
    shipment_method: str
    order_date: datetime
    notes: str
    status: SalesOrderStatus
    bc_order_id: str | None = None
    bc_status: str | None = None
    created_at: datetime
    updated_at: datetime


class BcIntegration(CamelModel):
    success: bool
    bc_order_id: str | None = None
    bc_status: str | None = None
    error: str | None = None
    details: Any = None


class SalesOrderCreateResponse(SalesOrderResponse):
    bc_integration: BcIntegration


class Pagination(CamelModel):
    page: int
    limit: int
    total_orders: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class SalesOrderListResponse(CamelModel):
    orders: list[SalesOrderResponse]
    pagination: Pagination


class StatusBreakdown(CamelModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    cancelled: int = 0


class Revenue(CamelModel):
    total: float = 0.0
    average: float = 0.0


class RecentActivity(CamelModel):
    orders_last_30_days: int = 0
    revenue_last_30_days: float = 0.0


class SalesOrderStats(CamelModel):
    total_orders: int
    status_breakdown: StatusBreakdown
    revenue: Revenue
    recent_activity: RecentActivity
