"""
Pydantic Schemas for Records, Requests and Responses

Rows returned by the backend are validated into these models before any
page logic touches them. Money is carried as Decimal and rendered as a
JSON number.

Author: Khalil Bannouri
Version: 1.0.0
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from oona.models import OrderStatus


CENTS = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    """Round a Decimal amount to two places."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# =============================================================================
# RECORDS
# =============================================================================

class MenuItem(BaseModel):
    """A sellable dish."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    description: str = ""
    category: str
    price: Decimal = Field(..., ge=0)
    image_url: Optional[str] = None
    available: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v) -> str:
        return str(v)

    @field_validator("price")
    @classmethod
    def round_price(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @field_serializer("price", when_used="json")
    def serialize_price(self, v: Decimal) -> float:
        return float(v)


class OrderLineItem(BaseModel):
    """Snapshot of one cart entry taken when the order was placed."""
    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v) -> Optional[str]:
        return None if v is None else str(v)

    @field_validator("price")
    @classmethod
    def round_price(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @property
    def line_total(self) -> Decimal:
        return quantize_money(self.price * self.quantity)

    @field_serializer("price", when_used="json")
    def serialize_price(self, v: Decimal) -> float:
        return float(v)


class Order(BaseModel):
    """A table order as stored."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    table_number: int = Field(..., gt=0)
    items: List[OrderLineItem] = Field(default_factory=list)
    total: Decimal = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    customer_notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v) -> str:
        return str(v)

    @field_validator("total")
    @classmethod
    def round_total(cls, v: Decimal) -> Decimal:
        return quantize_money(v)

    @field_serializer("total", when_used="json")
    def serialize_total(self, v: Decimal) -> float:
        return float(v)

    @property
    def items_total(self) -> Decimal:
        return quantize_money(sum((item.line_total for item in self.items), Decimal("0")))


class DashboardStats(BaseModel):
    """Aggregate counters shown on the admin dashboard."""
    today_earnings: Decimal = Decimal("0.00")
    monthly_earnings: Decimal = Decimal("0.00")
    total_orders: int = 0
    active_tables: int = 0
    pending_orders: int = 0
    in_progress_orders: int = 0
    completed_orders: int = 0

    @field_serializer("today_earnings", "monthly_earnings", when_used="json")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)


# =============================================================================
# REQUEST SCHEMAS
# =============================================================================

class CartItemAdd(BaseModel):
    """Add one unit of a menu item to the cart."""
    item_id: str = Field(..., min_length=1)


class CartItemUpdate(BaseModel):
    """Set an absolute quantity; zero or less removes the entry."""
    quantity: int


class CheckoutRequest(BaseModel):
    """Place the current cart as a table order."""
    table_number: Union[int, str] = Field(..., examples=["5"])
    customer_notes: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(BaseModel):
    """Advance an order to a new status."""
    status: OrderStatus


class ResetRequest(BaseModel):
    """Explicit confirmation for the destructive reset."""
    confirm: bool = False


# =============================================================================
# RESPONSE SCHEMAS
# =============================================================================

class CartLine(BaseModel):
    id: str
    name: str
    price: Decimal
    quantity: int
    line_total: Decimal
    image_url: Optional[str] = None

    @field_serializer("price", "line_total", when_used="json")
    def serialize_money(self, v: Decimal) -> float:
        return float(v)


class CartResponse(BaseModel):
    """Current cart contents and derived totals."""
    items: List[CartLine]
    item_count: int
    total: Decimal

    @field_serializer("total", when_used="json")
    def serialize_total(self, v: Decimal) -> float:
        return float(v)


class MenuResponse(BaseModel):
    """Filtered menu plus the available category choices."""
    items: List[MenuItem]
    categories: List[str]


class OrderCreateResponse(BaseModel):
    """Response after successfully placing an order."""
    success: bool
    message: str
    order: Optional[Order] = None


class DashboardSnapshot(BaseModel):
    """Active orders plus aggregate counters."""
    orders: List[Order]
    stats: DashboardStats


class StatusUpdateResponse(BaseModel):
    """Outcome of a status change together with the resulting view."""
    success: bool
    outcome: str
    error: Optional[str] = None
    dashboard: DashboardSnapshot


class ImageUploadResponse(BaseModel):
    """Response after uploading a menu image."""
    success: bool
    image_url: Optional[str] = None
    error: Optional[str] = None


class ErrorResponse(BaseModel):
    """Standard error response."""
    success: bool = False
    error: str
    detail: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    backend: str
    provider: str
    environment: str
    timestamp: datetime
