"""
Pydantic models for request/response validation and the canonical Order record.
"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator

from domain.enums import OrderStatus, PaymentStatus


class StoreBase(BaseModel):
    """Shared base — allows construction by Python name or camelCase alias."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True, extra="ignore")


# Decimal in Python, plain JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ── Checkout payloads ───────────────────────────────────────────────

class ShippingInfo(StoreBase):
    """Shipping/customer block captured at checkout."""
    first_name: str = Field("", alias="firstName")
    last_name: str = Field("", alias="lastName")
    email: Optional[str] = None
    phone: Optional[str] = None
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = Field("", alias="zipCode")
    country: str = "US"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CartItem(StoreBase):
    """Line item as the storefront sends it: price is a display string, e.g. "$50.00"."""
    id: Optional[str] = None
    name: str
    category: Optional[str] = None
    price: str
    quantity: int = Field(1, ge=1)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v):
        return None if v is None else str(v)

    @field_validator("price", mode="before")
    @classmethod
    def _price_as_display(cls, v):
        if isinstance(v, (int, float, Decimal)) and not isinstance(v, bool):
            return f"${Decimal(str(v)):.2f}"
        return v


class CreateIntentRequest(StoreBase):
    """POST /api/create-payment-intent — amount is in minor units (cents)."""
    amount: Optional[int | float] = None
    currency: Optional[str] = None
    shipping: Optional[ShippingInfo] = None
    items: List[CartItem] = Field(default_factory=list)


class CreateIntentResponse(StoreBase):
    client_secret: str = Field(..., alias="clientSecret")
    payment_intent_id: str = Field(..., alias="paymentIntentId")
    test_mode: bool = Field(..., alias="testMode")


# ── Admin payloads ──────────────────────────────────────────────────

class StatusUpdateRequest(StoreBase):
    status: Optional[str] = None


class LoginRequest(StoreBase):
    email: Optional[str] = None
    password: Optional[str] = None


class AdminUserOut(StoreBase):
    id: int
    email: str
    name: Optional[str] = None
    is_active: bool = Field(True, alias="isActive")
    last_login_at: Optional[datetime] = Field(None, alias="lastLoginAt")
    created_at: Optional[datetime] = Field(None, alias="createdAt")


# ── Canonical order record ──────────────────────────────────────────

class Order(StoreBase):
    """
    The one order shape every backend reads and writes.

    total is the provider-reported amount; amount_reconciled records whether it
    equals subtotal + shipping_cost.
    """
    order_id: str = Field(..., alias="orderId")
    payment_intent_id: Optional[str] = Field(None, alias="paymentIntentId")
    customer_email: Optional[str] = Field(None, alias="customerEmail")
    customer_name: str = Field("Customer", alias="customerName")
    shipping: Optional[ShippingInfo] = None
    items: List[CartItem] = Field(default_factory=list)
    subtotal: Money = Decimal("0.00")
    shipping_cost: Money = Field(Decimal("0.00"), alias="shippingCost")
    total: Money = Decimal("0.00")
    amount_reconciled: bool = Field(True, alias="amountReconciled")
    currency: str = "usd"
    payment_status: PaymentStatus = Field(PaymentStatus.SUCCEEDED, alias="paymentStatus")
    order_status: OrderStatus = Field(OrderStatus.ORDERED, alias="orderStatus")
    is_test_mode: bool = Field(False, alias="isTestMode")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    status_updated_at: Optional[datetime] = Field(None, alias="statusUpdatedAt")

    @field_validator("created_at", "status_updated_at", mode="after")
    @classmethod
    def _naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # Stored timestamps are naive UTC
        if v is not None and v.tzinfo is not None:
            return v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    def to_api(self) -> dict:
        """JSON-ready camelCase dict."""
        return self.model_dump(mode="json", by_alias=True)
