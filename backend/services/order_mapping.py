"""
Order shape reconciliation.

Orders reach the service in several historical shapes: the webhook workflow's
nested `shipping` block, the storefront's `shippingInfo`, and the flat
`customerFirstName … shippingCountry` columns of the relational table. Every
path converges on models.Order here, so the admin panel only ever sees one shape.
"""
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from pydantic import ValidationError as PydanticValidationError

from db_models import OrderRow
from domain.enums import OrderStatus, PaymentStatus
from domain.errors import ValidationError
from models import CartItem, Order, ShippingInfo
from utils.validators import quantize_money

logger = logging.getLogger(__name__)

DEFAULT_SHIPPING_COST = Decimal("10.00")

# Flat (relational-era) field name → ShippingInfo alias
_FLAT_SHIPPING_FIELDS = {
    "customerFirstName": "firstName",
    "customerLastName": "lastName",
    "customerPhone": "phone",
    "shippingAddress": "address",
    "shippingCity": "city",
    "shippingState": "state",
    "shippingZipCode": "zipCode",
    "shippingCountry": "country",
}


def coerce_order_status(value) -> OrderStatus:
    """Lenient status read for stored records: case-insensitive, unknown → ordered."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        return OrderStatus.ORDERED


def _as_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def _as_money(value, default: Decimal | None = None) -> Decimal | None:
    if value is None or value == "":
        return default
    try:
        return quantize_money(Decimal(str(value)))
    except InvalidOperation:
        raise ValidationError(f"Not a monetary amount: {value!r}")


def normalize_order_payload(
    data: dict,
    *,
    default_shipping_cost: Decimal = DEFAULT_SHIPPING_COST,
) -> Order:
    """
    Build a canonical Order from any historical payload shape.

    Raises:
        ValidationError if the payload is not an object or fails field validation
    """
    if not isinstance(data, dict):
        raise ValidationError("Order payload must be a JSON object")

    shipping_raw = data.get("shipping") or data.get("shippingInfo")
    if not shipping_raw:
        flat = {
            alias: data[field]
            for field, alias in _FLAT_SHIPPING_FIELDS.items()
            if data.get(field)
        }
        shipping_raw = flat or None

    try:
        shipping = ShippingInfo.model_validate(shipping_raw) if shipping_raw else None
        items = [CartItem.model_validate(i) for i in (data.get("items") or [])]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid order payload: {e.errors()[0].get('msg')}")

    customer_email = data.get("customerEmail") or (shipping.email if shipping else None)
    customer_name = data.get("customerName") or (
        shipping.full_name if shipping and shipping.full_name else "Customer"
    )

    shipping_cost = _as_money(data.get("shippingCost"), default_shipping_cost)
    total = _as_money(data.get("total"), Decimal("0.00"))
    # Never derive a negative subtotal (e.g. a payload without a total)
    subtotal = _as_money(data.get("subtotal"), max(total - shipping_cost, Decimal("0.00")))

    try:
        return Order(
            order_id=data.get("orderId"),
            payment_intent_id=data.get("paymentIntentId") or data.get("orderId"),
            customer_email=customer_email,
            customer_name=customer_name,
            shipping=shipping,
            items=items,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=total,
            amount_reconciled=(subtotal + shipping_cost) == total,
            currency=(data.get("currency") or "usd").lower(),
            payment_status=data.get("paymentStatus") or PaymentStatus.SUCCEEDED,
            order_status=coerce_order_status(data.get("orderStatus") or OrderStatus.ORDERED),
            is_test_mode=_as_bool(data.get("isTestMode", data.get("testMode", False))),
            created_at=data.get("createdAt"),
            status_updated_at=data.get("statusUpdatedAt"),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid order payload: {e.errors()[0].get('msg')}")


# ── Relational mapping ──────────────────────────────────────────────

def order_to_row(order: Order) -> OrderRow:
    shipping = order.shipping or ShippingInfo()
    return OrderRow(
        order_id=order.order_id,
        payment_intent_id=order.payment_intent_id,
        customer_email=order.customer_email,
        customer_name=order.customer_name,
        customer_first_name=shipping.first_name or None,
        customer_last_name=shipping.last_name or None,
        customer_phone=shipping.phone,
        shipping_address=shipping.address or None,
        shipping_city=shipping.city or None,
        shipping_state=shipping.state or None,
        shipping_zip_code=shipping.zip_code or None,
        shipping_country=shipping.country if order.shipping else None,
        items=[i.model_dump(mode="json", by_alias=True, exclude_none=True) for i in order.items],
        subtotal=order.subtotal,
        shipping_cost=order.shipping_cost,
        total=order.total,
        amount_reconciled=order.amount_reconciled,
        currency=order.currency,
        payment_status=order.payment_status.value,
        order_status=order.order_status.value,
        is_test_mode=order.is_test_mode,
        created_at=order.created_at or datetime.utcnow(),
        status_updated_at=order.status_updated_at,
    )


def _row_items(raw_items) -> list[CartItem]:
    items = []
    for raw in raw_items or []:
        try:
            items.append(CartItem.model_validate(raw))
        except PydanticValidationError:
            logger.warning(f"Skipping unreadable stored line item: {raw!r}")
    return items


def row_to_order(row: OrderRow) -> Order:
    has_shipping = any(
        (row.customer_first_name, row.customer_last_name, row.shipping_address, row.shipping_city)
    )
    shipping = (
        ShippingInfo(
            first_name=row.customer_first_name or "",
            last_name=row.customer_last_name or "",
            email=row.customer_email,
            phone=row.customer_phone,
            address=row.shipping_address or "",
            city=row.shipping_city or "",
            state=row.shipping_state or "",
            zip_code=row.shipping_zip_code or "",
            country=row.shipping_country or "US",
        )
        if has_shipping
        else None
    )
    return Order(
        order_id=row.order_id,
        payment_intent_id=row.payment_intent_id,
        customer_email=row.customer_email,
        customer_name=row.customer_name or (shipping.full_name if shipping else "Customer"),
        shipping=shipping,
        items=_row_items(row.items),
        subtotal=quantize_money(Decimal(str(row.subtotal))),
        shipping_cost=quantize_money(Decimal(str(row.shipping_cost))),
        total=quantize_money(Decimal(str(row.total))),
        amount_reconciled=bool(row.amount_reconciled),
        currency=row.currency or "usd",
        payment_status=row.payment_status or PaymentStatus.SUCCEEDED,
        order_status=coerce_order_status(row.order_status),
        is_test_mode=bool(row.is_test_mode),
        created_at=row.created_at,
        status_updated_at=row.status_updated_at,
    )
