"""
Order Service — turns a confirmed payment into a recorded order.

Flow for payment_intent.succeeded:
    1. Read amount, currency and checkout metadata off the intent
    2. Price the cart: subtotal = Σ price × qty, flat shipping, total = charged amount
    3. Build the canonical Order (status ordered)
    4. Fire three independent effects: invoice email, admin notification, persistence

Payment has already been captured by the time this runs, so nothing in step 4
can fail the workflow. Each effect is awaited, caught and reported on its own;
a webhook that answered non-2xx would only make the provider retry.
"""
import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from config import settings
from domain.constants import MINOR_UNITS
from domain.enums import EffectStatus, OrderStatus, PaymentStatus
from domain.errors import (
    DomainError,
    DuplicateOrderError,
    InvalidAmountError,
    MalformedPaymentPayloadError,
)
from models import CartItem, Order, ShippingInfo
from services.notification_service import Notifier
from services.order_storage import OrderRepository
from utils.validators import minor_to_major, parse_price, quantize_money, validate_minor_amount

logger = logging.getLogger(__name__)

EFFECT_INVOICE = "invoiceEmail"
EFFECT_ADMIN = "adminNotification"
EFFECT_PERSIST = "persistence"


@dataclass
class EffectOutcome:
    status: EffectStatus
    detail: Optional[str] = None
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        result = {"status": self.status.value}
        if self.detail:
            result["detail"] = self.detail
        if self.data:
            result.update(self.data)
        return result


@dataclass
class ProcessingResult:
    success: bool
    order: Optional[Order] = None
    effects: dict[str, EffectOutcome] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict:
        result: dict = {"success": self.success}
        if self.order is not None:
            result["orderId"] = self.order.order_id
            result["order"] = self.order.to_api()
        if self.effects:
            result["effects"] = {name: o.to_dict() for name, o in self.effects.items()}
        if self.error:
            result["error"] = self.error
        return result


# ── Payload reading ─────────────────────────────────────────────────

def _require_intent(payment_intent) -> tuple[str, int]:
    if payment_intent is None or not isinstance(payment_intent, Mapping):
        raise MalformedPaymentPayloadError()
    intent_id = payment_intent.get("id")
    if not intent_id:
        raise MalformedPaymentPayloadError("Payment intent has no id")
    if payment_intent.get("amount") is None:
        raise MalformedPaymentPayloadError("Payment intent has no amount")
    try:
        amount = validate_minor_amount(payment_intent.get("amount"))
    except InvalidAmountError:
        raise MalformedPaymentPayloadError("Payment intent amount is not a positive integer")
    return str(intent_id), amount


def _metadata_json(metadata: Mapping, key: str, intent_id: str):
    raw = metadata.get(key)
    if raw in (None, ""):
        return None
    if isinstance(raw, (dict, list)):
        return raw
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable {key} metadata on {intent_id}, ignoring it")
        return None


def _read_shipping(metadata: Mapping, intent_id: str) -> Optional[ShippingInfo]:
    raw = _metadata_json(metadata, "shipping", intent_id)
    if not isinstance(raw, dict) or not raw:
        return None
    try:
        return ShippingInfo.model_validate(raw)
    except PydanticValidationError:
        logger.warning(f"Invalid shipping metadata on {intent_id}, ignoring it")
        return None


def _read_items(metadata: Mapping, intent_id: str) -> list[CartItem]:
    raw = _metadata_json(metadata, "items", intent_id)
    if not isinstance(raw, list):
        return []
    items = []
    for entry in raw:
        try:
            items.append(CartItem.model_validate(entry))
        except PydanticValidationError:
            logger.warning(f"Skipping invalid line item on {intent_id}: {entry!r}")
    return items


def compute_subtotal(items: list[CartItem]) -> Decimal:
    """Σ unit price × quantity, 2dp. Items with an unreadable price count as zero."""
    subtotal = Decimal("0.00")
    for item in items:
        try:
            subtotal += parse_price(item.price) * item.quantity
        except DomainError:
            logger.warning(f"Unreadable price {item.price!r} for item {item.name!r}")
    return quantize_money(subtotal)


def _created_at(payment_intent: Mapping) -> datetime:
    created = payment_intent.get("created")
    if isinstance(created, (int, float)) and not isinstance(created, bool):
        try:
            return datetime.fromtimestamp(created, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, ValueError, OSError):
            logger.warning(f"Unusable created timestamp {created!r}, using current time")
    return datetime.utcnow()


def _receipt_email(payment_intent: Mapping) -> Optional[str]:
    email = payment_intent.get("receipt_email")
    return email if isinstance(email, str) and email else None


def build_order(payment_intent: Mapping) -> Order:
    """
    Build the canonical Order from a succeeded payment intent.

    Raises:
        MalformedPaymentPayloadError: payload missing, not a mapping, or without id/amount,
            or fields the Order model rejects
    """
    intent_id, amount = _require_intent(payment_intent)
    metadata = payment_intent.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        logger.warning(f"Metadata on {intent_id} is not an object, ignoring it")
        metadata = {}

    shipping = _read_shipping(metadata, intent_id)
    items = _read_items(metadata, intent_id)

    subtotal = compute_subtotal(items)
    shipping_cost = quantize_money(settings.shipping_cost)
    total = minor_to_major(amount, MINOR_UNITS)
    reconciled = (subtotal + shipping_cost) == total
    if not reconciled:
        logger.warning(
            f"Amount mismatch on {intent_id}: charged {total}, "
            f"subtotal {subtotal} + shipping {shipping_cost} = {subtotal + shipping_cost}"
        )

    is_test_mode = (
        str(metadata.get("test_mode", "")).lower() == "true"
        or settings.stripe_test_mode
    )

    try:
        return Order(
            order_id=intent_id,
            payment_intent_id=intent_id,
            customer_email=(shipping.email if shipping else None) or _receipt_email(payment_intent),
            customer_name=(shipping.full_name if shipping else "") or "Customer",
            shipping=shipping,
            items=items,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=total,
            amount_reconciled=reconciled,
            currency=str(payment_intent.get("currency") or settings.default_currency).lower(),
            payment_status=PaymentStatus.SUCCEEDED,
            order_status=OrderStatus.ORDERED,
            is_test_mode=is_test_mode,
            created_at=_created_at(payment_intent),
        )
    except PydanticValidationError as e:
        raise MalformedPaymentPayloadError(
            f"Payment intent {intent_id} does not describe a valid order "
            f"({e.error_count()} invalid fields)"
        )


# ── Effects ─────────────────────────────────────────────────────────

async def _run_effect(
    name: str,
    order_id: str,
    action: Callable[[], Awaitable[dict]],
) -> EffectOutcome:
    try:
        data = await action()
    except DuplicateOrderError:
        logger.info(f"Order {order_id} already recorded, treating redelivery as processed")
        return EffectOutcome(EffectStatus.DUPLICATE, detail="Order already recorded")
    except DomainError as e:
        logger.error(f"{name} failed for {order_id}: {e.message}")
        return EffectOutcome(EffectStatus.FAILED, detail=e.message)
    except Exception as e:
        logger.error(f"{name} failed for {order_id}: {e}", exc_info=True)
        return EffectOutcome(EffectStatus.FAILED, detail=str(e) or type(e).__name__)
    return EffectOutcome(EffectStatus.SUCCEEDED, data=data or {})


async def _send_invoice(order: Order, notifier: Notifier) -> EffectOutcome:
    if not order.customer_email:
        logger.warning(f"No email address found for {order.order_id}, invoice skipped")
        return EffectOutcome(EffectStatus.SKIPPED, detail="No customer email")
    if not notifier.email_enabled:
        return EffectOutcome(EffectStatus.SKIPPED, detail="Email not configured")
    return await _run_effect(EFFECT_INVOICE, order.order_id, lambda: notifier.send_invoice(order))


async def _notify_admin(order: Order, notifier: Notifier) -> EffectOutcome:
    if not notifier.admin_channels:
        return EffectOutcome(EffectStatus.SKIPPED, detail="No admin channel configured")
    return await _run_effect(EFFECT_ADMIN, order.order_id, lambda: notifier.notify_admin(order))


async def _persist(order: Order, repository: OrderRepository) -> EffectOutcome:
    async def store() -> dict:
        persisted = await repository.store_order(order)
        data = {"backend": persisted.backend}
        if persisted.archive:
            data["archive"] = persisted.archive
        return data

    return await _run_effect(EFFECT_PERSIST, order.order_id, store)


# ── Workflow entry points ───────────────────────────────────────────

async def process_succeeded_payment(
    payment_intent,
    *,
    repository: OrderRepository,
    notifier: Notifier,
) -> ProcessingResult:
    """
    Record a paid order and fan out its side effects.

    Never raises. success is False only when the payload itself is unusable.
    """
    try:
        order = build_order(payment_intent)
    except MalformedPaymentPayloadError as e:
        logger.error(f"Cannot process succeeded payment: {e.message}")
        return ProcessingResult(success=False, error=e.message)

    mode = "🧪 TEST" if order.is_test_mode else "LIVE"
    logger.info(f"Processing {mode} order {order.order_id} (total {order.total} {order.currency})")

    invoice, admin, persisted = await asyncio.gather(
        _send_invoice(order, notifier),
        _notify_admin(order, notifier),
        _persist(order, repository),
    )
    effects = {EFFECT_INVOICE: invoice, EFFECT_ADMIN: admin, EFFECT_PERSIST: persisted}

    summary = ", ".join(f"{name}={o.status.value}" for name, o in effects.items())
    logger.info(f"Order {order.order_id} processed: {summary}")
    return ProcessingResult(success=True, order=order, effects=effects)


async def process_failed_payment(payment_intent) -> ProcessingResult:
    """Log a failed payment. No order is recorded."""
    try:
        intent_id, amount = _require_intent(payment_intent)
    except MalformedPaymentPayloadError as e:
        logger.error(f"Cannot process failed payment: {e.message}")
        return ProcessingResult(success=False, error=e.message)

    last_error = payment_intent.get("last_payment_error") or {}
    reason = last_error.get("message") if isinstance(last_error, Mapping) else None
    logger.warning(
        f"Payment failed: {intent_id} ({amount} {payment_intent.get('currency') or ''})"
        + (f" - {reason}" if reason else "")
    )
    return ProcessingResult(success=True)
