"""
Payment service — creates payment intents with Stripe.

With STRIPE_TEST_MODE on, no provider call is made: a simulated intent with the
same shape is returned and tagged test_mode=true in its metadata so the
storefront can drive the webhook itself.

Amounts are integers in minor units (cents) throughout.
"""
import asyncio
import json
import logging
import secrets
import time
from typing import Optional

import stripe

from config import settings
from domain.errors import DependencyError, GatewayNotConfiguredError
from models import CartItem, ShippingInfo
from services.async_executor import run_blocking
from utils.validators import validate_minor_amount

logger = logging.getLogger(__name__)


def build_intent_metadata(
    shipping: Optional[ShippingInfo],
    items: Optional[list[CartItem]],
    *,
    test_mode: bool,
) -> dict[str, str]:
    """
    Stripe metadata values must be strings, so the checkout context is carried
    as two JSON documents. The webhook workflow parses them back.
    """
    metadata = {
        "shipping": json.dumps(
            shipping.model_dump(mode="json", by_alias=True) if shipping else {}
        ),
        "items": json.dumps(
            [i.model_dump(mode="json", by_alias=True, exclude_none=True) for i in items or []]
        ),
    }
    if test_mode:
        metadata["test_mode"] = "true"
    return metadata


def create_mock_payment_intent(amount: int, currency: str, metadata: dict) -> dict:
    """Simulated intent: pi_test_<epoch ms>_<token> with a matching client secret."""
    intent_id = f"pi_test_{int(time.time() * 1000)}_{secrets.token_hex(6)}"
    return {
        "id": intent_id,
        "object": "payment_intent",
        "amount": amount,
        "currency": currency,
        "status": "requires_payment_method",
        "client_secret": f"{intent_id}_secret_{secrets.token_hex(12)}",
        "metadata": metadata,
        "created": int(time.time()),
        "livemode": False,
    }


async def create_intent(
    amount,
    currency: Optional[str] = None,
    shipping: Optional[ShippingInfo] = None,
    items: Optional[list[CartItem]] = None,
) -> dict:
    """
    Create a payment intent for the checkout.

    Args:
        amount: Charge in minor units; must be a positive integer
        currency: ISO currency code (defaults to DEFAULT_CURRENCY)
        shipping: Shipping/customer block, stored in metadata
        items: Cart line items, stored in metadata

    Returns:
        dict: {clientSecret, paymentIntentId, testMode}

    Raises:
        InvalidAmountError: amount missing, non-integral or not positive
        GatewayNotConfiguredError: live mode without STRIPE_SECRET_KEY
        DependencyError: provider rejected the request or timed out
    """
    amount = validate_minor_amount(amount)
    currency = (currency or settings.default_currency).lower()
    test_mode = settings.stripe_test_mode
    metadata = build_intent_metadata(shipping, items, test_mode=test_mode)

    if test_mode:
        intent = create_mock_payment_intent(amount, currency, metadata)
        logger.info(f"🧪 Test payment intent created: {intent['id']} ({amount} {currency})")
    else:
        if not settings.stripe_secret_key:
            raise GatewayNotConfiguredError()
        try:
            intent = await run_blocking(
                stripe.PaymentIntent.create,
                timeout=settings.outbound_timeout_seconds,
                api_key=settings.stripe_secret_key,
                amount=amount,
                currency=currency,
                metadata=metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe PaymentIntent.create failed: {e}")
            raise DependencyError(
                f"Payment provider error: {e.user_message or str(e)}",
                details={"provider": "stripe"},
            )
        except asyncio.TimeoutError:
            logger.error("Stripe PaymentIntent.create timed out")
            raise DependencyError("Payment provider timed out", details={"provider": "stripe"})
        logger.info(f"Payment intent created: {intent['id']} ({amount} {currency})")

    return {
        "clientSecret": intent["client_secret"],
        "paymentIntentId": intent["id"],
        "testMode": test_mode,
    }


def public_payment_config() -> dict:
    """What the storefront needs to render checkout."""
    return {
        "testMode": settings.stripe_test_mode,
        "currency": settings.default_currency,
        "shippingCost": float(settings.shipping_cost),
    }
