"""
Webhook Service — verifies and dispatches Stripe events.

Live events must carry a valid stripe-signature; verification fails closed.
In test mode the storefront posts simulated events itself, flagged with the
x-test-mode header, and those are accepted unsigned. The flag is ignored
outside test mode.
"""
import json
import logging
from collections.abc import Mapping
from typing import Optional

import stripe

from config import settings
from domain.constants import EVENT_PAYMENT_FAILED, EVENT_PAYMENT_SUCCEEDED
from domain.errors import GatewayNotConfiguredError, SignatureInvalidError, ValidationError
from services.notification_service import Notifier
from services.order_service import process_failed_payment, process_succeeded_payment
from services.order_storage import OrderRepository

logger = logging.getLogger(__name__)


def is_simulated_request(test_mode_header: Optional[str]) -> bool:
    flagged = (test_mode_header or "").strip().lower() == "true"
    if flagged and not settings.stripe_test_mode:
        logger.warning("x-test-mode header ignored: gateway is in live mode")
        return False
    return flagged


def construct_event(payload: bytes, signature: Optional[str]) -> dict:
    """
    Verify a live webhook and return the event as a plain dict.

    Raises:
        SignatureInvalidError: header missing or signature does not verify
        GatewayNotConfiguredError: STRIPE_WEBHOOK_SECRET not set
    """
    if not signature:
        raise SignatureInvalidError("Missing stripe-signature header")
    if not settings.stripe_webhook_secret:
        raise GatewayNotConfiguredError("STRIPE_WEBHOOK_SECRET is not configured")

    try:
        stripe.Webhook.construct_event(payload, signature, settings.stripe_webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.warning(f"Webhook signature verification failed: {e}")
        raise SignatureInvalidError()
    except ValueError as e:
        logger.warning(f"Webhook payload could not be parsed: {e}")
        raise SignatureInvalidError("Invalid webhook payload")

    # Verified; re-read the raw body so handlers see plain dicts
    return json.loads(payload)


def parse_simulated_event(payload: bytes) -> dict:
    """
    Parse an unsigned test-mode event.

    Raises:
        ValidationError: body is not a JSON object with a type
    """
    try:
        event = json.loads(payload or b"null")
    except ValueError:
        raise ValidationError("Invalid test webhook payload")
    if not isinstance(event, dict) or not event.get("type"):
        raise ValidationError("Test webhook payload must be an event object with a type")
    logger.info(f"🧪 Simulated webhook received: {event['type']}")
    return event


async def handle_event(
    event: dict,
    *,
    repository: OrderRepository,
    notifier: Notifier,
) -> dict:
    """Dispatch a verified event. Always acknowledges."""
    event_type = event.get("type")
    data = event.get("data")
    payment_intent = data.get("object") if isinstance(data, Mapping) else None

    if event_type == EVENT_PAYMENT_SUCCEEDED:
        result = await process_succeeded_payment(
            payment_intent, repository=repository, notifier=notifier,
        )
        return {"received": True, "type": event_type, "result": result.to_dict()}

    if event_type == EVENT_PAYMENT_FAILED:
        result = await process_failed_payment(payment_intent)
        return {"received": True, "type": event_type, "result": result.to_dict()}

    logger.info(f"Unhandled event type: {event_type}")
    return {"received": True, "type": event_type, "handled": False}


async def receive_webhook(
    payload: bytes,
    *,
    signature: Optional[str],
    test_mode_header: Optional[str],
    repository: OrderRepository,
    notifier: Notifier,
) -> dict:
    if is_simulated_request(test_mode_header):
        event = parse_simulated_event(payload)
    else:
        event = construct_event(payload, signature)
    return await handle_event(event, repository=repository, notifier=notifier)
