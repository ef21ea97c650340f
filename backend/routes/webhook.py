"""
Stripe webhook endpoint.

The body is read raw: signature verification needs the exact bytes Stripe sent.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from deps import get_notifier, get_order_repository
from services import webhook_service
from services.notification_service import Notifier
from services.order_storage import OrderRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/webhook")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    x_test_mode: Optional[str] = Header(None, alias="x-test-mode"),
    repository: OrderRepository = Depends(get_order_repository),
    notifier: Notifier = Depends(get_notifier),
):
    payload = await request.body()
    return await webhook_service.receive_webhook(
        payload,
        signature=stripe_signature,
        test_mode_header=x_test_mode,
        repository=repository,
        notifier=notifier,
    )
