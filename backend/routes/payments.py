"""
Checkout endpoints.

  POST /api/create-payment-intent  — start a payment; returns the client secret
  GET  /api/payments/config        — gateway mode for the storefront
"""
import logging

from fastapi import APIRouter

from domain.responses import success_response
from models import CreateIntentRequest, CreateIntentResponse
from services import payment_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["payments"])


@router.post("/create-payment-intent", response_model=CreateIntentResponse, response_model_by_alias=True)
async def create_payment_intent(request: CreateIntentRequest):
    # Stripe.js reads clientSecret off the top level, so no envelope here
    return await payment_service.create_intent(
        request.amount,
        currency=request.currency,
        shipping=request.shipping,
        items=request.items,
    )


@router.get("/payments/config")
async def payment_config():
    return success_response(payment_service.public_payment_config())
