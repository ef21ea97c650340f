"""
Admin order endpoints.

  GET   /api/admin/orders                     — list (admin session)
  PATCH /api/admin/orders/{order_id}/status   — change fulfilment status (admin session)
  POST  /api/admin/orders                     — internal ingestion (X-Internal-API-Key)
"""
import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status

from config import settings
from deps import Pagination, get_order_repository, pagination_params, require_internal_api_key
from domain.responses import success_response
from middleware.auth import require_admin_session
from models import StatusUpdateRequest
from services import admin_service
from services.order_storage import OrderRepository

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/orders")
async def list_orders(
    _admin: dict = Depends(require_admin_session),
    order_id: Optional[str] = Query(None, alias="orderId"),
    test_mode: Optional[str] = Query(None, alias="testMode"),
    order_status: Optional[str] = Query(None, alias="orderStatus"),
    include_metrics: bool = Query(False, alias="includeMetrics"),
    page: Pagination = Depends(pagination_params),
    repository: OrderRepository = Depends(get_order_repository),
):
    return await admin_service.list_orders(
        repository,
        order_id=order_id,
        test_mode=test_mode,
        order_status=order_status,
        limit=page["limit"],
        offset=page["offset"],
        include_metrics=include_metrics,
    )


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    body: StatusUpdateRequest,
    admin: dict = Depends(require_admin_session),
    repository: OrderRepository = Depends(get_order_repository),
):
    order = await admin_service.update_order_status(repository, order_id, body.status)
    logger.info(f"Status of {order_id} set by {admin.get('email')}")
    return success_response(order.to_api())


@router.post("/orders", status_code=status.HTTP_201_CREATED)
async def ingest_order(
    payload: dict = Body(...),
    _key: None = Depends(require_internal_api_key),
    repository: OrderRepository = Depends(get_order_repository),
):
    order = await admin_service.record_order(
        repository, payload, default_shipping_cost=settings.shipping_cost,
    )
    return success_response(order.to_api())
