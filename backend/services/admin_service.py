"""
Admin service — order listing, status changes and internal ingestion.

All reads and writes go through the OrderRepository resolved at startup, so
the admin panel sees the same canonical order shape whichever backend holds
the data.
"""
import logging
from decimal import Decimal
from typing import Optional

from domain.enums import OrderStatus
from domain.errors import InvalidStatusError, ValidationError
from domain.responses import paginated_response
from models import Order
from services.order_mapping import normalize_order_payload
from services.order_storage import OrderFilters, OrderRepository

logger = logging.getLogger(__name__)


def parse_status(value) -> OrderStatus:
    """
    Strict status parse for writes and filters. Case-insensitive.

    Raises:
        InvalidStatusError
    """
    if not isinstance(value, str):
        raise InvalidStatusError(value, OrderStatus.values())
    try:
        return OrderStatus(value.strip().lower())
    except ValueError:
        raise InvalidStatusError(value, OrderStatus.values())


def parse_test_mode(value: Optional[str]) -> Optional[bool]:
    """'true' / 'false' filter; anything else means no filter."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


async def list_orders(
    repository: OrderRepository,
    *,
    order_id: Optional[str] = None,
    test_mode: Optional[str] = None,
    order_status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    include_metrics: bool = False,
) -> dict:
    """
    Filtered, paginated order list, newest first.

    Returns:
        Paginated envelope; meta.metrics holds totals under the same testMode
        filter when include_metrics is set.
    """
    test_mode_filter = parse_test_mode(test_mode)
    filters = OrderFilters(
        order_id=order_id or None,
        test_mode=test_mode_filter,
        order_status=parse_status(order_status) if order_status else None,
    )
    page = await repository.list_orders(filters, limit=limit, offset=offset)

    extra_meta = {"storage": repository.backend_name}
    if include_metrics:
        metrics = await repository.metrics(OrderFilters(test_mode=test_mode_filter))
        extra_meta["metrics"] = metrics.to_dict()

    return paginated_response(
        [order.to_api() for order in page.orders],
        limit=limit,
        offset=offset,
        total=page.total,
        extra_meta=extra_meta,
    )


async def update_order_status(repository: OrderRepository, order_id: str, status) -> Order:
    """
    Raises:
        InvalidStatusError: status is not ordered / couriered / delivered
        OrderNotFoundError: no such order
    """
    new_status = parse_status(status)
    order = await repository.update_status(order_id, new_status)
    logger.info(f"Order {order_id} status → {new_status.value}")
    return order


async def record_order(
    repository: OrderRepository,
    data: dict,
    *,
    default_shipping_cost: Decimal,
) -> Order:
    """
    Store an order pushed by another service.

    Raises:
        ValidationError: orderId or customerEmail missing, or payload invalid
        DuplicateOrderError: orderId already recorded
    """
    if not isinstance(data, dict) or not data.get("orderId") or not data.get("customerEmail"):
        raise ValidationError("Missing required fields: orderId and customerEmail")

    order = normalize_order_payload(data, default_shipping_cost=default_shipping_cost)
    persisted = await repository.store_order(order)
    logger.info(f"Order ingested: {persisted.order.order_id} ({persisted.backend})")
    return persisted.order
