"""
Shared FastAPI dependencies.

Routers import from here so the long-lived services built in the lifespan
(order repository, notifier) and common guards come from a single place.
"""

from __future__ import annotations

import secrets
from typing import Optional, TypedDict

from fastapi import Header, Query, Request

from config import settings
from domain.errors import ConfigurationError, UnauthorizedError
from services.notification_service import Notifier
from services.order_storage import OrderRepository


class Pagination(TypedDict):
    limit: int
    offset: int


def pagination_params(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0, le=100_000),
) -> Pagination:
    return {"limit": limit, "offset": offset}


def get_order_repository(request: Request) -> OrderRepository:
    repository = getattr(request.app.state, "order_repository", None)
    if repository is None:
        raise ConfigurationError("Order storage has not been initialised")
    return repository


def get_notifier(request: Request) -> Notifier:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        raise ConfigurationError("Notifier has not been initialised")
    return notifier


async def require_internal_api_key(
    x_internal_api_key: Optional[str] = Header(None, alias="X-Internal-API-Key"),
) -> None:
    """
    Guard for service-to-service endpoints.

    Open when INTERNAL_API_KEY is unset, otherwise the header must match.
    """
    if not settings.internal_api_key:
        return
    if not x_internal_api_key or not secrets.compare_digest(
        x_internal_api_key.encode("utf-8"), settings.internal_api_key.encode("utf-8")
    ):
        raise UnauthorizedError("Invalid internal API key")
