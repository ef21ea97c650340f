"""
Health check endpoint.
"""
from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, status

from config import settings
from deps import get_order_repository
from services.order_storage import OrderRepository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(repository: OrderRepository = Depends(get_order_repository)):
    """Health check — reports storage backend and gateway mode."""
    return {
        "status": "healthy",
        "storage": repository.backend_name,
        "database_configured": settings.database_configured,
        "stripe_test_mode": settings.stripe_test_mode,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
