"""
Order Storage — one store contract, several backends.

Primary stores (record of truth, support queries):
    SqlOrderStore       — relational table via async SQLAlchemy
    MemoryOrderStore    — process memory, used when no DATABASE_URL is set
    FallbackOrderStore  — primary store that degrades to memory on infra errors

Archives (parallel write of the full order document, selected by
ORDER_STORAGE_TYPE):
    internal → none
    s3       → S3OrderArchive   (boto3 put_object, orders/<orderId>/<ts>.json)
    api      → HttpOrderArchive (POST to DATABASE_API_URL)

The backend is resolved once at startup by resolve_order_repository() and
shared through app.state; nothing here reads settings at call time.
"""
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Optional

import boto3
import httpx
from botocore.config import Config as BotoConfig
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import Settings
from db_models import OrderRow
from domain.constants import ORDER_ARCHIVE_PREFIX
from domain.enums import OrderStatus, StorageType
from domain.errors import (
    ConfigurationError,
    DependencyError,
    DomainError,
    DuplicateOrderError,
    OrderNotFoundError,
)
from models import Order
from services.async_executor import run_blocking
from services.order_mapping import coerce_order_status, order_to_row, row_to_order
from utils.validators import quantize_money

logger = logging.getLogger(__name__)


# ── Query types ─────────────────────────────────────────────────────

@dataclass
class OrderFilters:
    order_id: Optional[str] = None
    test_mode: Optional[bool] = None
    order_status: Optional[OrderStatus] = None

    def matches(self, order: Order) -> bool:
        if self.order_id is not None and order.order_id != self.order_id:
            return False
        if self.test_mode is not None and order.is_test_mode != self.test_mode:
            return False
        if self.order_status is not None and order.order_status != self.order_status:
            return False
        return True


@dataclass
class OrderPage:
    orders: list[Order]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return (self.offset + self.limit) < self.total


def _empty_status_counts() -> dict[str, int]:
    return {s.value: 0 for s in OrderStatus}


@dataclass
class OrderMetrics:
    total_orders: int = 0
    total_revenue: Decimal = Decimal("0.00")
    status_counts: dict[str, int] = field(default_factory=_empty_status_counts)

    @property
    def average_order_value(self) -> Decimal:
        if not self.total_orders:
            return Decimal("0.00")
        return quantize_money(self.total_revenue / self.total_orders)

    def to_dict(self) -> dict:
        return {
            "totalOrders": self.total_orders,
            "totalRevenue": float(quantize_money(self.total_revenue)),
            "averageOrderValue": float(self.average_order_value),
            "statusCounts": dict(self.status_counts),
        }


def compute_metrics(orders: Iterable[Order]) -> OrderMetrics:
    metrics = OrderMetrics()
    for order in orders:
        metrics.total_orders += 1
        metrics.total_revenue += order.total
        metrics.status_counts[order.order_status.value] += 1
    return metrics


# ── Store contract ──────────────────────────────────────────────────

class OrderStore(ABC):
    """Primary record of truth for orders."""

    name: str = "store"

    @abstractmethod
    async def insert(self, order: Order) -> Order:
        """Persist a new order. Raises DuplicateOrderError if order_id exists."""

    @abstractmethod
    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        """Set order_status and status_updated_at. Raises OrderNotFoundError."""

    @abstractmethod
    async def query(self, filters: OrderFilters, *, limit: int, offset: int) -> OrderPage:
        """Filtered page, newest first."""

    @abstractmethod
    async def aggregate(self, filters: OrderFilters) -> OrderMetrics:
        """Totals over every order matching the filters."""


class MemoryOrderStore(OrderStore):
    """
    Process-memory store.

    Degraded mode: contents vanish on restart. Returned orders are copies so
    callers cannot mutate stored state.
    """

    name = "memory"

    def __init__(self):
        self._orders: list[Order] = []

    async def insert(self, order: Order) -> Order:
        if any(o.order_id == order.order_id for o in self._orders):
            raise DuplicateOrderError(order.order_id)

        stored = order.model_copy(
            update={"created_at": order.created_at or datetime.utcnow()},
            deep=True,
        )
        self._orders.append(stored)
        logger.info(
            f"Order stored in memory: {stored.order_id} "
            f"({len(self._orders)} total orders)"
        )
        return stored.model_copy(deep=True)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        for index, existing in enumerate(self._orders):
            if existing.order_id == order_id:
                updated = existing.model_copy(
                    update={"order_status": status, "status_updated_at": datetime.utcnow()},
                    deep=True,
                )
                self._orders[index] = updated
                return updated.model_copy(deep=True)
        raise OrderNotFoundError(order_id)

    async def query(self, filters: OrderFilters, *, limit: int, offset: int) -> OrderPage:
        matched = [o for o in self._orders if filters.matches(o)]
        matched.sort(key=lambda o: o.created_at or datetime.min, reverse=True)
        page = [o.model_copy(deep=True) for o in matched[offset:offset + limit]]
        return OrderPage(orders=page, total=len(matched), limit=limit, offset=offset)

    async def aggregate(self, filters: OrderFilters) -> OrderMetrics:
        return compute_metrics(o for o in self._orders if filters.matches(o))

    def __len__(self) -> int:
        return len(self._orders)


class SqlOrderStore(OrderStore):
    """Relational store. Each call opens its own session from the factory."""

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @staticmethod
    def _conditions(filters: OrderFilters) -> list:
        conditions = []
        if filters.order_id is not None:
            conditions.append(OrderRow.order_id == filters.order_id)
        if filters.test_mode is not None:
            conditions.append(OrderRow.is_test_mode == filters.test_mode)
        if filters.order_status is not None:
            # Matches coerce_order_status: case-insensitive, unknown reads as ordered
            stored = func.lower(func.trim(func.coalesce(OrderRow.order_status, "")))
            if filters.order_status == OrderStatus.ORDERED:
                others = [s.value for s in OrderStatus if s != OrderStatus.ORDERED]
                conditions.append(stored.not_in(others))
            else:
                conditions.append(stored == filters.order_status.value)
        return conditions

    async def insert(self, order: Order) -> Order:
        row = order_to_row(order)
        async with self._session_factory() as db:
            db.add(row)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise DuplicateOrderError(order.order_id)
            await db.refresh(row)
            logger.info(f"Order saved to database: {order.order_id} (row {row.id})")
            return row_to_order(row)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        async with self._session_factory() as db:
            result = await db.execute(select(OrderRow).where(OrderRow.order_id == order_id))
            row = result.scalar_one_or_none()
            if row is None:
                raise OrderNotFoundError(order_id)

            row.order_status = status.value
            row.status_updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(row)
            return row_to_order(row)

    async def query(self, filters: OrderFilters, *, limit: int, offset: int) -> OrderPage:
        conditions = self._conditions(filters)
        async with self._session_factory() as db:
            total = (
                await db.execute(
                    select(func.count()).select_from(OrderRow).where(*conditions)
                )
            ).scalar_one()
            result = await db.execute(
                select(OrderRow)
                .where(*conditions)
                .order_by(OrderRow.created_at.desc(), OrderRow.id.desc())
                .limit(limit)
                .offset(offset)
            )
            orders = [row_to_order(row) for row in result.scalars().all()]
        return OrderPage(orders=orders, total=total, limit=limit, offset=offset)

    async def aggregate(self, filters: OrderFilters) -> OrderMetrics:
        conditions = self._conditions(filters)
        async with self._session_factory() as db:
            result = await db.execute(
                select(
                    OrderRow.order_status,
                    func.count(OrderRow.id),
                    func.sum(OrderRow.total),
                )
                .where(*conditions)
                .group_by(OrderRow.order_status)
            )
            groups = result.all()

        metrics = OrderMetrics()
        for status, count, revenue in groups:
            metrics.total_orders += count
            metrics.total_revenue += Decimal(str(revenue or 0))
            # Legacy rows may carry upper-case or unknown statuses
            metrics.status_counts[coerce_order_status(status).value] += count
        return metrics


class FallbackOrderStore(OrderStore):
    """
    Primary store with a secondary used whenever the primary hits an
    infrastructure error. Domain errors (duplicate, not found) propagate.
    """

    def __init__(self, primary: OrderStore, fallback: OrderStore):
        self.primary = primary
        self.fallback = fallback

    @property
    def name(self) -> str:
        return f"{self.primary.name}+{self.fallback.name}"

    async def _attempt(self, operation: str, *args, **kwargs):
        try:
            return await getattr(self.primary, operation)(*args, **kwargs)
        except DomainError:
            raise
        except Exception as e:
            logger.error(
                f"{self.primary.name} {operation} failed, "
                f"falling back to {self.fallback.name}: {e}"
            )
            return await getattr(self.fallback, operation)(*args, **kwargs)

    async def insert(self, order: Order) -> Order:
        return await self._attempt("insert", order)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        return await self._attempt("update_status", order_id, status)

    async def query(self, filters: OrderFilters, *, limit: int, offset: int) -> OrderPage:
        return await self._attempt("query", filters, limit=limit, offset=offset)

    async def aggregate(self, filters: OrderFilters) -> OrderMetrics:
        return await self._attempt("aggregate", filters)


# ── Archives ────────────────────────────────────────────────────────

class OrderArchive(ABC):
    """Write-only copy of the full order document."""

    name: str = "archive"

    @abstractmethod
    async def archive(self, order: Order) -> dict:
        """Write the order. Raises DependencyError on failure."""


class S3OrderArchive(OrderArchive):
    """One JSON object per order: orders/<orderId>/<timestamp>.json."""

    name = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        region: str = "us-east-1",
        access_key_id: str = "",
        secret_access_key: str = "",
        timeout: float = 10.0,
        client=None,
    ):
        if not bucket:
            raise ConfigurationError("AWS_S3_BUCKET is required when ORDER_STORAGE_TYPE=s3")
        self.bucket = bucket
        self.region = region
        self.timeout = timeout
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            config=BotoConfig(
                connect_timeout=timeout,
                read_timeout=timeout,
                retries={"max_attempts": 2},
            ),
        )

    def object_key(self, order: Order) -> str:
        timestamp = datetime.utcnow().isoformat().replace(":", "-").replace(".", "-")
        return f"{ORDER_ARCHIVE_PREFIX}/{order.order_id}/{timestamp}.json"

    async def archive(self, order: Order) -> dict:
        key = self.object_key(order)
        body = json.dumps(order.to_api(), indent=2).encode("utf-8")
        order_date = (order.created_at or datetime.utcnow()).isoformat()

        try:
            await run_blocking(
                self._client.put_object,
                timeout=self.timeout,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType="application/json",
                Metadata={"order-id": order.order_id, "order-date": order_date},
            )
        except Exception as e:
            raise DependencyError(f"S3 storage failed: {e}", details={"key": key})

        url = f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"
        logger.info(f"Order archived to S3: {url}")
        return {"key": key, "url": url}


class HttpOrderArchive(OrderArchive):
    """POST the order document to an external order API."""

    name = "api"

    def __init__(self, *, url: str, api_key: str = "", timeout: float = 10.0):
        if not url:
            raise ConfigurationError("DATABASE_API_URL is required when ORDER_STORAGE_TYPE=api")
        self.url = url
        self.api_key = api_key
        self.timeout = timeout

    async def archive(self, order: Order) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=order.to_api(), headers=headers)
                response.raise_for_status()
                result = response.json() if response.content else {}
        except httpx.HTTPStatusError as e:
            raise DependencyError(
                f"Order API error: {e.response.status_code} - {e.response.text}"
            )
        except (httpx.HTTPError, ValueError) as e:
            raise DependencyError(f"Order API request failed: {e}")

        if not isinstance(result, dict):
            result = {}
        remote_id = result.get("id") or result.get("orderId")
        logger.info(f"Order sent to order API: {order.order_id} (remote id {remote_id})")
        return {"databaseId": remote_id}


# ── Repository facade ───────────────────────────────────────────────

@dataclass
class PersistResult:
    order: Order
    backend: str
    archive: Optional[dict] = None


class OrderRepository:
    """What the workflow and admin services talk to."""

    def __init__(self, store: OrderStore, archive: Optional[OrderArchive] = None):
        self.store = store
        self.archive = archive

    @property
    def backend_name(self) -> str:
        if self.archive is None:
            return self.store.name
        return f"{self.store.name}+{self.archive.name}"

    async def store_order(self, order: Order) -> PersistResult:
        """
        Insert into the primary store, then archive.

        Raises:
            DuplicateOrderError: order_id already recorded (nothing is archived)
            DependencyError: archive write failed (the primary insert stands)
        """
        stored = await self.store.insert(order)
        archived = None
        if self.archive is not None:
            archived = await self.archive.archive(stored)
        return PersistResult(order=stored, backend=self.backend_name, archive=archived)

    async def update_status(self, order_id: str, status: OrderStatus) -> Order:
        return await self.store.update_status(order_id, status)

    async def list_orders(self, filters: OrderFilters, *, limit: int, offset: int) -> OrderPage:
        return await self.store.query(filters, limit=limit, offset=offset)

    async def metrics(self, filters: OrderFilters) -> OrderMetrics:
        return await self.store.aggregate(filters)


def _resolve_archive(settings: Settings) -> Optional[OrderArchive]:
    try:
        storage_type = StorageType(settings.order_storage_type.strip().lower())
    except ValueError:
        raise ConfigurationError(
            f"Unknown ORDER_STORAGE_TYPE: {settings.order_storage_type!r}",
            details={"allowed": [t.value for t in StorageType]},
        )

    if storage_type == StorageType.S3:
        return S3OrderArchive(
            bucket=settings.aws_s3_bucket,
            region=settings.aws_s3_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            timeout=settings.outbound_timeout_seconds,
        )
    if storage_type == StorageType.API:
        return HttpOrderArchive(
            url=settings.database_api_url,
            api_key=settings.database_api_key,
            timeout=settings.outbound_timeout_seconds,
        )
    return None


def resolve_order_repository(
    settings: Settings,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> OrderRepository:
    """
    Build the repository for this process. Called once from the lifespan.

    Raises:
        ConfigurationError: storage type unknown, or its bucket / URL missing
    """
    memory = MemoryOrderStore()
    if session_factory is None and settings.database_configured:
        from database import async_session
        session_factory = async_session

    if session_factory is not None:
        store: OrderStore = FallbackOrderStore(SqlOrderStore(session_factory), memory)
    else:
        store = memory

    repository = OrderRepository(store, _resolve_archive(settings))
    logger.info(f"Order storage resolved: {repository.backend_name}")
    return repository
