"""
Tests for order storage backends and the repository facade.

Tests: memory and SQL stores (same contract), fallback behaviour,
S3 / HTTP archives, backend resolution.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import json
from datetime import datetime
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import pytest
import pytest_asyncio

from config import Settings
from domain.enums import OrderStatus
from domain.errors import (
    ConfigurationError,
    DependencyError,
    DuplicateOrderError,
    OrderNotFoundError,
)
from services.order_storage import (
    FallbackOrderStore,
    HttpOrderArchive,
    MemoryOrderStore,
    OrderFilters,
    OrderRepository,
    OrderStore,
    S3OrderArchive,
    SqlOrderStore,
    resolve_order_repository,
)
from services.order_mapping import order_to_row
from tests.conftest import make_order


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory) -> OrderStore:
    """Every contract test runs against both primary stores."""
    if request.param == "memory":
        return MemoryOrderStore()
    return SqlOrderStore(session_factory)


async def _seed(store: OrderStore):
    await store.insert(make_order("pi_old_live", created_at=datetime(2024, 1, 1), total="50.00"))
    await store.insert(make_order("pi_mid_test", created_at=datetime(2024, 2, 1), is_test_mode=True))
    await store.insert(make_order("pi_new_live", created_at=datetime(2024, 3, 1), total="110.00"))
    await store.insert(
        make_order(
            "pi_newest_live",
            created_at=datetime(2024, 4, 1),
            total="20.00",
            order_status="delivered",
        )
    )


class TestStoreContract:

    @pytest.mark.integration
    async def test_insert_round_trips_canonical_shape(self, store):
        stored = await store.insert(make_order("pi_1", created_at=datetime(2024, 1, 1)))

        page = await store.query(OrderFilters(order_id="pi_1"), limit=10, offset=0)
        fetched = page.orders[0]
        assert fetched.order_id == stored.order_id == "pi_1"
        assert fetched.total == Decimal("110.00")
        assert fetched.shipping.first_name == "Ada"
        assert fetched.items[0].name == "Linen Shirt"
        assert fetched.order_status == OrderStatus.ORDERED

    @pytest.mark.integration
    async def test_duplicate_insert_rejected_and_count_unchanged(self, store):
        order = make_order("pi_dup", created_at=datetime(2024, 1, 1))
        await store.insert(order)

        with pytest.raises(DuplicateOrderError) as exc_info:
            await store.insert(order)
        assert exc_info.value.status_code == 409

        page = await store.query(OrderFilters(), limit=10, offset=0)
        assert page.total == 1

    @pytest.mark.integration
    async def test_update_status_sets_timestamp(self, store):
        await store.insert(make_order("pi_1", created_at=datetime(2024, 1, 1)))

        updated = await store.update_status("pi_1", OrderStatus.COURIERED)

        assert updated.order_status == OrderStatus.COURIERED
        assert updated.status_updated_at is not None

    @pytest.mark.integration
    async def test_update_unknown_order(self, store):
        with pytest.raises(OrderNotFoundError) as exc_info:
            await store.update_status("pi_missing", OrderStatus.DELIVERED)
        assert exc_info.value.status_code == 404

    @pytest.mark.integration
    async def test_filters_and_newest_first(self, store):
        await _seed(store)

        page = await store.query(
            OrderFilters(test_mode=False, order_status=OrderStatus.ORDERED), limit=10, offset=0,
        )

        assert [o.order_id for o in page.orders] == ["pi_new_live", "pi_old_live"]
        assert page.total == 2

    @pytest.mark.integration
    async def test_pagination(self, store):
        await _seed(store)

        first = await store.query(OrderFilters(), limit=3, offset=0)
        second = await store.query(OrderFilters(), limit=3, offset=3)

        assert first.total == 4 and first.has_more is True
        assert [o.order_id for o in second.orders] == ["pi_old_live"]
        assert second.has_more is False

    @pytest.mark.integration
    async def test_metrics_empty(self, store):
        metrics = await store.aggregate(OrderFilters())
        assert metrics.to_dict() == {
            "totalOrders": 0,
            "totalRevenue": 0.0,
            "averageOrderValue": 0.0,
            "statusCounts": {"ordered": 0, "couriered": 0, "delivered": 0},
        }

    @pytest.mark.integration
    async def test_metrics_respect_test_mode(self, store):
        await _seed(store)

        metrics = (await store.aggregate(OrderFilters(test_mode=False))).to_dict()

        assert metrics["totalOrders"] == 3
        assert metrics["totalRevenue"] == 180.0
        assert metrics["averageOrderValue"] == 60.0
        assert metrics["statusCounts"] == {"ordered": 2, "couriered": 0, "delivered": 1}


class TestLegacyStatusRows:

    @pytest_asyncio.fixture
    async def legacy_store(self, session_factory):
        statuses = {"pi_upper": "ORDERED", "pi_unknown": "pending", "pi_done": " Delivered "}
        async with session_factory() as db:
            for day, (order_id, raw_status) in enumerate(statuses.items(), start=1):
                row = order_to_row(make_order(order_id, created_at=datetime(2024, 3, day)))
                row.order_status = raw_status
                db.add(row)
            await db.commit()
        return SqlOrderStore(session_factory)

    @pytest.mark.integration
    async def test_status_filter_matches_how_rows_read_back(self, legacy_store):
        ordered = await legacy_store.query(OrderFilters(order_status=OrderStatus.ORDERED), limit=10, offset=0)
        delivered = await legacy_store.query(OrderFilters(order_status=OrderStatus.DELIVERED), limit=10, offset=0)

        assert sorted(o.order_id for o in ordered.orders) == ["pi_unknown", "pi_upper"]
        assert all(o.order_status == OrderStatus.ORDERED for o in ordered.orders)
        assert [o.order_id for o in delivered.orders] == ["pi_done"]

    @pytest.mark.integration
    async def test_metrics_bucket_legacy_statuses(self, legacy_store):
        metrics = await legacy_store.aggregate(OrderFilters())

        assert metrics.total_orders == 3
        assert metrics.status_counts == {"ordered": 2, "couriered": 0, "delivered": 1}


class TestFallbackStore:

    @pytest.mark.unit
    @pytest.mark.parametrize("operation", ["insert", "update_status", "query", "aggregate"])
    async def test_falls_back_on_infrastructure_error(self, operation):
        primary = MagicMock(spec=OrderStore)
        primary.name = "database"
        getattr(primary, operation).side_effect = ConnectionError("database unreachable")
        fallback = MemoryOrderStore()
        await fallback.insert(make_order("pi_seed", created_at=datetime(2024, 1, 1)))
        store = FallbackOrderStore(primary, fallback)

        if operation == "insert":
            await store.insert(make_order("pi_1", created_at=datetime(2024, 1, 2)))
            assert len(fallback) == 2
        elif operation == "update_status":
            updated = await store.update_status("pi_seed", OrderStatus.DELIVERED)
            assert updated.order_status == OrderStatus.DELIVERED
        elif operation == "query":
            page = await store.query(OrderFilters(), limit=10, offset=0)
            assert [o.order_id for o in page.orders] == ["pi_seed"]
        else:
            metrics = await store.aggregate(OrderFilters())
            assert metrics.total_orders == 1

        getattr(primary, operation).assert_awaited_once()
        assert store.name == "database+memory"

    @pytest.mark.unit
    async def test_domain_errors_pass_through(self):
        primary = MemoryOrderStore()
        fallback = MemoryOrderStore()
        store = FallbackOrderStore(primary, fallback)
        order = make_order("pi_1", created_at=datetime(2024, 1, 1))
        await store.insert(order)

        with pytest.raises(DuplicateOrderError):
            await store.insert(order)
        with pytest.raises(OrderNotFoundError):
            await store.update_status("pi_missing", OrderStatus.DELIVERED)
        assert len(fallback) == 0


class TestArchives:

    @pytest.mark.unit
    async def test_s3_archive_writes_json_document(self):
        s3 = MagicMock()
        archive = S3OrderArchive(bucket="orders-bucket", region="eu-west-1", client=s3)
        order = make_order("pi_s3", created_at=datetime(2024, 5, 6, 7, 8, 9))

        result = await archive.archive(order)

        kwargs = s3.put_object.call_args.kwargs
        assert kwargs["Bucket"] == "orders-bucket"
        assert kwargs["Key"].startswith("orders/pi_s3/") and kwargs["Key"].endswith(".json")
        assert kwargs["ContentType"] == "application/json"
        assert kwargs["Metadata"] == {"order-id": "pi_s3", "order-date": "2024-05-06T07:08:09"}
        assert json.loads(kwargs["Body"])["orderId"] == "pi_s3"
        assert result["url"] == f"https://orders-bucket.s3.eu-west-1.amazonaws.com/{kwargs['Key']}"

    @pytest.mark.unit
    async def test_s3_failure_surfaces(self):
        s3 = MagicMock()
        s3.put_object.side_effect = RuntimeError("AccessDenied")
        archive = S3OrderArchive(bucket="orders-bucket", client=s3)

        with pytest.raises(DependencyError):
            await archive.archive(make_order("pi_s3", created_at=datetime(2024, 1, 1)))

    @pytest.mark.unit
    def test_s3_requires_bucket(self):
        with pytest.raises(ConfigurationError):
            S3OrderArchive(bucket="", client=MagicMock())

    @pytest.mark.unit
    async def test_http_archive_posts_with_bearer(self):
        captured = {}

        async def fake_post(self, url, json=None, headers=None):
            captured.update(url=url, json=json, headers=headers)
            return httpx.Response(201, json={"id": "remote-1"}, request=httpx.Request("POST", url))

        archive = HttpOrderArchive(url="https://orders.example.com/api/orders", api_key="k-123")
        with patch("httpx.AsyncClient.post", fake_post):
            result = await archive.archive(make_order("pi_api", created_at=datetime(2024, 1, 1)))

        assert result == {"databaseId": "remote-1"}
        assert captured["headers"]["Authorization"] == "Bearer k-123"
        assert captured["json"]["orderId"] == "pi_api"

    @pytest.mark.unit
    async def test_http_archive_error_status(self):
        async def fake_post(self, url, json=None, headers=None):
            return httpx.Response(503, text="unavailable", request=httpx.Request("POST", url))

        archive = HttpOrderArchive(url="https://orders.example.com/api/orders")
        with patch("httpx.AsyncClient.post", fake_post):
            with pytest.raises(DependencyError):
                await archive.archive(make_order("pi_api", created_at=datetime(2024, 1, 1)))


class TestRepository:

    @pytest.mark.unit
    async def test_duplicate_is_not_archived(self):
        archive = MagicMock()
        archive.name = "s3"

        async def archive_order(order):
            return {"key": "k"}

        archive.archive.side_effect = archive_order
        repository = OrderRepository(MemoryOrderStore(), archive)
        order = make_order("pi_1", created_at=datetime(2024, 1, 1))

        result = await repository.store_order(order)
        with pytest.raises(DuplicateOrderError):
            await repository.store_order(order)

        assert result.backend == "memory+s3"
        assert result.archive == {"key": "k"}
        assert archive.archive.call_count == 1

    @pytest.mark.unit
    def test_resolve_memory_without_database(self):
        repository = resolve_order_repository(Settings(database_url="", order_storage_type="internal"))
        assert repository.backend_name == "memory"

    @pytest.mark.unit
    def test_resolve_database_with_fallback(self, session_factory):
        repository = resolve_order_repository(
            Settings(database_url="sqlite:///./unused.db"), session_factory=session_factory,
        )
        assert repository.backend_name == "database+memory"

    @pytest.mark.unit
    def test_resolve_api_requires_url(self):
        with pytest.raises(ConfigurationError):
            resolve_order_repository(Settings(order_storage_type="api", database_api_url=""))

    @pytest.mark.unit
    def test_resolve_unknown_type(self):
        with pytest.raises(ConfigurationError):
            resolve_order_repository(Settings(order_storage_type="dynamo"))

    @pytest.mark.unit
    def test_resolve_api_archive(self):
        repository = resolve_order_repository(
            Settings(order_storage_type="API", database_api_url="https://orders.example.com")
        )
        assert repository.backend_name == "memory+api"
