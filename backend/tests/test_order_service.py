"""
Tests for the paid-order workflow.

Tests: pricing and reconciliation, malformed payloads, effect isolation,
duplicate redelivery, failed payments.
"""
import os, sys
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from datetime import datetime
from decimal import Decimal

import pytest

from domain.enums import EffectStatus, OrderStatus
from domain.errors import DependencyError, MalformedPaymentPayloadError
from services.order_service import (
    EFFECT_ADMIN,
    EFFECT_INVOICE,
    EFFECT_PERSIST,
    build_order,
    compute_subtotal,
    process_failed_payment,
    process_succeeded_payment,
)
from services.order_storage import OrderFilters
from models import CartItem
from tests.conftest import SAMPLE_SHIPPING, make_payment_intent


async def _all_orders(repository):
    page = await repository.list_orders(OrderFilters(), limit=100, offset=0)
    return page.orders


class TestPricing:

    @pytest.mark.unit
    def test_subtotal_sums_price_times_quantity(self):
        items = [
            CartItem(name="Shirt", price="$50.00", quantity=2),
            CartItem(name="Socks", price="$4.99", quantity=3),
        ]
        assert compute_subtotal(items) == Decimal("114.97")

    @pytest.mark.unit
    def test_unreadable_price_counts_as_zero(self):
        items = [CartItem(name="Gift", price="free", quantity=1)]
        assert compute_subtotal(items) == Decimal("0.00")

    @pytest.mark.unit
    def test_reconciled_when_charge_matches(self):
        order = build_order(make_payment_intent(amount=11000))
        assert order.subtotal == Decimal("100.00")
        assert order.shipping_cost == Decimal("10.00")
        assert order.total == Decimal("110.00")
        assert order.amount_reconciled is True

    @pytest.mark.unit
    def test_charge_without_shipping_is_flagged_not_rejected(self):
        """10000 cents for a 100.00 cart: total follows the charge, mismatch is recorded."""
        order = build_order(make_payment_intent(amount=10000))
        assert order.subtotal == Decimal("100.00")
        assert order.shipping_cost == Decimal("10.00")
        assert order.total == Decimal("100.00")
        assert order.amount_reconciled is False

    @pytest.mark.unit
    def test_customer_fields_come_from_shipping(self):
        order = build_order(make_payment_intent())
        assert order.customer_email == SAMPLE_SHIPPING["email"]
        assert order.customer_name == "Ada Lovelace"
        assert order.order_status == OrderStatus.ORDERED
        assert order.payment_intent_id == order.order_id

    @pytest.mark.unit
    def test_receipt_email_used_without_shipping(self):
        order = build_order(make_payment_intent(shipping=None, receipt_email="buyer@example.com"))
        assert order.customer_email == "buyer@example.com"
        assert order.customer_name == "Customer"

    @pytest.mark.unit
    def test_unparseable_metadata_is_treated_as_absent(self):
        intent = make_payment_intent()
        intent["metadata"] = {"shipping": "{not json", "items": "[oops"}
        order = build_order(intent)
        assert order.shipping is None
        assert order.items == []
        assert order.subtotal == Decimal("0.00")

    @pytest.mark.unit
    def test_test_mode_flag_from_metadata(self):
        intent = make_payment_intent()
        intent["metadata"]["test_mode"] = "true"
        assert build_order(intent).is_test_mode is True

    @pytest.mark.unit
    def test_created_taken_from_provider(self):
        order = build_order(make_payment_intent())
        assert order.created_at.year == 2023

    @pytest.mark.unit
    def test_out_of_range_created_falls_back_to_now(self):
        order = build_order(make_payment_intent(created=10**20))
        assert abs((order.created_at - datetime.utcnow()).total_seconds()) < 60

    @pytest.mark.unit
    def test_non_string_receipt_email_is_ignored(self):
        order = build_order(make_payment_intent(shipping=None, receipt_email=12345))
        assert order.customer_email is None

    @pytest.mark.unit
    def test_rejected_order_fields_become_malformed_payload(self, monkeypatch):
        monkeypatch.setattr("services.order_service._receipt_email", lambda intent: 12345)
        with pytest.raises(MalformedPaymentPayloadError):
            build_order(make_payment_intent(shipping=None))


class TestProcessSucceededPayment:

    @pytest.mark.integration
    async def test_records_order_and_notifies(self, memory_repository, notifier, email_client):
        result = await process_succeeded_payment(
            make_payment_intent(), repository=memory_repository, notifier=notifier,
        )

        assert result.success is True
        assert result.effects[EFFECT_PERSIST].status == EffectStatus.SUCCEEDED
        assert result.effects[EFFECT_INVOICE].status == EffectStatus.SUCCEEDED
        assert result.effects[EFFECT_ADMIN].status == EffectStatus.SUCCEEDED
        assert email_client.send.await_count == 2

        orders = await _all_orders(memory_repository)
        assert [o.order_id for o in orders] == ["pi_3Mtw1a2eZvKYlo2C"]

    @pytest.mark.unit
    @pytest.mark.parametrize("payload", [None, "pi_123", 42, ["id"]])
    async def test_malformed_payload_fails_without_raising(self, payload, memory_repository, notifier):
        result = await process_succeeded_payment(payload, repository=memory_repository, notifier=notifier)
        assert result.success is False
        assert result.error
        assert await _all_orders(memory_repository) == []

    @pytest.mark.unit
    @pytest.mark.parametrize("extra", [{"receipt_email": 12345}, {"created": 10**20}, {"currency": ["usd"]}])
    async def test_odd_provider_fields_never_raise(self, extra, memory_repository, notifier):
        intent = make_payment_intent(shipping=None, **extra)
        result = await process_succeeded_payment(intent, repository=memory_repository, notifier=notifier)

        assert result.success is True
        assert result.effects[EFFECT_PERSIST].status == EffectStatus.SUCCEEDED

    @pytest.mark.unit
    async def test_unbuildable_order_fails_without_raising(self, memory_repository, notifier, monkeypatch):
        monkeypatch.setattr("services.order_service._receipt_email", lambda intent: 12345)
        result = await process_succeeded_payment(
            make_payment_intent(shipping=None), repository=memory_repository, notifier=notifier,
        )

        assert result.success is False
        assert "does not describe a valid order" in result.error
        assert await _all_orders(memory_repository) == []

    @pytest.mark.unit
    async def test_missing_id_or_amount_fails(self, memory_repository, notifier):
        no_id = make_payment_intent()
        del no_id["id"]
        no_amount = make_payment_intent()
        del no_amount["amount"]

        for payload in (no_id, no_amount):
            result = await process_succeeded_payment(payload, repository=memory_repository, notifier=notifier)
            assert result.success is False

    @pytest.mark.integration
    async def test_empty_metadata_still_records(self, memory_repository, notifier):
        intent = make_payment_intent(shipping=None, items=None)
        result = await process_succeeded_payment(intent, repository=memory_repository, notifier=notifier)

        assert result.success is True
        assert result.order.customer_name == "Customer"
        assert result.order.subtotal == Decimal("0.00")
        assert result.effects[EFFECT_INVOICE].status == EffectStatus.SKIPPED
        assert result.effects[EFFECT_PERSIST].status == EffectStatus.SUCCEEDED

    @pytest.mark.integration
    async def test_redelivery_is_reported_as_duplicate(self, memory_repository, notifier):
        intent = make_payment_intent()
        await process_succeeded_payment(intent, repository=memory_repository, notifier=notifier)
        second = await process_succeeded_payment(intent, repository=memory_repository, notifier=notifier)

        assert second.success is True
        assert second.effects[EFFECT_PERSIST].status == EffectStatus.DUPLICATE
        assert len(await _all_orders(memory_repository)) == 1

    @pytest.mark.integration
    async def test_email_failure_does_not_block_persistence(self, memory_repository, notifier, email_client):
        email_client.send.return_value = {"error": "Resend is down"}

        result = await process_succeeded_payment(
            make_payment_intent(), repository=memory_repository, notifier=notifier,
        )

        assert result.success is True
        assert result.effects[EFFECT_INVOICE].status == EffectStatus.FAILED
        assert result.effects[EFFECT_ADMIN].status == EffectStatus.FAILED
        assert result.effects[EFFECT_PERSIST].status == EffectStatus.SUCCEEDED
        assert len(await _all_orders(memory_repository)) == 1

    @pytest.mark.integration
    async def test_persistence_failure_is_contained(self, memory_repository, notifier, monkeypatch):
        async def broken_store(order):
            raise DependencyError("S3 storage failed: timeout")

        monkeypatch.setattr(memory_repository, "store_order", broken_store)

        result = await process_succeeded_payment(
            make_payment_intent(), repository=memory_repository, notifier=notifier,
        )

        assert result.success is True
        assert result.effects[EFFECT_PERSIST].status == EffectStatus.FAILED
        assert "S3" in result.effects[EFFECT_PERSIST].detail
        assert result.effects[EFFECT_INVOICE].status == EffectStatus.SUCCEEDED

    @pytest.mark.unit
    async def test_admin_notification_skipped_without_channels(self, memory_repository, email_client):
        from services.notification_service import Notifier

        result = await process_succeeded_payment(
            make_payment_intent(),
            repository=memory_repository,
            notifier=Notifier(email_client=email_client),
        )
        assert result.effects[EFFECT_ADMIN].status == EffectStatus.SKIPPED

    @pytest.mark.unit
    async def test_result_serialises(self, memory_repository, notifier):
        result = await process_succeeded_payment(
            make_payment_intent(amount=10000), repository=memory_repository, notifier=notifier,
        )
        body = result.to_dict()
        assert body["orderId"] == "pi_3Mtw1a2eZvKYlo2C"
        assert body["order"]["total"] == 100.0
        assert body["order"]["amountReconciled"] is False
        assert body["effects"][EFFECT_PERSIST]["status"] == "succeeded"


class TestProcessFailedPayment:

    @pytest.mark.unit
    async def test_logs_and_records_nothing(self, memory_repository):
        intent = make_payment_intent(last_payment_error={"message": "Your card was declined."})
        result = await process_failed_payment(intent)
        assert result.success is True
        assert result.order is None
        assert await _all_orders(memory_repository) == []

    @pytest.mark.unit
    async def test_malformed_payload(self):
        result = await process_failed_payment(None)
        assert result.success is False
