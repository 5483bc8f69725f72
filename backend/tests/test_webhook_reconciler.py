import json
from unittest.mock import AsyncMock, patch

import pytest

from app.core.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    UnknownProviderError,
    WebhookPayloadError,
    WebhookSignatureError,
)
from app.payments.gateway import PaymentGateway
from app.payments.providers.bictorys_provider import BictorysProvider
from app.payments.providers.cash_provider import CashProvider
from app.payments.providers.stripe_provider import StripeProvider
from app.payments.reconciler import WebhookReconciler
from app.schemas.payment import PaymentProvider, TransactionStatus
from app.services.notification_service import NotificationService
from app.services.realtime import RealtimeHub, order_channel
from tests.fakes import MemorySender, order_row


def stripe_event(session_id, order_id, transaction_id, event_type="checkout.session.completed", payment_status="paid"):
    return json.dumps({
        "id": "evt_1",
        "type": event_type,
        "data": {"object": {
            "id": session_id,
            "payment_status": payment_status,
            "amount_total": 2653,
            "metadata": {"orderId": str(order_id), "transactionId": transaction_id},
        }},
    }).encode()


async def pending_transaction(store, order_id, provider="STRIPE", reference="cs_test_1", tx_id="tx-1"):
    return await store.insert("payment_transactions", {
        "id": tx_id,
        "order_id": order_id,
        "provider": provider,
        "amount": 17400,
        "currency": "XOF",
        "status": "PENDING",
        "reference": reference,
        "details": {},
    })


@pytest.fixture
def adapters():
    bictorys = BictorysProvider("https://api.test.bictorys.com", "key", "bictorys-secret", "https://shop.example")
    return {
        PaymentProvider.STRIPE: StripeProvider("sk_test", "whsec_test", "https://shop.example"),
        PaymentProvider.WAVE: bictorys,
        PaymentProvider.ORANGE_MONEY: bictorys,
        PaymentProvider.CASH: CashProvider(),
    }


@pytest.fixture
def sender():
    return MemorySender()


@pytest.fixture
def reconciler(store, adapters, sender):
    gateway = PaymentGateway(store, adapters)
    return WebhookReconciler(store, gateway, RealtimeHub(), NotificationService(store, sender))


class TestStripeWebhooks:
    @pytest.mark.asyncio
    async def test_duplicate_delivery_pays_once(self, store, reconciler, sender):
        order = await store.insert("orders", order_row(id=42))
        await pending_transaction(store, 42)
        payload = stripe_event("cs_test_1", 42, "tx-1")

        with patch("stripe.Webhook.construct_event"):
            first = await reconciler.handle_webhook("stripe", payload, "t=1,v1=sig")
            second = await reconciler.handle_webhook("stripe", payload, "t=1,v1=sig")

        assert first == "applied"
        assert second == "duplicate"
        paid = await store.select_one("orders", {"id": order["id"]})
        assert paid["status"] == "PAID"
        assert paid["payment_status"] == "COMPLETED"
        assert paid["paid_at"] is not None
        emails = await store.select("notifications", {"order_id": 42, "type": "PAYMENT_RECEIVED"})
        assert len(emails) == 1
        assert len(reconciler._locks) == 0

    @pytest.mark.asyncio
    async def test_bad_signature_changes_nothing(self, store, reconciler):
        await store.insert("orders", order_row(id=42))
        await pending_transaction(store, 42)
        payload = stripe_event("cs_test_1", 42, "tx-1")

        with pytest.raises(WebhookSignatureError):
            await reconciler.handle_webhook("stripe", payload, "t=1,v1=forged")

        transaction = await store.select_one("payment_transactions", {"id": "tx-1"})
        assert transaction["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_unpaid_completed_session_is_ignored(self, store, reconciler):
        await store.insert("orders", order_row(id=42))
        await pending_transaction(store, 42)
        payload = stripe_event("cs_test_1", 42, "tx-1", payment_status="unpaid")
        with patch("stripe.Webhook.construct_event"):
            assert await reconciler.handle_webhook("stripe", payload, "sig") == "ignored"

    @pytest.mark.asyncio
    async def test_expired_session(self, store, reconciler):
        await store.insert("orders", order_row(id=42))
        await pending_transaction(store, 42)
        payload = stripe_event("cs_test_1", 42, "tx-1", event_type="checkout.session.expired")
        with patch("stripe.Webhook.construct_event"):
            assert await reconciler.handle_webhook("stripe", payload, "sig") == "applied"
        order = await store.select_one("orders", {"id": 42})
        assert order["status"] == "PENDING"
        assert order["payment_status"] == "EXPIRED"

    @pytest.mark.asyncio
    async def test_falls_back_to_transaction_id(self, store, reconciler):
        await store.insert("orders", order_row(id=42))
        await pending_transaction(store, 42, reference="cs_other")
        payload = stripe_event("cs_unknown", 42, "tx-1")
        with patch("stripe.Webhook.construct_event"):
            assert await reconciler.handle_webhook("stripe", payload, "sig") == "applied"

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, store, reconciler):
        payload = stripe_event("cs_nope", 1, "tx-nope")
        with patch("stripe.Webhook.construct_event"):
            assert await reconciler.handle_webhook("stripe", payload, "sig") == "unknown_transaction"


class TestBictorysWebhooks:
    @pytest.mark.asyncio
    async def test_succeeded(self, store, reconciler):
        await store.insert("orders", order_row(id=7))
        await pending_transaction(store, 7, provider="WAVE", reference="tr_1_7")
        payload = json.dumps({"merchantReference": "tr_1_7", "status": "succeeded", "amount": 17400}).encode()

        assert await reconciler.handle_webhook("bictorys", payload, "bictorys-secret") == "applied"
        assert (await store.select_one("orders", {"id": 7}))["status"] == "PAID"

    @pytest.mark.asyncio
    async def test_pending_status_is_ignored(self, store, reconciler):
        payload = json.dumps({"merchantReference": "tr_1_7", "status": "processing"}).encode()
        assert await reconciler.handle_webhook("bictorys", payload, "bictorys-secret") == "ignored"

    @pytest.mark.asyncio
    async def test_wrong_secret(self, reconciler):
        payload = json.dumps({"merchantReference": "tr_1_7", "status": "succeeded"}).encode()
        with pytest.raises(WebhookSignatureError):
            await reconciler.handle_webhook("bictorys", payload, "nope")

    @pytest.mark.asyncio
    async def test_missing_fields(self, reconciler):
        with pytest.raises(WebhookPayloadError):
            await reconciler.handle_webhook("bictorys", b'{"status": "succeeded"}', "bictorys-secret")

    @pytest.mark.asyncio
    async def test_unknown_route(self, reconciler):
        with pytest.raises(UnknownProviderError):
            await reconciler.handle_webhook("paypal", b"{}", None)


class TestApplyTransition:
    @pytest.mark.asyncio
    async def test_follow_ups(self, store, adapters):
        await store.insert("orders", order_row(id=5))
        await pending_transaction(store, 5, tx_id="tx-5")
        hub = RealtimeHub()
        listener = AsyncMock()
        reconciler = WebhookReconciler(store, PaymentGateway(store, adapters), hub)
        reconciler.status_listener = listener

        async with hub.subscribe(order_channel(5)) as queue:
            outcome = await reconciler.apply_transition("tx-5", TransactionStatus.FAILED, source="test")
            message = queue.get_nowait()

        assert outcome == "applied"
        assert message["event"] == "payment_status"
        assert message["payload"]["status"] == "FAILED"
        assert message["payload"]["transactionId"] == "tx-5"
        listener.assert_awaited_once_with(5, "tx-5", TransactionStatus.FAILED)

    @pytest.mark.asyncio
    async def test_listener_failure_does_not_undo_payment(self, store, reconciler):
        await store.insert("orders", order_row(id=5))
        await pending_transaction(store, 5, tx_id="tx-5")
        reconciler.status_listener = AsyncMock(side_effect=RuntimeError("chat down"))

        assert await reconciler.apply_transition("tx-5", TransactionStatus.COMPLETED, source="test") == "applied"
        assert (await store.select_one("orders", {"id": 5}))["status"] == "PAID"

    @pytest.mark.asyncio
    async def test_late_payment_on_superseded_transaction(self, store, reconciler):
        await store.insert("orders", order_row(id=5))
        await store.insert("payment_transactions", {
            "id": "tx-old", "order_id": 5, "provider": "WAVE", "amount": 17400, "currency": "XOF",
            "status": "EXPIRED", "reference": "tr_old", "details": {"superseded_by": "tx-new"},
        })
        assert await reconciler.apply_transition("tx-old", TransactionStatus.COMPLETED, "test") == "duplicate"
        assert (await store.select_one("orders", {"id": 5}))["status"] == "PENDING"

    @pytest.mark.asyncio
    async def test_pending_is_not_a_target(self, reconciler):
        with pytest.raises(ValueError):
            await reconciler.apply_transition("tx", TransactionStatus.PENDING, "test")


class TestManualConfirmation:
    @pytest.mark.asyncio
    async def test_verify_transaction(self, store, reconciler):
        await store.insert("orders", order_row(id=3))
        await pending_transaction(store, 3, tx_id="tx-3")
        assert await reconciler.verify_transaction("tx-3", TransactionStatus.COMPLETED, "virement reçu") == "applied"
        transaction = await store.select_one("payment_transactions", {"id": "tx-3"})
        assert transaction["details"]["note"] == "virement reçu"
        assert transaction["details"]["resolved_by"] == "manual"
        assert await reconciler.verify_transaction("missing", TransactionStatus.COMPLETED) == "unknown_transaction"

    @pytest.mark.asyncio
    async def test_confirm_cash_payment(self, store, reconciler):
        await store.insert("orders", order_row(id=8, status="CONFIRMED"))
        await pending_transaction(store, 8, provider="CASH", reference="cash_tx-8", tx_id="tx-8")

        assert await reconciler.confirm_cash_payment(8) == "applied"
        assert (await store.select_one("orders", {"id": 8}))["status"] == "PAID"
        assert await reconciler.confirm_cash_payment(8) == "duplicate"

    @pytest.mark.asyncio
    async def test_confirm_cash_errors(self, store, reconciler):
        await store.insert("orders", order_row(id=9))
        with pytest.raises(OrderNotFoundError):
            await reconciler.confirm_cash_payment(404)
        with pytest.raises(OrderValidationError):
            await reconciler.confirm_cash_payment(9)

    @pytest.mark.asyncio
    async def test_cash_webhook_is_rejected(self, store, reconciler):
        # Only an admin confirms cash; there is no route for it and the adapter refuses callbacks
        cash = reconciler.gateway.adapter_for(PaymentProvider.CASH)
        assert cash.verify_webhook_signature(b"{}", "anything") is False
