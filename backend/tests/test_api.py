import time
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import main
from app.core.config import settings
from app.core.rate_limiter import RateLimiter, RateLimitMiddleware
from app.models import Order
from app.schemas.payment import PaymentProvider
from app.services.container import build_services
from tests.fakes import FakeProvider, MemorySender, order_row

ADMIN_KEY = "admin-test-key"
ADMIN = {"Authorization": f"Bearer {ADMIN_KEY}"}


@pytest.fixture
def services(session_factory):
    provider = FakeProvider()
    generator = AsyncMock()
    generator.complete.return_value = None
    return build_services(
        session_factory,
        adapters={p: provider for p in PaymentProvider},
        email_sender=MemorySender(),
        text_generator=generator,
    )


@pytest.fixture
def client(services, monkeypatch):
    monkeypatch.setattr(main, "init_db", lambda: None)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setattr(main.app.state, "services", services, raising=False)
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def order_id(session_factory):
    with session_factory() as db:
        order = Order(**order_row())
        db.add(order)
        db.commit()
        return order.id


def initiate(client, order_id, method="wave"):
    return client.post("/payments/initiate", json={
        "paymentMethod": method,
        "amount": 17400,
        "orderId": order_id,
        "customerInfo": {"name": "Awa Diop", "phone": "+221771234567", "email": "awa@example.com"},
    })


class TestHealth:
    def test_health_and_security_headers(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert response.headers["X-Frame-Options"] == "DENY"


class TestChatApi:
    def test_open_and_answer(self, client):
        opened = client.post("/chat/sessions", json={"productId": "jeu-couple"})
        assert opened.status_code == 200
        body = opened.json()
        assert body["step"] == "initial_engagement"
        assert body["replies"][0]["choices"]
        session_id = body["sessionId"]

        answered = client.post(
            f"/chat/sessions/{session_id}/messages",
            json={"message": "je veux acheter", "step": "initial_engagement"},
        )
        assert answered.json()["step"] == "collect_name"
        assert answered.json()["replayed"] is False

        retried = client.post(
            f"/chat/sessions/{session_id}/messages",
            json={"message": "je veux acheter", "step": "initial_engagement"},
        )
        assert retried.json()["replayed"] is True

        state = client.get(f"/chat/sessions/{session_id}").json()
        assert state["step"] == "collect_name"
        assert state["productId"] == "jeu-couple"
        assert state["draft"]["items"][0]["quantity"] == 1

    def test_unknown_product_and_session(self, client):
        assert client.post("/chat/sessions", json={"productId": "inconnu"}).status_code == 404
        assert client.post("/chat/sessions/nope/messages", json={"message": "bonjour"}).status_code == 404
        assert client.get("/chat/sessions/nope").status_code == 404

    def test_empty_message_rejected(self, client):
        session_id = client.post("/chat/sessions", json={"productId": "jeu-couple"}).json()["sessionId"]
        assert client.post(f"/chat/sessions/{session_id}/messages", json={"message": ""}).status_code == 422


class TestDeliveryApi:
    def test_validate_city(self, client):
        body = client.get("/delivery/validate", params={"city": "thies", "amount": 14900}).json()
        assert body["is_deliverable"] is True
        assert body["delivery_cost"] == 2500
        assert body["city"] == "Thiès"

    def test_cities(self, client):
        cities = client.get("/delivery/cities").json()["cities"]
        assert "Dakar" in cities


class TestPaymentsApi:
    def test_initiate_then_status(self, client, order_id):
        response = initiate(client, order_id)
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["checkoutUrl"] == "https://pay.example/checkout"

        status = client.get("/payments/status", params={"orderId": order_id}).json()
        assert status["id"] == body["transactionId"]
        assert status["status"] == "PENDING"
        assert status["amount"] == 17400

    def test_initiate_errors(self, client):
        assert initiate(client, 9999).status_code == 404
        assert initiate(client, 1, method="bitcoin").status_code == 422

    def test_status_requires_an_id(self, client):
        assert client.get("/payments/status").status_code == 400
        assert client.get("/payments/status", params={"transactionId": "nope"}).status_code == 404

    def test_manual_verification(self, client, order_id):
        transaction_id = initiate(client, order_id).json()["transactionId"]
        url = f"/payments/transactions/{transaction_id}/verify"

        assert client.post(url, json={"status": "COMPLETED"}).status_code == 401
        assert client.post(url, json={"status": "PENDING"}, headers=ADMIN).status_code == 400

        verified = client.post(url, json={"status": "COMPLETED", "note": "virement vu"}, headers=ADMIN)
        assert verified.json()["outcome"] == "applied"
        assert client.post(url, json={"status": "COMPLETED"}, headers=ADMIN).status_code == 409
        assert client.post(
            "/payments/transactions/nope/verify", json={"status": "FAILED"}, headers=ADMIN
        ).status_code == 404

        order = client.get(f"/orders/{order_id}", headers=ADMIN).json()
        assert order["status"] == "PAID"


class TestWebhookApi:
    def test_signature_checked(self, client):
        assert client.post("/webhook/stripe", content=b"{}", headers={"stripe-signature": "forged"}).status_code == 401
        accepted = client.post("/webhook/stripe", content=b"{}", headers={"stripe-signature": "valid"})
        assert accepted.status_code == 200
        assert accepted.json() == {"received": True}

    def test_unknown_route(self, client):
        assert client.post("/webhook/paypal", content=b"{}").status_code == 404


class TestOrdersApi:
    def test_admin_key_required(self, client, order_id, monkeypatch):
        assert client.get(f"/orders/{order_id}").status_code == 401
        assert client.get(f"/orders/{order_id}", headers={"Authorization": "Bearer wrong"}).status_code == 401

        monkeypatch.setattr(settings, "ADMIN_API_KEY", "")
        assert client.get(f"/orders/{order_id}", headers=ADMIN).status_code == 401

    def test_get_order(self, client, order_id):
        body = client.get(f"/orders/{order_id}", headers=ADMIN).json()
        assert body["total_amount"] == 17400
        assert body["city"] == "Thiès"
        assert client.get("/orders/9999", headers=ADMIN).status_code == 404

    def test_confirm_cash(self, client, order_id):
        cash = initiate(client, order_id, method="cash").json()
        assert cash["success"] is True

        url = f"/orders/{order_id}/confirm-cash-payment"
        assert client.post(url, headers=ADMIN).json()["outcome"] == "applied"
        assert client.post(url, headers=ADMIN).status_code == 409
        assert client.post("/orders/9999/confirm-cash-payment", headers=ADMIN).status_code == 404


class TestRealtimeApi:
    def test_payment_status_is_pushed(self, client, services):
        with client.websocket_connect("/realtime/orders/42") as websocket:
            for _ in range(100):
                if services.hub.subscriber_count("order_42"):
                    break
                time.sleep(0.01)
            client.portal.call(services.hub.publish, "order_42", "payment_status", {"status": "PAID"})
            message = websocket.receive_json()

        assert message["event"] == "payment_status"
        assert message["payload"] == {"status": "PAID"}


class TestRateLimit:
    def build(self):
        app = FastAPI()
        app.add_middleware(RateLimitMiddleware, limiter=RateLimiter(requests=2, window=60))

        @app.get("/chat/ping")
        def ping():
            return {"ok": True}

        @app.post("/webhook/stripe")
        def hook():
            return {"received": True}

        return TestClient(app)

    def test_limit_and_webhook_exemption(self):
        client = self.build()
        assert client.get("/chat/ping").headers["X-RateLimit-Remaining"] == "1"
        assert client.get("/chat/ping").status_code == 200
        blocked = client.get("/chat/ping")
        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "60"
        for _ in range(3):
            assert client.post("/webhook/stripe").status_code == 200

    def test_window_slides(self):
        now = [1000.0]
        limiter = RateLimiter(requests=1, window=10, clock=lambda: now[0])
        assert limiter.is_allowed("ip:a") == (True, 0)
        assert limiter.is_allowed("ip:a") == (False, 0)
        assert limiter.is_allowed("ip:b")[0]
        now[0] += 11
        assert limiter.is_allowed("ip:a")[0]
