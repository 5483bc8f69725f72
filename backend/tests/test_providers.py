import json
from types import SimpleNamespace
from unittest.mock import patch

import httpx
import pytest
import stripe

from app.core.exceptions import ProviderError, WebhookPayloadError
from app.payments.providers.bictorys_provider import BictorysProvider
from app.payments.providers.cash_provider import CashProvider
from app.payments.providers.stripe_provider import StripeProvider
from app.schemas.payment import PaymentCustomer, PaymentRequest, TransactionStatus

TRANSACTION = {"id": "tx-1", "reference": "tr_1700000000000_42"}


def payment_request(provider="STRIPE", amount=17400, email="awa@example.com"):
    return PaymentRequest(
        provider=provider,
        amount=amount,
        order_id=42,
        customer_info=PaymentCustomer(name="Awa Diop", phone="+221771234567", email=email),
    )


class TestStripeProvider:
    @pytest.mark.asyncio
    async def test_creates_checkout_session_in_eur_cents(self):
        provider = StripeProvider("sk_test", "whsec", "https://shop.example/", xof_per_eur=655.957)
        fake_session = SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

        with patch("stripe.checkout.Session.create", return_value=fake_session) as create:
            checkout = await provider.initiate(payment_request(), TRANSACTION)

        kwargs = create.call_args.kwargs
        assert kwargs["api_key"] == "sk_test"
        assert kwargs["line_items"][0]["price_data"]["currency"] == "eur"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 2653
        assert kwargs["metadata"] == {"orderId": "42", "transactionId": "tx-1"}
        assert kwargs["payment_intent_data"]["metadata"]["transactionId"] == "tx-1"
        assert kwargs["customer_email"] == "awa@example.com"
        assert kwargs["success_url"].startswith("https://shop.example/payment/success?orderId=42")
        assert checkout.reference == "cs_test_1"
        assert checkout.checkout_url.endswith("cs_test_1")

    @pytest.mark.asyncio
    async def test_below_minimum_is_refused_before_api_call(self):
        provider = StripeProvider("sk_test", "whsec", "https://shop.example", min_amount_cents=50)
        with patch("stripe.checkout.Session.create") as create:
            with pytest.raises(ProviderError):
                await provider.initiate(payment_request(amount=100), TRANSACTION)
        create.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(ProviderError) as exc:
            await StripeProvider("", "whsec", "https://shop.example").initiate(payment_request(), TRANSACTION)
        assert "carte" in exc.value.user_message

    @pytest.mark.asyncio
    async def test_stripe_error_becomes_provider_error(self):
        provider = StripeProvider("sk_test", "whsec", "https://shop.example")
        with patch("stripe.checkout.Session.create", side_effect=stripe.APIConnectionError("down")):
            with pytest.raises(ProviderError) as exc:
                await provider.initiate(payment_request(), TRANSACTION)
        assert "down" not in exc.value.user_message

    def test_signature_requires_secret_and_header(self):
        assert not StripeProvider("sk", "", "https://shop.example").verify_webhook_signature(b"{}", "sig")
        assert not StripeProvider("sk", "whsec", "https://shop.example").verify_webhook_signature(b"{}", None)

    def test_parse_payment_intent_failure(self):
        payload = json.dumps({
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_1", "amount": 2653, "metadata": {"orderId": "42", "transactionId": "tx-1"}}},
        }).encode()
        notice = StripeProvider("sk", "whsec", "https://shop.example").parse_webhook(payload)
        assert notice.status == TransactionStatus.FAILED
        assert notice.reference is None
        assert notice.transaction_id == "tx-1"
        assert notice.order_id == 42

    def test_parse_ignores_other_events(self):
        payload = json.dumps({"type": "customer.created", "data": {"object": {}}}).encode()
        assert StripeProvider("sk", "whsec", "https://shop.example").parse_webhook(payload) is None

    def test_parse_malformed(self):
        with pytest.raises(WebhookPayloadError):
            StripeProvider("sk", "whsec", "https://shop.example").parse_webhook(b"not json")


class TestBictorysProvider:
    def provider(self, handler):
        return BictorysProvider(
            "https://api.test.bictorys.com/", "key-123", "secret", "https://shop.example",
            transport=httpx.MockTransport(handler),
        )

    @pytest.mark.asyncio
    async def test_wave_charge(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["url"] = str(request.url)
            seen["key"] = request.headers["X-Api-Key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "ch_1", "link": "https://pay.wave.com/c/1"})

        checkout = await self.provider(handler).initiate(payment_request("WAVE"), TRANSACTION)

        assert seen["url"] == "https://api.test.bictorys.com/pay/v1/charges?payment_type=wave_money"
        assert seen["key"] == "key-123"
        assert seen["body"]["merchantReference"] == TRANSACTION["reference"]
        assert seen["body"]["amount"] == 17400
        assert seen["body"]["metadata"]["transactionId"] == "tx-1"
        assert checkout.reference == TRANSACTION["reference"]
        assert checkout.checkout_url == "https://pay.wave.com/c/1"

    @pytest.mark.asyncio
    async def test_orange_money_qr_code(self):
        def handler(request):
            assert request.url.params["payment_type"] == "orange_money"
            return httpx.Response(200, json={"id": "ch_2", "qrCode": "data:image/png;base64,AAA"})

        checkout = await self.provider(handler).initiate(payment_request("ORANGE_MONEY"), TRANSACTION)
        assert checkout.qr_code.startswith("data:image/png")
        assert checkout.checkout_url is None

    @pytest.mark.asyncio
    async def test_http_error(self):
        provider = self.provider(lambda request: httpx.Response(502, text="bad gateway"))
        with pytest.raises(ProviderError):
            await provider.initiate(payment_request("WAVE"), TRANSACTION)

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(ProviderError):
            await self.provider(handler).initiate(payment_request("WAVE"), TRANSACTION)

    @pytest.mark.asyncio
    async def test_response_without_link(self):
        provider = self.provider(lambda request: httpx.Response(200, json={"id": "ch_3"}))
        with pytest.raises(ProviderError):
            await provider.initiate(payment_request("WAVE"), TRANSACTION)

    @pytest.mark.asyncio
    async def test_card_is_not_handled(self):
        provider = self.provider(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ProviderError):
            await provider.initiate(payment_request("STRIPE"), TRANSACTION)

    def test_status_mapping(self):
        provider = self.provider(lambda request: httpx.Response(200))

        def parse(status):
            return provider.parse_webhook(json.dumps({"merchantReference": "tr_1", "status": status}).encode())

        assert parse("succeeded").status == TransactionStatus.COMPLETED
        assert parse("CANCELLED").status == TransactionStatus.FAILED
        assert parse("expired").status == TransactionStatus.EXPIRED
        assert parse("pending") is None
        assert parse("weird") is None

    def test_secret_check(self):
        provider = self.provider(lambda request: httpx.Response(200))
        assert provider.verify_webhook_signature(b"{}", "secret")
        assert not provider.verify_webhook_signature(b"{}", "other")
        assert not provider.verify_webhook_signature(b"{}", None)


class TestCashProvider:
    @pytest.mark.asyncio
    async def test_instructions(self):
        checkout = await CashProvider().initiate(payment_request("CASH"), TRANSACTION)
        assert checkout.reference == "cash_tx-1"
        assert "17 400 FCFA" in checkout.instructions
        assert CashProvider().parse_webhook(b"{}") is None
