"""
Stripe hosted checkout.

FCFA amounts are converted to euro cents (XOF is pegged to the euro) and
checked against Stripe's minimum charge before any API call. The checkout
session id is the transaction reference; orderId and transactionId travel in
the metadata of both the session and its payment intent.
"""
import asyncio
import json
import logging
import time
from typing import Optional

import stripe

from app.core.exceptions import ProviderError, WebhookPayloadError
from app.payments.currency import format_fcfa, to_minor_units
from app.payments.providers.base import PaymentProviderAdapter
from app.schemas.payment import PaymentRequest, ProviderCheckout, TransactionStatus, WebhookNotice

logger = logging.getLogger(__name__)

# Event type -> resulting transaction status
STRIPE_EVENT_STATUS = {
    "checkout.session.completed": TransactionStatus.COMPLETED,
    "checkout.session.async_payment_succeeded": TransactionStatus.COMPLETED,
    "checkout.session.async_payment_failed": TransactionStatus.FAILED,
    "checkout.session.expired": TransactionStatus.EXPIRED,
    "payment_intent.payment_failed": TransactionStatus.FAILED,
}


class StripeProvider(PaymentProviderAdapter):
    name = "STRIPE"

    def __init__(
        self,
        secret_key: str,
        webhook_secret: str,
        public_app_url: str,
        min_amount_cents: int = 50,
        ttl_minutes: int = 30,
        xof_per_eur: Optional[float] = None,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.public_app_url = public_app_url.rstrip("/")
        self.min_amount_cents = min_amount_cents
        self.ttl_minutes = ttl_minutes
        self.xof_per_eur = xof_per_eur

    async def initiate(self, request: PaymentRequest, transaction: dict) -> ProviderCheckout:
        if not self.secret_key:
            raise ProviderError(
                "Le paiement par carte n'est pas disponible pour le moment.",
                "STRIPE_SECRET_KEY is not configured",
            )

        unit_amount = to_minor_units(request.amount, request.currency, self.xof_per_eur)
        if unit_amount < self.min_amount_cents:
            raise ProviderError(
                f"Le montant {format_fcfa(request.amount)} est trop faible pour un paiement par carte.",
                f"{unit_amount} cents below Stripe minimum {self.min_amount_cents}",
            )

        metadata = {"orderId": str(request.order_id), "transactionId": transaction["id"]}
        params = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [{
                "price_data": {
                    "currency": "eur",
                    "product_data": {"name": f"Commande #{request.order_id}"},
                    "unit_amount": unit_amount,
                },
                "quantity": 1,
            }],
            "success_url": f"{self.public_app_url}/payment/success?orderId={request.order_id}"
                           "&session_id={CHECKOUT_SESSION_ID}",
            "cancel_url": f"{self.public_app_url}/payment/cancel?orderId={request.order_id}",
            "expires_at": int(time.time()) + self.ttl_minutes * 60,
            "metadata": metadata,
            "payment_intent_data": {"metadata": metadata},
        }
        if request.customer_info.email:
            params["customer_email"] = request.customer_info.email

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=self.secret_key, **params
            )
        except stripe.StripeError as e:
            logger.error(f"[Stripe] Checkout session failed for order {request.order_id}: {e}")
            raise ProviderError(
                "Le paiement par carte est momentanément indisponible.",
                f"Stripe error: {type(e).__name__}: {e}",
            ) from e

        logger.info(f"[Stripe] Checkout session {session.id} created for order {request.order_id}")
        return ProviderCheckout(
            reference=session.id,
            checkout_url=session.url,
            raw={"stripe_session_id": session.id, "amount_eur_cents": unit_amount},
        )

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret:
            logger.error("[Stripe] STRIPE_WEBHOOK_SECRET not configured, rejecting webhook")
            return False
        if not signature:
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"[Stripe] Webhook signature check failed: {type(e).__name__}")
            return False
        return True

    def parse_webhook(self, payload: bytes) -> Optional[WebhookNotice]:
        try:
            event = json.loads(payload)
            event_type = event["type"]
            obj = event["data"]["object"]
        except (ValueError, KeyError, TypeError) as e:
            raise WebhookPayloadError(f"Malformed Stripe event: {e}") from e

        status = STRIPE_EVENT_STATUS.get(event_type)
        if status is None:
            logger.debug(f"[Stripe] Ignoring event {event_type}")
            return None
        # A completed session with a delayed method (e.g. SEPA) is not paid yet
        if event_type == "checkout.session.completed" and obj.get("payment_status") not in ("paid", "no_payment_required"):
            logger.info(f"[Stripe] Session {obj.get('id')} completed but unpaid, waiting for async result")
            return None

        metadata = obj.get("metadata") or {}
        order_id = metadata.get("orderId")
        return WebhookNotice(
            reference=obj.get("id") if event_type.startswith("checkout.session.") else None,
            status=status,
            amount=(obj.get("amount_total") or obj.get("amount") or 0) / 100 or None,
            transaction_id=metadata.get("transactionId"),
            order_id=int(order_id) if order_id and str(order_id).isdigit() else None,
            event_type=event_type,
        )
