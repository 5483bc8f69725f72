"""
Bictorys mobile-money charges (Wave and Orange Money).

We do not talk to Wave or Orange ourselves: Bictorys creates the charge and
returns a payment link or a QR code. Our transaction reference is sent as
the merchant reference, so callbacks are matched on it.

Callbacks carry the shared secret in the X-Secret-Key header.
"""
import hmac
import json
import logging
from typing import Optional

import httpx

from app.core.exceptions import ProviderError, WebhookPayloadError
from app.payments.providers.base import PaymentProviderAdapter
from app.schemas.payment import PaymentRequest, ProviderCheckout, TransactionStatus, WebhookNotice

logger = logging.getLogger(__name__)

PAYMENT_TYPES = {
    "WAVE": "wave_money",
    "ORANGE_MONEY": "orange_money",
}

# Bictorys status -> transaction status; None = not final yet
BICTORYS_STATUS = {
    "succeeded": TransactionStatus.COMPLETED,
    "failed": TransactionStatus.FAILED,
    "cancelled": TransactionStatus.FAILED,
    "expired": TransactionStatus.EXPIRED,
    "pending": None,
    "processing": None,
    "authorized": None,
}

UNAVAILABLE = "Le paiement mobile est momentanément indisponible. Réessayez ou choisissez un autre moyen de paiement."


class BictorysProvider(PaymentProviderAdapter):
    name = "BICTORYS"

    def __init__(
        self,
        api_url: str,
        api_key: str,
        webhook_secret: str,
        public_app_url: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.public_app_url = public_app_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def initiate(self, request: PaymentRequest, transaction: dict) -> ProviderCheckout:
        payment_type = PAYMENT_TYPES.get(request.provider.value)
        if payment_type is None:
            raise ProviderError(UNAVAILABLE, f"Bictorys does not handle {request.provider.value}")
        if not self.api_key:
            raise ProviderError(UNAVAILABLE, "BICTORYS_API_KEY is not configured")

        customer = request.customer_info
        body = {
            "amount": int(round(request.amount)),
            "currency": request.currency,
            "merchantReference": transaction["reference"],
            "successRedirectUrl": f"{self.public_app_url}/payment/success?orderId={request.order_id}",
            "errorRedirectUrl": f"{self.public_app_url}/payment/error?orderId={request.order_id}",
            "customerObject": {
                "name": customer.name,
                "phone": customer.phone,
                "email": customer.email,
                "city": customer.city,
                "country": customer.country,
                "locale": "fr-FR",
            },
            "metadata": {"orderId": str(request.order_id), "transactionId": transaction["id"]},
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(
                    f"{self.api_url}/pay/v1/charges",
                    params={"payment_type": payment_type},
                    headers={"X-Api-Key": self.api_key, "Accept": "application/json"},
                    json=body,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"[Bictorys] Charge rejected for order {request.order_id}: "
                f"HTTP {e.response.status_code} {e.response.text[:300]}"
            )
            raise ProviderError(UNAVAILABLE, f"HTTP {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[Bictorys] Charge failed for order {request.order_id}: {type(e).__name__}: {e}")
            raise ProviderError(UNAVAILABLE, f"{type(e).__name__}: {e}") from e

        checkout_url = data.get("link") or data.get("redirectUrl") or data.get("paymentUrl")
        qr_code = data.get("qrCode")
        if not checkout_url and not qr_code:
            logger.error(f"[Bictorys] No link or QR code in response for order {request.order_id}")
            raise ProviderError(UNAVAILABLE, "Bictorys response without link or qrCode")

        logger.info(f"[Bictorys] {payment_type} charge {data.get('id')} created for order {request.order_id}")
        return ProviderCheckout(
            reference=transaction["reference"],
            checkout_url=checkout_url,
            qr_code=qr_code,
            raw={"bictorys_charge_id": data.get("id"), "bictorys_transaction_id": data.get("transactionId")},
        )

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        if not self.webhook_secret:
            logger.error("[Bictorys] BICTORYS_WEBHOOK_SECRET not configured, rejecting webhook")
            return False
        return hmac.compare_digest((signature or "").encode(), self.webhook_secret.encode())

    def parse_webhook(self, payload: bytes) -> Optional[WebhookNotice]:
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise WebhookPayloadError("Bictorys payload is not JSON") from e
        if not isinstance(data, dict) or not data.get("merchantReference") or not data.get("status"):
            raise WebhookPayloadError("Bictorys payload missing merchantReference or status")

        raw_status = str(data["status"]).lower()
        if raw_status not in BICTORYS_STATUS:
            logger.warning(f"[Bictorys] Unknown status '{raw_status}' for {data['merchantReference']}")
            return None
        status = BICTORYS_STATUS[raw_status]
        if status is None:
            return None

        metadata = data.get("metadata") or {}
        order_id = metadata.get("orderId")
        return WebhookNotice(
            reference=data["merchantReference"],
            status=status,
            amount=data.get("amount"),
            transaction_id=metadata.get("transactionId"),
            order_id=int(order_id) if order_id and str(order_id).isdigit() else None,
            event_type=f"charge.{raw_status}",
        )
