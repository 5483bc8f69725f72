"""Cash on delivery: no external call, the courier collects the money."""
from typing import Optional

from app.payments.currency import format_fcfa
from app.payments.providers.base import PaymentProviderAdapter
from app.schemas.payment import PaymentRequest, ProviderCheckout, WebhookNotice


class CashProvider(PaymentProviderAdapter):
    name = "CASH"

    async def initiate(self, request: PaymentRequest, transaction: dict) -> ProviderCheckout:
        return ProviderCheckout(
            reference=f"cash_{transaction['id']}",
            instructions=f"Vous réglerez {format_fcfa(request.amount)} en espèces à la livraison.",
        )

    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        # Cash is confirmed by an admin, never by a callback
        return False

    def parse_webhook(self, payload: bytes) -> Optional[WebhookNotice]:
        return None
