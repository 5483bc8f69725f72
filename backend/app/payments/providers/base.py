"""Provider adapter contract.

An adapter knows how to talk to one payment processor. It never touches the
store: the gateway records the transaction around `initiate`, and the
reconciler applies what `parse_webhook` reports.
"""
from abc import ABC, abstractmethod
from typing import Optional

from app.schemas.payment import PaymentRequest, ProviderCheckout, WebhookNotice


class PaymentProviderAdapter(ABC):
    name: str = ""

    @abstractmethod
    async def initiate(self, request: PaymentRequest, transaction: dict) -> ProviderCheckout:
        """Start the payment. Raises ProviderError with a user-safe message."""

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """True only when the callback provably comes from the provider."""

    @abstractmethod
    def parse_webhook(self, payload: bytes) -> Optional[WebhookNotice]:
        """
        Reduce a verified callback to a WebhookNotice.

        Returns None for events that do not move a transaction (pending,
        unrelated event types). Raises WebhookPayloadError on malformed input.
        """
