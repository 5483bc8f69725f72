"""
Notification Service - email outbox for order events.

queue() writes one PENDING row per (order, type); calling it again for the
same pair returns the existing row, so a webhook delivered twice never sends
two confirmation emails. deliver_pending() is driven by the maintenance
scheduler and hands rows to the email sender, up to MAX_ATTEMPTS times.

Delivery failures are recorded on the row and logged. They never touch
order or payment state.
"""
import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Optional

import httpx

from app.core.exceptions import NotificationError
from app.payments.currency import format_fcfa
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
MAX_ATTEMPTS = 3


class NotificationType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"


TEMPLATES = {
    NotificationType.ORDER_CREATED: (
        "Votre commande #{id} est enregistrée",
        "Bonjour {first_name},\n\nNous avons bien reçu votre commande #{id} d'un montant de {total}.\n"
        "Livraison : {address}, {city}.\n\nMerci pour votre confiance !",
    ),
    NotificationType.PAYMENT_RECEIVED: (
        "Paiement reçu pour la commande #{id}",
        "Bonjour {first_name},\n\nNous avons bien reçu votre paiement de {total} pour la commande #{id}.\n"
        "Nous préparons votre colis.\n\nMerci pour votre confiance !",
    ),
    NotificationType.ORDER_SHIPPED: (
        "Votre commande #{id} est en route",
        "Bonjour {first_name},\n\nVotre commande #{id} vient d'être expédiée vers {city}.",
    ),
    NotificationType.ORDER_DELIVERED: (
        "Votre commande #{id} est livrée",
        "Bonjour {first_name},\n\nVotre commande #{id} a été livrée. Bon jeu !",
    ),
}


def render(order: dict, notification_type: NotificationType) -> tuple:
    subject, body = TEMPLATES[notification_type]
    values = {
        "id": order["id"],
        "first_name": order.get("first_name") or "",
        "total": format_fcfa(order.get("total_amount") or 0),
        "address": order.get("address") or "",
        "city": order.get("city") or "",
    }
    return subject.format(**values), body.format(**values)


class ResendEmailSender:
    """Sends through the Resend HTTP API."""

    def __init__(self, api_key: str, from_email: str, timeout: float = 10.0):
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout

    async def send(self, to: str, subject: str, body: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    RESEND_API_URL,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json={"from": self.from_email, "to": [to], "subject": subject, "text": body},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise NotificationError(f"Resend rejected email: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise NotificationError(f"Resend unreachable: {type(e).__name__}") from e
        return response.json().get("id", "")


class LogEmailSender:
    """Used when no email provider is configured (local development)."""

    async def send(self, to: str, subject: str, body: str) -> str:
        logger.info(f"[Notifications] (not sent, no provider) to={to} subject={subject!r}")
        return "logged"


class NotificationService:
    def __init__(self, store: RecordStore, sender, max_attempts: int = MAX_ATTEMPTS):
        self.store = store
        self.sender = sender
        self.max_attempts = max_attempts
        self._queue_lock = asyncio.Lock()

    async def queue(self, order: dict, notification_type: NotificationType) -> Optional[dict]:
        """Add an email to the outbox; returns None when the customer left no email."""
        recipient = order.get("email")
        if not recipient:
            logger.info(f"[Notifications] Order {order['id']} has no email, skipping {notification_type.value}")
            return None

        async with self._queue_lock:
            existing = await self.store.select_one(
                "notifications", {"order_id": order["id"], "type": notification_type.value}
            )
            if existing is not None:
                logger.info(f"[Notifications] {notification_type.value} already queued for order {order['id']}")
                return existing

            subject, body = render(order, notification_type)
            row = await self.store.insert(
                "notifications",
                {
                    "order_id": order["id"],
                    "type": notification_type.value,
                    "channel": "email",
                    "recipient": recipient,
                    "subject": subject,
                    "body": body,
                    "status": "PENDING",
                    "attempts": 0,
                },
            )
        logger.info(f"[Notifications] Queued {notification_type.value} for order {order['id']}")
        return row

    async def deliver_pending(self, limit: int = 20) -> int:
        """Send queued emails. Returns how many were sent."""
        rows = await self.store.select("notifications", {"status": "PENDING"}, order_by="id", limit=limit)
        sent = 0
        for row in rows:
            attempts = row["attempts"] + 1
            try:
                await self.sender.send(row["recipient"], row["subject"], row["body"])
            except NotificationError as e:
                status = "FAILED" if attempts >= self.max_attempts else "PENDING"
                logger.warning(
                    f"[Notifications] Attempt {attempts}/{self.max_attempts} failed for "
                    f"notification {row['id']}: {e}"
                )
                await self.store.update(
                    "notifications", {"id": row["id"]},
                    {"attempts": attempts, "status": status, "last_error": str(e)},
                )
                continue
            await self.store.update(
                "notifications", {"id": row["id"]},
                {"attempts": attempts, "status": "SENT", "sent_at": datetime.utcnow(), "last_error": None},
            )
            sent += 1
        if sent:
            logger.info(f"[Notifications] Delivered {sent} email(s)")
        return sent
