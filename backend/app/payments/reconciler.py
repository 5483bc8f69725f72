"""
Webhook Reconciler - applies provider callbacks and manual verifications.

Transaction lifecycle: PENDING -> COMPLETED | FAILED | EXPIRED. Terminal
states are final; a second delivery of the same callback is a no-op.

Per callback:
1. Authenticate (signature / shared secret). Failure: WebhookSignatureError,
   nothing changes
2. Parse. Events that do not move a transaction are ignored
3. Find the transaction by provider reference, then by our transaction id
4. Under the transaction lock: skip if terminal, else move it and the order
   (COMPLETED -> order PAID)
5. Best effort, after the state is saved: realtime push on `order_{id}`,
   chat update, PAYMENT_RECEIVED email. None of these can undo step 4.

Admin cash confirmation and manual verification go through the same
transition with source "manual".
"""
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from app.core.audit import AuditLog
from app.core.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    UnknownProviderError,
    WebhookSignatureError,
)
from app.payments.gateway import PaymentGateway
from app.payments.locks import KeyedLocks
from app.schemas.order import OrderStatus
from app.schemas.payment import PaymentProvider, TransactionStatus, WebhookNotice
from app.services.notification_service import NotificationService, NotificationType
from app.services.realtime import RealtimeHub, order_channel
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

# URL segment -> adapter key (one Bictorys adapter serves Wave and Orange Money)
WEBHOOK_ROUTES = {
    "stripe": PaymentProvider.STRIPE,
    "bictorys": PaymentProvider.WAVE,
}

StatusListener = Callable[[int, str, TransactionStatus], Awaitable[None]]


class WebhookReconciler:
    def __init__(
        self,
        store: RecordStore,
        gateway: PaymentGateway,
        hub: RealtimeHub,
        notifications: Optional[NotificationService] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.hub = hub
        self.notifications = notifications
        # Set by the chat service so an open conversation hears about the payment
        self.status_listener: Optional[StatusListener] = None
        self._locks = KeyedLocks()

    async def handle_webhook(self, route: str, payload: bytes, signature: Optional[str]) -> str:
        """Returns the outcome: applied | duplicate | ignored | unknown_transaction."""
        provider = WEBHOOK_ROUTES.get(route.lower())
        if provider is None:
            raise UnknownProviderError(f"No webhook route for '{route}'")
        adapter = self.gateway.adapter_for(provider)

        if not adapter.verify_webhook_signature(payload, signature):
            AuditLog.log_webhook(route, "rejected", reason="invalid signature")
            raise WebhookSignatureError(f"Invalid {route} webhook signature")

        notice = adapter.parse_webhook(payload)
        if notice is None:
            AuditLog.log_webhook(route, "ignored")
            return "ignored"

        transaction = await self._find_transaction(notice)
        if transaction is None:
            logger.warning(
                f"[Reconciler] No transaction for {route} webhook "
                f"reference={notice.reference} transaction_id={notice.transaction_id}"
            )
            AuditLog.log_webhook(route, "unknown_transaction", notice.reference)
            return "unknown_transaction"

        outcome = await self.apply_transition(
            transaction["id"],
            notice.status,
            source=f"webhook:{route}",
            details={"webhook_event": notice.event_type, "provider_amount": notice.amount},
        )
        AuditLog.log_webhook(route, outcome, notice.reference)
        return outcome

    async def apply_transition(
        self,
        transaction_id: str,
        status: TransactionStatus,
        source: str,
        details: Optional[dict] = None,
    ) -> str:
        """Move a PENDING transaction to a terminal status. Returns applied | duplicate | unknown_transaction."""
        if not status.is_terminal:
            raise ValueError("Only terminal statuses can be applied")

        async with self._locks.hold(transaction_id):
            transaction = await self.store.select_one("payment_transactions", {"id": transaction_id})
            if transaction is None:
                return "unknown_transaction"

            current = TransactionStatus(transaction["status"])
            if current.is_terminal:
                superseded_by = (transaction.get("details") or {}).get("superseded_by")
                if superseded_by and status == TransactionStatus.COMPLETED:
                    logger.warning(
                        f"[Reconciler] Payment COMPLETED on superseded transaction {transaction_id} "
                        f"(replaced by {superseded_by}), order {transaction['order_id']} needs manual review"
                    )
                else:
                    logger.info(f"[Reconciler] Transaction {transaction_id} already {current.value}, ignoring {status.value}")
                return "duplicate"

            updated = await self.store.update(
                "payment_transactions",
                {"id": transaction_id, "status": TransactionStatus.PENDING.value},
                {
                    "status": status.value,
                    "details": {
                        **(transaction.get("details") or {}),
                        **(details or {}),
                        "resolved_by": source,
                        "resolved_at": datetime.utcnow().isoformat(),
                    },
                },
            )
            if updated is None:
                return "duplicate"

            AuditLog.log_transaction_status(
                transaction_id, transaction["order_id"], current.value, status.value, source
            )

            order_patch = {"payment_status": status.value}
            if status == TransactionStatus.COMPLETED:
                order_patch.update({"status": OrderStatus.PAID.value, "paid_at": datetime.utcnow()})
            order = await self.store.update("orders", {"id": transaction["order_id"]}, order_patch)

        logger.info(f"[Reconciler] Transaction {transaction_id} -> {status.value} ({source})")
        await self._follow_up(updated, order, status)
        return "applied"

    async def verify_transaction(self, transaction_id: str, status: TransactionStatus, note: Optional[str] = None) -> str:
        """Explicit manual verification from the back-office."""
        outcome = await self.apply_transition(
            transaction_id, status, source="manual", details={"note": note} if note else None
        )
        AuditLog.log_admin_action(
            "verify_transaction", "payment_transaction", transaction_id,
            changes={"status": status.value, "outcome": outcome},
        )
        return outcome

    async def confirm_cash_payment(self, order_id: int) -> str:
        """Cash collected by the courier: the pending CASH transaction completes."""
        order = await self.store.select_one("orders", {"id": order_id})
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")
        if order["status"] == OrderStatus.PAID.value:
            return "duplicate"

        transaction = await self.store.select_one(
            "payment_transactions",
            {
                "order_id": order_id,
                "provider": PaymentProvider.CASH.value,
                "status": TransactionStatus.PENDING.value,
            },
        )
        if transaction is None:
            raise OrderValidationError(f"Order {order_id} has no pending cash payment")

        outcome = await self.apply_transition(
            transaction["id"], TransactionStatus.COMPLETED, source="manual", details={"note": "cash collected"}
        )
        AuditLog.log_admin_action("confirm_cash", "order", order_id, changes={"outcome": outcome})
        return outcome

    async def _find_transaction(self, notice: WebhookNotice) -> Optional[dict]:
        if notice.reference:
            transaction = await self.store.select_one("payment_transactions", {"reference": notice.reference})
            if transaction is not None:
                return transaction
        if notice.transaction_id:
            return await self.store.select_one("payment_transactions", {"id": notice.transaction_id})
        return None

    async def _follow_up(self, transaction: dict, order: Optional[dict], status: TransactionStatus) -> None:
        order_id = transaction["order_id"]

        try:
            await self.hub.publish(
                order_channel(order_id),
                "payment_status",
                {
                    "status": status.value,
                    "orderId": order_id,
                    "transactionId": transaction["id"],
                    "amount": transaction["amount"],
                },
            )
        except Exception as e:
            logger.error(f"[Reconciler] Realtime push failed for order {order_id}: {e}")

        if self.status_listener is not None:
            try:
                await self.status_listener(order_id, transaction["id"], status)
            except Exception as e:
                logger.error(f"[Reconciler] Chat update failed for order {order_id}: {e}", exc_info=True)

        if status == TransactionStatus.COMPLETED and self.notifications is not None and order is not None:
            try:
                await self.notifications.queue(order, NotificationType.PAYMENT_RECEIVED)
            except Exception as e:
                logger.error(f"[Reconciler] Could not queue PAYMENT_RECEIVED for order {order_id}: {e}")
