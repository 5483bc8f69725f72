"""
Order Service - turns a finished chat draft into an order row.

The draft is validated first (items, shipping details, resolved delivery);
totals are taken from the draft's computed fields so the stored
total_amount always equals subtotal + delivery_cost.

An ORDER_CREATED email is queued after the insert; a failure there is
logged and the order stands.
"""
import logging
from typing import List, Optional

from app.agent.conversation_state import ConversationSession
from app.core.exceptions import OrderValidationError
from app.schemas.order import OrderDraft, OrderStatus
from app.services.notification_service import NotificationService, NotificationType
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)


def draft_problems(draft: OrderDraft) -> List[str]:
    """Everything that prevents submission, empty when the draft is ready."""
    problems = []
    if not draft.items:
        problems.append("no items")
    customer = draft.customer
    for field in ("first_name", "phone", "city", "address"):
        if not getattr(customer, field):
            problems.append(f"missing {field}")
    if draft.delivery_zone is None:
        problems.append("delivery not resolved")
    if draft.total <= 0:
        problems.append("empty total")
    return problems


class OrderService:
    def __init__(
        self,
        store: RecordStore,
        notifications: Optional[NotificationService] = None,
        currency: str = "XOF",
    ):
        self.store = store
        self.notifications = notifications
        self.currency = currency

    async def submit_order(self, session: ConversationSession) -> dict:
        draft = session.draft
        problems = draft_problems(draft)
        if problems:
            raise OrderValidationError(f"Draft for {session.session_id} not submittable: {', '.join(problems)}")

        customer = draft.customer
        order = await self.store.insert(
            "orders",
            {
                "session_id": session.session_id,
                "store_id": session.store_id,
                "items": [item.model_dump() for item in draft.items],
                "first_name": customer.first_name,
                "last_name": customer.last_name,
                "phone": customer.phone,
                "email": customer.email,
                "city": customer.city,
                "address": customer.address,
                "subtotal": draft.subtotal,
                "delivery_cost": draft.delivery_cost,
                "total_amount": draft.total,
                "currency": self.currency,
                "status": OrderStatus.PENDING.value,
                "details": {
                    "delivery_zone": draft.delivery_zone,
                    "is_free_delivery": draft.is_free_delivery,
                    "country": customer.country,
                    "buying_intent": session.buying_intent,
                },
            },
        )
        logger.info(f"[OrderService] Order {order['id']} created from session {session.session_id} total={draft.total}")

        if self.notifications is not None:
            try:
                await self.notifications.queue(order, NotificationType.ORDER_CREATED)
            except Exception as e:
                logger.error(f"[OrderService] Could not queue ORDER_CREATED for order {order['id']}: {e}")
        return order

    async def get_order(self, order_id: int) -> Optional[dict]:
        return await self.store.select_one("orders", {"id": order_id})
