"""
Legacy record adapter.

Older chat records used other step names and camelCase / prefixed order
fields (formStep, deliveryCost, customer_phone, delivery_city, ...). They
are mapped onto the canonical session and OrderDraft shapes here, when rows
are read back from the store. Nothing past this module sees a legacy name.
"""
import logging
from typing import Any, Dict, Optional

from app.agent.conversation_state import ConversationStep
from app.schemas.order import CustomerInfo, OrderDraft, OrderItem

logger = logging.getLogger(__name__)

LEGACY_STEP_MAP = {
    "start": ConversationStep.INITIAL_ENGAGEMENT,
    "initial": ConversationStep.INITIAL_ENGAGEMENT,
    "product_info": ConversationStep.PRODUCT_ENGAGEMENT,
    "quantity": ConversationStep.COLLECT_QUANTITY,
    "customer_info": ConversationStep.COLLECT_NAME,
    "name": ConversationStep.COLLECT_NAME,
    "contact": ConversationStep.COLLECT_PHONE,
    "phone": ConversationStep.COLLECT_PHONE,
    "city": ConversationStep.COLLECT_CITY,
    "address": ConversationStep.COLLECT_ADDRESS,
    "email": ConversationStep.COLLECT_EMAIL,
    "summary": ConversationStep.ORDER_SUMMARY,
    "payment": ConversationStep.PAYMENT_METHOD,
    "payment_complete": ConversationStep.ORDER_CONFIRMED,
    "complete": ConversationStep.ORDER_CONFIRMED,
    "error": ConversationStep.ERROR_RECOVERY,
    "payment_error": ConversationStep.PAYMENT_METHOD,
}


def _first(data: Dict[str, Any], *keys: str, default=None):
    for key in keys:
        value = data.get(key)
        if value not in (None, ""):
            return value
    return default


def normalize_step(value: Optional[str]) -> ConversationStep:
    """Map current or legacy step names; unknown values restart the conversation."""
    if not value:
        return ConversationStep.INITIAL_ENGAGEMENT
    try:
        return ConversationStep(value)
    except ValueError:
        pass
    if value in LEGACY_STEP_MAP:
        return LEGACY_STEP_MAP[value]
    logger.warning(f"[OrderAdapter] Unknown step '{value}', restarting at initial_engagement")
    return ConversationStep.INITIAL_ENGAGEMENT


def is_legacy_order_data(data: Dict[str, Any]) -> bool:
    return any(key in data for key in ("formStep", "totalAmount", "deliveryCost", "contactInfo", "delivery_fee"))


def normalize_item(item: Dict[str, Any]) -> OrderItem:
    return OrderItem(
        product_id=str(_first(item, "product_id", "productId", "id")),
        name=_first(item, "name", "product_name", "productName", default="Produit"),
        quantity=int(_first(item, "quantity", default=1)),
        unit_price=float(_first(item, "unit_price", "unitPrice", "price", default=0)),
    )


def normalize_customer(data: Dict[str, Any]) -> CustomerInfo:
    first_name = _first(data, "first_name", "firstName")
    last_name = _first(data, "last_name", "lastName")
    if not first_name:
        full_name = _first(data, "customer_name", "name", "fullName")
        if full_name:
            parts = str(full_name).split(maxsplit=1)
            first_name = parts[0]
            last_name = last_name or (parts[1] if len(parts) > 1 else None)
    return CustomerInfo(
        first_name=first_name,
        last_name=last_name,
        phone=_first(data, "phone", "customer_phone", "phoneNumber", "contactInfo"),
        email=_first(data, "email", "customer_email"),
        city=_first(data, "city", "delivery_city", "deliveryCity"),
        address=_first(data, "address", "delivery_address", "deliveryAddress"),
        country=_first(data, "country", default="SN"),
    )


def normalize_order_draft(data: Optional[Dict[str, Any]]) -> OrderDraft:
    """
    Build a canonical OrderDraft from a current or legacy payload.

    Handles both nested ({"customer": {...}}) and flattened legacy layouts.
    Totals are always recomputed, stored totals are ignored.
    """
    data = dict(data or {})
    items = [normalize_item(item) for item in data.get("items") or []]
    if not items and _first(data, "product_id", "productId"):
        items = [normalize_item(data)]

    customer_source = data.get("customer") if isinstance(data.get("customer"), dict) else data
    delivery_cost = _first(data, "delivery_cost", "deliveryCost", "delivery_fee", default=0)

    return OrderDraft(
        items=items,
        customer=normalize_customer(customer_source),
        delivery_cost=float(delivery_cost),
        delivery_zone=_first(data, "delivery_zone", "deliveryZone"),
        is_free_delivery=bool(_first(data, "is_free_delivery", "isFreeDelivery", default=False)),
        order_id=_first(data, "order_id", "orderId"),
        payment_method=_first(data, "payment_method", "paymentMethod"),
        transaction_id=_first(data, "transaction_id", "transactionId"),
    )


def normalize_session_payload(payload: Optional[Dict[str, Any]], step: Optional[str] = None) -> Dict[str, Any]:
    """
    Canonicalize a persisted conversation payload before it is parsed into
    a ConversationSession. Returns a dict with canonical keys only.
    """
    payload = dict(payload or {})
    legacy_draft = payload.get("draft") or payload.get("orderData") or payload.get("order_data") or {}
    canonical = {
        key: payload[key]
        for key in (
            "session_id", "product", "store_id", "messages", "concerns", "topics",
            "pending_city", "started_at", "last_interaction", "message_count",
            "last_exchange", "resume_step", "version",
        )
        if key in payload
    }
    canonical["current_step"] = normalize_step(
        step or payload.get("current_step") or payload.get("formStep") or legacy_draft.get("formStep")
    )
    canonical["buying_intent"] = float(
        _first(payload, "buying_intent", "buyingIntent", default=legacy_draft.get("buyingIntent", 0)) or 0
    )
    if "topics" not in canonical and legacy_draft.get("mentionedTopics"):
        canonical["topics"] = list(legacy_draft["mentionedTopics"])
    if "concerns" not in canonical and legacy_draft.get("concerns"):
        canonical["concerns"] = list(legacy_draft["concerns"])
    canonical["draft"] = normalize_order_draft(legacy_draft).model_dump()
    return canonical
