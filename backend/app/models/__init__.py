from app.models.product import Product
from app.models.delivery_zone import DeliveryZone
from app.models.conversation import Conversation, ConversationMessage, ConversationEvent
from app.models.order import Order
from app.models.payment_transaction import PaymentTransaction
from app.models.notification import Notification

__all__ = [
    "Product",
    "DeliveryZone",
    "Conversation",
    "ConversationMessage",
    "ConversationEvent",
    "Order",
    "PaymentTransaction",
    "Notification",
]
