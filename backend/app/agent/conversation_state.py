"""
Conversation State - steps, keyword tables and the session record.

Keyword tables are data: extend a category list to change scoring or
routing, the control flow in intent_analyzer.py / step_machine.py never
needs to change. Keywords are written naturally (accents allowed); they are
normalized before matching.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from app.schemas.order import OrderDraft


class ConversationStep(str, Enum):
    """Step machine states, in canonical order."""
    INITIAL_ENGAGEMENT = "initial_engagement"
    PRODUCT_ENGAGEMENT = "product_engagement"
    COLLECT_QUANTITY = "collect_quantity"
    COLLECT_NAME = "collect_name"
    COLLECT_PHONE = "collect_phone"
    COLLECT_CITY = "collect_city"
    COLLECT_ADDRESS = "collect_address"
    COLLECT_EMAIL = "collect_email_opt"
    ORDER_SUMMARY = "order_summary"
    PAYMENT_METHOD = "payment_method"
    PAYMENT_PROCESSING = "payment_processing"
    ORDER_CONFIRMED = "order_confirmed"
    ERROR_RECOVERY = "error_recovery"


# Steps where product Q&A is still going on (express checkout can fire here)
ENGAGEMENT_STEPS = {
    ConversationStep.INITIAL_ENGAGEMENT,
    ConversationStep.PRODUCT_ENGAGEMENT,
}

# Steps where the draft can still be edited or cancelled
DRAFT_STEPS = {
    ConversationStep.COLLECT_QUANTITY,
    ConversationStep.COLLECT_NAME,
    ConversationStep.COLLECT_PHONE,
    ConversationStep.COLLECT_CITY,
    ConversationStep.COLLECT_ADDRESS,
    ConversationStep.COLLECT_EMAIL,
    ConversationStep.ORDER_SUMMARY,
}


# === BUYING INTENT ===
# Weighted sum of category hits, capped at 1.0
INTENT_WEIGHTS = {
    "high": 0.3,
    "medium": 0.2,
    "low": 0.1,
}

BUYING_INTENT_KEYWORDS = {
    "high": ["acheter", "commander", "payer", "prix", "je prends", "je veux", "livraison"],
    "medium": ["intéressé", "intéressée", "possible", "peut-être", "réfléchir", "comparer", "différence"],
    "low": ["information", "question", "comprendre", "comment", "expliquer", "exemple"],
}

# === CONCERNS === (substring match, a message may hit several)
CONCERN_KEYWORDS = {
    "price": ["cher", "prix", "coût", "cout", "budget", "promotion", "promo", "réduction"],
    "quality": ["qualité", "durable", "solide", "matériau", "cartes abîmées"],
    "delivery": ["livraison", "délai", "expédition", "quand", "livrer"],
    "trust": ["garantie", "retour", "confiance", "sécurité", "rembourse"],
}

# Sentences opening with these are recorded as customer questions (topics)
QUESTION_OPENERS = ["comment", "pourquoi", "quand", "où", "combien", "quel", "quelle", "quels", "quelles", "est-ce que"]


# === ROUTING KEYWORDS === (whole-phrase match)
ROUTING_KEYWORDS = {
    "confirm": ["oui", "confirmer", "je confirme", "valider", "ok", "d'accord", "c'est bon", "parfait"],
    "cancel": ["annuler", "annule", "stop", "laisser tomber"],
    "modify_quantity": ["modifier la quantité", "changer la quantité", "quantité"],
    "modify_details": ["modifier mes informations", "modifier les informations", "changer mes informations", "modifier"],
    "choose_quantity": ["choisir la quantité", "plusieurs exemplaires"],
    "skip": ["passer", "passer cette étape", "non merci", "pas d'email", "non"],
    "retry": ["réessayer", "recommencer", "reprendre"],
    "other_method": ["autre moyen", "autre mode", "changer de moyen", "choisir un autre moyen de paiement"],
    "notify_me": ["me prévenir", "prévenez-moi", "m'avertir", "me notifier"],
    "other_city": ["autre ville"],
    "new_order": ["nouvelle commande", "commander à nouveau", "recommander"],
}

PAYMENT_METHOD_KEYWORDS = {
    "WAVE": ["wave"],
    "ORANGE_MONEY": ["orange money", "orange", "om"],
    "STRIPE": ["carte bancaire", "carte", "visa", "mastercard", "stripe", "cb"],
    "CASH": ["paiement à la livraison", "à la livraison", "espèces", "cash", "liquide"],
}

QUANTITY_WORDS = {
    "un": 1, "une": 1, "deux": 2, "trois": 3, "quatre": 4, "cinq": 5,
    "six": 6, "sept": 7, "huit": 8, "neuf": 9, "dix": 10,
}


# === QUICK-REPLY CHOICES ===
CHOICES = {
    "engagement": ["Commander maintenant", "Choisir la quantité", "J'ai une question"],
    "summary": ["Confirmer la commande", "Modifier la quantité", "Modifier mes informations"],
    "payment": ["Wave", "Orange Money", "Carte bancaire", "Paiement à la livraison"],
    "payment_processing": ["J'ai payé", "Choisir un autre moyen de paiement"],
    "city_declined": ["Choisir une autre ville", "Me prévenir quand disponible"],
    "email": ["Passer cette étape"],
    "retry_order": ["Confirmer la commande", "Modifier mes informations"],
    "recovery": ["Réessayer"],
    "confirmed": ["Nouvelle commande"],
}

PAYMENT_CHOICE_LABELS = {
    "WAVE": "Wave",
    "ORANGE_MONEY": "Orange Money",
    "STRIPE": "Carte bancaire",
    "CASH": "Paiement à la livraison",
}


class ProductSnapshot(BaseModel):
    id: str
    name: str
    price: float
    stock: int = 0


class ChatTurn(BaseModel):
    sender: str  # customer | assistant
    content: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ProcessedExchange(BaseModel):
    """Last handled (step, input) and what it produced; replayed on client retries."""
    step: ConversationStep
    input: str
    result_step: ConversationStep
    replies: List[Dict] = Field(default_factory=list)


class ConversationSession(BaseModel):
    """
    One chat checkout.

    Owned by SessionStore. The step machine works on copies and hands the
    new version back; nothing else mutates it.
    """
    session_id: str
    product: ProductSnapshot
    store_id: str = "default"
    current_step: ConversationStep = ConversationStep.INITIAL_ENGAGEMENT
    resume_step: Optional[ConversationStep] = None  # set while in ERROR_RECOVERY
    messages: List[ChatTurn] = Field(default_factory=list)
    buying_intent: float = 0.0
    concerns: List[str] = Field(default_factory=list)
    topics: List[str] = Field(default_factory=list)
    draft: OrderDraft = Field(default_factory=OrderDraft)
    pending_city: Optional[str] = None  # last declined city, for "notify me"
    started_at: datetime = Field(default_factory=datetime.utcnow)
    last_interaction: datetime = Field(default_factory=datetime.utcnow)
    message_count: int = 0
    last_exchange: Optional[ProcessedExchange] = None
    version: int = 0

    @property
    def product_id(self) -> str:
        return self.product.id
