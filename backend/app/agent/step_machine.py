"""
Step Machine - the checkout conversation as a pure function.

    transition(session, event, config) -> Transition(session, replies, effects)

The session passed in is never mutated; the returned one is a new version.
Nothing here touches the network or the store. Work with side effects is
described as Effect values; the executor performs them and feeds the
outcome back in as a result event (CityChecked, OrderSubmitted, ...).

Events:
    UserMessage            customer typed or tapped something
    CityChecked            ValidateCity finished
    OrderSubmitted         SubmitOrder created the order row
    PaymentStarted         InitiatePayment returned (success or user-safe error)
    PaymentStatusChanged   webhook / admin moved the transaction
    EffectFailed           an effect raised; the step does not advance

Effects:
    ValidateCity           resolve delivery for a city + amount
    SubmitOrder            persist the draft as an order
    InitiatePayment        start a payment with one provider
    RecordCityInterest     remember a "notify me" for an unserved city
"""
import re
from dataclasses import dataclass, field
from typing import ClassVar, List, Optional, Tuple, Union

from pydantic import EmailStr, TypeAdapter, ValidationError

from ai import fallback
from app.agent.conversation_state import (
    CHOICES,
    DRAFT_STEPS,
    PAYMENT_CHOICE_LABELS,
    PAYMENT_METHOD_KEYWORDS,
    ROUTING_KEYWORDS,
    ConversationSession,
    ConversationStep,
)
from app.agent.intent_analyzer import (
    IntentThresholds,
    MessageAnalysis,
    analyze_message,
    extract_quantity,
)
from app.payments.currency import format_fcfa
from app.schemas.delivery import CityValidation
from app.schemas.order import CustomerInfo, OrderDraft, OrderItem
from app.schemas.payment import PaymentResult, TransactionStatus
from app.services.phone_service import validate_phone
from app.services.text_utils import matches_any, normalize_text

Step = ConversationStep

_EMAIL = TypeAdapter(EmailStr)
_NAME_RE = re.compile(r"^[^\W\d_]+(?:[ '\-][^\W\d_]+)*$")

MAX_TOPICS = 10


# ----------------------------------------------------------------------
# Values
# ----------------------------------------------------------------------

@dataclass(frozen=True)
class Reply:
    text: str
    choices: Tuple[str, ...] = ()
    # Product Q&A only: the text generator may rephrase it
    enrichable: bool = False

    def to_dict(self) -> dict:
        return {"text": self.text, "choices": list(self.choices)}


@dataclass(frozen=True)
class ValidateCity:
    city: str
    order_amount: float
    purpose: str = "collect"  # collect | refresh | express
    blocking: ClassVar[bool] = True


@dataclass(frozen=True)
class SubmitOrder:
    blocking: ClassVar[bool] = True


@dataclass(frozen=True)
class InitiatePayment:
    provider: str
    blocking: ClassVar[bool] = True


@dataclass(frozen=True)
class RecordCityInterest:
    city: str
    blocking: ClassVar[bool] = False


Effect = Union[ValidateCity, SubmitOrder, InitiatePayment, RecordCityInterest]


@dataclass(frozen=True)
class UserMessage:
    text: str


@dataclass(frozen=True)
class CityChecked:
    city: str
    validation: CityValidation
    purpose: str = "collect"


@dataclass(frozen=True)
class OrderSubmitted:
    order_id: int


@dataclass(frozen=True)
class PaymentStarted:
    provider: str
    result: PaymentResult


@dataclass(frozen=True)
class PaymentStatusChanged:
    status: TransactionStatus
    transaction_id: Optional[str] = None
    order_id: Optional[int] = None


@dataclass(frozen=True)
class EffectFailed:
    effect: Effect
    message: str = ""


Event = Union[UserMessage, CityChecked, OrderSubmitted, PaymentStarted, PaymentStatusChanged, EffectFailed]


@dataclass
class Transition:
    session: ConversationSession
    replies: List[Reply] = field(default_factory=list)
    effects: List[Effect] = field(default_factory=list)
    # Something did not go through; the exchange must not be replayed
    failed: bool = False
    # (event_type, data) pairs for the analytics queue
    signals: List[Tuple[str, dict]] = field(default_factory=list)


@dataclass(frozen=True)
class MachineConfig:
    thresholds: IntentThresholds = field(default_factory=IntentThresholds)
    max_quantity: int = 99
    default_country: str = "SN"


DEFAULT_CONFIG = MachineConfig()


# ----------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------

def transition(
    session: ConversationSession,
    event: Event,
    config: MachineConfig = DEFAULT_CONFIG,
) -> Transition:
    state = session.model_copy(deep=True)

    if isinstance(event, UserMessage):
        return _on_user_message(state, event.text, config)
    if isinstance(event, CityChecked):
        return _on_city_checked(state, event, config)
    if isinstance(event, OrderSubmitted):
        return _on_order_submitted(state, event)
    if isinstance(event, PaymentStarted):
        return _on_payment_started(state, event)
    if isinstance(event, PaymentStatusChanged):
        return _on_payment_status(state, event)
    if isinstance(event, EffectFailed):
        return _on_effect_failed(state, event)
    raise TypeError(f"Unknown event {event!r}")


def opening_reply(session: ConversationSession) -> Reply:
    return Reply(fallback.greeting(session.product.name), tuple(CHOICES["engagement"]))


def enter_error_recovery(session: ConversationSession) -> Transition:
    """Used when handling a message blew up; the draft is kept."""
    state = session.model_copy(deep=True)
    if state.current_step != Step.ERROR_RECOVERY:
        state.resume_step = state.current_step
    state.current_step = Step.ERROR_RECOVERY
    return Transition(state, [Reply(fallback.GENERIC_ERROR, tuple(CHOICES["recovery"]))], failed=True)


def max_quantity(session: ConversationSession, config: MachineConfig = DEFAULT_CONFIG) -> int:
    return max(0, min(session.product.stock, config.max_quantity))


def parse_payment_method(normalized: str) -> Optional[str]:
    for provider, keywords in PAYMENT_METHOD_KEYWORDS.items():
        if matches_any(normalized, keywords):
            return provider
    return None


def parse_email(text: str) -> Optional[str]:
    try:
        return _EMAIL.validate_python(text.strip()).lower()
    except ValidationError:
        return None


# ----------------------------------------------------------------------
# Customer messages
# ----------------------------------------------------------------------

def _on_user_message(state: ConversationSession, text: str, config: MachineConfig) -> Transition:
    analysis = analyze_message(text, state.current_step, state.buying_intent, config.thresholds)
    state.buying_intent = max(state.buying_intent, analysis.buying_intent)
    for concern in analysis.concerns:
        if concern not in state.concerns:
            state.concerns.append(concern)
    for topic in analysis.topics:
        if topic not in state.topics:
            state.topics.append(topic)
    state.topics = state.topics[-MAX_TOPICS:]

    normalized = normalize_text(text)
    if (
        state.current_step in DRAFT_STEPS
        and not state.draft.is_submitted
        and matches_any(normalized, ROUTING_KEYWORDS["cancel"])
    ):
        return _cancel(state)

    handler = _MESSAGE_HANDLERS[state.current_step]
    return handler(state, text, normalized, analysis, config)


def _on_engagement(state, text, normalized, analysis: MessageAnalysis, config) -> Transition:
    if analysis.suggested_next_step == Step.COLLECT_NAME:
        return _express_checkout(state, text, analysis, config)

    if matches_any(normalized, ROUTING_KEYWORDS["choose_quantity"]):
        state.current_step = Step.COLLECT_QUANTITY
        return Transition(state, [_prompt_for(state, Step.COLLECT_QUANTITY, config)])

    state.current_step = Step.PRODUCT_ENGAGEMENT
    reply = Reply(
        fallback.engagement_reply(state.product.name, format_fcfa(state.product.price), analysis.concerns),
        tuple(CHOICES["engagement"]),
        enrichable=True,
    )
    return Transition(state, [reply])


def _express_checkout(state, text, analysis: MessageAnalysis, config) -> Transition:
    limit = max_quantity(state, config)
    if limit < 1:
        state.current_step = Step.PRODUCT_ENGAGEMENT
        return Transition(state, [Reply(
            f"Je suis navrée, {state.product.name} est en rupture de stock pour le moment 😔"
        )])

    quantity = extract_quantity(text) or 1
    signal = ("express_checkout", {"buying_intent": state.buying_intent, "keywords": analysis.matched_keywords})
    if quantity > limit:
        state.current_step = Step.COLLECT_QUANTITY
        return Transition(
            state,
            [Reply(f"Il nous reste {limit} exemplaire(s) de {state.product.name}. Combien en souhaitez-vous ?")],
            signals=[signal],
        )

    _set_quantity(state, quantity)
    intro = (
        f"Excellent choix ! 🎉 Je note {quantity} x {state.product.name} "
        f"({format_fcfa(state.draft.subtotal)})."
    )

    customer = state.draft.customer
    if customer.is_complete():
        # Returning customer: re-resolve delivery, then submit straight away
        state.draft.clear_delivery()
        return Transition(
            state,
            [Reply(f"{intro} Je reprends vos informations de livraison 👍")],
            [ValidateCity(customer.city, state.draft.subtotal, purpose="express")],
            signals=[signal],
        )

    state.current_step = _next_missing_step(state.draft)
    return Transition(state, [_chain(intro, _prompt_for(state, state.current_step, config))], signals=[signal])


def _on_collect_quantity(state, text, normalized, analysis, config) -> Transition:
    limit = max_quantity(state, config)
    quantity = extract_quantity(text)
    if quantity is None or quantity < 1 or quantity > limit:
        return Transition(state, [Reply(f"Merci d'indiquer un nombre entre 1 et {limit} 🙏")])

    _set_quantity(state, quantity)
    customer = state.draft.customer
    if customer.is_complete():
        # Changed from the summary: the fee depends on the amount
        state.draft.clear_delivery()
        return Transition(state, effects=[ValidateCity(customer.city, state.draft.subtotal, purpose="refresh")])

    state.current_step = _next_missing_step(state.draft)
    intro = f"Parfait, {quantity} x {state.product.name} 👍"
    return Transition(state, [_chain(intro, _prompt_for(state, state.current_step, config))])


def _on_collect_name(state, text, normalized, analysis, config) -> Transition:
    name = " ".join(text.split())
    if len(name) < 2 or len(name) > 80 or not _NAME_RE.match(name):
        return Transition(state, [Reply("Pouvez-vous m'indiquer votre prénom et votre nom ? 🙂")])

    parts = name.split(maxsplit=1)
    state.draft.customer.first_name = parts[0]
    state.draft.customer.last_name = parts[1] if len(parts) > 1 else None
    return _advance(state, config)


def _on_collect_phone(state, text, normalized, analysis, config) -> Transition:
    country = state.draft.customer.country or config.default_country
    result = validate_phone(text, country)
    if not result.is_valid:
        return Transition(state, [Reply(f"Ce numéro ne semble pas valide 🤔 {result.error}")])
    state.draft.customer.phone = result.international
    return _advance(state, config)


def _on_collect_city(state, text, normalized, analysis, config) -> Transition:
    if state.pending_city and matches_any(normalized, ROUTING_KEYWORDS["notify_me"]):
        city = state.pending_city
        state.pending_city = None
        return Transition(
            state,
            [Reply(
                f"C'est noté ! Nous vous préviendrons dès que nous livrerons à {city} 🙏 "
                "En attendant, souhaitez-vous être livré(e) dans une autre ville ?"
            )],
            [RecordCityInterest(city)],
        )

    if matches_any(normalized, ROUTING_KEYWORDS["other_city"]):
        return Transition(state, [_prompt_for(state, Step.COLLECT_CITY, config)])

    city = " ".join(text.split())
    if len(city) < 2:
        return Transition(state, [_prompt_for(state, Step.COLLECT_CITY, config)])
    return Transition(state, effects=[ValidateCity(city, state.draft.subtotal, purpose="collect")])


def _on_collect_address(state, text, normalized, analysis, config) -> Transition:
    address = " ".join(text.split())
    if len(address) < 5:
        return Transition(state, [Reply("Pouvez-vous préciser votre adresse ? (quartier, rue, point de repère) 📍")])
    state.draft.customer.address = address

    if state.draft.customer.email:
        state.current_step = Step.ORDER_SUMMARY
        return Transition(state, [_summary_reply(state)])
    state.current_step = Step.COLLECT_EMAIL
    return Transition(state, [_prompt_for(state, Step.COLLECT_EMAIL, config)])


def _on_collect_email(state, text, normalized, analysis, config) -> Transition:
    email = parse_email(text)
    if email:
        state.draft.customer.email = email
    elif not matches_any(normalized, ROUTING_KEYWORDS["skip"]):
        return Transition(state, [Reply(
            "Cette adresse email ne semble pas valide 🤔 Vous pouvez la corriger ou passer cette étape.",
            tuple(CHOICES["email"]),
        )])
    state.current_step = Step.ORDER_SUMMARY
    return Transition(state, [_summary_reply(state)])


def _on_order_summary(state, text, normalized, analysis, config) -> Transition:
    if state.draft.is_submitted:
        state.current_step = Step.PAYMENT_METHOD
        return Transition(state, [_chain(
            f"Votre commande #{state.draft.order_id} est déjà enregistrée.",
            _prompt_for(state, Step.PAYMENT_METHOD, config),
        )])

    if matches_any(normalized, ROUTING_KEYWORDS["modify_quantity"]):
        state.current_step = Step.COLLECT_QUANTITY
        return Transition(state, [_prompt_for(state, Step.COLLECT_QUANTITY, config)])

    if matches_any(normalized, ROUTING_KEYWORDS["modify_details"]):
        country = state.draft.customer.country
        state.draft.customer = CustomerInfo(country=country)
        state.draft.clear_delivery()
        state.current_step = Step.COLLECT_NAME
        return Transition(state, [_chain("Pas de souci, reprenons vos informations.",
                                         _prompt_for(state, Step.COLLECT_NAME, config))])

    if matches_any(normalized, ROUTING_KEYWORDS["confirm"]):
        return Transition(state, effects=[SubmitOrder()])

    return Transition(state, [_summary_reply(state)])


def _on_payment_method(state, text, normalized, analysis, config) -> Transition:
    if not state.draft.is_submitted:
        state.current_step = Step.ORDER_SUMMARY
        return Transition(state, [_summary_reply(state)])

    provider = parse_payment_method(normalized)
    if provider is None:
        return Transition(state, [_prompt_for(state, Step.PAYMENT_METHOD, config)])
    state.draft.payment_method = provider
    return Transition(state, effects=[InitiatePayment(provider)])


def _on_payment_processing(state, text, normalized, analysis, config) -> Transition:
    provider = parse_payment_method(normalized)
    if provider is not None:
        state.draft.payment_method = provider
        return Transition(state, effects=[InitiatePayment(provider)])

    if matches_any(normalized, ROUTING_KEYWORDS["other_method"]):
        state.current_step = Step.PAYMENT_METHOD
        return Transition(state, [_prompt_for(state, Step.PAYMENT_METHOD, config)])

    return Transition(state, [Reply(
        "⏳ Nous attendons encore la confirmation de votre paiement. "
        "Je vous préviens ici dès qu'elle arrive.",
        tuple(CHOICES["payment_processing"]),
    )])


def _on_order_confirmed(state, text, normalized, analysis, config) -> Transition:
    if matches_any(normalized, ROUTING_KEYWORDS["new_order"]):
        # Keep who the customer is, forget what they bought
        customer = state.draft.customer.model_copy()
        state.draft = OrderDraft(customer=customer)
        state.current_step = Step.PRODUCT_ENGAGEMENT
        return Transition(state, [opening_reply(state)], signals=[("new_order_started", {})])

    return Transition(state, [Reply(
        f"Votre commande #{state.draft.order_id} est bien confirmée ✅ Puis-je vous aider pour autre chose ?",
        tuple(CHOICES["confirmed"]),
    )])


def _on_error_recovery(state, text, normalized, analysis, config) -> Transition:
    resume = state.resume_step or Step.INITIAL_ENGAGEMENT
    state.current_step = resume
    state.resume_step = None
    if matches_any(normalized, ROUTING_KEYWORDS["retry"]):
        return Transition(state, [_prompt_for(state, resume, config)])
    analysis = analyze_message(text, resume, state.buying_intent, config.thresholds)
    return _MESSAGE_HANDLERS[resume](state, text, normalized, analysis, config)


_MESSAGE_HANDLERS = {
    Step.INITIAL_ENGAGEMENT: _on_engagement,
    Step.PRODUCT_ENGAGEMENT: _on_engagement,
    Step.COLLECT_QUANTITY: _on_collect_quantity,
    Step.COLLECT_NAME: _on_collect_name,
    Step.COLLECT_PHONE: _on_collect_phone,
    Step.COLLECT_CITY: _on_collect_city,
    Step.COLLECT_ADDRESS: _on_collect_address,
    Step.COLLECT_EMAIL: _on_collect_email,
    Step.ORDER_SUMMARY: _on_order_summary,
    Step.PAYMENT_METHOD: _on_payment_method,
    Step.PAYMENT_PROCESSING: _on_payment_processing,
    Step.ORDER_CONFIRMED: _on_order_confirmed,
    Step.ERROR_RECOVERY: _on_error_recovery,
}


# ----------------------------------------------------------------------
# Effect results
# ----------------------------------------------------------------------

def _on_city_checked(state: ConversationSession, event: CityChecked, config: MachineConfig) -> Transition:
    validation = event.validation
    draft = state.draft

    if not validation.is_deliverable:
        state.pending_city = event.city
        draft.customer.city = None
        draft.clear_delivery()
        state.current_step = Step.COLLECT_CITY
        return Transition(
            state,
            [Reply(validation.message, tuple(CHOICES["city_declined"]))],
            signals=[("city_declined", {"city": event.city})],
        )

    state.pending_city = None
    draft.customer.city = validation.city or event.city
    draft.delivery_cost = validation.delivery_cost
    draft.delivery_zone = validation.zone_name
    draft.is_free_delivery = validation.is_free_delivery

    if event.purpose == "express":
        return Transition(state, [Reply(validation.message)], [SubmitOrder()])

    if event.purpose == "refresh":
        state.current_step = Step.ORDER_SUMMARY
        return Transition(state, [_summary_reply(state)])

    next_step = _next_missing_step(draft)
    state.current_step = next_step
    return Transition(state, [_chain(validation.message, _prompt_for(state, next_step, config))])


def _on_order_submitted(state: ConversationSession, event: OrderSubmitted) -> Transition:
    state.draft.order_id = event.order_id
    state.current_step = Step.PAYMENT_METHOD
    return Transition(
        state,
        [Reply(
            f"✅ Votre commande #{event.order_id} est enregistrée ! "
            f"Total à régler : {format_fcfa(state.draft.total)}. Comment souhaitez-vous payer ? 💳",
            tuple(CHOICES["payment"]),
        )],
        signals=[("order_submitted", {"order_id": event.order_id, "total": state.draft.total})],
    )


def _on_payment_started(state: ConversationSession, event: PaymentStarted) -> Transition:
    result = event.result
    draft = state.draft
    label = PAYMENT_CHOICE_LABELS.get(event.provider, event.provider)

    if not result.success:
        state.current_step = Step.PAYMENT_METHOD
        return Transition(
            state,
            [Reply(
                f"😔 Le paiement par {label} n'a pas pu être lancé : {result.error} "
                "Vous pouvez réessayer ou choisir un autre moyen de paiement.",
                tuple(CHOICES["payment"]),
            )],
            failed=True,
            signals=[("payment_failed", {"provider": event.provider})],
        )

    draft.payment_method = event.provider
    draft.transaction_id = result.transaction_id
    signal = ("payment_started", {"provider": event.provider, "transaction_id": result.transaction_id})

    if event.provider == "CASH":
        state.current_step = Step.ORDER_CONFIRMED
        return Transition(state, [Reply(
            f"🎉 C'est noté ! Vous réglerez {format_fcfa(draft.total)} à la livraison. "
            f"Votre commande #{draft.order_id} est confirmée, nous vous appellerons au "
            f"{draft.customer.phone} pour organiser la livraison.",
            tuple(CHOICES["confirmed"]),
        )], signals=[signal])

    state.current_step = Step.PAYMENT_PROCESSING
    lines = [f"Parfait ! Réglez {format_fcfa(draft.total)} avec {label} 👇"]
    if result.checkout_url:
        lines.append(result.checkout_url)
    if result.instructions:
        lines.append(result.instructions)
    lines.append("Je vous confirme ici dès que le paiement est reçu.")
    return Transition(state, [Reply("\n".join(lines), tuple(CHOICES["payment_processing"]))], signals=[signal])


def _on_payment_status(state: ConversationSession, event: PaymentStatusChanged) -> Transition:
    draft = state.draft
    if state.current_step == Step.ORDER_CONFIRMED:
        return Transition(state)
    # Only the attempt this draft is waiting on; older orders and superseded
    # transactions are ignored
    if draft.order_id is None or event.order_id != draft.order_id:
        return Transition(state)
    if event.transaction_id != draft.transaction_id:
        return Transition(state)

    if event.status == TransactionStatus.COMPLETED:
        state.current_step = Step.ORDER_CONFIRMED
        return Transition(state, [Reply(
            f"🎉 Paiement reçu ! Votre commande #{draft.order_id} est confirmée. Merci pour votre confiance 🙏",
            tuple(CHOICES["confirmed"]),
        )])

    if event.status in (TransactionStatus.FAILED, TransactionStatus.EXPIRED):
        state.current_step = Step.PAYMENT_METHOD
        reason = "a expiré ⌛" if event.status == TransactionStatus.EXPIRED else "n'a pas abouti 😔"
        return Transition(state, [Reply(
            f"Votre paiement {reason} Vous pouvez réessayer ou choisir un autre moyen de paiement.",
            tuple(CHOICES["payment"]),
        )])

    return Transition(state)


def _on_effect_failed(state: ConversationSession, event: EffectFailed) -> Transition:
    effect = event.effect
    if isinstance(effect, SubmitOrder):
        reply = Reply(
            "😔 Je n'ai pas pu enregistrer votre commande pour le moment. "
            "Vos informations sont conservées, vous pouvez réessayer.",
            tuple(CHOICES["retry_order"]),
        )
    elif isinstance(effect, InitiatePayment):
        reply = Reply(
            "😔 Le paiement n'a pas pu être lancé. Vous pouvez réessayer ou choisir un autre moyen de paiement.",
            tuple(CHOICES["payment"]),
        )
    elif isinstance(effect, ValidateCity):
        reply = Reply("Je n'arrive pas à vérifier cette ville pour le moment 😔 Pouvez-vous réessayer ?")
    else:
        return Transition(state, failed=True)
    return Transition(state, [reply], failed=True, signals=[("effect_failed", {"effect": type(effect).__name__})])


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def _cancel(state: ConversationSession) -> Transition:
    state.draft = OrderDraft()
    state.pending_city = None
    state.current_step = Step.PRODUCT_ENGAGEMENT
    return Transition(
        state,
        [Reply(
            "Pas de souci, j'ai annulé votre commande. Je reste disponible si vous avez des questions 🙂",
            tuple(CHOICES["engagement"]),
        )],
        signals=[("order_cancelled", {})],
    )


def _set_quantity(state: ConversationSession, quantity: int) -> None:
    product = state.product
    state.draft.items = [
        OrderItem(product_id=product.id, name=product.name, quantity=quantity, unit_price=product.price)
    ]


def _next_missing_step(draft: OrderDraft) -> ConversationStep:
    customer = draft.customer
    if not draft.items:
        return Step.COLLECT_QUANTITY
    if not customer.first_name:
        return Step.COLLECT_NAME
    if not customer.phone:
        return Step.COLLECT_PHONE
    if not customer.city or draft.delivery_zone is None:
        return Step.COLLECT_CITY
    if not customer.address:
        return Step.COLLECT_ADDRESS
    return Step.ORDER_SUMMARY


def _advance(state: ConversationSession, config: MachineConfig) -> Transition:
    state.current_step = _next_missing_step(state.draft)
    return Transition(state, [_prompt_for(state, state.current_step, config)])


def _chain(intro: str, reply: Reply) -> Reply:
    return Reply(f"{intro}\n\n{reply.text}", reply.choices, reply.enrichable)


def _prompt_for(state: ConversationSession, step: ConversationStep, config: MachineConfig) -> Reply:
    customer = state.draft.customer
    if step == Step.COLLECT_QUANTITY:
        return Reply(
            f"Combien d'exemplaires de {state.product.name} souhaitez-vous ? "
            f"(maximum {max_quantity(state, config)})"
        )
    if step == Step.COLLECT_NAME:
        return Reply("Quel est votre nom complet ? (prénom et nom)")
    if step == Step.COLLECT_PHONE:
        greeting = f"Merci {customer.first_name} ! " if customer.first_name else ""
        return Reply(f"{greeting}Quel est votre numéro de téléphone ? 📱")
    if step == Step.COLLECT_CITY:
        return Reply("Dans quelle ville souhaitez-vous être livré(e) ? 🏙️")
    if step == Step.COLLECT_ADDRESS:
        return Reply("Quelle est votre adresse de livraison ? (quartier, rue, point de repère) 📍")
    if step == Step.COLLECT_EMAIL:
        return Reply(
            "Souhaitez-vous recevoir la confirmation par email ? "
            "Indiquez votre adresse, ou passez cette étape.",
            tuple(CHOICES["email"]),
        )
    if step == Step.ORDER_SUMMARY:
        return _summary_reply(state)
    if step == Step.PAYMENT_METHOD:
        return Reply("Comment souhaitez-vous payer ? 💳", tuple(CHOICES["payment"]))
    if step == Step.PAYMENT_PROCESSING:
        return Reply("⏳ Votre paiement est en attente de confirmation.", tuple(CHOICES["payment_processing"]))
    if step == Step.ORDER_CONFIRMED:
        return Reply(f"Votre commande #{state.draft.order_id} est confirmée ✅", tuple(CHOICES["confirmed"]))
    return opening_reply(state)


def _summary_reply(state: ConversationSession) -> Reply:
    draft = state.draft
    customer = draft.customer
    lines = ["📋 Récapitulatif de votre commande :"]
    for item in draft.items:
        lines.append(f"• {item.quantity} x {item.name} : {format_fcfa(item.total_price)}")
    lines.append(f"Sous-total : {format_fcfa(draft.subtotal)}")
    delivery = "Gratuite" if draft.delivery_cost == 0 else format_fcfa(draft.delivery_cost)
    lines.append(f"Livraison ({customer.city}) : {delivery}")
    lines.append(f"Total : {format_fcfa(draft.total)}")
    lines.append("")
    lines.append(f"👤 {customer.full_name}, {customer.phone}")
    lines.append(f"📍 {customer.address}, {customer.city}")
    if customer.email:
        lines.append(f"✉️ {customer.email}")
    return Reply("\n".join(lines), tuple(CHOICES["summary"]))
