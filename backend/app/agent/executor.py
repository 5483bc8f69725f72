"""
Effect Executor - performs what the step machine asked for.

The step machine only describes work (ValidateCity, SubmitOrder, ...). This
is the one place where those descriptions become real calls to the zone
resolver, the order service, the payment gateway and analytics.

Each run() returns the result event to feed back into the machine, or None
when the effect has no follow-up. Exceptions propagate; the conversation
service turns them into EffectFailed.
"""
import logging
from typing import Optional

from app.agent.conversation_state import ConversationSession
from app.agent.step_machine import (
    CityChecked,
    Effect,
    Event,
    InitiatePayment,
    OrderSubmitted,
    PaymentStarted,
    RecordCityInterest,
    SubmitOrder,
    ValidateCity,
)
from app.core.exceptions import OrderNotFoundError, OrderValidationError
from app.payments.gateway import PaymentGateway
from app.schemas.payment import PaymentCustomer, PaymentRequest, PaymentResult
from app.services.analytics import ConversationAnalytics
from app.services.delivery_zones import DeliveryZoneResolver
from app.services.order_service import OrderService

logger = logging.getLogger(__name__)


class EffectExecutor:
    def __init__(
        self,
        resolver: DeliveryZoneResolver,
        orders: OrderService,
        gateway: PaymentGateway,
        analytics: Optional[ConversationAnalytics] = None,
        currency: str = "XOF",
    ):
        self.resolver = resolver
        self.orders = orders
        self.gateway = gateway
        self.analytics = analytics
        self.currency = currency

    async def run(self, session: ConversationSession, effect: Effect) -> Optional[Event]:
        logger.debug(f"[Executor] {session.session_id}: {type(effect).__name__}")

        if isinstance(effect, ValidateCity):
            validation = await self.resolver.validate_city(effect.city, effect.order_amount)
            return CityChecked(effect.city, validation, effect.purpose)

        if isinstance(effect, SubmitOrder):
            # Idempotent: a draft is turned into an order once
            if session.draft.is_submitted:
                logger.info(f"[Executor] {session.session_id} already has order {session.draft.order_id}")
                return OrderSubmitted(session.draft.order_id)
            order = await self.orders.submit_order(session)
            return OrderSubmitted(order["id"])

        if isinstance(effect, InitiatePayment):
            return await self._initiate_payment(session, effect)

        if isinstance(effect, RecordCityInterest):
            if self.analytics is not None:
                self.analytics.track(session.session_id, "city_interest", {
                    "city": effect.city,
                    "product_id": session.product.id,
                })
            logger.info(f"[Executor] City interest recorded for '{effect.city}'")
            return None

        raise TypeError(f"Unknown effect {effect!r}")

    async def _initiate_payment(self, session: ConversationSession, effect: InitiatePayment) -> PaymentStarted:
        draft = session.draft
        customer = draft.customer
        request = PaymentRequest(
            provider=effect.provider,
            amount=draft.total,
            currency=self.currency,
            order_id=draft.order_id,
            customer_info=PaymentCustomer(
                name=customer.full_name,
                phone=customer.phone,
                email=customer.email,
                city=customer.city,
                country=customer.country,
            ),
            metadata={"session_id": session.session_id, "product_id": session.product.id},
        )
        if self.analytics is not None:
            self.analytics.track(session.session_id, "payment_initiated", {
                "provider": effect.provider,
                "order_id": draft.order_id,
            })
        try:
            result = await self.gateway.initiate_payment(request)
        except (OrderNotFoundError, OrderValidationError) as e:
            logger.warning(f"[Executor] Payment refused for {session.session_id}: {e}")
            result = PaymentResult(success=False, error="Cette commande ne peut plus être payée.")
        return PaymentStarted(effect.provider, result)
