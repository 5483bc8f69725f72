"""
Conversation Service - runs one chat exchange end to end.

handle_message(session_id, text, client_step):
1. Take the session lock (one transition per session at a time)
2. Client retry? If (step, input) equals the last handled exchange and the
   session is still where that exchange left it, replay its replies. A
   client that sends no step is matched on the input alone
3. transition() the message, then run the requested effects and feed their
   results back in until nothing is left
4. Let the text generator rephrase product Q&A replies (optional)
5. Save the session (write-behind), append the transcript, track analytics

Nothing raised by a collaborator reaches the caller: effect failures become
EffectFailed events, anything unexpected moves the session to
error_recovery with a generic reply. The draft is never lost.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ai import build_sales_prompt, build_user_message, fallback
from app.agent.conversation_state import (
    ConversationSession,
    ConversationStep,
    ProcessedExchange,
    ProductSnapshot,
)
from app.agent.executor import EffectExecutor
from app.agent.session_store import SessionStore
from app.agent.step_machine import (
    DEFAULT_CONFIG,
    EffectFailed,
    Event,
    MachineConfig,
    PaymentStatusChanged,
    Reply,
    UserMessage,
    enter_error_recovery,
    opening_reply,
    transition,
)
from app.core.exceptions import ProductNotFoundError, SessionNotFoundError
from app.payments.currency import format_fcfa
from app.schemas.payment import TransactionStatus
from app.services.analytics import ConversationAnalytics
from app.services.order_adapter import normalize_step
from app.services.record_store import RecordStore
from app.services.text_utils import normalize_text

logger = logging.getLogger(__name__)

# Effects may chain (express checkout: ValidateCity -> SubmitOrder)
MAX_EFFECT_ROUNDS = 8
ENRICH_TIMEOUT_SECONDS = 6.0


@dataclass
class ChatOutcome:
    session: ConversationSession
    replies: List[Reply] = field(default_factory=list)
    replayed: bool = False


class ConversationService:
    def __init__(
        self,
        store: RecordStore,
        sessions: SessionStore,
        executor: EffectExecutor,
        analytics: Optional[ConversationAnalytics] = None,
        text_generator=None,
        config: MachineConfig = DEFAULT_CONFIG,
    ):
        self.store = store
        self.sessions = sessions
        self.executor = executor
        self.analytics = analytics
        self.text_generator = text_generator
        self.config = config

    async def start_session(self, product_id: str, store_id: str = "default") -> ChatOutcome:
        product = await self.store.select_one("products", {"id": product_id})
        if product is None:
            raise ProductNotFoundError(f"Product {product_id} not found")

        session = await self.sessions.create(
            ProductSnapshot(
                id=product["id"],
                name=product["name"],
                price=product["price"],
                stock=product["stock"],
            ),
            store_id,
        )
        reply = opening_reply(session)
        self.sessions.record_turn(session, "assistant", reply.text)
        await self.sessions.save(session)
        await self.sessions.append_transcript(session.session_id, "assistant", reply.text, reply.choices)
        self._track(session.session_id, "session_started", {"product_id": product_id, "store_id": store_id})
        return ChatOutcome(session, [reply])

    async def get_session(self, session_id: str) -> ConversationSession:
        session = await self.sessions.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def handle_message(
        self,
        session_id: str,
        text: str,
        client_step: Optional[str] = None,
    ) -> ChatOutcome:
        await self.get_session(session_id)

        async with self.sessions.lock(session_id):
            # Re-read: a concurrent exchange may have moved the session while we waited
            session = await self.get_session(session_id)
            normalized = normalize_text(text)
            last = session.last_exchange
            if client_step:
                step_key = normalize_step(client_step)
            else:
                # No step sent: a repeat of the last input retries that exchange
                step_key = last.step if last is not None else session.current_step

            if (
                last is not None
                and last.step == step_key
                and last.input == normalized
                and session.current_step == last.result_step
            ):
                logger.info(f"[Conversation] Replaying exchange for {session_id} at {step_key.value}")
                return ChatOutcome(session, [Reply(r["text"], tuple(r.get("choices", []))) for r in last.replies], True)

            previous_step = session.current_step
            try:
                state, replies, failed, signals = await self._run(session, UserMessage(text))
            except Exception as e:
                logger.error(f"[Conversation] Exchange failed for {session_id} at {previous_step.value}: {e}", exc_info=True)
                recovery = enter_error_recovery(session)
                state, replies, failed, signals = recovery.session, recovery.replies, True, []

            replies = await self._enrich(state, text, replies)

            self.sessions.record_turn(state, "customer", text)
            for reply in replies:
                self.sessions.record_turn(state, "assistant", reply.text)
            state.last_exchange = None if failed else ProcessedExchange(
                step=previous_step,
                input=normalized,
                result_step=state.current_step,
                replies=[reply.to_dict() for reply in replies],
            )
            await self.sessions.save(state)

        await self.sessions.append_transcript(session_id, "customer", text, details={"step": previous_step.value})
        for reply in replies:
            await self.sessions.append_transcript(session_id, "assistant", reply.text, reply.choices)

        self._track(session_id, "message_received", {"step": previous_step.value, "buying_intent": state.buying_intent})
        if state.current_step != previous_step:
            self._track(session_id, "step_changed", {"from": previous_step.value, "to": state.current_step.value})
        for event_type, data in signals:
            self._track(session_id, event_type, data)

        return ChatOutcome(state, replies)

    async def apply_payment_update(self, order_id: int, transaction_id: str, status: TransactionStatus) -> None:
        """Reconciler hook: tell the open conversation how the payment ended."""
        session = await self.sessions.find_by_order(order_id)
        if session is None:
            logger.info(f"[Conversation] No chat session for order {order_id}")
            return

        session_id = session.session_id
        async with self.sessions.lock(session_id):
            session = self.sessions.get(session_id) or session
            result = transition(session, PaymentStatusChanged(status, transaction_id, order_id), self.config)
            if not result.replies:
                return
            state = result.session
            for reply in result.replies:
                self.sessions.record_turn(state, "assistant", reply.text)
            state.last_exchange = None
            await self.sessions.save(state)

        for reply in result.replies:
            await self.sessions.append_transcript(
                session_id, "assistant", reply.text, reply.choices,
                details={"source": "payment_update", "status": status.value, "transaction_id": transaction_id},
            )
        if state.current_step != session.current_step:
            self._track(session_id, "step_changed", {
                "from": session.current_step.value,
                "to": state.current_step.value,
                "source": "payment_update",
            })

    def cleanup_inactive(self) -> int:
        return self.sessions.cleanup_inactive()

    # ------------------------------------------------------------------

    async def _run(
        self,
        session: ConversationSession,
        event: Event,
    ) -> Tuple[ConversationSession, List[Reply], bool, list]:
        result = transition(session, event, self.config)
        state = result.session
        replies = list(result.replies)
        failed = result.failed
        signals = list(result.signals)
        pending = list(result.effects)

        rounds = 0
        while pending:
            rounds += 1
            if rounds > MAX_EFFECT_ROUNDS:
                raise RuntimeError(f"Effect chain too long for {session.session_id}")
            effect = pending.pop(0)
            try:
                follow_up = await self.executor.run(state, effect)
            except Exception as e:
                if not effect.blocking:
                    logger.warning(f"[Conversation] {type(effect).__name__} failed for {session.session_id}: {e}")
                    continue
                logger.error(f"[Conversation] {type(effect).__name__} failed for {session.session_id}: {e}", exc_info=True)
                follow_up = EffectFailed(effect, str(e))
            if follow_up is None:
                continue

            result = transition(state, follow_up, self.config)
            state = result.session
            replies.extend(result.replies)
            pending.extend(result.effects)
            failed = failed or result.failed
            signals.extend(result.signals)

        return state, replies, failed, signals

    async def _enrich(self, session: ConversationSession, customer_message: str, replies: List[Reply]) -> List[Reply]:
        if self.text_generator is None or not any(reply.enrichable for reply in replies):
            return replies
        if session.current_step != ConversationStep.PRODUCT_ENGAGEMENT:
            return replies

        system_prompt = build_sales_prompt(
            fallback.ASSISTANT_NAME,
            session.product.name,
            format_fcfa(session.product.price),
            session.concerns,
            session.topics,
        )
        enriched = []
        for reply in replies:
            if not reply.enrichable:
                enriched.append(reply)
                continue
            try:
                text = await asyncio.wait_for(
                    self.text_generator.complete(system_prompt, build_user_message(customer_message, reply.text)),
                    timeout=ENRICH_TIMEOUT_SECONDS,
                )
            except Exception as e:
                logger.warning(f"[Conversation] Text generation failed, using canned reply: {e}")
                text = None
            enriched.append(Reply(text, reply.choices) if text else reply)
        return enriched

    def _track(self, session_id: str, event_type: str, data: dict) -> None:
        if self.analytics is not None:
            self.analytics.track(session_id, event_type, data)
