"""
Chat endpoints for the storefront widget.

A session is opened for one product; every customer message returns the
assistant replies and the step the conversation is now at. Clients should
send the step they were answering so a retried request replays instead of
acting twice.
"""
import logging

from fastapi import APIRouter, Depends

from app.agent.conversation_service import ChatOutcome
from app.api.deps import get_services
from app.core.exceptions import BusinessError, ProductNotFoundError, SessionNotFoundError
from app.schemas.chat import (
    ChatMessageRequest,
    ChatReplyOut,
    ChatResponse,
    SessionStateResponse,
    StartSessionRequest,
)
from app.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter()


def _response(outcome: ChatOutcome) -> dict:
    session = outcome.session
    return ChatResponse(
        session_id=session.session_id,
        step=session.current_step.value,
        replies=[ChatReplyOut(text=r.text, choices=list(r.choices)) for r in outcome.replies],
        order_id=session.draft.order_id,
        transaction_id=session.draft.transaction_id,
        buying_intent=session.buying_intent,
        replayed=outcome.replayed,
    ).model_dump(by_alias=True)


@router.post("/sessions")
async def start_session(body: StartSessionRequest, services: Services = Depends(get_services)):
    try:
        outcome = await services.conversations.start_session(body.product_id, body.store_id)
    except ProductNotFoundError as e:
        raise BusinessError.not_found("Product", str(e))
    return _response(outcome)


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    body: ChatMessageRequest,
    services: Services = Depends(get_services),
):
    try:
        outcome = await services.conversations.handle_message(session_id, body.message, body.step)
    except SessionNotFoundError:
        raise BusinessError.not_found("Session", f"id={session_id}")
    return _response(outcome)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, services: Services = Depends(get_services)):
    """Current step and draft, used by the widget to restore after a reload."""
    try:
        session = await services.conversations.get_session(session_id)
    except SessionNotFoundError:
        raise BusinessError.not_found("Session", f"id={session_id}")
    return SessionStateResponse(
        session_id=session.session_id,
        step=session.current_step.value,
        product_id=session.product.id,
        buying_intent=session.buying_intent,
        concerns=session.concerns,
        topics=session.topics,
        draft=session.draft.model_dump(mode="json"),
    ).model_dump(by_alias=True)
