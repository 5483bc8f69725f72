"""
Conversation - durable copy of a chat checkout session.

The in-memory session (app/agent/session_store.py) is authoritative while
the customer is chatting; this row is written behind it and is never
hard-deleted, so it stays available for analytics.
"""
from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class Conversation(Base):
    """
    Schema:
        session_id: opaque chat session identifier (unique)
        current_step: step machine state (e.g. "collect_city")
        payload: JSON snapshot of the session (draft, recent messages, concerns, ...)
        buying_intent: running max of the intent score, copied out for querying
    """
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), unique=True, nullable=False, index=True)
    product_id = Column(String(64), nullable=True, index=True)
    store_id = Column(String(64), nullable=True)
    current_step = Column(String(64), nullable=False, default="initial_engagement")
    buying_intent = Column(Float, nullable=False, default=0.0)
    message_count = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=True, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Conversation session_id={self.session_id} step={self.current_step}>"


class ConversationMessage(Base):
    """Full transcript line. The session itself only keeps a short window."""
    __tablename__ = "conversation_messages"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), nullable=False, index=True)
    sender = Column(String(16), nullable=False)  # customer | assistant | system
    content = Column(Text, nullable=False)
    choices = Column(JSON, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ConversationEvent(Base):
    """Analytics event (step changes, express checkout, city interest, ...)."""
    __tablename__ = "conversation_events"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), nullable=False, index=True)
    event_type = Column(String(64), nullable=False, index=True)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
