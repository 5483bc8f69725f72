from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func
from app.db.base import Base


class Notification(Base):
    """Email outbox. One row per (order, type); delivered by the maintenance loop."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, nullable=False, index=True)
    type = Column(String(32), nullable=False)  # ORDER_CREATED | PAYMENT_RECEIVED | ORDER_SHIPPED | ORDER_DELIVERED
    channel = Column(String(16), nullable=False, default="email")
    recipient = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String(16), nullable=False, default="PENDING")  # PENDING | SENT | FAILED
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)
