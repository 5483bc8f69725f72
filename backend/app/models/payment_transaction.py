"""
PaymentTransaction: one payment attempt for an order.

Status flow: PENDING -> COMPLETED | FAILED | EXPIRED (terminal, never left).
At most one PENDING row per order; a new attempt expires the previous one.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(String(36), primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String(32), nullable=False)  # STRIPE | WAVE | ORANGE_MONEY | CASH
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(8), nullable=False, default="XOF")
    status = Column(String(16), nullable=False, default="PENDING")
    reference = Column(String(255), nullable=True, index=True)  # provider-side id
    details = Column(JSON, nullable=True)  # metadata: customer info, checkout url, errors
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
