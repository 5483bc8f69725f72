"""
Order: a submitted OrderDraft. Immutable content once created; only the
status fields move afterwards.

Status flow: PENDING -> PAYMENT_PENDING -> PAID
             PENDING -> CONFIRMED (cash on delivery) -> PAID (cash collected)
"""
from sqlalchemy import Column, DateTime, Integer, Numeric, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(128), nullable=True, index=True)
    store_id = Column(String(64), nullable=True)
    items = Column(JSON, nullable=False, default=list)
    first_name = Column(String(128), nullable=False)
    last_name = Column(String(128), nullable=True)
    phone = Column(String(32), nullable=False)
    email = Column(String(255), nullable=True)
    city = Column(String(128), nullable=False)
    address = Column(String(512), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    delivery_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False)  # subtotal + delivery_cost
    currency = Column(String(8), nullable=False, default="XOF")
    status = Column(String(32), nullable=False, default="PENDING")
    payment_method = Column(String(32), nullable=True)
    payment_status = Column(String(32), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
