"""
DeliveryZone: a named group of cities sharing one delivery fee policy.

Configured by store operators. Read through the cached resolver in
app/services/delivery_zones.py, never queried directly by the chat.
"""
from sqlalchemy import Boolean, Column, DateTime, Numeric, String
from sqlalchemy.sql import func
from sqlalchemy.types import JSON
from app.db.base import Base


class DeliveryZone(Base):
    __tablename__ = "delivery_zones"

    id = Column(String(64), primary_key=True, index=True)
    name = Column(String(128), nullable=False)
    cities = Column(JSON, nullable=False, default=list)  # accepted spellings
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    free_delivery_threshold = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
