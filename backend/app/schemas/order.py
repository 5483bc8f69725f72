"""Canonical order shapes.

OrderDraft is accreted by the chat step machine; subtotal and total are
derived on every read so `total == subtotal + delivery_cost` cannot drift.
Legacy field names are mapped onto these models in
app/services/order_adapter.py, never here.
"""
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAYMENT_PENDING = "PAYMENT_PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class OrderItem(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)

    @computed_field
    @property
    def total_price(self) -> float:
        return round(self.unit_price * self.quantity, 2)


class CustomerInfo(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    city: Optional[str] = None
    address: Optional[str] = None
    country: str = "SN"

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def is_complete(self) -> bool:
        """Email is optional; everything else is needed to ship."""
        return all((self.first_name, self.phone, self.city, self.address))


class OrderDraft(BaseModel):
    items: List[OrderItem] = Field(default_factory=list)
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    delivery_cost: float = 0.0
    delivery_zone: Optional[str] = None
    is_free_delivery: bool = False
    order_id: Optional[int] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None

    @computed_field
    @property
    def subtotal(self) -> float:
        return round(sum(item.total_price for item in self.items), 2)

    @computed_field
    @property
    def total(self) -> float:
        return round(self.subtotal + self.delivery_cost, 2)

    @property
    def quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def is_submitted(self) -> bool:
        return self.order_id is not None

    def clear_delivery(self) -> None:
        """Forget the resolved fee; it must be resolved again for the current city."""
        self.delivery_cost = 0.0
        self.delivery_zone = None
        self.is_free_delivery = False


class OrderResponse(BaseModel):
    id: int
    session_id: Optional[str] = None
    items: list
    first_name: str
    last_name: Optional[str] = None
    phone: str
    email: Optional[str] = None
    city: str
    address: str
    subtotal: float
    delivery_cost: float
    total_amount: float
    currency: str
    status: str
    payment_method: Optional[str] = None
    payment_status: Optional[str] = None
    created_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    @field_validator("subtotal", "delivery_cost", "total_amount", mode="before")
    @classmethod
    def decimal_to_float(cls, v):
        if isinstance(v, Decimal):
            return float(v)
        return v

    class Config:
        from_attributes = True
