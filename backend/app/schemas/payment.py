"""Payment shapes shared by the gateway, the provider adapters and the API."""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


class PaymentProvider(str, Enum):
    STRIPE = "STRIPE"
    WAVE = "WAVE"
    ORANGE_MONEY = "ORANGE_MONEY"
    CASH = "CASH"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self is not TransactionStatus.PENDING


class PaymentCustomer(BaseModel):
    name: str
    phone: str
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    country: str = "SN"


class PaymentRequest(BaseModel):
    """Input of PaymentGateway.initiate_payment. Accepts camelCase from the web client."""
    provider: PaymentProvider = Field(alias="paymentMethod")
    amount: float
    currency: str = "XOF"
    order_id: int = Field(alias="orderId")
    customer_info: PaymentCustomer = Field(alias="customerInfo")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        if isinstance(v, str):
            return v.strip().upper().replace(" ", "_")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.strip().upper()

    class Config:
        populate_by_name = True


class PaymentResult(BaseModel):
    """Normalized outcome of an initiation. `error` is always user-safe."""
    success: bool
    transaction_id: Optional[str] = Field(default=None, serialization_alias="transactionId")
    checkout_url: Optional[str] = Field(default=None, serialization_alias="checkoutUrl")
    qr_code: Optional[str] = Field(default=None, serialization_alias="qrCode")
    instructions: Optional[str] = None
    error: Optional[str] = None


class ProviderCheckout(BaseModel):
    """What an adapter returns after a successful provider call."""
    reference: str
    checkout_url: Optional[str] = None
    qr_code: Optional[str] = None
    instructions: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class WebhookNotice(BaseModel):
    """Provider callback reduced to what the reconciler needs."""
    reference: Optional[str] = None
    status: TransactionStatus
    amount: Optional[float] = None
    transaction_id: Optional[str] = None
    order_id: Optional[int] = None
    event_type: Optional[str] = None


class ManualVerification(BaseModel):
    status: TransactionStatus
    note: Optional[str] = None


class TransactionResponse(BaseModel):
    id: str
    order_id: int
    provider: str
    amount: float
    currency: str
    status: str
    reference: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
