from typing import List, Optional

from pydantic import BaseModel, Field


class StartSessionRequest(BaseModel):
    product_id: str = Field(alias="productId")
    store_id: str = Field(default="default", alias="storeId")

    class Config:
        populate_by_name = True


class ChatMessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=2000)
    # Step the client believed it was answering; used to recognise retries
    step: Optional[str] = None


class ChatReplyOut(BaseModel):
    text: str
    choices: List[str] = Field(default_factory=list)


class ChatResponse(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    step: str
    replies: List[ChatReplyOut]
    order_id: Optional[int] = Field(default=None, serialization_alias="orderId")
    transaction_id: Optional[str] = Field(default=None, serialization_alias="transactionId")
    buying_intent: float = Field(default=0.0, serialization_alias="buyingIntent")
    replayed: bool = False


class SessionStateResponse(BaseModel):
    session_id: str = Field(serialization_alias="sessionId")
    step: str
    product_id: str = Field(serialization_alias="productId")
    buying_intent: float = Field(serialization_alias="buyingIntent")
    concerns: List[str]
    topics: List[str]
    draft: dict
