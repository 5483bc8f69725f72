"""
Payment endpoints.

POST /payments/initiate is also reachable outside the chat (a "pay again"
link). The amount charged is always the order total; the client value is
only checked for range.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_services, require_admin
from app.core.exceptions import (
    BusinessError,
    OrderNotFoundError,
    OrderValidationError,
    UnknownProviderError,
)
from app.schemas.payment import ManualVerification, PaymentRequest, TransactionResponse
from app.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/initiate")
async def initiate_payment(body: PaymentRequest, services: Services = Depends(get_services)):
    try:
        result = await services.gateway.initiate_payment(body)
    except OrderNotFoundError:
        raise BusinessError.not_found("Order", f"id={body.order_id}")
    except OrderValidationError as e:
        raise BusinessError.bad_request(str(e))
    except UnknownProviderError:
        raise BusinessError.bad_request("Unsupported payment method")
    return result.model_dump(by_alias=True)


@router.get("/status", response_model=TransactionResponse)
async def payment_status(
    transaction_id: Optional[str] = Query(None, alias="transactionId"),
    order_id: Optional[int] = Query(None, alias="orderId"),
    services: Services = Depends(get_services),
):
    if not transaction_id and order_id is None:
        raise BusinessError.bad_request("transactionId or orderId is required")
    transaction = await services.gateway.get_status(transaction_id, order_id)
    if transaction is None:
        raise BusinessError.not_found("Transaction", f"id={transaction_id} order={order_id}")
    return transaction


@router.post("/transactions/{transaction_id}/verify", dependencies=[Depends(require_admin)])
async def verify_transaction(
    transaction_id: str,
    body: ManualVerification,
    services: Services = Depends(get_services),
):
    """Back-office override for a transaction no webhook resolved."""
    if not body.status.is_terminal:
        raise BusinessError.bad_request("Status must be COMPLETED, FAILED or EXPIRED")
    outcome = await services.reconciler.verify_transaction(transaction_id, body.status, body.note)
    if outcome == "unknown_transaction":
        raise BusinessError.not_found("Transaction", f"id={transaction_id}")
    if outcome == "duplicate":
        raise BusinessError.conflict("Transaction already resolved")
    return {"transaction_id": transaction_id, "status": body.status.value, "outcome": outcome}
