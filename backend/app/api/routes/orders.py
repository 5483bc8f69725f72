"""Back-office order endpoints (admin key required)."""
from fastapi import APIRouter, Depends

from app.api.deps import get_services, require_admin
from app.core.exceptions import BusinessError, OrderNotFoundError, OrderValidationError
from app.schemas.order import OrderResponse
from app.services.container import Services

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: int, services: Services = Depends(get_services)):
    order = await services.orders.get_order(order_id)
    if order is None:
        raise BusinessError.not_found("Order", f"id={order_id}")
    return order


@router.post("/{order_id}/confirm-cash-payment")
async def confirm_cash_payment(order_id: int, services: Services = Depends(get_services)):
    """Courier collected the cash: completes the pending CASH transaction."""
    try:
        outcome = await services.reconciler.confirm_cash_payment(order_id)
    except OrderNotFoundError:
        raise BusinessError.not_found("Order", f"id={order_id}")
    except OrderValidationError as e:
        raise BusinessError.bad_request(str(e))
    if outcome == "duplicate":
        raise BusinessError.conflict("Order already paid")
    return {"order_id": order_id, "outcome": outcome}
