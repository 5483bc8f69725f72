"""
Payment Gateway - routes a payment to its provider adapter.

Flow for one initiation (per-order lock held throughout):
1. Validate amount and provider, load the order (must exist, must not be PAID)
2. Supersede: every PENDING transaction of the order becomes EXPIRED
3. Record the new transaction as PENDING (before any external call, so an
   early webhook always finds its row)
4. Call the adapter with a bounded timeout
5. Success: store reference / checkout data, move the order to
   PAYMENT_PENDING (CONFIRMED for cash)
   Failure: mark the transaction FAILED, return a user-safe error

At most one PENDING transaction exists per order at any time. Errors never
escape as exceptions except "order missing" and "order already paid", which
the HTTP layer turns into 404 / 400.
"""
import asyncio
import logging
import time
import uuid
from datetime import datetime
from typing import Dict, Optional

from app.core.audit import AuditLog
from app.core.exceptions import (
    OrderNotFoundError,
    OrderValidationError,
    ProviderError,
    StoreError,
    UnknownProviderError,
)
from app.payments.currency import MAX_PAYMENT_AMOUNT, format_fcfa, is_valid_amount
from app.payments.locks import KeyedLocks
from app.payments.providers.base import PaymentProviderAdapter
from app.schemas.order import OrderStatus
from app.schemas.payment import PaymentProvider, PaymentRequest, PaymentResult, TransactionStatus
from app.services.record_store import RecordStore

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Le paiement n'a pas pu être lancé. Réessayez ou choisissez un autre moyen de paiement."
TIMEOUT_FAILURE = "Le service de paiement ne répond pas. Réessayez dans un instant ou choisissez un autre moyen de paiement."


def transaction_reference(order_id: int) -> str:
    return f"tr_{int(time.time() * 1000)}_{order_id}"


class PaymentGateway:
    def __init__(
        self,
        store: RecordStore,
        adapters: Dict[PaymentProvider, PaymentProviderAdapter],
        timeout_seconds: float = 15.0,
    ):
        self.store = store
        self.adapters = adapters
        self.timeout_seconds = timeout_seconds
        self._order_locks = KeyedLocks()

    def adapter_for(self, provider) -> PaymentProviderAdapter:
        try:
            return self.adapters[PaymentProvider(provider)]
        except (ValueError, KeyError):
            raise UnknownProviderError(f"No adapter for provider {provider}") from None

    async def initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        provider = request.provider
        adapter = self.adapter_for(provider)

        order = await self.store.select_one("orders", {"id": request.order_id})
        if order is None:
            raise OrderNotFoundError(f"Order {request.order_id} not found")
        if order["status"] == OrderStatus.PAID.value:
            raise OrderValidationError(f"Order {request.order_id} is already paid")

        # The order total is authoritative, never the client's figure
        amount = float(order["total_amount"])
        if abs(amount - request.amount) > 0.01:
            logger.warning(
                f"[PaymentGateway] Order {request.order_id}: requested {request.amount} "
                f"but order total is {amount}, charging the order total"
            )
        if not is_valid_amount(amount):
            return PaymentResult(
                success=False,
                error=f"Montant invalide : il doit être compris entre 1 et {format_fcfa(MAX_PAYMENT_AMOUNT)}.",
            )
        request = request.model_copy(update={"amount": amount})

        async with self._order_locks.hold(request.order_id):
            transaction_id = str(uuid.uuid4())
            try:
                await self._supersede_pending(request.order_id, transaction_id)
                transaction = await self.store.insert(
                    "payment_transactions",
                    {
                        "id": transaction_id,
                        "order_id": request.order_id,
                        "provider": provider.value,
                        "amount": amount,
                        "currency": request.currency,
                        "status": TransactionStatus.PENDING.value,
                        "reference": transaction_reference(request.order_id),
                        "details": {
                            "customer_info": request.customer_info.model_dump(),
                            "metadata": request.metadata,
                            "initiated_at": datetime.utcnow().isoformat(),
                        },
                    },
                )
            except StoreError as e:
                logger.error(f"[PaymentGateway] Could not record transaction for order {request.order_id}: {e}")
                return PaymentResult(success=False, error=GENERIC_FAILURE)

            try:
                checkout = await asyncio.wait_for(
                    adapter.initiate(request, transaction), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                logger.error(
                    f"[PaymentGateway] {provider.value} timed out after {self.timeout_seconds}s "
                    f"for order {request.order_id}"
                )
                return await self._fail(transaction, TIMEOUT_FAILURE, "timeout")
            except ProviderError as e:
                logger.error(f"[PaymentGateway] {provider.value} failed for order {request.order_id}: {e.detail}")
                return await self._fail(transaction, e.user_message, e.detail)
            except Exception as e:
                logger.error(
                    f"[PaymentGateway] Unexpected {provider.value} error for order {request.order_id}: {e}",
                    exc_info=True,
                )
                return await self._fail(transaction, GENERIC_FAILURE, f"{type(e).__name__}: {e}")

            details = {
                **(transaction.get("details") or {}),
                **checkout.raw,
                "checkout_url": checkout.checkout_url,
                "has_qr_code": checkout.qr_code is not None,
            }
            try:
                await self.store.update(
                    "payment_transactions",
                    {"id": transaction_id},
                    {"reference": checkout.reference, "details": details},
                )
                order_status = OrderStatus.CONFIRMED if provider == PaymentProvider.CASH else OrderStatus.PAYMENT_PENDING
                await self.store.update(
                    "orders",
                    {"id": request.order_id},
                    {
                        "status": order_status.value,
                        "payment_method": provider.value,
                        "payment_status": TransactionStatus.PENDING.value,
                    },
                )
            except StoreError as e:
                # The provider already has the charge; the webhook can still match on transactionId
                logger.error(f"[PaymentGateway] Post-initiation update failed for {transaction_id}: {e}")

        AuditLog.log_payment_initiated(
            request.order_id, transaction_id, provider.value, amount, request.currency, True,
            phone=request.customer_info.phone,
        )
        logger.info(f"[PaymentGateway] {provider.value} payment {transaction_id} started for order {request.order_id}")
        return PaymentResult(
            success=True,
            transaction_id=transaction_id,
            checkout_url=checkout.checkout_url,
            qr_code=checkout.qr_code,
            instructions=checkout.instructions,
        )

    async def get_status(
        self,
        transaction_id: Optional[str] = None,
        order_id: Optional[int] = None,
    ) -> Optional[dict]:
        """Transaction by id, or the latest transaction of an order."""
        if transaction_id:
            return await self.store.select_one("payment_transactions", {"id": transaction_id})
        if order_id is not None:
            rows = await self.store.select(
                "payment_transactions", {"order_id": order_id},
                order_by="created_at", descending=True, limit=1,
            )
            return rows[0] if rows else None
        return None

    async def _supersede_pending(self, order_id: int, new_transaction_id: str) -> None:
        pending = await self.store.select(
            "payment_transactions",
            {"order_id": order_id, "status": TransactionStatus.PENDING.value},
        )
        for row in pending:
            updated = await self.store.update(
                "payment_transactions",
                {"id": row["id"], "status": TransactionStatus.PENDING.value},
                {
                    "status": TransactionStatus.EXPIRED.value,
                    "details": {**(row.get("details") or {}), "superseded_by": new_transaction_id},
                },
            )
            if updated is not None:
                AuditLog.log_transaction_status(
                    row["id"], order_id, TransactionStatus.PENDING.value,
                    TransactionStatus.EXPIRED.value, "gateway:superseded",
                )
                logger.info(f"[PaymentGateway] Transaction {row['id']} superseded by {new_transaction_id}")

    async def _fail(self, transaction: dict, user_message: str, detail: str) -> PaymentResult:
        try:
            await self.store.update(
                "payment_transactions",
                {"id": transaction["id"], "status": TransactionStatus.PENDING.value},
                {
                    "status": TransactionStatus.FAILED.value,
                    "details": {**(transaction.get("details") or {}), "error": detail},
                },
            )
        except StoreError as e:
            logger.error(f"[PaymentGateway] Could not mark {transaction['id']} FAILED: {e}")
        AuditLog.log_payment_initiated(
            transaction["order_id"], transaction["id"], transaction["provider"],
            float(transaction["amount"]), transaction["currency"], False, reason=detail,
        )
        return PaymentResult(success=False, error=user_message)
