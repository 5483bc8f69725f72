"""
Provider callbacks.

The raw body is passed through untouched: Stripe signs the exact bytes.
Status codes tell the provider what to do next: 2xx stops retries, 401 and
400 mean the call will never succeed, 5xx asks for a retry.
"""
import logging

from fastapi import APIRouter, Depends, Request

from app.api.deps import get_services
from app.core.exceptions import (
    BusinessError,
    UnknownProviderError,
    WebhookPayloadError,
    WebhookSignatureError,
)
from app.services.container import Services

logger = logging.getLogger(__name__)
router = APIRouter()

SIGNATURE_HEADERS = {
    "stripe": "stripe-signature",
    "bictorys": "x-secret-key",
}


@router.post("/{provider}")
async def receive_webhook(provider: str, request: Request, services: Services = Depends(get_services)):
    payload = await request.body()
    signature = request.headers.get(SIGNATURE_HEADERS.get(provider.lower(), ""))

    try:
        outcome = await services.reconciler.handle_webhook(provider, payload, signature)
    except UnknownProviderError:
        raise BusinessError.not_found("Webhook route", f"provider={provider}")
    except WebhookSignatureError:
        raise BusinessError.unauthorized(f"{provider} webhook signature")
    except WebhookPayloadError as e:
        raise BusinessError.bad_request(str(e))
    except Exception as e:
        raise BusinessError.server_error(e)

    logger.info(f"[Webhook] {provider}: {outcome}")
    return {"received": True}
