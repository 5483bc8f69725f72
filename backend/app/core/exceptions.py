"""
Secure exception handling to prevent information leakage.

SECURITY PRINCIPLE: Don't expose internal details to users.
Use generic error messages externally, detailed logging internally.

Two families live here:
- BusinessError: HTTPException factories used by the routes
- CheckoutError and subclasses: domain errors raised by services and
  translated at the HTTP / chat boundary
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404 that doesn't confirm resource existence.

        Example:
            if not order:
                raise BusinessError.not_found("Order", f"id={order_id}")
        """
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")

        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found",
        )

    @staticmethod
    def unauthorized(reason: str = "") -> HTTPException:
        """Generic 401 for all authentication failures."""
        logger.warning(f"Unauthorized access attempt: {reason}")
        return HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )

    @staticmethod
    def bad_request(detail: str) -> HTTPException:
        """
        400 for input validation / business logic errors.

        OK to include specific details here since user caused the issue.
        Examples: "Order already paid", "Unsupported provider"
        """
        logger.info(f"Bad request: {detail}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    @staticmethod
    def conflict(detail: str) -> HTTPException:
        """409 for resource conflicts, e.g. a transaction already in a terminal state."""
        logger.info(f"Conflict: {detail}")
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
        )

    @staticmethod
    def server_error(original_error: Exception = None) -> HTTPException:
        """
        Generic 500 - logs actual error internally, hides from user.

        Webhook routes rely on this: a 5xx tells the provider to retry.
        """
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {str(original_error)}",
                exc_info=original_error
            )
        else:
            logger.error("Internal server error occurred", exc_info=True)

        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )

    @staticmethod
    def rate_limit_exceeded(detail: str = "Too many requests") -> HTTPException:
        """429 - Too many requests (rate limiting)."""
        logger.warning(f"Rate limit exceeded: {detail}")
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
        )


class CheckoutError(Exception):
    """Base class for checkout domain errors."""


class StoreError(CheckoutError):
    """The persistent store rejected or failed an operation."""


class ProviderError(CheckoutError):
    """
    A payment provider call failed.

    `user_message` is safe to show in the chat; `detail` is for logs only.
    """

    def __init__(self, user_message: str, detail: str = ""):
        super().__init__(detail or user_message)
        self.user_message = user_message
        self.detail = detail


class WebhookSignatureError(CheckoutError):
    """Callback authenticity check failed. No state may change."""


class WebhookPayloadError(CheckoutError):
    """Callback payload is missing required fields."""


class UnknownProviderError(CheckoutError):
    """No adapter is registered for the requested provider."""


class SessionNotFoundError(CheckoutError):
    """No chat session exists for the given id."""


class OrderValidationError(CheckoutError):
    """The order draft is incomplete or inconsistent and cannot be submitted."""


class NotificationError(CheckoutError):
    """An email could not be handed to the delivery provider."""


class OrderNotFoundError(CheckoutError):
    """No order row exists for the given id."""


class ProductNotFoundError(CheckoutError):
    """A chat was opened for a product that does not exist."""
