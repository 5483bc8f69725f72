"""
Audit logging for money-moving operations.

Every payment initiation, webhook delivery, transaction status change and
admin action goes through here as one JSON line on the "audit" logger.

LOGGING SENSITIVE DATA: provider secrets, signatures and full webhook bodies
are never logged; phone numbers are masked.
"""
import logging
import json
from datetime import datetime
from typing import Any, Optional, Dict

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def mask_phone(phone: Optional[str]) -> Optional[str]:
    """+221771234567 -> +2217712***67"""
    if not phone or len(phone) < 6:
        return phone
    return phone[:-5] + "***" + phone[-2:]


def _emit(entry: Dict[str, Any], level: int = logging.INFO) -> None:
    entry.setdefault("timestamp", datetime.utcnow().isoformat())
    audit_logger.log(level, json.dumps(entry, default=str))


class AuditLog:
    """Central audit logging for payment events."""

    @staticmethod
    def log_payment_initiated(
        order_id: int,
        transaction_id: str,
        provider: str,
        amount: float,
        currency: str,
        success: bool,
        reason: str = "",
        phone: Optional[str] = None,
    ):
        """
        Usage:
            AuditLog.log_payment_initiated(42, "5f0c...", "WAVE", 25000, "XOF", True)
        """
        entry = {
            "event_type": "payment.initiated",
            "order_id": order_id,
            "transaction_id": transaction_id,
            "provider": provider,
            "amount": amount,
            "currency": currency,
            "success": success,
        }
        if phone:
            entry["customer_phone"] = mask_phone(phone)
        if reason and not success:
            entry["reason"] = reason
        _emit(entry, logging.INFO if success else logging.WARNING)

    @staticmethod
    def log_transaction_status(
        transaction_id: str,
        order_id: int,
        old_status: str,
        new_status: str,
        source: str,  # "webhook:stripe", "admin", "gateway"
    ):
        _emit({
            "event_type": "payment.status_changed",
            "transaction_id": transaction_id,
            "order_id": order_id,
            "old_status": old_status,
            "new_status": new_status,
            "source": source,
        })

    @staticmethod
    def log_webhook(
        provider: str,
        outcome: str,  # "applied", "duplicate", "ignored", "unknown_transaction", "rejected"
        reference: Optional[str] = None,
        reason: str = "",
    ):
        """
        SECURITY: rejected deliveries (bad signature) are logged at WARNING
        so repeated forgeries stand out.
        """
        entry = {
            "event_type": f"webhook.{outcome}",
            "provider": provider,
            "reference": reference,
        }
        if reason:
            entry["reason"] = reason
        _emit(entry, logging.WARNING if outcome == "rejected" else logging.INFO)

    @staticmethod
    def log_admin_action(
        action: str,  # "confirm_cash", "verify_transaction", "read_order"
        resource_type: str,
        resource_id: Any,
        ip_address: str = "",
        changes: Optional[Dict[str, Any]] = None,
    ):
        entry = {
            "event_type": f"admin.{resource_type}.{action}",
            "resource_id": resource_id,
            "ip_address": ip_address,
        }
        if changes:
            entry["changes"] = changes
        _emit(entry)

    @staticmethod
    def log_access_denied(endpoint: str, ip_address: str, reason: str):
        _emit({
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "endpoint": endpoint,
            "ip_address": ip_address,
            "reason": reason,
        }, logging.WARNING)
