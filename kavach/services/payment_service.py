"""
Payment confirmation service.

Verifies gateway signatures (HMAC-SHA256) and moves users between the
free and Pro tiers.
"""

import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from kavach.models.user import User
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import StructuredLogger, metrics

logger = StructuredLogger(__name__)


def _hmac_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def verify_checkout_signature(order_id: str, payment_id: str, signature: str, secret: str) -> bool:
    """Checkout signature is HMAC(secret, "<order_id>|<payment_id>")."""
    if not secret or not signature:
        return False
    expected = _hmac_hex(secret, f"{order_id}|{payment_id}".encode())
    return hmac.compare_digest(expected, signature)


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: str) -> bool:
    """Webhook signature is HMAC(secret, raw request body)."""
    if not secret or not signature:
        return False
    return hmac.compare_digest(_hmac_hex(secret, body), signature)


def activate_pro(
    users: UserRepository,
    user: User,
    order_id: str,
    payment_id: str,
    plan: str = "pro",
    amount: Optional[float] = None,
    now: Optional[datetime] = None,
) -> User:
    now = now or datetime.now(timezone.utc)
    history = list(user.payment_history or [])
    history.append({
        "paymentId": payment_id,
        "orderId": order_id,
        "plan": plan,
        "amount": amount,
        "status": "captured",
        "date": now.isoformat(),
    })
    updated = users.update(user, {
        "is_pro": True,
        "payment_order_id": order_id,
        "payment_id": payment_id,
        "subscription_status": "active",
        "subscription_plan": plan,
        "subscription_start_date": now,
        "payment_history": history,
    })
    metrics.increment("payment.activated")
    logger.info("User upgraded to Pro", user_id=user.id, plan=plan)
    return updated


def handle_webhook_event(users: UserRepository, event: str, payload: Dict[str, Any]) -> Optional[str]:
    """
    Apply a verified webhook event.

    Returns the id of the user that was changed, or None when the event
    is ignored or names no known user.
    """
    if event not in ("payment.captured", "refund.processed"):
        logger.debug("Ignoring webhook event", event=event)
        return None

    entity = ((payload or {}).get("payment") or {}).get("entity") or {}
    user_id = (entity.get("notes") or {}).get("userId")
    if not user_id:
        logger.warning("Webhook event without userId", event=event)
        return None

    user = users.find_by_id(user_id)
    if user is None:
        logger.warning("Webhook event for unknown user", event=event, user_id=user_id)
        return None

    if event == "payment.captured":
        activate_pro(
            users,
            user,
            order_id=entity.get("order_id") or user.payment_order_id or "",
            payment_id=entity.get("id") or "",
            plan=(entity.get("notes") or {}).get("plan") or "pro",
            amount=(entity.get("amount") or 0) / 100,  # Gateway amounts are in paise
        )
    else:
        users.update(user, {"is_pro": False, "subscription_status": "cancelled"})
        metrics.increment("payment.refunded")
        logger.info("User downgraded after refund", user_id=user.id)

    return user.id
