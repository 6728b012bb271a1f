"""
Payment confirmation endpoints.

Order creation happens client-side with the gateway; these endpoints only
verify signed results and update the user's tier.
"""

import json

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from kavach.api.security import get_current_user_id
from kavach.config import settings
from kavach.database import get_db
from kavach.exceptions import InvalidInput, UserNotFound
from kavach.schemas.api_schemas import MessageResponse, PaymentVerifyRequest
from kavach.services.payment_service import (
    activate_pro,
    handle_webhook_event,
    verify_checkout_signature,
    verify_webhook_signature,
)
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import StructuredLogger

logger = StructuredLogger(__name__)

router = APIRouter(
    prefix="/api/payment",
    tags=["payment"],
)


@router.post("/verify", response_model=MessageResponse)
def verify_payment(
    payload: PaymentVerifyRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Verify a checkout signature and upgrade the caller to Pro."""
    if not (payload.razorpay_order_id and payload.razorpay_payment_id and payload.razorpay_signature):
        raise InvalidInput("Missing required payment fields")

    if not verify_checkout_signature(
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        payload.razorpay_signature,
        settings.payment_key_secret,
    ):
        logger.warning("Checkout signature mismatch", user_id=user_id)
        raise InvalidInput("Invalid signature sent!")

    users = UserRepository(db)
    user = users.find_by_id(user_id)
    if user is None:
        raise UserNotFound()

    activate_pro(
        users,
        user,
        order_id=payload.razorpay_order_id,
        payment_id=payload.razorpay_payment_id,
        plan=payload.plan,
        amount=payload.amount,
    )
    return {"message": "Payment verified successfully"}


@router.post("/webhook")
async def payment_webhook(request: Request, db: Session = Depends(get_db)):
    """Gateway webhook. Public, authenticated by body signature only."""
    body = await request.body()
    signature = request.headers.get(settings.payment_webhook_header)

    if not verify_webhook_signature(body, signature, settings.payment_key_secret):
        logger.warning("Webhook signature mismatch")
        raise InvalidInput("Invalid signature")

    try:
        data = json.loads(body)
    except ValueError as e:
        raise InvalidInput("Malformed webhook body") from e
    if not isinstance(data, dict):
        raise InvalidInput("Malformed webhook body")

    event = data.get("event")
    logger.info("Webhook event received", event=event)
    try:
        handle_webhook_event(UserRepository(db), event, data.get("payload") or {})
    except Exception as e:
        # The gateway still gets a 200
        logger.error("Webhook handling failed", event=event, error=str(e), exc_info=True)
        return {"status": "error_logged"}
    return {"status": "ok"}
