"""
Profile, subscription and account endpoints for the authenticated user.
"""

import math
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from kavach.api.security import get_current_user_id
from kavach.database import get_db
from kavach.exceptions import InvalidInput, InvoiceNotFound, UserNotFound
from kavach.models.user import User
from kavach.schemas.api_schemas import (
    ChangePasswordRequest,
    InvoiceResponse,
    MessageResponse,
    PaymentHistoryResponse,
    ProfileResponse,
    ProfileUpdateRequest,
    SubscriptionResponse,
)
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import StructuredLogger

logger = StructuredLogger(__name__)

router = APIRouter(
    prefix="/api/user",
    tags=["user"],
)


def _load_user(users: UserRepository, user_id: str) -> User:
    user = users.find_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return user


def days_remaining(end_date: Optional[datetime], now: Optional[datetime] = None) -> int:
    if end_date is None:
        return 0
    now = now or datetime.now(timezone.utc)
    if end_date.tzinfo is None:
        # SQLite drops the offset; stored values are UTC
        end_date = end_date.replace(tzinfo=timezone.utc)
    return math.ceil((end_date - now).total_seconds() / 86400)


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return ProfileResponse.model_validate(_load_user(UserRepository(db), user_id))


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    users = UserRepository(db)
    user = _load_user(users, user_id)

    # Blank values leave the field unchanged
    update_data = {k: v for k, v in payload.model_dump().items() if v}
    user = users.update(user, update_data)

    return {
        "message": "Profile updated successfully",
        "user": {
            "name": user.name,
            "phone": user.phone,
            "company": user.company,
            "address": user.address,
            "avatar": user.avatar,
        },
    }


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    payload: ChangePasswordRequest,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    users = UserRepository(db)
    user = _load_user(users, user_id)

    if not user.password_hash or not check_password_hash(user.password_hash, payload.current_password):
        raise InvalidInput("Current password is incorrect")

    users.update(user, {"password_hash": generate_password_hash(payload.new_password)})
    logger.info("Password changed", user_id=user.id)
    return {"message": "Password changed successfully"}


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    user = _load_user(UserRepository(db), user_id)
    return {
        "isPro": user.is_pro,
        "plan": user.subscription_plan,
        "status": user.subscription_status,
        "startDate": user.subscription_start_date,
        "endDate": user.subscription_end_date,
        "daysRemaining": days_remaining(user.subscription_end_date),
    }


@router.post("/subscription/cancel")
def cancel_subscription(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    users = UserRepository(db)
    user = _load_user(users, user_id)

    if not user.is_pro:
        raise InvalidInput("You do not have an active subscription")

    # Pro access is kept until the end of the billing period
    user = users.update(user, {"subscription_status": "cancelled"})
    logger.info("Subscription cancelled", user_id=user.id)

    return {
        "message": "Subscription cancelled. You can continue using Pro features until the end of your billing period.",
        "endDate": user.subscription_end_date,
    }


@router.get("/payment-history", response_model=PaymentHistoryResponse)
def get_payment_history(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    user = _load_user(UserRepository(db), user_id)
    payments = user.payment_history or []
    return {
        "payments": payments,
        "totalSpent": sum(p.get("amount") or 0 for p in payments),
    }


@router.get("/invoice/{payment_id}", response_model=InvoiceResponse)
def get_invoice(
    payment_id: str,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    user = _load_user(UserRepository(db), user_id)
    payment = next(
        (p for p in user.payment_history or [] if p.get("paymentId") == payment_id),
        None,
    )
    if payment is None:
        raise InvoiceNotFound()

    return {
        "invoiceNumber": f"INV-{payment_id}",
        "date": payment.get("date"),
        "customerName": user.name,
        "customerEmail": user.email,
        "plan": payment.get("plan"),
        "amount": payment.get("amount"),
        "paymentId": payment_id,
        "orderId": payment.get("orderId"),
        "status": payment.get("status"),
    }


@router.delete("/account", response_model=MessageResponse)
def delete_account(user_id: str = Depends(get_current_user_id), db: Session = Depends(get_db)):
    users = UserRepository(db)
    users.delete(_load_user(users, user_id))
    logger.info("Account deleted", user_id=user_id)
    return {"message": "Account deleted successfully"}
