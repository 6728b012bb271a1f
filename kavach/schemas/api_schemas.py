from datetime import datetime, timezone
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""
    model_config = ConfigDict(populate_by_name=True, from_attributes=True)


# ============== SCAN ==============


class ScanLinkRequest(BaseModel):
    url: Optional[str] = None  # Validated by the engine so a blank url maps to 400


class ScanLinkResponse(CamelModel):
    url: str
    status: str  # SAFE / SUSPICIOUS / DANGEROUS
    message: str
    scan_type: str = Field(alias="scanType")  # BASIC / DEEP


class QuotaExceededResponse(CamelModel):
    message: str
    upgrade_required: bool = Field(True, alias="upgradeRequired")


class MessageResponse(BaseModel):
    message: str


class ScanLogItem(CamelModel):
    id: str
    url: str
    result: str
    scan_type: str = Field(alias="scanType")
    details: Optional[str] = None
    created_at: datetime = Field(alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, v: datetime) -> datetime:
        # SQLite drops the offset; stored values are UTC
        return v if v.tzinfo is not None else v.replace(tzinfo=timezone.utc)


class ScanHistoryResponse(BaseModel):
    scans: List[ScanLogItem]


class QuotaResponse(CamelModel):
    is_pro: bool = Field(alias="isPro")
    limit: Optional[int] = None  # None = unlimited
    used: int
    remaining: Optional[int] = None


# ============== AUTH / USER ==============


class RegisterRequest(BaseModel):
    name: Optional[str] = None
    email: str
    password: str = Field(min_length=6)


class LoginRequest(BaseModel):
    email: str
    password: str


class GoogleLoginRequest(CamelModel):
    id_token: Optional[str] = Field(None, alias="idToken")


class UserSummary(CamelModel):
    id: str
    name: Optional[str] = None
    email: str
    is_pro: bool = Field(alias="isPro")
    is_email_verified: bool = Field(alias="isEmailVerified")
    subscription_plan: Optional[str] = Field(None, alias="subscriptionPlan")
    subscription_status: Optional[str] = Field(None, alias="subscriptionStatus")


class AuthResponse(BaseModel):
    token: str
    user: UserSummary
    message: Optional[str] = None


class ProfileResponse(UserSummary):
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None
    subscription_start_date: Optional[datetime] = Field(None, alias="subscriptionStartDate")
    subscription_end_date: Optional[datetime] = Field(None, alias="subscriptionEndDate")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")


class ProfileUpdateRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    address: Optional[str] = None
    avatar: Optional[str] = None


class ChangePasswordRequest(CamelModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword", min_length=6)


class SubscriptionResponse(CamelModel):
    is_pro: bool = Field(alias="isPro")
    plan: Optional[str] = None
    status: Optional[str] = None
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")
    days_remaining: int = Field(0, alias="daysRemaining")


class InvoiceResponse(CamelModel):
    invoice_number: str = Field(alias="invoiceNumber")
    date: Optional[str] = None
    customer_name: Optional[str] = Field(None, alias="customerName")
    customer_email: str = Field(alias="customerEmail")
    plan: Optional[str] = None
    amount: Optional[float] = None
    payment_id: str = Field(alias="paymentId")
    order_id: Optional[str] = Field(None, alias="orderId")
    status: Optional[str] = None


class PaymentHistoryResponse(CamelModel):
    payments: List[dict]
    total_spent: float = Field(alias="totalSpent")


# ============== PAYMENT ==============


class PaymentVerifyRequest(BaseModel):
    razorpay_order_id: Optional[str] = None
    razorpay_payment_id: Optional[str] = None
    razorpay_signature: Optional[str] = None
    plan: str = "pro"
    amount: Optional[float] = None
