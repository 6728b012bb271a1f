from sqlalchemy import Column, String, Boolean, DateTime, Text, JSON, func

from kavach.database import Base
from kavach.models.scan_log import new_id


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(200), nullable=True)
    email = Column(String(320), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=True)   # Null for Google-only accounts
    google_id = Column(String(64), nullable=True, index=True)

    is_pro = Column(Boolean, nullable=False, default=False)
    is_email_verified = Column(Boolean, nullable=False, default=False)

    subscription_plan = Column(String(20), nullable=False, default="free")
    subscription_status = Column(String(20), nullable=False, default="none")  # none | active | cancelled
    subscription_start_date = Column(DateTime(timezone=True), nullable=True)
    subscription_end_date = Column(DateTime(timezone=True), nullable=True)

    payment_order_id = Column(String(100), nullable=True)
    payment_id = Column(String(100), nullable=True)
    payment_history = Column(JSON, nullable=False, default=list)  # [{"paymentId", "orderId", "amount", ...}]

    phone = Column(String(40), nullable=True)
    company = Column(String(200), nullable=True)
    address = Column(Text, nullable=True)
    avatar = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)
