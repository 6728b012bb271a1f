"""
Scan log model: one immutable row per scan that reached a verdict.
"""

import enum
import uuid

from sqlalchemy import Column, String, DateTime, Text, Index

from kavach.database import Base


class ScanStatus(str, enum.Enum):
    SAFE = "SAFE"
    SUSPICIOUS = "SUSPICIOUS"
    DANGEROUS = "DANGEROUS"


class ScanType(str, enum.Enum):
    BASIC = "BASIC"
    DEEP = "DEEP"


def new_id() -> str:
    return uuid.uuid4().hex


class ScanLog(Base):
    __tablename__ = "scan_logs"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), nullable=False, index=True)  # No FK; matched by value

    url = Column(Text, nullable=False)               # As submitted, never normalized
    result = Column(String(16), nullable=False)      # SAFE / SUSPICIOUS / DANGEROUS
    scan_type = Column(String(8), nullable=False)    # BASIC / DEEP
    details = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_scan_logs_user_created", "user_id", "created_at"),
    )
