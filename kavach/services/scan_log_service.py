"""
Scan log repository.
Appends immutable scan records and answers daily quota queries.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kavach.exceptions import StorageUnavailable
from kavach.models.scan_log import ScanLog
from kavach.utils.logging_config import StructuredLogger

logger = StructuredLogger(__name__)


@dataclass(frozen=True)
class CountResult:
    """Outcome of a count query: either a value or the storage error."""
    value: Optional[int]
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_utc(value: datetime) -> datetime:
    """Normalize to UTC so stored and queried instants compare consistently."""
    if value.tzinfo is None:
        raise ValueError("Timestamps must be timezone-aware")
    return value.astimezone(timezone.utc)


class ScanLogRepository:
    """Persistence for the ``scan_logs`` table. Rows are never updated or deleted here."""

    def __init__(self, db: Session):
        self.db = db

    def append(
        self,
        user_id: str,
        url: str,
        result: str,
        scan_type: str,
        details: str,
        created_at: datetime,
    ) -> ScanLog:
        """
        Store a scan record.

        Raises:
            StorageUnavailable: if the write fails. The caller must not
                report a verdict in that case.
        """
        entry = ScanLog(
            user_id=user_id,
            url=url,
            result=result,
            scan_type=scan_type,
            details=details,
            created_at=to_utc(created_at),
        )
        try:
            self.db.add(entry)
            self.db.commit()
            self.db.refresh(entry)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to persist scan log") from e
        return entry

    def count_since(self, user_id: str, since_inclusive: datetime) -> CountResult:
        """
        Count a user's entries with ``created_at >= since_inclusive``.

        Storage faults are returned in the result instead of raised, so the
        caller decides how to treat them.
        """
        try:
            count = (
                self.db.query(func.count(ScanLog.id))
                .filter(
                    ScanLog.user_id == user_id,
                    ScanLog.created_at >= to_utc(since_inclusive),
                )
                .scalar()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            return CountResult(value=None, error=e)
        return CountResult(value=int(count or 0))

    def list_for_user(self, user_id: str, limit: int = 50) -> List[ScanLog]:
        """Most recent scans first."""
        try:
            return (
                self.db.query(ScanLog)
                .filter(ScanLog.user_id == user_id)
                .order_by(ScanLog.created_at.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StorageUnavailable("Failed to read scan history") from e
