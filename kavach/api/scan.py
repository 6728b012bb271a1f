"""
Scan endpoints.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from kavach.api.security import get_current_user_id
from kavach.config import settings
from kavach.database import get_db
from kavach.exceptions import StorageUnavailable, UserNotFound
from kavach.schemas.api_schemas import (
    MessageResponse,
    QuotaExceededResponse,
    QuotaResponse,
    ScanHistoryResponse,
    ScanLinkRequest,
    ScanLinkResponse,
    ScanLogItem,
)
from kavach.services.scan_engine import Clock, ScanDecisionEngine, ScanPolicy, utc_now
from kavach.services.scan_log_service import ScanLogRepository
from kavach.services.user_service import UserRepository


router = APIRouter(
    prefix="/api/scan",
    tags=["scan"],
)


def get_clock() -> Clock:
    return utc_now


def get_scan_policy() -> ScanPolicy:
    return ScanPolicy.from_settings()


def get_scan_engine(
    db: Session = Depends(get_db),
    policy: ScanPolicy = Depends(get_scan_policy),
    clock: Clock = Depends(get_clock),
) -> ScanDecisionEngine:
    return ScanDecisionEngine(
        users=UserRepository(db),
        scan_logs=ScanLogRepository(db),
        policy=policy,
        clock=clock,
    )


@router.post(
    "/link",
    response_model=ScanLinkResponse,
    responses={
        400: {"model": MessageResponse},
        404: {"model": MessageResponse},
        429: {"model": QuotaExceededResponse},
        500: {"model": MessageResponse},
    },
)
def scan_link(
    payload: ScanLinkRequest,
    user_id: str = Depends(get_current_user_id),
    engine: ScanDecisionEngine = Depends(get_scan_engine),
):
    """
    Scan a link for the authenticated user.

    Pro users get a deep scan; free users get a basic scan limited per day.
    """
    try:
        outcome = engine.scan(user_id, payload.url)
    except StorageUnavailable as e:
        raise StorageUnavailable("Server error during scan") from e
    return outcome.to_dict()


@router.get("/history", response_model=ScanHistoryResponse)
def scan_history(
    limit: int = settings.scan_history_limit,
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Most recent scans of the authenticated user."""
    limit = max(1, min(limit, settings.scan_history_limit))
    scans = ScanLogRepository(db).list_for_user(user_id, limit=limit)
    return {"scans": [ScanLogItem.model_validate(s) for s in scans]}


@router.get("/quota", response_model=QuotaResponse)
def scan_quota(
    user_id: str = Depends(get_current_user_id),
    engine: ScanDecisionEngine = Depends(get_scan_engine),
):
    """Today's basic-scan usage. Pro users have no limit."""
    user = engine.users.find_by_id(user_id)
    if user is None:
        raise UserNotFound()

    used = engine.used_today(user.id)
    if user.is_pro:
        return {"isPro": True, "limit": None, "used": used, "remaining": None}

    limit = engine.policy.quota_per_day
    return {
        "isPro": False,
        "limit": limit,
        "used": used,
        "remaining": max(0, limit - used),
    }
