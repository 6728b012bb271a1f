"""
Scan decision engine.

Chooses the scan tier for a user, enforces the free-tier daily quota,
classifies the URL and writes the audit log entry.
"""

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from kavach.config import settings
from kavach.exceptions import InvalidInput, QuotaExceeded, UserNotFound
from kavach.models.scan_log import ScanStatus, ScanType
from kavach.services.scan_log_service import ScanLogRepository
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import StructuredLogger, metrics

logger = StructuredLogger(__name__)


# Checked left to right, case-insensitive
DEEP_SCAN_KEYWORDS: Tuple[str, ...] = ("phishing", "betting", "hack", "free-money")

# Checked case-sensitive against the raw URL
BASIC_BLACKLIST: Tuple[str, ...] = ("malicious-site.com", "bad-link.net")

DEEP_SUSPICIOUS_MESSAGE = "Deep AI scan detected potential phishing patterns."
DEEP_SAFE_MESSAGE = "Deep AI scan validated this link as safe. Certificate valid. No malware signatures."
BASIC_DANGEROUS_MESSAGE = "Link found in global blacklist."
BASIC_SAFE_MESSAGE = "Basic check passed (Blacklist check only)."

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: str) -> Optional[tzinfo]:
    """
    Map a configured timezone name to a tzinfo.

    Returns None for "local", meaning the server's timezone at evaluation time.
    """
    if not name or name.lower() == "local":
        return None
    if name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def start_of_day(now: datetime, tz_name: str = "local") -> datetime:
    """Midnight (00:00:00.000) of the day containing ``now`` in the given timezone."""
    tz = resolve_timezone(tz_name)
    if tz is not None:
        return now.astimezone(tz).replace(hour=0, minute=0, second=0, microsecond=0)
    # Offset at local midnight, not now's offset; they differ on DST transition days
    local_now = now.astimezone()
    return local_now.replace(hour=0, minute=0, second=0, microsecond=0, tzinfo=None).astimezone()


@dataclass(frozen=True)
class ScanPolicy:
    """Quota settings handed to the engine at construction."""
    quota_per_day: int = 10
    day_boundary_timezone: str = "local"

    def __post_init__(self):
        if self.quota_per_day < 0:
            raise ValueError("quota_per_day must be >= 0")
        try:
            resolve_timezone(self.day_boundary_timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {self.day_boundary_timezone}") from e

    @classmethod
    def from_settings(cls) -> "ScanPolicy":
        return cls(
            quota_per_day=settings.scan_quota_per_day,
            day_boundary_timezone=settings.scan_day_boundary_timezone,
        )


@dataclass(frozen=True)
class Verdict:
    status: ScanStatus
    message: str


@dataclass(frozen=True)
class ScanOutcome:
    url: str
    status: ScanStatus
    message: str
    scan_type: ScanType

    def to_dict(self) -> Dict[str, str]:
        return {
            "url": self.url,
            "status": self.status.value,
            "message": self.message,
            "scanType": self.scan_type.value,
        }


def classify(url: str, strategy: ScanType) -> Verdict:
    """Classify a URL with the given strategy. No I/O, no state."""
    if strategy == ScanType.DEEP:
        lowered = url.lower()
        for keyword in DEEP_SCAN_KEYWORDS:
            if keyword in lowered:
                return Verdict(ScanStatus.SUSPICIOUS, DEEP_SUSPICIOUS_MESSAGE)
        return Verdict(ScanStatus.SAFE, DEEP_SAFE_MESSAGE)

    for bad in BASIC_BLACKLIST:
        if bad in url:
            return Verdict(ScanStatus.DANGEROUS, BASIC_DANGEROUS_MESSAGE)
    return Verdict(ScanStatus.SAFE, BASIC_SAFE_MESSAGE)


class ScanDecisionEngine:
    """
    Stateless per-request scan flow.

    Pro users get a DEEP scan with no quota. Free users get a BASIC scan,
    limited to ``policy.quota_per_day`` logged scans per calendar day.

    The quota count and the log append are two separate store operations,
    so concurrent requests from one user can overshoot the quota.
    """

    def __init__(
        self,
        users: UserRepository,
        scan_logs: ScanLogRepository,
        policy: Optional[ScanPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        self.users = users
        self.scan_logs = scan_logs
        self.policy = policy or ScanPolicy.from_settings()
        self.clock = clock or utc_now

    def used_today(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Scans logged by the user since midnight.

        A failed count is treated as zero so a storage fault never blocks a
        legitimate free user.
        """
        now = now or self.clock()
        since = start_of_day(now, self.policy.day_boundary_timezone)
        result = self.scan_logs.count_since(user_id, since)
        if not result.ok:
            metrics.increment("scan.quota_count_failed")
            logger.warning(
                "Scan count failed, allowing request",
                user_id=user_id,
                error=str(result.error),
            )
            return 0
        return result.value

    def scan(self, user_id: str, url: Optional[str]) -> ScanOutcome:
        """
        Run the full scan flow for one request.

        Raises:
            InvalidInput: missing or blank url
            UserNotFound: user_id does not resolve to a user
            QuotaExceeded: free user at or over the daily cap
            StorageUnavailable: the audit log could not be written
        """
        if not isinstance(url, str) or not url.strip():
            logger.debug("Scan rejected: missing url", user_id=user_id)
            raise InvalidInput("URL is required")

        user = self.users.find_by_id(user_id)
        if user is None:
            raise UserNotFound()

        now = self.clock()

        if user.is_pro:
            strategy = ScanType.DEEP
        else:
            strategy = ScanType.BASIC
            used = self.used_today(user.id, now)
            if used >= self.policy.quota_per_day:
                metrics.increment("scan.quota_rejected")
                logger.info(
                    "Daily scan quota reached",
                    user_id=user.id,
                    used=used,
                    limit=self.policy.quota_per_day,
                )
                raise QuotaExceeded(limit=self.policy.quota_per_day)

        verdict = classify(url, strategy)

        try:
            self.scan_logs.append(
                user_id=user.id,
                url=url,
                result=verdict.status.value,
                scan_type=strategy.value,
                details=verdict.message,
                created_at=now,
            )
        except Exception:
            metrics.increment("scan.append_failed")
            logger.error("Failed to write scan log", user_id=user.id, exc_info=True)
            raise

        metrics.increment(f"scan.{strategy.value.lower()}.total")
        metrics.increment(f"scan.{strategy.value.lower()}.{verdict.status.value.lower()}")
        logger.info(
            "Scan completed",
            user_id=user.id,
            scan_type=strategy.value,
            status=verdict.status.value,
        )

        return ScanOutcome(
            url=url,
            status=verdict.status,
            message=verdict.message,
            scan_type=strategy,
        )
