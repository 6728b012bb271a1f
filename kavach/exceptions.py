"""
Domain exceptions for Kavach.

Every error carries the HTTP status it maps to and the message returned
to the client as ``{"message": ...}``.
"""

from typing import Any, Dict, Optional


class KavachError(Exception):
    """Base exception for all Kavach errors."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message}


class InvalidInput(KavachError):
    """Client sent malformed or missing request data."""

    status_code = 400
    default_message = "Invalid request"


class MissingToken(KavachError):
    status_code = 401
    default_message = "Access Denied: No Token Provided"


class AuthenticationFailed(KavachError):
    """Third-party identity could not be verified."""

    status_code = 401
    default_message = "Authentication failed"


class InvalidToken(KavachError):
    """Session token failed signature, expiry or payload checks."""

    status_code = 400
    default_message = "Invalid Token"


class UserNotFound(KavachError):
    status_code = 404
    default_message = "User not found"


class InvoiceNotFound(KavachError):
    status_code = 404
    default_message = "Invoice not found"


class QuotaExceeded(KavachError):
    """Free-tier daily scan cap reached."""

    status_code = 429
    default_message = "Daily scan limit reached. Upgrade to Pro for unlimited AI scans."

    def __init__(self, limit: int, message: Optional[str] = None):
        super().__init__(message)
        self.limit = limit
        self.upgrade_required = True

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "upgradeRequired": self.upgrade_required}


class StorageUnavailable(KavachError):
    """The backing store could not complete a write or read."""

    status_code = 500
    default_message = "Storage unavailable"
