"""
Session token issuance and verification (HS256 JWT), plus Google ID token checks.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from kavach.config import settings
from kavach.exceptions import InvalidToken


def create_access_token(
    user_id: str,
    secret: Optional[str] = None,
    expires_in: Optional[timedelta] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    expires_in = expires_in or timedelta(days=settings.jwt_expires_days)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + expires_in,
    }
    return jwt.encode(payload, secret or settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_access_token(token: str, secret: Optional[str] = None) -> str:
    """
    Return the user id carried by a valid token.

    Raises:
        InvalidToken: bad signature, expired, or no ``id`` claim
    """
    try:
        payload = jwt.decode(
            token,
            secret or settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise InvalidToken("Token expired") from e
    except jwt.InvalidTokenError as e:
        raise InvalidToken() from e

    user_id = payload.get("id")
    if not isinstance(user_id, str) or not user_id:
        raise InvalidToken()
    return user_id


# ============== GOOGLE ID TOKENS ==============


GOOGLE_ISSUERS = ("accounts.google.com", "https://accounts.google.com")

_google_jwks_client: Optional[jwt.PyJWKClient] = None


def _get_google_jwks_client() -> jwt.PyJWKClient:
    global _google_jwks_client
    if _google_jwks_client is None:
        _google_jwks_client = jwt.PyJWKClient(settings.google_jwks_url)
    return _google_jwks_client


def verify_google_id_token(
    id_token: str,
    client_id: Optional[str] = None,
    jwks_client: Optional[jwt.PyJWKClient] = None,
) -> Dict[str, Any]:
    """
    Verify a Google Sign-In ID token and return its claims.

    Raises:
        InvalidToken: signature, audience, issuer or expiry check failed,
            or Google login is not configured
    """
    client_id = client_id or settings.google_client_id
    if not client_id:
        raise InvalidToken("Google login is not configured")

    jwks_client = jwks_client or _get_google_jwks_client()
    try:
        signing_key = jwks_client.get_signing_key_from_jwt(id_token)
        claims = jwt.decode(
            id_token,
            signing_key.key,
            algorithms=["RS256"],
            audience=client_id,
            options={"require": ["iss", "sub", "exp", "aud"]},
        )
    except jwt.PyJWKClientError as e:
        raise InvalidToken("Invalid Google Token") from e
    except jwt.InvalidTokenError as e:
        raise InvalidToken("Invalid Google Token") from e

    if claims.get("iss") not in GOOGLE_ISSUERS:
        raise InvalidToken("Invalid Google Token")
    if not claims.get("email"):
        raise InvalidToken("Google account has no email")
    return claims
