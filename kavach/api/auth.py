"""
Account registration, password login and Google sign-in.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from kavach.database import get_db
from kavach.exceptions import AuthenticationFailed, InvalidInput, InvalidToken
from kavach.schemas.api_schemas import AuthResponse, GoogleLoginRequest, LoginRequest, RegisterRequest, UserSummary
from kavach.services.token_service import create_access_token, verify_google_id_token
from kavach.services.user_service import UserRepository
from kavach.utils.logging_config import StructuredLogger, metrics

logger = StructuredLogger(__name__)

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
)


def _normalize_email(email: str) -> str:
    return email.strip().lower()


@router.post("/register", response_model=AuthResponse)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    users = UserRepository(db)
    email = _normalize_email(payload.email)
    if not email or "@" not in email:
        raise InvalidInput("A valid email is required")

    if users.find_by_email(email):
        raise InvalidInput("Email already exists")

    user = users.create(
        email=email,
        name=payload.name,
        password_hash=generate_password_hash(payload.password),
        last_login=datetime.now(timezone.utc),
    )
    metrics.increment("auth.register")
    logger.info("User registered", user_id=user.id)

    return AuthResponse(
        token=create_access_token(user.id),
        user=UserSummary.model_validate(user),
        message="Account created!",
    )


@router.post("/login", response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    users = UserRepository(db)
    user = users.find_by_email(_normalize_email(payload.email))
    if user is None:
        raise InvalidInput("Invalid credentials")

    if not user.password_hash:
        raise InvalidInput("This account was created with Google. Please login with Google.")

    if not check_password_hash(user.password_hash, payload.password):
        metrics.increment("auth.login_failed")
        logger.info("Failed login", user_id=user.id)
        raise InvalidInput("Invalid credentials")

    user = users.update(user, {"last_login": datetime.now(timezone.utc)})
    metrics.increment("auth.login")

    return AuthResponse(
        token=create_access_token(user.id),
        user=UserSummary.model_validate(user),
    )


def get_google_jwks_client():
    """JWKS client for Google keys; None uses the shared default."""
    return None


@router.post("/google-login", response_model=AuthResponse)
def google_login(
    payload: GoogleLoginRequest,
    db: Session = Depends(get_db),
    jwks_client=Depends(get_google_jwks_client),
):
    """Sign in (or sign up) with a Google ID token."""
    if not payload.id_token:
        raise InvalidInput("No ID Token provided")

    try:
        claims = verify_google_id_token(payload.id_token, jwks_client=jwks_client)
    except InvalidToken as e:
        logger.warning("Google token rejected", reason=e.message)
        raise AuthenticationFailed("Invalid Google Token") from e

    users = UserRepository(db)
    email = _normalize_email(claims["email"])
    now = datetime.now(timezone.utc)

    user = users.find_by_email(email)
    if user is not None:
        user = users.update(user, {
            "last_login": now,
            "avatar": user.avatar or claims.get("picture"),
            "google_id": claims["sub"],
            "is_email_verified": True,
        })
    else:
        user = users.create(
            email=email,
            name=claims.get("name") or "Google User",
            password_hash=None,
            is_email_verified=True,
            avatar=claims.get("picture"),
            google_id=claims["sub"],
            last_login=now,
        )
        metrics.increment("auth.register")
        logger.info("User registered via Google", user_id=user.id)

    metrics.increment("auth.google_login")
    return AuthResponse(
        token=create_access_token(user.id),
        user=UserSummary.model_validate(user),
        message="Google Login Successful!",
    )
