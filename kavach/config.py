from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================
    environment: str = "dev"  # "dev", "prod"
    debug: bool = True

    # ==========================================================================
    # DATABASE
    # ==========================================================================
    database_url: str = "sqlite:///./kavach.db"

    # ==========================================================================
    # SESSION TOKENS
    # ==========================================================================
    jwt_secret: str = "change-me"  # Must be overridden in production
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7
    auth_token_header: str = "auth-token"

    # ==========================================================================
    # GOOGLE SIGN-IN
    # ==========================================================================
    google_client_id: str = ""  # Expected "aud" of Google ID tokens; empty disables Google login
    google_jwks_url: str = "https://www.googleapis.com/oauth2/v3/certs"

    # ==========================================================================
    # PAYMENT GATEWAY
    # ==========================================================================
    payment_key_id: str = ""
    payment_key_secret: str = ""  # Used for checkout and webhook HMAC checks
    payment_webhook_header: str = "X-Razorpay-Signature"

    # ==========================================================================
    # CORS
    # ==========================================================================
    cors_origins: str = "*"  # Comma-separated origins, or "*" for all

    # ==========================================================================
    # SCAN QUOTA
    # ==========================================================================
    scan_quota_per_day: int = 10  # Basic scans per calendar day for free users
    scan_day_boundary_timezone: str = "local"  # "local" or an IANA name, e.g. "Asia/Kolkata"
    scan_history_limit: int = 50

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "prod"

    @property
    def cors_origins_list(self) -> List[str]:
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",")]


settings = Settings()
