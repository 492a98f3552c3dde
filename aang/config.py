"""
AAng Logistics application settings.

Extends the base settings with authentication policy and mail configuration.
"""

from typing import Optional
from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """AAng-specific settings."""

    # ==========================================================================
    # API
    # ==========================================================================
    API_PREFIX: str = "/api/v1"

    # ==========================================================================
    # Refresh Rotation
    # ==========================================================================
    # A refresh call reissues the refresh token once this many hours or fewer remain
    REFRESH_ROTATION_THRESHOLD_HOURS: int = 24

    # ==========================================================================
    # AuthPin Lockout
    # ==========================================================================
    AUTH_PIN_MAX_ATTEMPTS: int = 5
    AUTH_PIN_LOCK_MINUTES: int = 15

    # ==========================================================================
    # Verification Codes (email verification, password reset, PIN reset)
    # ==========================================================================
    VERIFICATION_TOKEN_EXPIRE_MINUTES: int = 10
    VERIFICATION_TOKEN_LENGTH: int = 6

    # ==========================================================================
    # Social Sign-in
    # ==========================================================================
    GOOGLE_CLIENT_ID: Optional[str] = None

    # ==========================================================================
    # Email Settings
    # ==========================================================================
    EMAIL_MODE: str = "console"  # console, smtp, resend
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 465
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM_EMAIL: str = "noreply@aanglogistics.com"
    SMTP_FROM_NAME: str = "AAng Logistics"

    def get_access_secret(self) -> str:
        """Access token secret, with a fixed fallback outside production."""
        if self.JWT_ACCESS_SECRET:
            return self.JWT_ACCESS_SECRET
        if self.is_production():
            raise ValueError("JWT_ACCESS_SECRET is required in production")
        return "dev-access-secret"

    def get_refresh_secret(self) -> str:
        """Refresh token secret, with a fixed fallback outside production."""
        if self.JWT_REFRESH_SECRET:
            return self.JWT_REFRESH_SECRET
        if self.is_production():
            raise ValueError("JWT_REFRESH_SECRET is required in production")
        return "dev-refresh-secret"


# Global settings instance
settings = Settings()
