"""
Closed enumerations, policy structs and result types for the auth core.

Role and auth-method names are validated once at the API edge into these
enums. Everything downstream compares enum values, never raw strings.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Role(str, Enum):
    CLIENT = "Client"
    DRIVER = "Driver"
    ADMIN = "Admin"


class AuthMethodType(str, Enum):
    CREDENTIALS = "Credentials"
    GOOGLE = "Google"
    AUTH_PIN = "AuthPin"


class AccountStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    BANNED = "banned"


class VerificationType(str, Enum):
    """Kinds of emailed verification code. Each has its own field pair."""
    EMAIL_VERIFICATION = "EmailVerification"
    PASSWORD_RESET = "PasswordReset"
    PIN_VERIFICATION = "PinVerification"


# Stored field pair (token, expiry) per verification code type
VERIFICATION_FIELDS = {
    VerificationType.EMAIL_VERIFICATION: ("emailVerificationToken", "emailVerificationExpiry"),
    VerificationType.PASSWORD_RESET: ("resetPasswordToken", "resetPasswordExpiry"),
    VerificationType.PIN_VERIFICATION: ("authPinResetToken", "authPinResetExpiry"),
}


# ─────────────────────────────────────────────────────────────────
# Policies
# ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RotationPolicy:
    """Refresh tokens are reissued only when this few hours remain."""
    threshold_hours: float = 24


@dataclass(frozen=True)
class AuthPinPolicy:
    max_attempts: int = 5
    lock_minutes: int = 15
    min_digits: int = 4
    max_digits: int = 6


@dataclass(frozen=True)
class VerificationPolicy:
    expire_minutes: int = 10
    code_length: int = 6


# ─────────────────────────────────────────────────────────────────
# Results
# ─────────────────────────────────────────────────────────────────

@dataclass
class PreCheckResult:
    """
    Outcome of the request gate.

    Success carries the loaded identity and the raw access token. Failure
    carries an error message, HTTP status and, for an expired access token,
    ``token_expired=True``.
    """
    success: bool
    user_data: Optional[Dict[str, Any]] = None
    access_token: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 200
    token_expired: bool = False

    @classmethod
    def ok(cls, user_data: Dict[str, Any], access_token: str) -> "PreCheckResult":
        return cls(success=True, user_data=user_data, access_token=access_token)

    @classmethod
    def fail(
        cls,
        error: str,
        status_code: int,
        error_code: Optional[str] = None,
        token_expired: bool = False,
    ) -> "PreCheckResult":
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            status_code=status_code,
            token_expired=token_expired,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape: {success, userData, accessToken} or {success, error, statusCode, tokenExpired?}."""
        if self.success:
            return {"success": True, "userData": self.user_data, "accessToken": self.access_token}

        body: Dict[str, Any] = {"success": False, "error": self.error, "statusCode": self.status_code}
        if self.token_expired:
            body["tokenExpired"] = True
        return body


@dataclass
class IssuedTokens:
    access_token: str
    refresh_token: str


@dataclass
class RefreshResult:
    access_token: str
    refresh_token: Optional[str]
    rotated: bool
    user: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "rotated": self.rotated,
        }
