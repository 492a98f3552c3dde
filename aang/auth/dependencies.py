"""
FastAPI dependencies for the Auth system.

Builds the auth services from settings once at startup and exposes them to
routers through getters.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.auth import (
    GoogleIdentityVerifier,
    TokenCodec,
    TokenCodecConfig,
    create_gate_dependency,
)
from aang.config import Settings
from aang.auth.services.auth_pin import AuthPinService
from aang.auth.services.device_detector import DeviceDetector
from aang.auth.services.identity_store import IdentityStore
from aang.auth.services.mail_sender import MailConfig, MailSender
from aang.auth.services.pre_check import RequestGate
from aang.auth.services.refresh_store import RefreshStore
from aang.auth.services.session_tracker import SessionTracker
from aang.auth.services.token_issuer import TokenIssuer
from aang.auth.types import AuthPinPolicy, RotationPolicy, VerificationPolicy


@lru_cache()
def get_device_detector() -> DeviceDetector:
    """Get cached DeviceDetector instance."""
    return DeviceDetector()


_token_codec: Optional[TokenCodec] = None
_identity_store: Optional[IdentityStore] = None
_refresh_store: Optional[RefreshStore] = None
_session_tracker: Optional[SessionTracker] = None
_token_issuer: Optional[TokenIssuer] = None
_auth_pin_service: Optional[AuthPinService] = None
_request_gate: Optional[RequestGate] = None
_mail_sender: Optional[MailSender] = None
_google_verifier: Optional[GoogleIdentityVerifier] = None
_verification_policy: Optional[VerificationPolicy] = None


def init_auth_services(db: AsyncIOMotorDatabase, settings: Settings) -> None:
    """
    Initialize auth services with database and settings.

    Called once at application startup.

    Args:
        db: MongoDB database connection
        settings: Application settings
    """
    global _token_codec, _identity_store, _refresh_store, _session_tracker
    global _token_issuer, _auth_pin_service, _request_gate, _mail_sender
    global _google_verifier, _verification_policy

    _token_codec = TokenCodec(TokenCodecConfig(
        access_secret=settings.get_access_secret(),
        refresh_secret=settings.get_refresh_secret(),
        operation_secret=settings.get_operation_secret() or settings.get_access_secret(),
        algorithm=settings.JWT_ALGORITHM,
        access_token_expire_minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
        refresh_token_expire_days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS,
        operation_token_expire_minutes=settings.OPERATION_TOKEN_EXPIRE_MINUTES,
    ))

    _verification_policy = VerificationPolicy(
        expire_minutes=settings.VERIFICATION_TOKEN_EXPIRE_MINUTES,
        code_length=settings.VERIFICATION_TOKEN_LENGTH,
    )

    _identity_store = IdentityStore(db)
    _refresh_store = RefreshStore(db)
    _session_tracker = SessionTracker(db, get_device_detector())

    _token_issuer = TokenIssuer(
        token_codec=_token_codec,
        refresh_store=_refresh_store,
        identity_store=_identity_store,
        session_tracker=_session_tracker,
        rotation_policy=RotationPolicy(threshold_hours=settings.REFRESH_ROTATION_THRESHOLD_HOURS),
    )

    _auth_pin_service = AuthPinService(
        identity_store=_identity_store,
        token_codec=_token_codec,
        policy=AuthPinPolicy(
            max_attempts=settings.AUTH_PIN_MAX_ATTEMPTS,
            lock_minutes=settings.AUTH_PIN_LOCK_MINUTES,
        ),
    )

    _request_gate = RequestGate(_token_codec, _identity_store)

    _mail_sender = MailSender(MailConfig(
        mode=settings.EMAIL_MODE,
        from_email=settings.SMTP_FROM_EMAIL,
        from_name=settings.SMTP_FROM_NAME,
        resend_api_key=settings.RESEND_API_KEY,
        smtp_host=settings.SMTP_HOST,
        smtp_port=settings.SMTP_PORT,
        smtp_user=settings.SMTP_USER,
        smtp_password=settings.SMTP_PASSWORD,
        code_expire_minutes=settings.VERIFICATION_TOKEN_EXPIRE_MINUTES,
    ))

    _google_verifier = GoogleIdentityVerifier(client_id=settings.GOOGLE_CLIENT_ID)


def _require(service):
    if service is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return service


def get_token_codec() -> TokenCodec:
    return _require(_token_codec)


def get_identity_store() -> IdentityStore:
    return _require(_identity_store)


def get_refresh_store() -> RefreshStore:
    return _require(_refresh_store)


def get_session_tracker() -> SessionTracker:
    return _require(_session_tracker)


def get_token_issuer() -> TokenIssuer:
    return _require(_token_issuer)


def get_auth_pin_service() -> AuthPinService:
    return _require(_auth_pin_service)


def get_request_gate() -> RequestGate:
    return _require(_request_gate)


def get_mail_sender() -> MailSender:
    return _require(_mail_sender)


def get_google_verifier() -> GoogleIdentityVerifier:
    return _require(_google_verifier)


def get_verification_policy() -> VerificationPolicy:
    return _require(_verification_policy)


# Runs the request gate. Yields PreCheckResult on success, raises the mapped
# APIException otherwise.
require_pre_check = create_gate_dependency(lambda: get_request_gate())


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "0.0.0.0"


def get_user_agent(request: Request) -> str:
    """Extract User-Agent from request."""
    return request.headers.get("User-Agent", "")
