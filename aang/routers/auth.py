"""
FastAPI router for Auth system endpoints.

Provides sign-up, login, social sign-in, token refresh, logout, verification
codes, password flows, session management and auth-method linking.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Header, Request

from aang.auth import pipelines
from aang.auth.dependencies import (
    get_client_ip,
    get_google_verifier,
    get_identity_store,
    get_mail_sender,
    get_refresh_store,
    get_session_tracker,
    get_token_issuer,
    get_user_agent,
    get_verification_policy,
    require_pre_check,
)
from aang.auth.types import AuthMethodType, PreCheckResult, Role
from aang.schemas.auth import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LinkAuthMethodRequest,
    LoginRequest,
    RefreshRequest,
    ResetPasswordRequest,
    RevokeAllSessionsRequest,
    SignupRequest,
    SocialSignInRequest,
    TokenRequest,
    UnlinkAuthMethodRequest,
    VerifyEmailRequest,
)
from common.utils import BadRequestException, success_response


router = APIRouter(prefix="/auth", tags=["auth"])

Gate = Annotated[PreCheckResult, Depends(require_pre_check)]


# ─────────────────────────────────────────────────────────────────
# Sign-up / login / refresh
# ─────────────────────────────────────────────────────────────────

@router.post("/signup", status_code=201)
async def signup(request: Request, body: SignupRequest):
    """
    Create a Credentials account.

    Sends an email verification code and signs the new user in.
    """
    result = await pipelines.signup_pipeline(
        identity_store=get_identity_store(),
        token_issuer=get_token_issuer(),
        mail_sender=get_mail_sender(),
        verification_policy=get_verification_policy(),
        email=body.email,
        password=body.password,
        role=Role(body.role.value),
        full_name=body.fullName,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return success_response(result, "Account created successfully")


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    """Login with email and password."""
    result = await pipelines.login_pipeline(
        identity_store=get_identity_store(),
        token_issuer=get_token_issuer(),
        email=body.email,
        password=body.password,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return success_response(result, "Login successful")


@router.post("/oauth")
async def social_sign_in(request: Request, body: SocialSignInRequest):
    """
    Sign in with a Google ID token.

    Creates the account on first sign-in and links Google to an existing
    account with the same email.
    """
    if body.provider != AuthMethodType.GOOGLE:
        raise BadRequestException(message="Unsupported provider", code="UNSUPPORTED_PROVIDER")

    result = await pipelines.social_signin_pipeline(
        identity_store=get_identity_store(),
        token_issuer=get_token_issuer(),
        google_verifier=get_google_verifier(),
        id_token=body.idToken,
        role=Role(body.role.value),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return success_response(result, "Login successful")


@router.post("/refresh")
async def refresh(
    request: Request,
    body: RefreshRequest,
    authorization: Optional[str] = Header(None),
):
    """
    Exchange a refresh token for a new access token.

    The Authorization header is optional here and may carry an expired
    access token.
    """
    result = await pipelines.refresh_pipeline(
        token_issuer=get_token_issuer(),
        authorization=authorization,
        refresh_token=body.refreshToken,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    return success_response(result, "Token refreshed successfully")


@router.post("/logout")
async def logout(gate: Gate):
    """Logout from the current session."""
    result = await pipelines.logout_pipeline(
        refresh_store=get_refresh_store(),
        session_tracker=get_session_tracker(),
        user_id=str(gate.user_data["_id"]),
        access_token=gate.access_token,
    )
    return success_response(message=result["message"])


@router.get("/me")
async def me(gate: Gate):
    """Get the current user."""
    return success_response({"user": pipelines.format_user_response(gate.user_data)})


# ─────────────────────────────────────────────────────────────────
# Verification codes / passwords
# ─────────────────────────────────────────────────────────────────

@router.post("/token")
async def request_verification_code(body: TokenRequest, gate: Gate):
    """Email the caller a verification code of the requested type."""
    result = await pipelines.request_verification_code_pipeline(
        identity_store=get_identity_store(),
        mail_sender=get_mail_sender(),
        verification_policy=get_verification_policy(),
        user=gate.user_data,
        email=body.email,
        verification_type=body.type,
    )
    return success_response(message=result["message"])


@router.post("/verify-email")
async def verify_email(body: VerifyEmailRequest, gate: Gate):
    """Verify the caller's email with the emailed code."""
    result = await pipelines.verify_email_pipeline(get_identity_store(), gate.user_data, body.token)
    return success_response({"user": result["user"]}, result["message"])


@router.post("/password/forgot")
async def forgot_password(body: ForgotPasswordRequest):
    """
    Request a password reset code.

    Always returns the same response to prevent email enumeration.
    """
    result = await pipelines.forgot_password_pipeline(
        identity_store=get_identity_store(),
        mail_sender=get_mail_sender(),
        verification_policy=get_verification_policy(),
        email=body.email,
    )
    return success_response(message=result["message"])


@router.post("/password/reset")
async def reset_password(body: ResetPasswordRequest):
    """Reset the password with an emailed code. Signs out every device."""
    result = await pipelines.reset_password_pipeline(
        identity_store=get_identity_store(),
        refresh_store=get_refresh_store(),
        session_tracker=get_session_tracker(),
        email=body.email,
        code=body.token,
        new_password=body.newPassword,
    )
    return success_response(message=result["message"])


@router.post("/password/change")
async def change_password(body: ChangePasswordRequest, gate: Gate):
    """Change the password and sign out every other device."""
    result = await pipelines.change_password_pipeline(
        identity_store=get_identity_store(),
        refresh_store=get_refresh_store(),
        session_tracker=get_session_tracker(),
        user=gate.user_data,
        access_token=gate.access_token,
        current_password=body.currentPassword,
        new_password=body.newPassword,
        keep_refresh_token=body.refreshToken,
    )
    return success_response({"revokedSessions": result["revokedSessions"]}, result["message"])


# ─────────────────────────────────────────────────────────────────
# Sessions
# ─────────────────────────────────────────────────────────────────

@router.get("/sessions")
async def get_sessions(gate: Gate):
    """List all active sessions for the current user."""
    sessions = await pipelines.get_sessions_pipeline(
        session_tracker=get_session_tracker(),
        user_id=str(gate.user_data["_id"]),
        access_token=gate.access_token,
    )
    return success_response({"sessions": sessions})


@router.delete("/sessions/{session_id}")
async def revoke_session(session_id: str, gate: Gate):
    """Revoke a specific session. The current session cannot be revoked here."""
    result = await pipelines.revoke_session_pipeline(
        session_tracker=get_session_tracker(),
        user_id=str(gate.user_data["_id"]),
        session_id=session_id,
        access_token=gate.access_token,
    )
    return success_response(message=result["message"])


@router.delete("/sessions")
async def revoke_all_sessions(
    gate: Gate,
    body: Optional[RevokeAllSessionsRequest] = Body(None),
):
    """Revoke every session except the current one."""
    result = await pipelines.revoke_all_sessions_pipeline(
        session_tracker=get_session_tracker(),
        refresh_store=get_refresh_store(),
        user_id=str(gate.user_data["_id"]),
        access_token=gate.access_token,
        keep_refresh_token=body.refreshToken if body else None,
    )
    return success_response({"revokedCount": result["revokedCount"]}, result["message"])


# ─────────────────────────────────────────────────────────────────
# Auth methods
# ─────────────────────────────────────────────────────────────────

@router.post("/methods/link")
async def link_auth_method(body: LinkAuthMethodRequest, gate: Gate):
    """Link Google or Credentials to the current account."""
    result = await pipelines.link_auth_method_pipeline(
        identity_store=get_identity_store(),
        google_verifier=get_google_verifier(),
        user=gate.user_data,
        method_type=body.type,
        id_token=body.idToken,
        password=body.password,
    )
    return success_response({"user": result["user"]}, result["message"])


@router.post("/methods/unlink")
async def unlink_auth_method(body: UnlinkAuthMethodRequest, gate: Gate):
    """Unlink an auth method. The last method cannot be removed."""
    result = await pipelines.unlink_auth_method_pipeline(get_identity_store(), gate.user_data, body.type)
    return success_response({"user": result["user"]}, result["message"])
