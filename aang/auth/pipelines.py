"""
Auth system pipeline functions.

Stateless orchestration logic for authentication flows. Routers resolve the
services and pass them in. Pipelines raise APIException subclasses.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from pymongo.errors import DuplicateKeyError

from common.auth import GoogleIdentityVerifier, SocialTokenError, hash_secret, verify_secret
from common.database import utcnow
from common.utils.exceptions import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    InternalServerException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from common.utils.password import validate_password
from aang.auth.services.auth_pin import AuthPinService
from aang.auth.services.identity_store import IdentityStore
from aang.auth.services.mail_sender import MailDeliveryError, MailSender
from aang.auth.services.refresh_store import RefreshStore
from aang.auth.services.session_tracker import SessionTracker
from aang.auth.services.token_hasher import TokenHasher
from aang.auth.services.token_issuer import TokenIssuer
from aang.auth.types import (
    AccountStatus,
    AuthMethodType,
    IssuedTokens,
    Role,
    VerificationPolicy,
    VerificationType,
)

logger = logging.getLogger(__name__)

RESET_REQUESTED_MESSAGE = "If an account exists for that email, a reset code has been sent"


# ─────────────────────────────────────────────────────────────────
# Sign-up / login
# ─────────────────────────────────────────────────────────────────

async def signup_pipeline(
    identity_store: IdentityStore,
    token_issuer: TokenIssuer,
    mail_sender: MailSender,
    verification_policy: VerificationPolicy,
    email: str,
    password: str,
    role: Role,
    full_name: Optional[str],
    ip_address: str,
    user_agent: str,
) -> dict:
    """
    Orchestrates credentials sign-up.

    Creates the identity with a single unverified Credentials method, emails
    a verification code and issues tokens.

    Raises:
        ValidationException: Weak password
        ConflictException: Email already registered
    """
    _require_strong_password(password)

    if await identity_store.find_by_email(email):
        raise ConflictException(message="An account with this email already exists", code="USER_ALREADY_EXISTS")

    try:
        user = await identity_store.create({
            "email": email,
            "role": role.value,
            "fullName": full_name,
            "passwordHash": hash_secret(password),
            "authMethods": [{
                "type": AuthMethodType.CREDENTIALS.value,
                "verified": False,
                "lastUsed": utcnow(),
            }],
            "preferredAuthMethod": AuthMethodType.CREDENTIALS.value,
        })
    except DuplicateKeyError:
        raise ConflictException(message="An account with this email already exists", code="USER_ALREADY_EXISTS")

    verification_sent = True
    try:
        await _issue_verification_code(
            identity_store, mail_sender, verification_policy, user, VerificationType.EMAIL_VERIFICATION
        )
    except MailDeliveryError as e:
        # The account exists either way; the client can ask for a new code
        logger.error(f"Verification email failed for new user {user['_id']}: {e}")
        verification_sent = False

    tokens = await token_issuer.issue(user, AuthMethodType.CREDENTIALS, ip_address, user_agent)

    logger.info(f"User signed up: {user['_id']}")
    return {
        **_token_response(tokens, token_issuer),
        "user": format_user_response(user),
        "emailVerificationSent": verification_sent,
    }


async def login_pipeline(
    identity_store: IdentityStore,
    token_issuer: TokenIssuer,
    email: str,
    password: str,
    ip_address: str,
    user_agent: str,
) -> dict:
    """
    Orchestrates email + password login.

    Raises:
        UnauthorizedException: Unknown email or wrong password
        ForbiddenException: Account not active
    """
    user = await identity_store.find_by_email(email)

    if not user or not verify_secret(password, user.get("passwordHash")):
        raise UnauthorizedException(message="Invalid email or password", code="INVALID_CREDENTIALS")

    _require_active(user)

    tokens = await token_issuer.issue(user, AuthMethodType.CREDENTIALS, ip_address, user_agent)

    logger.info(f"User logged in: {user['_id']}")
    return {**_token_response(tokens, token_issuer), "user": format_user_response(user)}


async def social_signin_pipeline(
    identity_store: IdentityStore,
    token_issuer: TokenIssuer,
    google_verifier: GoogleIdentityVerifier,
    id_token: str,
    role: Role,
    ip_address: str,
    user_agent: str,
) -> dict:
    """
    Orchestrates Google sign-in.

    Unknown email creates a Google identity. A known email without Google
    gets Google linked after the cross-account collision check.

    Raises:
        UnauthorizedException: Google token invalid
        ConflictException: Provider identity bound to a different account
        ForbiddenException: Account not active
    """
    profile = await _verify_social_token(google_verifier, id_token)
    provider_id = profile["providerId"]

    user = await identity_store.find_by_email_or_provider(profile["email"], AuthMethodType.GOOGLE, provider_id)

    if not user:
        try:
            user = await identity_store.create({
                "email": profile["email"],
                "role": role.value,
                "fullName": profile.get("name"),
                "avatar": profile.get("picture"),
                "emailVerified": True,
                "authMethods": [{
                    "type": AuthMethodType.GOOGLE.value,
                    "providerId": provider_id,
                    "verified": True,
                    "lastUsed": utcnow(),
                }],
                "preferredAuthMethod": AuthMethodType.GOOGLE.value,
            })
        except DuplicateKeyError:
            raise ConflictException(message="An account with this email already exists", code="USER_ALREADY_EXISTS")
        logger.info(f"User created via Google sign-in: {user['_id']}")
    else:
        google = _find_method(user, AuthMethodType.GOOGLE)
        if google and google.get("providerId") != provider_id:
            logger.warning(f"Google sign-in with a different provider id for user {user['_id']}")
            raise ConflictException(
                message="This account is linked to a different Google account",
                code="PROVIDER_MISMATCH",
            )
        if not google:
            await _link_google(identity_store, user, provider_id)
            user = await identity_store.find_by_id(str(user["_id"]))

    _require_active(user)

    tokens = await token_issuer.issue(user, AuthMethodType.GOOGLE, ip_address, user_agent)
    return {**_token_response(tokens, token_issuer), "user": format_user_response(user)}


async def refresh_pipeline(
    token_issuer: TokenIssuer,
    authorization: Optional[str],
    refresh_token: Optional[str],
    ip_address: str,
    user_agent: str,
) -> dict:
    """
    Exchange a refresh token for a new access token.

    ``refreshToken`` in the result is None unless the refresh token was rotated.
    """
    result = await token_issuer.refresh(authorization, refresh_token, ip_address, user_agent)
    return {**result.to_dict(), "expiresIn": token_issuer.access_expires_in}


async def logout_pipeline(
    refresh_store: RefreshStore,
    session_tracker: SessionTracker,
    user_id: str,
    access_token: str,
) -> dict:
    """
    Orchestrates the logout flow.

    Deletes the user's refresh credential and the session of the current
    access token. Other sessions stay listed until they are revoked.
    """
    await refresh_store.delete_all_by_user(user_id)
    await session_tracker.revoke_by_token(user_id, access_token)

    logger.info(f"User logged out: {user_id}")
    return {"message": "Logged out successfully"}


# ─────────────────────────────────────────────────────────────────
# Verification codes
# ─────────────────────────────────────────────────────────────────

async def request_verification_code_pipeline(
    identity_store: IdentityStore,
    mail_sender: MailSender,
    verification_policy: VerificationPolicy,
    user: dict,
    email: str,
    verification_type: VerificationType,
) -> dict:
    """
    Email the caller a verification code of the given type.

    Raises:
        BadRequestException: Email is not the caller's, or already verified
        InternalServerException: The mail could not be sent
    """
    if email.lower().strip() != user["email"]:
        raise BadRequestException(message="Forbidden request", code="EMAIL_MISMATCH")

    if verification_type == VerificationType.EMAIL_VERIFICATION and user.get("emailVerified"):
        raise BadRequestException(message="Email is already verified", code="EMAIL_ALREADY_VERIFIED")

    try:
        await _issue_verification_code(identity_store, mail_sender, verification_policy, user, verification_type)
    except MailDeliveryError as e:
        logger.error(f"Failed to send {verification_type.value} code to user {user['_id']}: {e}")
        raise InternalServerException(message="Failed to send verification token", code="EMAIL_SEND_FAILED")

    return {"message": "Verification Token sent successfully"}


async def verify_email_pipeline(identity_store: IdentityStore, user: dict, code: str) -> dict:
    """
    Consume the email verification code.

    Raises:
        BadRequestException: Code invalid or expired
    """
    updated = await identity_store.consume_verification_code(
        VerificationType.EMAIL_VERIFICATION,
        code,
        utcnow(),
        user_id=str(user["_id"]),
        set_fields={"emailVerified": True, "authMethods.$[cred].verified": True},
        array_filters=[{"cred.type": AuthMethodType.CREDENTIALS.value}],
    )
    if not updated:
        raise BadRequestException(
            message="Invalid or expired email verification token",
            code="INVALID_TOKEN",
        )

    logger.info(f"Email verified for user {user['_id']}")
    return {"message": "Email verified successfully", "user": format_user_response(updated)}


# ─────────────────────────────────────────────────────────────────
# Passwords
# ─────────────────────────────────────────────────────────────────

async def forgot_password_pipeline(
    identity_store: IdentityStore,
    mail_sender: MailSender,
    verification_policy: VerificationPolicy,
    email: str,
) -> dict:
    """
    Email a password reset code if the account exists.

    The response is identical whether or not the email is registered.
    """
    user = await identity_store.find_by_email(email)

    if user and user.get("status", AccountStatus.ACTIVE.value) == AccountStatus.ACTIVE.value:
        try:
            await _issue_verification_code(
                identity_store, mail_sender, verification_policy, user, VerificationType.PASSWORD_RESET
            )
        except MailDeliveryError as e:
            logger.error(f"Password reset email failed for user {user['_id']}: {e}")

    return {"message": RESET_REQUESTED_MESSAGE}


async def reset_password_pipeline(
    identity_store: IdentityStore,
    refresh_store: RefreshStore,
    session_tracker: SessionTracker,
    email: str,
    code: str,
    new_password: str,
) -> dict:
    """
    Consume a password reset code and set the new password.

    Every session and refresh credential of the account is revoked.

    Raises:
        ValidationException: Weak password
        BadRequestException: Code invalid or expired
    """
    _require_strong_password(new_password)

    updated = await identity_store.consume_verification_code(
        VerificationType.PASSWORD_RESET,
        code,
        utcnow(),
        email=email,
        set_fields={"passwordHash": hash_secret(new_password)},
    )
    if not updated:
        raise BadRequestException(message="Invalid or expired password reset token", code="INVALID_TOKEN")

    user_id = str(updated["_id"])

    # A social-only account gains Credentials by resetting its password
    await identity_store.add_auth_method(user_id, AuthMethodType.CREDENTIALS, verified=True)

    revoked = await session_tracker.revoke_all_sessions(user_id)
    await refresh_store.delete_all_by_user(user_id)

    logger.info(f"Password reset for user {user_id}, {revoked} session(s) revoked")
    return {"message": "Password reset successfully"}


async def change_password_pipeline(
    identity_store: IdentityStore,
    refresh_store: RefreshStore,
    session_tracker: SessionTracker,
    user: dict,
    access_token: str,
    current_password: str,
    new_password: str,
    keep_refresh_token: Optional[str] = None,
) -> dict:
    """
    Change the password and sign out everywhere else.

    Sessions other than the current access token's are pulled. Refresh
    credentials are deleted except one matching ``keep_refresh_token``.

    Raises:
        UnauthorizedException: Current password wrong
        ValidationException: Weak password
        BadRequestException: New password equals the current one
    """
    user_id = str(user["_id"])

    if not verify_secret(current_password, user.get("passwordHash")):
        raise UnauthorizedException(message="Current password is incorrect", code="INVALID_CREDENTIALS")

    _require_strong_password(new_password)

    if current_password == new_password:
        raise BadRequestException(
            message="New password must be different from the current password",
            code="SAME_PASSWORD",
        )

    await identity_store.set_password(user_id, hash_secret(new_password))
    revoked = await session_tracker.revoke_all_sessions(user_id, except_access_token=access_token)
    await refresh_store.delete_all_by_user(user_id, except_token=keep_refresh_token)

    logger.info(f"Password changed for user {user_id}, {revoked} other session(s) revoked")
    return {"message": "Password changed successfully", "revokedSessions": revoked}


# ─────────────────────────────────────────────────────────────────
# Sessions
# ─────────────────────────────────────────────────────────────────

async def get_sessions_pipeline(
    session_tracker: SessionTracker,
    user_id: str,
    access_token: str,
) -> List[dict]:
    """
    Get all sessions for a user.

    Returns:
        List of session dicts with isCurrent flag
    """
    current_hash = TokenHasher.hash_token(access_token)
    sessions = await session_tracker.list_sessions(user_id)

    return [
        {
            "id": str(session["sessionId"]),
            "device": session.get("device"),
            "ip": session.get("ip"),
            "createdAt": session.get("createdAt"),
            "lastActive": session.get("lastActive"),
            "isCurrent": session.get("tokenHash") == current_hash,
        }
        for session in sessions
        if session.get("sessionId")
    ]


async def revoke_session_pipeline(
    session_tracker: SessionTracker,
    user_id: str,
    session_id: str,
    access_token: str,
) -> dict:
    """
    Revoke a specific session.

    Raises:
        BadRequestException: Trying to revoke current session
        NotFoundException: Session not found
    """
    current_hash = TokenHasher.hash_token(access_token)
    sessions = await session_tracker.list_sessions(user_id)

    target_session = next((s for s in sessions if str(s.get("sessionId")) == session_id), None)

    if not target_session:
        raise NotFoundException(message="Session not found", code="SESSION_NOT_FOUND")

    if target_session.get("tokenHash") == current_hash:
        raise BadRequestException(
            message="Cannot revoke current session. Use logout instead.",
            code="CANNOT_REVOKE_CURRENT",
        )

    if not await session_tracker.revoke_session(user_id, session_id, current_access_token=access_token):
        raise NotFoundException(message="Session not found", code="SESSION_NOT_FOUND")

    return {"message": "Session revoked successfully"}


async def revoke_all_sessions_pipeline(
    session_tracker: SessionTracker,
    refresh_store: RefreshStore,
    user_id: str,
    access_token: str,
    keep_refresh_token: Optional[str] = None,
) -> dict:
    """
    Revoke every session except the caller's own.

    Refresh credentials are deleted except one matching ``keep_refresh_token``.

    Returns:
        dict with revoked count and message
    """
    revoked_count = await session_tracker.revoke_all_sessions(user_id, except_access_token=access_token)
    await refresh_store.delete_all_by_user(user_id, except_token=keep_refresh_token)

    return {"revokedCount": revoked_count, "message": "Sessions revoked successfully"}


# ─────────────────────────────────────────────────────────────────
# Auth methods
# ─────────────────────────────────────────────────────────────────

async def link_auth_method_pipeline(
    identity_store: IdentityStore,
    google_verifier: GoogleIdentityVerifier,
    user: dict,
    method_type: AuthMethodType,
    id_token: Optional[str] = None,
    password: Optional[str] = None,
) -> dict:
    """
    Link Google (by ID token) or Credentials (by new password) to the caller.

    Raises:
        BadRequestException: Missing input, or AuthPin requested
        ConflictException: Already linked, or provider bound to another account
        UnauthorizedException: Google token invalid
        ValidationException: Weak password
    """
    user_id = str(user["_id"])

    if method_type == AuthMethodType.AUTH_PIN:
        raise BadRequestException(message="Use the AuthPin endpoints to set a PIN", code="USE_AUTH_PIN_ENDPOINT")

    if _find_method(user, method_type):
        raise ConflictException(message=f"{method_type.value} is already linked", code="METHOD_ALREADY_LINKED")

    if method_type == AuthMethodType.GOOGLE:
        if not id_token:
            raise BadRequestException(message="Google ID token is required", code="ID_TOKEN_REQUIRED")
        profile = await _verify_social_token(google_verifier, id_token)
        await _link_google(identity_store, user, profile["providerId"])
    else:
        if not password:
            raise BadRequestException(message="Password is required", code="PASSWORD_REQUIRED")
        _require_strong_password(password)
        added = await identity_store.add_auth_method(
            user_id,
            AuthMethodType.CREDENTIALS,
            verified=bool(user.get("emailVerified")),
            extra_set={"passwordHash": hash_secret(password)},
        )
        if not added:
            raise ConflictException(message="Credentials is already linked", code="METHOD_ALREADY_LINKED")

    logger.info(f"Linked {method_type.value} for user {user_id}")
    updated = await identity_store.find_by_id(user_id)
    return {"message": f"{method_type.value} linked successfully", "user": format_user_response(updated)}


async def unlink_auth_method_pipeline(
    identity_store: IdentityStore,
    user: dict,
    method_type: AuthMethodType,
) -> dict:
    """
    Unlink an auth method. The last remaining method can never be removed.

    Raises:
        NotFoundException: Method not linked
        BadRequestException: It is the only method, or it is AuthPin
    """
    user_id = str(user["_id"])

    if not _find_method(user, method_type):
        raise NotFoundException(message=f"{method_type.value} is not linked", code="METHOD_NOT_LINKED")

    if len(user.get("authMethods", [])) <= 1:
        raise BadRequestException(message="Cannot remove the only authentication method", code="LAST_AUTH_METHOD")

    if method_type == AuthMethodType.AUTH_PIN:
        raise BadRequestException(message="Use the AuthPin remove endpoint", code="USE_AUTH_PIN_ENDPOINT")

    updated = await identity_store.remove_auth_method(user_id, method_type)
    if not updated:
        # Another request removed a method in the meantime
        raise BadRequestException(message="Cannot remove the only authentication method", code="LAST_AUTH_METHOD")

    fallback = await identity_store.fall_back_preferred_method(updated, method_type)
    if fallback:
        updated["preferredAuthMethod"] = fallback.value

    logger.info(f"Unlinked {method_type.value} for user {user_id}")
    return {"message": f"{method_type.value} unlinked successfully", "user": format_user_response(updated)}


# ─────────────────────────────────────────────────────────────────
# AuthPin
# ─────────────────────────────────────────────────────────────────

async def set_pin_pipeline(auth_pin: AuthPinService, user: dict, pin: str, confirm_pin: str) -> dict:
    result = await auth_pin.set_pin(user, pin, confirm_pin)
    return {"message": "PIN set successfully", **result}


async def verify_pin_pipeline(auth_pin: AuthPinService, user: dict, pin: str, operation: str) -> dict:
    return await auth_pin.verify_for_operation(user, pin, operation)


async def update_pin_pipeline(
    auth_pin: AuthPinService,
    user: dict,
    current_pin: str,
    new_pin: str,
    confirm_new_pin: str,
) -> dict:
    """
    Update the PIN, authorized by the current PIN.

    The request's reset ``token`` is shape-checked by the schema and not
    consumed here.
    """
    await auth_pin.update_pin(user, current_pin, new_pin, confirm_new_pin)
    return {"message": "PIN updated successfully"}


async def request_pin_reset_pipeline(
    identity_store: IdentityStore,
    mail_sender: MailSender,
    verification_policy: VerificationPolicy,
    email: str,
) -> dict:
    """
    Email a PIN reset code if the account exists and has a PIN.

    The response is identical whether or not the email is registered.
    """
    user = await identity_store.find_by_email(email)

    if user and user.get("authPin"):
        try:
            await _issue_verification_code(
                identity_store, mail_sender, verification_policy, user, VerificationType.PIN_VERIFICATION
            )
        except MailDeliveryError as e:
            logger.error(f"PIN reset email failed for user {user['_id']}: {e}")

    return {"message": RESET_REQUESTED_MESSAGE}


async def reset_pin_pipeline(
    auth_pin: AuthPinService,
    email: str,
    code: str,
    new_pin: str,
    confirm_pin: str,
) -> dict:
    await auth_pin.reset_pin(email, code, new_pin, confirm_pin)
    return {"message": "PIN reset successfully"}


async def toggle_pin_pipeline(auth_pin: AuthPinService, user: dict, enabled: bool, pin: Optional[str]) -> dict:
    result = await auth_pin.toggle(user, enabled, pin)
    return {"message": f"PIN {'enabled' if enabled else 'disabled'} successfully", **result}


async def remove_pin_pipeline(
    auth_pin: AuthPinService,
    user: dict,
    pin: Optional[str],
    password: Optional[str],
) -> dict:
    updated = await auth_pin.remove(user, pin=pin, password=password)
    return {"message": "PIN removed successfully", "user": format_user_response(updated)}


# ─────────────────────────────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────────────────────────────

def format_user_response(user: dict) -> dict:
    """Format identity document for API response."""
    auth_pin = user.get("authPin")
    return {
        "id": str(user["_id"]),
        "email": user.get("email"),
        "role": user.get("role"),
        "fullName": user.get("fullName"),
        "avatar": user.get("avatar"),
        "status": user.get("status"),
        "emailVerified": bool(user.get("emailVerified")),
        "authMethods": [
            {
                "type": m.get("type"),
                "verified": bool(m.get("verified")),
                "lastUsed": m.get("lastUsed"),
            }
            for m in user.get("authMethods", [])
        ],
        "preferredAuthMethod": user.get("preferredAuthMethod"),
        "authPin": {"isEnabled": bool(auth_pin.get("isEnabled"))} if auth_pin else None,
        "createdAt": user.get("createdAt"),
        "lastLoginAt": user.get("lastLoginAt"),
    }


def _token_response(tokens: IssuedTokens, token_issuer: TokenIssuer) -> Dict[str, Any]:
    return {
        "accessToken": tokens.access_token,
        "refreshToken": tokens.refresh_token,
        "expiresIn": token_issuer.access_expires_in,
    }


def _find_method(user: dict, method_type: AuthMethodType) -> Optional[dict]:
    return next(
        (m for m in user.get("authMethods", []) if m.get("type") == method_type.value),
        None,
    )


def _require_active(user: dict) -> None:
    status = user.get("status", AccountStatus.ACTIVE.value)
    if status != AccountStatus.ACTIVE.value:
        raise ForbiddenException(message=f"Account is {status}", code="ACCOUNT_NOT_ACTIVE")


def _require_strong_password(password: str) -> None:
    is_valid, errors = validate_password(password)
    if not is_valid:
        raise ValidationException(message="Password does not meet requirements", code="WEAK_PASSWORD", errors=errors)


async def _verify_social_token(google_verifier: GoogleIdentityVerifier, id_token: str) -> dict:
    try:
        return await google_verifier.verify(id_token)
    except SocialTokenError as e:
        logger.warning(f"Google token verification failed: {e}")
        raise UnauthorizedException(message="Invalid Google token", code="INVALID_SOCIAL_TOKEN")


async def _link_google(identity_store: IdentityStore, user: dict, provider_id: str) -> None:
    """Link Google after checking the provider id is not bound to another account."""
    owner = await identity_store.find_by_provider(AuthMethodType.GOOGLE, provider_id)
    if owner and owner["_id"] != user["_id"]:
        logger.warning(f"Google account already bound elsewhere, refused link for user {user['_id']}")
        raise ConflictException(
            message="This Google account is already linked to another user",
            code="PROVIDER_ALREADY_LINKED",
        )

    await identity_store.add_auth_method(
        str(user["_id"]),
        AuthMethodType.GOOGLE,
        provider_id=provider_id,
        verified=True,
        extra_set={"emailVerified": True},
    )


async def _issue_verification_code(
    identity_store: IdentityStore,
    mail_sender: MailSender,
    verification_policy: VerificationPolicy,
    user: dict,
    verification_type: VerificationType,
) -> None:
    """Store a fresh code of ``verification_type`` and email it."""
    code = TokenHasher.generate_numeric_code(verification_policy.code_length)
    expires_at = utcnow() + timedelta(minutes=verification_policy.expire_minutes)

    await identity_store.set_verification_code(str(user["_id"]), verification_type, code, expires_at)

    if verification_type == VerificationType.EMAIL_VERIFICATION:
        await mail_sender.send_verification_token(user["email"], code)
    elif verification_type == VerificationType.PASSWORD_RESET:
        await mail_sender.send_password_reset_token(user["email"], code)
    else:
        await mail_sender.send_pin_reset_token(user["email"], code)
