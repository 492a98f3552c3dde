"""
Token issuance and the refresh flow.

Login-type operations go through ``issue``. ``refresh`` exchanges a refresh
token for a new access token and reissues the refresh token itself only
when it is close to expiry.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pymongo.errors import PyMongoError

from common.auth import (
    TokenCodec,
    TokenError,
    TokenExpiredError,
    TokenMalformedError,
    TokenSignatureError,
    extract_bearer_token,
)
from common.database import utcnow
from common.utils.exceptions import (
    BadRequestException,
    ForbiddenException,
    NotFoundException,
    UnauthorizedException,
)
from aang.auth.services.identity_store import IdentityStore
from aang.auth.services.refresh_store import RefreshStore
from aang.auth.services.session_tracker import SessionTracker
from aang.auth.types import (
    AccountStatus,
    AuthMethodType,
    IssuedTokens,
    RefreshResult,
    RotationPolicy,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class TokenIssuer:
    """
    Mints access/refresh pairs and runs the refresh rotation policy.
    """

    def __init__(
        self,
        token_codec: TokenCodec,
        refresh_store: RefreshStore,
        identity_store: IdentityStore,
        session_tracker: SessionTracker,
        rotation_policy: RotationPolicy,
        clock: Clock = utcnow,
    ):
        self._codec = token_codec
        self._refresh_store = refresh_store
        self._identity_store = identity_store
        self._sessions = session_tracker
        self._rotation = rotation_policy
        self._clock = clock

    @property
    def access_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self._codec.access_token_expire.total_seconds())

    async def issue(
        self,
        user: Dict[str, Any],
        auth_method: AuthMethodType,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> IssuedTokens:
        """
        Issue a token pair after a successful login, signup or social sign-in.

        The new refresh credential replaces any earlier one for the user. A
        new session entry is appended for the access token.
        """
        user_id = str(user["_id"])

        access_token = self._codec.create_access_token(user_id, user["role"], user["email"])
        refresh_token = self._codec.create_refresh_token(user_id, auth_method.value)
        refresh_claims = self._codec.verify_refresh_token(refresh_token)

        await self._refresh_store.upsert_by_user(
            user_id,
            refresh_token,
            expires_at=self._codec.expires_at(refresh_claims),
            auth_method=auth_method.value,
            device=self._sessions.device_label(user_agent),
            ip=ip_address,
        )
        await self._sessions.add_session(user_id, access_token, ip_address, user_agent)
        await self._identity_store.record_login(user_id, auth_method)

        logger.info(f"Issued tokens for user {user_id} via {auth_method.value}")
        return IssuedTokens(access_token=access_token, refresh_token=refresh_token)

    async def refresh(
        self,
        authorization: Optional[str],
        refresh_token: Optional[str],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> RefreshResult:
        """
        Exchange a refresh token for a new access token.

        Args:
            authorization: Authorization header. The access token in it may be
                stale. It is only read for session bookkeeping.
            refresh_token: Refresh token from the request body

        Raises:
            BadRequestException: Refresh token missing or malformed
            UnauthorizedException: Signature invalid, or token expired
            ForbiddenException: Credential revoked, or account not active
            NotFoundException: Identity no longer exists
        """
        if not refresh_token:
            raise BadRequestException(message="Refresh token is required", code="REFRESH_TOKEN_REQUIRED")

        old_access_token = extract_bearer_token(authorization)
        old_access_claims = self._read_stale_access_token(old_access_token)

        claims = await self._verify_refresh_token(refresh_token)
        user_id = claims["id"]
        now = self._clock()

        stored = await self._refresh_store.find_by_user_and_token(user_id, refresh_token)
        if not stored:
            logger.warning(f"Refresh with revoked credential for user {user_id}")
            raise ForbiddenException(message="Refresh token has been revoked", code="REFRESH_REVOKED")

        stored_expiry = stored.get("expiresAt")
        if stored_expiry is not None:
            if stored_expiry.tzinfo is None:
                stored_expiry = stored_expiry.replace(tzinfo=timezone.utc)
            if stored_expiry <= now:
                await self._refresh_store.delete_by_user_and_token(user_id, refresh_token)
                raise ForbiddenException(message="Refresh token has been revoked", code="REFRESH_REVOKED")

        user = await self._identity_store.find_by_id(user_id)
        if not user:
            raise NotFoundException(message="User not found", code="USER_NOT_FOUND")

        status = user.get("status", AccountStatus.ACTIVE.value)
        if status != AccountStatus.ACTIVE.value:
            logger.warning(f"Refresh blocked for non-active account {user_id} ({status})")
            raise ForbiddenException(message=f"Account is {status}", code="ACCOUNT_NOT_ACTIVE")

        new_refresh_token = None
        hours_left = (self._codec.expires_at(claims) - now).total_seconds() / 3600

        if hours_left <= self._rotation.threshold_hours:
            new_refresh_token = self._codec.create_refresh_token(
                user_id, claims.get("authMethod", AuthMethodType.CREDENTIALS.value)
            )
            new_claims = self._codec.verify_refresh_token(new_refresh_token)
            rotated = await self._refresh_store.rotate(
                user_id,
                refresh_token,
                new_refresh_token,
                self._codec.expires_at(new_claims),
            )
            if not rotated:
                # Replaced or deleted by a concurrent login, logout or refresh
                raise ForbiddenException(message="Refresh token has been revoked", code="REFRESH_REVOKED")
            logger.info(f"Refresh token rotated for user {user_id} ({hours_left:.1f}h left)")
        else:
            await self._refresh_store.touch(user_id, refresh_token)

        access_token = self._codec.create_access_token(user_id, user["role"], user["email"])
        await self._sessions.add_session(user_id, access_token, ip_address, user_agent)

        if old_access_claims and old_access_claims.get("id") == user_id:
            await self._sessions.touch(user_id, old_access_token)

        return RefreshResult(
            access_token=access_token,
            refresh_token=new_refresh_token,
            rotated=new_refresh_token is not None,
            user=user,
        )

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _read_stale_access_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        if not token:
            return None
        try:
            return self._codec.verify_access_token(token, verify_exp=False)
        except TokenError as e:
            logger.debug(f"Ignoring unreadable access token on refresh: {e}")
            return None

    async def _verify_refresh_token(self, refresh_token: str) -> Dict[str, Any]:
        try:
            return self._codec.verify_refresh_token(refresh_token)
        except TokenExpiredError:
            await self._delete_expired_credential(refresh_token)
            raise UnauthorizedException(
                message="Refresh token expired. Please log in again",
                code="REFRESH_EXPIRED",
            )
        except TokenSignatureError:
            logger.warning("Refresh token rejected: invalid signature")
            raise UnauthorizedException(message="Invalid refresh token", code="INVALID_REFRESH_TOKEN")
        except TokenMalformedError:
            raise BadRequestException(message="Malformed refresh token", code="MALFORMED_REFRESH_TOKEN")

    async def _delete_expired_credential(self, refresh_token: str) -> None:
        """Best-effort cleanup. Never replaces the expired response."""
        try:
            claims = self._codec.verify_refresh_token(refresh_token, verify_exp=False)
            deleted = await self._refresh_store.delete_by_user_and_token(claims["id"], refresh_token)
            if deleted:
                logger.info(f"Deleted expired refresh credential for user {claims['id']}")
        except (TokenError, KeyError, PyMongoError) as e:
            logger.error(f"Expired refresh cleanup failed: {e}")
