"""
AuthPin secondary factor.

States per identity: absent -> enabled <-> locked, and enabled <-> disabled
(soft toggle, PIN retained). Lockout bookkeeping is done with atomic
counters on the identity, so concurrent wrong guesses from two devices are
all counted.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from common.auth import (
    TokenCodec,
    TokenError,
    TokenExpiredError,
    hash_secret,
    verify_secret,
)
from common.database import utcnow
from common.utils.exceptions import (
    BadRequestException,
    ConflictException,
    ForbiddenException,
    LockedException,
    NotFoundException,
    UnauthorizedException,
)
from common.utils.password import is_valid_pin
from aang.auth.services.identity_store import IdentityStore
from aang.auth.types import AuthMethodType, AuthPinPolicy

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class AuthPinService:
    """
    Set, verify, update, reset, toggle and remove the AuthPin.
    """

    def __init__(
        self,
        identity_store: IdentityStore,
        token_codec: TokenCodec,
        policy: AuthPinPolicy,
        clock: Clock = utcnow,
    ):
        """
        Initialize AuthPinService.

        Args:
            identity_store: Atomic identity operations
            token_codec: Issues operation-verification tokens
            policy: Attempt limit, lock window and PIN length
            clock: Current time source
        """
        self._store = identity_store
        self._codec = token_codec
        self._policy = policy
        self._clock = clock

    # ─────────────────────────────────────────────────────────────
    # Set
    # ─────────────────────────────────────────────────────────────

    async def set_pin(self, user: Dict[str, Any], pin: str, confirm_pin: str) -> Dict[str, Any]:
        """
        Create the PIN for an identity that has none.

        Raises:
            BadRequestException: Bad format or pin/confirmPin mismatch
            ConflictException: A PIN already exists
        """
        self._check_new_pin(pin, confirm_pin)

        if user.get("authPin"):
            raise ConflictException(
                message="AuthPin already exists. Use update or reset instead",
                code="PIN_EXISTS",
            )

        user_id = str(user["_id"])
        created = await self._store.set_pin(user_id, hash_secret(pin), self._clock())
        if not created:
            raise ConflictException(
                message="AuthPin already exists. Use update or reset instead",
                code="PIN_EXISTS",
            )

        await self._store.add_auth_method(user_id, AuthMethodType.AUTH_PIN, verified=True)

        logger.info(f"AuthPin set for user {user_id}")
        return {"isEnabled": True}

    # ─────────────────────────────────────────────────────────────
    # Verify
    # ─────────────────────────────────────────────────────────────

    async def verify(self, user: Dict[str, Any], pin: str, require_enabled: bool = True) -> None:
        """
        Check ``pin`` against the stored hash, applying the lockout policy.

        Args:
            user: Identity as loaded by the request gate
            pin: Candidate PIN
            require_enabled: Reject a disabled PIN

        Raises:
            NotFoundException: No PIN set
            ForbiddenException: PIN disabled and ``require_enabled``
            LockedException: Inside a lock window, or this failure started one
            BadRequestException: Wrong PIN, with attempts remaining
        """
        user_id = str(user["_id"])
        block = user.get("authPin")

        if not block:
            raise NotFoundException(message="AuthPin is not set", code="PIN_NOT_SET")

        if require_enabled and not block.get("isEnabled", True):
            raise ForbiddenException(message="AuthPin is disabled", code="PIN_DISABLED")

        now = self._clock()
        locked_until = _aware(block.get("lockedUntil"))

        if locked_until and locked_until > now:
            remaining = self._remaining_minutes(locked_until, now)
            logger.warning(f"AuthPin attempt while locked for user {user_id}")
            raise LockedException(
                message=f"AuthPin is locked. Try again in {remaining} minute(s)",
                code="PIN_LOCKED",
                remaining_minutes=remaining,
            )

        if locked_until:
            # Lock window elapsed: start counting from zero again
            await self._store.clear_expired_lock(user_id, block.get("lockedUntil"))

        if verify_secret(pin, block.get("pinHash")):
            await self._store.record_pin_success(user_id, now)
            return

        attempts = await self._store.record_pin_failure(user_id)
        if attempts is None:
            raise NotFoundException(message="AuthPin is not set", code="PIN_NOT_SET")

        if attempts >= self._policy.max_attempts:
            await self._store.lock_pin(user_id, now + timedelta(minutes=self._policy.lock_minutes))
            logger.warning(f"AuthPin locked for user {user_id} after {attempts} failed attempts")
            raise LockedException(
                message=f"Too many failed attempts. AuthPin locked for {self._policy.lock_minutes} minutes",
                code="PIN_LOCKED",
                remaining_minutes=self._policy.lock_minutes,
            )

        remaining_attempts = self._policy.max_attempts - attempts
        raise BadRequestException(
            message=f"Invalid PIN. {remaining_attempts} attempt(s) remaining",
            code="INVALID_PIN",
            details={"attemptsRemaining": remaining_attempts},
        )

    async def verify_for_operation(self, user: Dict[str, Any], pin: str, operation: str) -> Dict[str, Any]:
        """
        Verify the PIN and mint an operation-verification token for ``operation``.
        """
        if not operation:
            raise BadRequestException(message="Operation is required", code="OPERATION_REQUIRED")

        await self.verify(user, pin)

        token = self._codec.create_operation_token(str(user["_id"]), operation, verified_at=self._clock())
        return {
            "verified": True,
            "operation": operation,
            "operationToken": token,
            "expiresIn": int(self._codec.operation_token_expire.total_seconds()),
        }

    def assert_operation_verified(self, token: str, user_id: str, operation: str) -> Dict[str, Any]:
        """
        Check that ``token`` proves a PIN check for ``operation`` by ``user_id``.

        Services guarding a sensitive action (withdrawal, payout change, account
        deletion) call this with the operation token the client obtained from
        ``verify_for_operation``.

        Raises:
            UnauthorizedException: Token missing, expired or invalid
            ForbiddenException: Token issued for another user or operation
        """
        if not token:
            raise UnauthorizedException(message="Operation token is required", code="OPERATION_TOKEN_REQUIRED")

        try:
            claims = self._codec.verify_operation_token(token)
        except TokenExpiredError:
            raise UnauthorizedException(message="Operation verification expired", code="OPERATION_TOKEN_EXPIRED")
        except TokenError:
            raise UnauthorizedException(message="Invalid operation token", code="INVALID_OPERATION_TOKEN")

        if (
            claims.get("userId") != str(user_id)
            or claims.get("operation") != operation
            or claims.get("verified") is not True
        ):
            raise ForbiddenException(
                message="Operation token does not cover this operation",
                code="OPERATION_MISMATCH",
            )

        return claims

    # ─────────────────────────────────────────────────────────────
    # Update / reset
    # ─────────────────────────────────────────────────────────────

    async def update_pin(
        self,
        user: Dict[str, Any],
        current_pin: str,
        new_pin: str,
        confirm_new_pin: str,
    ) -> None:
        """
        Replace the PIN, authorized by the current PIN.
        """
        self._check_new_pin(new_pin, confirm_new_pin)

        if new_pin == current_pin:
            raise BadRequestException(
                message="New PIN must be different from the current PIN",
                code="SAME_PIN",
            )

        await self.verify(user, current_pin, require_enabled=False)

        user_id = str(user["_id"])
        await self._store.update_pin_hash(user_id, hash_secret(new_pin), self._clock())
        logger.info(f"AuthPin updated for user {user_id}")

    async def reset_pin(self, email: str, code: str, new_pin: str, confirm_pin: str) -> Dict[str, Any]:
        """
        Replace the PIN block wholesale, authorized by an emailed reset code.

        Raises:
            BadRequestException: Bad PIN, or code invalid/expired
        """
        self._check_new_pin(new_pin, confirm_pin)

        updated = await self._store.reset_pin(email, code, hash_secret(new_pin), self._clock())
        if not updated:
            raise BadRequestException(
                message="Invalid or expired PIN reset token",
                code="INVALID_TOKEN",
            )

        user_id = str(updated["_id"])
        await self._store.add_auth_method(user_id, AuthMethodType.AUTH_PIN, verified=True)

        logger.info(f"AuthPin reset for user {user_id}")
        return updated

    # ─────────────────────────────────────────────────────────────
    # Toggle / remove
    # ─────────────────────────────────────────────────────────────

    async def toggle(self, user: Dict[str, Any], enabled: bool, pin: Optional[str] = None) -> Dict[str, Any]:
        """
        Enable (requires PIN re-entry) or disable (no re-auth) the PIN.
        """
        user_id = str(user["_id"])

        if not user.get("authPin"):
            raise NotFoundException(message="AuthPin is not set", code="PIN_NOT_SET")

        if enabled:
            if not pin:
                raise BadRequestException(message="PIN is required to enable AuthPin", code="PIN_REQUIRED")
            await self.verify(user, pin, require_enabled=False)

        await self._store.set_pin_enabled(user_id, enabled)
        logger.info(f"AuthPin {'enabled' if enabled else 'disabled'} for user {user_id}")
        return {"isEnabled": enabled}

    async def remove(
        self,
        user: Dict[str, Any],
        pin: Optional[str] = None,
        password: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Delete the PIN block, authorized by the PIN or the account password.

        Raises:
            BadRequestException: Neither credential given, or AuthPin is the only method
            UnauthorizedException: Wrong password
        """
        user_id = str(user["_id"])

        if not user.get("authPin"):
            raise NotFoundException(message="AuthPin is not set", code="PIN_NOT_SET")

        if pin:
            await self.verify(user, pin, require_enabled=False)
        elif password:
            if not verify_secret(password, user.get("passwordHash")):
                raise UnauthorizedException(message="Invalid password", code="INVALID_CREDENTIALS")
        else:
            raise BadRequestException(
                message="PIN or password is required",
                code="CREDENTIAL_REQUIRED",
            )

        updated = await self._store.remove_pin(user_id)
        if not updated:
            raise BadRequestException(
                message="Cannot remove the only authentication method",
                code="LAST_AUTH_METHOD",
            )

        fallback = await self._store.fall_back_preferred_method(updated, AuthMethodType.AUTH_PIN)
        if fallback:
            updated["preferredAuthMethod"] = fallback.value

        logger.info(f"AuthPin removed for user {user_id}")
        return updated

    # ─────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────

    def _check_new_pin(self, pin: str, confirm_pin: str) -> None:
        if not is_valid_pin(pin, self._policy.min_digits, self._policy.max_digits):
            raise BadRequestException(
                message=f"PIN must be {self._policy.min_digits}-{self._policy.max_digits} digits",
                code="INVALID_PIN_FORMAT",
            )
        if pin != confirm_pin:
            raise BadRequestException(message="PINs do not match", code="PIN_MISMATCH")

    @staticmethod
    def _remaining_minutes(locked_until: datetime, now: datetime) -> int:
        return max(1, math.ceil((locked_until - now).total_seconds() / 60))
