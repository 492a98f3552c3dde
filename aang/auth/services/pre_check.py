"""
Request gate run by every protected operation before any domain logic.

Pure function of (Authorization header, identity store): nothing is written
on success or on failure.
"""

import logging
from typing import Optional

from common.auth import (
    TokenCodec,
    TokenExpiredError,
    TokenSignatureError,
    TokenMalformedError,
    extract_bearer_token,
)
from aang.auth.services.identity_store import IdentityStore
from aang.auth.types import AccountStatus, PreCheckResult

logger = logging.getLogger(__name__)


class RequestGate:
    """
    Validates the bearer access token, loads the identity and checks status.
    """

    def __init__(self, token_codec: TokenCodec, identity_store: IdentityStore):
        self._codec = token_codec
        self._store = identity_store

    async def check(self, authorization: Optional[str]) -> PreCheckResult:
        """
        Run the gate.

        Args:
            authorization: Raw Authorization header value

        Returns:
            PreCheckResult. On success it carries the identity and the raw
            access token. An expired token yields 401 with token_expired=True.
        """
        token = extract_bearer_token(authorization)
        if not token:
            return PreCheckResult.fail(
                "Authorization token required", 401, error_code="UNAUTHORIZED",
            )

        try:
            claims = self._codec.verify_access_token(token)
        except TokenExpiredError:
            return PreCheckResult.fail(
                "Access token expired", 401, error_code="TOKEN_EXPIRED", token_expired=True,
            )
        except TokenSignatureError:
            logger.warning("Access token rejected: invalid signature")
            return PreCheckResult.fail("Invalid token", 401, error_code="INVALID_TOKEN")
        except TokenMalformedError:
            return PreCheckResult.fail("Invalid token", 401, error_code="INVALID_TOKEN")

        user_id = claims.get("id")
        if not user_id:
            return PreCheckResult.fail("Invalid token", 401, error_code="INVALID_TOKEN")

        user = await self._store.find_by_id(user_id)
        if not user:
            return PreCheckResult.fail("User not found", 404, error_code="USER_NOT_FOUND")

        status = user.get("status", AccountStatus.ACTIVE.value)
        if status != AccountStatus.ACTIVE.value:
            logger.warning(f"Request from non-active account {user_id} ({status})")
            return PreCheckResult.fail(
                f"Account is {status}", 403, error_code="ACCOUNT_NOT_ACTIVE",
            )

        return PreCheckResult.ok(user, token)
