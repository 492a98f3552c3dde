"""
Signed bearer token codec.

Issues and verifies the three stateless token classes used by the platform:

- access:    {id, role, email}                      short-lived
- refresh:   {id, authMethod}                       long-lived
- operation: {userId, operation, verified, verifiedAt}  fixed 10-minute window

Every token carries a ``type`` claim so one class can never be replayed as
another, and a ``jti`` so two tokens minted in the same second still differ.

Example:
    codec = TokenCodec(TokenCodecConfig(
        access_secret="a-secret",
        refresh_secret="r-secret",
        operation_secret="o-secret",
    ))

    access = codec.create_access_token("64f...", role="Client", email="a@b.co")
    claims = codec.verify_access_token(access)
    print(claims["id"])
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, Optional

from jose import jwt, JWTError, ExpiredSignatureError


ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"
OPERATION_TOKEN_TYPE = "operation"


class TokenError(Exception):
    """Base error for token verification failures."""


class TokenExpiredError(TokenError):
    """Signature is valid but the token is past its expiry."""


class TokenSignatureError(TokenError):
    """Token is well formed but was not signed with the expected secret."""


class TokenMalformedError(TokenError):
    """Token cannot be parsed, or is not the expected token class."""


@dataclass(frozen=True)
class TokenCodecConfig:
    """Secrets and lifetimes for the token codec."""
    access_secret: str
    refresh_secret: str
    operation_secret: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 30
    operation_token_expire_minutes: int = 10


class TokenCodec:
    """
    Signs and verifies access, refresh and operation-verification tokens.

    Storage-independent: nothing here touches the database.
    """

    def __init__(self, config: TokenCodecConfig):
        self._config = config
        self.access_token_expire = timedelta(minutes=config.access_token_expire_minutes)
        self.refresh_token_expire = timedelta(days=config.refresh_token_expire_days)
        self.operation_token_expire = timedelta(minutes=config.operation_token_expire_minutes)

    # ─────────────────────────────────────────────────────────────
    # Issuance
    # ─────────────────────────────────────────────────────────────

    def create_access_token(
        self,
        user_id: str,
        role: str,
        email: str,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a short-lived access token."""
        claims = {"id": user_id, "role": role, "email": email}
        return self._encode(
            claims,
            ACCESS_TOKEN_TYPE,
            self._config.access_secret,
            expires_delta or self.access_token_expire,
        )

    def create_refresh_token(
        self,
        user_id: str,
        auth_method: str,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """Create a long-lived refresh token."""
        claims = {"id": user_id, "authMethod": auth_method}
        return self._encode(
            claims,
            REFRESH_TOKEN_TYPE,
            self._config.refresh_secret,
            expires_delta or self.refresh_token_expire,
        )

    def create_operation_token(
        self,
        user_id: str,
        operation: str,
        verified_at: Optional[datetime] = None,
    ) -> str:
        """
        Create a token proving an AuthPin check passed for ``operation``.

        The lifetime is fixed by configuration and cannot be overridden per call.
        """
        verified_at = verified_at or datetime.now(timezone.utc)
        claims = {
            "userId": user_id,
            "operation": operation,
            "verified": True,
            "verifiedAt": int(verified_at.timestamp()),
        }
        return self._encode(
            claims,
            OPERATION_TOKEN_TYPE,
            self._config.operation_secret,
            self.operation_token_expire,
        )

    # ─────────────────────────────────────────────────────────────
    # Verification
    # ─────────────────────────────────────────────────────────────

    def verify_access_token(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        """
        Verify an access token.

        Args:
            token: Encoded access token
            verify_exp: Set False to read identity from a token expected to
                be stale (refresh flow). The signature is still enforced.

        Raises:
            TokenExpiredError, TokenSignatureError, TokenMalformedError
        """
        return self._decode(token, ACCESS_TOKEN_TYPE, self._config.access_secret, verify_exp)

    def verify_refresh_token(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        """Verify a refresh token. Same error contract as verify_access_token."""
        return self._decode(token, REFRESH_TOKEN_TYPE, self._config.refresh_secret, verify_exp)

    def verify_operation_token(self, token: str) -> Dict[str, Any]:
        """Verify an operation-verification token. Expiry is always enforced."""
        return self._decode(token, OPERATION_TOKEN_TYPE, self._config.operation_secret, True)

    @staticmethod
    def expires_at(claims: Dict[str, Any]) -> datetime:
        """Expiry of a decoded token as an aware UTC datetime."""
        return datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)

    # ─────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────

    def _encode(
        self,
        claims: Dict[str, Any],
        token_type: str,
        secret: str,
        expires_delta: timedelta,
    ) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            **claims,
            "type": token_type,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + expires_delta,
        }
        return jwt.encode(payload, secret, algorithm=self._config.algorithm)

    def _decode(
        self,
        token: str,
        token_type: str,
        secret: str,
        verify_exp: bool,
    ) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise TokenMalformedError("Token is empty")

        # Parse without verification first so a garbled token is reported
        # as malformed rather than as a signature failure.
        try:
            jwt.get_unverified_claims(token)
        except JWTError as e:
            raise TokenMalformedError(f"Malformed token: {e}")

        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self._config.algorithm],
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except JWTError as e:
            raise TokenSignatureError(f"Invalid token: {e}")

        if claims.get("type") != token_type:
            raise TokenMalformedError(f"Expected a {token_type} token")

        if "exp" not in claims:
            raise TokenMalformedError("Token has no expiry")

        return claims
