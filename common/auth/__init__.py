"""
Authentication module - token codec, credential hashing, social verification.
"""

from common.auth.token_codec import (
    TokenCodec,
    TokenCodecConfig,
    TokenError,
    TokenExpiredError,
    TokenSignatureError,
    TokenMalformedError,
)
from common.auth.hasher import hash_secret, verify_secret
from common.auth.google_verifier import GoogleIdentityVerifier, SocialTokenError
from common.auth.dependencies import extract_bearer_token, create_gate_dependency

__all__ = [
    "TokenCodec",
    "TokenCodecConfig",
    "TokenError",
    "TokenExpiredError",
    "TokenSignatureError",
    "TokenMalformedError",
    "hash_secret",
    "verify_secret",
    "GoogleIdentityVerifier",
    "SocialTokenError",
    "extract_bearer_token",
    "create_gate_dependency",
]
