"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection with Beanie ODM
- auth: Token codec, credential hashing, Google identity verification
- utils: Standard responses, exceptions, password validation
- config: Base settings class
"""

from common.database import MongoDB, BaseDocument
from common.auth import TokenCodec, TokenCodecConfig, hash_secret, verify_secret
from common.utils import (
    success_response,
    error_response,
    APIException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ValidationException,
    validate_password,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    "BaseDocument",
    # Auth
    "TokenCodec",
    "TokenCodecConfig",
    "hash_secret",
    "verify_secret",
    # Utils
    "success_response",
    "error_response",
    "APIException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ValidationException",
    "validate_password",
    # Config
    "BaseAppSettings",
]
