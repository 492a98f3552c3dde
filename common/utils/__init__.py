"""
Utilities module - Common helpers for API responses, exceptions, and validation.
"""

from common.utils.responses import success_response, error_response
from common.utils.exceptions import (
    APIException,
    BadRequestException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    LockedException,
    ValidationException,
    InternalServerException,
)
from common.utils.password import validate_password, is_valid_pin

__all__ = [
    "success_response",
    "error_response",
    "APIException",
    "BadRequestException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "LockedException",
    "ValidationException",
    "InternalServerException",
    "validate_password",
    "is_valid_pin",
]
