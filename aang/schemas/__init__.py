"""
AAng Schemas.

Pydantic models for request/response validation.
"""

from aang.schemas.auth import *
from aang.schemas.auth_pin import *
