"""
Refresh credential document.

At most one row per user. The unique ``userId`` index enforces the single
active refresh credential, and the TTL index on ``expiresAt`` lets MongoDB
purge rows the cleanup job has not reached yet.
"""

from datetime import datetime
from typing import Optional

from beanie import PydanticObjectId
from pymongo import ASCENDING, IndexModel

from common.database import BaseDocument
from aang.auth.types import AuthMethodType


class RefreshCredentialDocument(BaseDocument):
    """Stored refresh token with device metadata."""

    userId: PydanticObjectId
    token: str
    device: Optional[str] = None
    ip: Optional[str] = None
    authMethod: AuthMethodType = AuthMethodType.CREDENTIALS
    lastUsed: Optional[datetime] = None
    expiresAt: datetime

    class Settings:
        name = "refreshTokens"
        indexes = [
            IndexModel([("userId", ASCENDING)], unique=True, name="user_unique"),
            IndexModel([("expiresAt", ASCENDING)], expireAfterSeconds=0, name="expires_ttl"),
        ]
