"""
Identity aggregate document.

One document per principal. Client, Driver and Admin share this shape and
are told apart by ``role``. The document class registers the collection and
its indexes. Reads and writes go through IdentityStore as atomic operators.
"""

from datetime import datetime
from typing import Optional, List

from beanie import Indexed, PydanticObjectId
from pydantic import BaseModel, Field, EmailStr
from pymongo import ASCENDING, IndexModel

from common.database import BaseDocument, utcnow
from aang.auth.types import AccountStatus, AuthMethodType, Role


class AuthMethod(BaseModel):
    """Embedded auth method entry."""

    type: AuthMethodType
    providerId: Optional[str] = None
    verified: bool = False
    lastUsed: datetime = Field(default_factory=utcnow)
    lastUpdated: Optional[datetime] = None


class SessionEntry(BaseModel):
    """Embedded record of one issued access token."""

    sessionId: PydanticObjectId = Field(default_factory=PydanticObjectId)
    tokenHash: str
    device: str = "Unknown device"
    ip: Optional[str] = None
    createdAt: datetime = Field(default_factory=utcnow)
    lastActive: datetime = Field(default_factory=utcnow)


class AuthPinBlock(BaseModel):
    """Embedded AuthPin state. Absent on the document means no PIN."""

    pinHash: str
    isEnabled: bool = True
    createdAt: datetime = Field(default_factory=utcnow)
    lastUsed: Optional[datetime] = None
    failedAttempts: int = 0
    lockedUntil: Optional[datetime] = None


class IdentityDocument(BaseDocument):
    """User identity with auth methods, sessions and AuthPin block."""

    email: Indexed(EmailStr, unique=True)  # type: ignore
    role: Role = Role.CLIENT
    passwordHash: Optional[str] = None
    fullName: Optional[str] = None
    avatar: Optional[str] = None
    status: AccountStatus = AccountStatus.ACTIVE
    emailVerified: bool = False

    authMethods: List[AuthMethod] = Field(default_factory=list)
    preferredAuthMethod: AuthMethodType = AuthMethodType.CREDENTIALS

    sessionTokens: List[SessionEntry] = Field(default_factory=list)
    authPin: Optional[AuthPinBlock] = None

    emailVerificationToken: Optional[str] = None
    emailVerificationExpiry: Optional[datetime] = None
    resetPasswordToken: Optional[str] = None
    resetPasswordExpiry: Optional[datetime] = None
    authPinResetToken: Optional[str] = None
    authPinResetExpiry: Optional[datetime] = None

    lastLoginAt: Optional[datetime] = None

    class Settings:
        name = "users"
        indexes = [
            IndexModel(
                [("authMethods.type", ASCENDING), ("authMethods.providerId", ASCENDING)],
                name="auth_method_provider",
            ),
            IndexModel([("sessionTokens.sessionId", ASCENDING)], name="session_id"),
        ]
