"""
Base document class with timestamp fields.

Example:
    from common.database import BaseDocument

    class Identity(BaseDocument):
        email: str

        class Settings:
            name = "users"
"""

from datetime import datetime, timezone

from beanie import Document
from pydantic import Field


def utcnow() -> datetime:
    """Current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class BaseDocument(Document):
    """
    Base document with ``createdAt`` and ``updatedAt``.

    Stores write through atomic operators and stamp ``updatedAt`` themselves.
    """

    createdAt: datetime = Field(default_factory=utcnow)
    updatedAt: datetime = Field(default_factory=utcnow)
