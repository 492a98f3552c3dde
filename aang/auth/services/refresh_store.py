"""
Refresh credential storage.

One row per user in ``refreshTokens``. Writes are keyed by ``userId`` so a
new login overwrites whatever credential the user had before.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase

from common.database import utcnow

logger = logging.getLogger(__name__)


class RefreshStore:
    """
    Durable binding of one active refresh token to a user.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize RefreshStore.

        Args:
            db: MongoDB database connection
        """
        self._collection = db["refreshTokens"]

    async def upsert_by_user(
        self,
        user_id: str,
        token: str,
        expires_at: datetime,
        auth_method: str,
        device: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> None:
        """
        Store the user's refresh credential, replacing any previous one.

        Args:
            user_id: Owner of the credential
            token: Signed refresh token
            expires_at: Token expiry
            auth_method: Auth method the token was issued for
            device: Session label of the issuing device
            ip: Client IP of the issuing request
        """
        now = utcnow()
        await self._collection.update_one(
            {"userId": ObjectId(user_id)},
            {
                "$set": {
                    "token": token,
                    "expiresAt": expires_at,
                    "authMethod": auth_method,
                    "device": device,
                    "ip": ip,
                    "lastUsed": now,
                    "updatedAt": now,
                },
                "$setOnInsert": {"createdAt": now},
            },
            upsert=True,
        )
        logger.debug(f"Refresh credential stored for user {user_id}")

    async def find_by_user_and_token(self, user_id: str, token: str) -> Optional[Dict[str, Any]]:
        """Return the stored credential if it matches both user and token."""
        return await self._collection.find_one({
            "userId": ObjectId(user_id),
            "token": token,
        })

    async def delete_by_user_and_token(self, user_id: str, token: str) -> bool:
        """
        Delete a specific credential.

        Returns:
            True if a row was deleted. Deleting nothing is not an error.
        """
        result = await self._collection.delete_one({
            "userId": ObjectId(user_id),
            "token": token,
        })
        return result.deleted_count > 0

    async def delete_all_by_user(self, user_id: str, except_token: Optional[str] = None) -> int:
        """
        Delete every credential of a user.

        Args:
            user_id: Owner
            except_token: Keep the credential carrying this token

        Returns:
            Number of rows deleted
        """
        query: Dict[str, Any] = {"userId": ObjectId(user_id)}
        if except_token:
            query["token"] = {"$ne": except_token}

        result = await self._collection.delete_many(query)
        if result.deleted_count:
            logger.info(f"Deleted {result.deleted_count} refresh credential(s) for user {user_id}")
        return result.deleted_count

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete every credential already past ``expiresAt``.

        Safe to run concurrently with live traffic.
        """
        result = await self._collection.delete_many({"expiresAt": {"$lte": now or utcnow()}})
        return result.deleted_count

    async def touch(self, user_id: str, token: str) -> bool:
        """Stamp ``lastUsed`` without changing the token."""
        now = utcnow()
        result = await self._collection.update_one(
            {"userId": ObjectId(user_id), "token": token},
            {"$set": {"lastUsed": now, "updatedAt": now}},
        )
        return result.matched_count > 0

    async def rotate(
        self,
        user_id: str,
        old_token: str,
        new_token: str,
        expires_at: datetime,
    ) -> bool:
        """
        Replace the stored token, conditioned on the old one still being current.

        Returns:
            False if the old token was already replaced or deleted
        """
        now = utcnow()
        result = await self._collection.update_one(
            {"userId": ObjectId(user_id), "token": old_token},
            {
                "$set": {
                    "token": new_token,
                    "expiresAt": expires_at,
                    "lastUsed": now,
                    "updatedAt": now,
                }
            },
        )
        return result.matched_count > 0
