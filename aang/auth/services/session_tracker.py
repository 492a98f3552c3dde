"""
Session bookkeeping for issued access tokens.

Sessions live in the identity document's ``sessionTokens`` array. Each
entry is addressed by its own ``sessionId`` and stores a SHA-256 hash of
the access token, never the token itself.
"""

import logging
from typing import Optional, List, Dict, Any

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from common.database import utcnow
from aang.auth.services.token_hasher import TokenHasher
from aang.auth.services.device_detector import DeviceDetector
from aang.auth.services.identity_store import to_object_id

logger = logging.getLogger(__name__)


class SessionTracker:
    """
    Appends, touches, lists and revokes embedded session entries.
    """

    def __init__(self, db: AsyncIOMotorDatabase, device_detector: DeviceDetector):
        """
        Initialize SessionTracker.

        Args:
            db: MongoDB database connection
            device_detector: Service for parsing User-Agent
        """
        self._users_collection = db["users"]
        self._device_detector = device_detector

    async def add_session(
        self,
        user_id: str,
        access_token: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> ObjectId:
        """
        Record a newly issued access token.

        Returns:
            The new entry's sessionId
        """
        now = utcnow()

        session = {
            "sessionId": ObjectId(),
            "tokenHash": TokenHasher.hash_token(access_token),
            "device": self.device_label(user_agent),
            "ip": ip_address,
            "createdAt": now,
            "lastActive": now,
        }

        await self._users_collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$push": {"sessionTokens": session}},
        )

        logger.info(f"Session created for user {user_id}")
        return session["sessionId"]

    def device_label(self, user_agent: Optional[str]) -> str:
        """Human-readable device name, e.g. "Chrome on macOS"."""
        return self._device_detector.detect(user_agent or "")["displayName"]

    async def touch(self, user_id: str, access_token: str) -> bool:
        """Update ``lastActive`` on the session issued for ``access_token``."""
        result = await self._users_collection.update_one(
            {
                "_id": to_object_id(user_id),
                "sessionTokens.tokenHash": TokenHasher.hash_token(access_token),
            },
            {"$set": {"sessionTokens.$.lastActive": utcnow()}},
        )
        return result.modified_count > 0

    async def list_sessions(self, user_id: str) -> List[Dict[str, Any]]:
        """Return the user's session entries."""
        user = await self._users_collection.find_one(
            {"_id": to_object_id(user_id)},
            {"sessionTokens": 1},
        )
        if not user:
            return []
        return user.get("sessionTokens", [])

    async def revoke_session(
        self,
        user_id: str,
        session_id: str,
        current_access_token: Optional[str] = None,
    ) -> bool:
        """
        Remove one session by id.

        When ``current_access_token`` is given, the entry for that token is
        never removed even if its id is passed.

        Returns:
            True if removed, False if not found
        """
        try:
            session_oid = ObjectId(session_id)
        except (InvalidId, TypeError):
            return False

        match: Dict[str, Any] = {"sessionId": session_oid}
        if current_access_token:
            match["tokenHash"] = {"$ne": TokenHasher.hash_token(current_access_token)}

        result = await self._users_collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$pull": {"sessionTokens": match}},
        )

        if result.modified_count > 0:
            logger.info(f"Session {session_id} revoked for user {user_id}")
            return True

        return False

    async def revoke_by_token(self, user_id: str, access_token: str) -> bool:
        """Remove the session issued for ``access_token`` (logout)."""
        result = await self._users_collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$pull": {"sessionTokens": {"tokenHash": TokenHasher.hash_token(access_token)}}},
        )
        return result.modified_count > 0

    async def revoke_all_sessions(
        self,
        user_id: str,
        except_access_token: Optional[str] = None,
    ) -> int:
        """
        Remove every session, optionally keeping the one for ``except_access_token``.

        Returns:
            Number of sessions removed
        """
        if except_access_token:
            except_hash = TokenHasher.hash_token(except_access_token)
            update = {"$pull": {"sessionTokens": {"tokenHash": {"$ne": except_hash}}}}
        else:
            except_hash = None
            update = {"$set": {"sessionTokens": []}}

        before = await self._users_collection.find_one_and_update(
            {"_id": to_object_id(user_id)},
            update,
            projection={"sessionTokens.tokenHash": 1},
            return_document=ReturnDocument.BEFORE,
        )

        if not before:
            return 0

        removed_count = sum(
            1 for s in before.get("sessionTokens", [])
            if s.get("tokenHash") != except_hash
        )

        logger.info(f"Revoked {removed_count} sessions for user {user_id}")
        return removed_count
