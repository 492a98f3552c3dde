"""
Identity aggregate storage.

Every mutation here is a single field-scoped update operator against the
``users`` collection, so two devices changing disjoint parts of the same
identity (a session append and a PIN failure, say) never overwrite each
other. No method reads a document, edits it and writes it back.
"""

import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Union

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from common.database import utcnow
from aang.auth.types import AuthMethodType, VerificationType, VERIFICATION_FIELDS

logger = logging.getLogger(__name__)

# Matches while the account keeps at least one auth method after a $pull
HAS_SECOND_METHOD = {"authMethods.1": {"$exists": True}}


def to_object_id(user_id: Union[str, ObjectId]) -> ObjectId:
    return user_id if isinstance(user_id, ObjectId) else ObjectId(user_id)


class IdentityStore:
    """
    Atomic operations on the identity aggregate.
    """

    def __init__(self, db: AsyncIOMotorDatabase):
        """
        Initialize IdentityStore.

        Args:
            db: MongoDB database connection
        """
        self._collection = db["users"]

    # ─────────────────────────────────────────────────────────────
    # Lookup / creation
    # ─────────────────────────────────────────────────────────────

    async def find_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Find an identity by id. A malformed id finds nothing."""
        try:
            oid = to_object_id(user_id)
        except (InvalidId, TypeError):
            return None
        return await self._collection.find_one({"_id": oid})

    async def find_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Find an identity by email (stored lower-cased)."""
        return await self._collection.find_one({"email": email.lower().strip()})

    async def find_by_provider(
        self,
        method_type: AuthMethodType,
        provider_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Find the identity that has auth method ``method_type`` bound to ``provider_id``."""
        return await self._collection.find_one({
            "authMethods": {
                "$elemMatch": {"type": method_type.value, "providerId": provider_id}
            }
        })

    async def find_by_email_or_provider(
        self,
        email: str,
        method_type: AuthMethodType,
        provider_id: str,
    ) -> Optional[Dict[str, Any]]:
        """Find an identity matching either the email or the provider binding."""
        return await self._collection.find_one({
            "$or": [
                {"email": email.lower().strip()},
                {"authMethods": {"$elemMatch": {"type": method_type.value, "providerId": provider_id}}},
            ]
        })

    async def create(self, identity: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a new identity.

        Raises:
            ValueError: If ``authMethods`` is empty
            pymongo.errors.DuplicateKeyError: If the email is taken
        """
        if not identity.get("authMethods"):
            raise ValueError("An identity needs at least one auth method")

        now = utcnow()
        document = {
            "status": "active",
            "emailVerified": False,
            "sessionTokens": [],
            "createdAt": now,
            "updatedAt": now,
            **identity,
            "email": identity["email"].lower().strip(),
        }
        result = await self._collection.insert_one(document)
        document["_id"] = result.inserted_id
        logger.info(f"Created identity {result.inserted_id} with role {document.get('role')}")
        return document

    # ─────────────────────────────────────────────────────────────
    # Auth methods
    # ─────────────────────────────────────────────────────────────

    async def add_auth_method(
        self,
        user_id: str,
        method_type: AuthMethodType,
        provider_id: Optional[str] = None,
        verified: bool = False,
        extra_set: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Append an auth method unless one of that type already exists.

        Returns:
            True if the method was added
        """
        now = utcnow()
        method: Dict[str, Any] = {"type": method_type.value, "verified": verified, "lastUsed": now}
        if provider_id:
            method["providerId"] = provider_id

        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "authMethods.type": {"$ne": method_type.value}},
            {
                "$push": {"authMethods": method},
                "$set": {"updatedAt": now, **(extra_set or {})},
            },
        )
        return result.modified_count > 0

    async def remove_auth_method(
        self,
        user_id: str,
        method_type: AuthMethodType,
    ) -> Optional[Dict[str, Any]]:
        """
        Pull an auth method, refusing to leave the account with none.

        Removing Credentials also drops the password hash.

        Returns:
            The updated identity, or None if the method is absent or is the last one
        """
        update: Dict[str, Any] = {
            "$pull": {"authMethods": {"type": method_type.value}},
            "$set": {"updatedAt": utcnow()},
        }
        if method_type == AuthMethodType.CREDENTIALS:
            update["$unset"] = {"passwordHash": ""}

        return await self._collection.find_one_and_update(
            {
                "_id": to_object_id(user_id),
                "authMethods.type": method_type.value,
                **HAS_SECOND_METHOD,
            },
            update,
            return_document=ReturnDocument.AFTER,
        )

    async def replace_preferred_method(
        self,
        user_id: str,
        removed: AuthMethodType,
        fallback: AuthMethodType,
    ) -> bool:
        """Switch ``preferredAuthMethod`` to ``fallback`` only if it still points at ``removed``."""
        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "preferredAuthMethod": removed.value},
            {"$set": {"preferredAuthMethod": fallback.value, "updatedAt": utcnow()}},
        )
        return result.modified_count > 0

    async def record_login(self, user_id: str, method_type: AuthMethodType) -> None:
        """Stamp ``lastUsed`` on the method used and ``lastLoginAt`` on the identity."""
        now = utcnow()
        await self._collection.update_one(
            {"_id": to_object_id(user_id), "authMethods.type": method_type.value},
            {"$set": {"authMethods.$.lastUsed": now, "lastLoginAt": now}},
        )

    async def set_password(self, user_id: str, password_hash: str) -> None:
        now = utcnow()
        await self._collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {"passwordHash": password_hash, "updatedAt": now}},
        )

    # ─────────────────────────────────────────────────────────────
    # Verification codes
    # ─────────────────────────────────────────────────────────────

    async def set_verification_code(
        self,
        user_id: str,
        verification_type: VerificationType,
        code: str,
        expires_at: datetime,
    ) -> None:
        """Store a verification code, overwriting any previous code of the same type."""
        token_field, expiry_field = VERIFICATION_FIELDS[verification_type]
        await self._collection.update_one(
            {"_id": to_object_id(user_id)},
            {"$set": {token_field: code, expiry_field: expires_at, "updatedAt": utcnow()}},
        )

    async def consume_verification_code(
        self,
        verification_type: VerificationType,
        code: str,
        now: datetime,
        user_id: Optional[str] = None,
        email: Optional[str] = None,
        set_fields: Optional[Dict[str, Any]] = None,
        array_filters: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Match an unexpired code, clear it and apply ``set_fields`` in one update.

        The identity is selected by ``user_id`` or by ``email``.

        Returns:
            The updated identity, or None if nothing matched
        """
        token_field, expiry_field = VERIFICATION_FIELDS[verification_type]
        query: Dict[str, Any] = {token_field: code, expiry_field: {"$gt": now}}
        if user_id:
            query["_id"] = to_object_id(user_id)
        elif email:
            query["email"] = email.lower().strip()
        else:
            raise ValueError("user_id or email is required")

        kwargs: Dict[str, Any] = {"return_document": ReturnDocument.AFTER}
        if array_filters:
            kwargs["array_filters"] = array_filters

        return await self._collection.find_one_and_update(
            query,
            {
                "$set": {"updatedAt": utcnow(), **(set_fields or {})},
                "$unset": {token_field: "", expiry_field: ""},
            },
            **kwargs,
        )

    # ─────────────────────────────────────────────────────────────
    # AuthPin block
    # ─────────────────────────────────────────────────────────────

    async def set_pin(self, user_id: str, pin_hash: str, now: datetime) -> bool:
        """
        Create the PIN block if none exists.

        Returns:
            False if the identity already has a PIN
        """
        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin": {"$exists": False}},
            {"$set": {"authPin": self._fresh_pin_block(pin_hash, now), "updatedAt": now}},
        )
        return result.modified_count > 0

    async def record_pin_failure(self, user_id: str) -> Optional[int]:
        """
        Increment the failure counter.

        Returns:
            The counter after the increment, or None if there is no PIN
        """
        updated = await self._collection.find_one_and_update(
            {"_id": to_object_id(user_id), "authPin": {"$exists": True}},
            {"$inc": {"authPin.failedAttempts": 1}},
            projection={"authPin.failedAttempts": 1},
            return_document=ReturnDocument.AFTER,
        )
        if not updated:
            return None
        return updated["authPin"]["failedAttempts"]

    async def lock_pin(self, user_id: str, locked_until: datetime) -> None:
        await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin": {"$exists": True}},
            {"$set": {"authPin.lockedUntil": locked_until}},
        )

    async def clear_expired_lock(self, user_id: str, locked_until: datetime) -> bool:
        """
        Reset the counter once a lock window has elapsed.

        Conditioned on the stored ``lockedUntil`` so a lock set by a
        concurrent request in the meantime is left alone.
        """
        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin.lockedUntil": locked_until},
            {"$set": {"authPin.failedAttempts": 0, "authPin.lockedUntil": None}},
        )
        return result.modified_count > 0

    async def record_pin_success(self, user_id: str, now: datetime) -> None:
        await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin": {"$exists": True}},
            {
                "$set": {
                    "authPin.failedAttempts": 0,
                    "authPin.lockedUntil": None,
                    "authPin.lastUsed": now,
                }
            },
        )

    async def update_pin_hash(self, user_id: str, pin_hash: str, now: datetime) -> bool:
        """Replace the PIN hash and stamp the AuthPin method's ``lastUpdated``."""
        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin": {"$exists": True}},
            {
                "$set": {
                    "authPin.pinHash": pin_hash,
                    "authPin.lastUsed": now,
                    "authMethods.$[pin].lastUpdated": now,
                    "updatedAt": now,
                }
            },
            array_filters=[{"pin.type": AuthMethodType.AUTH_PIN.value}],
        )
        return result.matched_count > 0

    async def reset_pin(
        self,
        email: str,
        code: str,
        pin_hash: str,
        now: datetime,
    ) -> Optional[Dict[str, Any]]:
        """
        Consume a PIN reset code and overwrite the PIN block wholesale.

        Returns:
            The updated identity, or None if the code did not match
        """
        return await self.consume_verification_code(
            VerificationType.PIN_VERIFICATION,
            code,
            now,
            email=email,
            set_fields={
                "authPin": self._fresh_pin_block(pin_hash, now),
                "authMethods.$[pin].verified": True,
                "authMethods.$[pin].lastUpdated": now,
            },
            array_filters=[{"pin.type": AuthMethodType.AUTH_PIN.value}],
        )

    async def set_pin_enabled(self, user_id: str, enabled: bool) -> bool:
        result = await self._collection.update_one(
            {"_id": to_object_id(user_id), "authPin": {"$exists": True}},
            {"$set": {"authPin.isEnabled": enabled, "updatedAt": utcnow()}},
        )
        return result.matched_count > 0

    async def remove_pin(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Delete the PIN block and strip the AuthPin method.

        Refused when AuthPin is the account's only method.

        Returns:
            The updated identity, or None if refused
        """
        return await self._collection.find_one_and_update(
            {
                "_id": to_object_id(user_id),
                "authPin": {"$exists": True},
                "$or": [
                    {"authMethods.type": {"$ne": AuthMethodType.AUTH_PIN.value}},
                    HAS_SECOND_METHOD,
                ],
            },
            {
                "$unset": {"authPin": ""},
                "$pull": {"authMethods": {"type": AuthMethodType.AUTH_PIN.value}},
                "$set": {"updatedAt": utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def _fresh_pin_block(pin_hash: str, now: datetime) -> Dict[str, Any]:
        return {
            "pinHash": pin_hash,
            "isEnabled": True,
            "createdAt": now,
            "lastUsed": None,
            "failedAttempts": 0,
            "lockedUntil": None,
        }

    async def fall_back_preferred_method(
        self,
        identity: Dict[str, Any],
        removed: AuthMethodType,
    ) -> Optional[AuthMethodType]:
        """
        After ``removed`` was pulled, point ``preferredAuthMethod`` at the first
        remaining method (or Credentials) if it still names ``removed``.

        Args:
            identity: The identity as returned after the removal

        Returns:
            The fallback applied, or None if the preference was unaffected
        """
        if identity.get("preferredAuthMethod") != removed.value:
            return None

        remaining = identity.get("authMethods") or []
        fallback = AuthMethodType(remaining[0]["type"]) if remaining else AuthMethodType.CREDENTIALS
        await self.replace_preferred_method(str(identity["_id"]), removed, fallback)
        return fallback
