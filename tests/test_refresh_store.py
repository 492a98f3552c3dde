"""Unit tests for RefreshStore (single credential per user)."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock
from bson import ObjectId

from aang.auth.services.refresh_store import RefreshStore


@pytest.fixture
def store(mock_db):
    return RefreshStore(mock_db)


class TestUpsertByUser:
    @pytest.mark.asyncio
    async def test_keys_write_by_user_so_login_overwrites(self, store, mock_collection, sample_user_id):
        expires_at = datetime.now(timezone.utc) + timedelta(days=30)

        await store.upsert_by_user(sample_user_id, "tok", expires_at, "Credentials", device="Chrome on macOS")

        call_args = mock_collection.update_one.call_args
        assert call_args[0][0] == {"userId": ObjectId(sample_user_id)}
        update = call_args[0][1]
        assert update["$set"]["token"] == "tok"
        assert update["$set"]["expiresAt"] == expires_at
        assert update["$set"]["authMethod"] == "Credentials"
        assert "createdAt" in update["$setOnInsert"]
        assert call_args[1]["upsert"] is True


class TestDelete:
    @pytest.mark.asyncio
    async def test_delete_by_user_and_token_reports_nothing_deleted(self, store, mock_collection, sample_user_id):
        mock_collection.delete_one.return_value = MagicMock(deleted_count=0)

        assert await store.delete_by_user_and_token(sample_user_id, "tok") is False

    @pytest.mark.asyncio
    async def test_delete_all_can_keep_one_token(self, store, mock_collection, sample_user_id):
        mock_collection.delete_many.return_value = MagicMock(deleted_count=1)

        deleted = await store.delete_all_by_user(sample_user_id, except_token="keep")

        assert deleted == 1
        query = mock_collection.delete_many.call_args[0][0]
        assert query == {"userId": ObjectId(sample_user_id), "token": {"$ne": "keep"}}

    @pytest.mark.asyncio
    async def test_delete_expired_uses_cutoff(self, store, mock_collection):
        now = datetime(2026, 5, 1, tzinfo=timezone.utc)
        mock_collection.delete_many.return_value = MagicMock(deleted_count=3)

        assert await store.delete_expired(now) == 3
        assert mock_collection.delete_many.call_args[0][0] == {"expiresAt": {"$lte": now}}


class TestRotate:
    @pytest.mark.asyncio
    async def test_conditioned_on_old_token(self, store, mock_collection, sample_user_id):
        mock_collection.update_one.return_value = MagicMock(matched_count=1)
        expires_at = datetime.now(timezone.utc) + timedelta(days=30)

        assert await store.rotate(sample_user_id, "old", "new", expires_at) is True

        call_args = mock_collection.update_one.call_args
        assert call_args[0][0] == {"userId": ObjectId(sample_user_id), "token": "old"}
        assert call_args[0][1]["$set"]["token"] == "new"

    @pytest.mark.asyncio
    async def test_returns_false_when_replaced_concurrently(self, store, mock_collection, sample_user_id):
        mock_collection.update_one.return_value = MagicMock(matched_count=0)

        assert await store.rotate(sample_user_id, "old", "new", datetime.now(timezone.utc)) is False
