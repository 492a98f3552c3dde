"""Unit tests for SessionTracker (embedded sessionTokens array)."""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from bson import ObjectId

from aang.auth.services.device_detector import DeviceDetector
from aang.auth.services.session_tracker import SessionTracker
from aang.auth.services.token_hasher import TokenHasher

CHROME_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


@pytest.fixture
def tracker(mock_db):
    return SessionTracker(mock_db, DeviceDetector())


class TestAddSession:
    @pytest.mark.asyncio
    async def test_pushes_hashed_entry_with_device_label(self, tracker, mock_collection, sample_user_id):
        session_id = await tracker.add_session(sample_user_id, "access-token", "10.0.0.1", CHROME_MAC)

        call_args = mock_collection.update_one.call_args
        assert call_args[0][0] == {"_id": ObjectId(sample_user_id)}
        entry = call_args[0][1]["$push"]["sessionTokens"]
        assert entry["sessionId"] == session_id
        assert entry["tokenHash"] == TokenHasher.hash_token("access-token")
        assert entry["device"] == "Chrome on macOS"
        assert entry["ip"] == "10.0.0.1"
        assert "access-token" not in entry.values()

    @pytest.mark.asyncio
    async def test_missing_user_agent_is_unknown_device(self, tracker, mock_collection, sample_user_id):
        await tracker.add_session(sample_user_id, "access-token", None, None)

        entry = mock_collection.update_one.call_args[0][1]["$push"]["sessionTokens"]
        assert entry["device"] == "Unknown device"


class TestRevokeSession:
    @pytest.mark.asyncio
    async def test_never_pulls_the_current_token(self, tracker, mock_collection, sample_user_id):
        mock_collection.update_one.return_value = MagicMock(modified_count=1)
        session_id = str(ObjectId())

        assert await tracker.revoke_session(sample_user_id, session_id, current_access_token="current") is True

        pulled = mock_collection.update_one.call_args[0][1]["$pull"]["sessionTokens"]
        assert pulled["sessionId"] == ObjectId(session_id)
        assert pulled["tokenHash"] == {"$ne": TokenHasher.hash_token("current")}

    @pytest.mark.asyncio
    async def test_invalid_session_id_is_not_found(self, tracker, mock_collection, sample_user_id):
        assert await tracker.revoke_session(sample_user_id, "not-an-id") is False
        mock_collection.update_one.assert_not_called()


class TestRevokeAllSessions:
    @pytest.mark.asyncio
    async def test_keeps_current_and_counts_removed(self, tracker, mock_collection, sample_user_id):
        current_hash = TokenHasher.hash_token("current")
        mock_collection.find_one_and_update.return_value = {
            "_id": ObjectId(sample_user_id),
            "sessionTokens": [
                {"tokenHash": current_hash},
                {"tokenHash": "a"},
                {"tokenHash": "b"},
            ],
        }

        removed = await tracker.revoke_all_sessions(sample_user_id, except_access_token="current")

        assert removed == 2
        update = mock_collection.find_one_and_update.call_args[0][1]
        assert update == {"$pull": {"sessionTokens": {"tokenHash": {"$ne": current_hash}}}}

    @pytest.mark.asyncio
    async def test_without_exception_clears_everything(self, tracker, mock_collection, sample_user_id):
        mock_collection.find_one_and_update.return_value = {
            "sessionTokens": [{"tokenHash": "a"}, {"tokenHash": "b"}],
        }

        assert await tracker.revoke_all_sessions(sample_user_id) == 2
        update = mock_collection.find_one_and_update.call_args[0][1]
        assert update == {"$set": {"sessionTokens": []}}

    @pytest.mark.asyncio
    async def test_missing_user_removes_nothing(self, tracker, mock_collection, sample_user_id):
        mock_collection.find_one_and_update.return_value = None

        assert await tracker.revoke_all_sessions(sample_user_id) == 0


class TestListSessions:
    @pytest.mark.asyncio
    async def test_returns_embedded_entries(self, tracker, mock_collection, sample_user_id):
        entry = {"sessionId": ObjectId(), "tokenHash": "h", "createdAt": datetime.now(timezone.utc)}
        mock_collection.find_one.return_value = {"sessionTokens": [entry]}

        assert await tracker.list_sessions(sample_user_id) == [entry]
