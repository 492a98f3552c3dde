"""Shared test fixtures for AAng auth tests."""

import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock
from bson import ObjectId

from common.auth import TokenCodec, TokenCodecConfig


@pytest.fixture
def sample_user_id():
    return str(ObjectId())


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, insert_one,
    # count_documents etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db


@pytest.fixture
def token_codec():
    return TokenCodec(TokenCodecConfig(
        access_secret="test-access-secret",
        refresh_secret="test-refresh-secret",
        operation_secret="test-operation-secret",
    ))


@pytest.fixture
def sample_user_doc(sample_user_id):
    now = datetime.now(timezone.utc)
    return {
        "_id": ObjectId(sample_user_id),
        "email": "driver@example.com",
        "role": "Driver",
        "fullName": "Ada Obi",
        "status": "active",
        "emailVerified": True,
        "authMethods": [
            {"type": "Credentials", "verified": True, "lastUsed": now},
        ],
        "preferredAuthMethod": "Credentials",
        "sessionTokens": [],
        "createdAt": now,
        "updatedAt": now,
    }
