"""Tests for the expired refresh token cleanup job."""

import pytest
from datetime import datetime, timezone
from unittest.mock import MagicMock
from pymongo.errors import ServerSelectionTimeoutError

from jobs.refresh_token_cleanup import RefreshTokenCleanupJob


@pytest.mark.asyncio
async def test_reports_deleted_count(mock_db, mock_collection):
    mock_collection.delete_many.return_value = MagicMock(deleted_count=4)
    now = datetime(2026, 6, 1, tzinfo=timezone.utc)

    results = await RefreshTokenCleanupJob(db=mock_db).run(now)

    assert results["deletedCount"] == 4
    assert results["errors"] == []
    assert mock_collection.delete_many.call_args[0][0] == {"expiresAt": {"$lte": now}}


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(mock_db, mock_collection):
    mock_collection.delete_many.side_effect = [MagicMock(deleted_count=2), MagicMock(deleted_count=0)]
    job = RefreshTokenCleanupJob(db=mock_db)

    assert (await job.run())["deletedCount"] == 2
    assert (await job.run())["deletedCount"] == 0


@pytest.mark.asyncio
async def test_database_error_is_reported(mock_db, mock_collection):
    mock_collection.delete_many.side_effect = ServerSelectionTimeoutError("no primary")

    results = await RefreshTokenCleanupJob(db=mock_db).run()

    assert results["deletedCount"] == 0
    assert len(results["errors"]) == 1
