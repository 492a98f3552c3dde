"""
Expired refresh token cleanup job.

Deletes refresh credentials whose expiresAt has passed. The TTL index on
refreshTokens.expiresAt does the same lazily; this job makes it prompt and
reports a count. Running it twice in a row is harmless.

Usage:
    Run via CRON:
        0 * * * * cd /path/to/project && python -m jobs.refresh_token_cleanup

    Or run directly:
        python -m jobs.refresh_token_cleanup
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from aang.auth.services.refresh_store import RefreshStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


class RefreshTokenCleanupJob:
    """
    Removes expired refresh credentials.
    """

    def __init__(
        self,
        db_uri: Optional[str] = None,
        db_name: str = "aang",
        db: Optional[AsyncIOMotorDatabase] = None,
    ):
        """
        Initialize the cleanup job.

        Args:
            db_uri: MongoDB URI, used when ``db`` is not given
            db_name: Database name
            db: Existing database handle
        """
        self._client = None
        if db is None:
            self._client = AsyncIOMotorClient(db_uri, tz_aware=True)
            db = self._client[db_name]

        self._refresh_store = RefreshStore(db)

    async def run(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Execute the cleanup.

        Returns:
            Dict with the deleted count and any errors
        """
        logger.info("Starting refresh token cleanup job")
        start_time = datetime.now(timezone.utc)

        results: Dict[str, Any] = {
            "startTime": start_time.isoformat(),
            "deletedCount": 0,
            "errors": [],
        }

        try:
            results["deletedCount"] = await self._refresh_store.delete_expired(now or start_time)
            logger.info(f"Deleted {results['deletedCount']} expired refresh token(s)")
        except PyMongoError as e:
            error_msg = f"Job failed: {e}"
            logger.error(error_msg)
            results["errors"].append(error_msg)

        end_time = datetime.now(timezone.utc)
        results["endTime"] = end_time.isoformat()
        results["durationSeconds"] = (end_time - start_time).total_seconds()

        return results

    async def close(self):
        """Close the database connection if this job opened it."""
        if self._client is not None:
            self._client.close()


async def main():
    """Main entry point for the refresh token cleanup job."""
    from aang.config import settings

    job = RefreshTokenCleanupJob(db_uri=settings.MONGODB_URI, db_name=settings.MONGODB_DATABASE)

    try:
        results = await job.run()
        logger.info(
            f"Cleanup finished in {results['durationSeconds']:.2f}s: "
            f"{results['deletedCount']} deleted, {len(results['errors'])} error(s)"
        )
        sys.exit(1 if results["errors"] else 0)
    finally:
        await job.close()


if __name__ == "__main__":
    asyncio.run(main())
