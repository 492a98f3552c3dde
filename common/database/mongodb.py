"""
MongoDB connection manager using Beanie ODM.

Beanie registers the document models and builds their indexes at connect
time. Services talk to raw Motor collections through ``db`` so that every
identity mutation stays a single atomic update operator.

Example:
    from common.database import MongoDB
    from aang.models import ALL_DOCUMENT_MODELS

    db = MongoDB()
    await db.connect(
        uri="mongodb://localhost:27017",
        database_name="aang",
        document_models=ALL_DOCUMENT_MODELS,
    )
"""

import logging
from typing import List, Type, Optional

from beanie import init_beanie, Document
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)


class MongoDB:
    """MongoDB connection manager."""

    def __init__(self):
        self._client: Optional[AsyncIOMotorClient] = None
        self._database_name: Optional[str] = None
        self._initialized: bool = False

    async def connect(
        self,
        uri: str,
        database_name: str,
        document_models: List[Type[Document]],
    ) -> None:
        """
        Connect to MongoDB and initialize Beanie with provided models.

        Args:
            uri: MongoDB connection string
            database_name: Name of the database to use
            document_models: Beanie Document classes whose indexes to build
        """
        # Hide credentials
        masked_uri = uri.split("@")[-1] if "@" in uri else uri
        logger.info(f"Connecting to MongoDB: {masked_uri}")
        logger.debug(f"Document models: {[m.__name__ for m in document_models]}")

        try:
            self._client = AsyncIOMotorClient(uri, tz_aware=True)
            self._database_name = database_name

            await init_beanie(
                database=self._client[database_name],
                document_models=document_models,
            )
            self._initialized = True
            logger.info(f"Connected to MongoDB database: {database_name}")
        except Exception as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise

    async def disconnect(self) -> None:
        """Close the MongoDB connection."""
        if self._client:
            logger.info(f"Disconnecting from MongoDB database: {self._database_name}")
            self._client.close()
            self._client = None
            self._database_name = None
            self._initialized = False

    async def ping(self) -> bool:
        """Round-trip to the server. False if disconnected or unreachable."""
        if not self._client:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    @property
    def is_connected(self) -> bool:
        """Check if database is connected and initialized."""
        return self._initialized

    @property
    def db(self) -> AsyncIOMotorDatabase:
        """Get the underlying Motor database instance."""
        if not self._client or not self._database_name:
            raise RuntimeError("Database not connected")
        return self._client[self._database_name]
