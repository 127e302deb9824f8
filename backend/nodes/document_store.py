"""MongoDB-compatible document store used by mongodb nodes."""

from typing import Any, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient

from app.config import Settings

logger = structlog.get_logger(__name__)


class MotorDocumentStore:
    """Thin wrapper that hands out motor collections by name."""

    def __init__(self, client: AsyncIOMotorClient, database: str):
        self._client = client
        self._db = client[database]

    @classmethod
    def from_settings(cls, settings: Settings) -> Optional["MotorDocumentStore"]:
        """Build a store from ``MONGO_URL``; None when it is not configured."""
        if not settings.MONGO_URL:
            return None
        client = AsyncIOMotorClient(settings.MONGO_URL)
        logger.info("Document store configured", database=settings.MONGO_DATABASE)
        return cls(client, settings.MONGO_DATABASE)

    def collection(self, name: str) -> Any:
        return self._db.get_collection(name)

    def close(self) -> None:
        self._client.close()
