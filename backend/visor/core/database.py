"""Conexión perezosa y única a MongoDB."""

from __future__ import annotations

import asyncio

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from visor.core.config import Settings
from visor.core.logging import get_logger, log_event

logger = get_logger(__name__)


class StoreUnavailable(ConnectionError):
    """No fue posible establecer la conexión inicial con MongoDB."""


class MongoStore:
    """Crea el cliente motor en el primer uso y lo reutiliza durante la vida del proceso.

    La inicialización está protegida por un `asyncio.Lock`: accesos concurrentes
    al arranque esperan la misma conexión en lugar de abrir varias.
    """

    def __init__(self, settings: Settings) -> None:
        self._uri = settings.mongodb_uri
        self._database_name = settings.mongodb_database
        self._timeout_ms = settings.mongodb_server_selection_timeout_ms
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None
        self._lock = asyncio.Lock()

    @property
    def connected(self) -> bool:
        return self._database is not None

    async def get_database(self) -> AsyncIOMotorDatabase:
        if self._database is not None:
            return self._database
        async with self._lock:
            if self._database is None:
                self._database = await self._connect()
        return self._database

    async def _connect(self) -> AsyncIOMotorDatabase:
        client = AsyncIOMotorClient(self._uri, serverSelectionTimeoutMS=self._timeout_ms)
        try:
            await client.admin.command("ping")
        except PyMongoError as exc:
            client.close()
            logger.error(
                "mongo.connect_failed",
                extra={"database": self._database_name, "error": str(exc)},
            )
            raise StoreUnavailable(f"No se pudo conectar a MongoDB: {exc}") from exc
        self._client = client
        log_event(logger, "mongo.connected", database=self._database_name)
        return client[self._database_name]

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            log_event(logger, "mongo.closed", database=self._database_name)
        self._client = None
        self._database = None
