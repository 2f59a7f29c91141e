"""Repositorio de historiales sobre MongoDB (motor)."""

from __future__ import annotations

from typing import Any, Awaitable, Protocol, TypeVar

from pymongo.errors import ConnectionFailure, PyMongoError

from visor.core.database import StoreUnavailable
from visor.core.logging import get_logger
from visor.services.query_builder import StoreQuery

logger = get_logger(__name__)

T = TypeVar("T")


class ConversationRepositoryError(RuntimeError):
    """Errores del almacén distintos de un resultado vacío."""


class StoreConnectionError(ConversationRepositoryError, ConnectionError):
    """MongoDB no está disponible; distinto de "ningún documento coincide"."""


class DatabaseProvider(Protocol):
    async def get_database(self) -> Any: ...


class ConversationRepository:
    """Ejecuta consultas de solo lectura sobre las colecciones de historial."""

    def __init__(self, store: DatabaseProvider) -> None:
        self._store = store

    async def query(
        self,
        collection: str,
        store_query: StoreQuery,
        limit: int,
    ) -> list[dict[str, Any]]:
        """Documentos crudos que cumplen la consulta, como mucho `limit`."""
        if store_query.matches_nothing:
            logger.debug("repository.short_circuit", extra={"collection": collection})
            return []
        if limit < 1:
            raise ValueError("limit debe ser positivo")
        pipeline = store_query.pipeline(limit)
        database = await self._database()
        cursor = database[collection].aggregate(pipeline)
        return await self._guard(collection, "query", cursor.to_list(length=limit))

    async def count(self, collection: str, predicate: dict[str, Any] | None = None) -> int:
        database = await self._database()
        return await self._guard(
            collection, "count", database[collection].count_documents(predicate or {})
        )

    async def aggregate(self, collection: str, pipeline: list[dict[str, Any]]) -> list[dict[str, Any]]:
        database = await self._database()
        cursor = database[collection].aggregate(pipeline)
        return await self._guard(collection, "aggregate", cursor.to_list(length=None))

    async def distinct_session_ids(
        self,
        collection: str,
        predicate: dict[str, Any] | None = None,
    ) -> set[str]:
        database = await self._database()
        values = await self._guard(
            collection,
            "distinct",
            database[collection].distinct("sessionId", predicate or {}),
        )
        return {str(value) for value in values if value not in (None, "")}

    async def _database(self) -> Any:
        try:
            return await self._store.get_database()
        except StoreUnavailable as exc:
            raise StoreConnectionError(str(exc)) from exc

    async def _guard(self, collection: str, operation: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except ConnectionFailure as exc:
            logger.error(
                "repository.connection_failed",
                extra={"collection": collection, "operation": operation, "error": str(exc)},
            )
            raise StoreConnectionError(f"MongoDB no disponible: {exc}") from exc
        except PyMongoError as exc:
            logger.error(
                "repository.operation_failed",
                extra={"collection": collection, "operation": operation, "error": str(exc)},
            )
            raise ConversationRepositoryError(f"Error consultando {collection}: {exc}") from exc
