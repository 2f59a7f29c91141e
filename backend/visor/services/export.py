"""Exportación del historial filtrado para descarga."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic_core import to_jsonable_python

from visor.core.config import settings
from visor.core.logging import get_logger, log_event
from visor.models.conversation import ExportResult, FilterCriteria, SortDirection, SortSpec
from visor.repositories.conversations import ConversationRepository
from visor.services.query_builder import build_query

logger = get_logger(__name__)

EXPORT_SORT = SortSpec(field="date", direction=SortDirection.ASC)


def export_filename(collection: str, exported_at: datetime) -> str:
    return f"historial-{collection}-{exported_at.date().isoformat()}.json"


def to_jsonable(document: dict[str, Any]) -> dict[str, Any]:
    """ObjectId y otros tipos BSON pasan a texto; fechas a ISO-8601."""
    return to_jsonable_python(document, fallback=str)


class ExportService:
    """Misma ruta de consulta que la vista interactiva, con un tope alto fijo."""

    def __init__(self, repository: ConversationRepository, *, limit: int | None = None) -> None:
        self._repo = repository
        self._limit = limit or settings.export_limit

    @property
    def limit(self) -> int:
        return self._limit

    async def export_history(
        self,
        collection: str,
        filters: FilterCriteria | None = None,
        *,
        now: datetime | None = None,
    ) -> ExportResult:
        exported_at = now or datetime.now(timezone.utc)
        store_query = build_query(collection, filters, EXPORT_SORT)
        documents = await self._repo.query(collection, store_query, self._limit)
        if len(documents) >= self._limit:
            logger.warning(
                "export.limit_reached",
                extra={"collection": collection, "limit": self._limit},
            )
        log_event(logger, "export.completed", collection=collection, count=len(documents))
        return ExportResult(
            filename=export_filename(collection, exported_at),
            exported_at=exported_at,
            count=len(documents),
            documents=[to_jsonable(document) for document in documents],
        )
