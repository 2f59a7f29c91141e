"""Ruta de lectura interactiva: filtros → consulta → registros canónicos."""

from __future__ import annotations

import re

from visor.core.config import settings
from visor.core.logging import get_logger
from visor.models.conversation import (
    AssistantType,
    ConversationRecord,
    FilterCriteria,
    SessionOption,
    SortSpec,
)
from visor.repositories.conversations import ConversationRepository
from visor.services import normalizer
from visor.services.query_builder import build_predicate, build_query

logger = get_logger(__name__)

_NON_DIGITS = re.compile(r"\D")
_PHONE_PARTS = re.compile(r"^(\d{2,3})(\d{2})(\d{4})(\d{4})$")


def format_phone_number(value: str | None) -> str:
    """Formato legible para sessionIds tipo 5491112345678 → +549 11 1234-5678."""
    if not value:
        return ""
    if len(value) < 10:
        return value
    digits = _NON_DIGITS.sub("", value)
    match = _PHONE_PARTS.match(digits)
    if match:
        return f"+{match[1]} {match[2]} {match[3]}-{match[4]}"
    if len(digits) > 8:
        return f"+{digits[:-8]} {digits[-8:-4]}-{digits[-4:]}"
    return value


def group_by_session(records: list[ConversationRecord]) -> dict[str, list[ConversationRecord]]:
    """Agrupa registros por sessionId respetando el orden de llegada."""
    groups: dict[str, list[ConversationRecord]] = {}
    for record in records:
        groups.setdefault(record.session_id or "", []).append(record)
    return groups


class ChatHistoryService:
    def __init__(self, repository: ConversationRepository, *, max_limit: int | None = None) -> None:
        self._repo = repository
        self._max_limit = max_limit or settings.chats_max_limit

    async def list_conversations(
        self,
        collection: str,
        filters: FilterCriteria | None = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
    ) -> list[ConversationRecord]:
        """Registros normalizados listos para mostrar; excluye conversaciones vacías."""
        effective_limit = min(limit or settings.chats_default_limit, self._max_limit)
        store_query = build_query(collection, filters, sort)
        logger.info(
            "chats.query",
            extra={
                "collection": collection,
                "predicate": store_query.predicate,
                "limit": effective_limit,
                "short_circuit": store_query.matches_nothing,
            },
        )
        documents = await self._repo.query(collection, store_query, effective_limit)
        records = normalizer.normalize_documents(documents, collection)
        visible = [record for record in records if not record.is_empty]
        if len(visible) != len(records):
            logger.debug(
                "chats.empty_records_excluded",
                extra={"collection": collection, "excluded": len(records) - len(visible)},
            )
        return visible

    async def session_ids(
        self,
        collection: str,
        assistant: AssistantType | None = None,
    ) -> list[str]:
        """sessionIds distintos, opcionalmente restringidos a un asistente."""
        predicate = build_predicate(collection, FilterCriteria(assistant_type=assistant))
        if predicate is None:
            return []
        values = await self._repo.distinct_session_ids(collection, predicate or None)
        return sorted(values)

    async def session_options(
        self,
        collection: str,
        assistant: AssistantType | None = None,
    ) -> list[SessionOption]:
        return [
            SessionOption(value=value, label=format_phone_number(value))
            for value in await self.session_ids(collection, assistant)
        ]

    @staticmethod
    def assistant_types() -> list[AssistantType]:
        return AssistantType.known()
