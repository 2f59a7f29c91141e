"""Estadísticas del panel calculadas sobre las colecciones dedicadas.

Cada estadística es independiente: `get_dashboard_stats` las lanza en paralelo y
una falla solo vacía su propia sección.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Iterable, TypeVar

from visor.assistants import registry
from visor.assistants.registry import AssistantBinding
from visor.core.config import settings
from visor.core.logging import get_logger
from visor.models.conversation import (
    AggregationBucket,
    AssistantAverage,
    AssistantTotal,
    AssistantType,
    ConversationRecord,
    DashboardStats,
    MessageAverages,
    MessagePreview,
    PeriodBuckets,
    RecentConversation,
    SortDirection,
    SortSpec,
)
from visor.repositories.conversations import ConversationRepository
from visor.services import normalizer
from visor.services.query_builder import build_activity_predicate, build_query

logger = get_logger(__name__)

T = TypeVar("T")

ELLIPSIS = "..."

_WEEKDAYS = ("lunes", "martes", "miércoles", "jueves", "viernes", "sábado", "domingo")
_MONTHS = ("ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sept", "oct", "nov", "dic")


class Period(str, Enum):
    """Vista temporal del panel."""

    DAY = "dia"
    WEEK = "semana"
    MONTH = "mes"

    @property
    def step(self) -> timedelta:
        return timedelta(hours=1) if self is Period.DAY else timedelta(days=1)

    @property
    def bucket_count(self) -> int:
        return {Period.DAY: 24, Period.WEEK: 7, Period.MONTH: 30}[self]


def bucket_window(now: datetime, index: int, period: Period) -> tuple[datetime, datetime]:
    """Intervalo semiabierto `[start, end)` del bucket `index` contando hacia atrás desde `now`."""
    end = now - index * period.step
    return end - period.step, end


def bucket_label(start: datetime, period: Period) -> str:
    if period is Period.DAY:
        return f"{start.hour:02d}h"
    if period is Period.WEEK:
        return _WEEKDAYS[start.weekday()]
    return f"{start.day} {_MONTHS[start.month - 1]}"


def truncate_preview(content: str, length: int) -> str:
    if len(content) <= length:
        return content
    return f"{content[:length]}{ELLIPSIS}"


@dataclass(slots=True)
class CollectionMessageStats:
    assistant: AssistantType
    conversations: int
    messages: int


def combine_averages(stats: Iterable[CollectionMessageStats]) -> MessageAverages:
    """Promedio global ponderado: Σ mensajes / Σ conversaciones."""
    total_messages = 0
    total_conversations = 0
    by_assistant: list[AssistantAverage] = []
    for item in stats:
        if item.conversations <= 0:
            continue
        total_messages += item.messages
        total_conversations += item.conversations
        by_assistant.append(
            AssistantAverage(
                assistant_type=item.assistant,
                conversations=item.conversations,
                messages=item.messages,
                average=round(item.messages / item.conversations, 2),
            )
        )
    overall = round(total_messages / total_conversations, 2) if total_conversations else 0.0
    return MessageAverages(overall=overall, by_assistant=by_assistant)


def merge_recent(groups: Iterable[list[RecentConversation]], limit: int) -> list[RecentConversation]:
    """Une los top-K de cada colección y conserva los K más recientes."""
    merged = [item for group in groups for item in group]
    merged.sort(key=lambda item: item.last_activity, reverse=True)
    return merged[:limit]


_MESSAGE_COUNT_PIPELINE: list[dict[str, Any]] = [
    {
        "$project": {
            "cantidad": {
                "$switch": {
                    "branches": [
                        {"case": {"$isArray": "$messages"}, "then": {"$size": "$messages"}},
                        {"case": {"$isArray": "$mensajes"}, "then": {"$size": "$mensajes"}},
                        {"case": {"$eq": [{"$type": "$mensaje"}, "string"]}, "then": 1},
                    ],
                    "default": 0,
                }
            }
        }
    },
    {
        "$group": {
            "_id": None,
            "conversaciones": {"$sum": 1},
            "mensajes": {"$sum": "$cantidad"},
        }
    },
]


class DashboardService:
    def __init__(
        self,
        repository: ConversationRepository,
        *,
        preview_length: int | None = None,
        recent_limit: int | None = None,
    ) -> None:
        self._repo = repository
        self._preview_length = preview_length or settings.preview_length
        self._recent_limit = recent_limit or settings.dashboard_recent_limit

    @staticmethod
    def _bindings(collection: str | None) -> list[AssistantBinding]:
        if collection is None:
            return registry.dedicated_bindings()
        binding = registry.binding_for_collection(collection)
        if binding is None:
            raise ValueError(f"La colección {collection!r} no está dedicada a un asistente")
        return [binding]

    async def total_by_assistant(self) -> list[AssistantTotal]:
        bindings = registry.dedicated_bindings()
        counts = await asyncio.gather(*(self._repo.count(b.collection) for b in bindings))
        return [
            AssistantTotal(assistant_type=b.assistant, count=count, display_color=b.color)
            for b, count in zip(bindings, counts)
        ]

    async def conversations_by_period(
        self,
        period: Period = Period.DAY,
        collection: str | None = None,
        *,
        now: datetime | None = None,
    ) -> list[AggregationBucket]:
        """Conversaciones con actividad por bucket, del más antiguo al más reciente."""
        reference = now or datetime.now(timezone.utc)
        bindings = self._bindings(collection)
        windows = [bucket_window(reference, i, period) for i in range(period.bucket_count)]

        async def count_window(start: datetime, end: datetime) -> int:
            predicate = build_activity_predicate(start, end, inclusive_end=False)
            counts = await asyncio.gather(
                *(self._repo.count(b.collection, predicate) for b in bindings)
            )
            return sum(counts)

        totals = await asyncio.gather(*(count_window(start, end) for start, end in windows))
        buckets = [
            AggregationBucket(label=bucket_label(start, period), count=total, start=start, end=end)
            for (start, end), total in zip(windows, totals)
        ]
        buckets.reverse()
        return buckets

    async def _collection_stats(self, binding: AssistantBinding) -> CollectionMessageStats:
        rows = await self._repo.aggregate(binding.collection, _MESSAGE_COUNT_PIPELINE)
        row = rows[0] if rows else {}
        return CollectionMessageStats(
            assistant=binding.assistant,
            conversations=int(row.get("conversaciones") or 0),
            messages=int(row.get("mensajes") or 0),
        )

    async def average_messages(self, collection: str | None = None) -> MessageAverages:
        bindings = self._bindings(collection)
        stats = await asyncio.gather(*(self._collection_stats(b) for b in bindings))
        return combine_averages(stats)

    def _to_recent(self, record: ConversationRecord) -> RecentConversation:
        last = record.messages[-1] if record.messages else None
        preview = None
        if last is not None:
            preview = MessagePreview(
                role=last.role,
                content=truncate_preview(last.content, self._preview_length),
            )
        return RecentConversation(
            id=record.id,
            session_id=record.session_id,
            assistant_type=record.assistant_type,
            last_activity=record.last_timestamp,
            message_count=record.message_count,
            last_message=preview,
        )

    async def _recent_for(self, binding: AssistantBinding, limit: int) -> list[RecentConversation]:
        store_query = build_query(
            binding.collection, sort=SortSpec(field="date", direction=SortDirection.DESC)
        )
        documents = await self._repo.query(binding.collection, store_query, limit)
        records = normalizer.normalize_documents(documents, binding.collection)
        # Sin fecha real la hora actual los pondría primeros
        return [self._to_recent(record) for record in records if not record.synthetic_timestamp]

    async def recent_conversations(
        self,
        limit: int | None = None,
        collection: str | None = None,
    ) -> list[RecentConversation]:
        k = limit or self._recent_limit
        bindings = self._bindings(collection)
        groups = await asyncio.gather(*(self._recent_for(b, k) for b in bindings))
        return merge_recent(groups, k)

    async def get_dashboard_stats(self, *, now: datetime | None = None) -> DashboardStats:
        """Todas las secciones del panel; cada una degrada a vacío si falla."""
        reference = now or datetime.now(timezone.utc)
        (
            totals,
            per_day,
            per_week,
            per_month,
            averages,
            recent,
        ) = await asyncio.gather(
            _degrade("total_por_asistente", self.total_by_assistant(), []),
            _degrade("conversaciones_por_dia", self.conversations_by_period(Period.DAY, now=reference), []),
            _degrade("conversaciones_por_semana", self.conversations_by_period(Period.WEEK, now=reference), []),
            _degrade("conversaciones_por_mes", self.conversations_by_period(Period.MONTH, now=reference), []),
            _degrade("promedio_mensajes", self.average_messages(), MessageAverages()),
            _degrade("conversaciones_recientes", self.recent_conversations(), []),
        )
        return DashboardStats(
            totals_by_assistant=totals,
            buckets_by_period=PeriodBuckets(day=per_day, week=per_week, month=per_month),
            average_messages=averages,
            recent_conversations=recent,
        )


async def _degrade(branch: str, awaitable: Awaitable[T], fallback: T) -> T:
    try:
        return await awaitable
    except Exception as exc:
        logger.exception("dashboard.branch_failed", extra={"branch": branch, "error": str(exc)})
        return fallback
