"""Traduce filtros y ordenamiento a consultas MongoDB válidas para ambos esquemas."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from visor.assistants import registry
from visor.models.conversation import (
    AssistantType,
    DateRange,
    FilterCriteria,
    SortDirection,
    SortSpec,
)

# Campo derivado que se materializa al leer: última actividad de la conversación
RECENCY_FIELD = "_recency"

SORTABLE_FIELDS: dict[str, str] = {
    "date": RECENCY_FIELD,
    "sessionId": "sessionId",
    "_id": "_id",
}

TEXT_FIELDS: tuple[str, ...] = ("messages.data.content", "mensajes.texto", "mensaje")


class QueryValidationError(ValueError):
    """Filtros u ordenamiento inválidos; se rechazan antes de consultar."""


class InvalidSortField(QueryValidationError):
    def __init__(self, field_name: str) -> None:
        allowed = ", ".join(sorted(SORTABLE_FIELDS))
        super().__init__(f"Campo de ordenamiento no soportado: {field_name!r} (permitidos: {allowed})")
        self.field_name = field_name


@dataclass(slots=True)
class StoreQuery:
    """Predicado y orden listos para ejecutarse sobre una colección."""

    predicate: dict[str, Any]
    sort: list[tuple[str, int]]
    matches_nothing: bool = False
    derived_fields: dict[str, Any] = field(default_factory=dict)

    def pipeline(self, limit: int) -> list[dict[str, Any]]:
        """Pipeline de agregación con el límite aplicado en el servidor."""
        stages: list[dict[str, Any]] = [{"$match": self.predicate}]
        if self.derived_fields:
            stages.append({"$addFields": self.derived_fields})
        stages.append({"$sort": dict(self.sort)})
        stages.append({"$limit": limit})
        if self.derived_fields:
            stages.append({"$project": {name: 0 for name in self.derived_fields}})
        return stages


def recency_expression() -> dict[str, Any]:
    """Último timestamp de mensajes actuales; si no hay, `fecha` o el último de `mensajes`."""
    return {
        "$ifNull": [
            {"$max": "$messages.timestamp"},
            {"$ifNull": ["$fecha", {"$max": "$mensajes.fecha"}]},
        ]
    }


def _time_condition(start: datetime | None, end: datetime | None, *, inclusive_end: bool) -> dict[str, Any]:
    condition: dict[str, Any] = {}
    if start is not None:
        condition["$gte"] = start
    if end is not None:
        condition["$lte" if inclusive_end else "$lt"] = end
    return condition


def build_activity_predicate(
    start: datetime | None,
    end: datetime | None,
    *,
    inclusive_end: bool = True,
) -> dict[str, Any]:
    """Documentos con al menos un mensaje dentro del intervalo.

    Los documentos de legado sin fecha por mensaje usan la `fecha` del documento.
    """
    condition = _time_condition(start, end, inclusive_end=inclusive_end)
    if not condition:
        return {}
    return {
        "$or": [
            {"messages": {"$elemMatch": {"timestamp": condition}}},
            {"mensajes": {"$elemMatch": {"fecha": condition}}},
            {"mensajes.fecha": {"$exists": False}, "fecha": condition},
        ]
    }


def _name_pattern(aliases: tuple[str, ...]) -> str:
    return "|".join(re.escape(alias) for alias in aliases)


def _first_reply(items: str, is_reply: dict[str, Any], content_path: str) -> dict[str, Any]:
    return {
        "$let": {
            "vars": {
                "first": {
                    "$arrayElemAt": [
                        {
                            "$filter": {
                                "input": items,
                                "cond": {
                                    "$and": [{"$eq": [{"$type": "$$this"}, "object"]}, is_reply]
                                },
                            }
                        },
                        0,
                    ]
                }
            },
            "in": f"$$first.{content_path}",
        }
    }


def first_reply_expression() -> dict[str, Any]:
    """Texto del primer mensaje del asistente en cualquiera de las tres formas; "" si no hay."""
    content = {
        "$switch": {
            "branches": [
                {
                    "case": {"$isArray": "$messages"},
                    "then": _first_reply("$messages", {"$ne": ["$$this.type", "human"]}, "data.content"),
                },
                {
                    "case": {"$isArray": "$mensajes"},
                    "then": _first_reply("$mensajes", {"$ne": ["$$this.esUsuario", True]}, "texto"),
                },
                {"case": {"$ne": ["$esUsuario", True]}, "then": "$mensaje"},
            ],
            "default": None,
        }
    }
    return {
        "$let": {
            "vars": {"content": content},
            "in": {"$cond": [{"$eq": [{"$type": "$$content"}, "string"]}, "$$content", ""]},
        }
    }


def assistant_expression() -> dict[str, Any]:
    """Asistente resuelto en el servidor con la misma precedencia que al normalizar.

    Primero los marcadores de legado en orden del panel, luego los nombres en el
    primer mensaje del asistente en orden de detección, y si no `Desconocido`.
    """
    branches: list[dict[str, Any]] = [
        {
            "case": {
                "$eq": [f"${registry.binding_for_assistant(assistant).legacy_marker}", assistant.value]
            },
            "then": assistant.value,
        }
        for assistant in registry.DASHBOARD_ORDER
    ]
    branches.extend(
        {
            "case": {"$regexMatch": {"input": "$$reply", "regex": _name_pattern(binding.aliases)}},
            "then": binding.assistant.value,
        }
        for binding in registry.detection_order()
    )
    return {
        "$let": {
            "vars": {"reply": first_reply_expression()},
            "in": {"$switch": {"branches": branches, "default": AssistantType.UNKNOWN.value}},
        }
    }


def _assistant_clause(assistant: AssistantType) -> dict[str, Any]:
    """Coincidencia en una colección genérica; `Desconocido` es el complemento exacto."""
    return {"$expr": {"$eq": [assistant_expression(), assistant.value]}}


def _text_clause(search_text: str) -> dict[str, Any]:
    pattern = {"$regex": re.escape(search_text), "$options": "i"}
    return {"$or": [{name: pattern} for name in TEXT_FIELDS]}


def build_predicate(collection: str, filters: FilterCriteria) -> dict[str, Any] | None:
    """Predicado combinado con AND; None cuando la colección no puede coincidir."""
    clauses: list[dict[str, Any]] = []

    if filters.assistant_type is not None:
        binding = registry.binding_for_collection(collection)
        if binding is not None:
            if binding.assistant is not filters.assistant_type:
                return None
        else:
            clauses.append(_assistant_clause(filters.assistant_type))

    if filters.session_id:
        clauses.append({"sessionId": filters.session_id})

    date_range = filters.date_range or DateRange()
    if not date_range.is_open:
        clauses.append(build_activity_predicate(date_range.start, date_range.end))

    if filters.search_text and filters.search_text.strip():
        clauses.append(_text_clause(filters.search_text.strip()))

    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def build_sort(sort: SortSpec) -> tuple[list[tuple[str, int]], dict[str, Any]]:
    try:
        store_field = SORTABLE_FIELDS[sort.field]
    except KeyError as exc:
        raise InvalidSortField(sort.field) from exc
    direction = sort.direction.store_value
    derived = {RECENCY_FIELD: recency_expression()} if store_field == RECENCY_FIELD else {}
    clause = [(store_field, direction)]
    if store_field != "_id":
        clause.append(("_id", direction))
    return clause, derived


def build_query(
    collection: str,
    filters: FilterCriteria | None = None,
    sort: SortSpec | None = None,
) -> StoreQuery:
    """Construye la consulta completa; valida el orden antes de mirar los filtros."""
    sort_clause, derived = build_sort(sort or SortSpec())
    predicate = build_predicate(collection, filters or FilterCriteria())
    if predicate is None:
        return StoreQuery(predicate={}, sort=sort_clause, matches_nothing=True)
    return StoreQuery(predicate=predicate, sort=sort_clause, derived_fields=derived)


def parse_sort(field_name: str | None, direction: str | None) -> SortSpec:
    """Arma un `SortSpec` desde parámetros de texto ("asc"/"desc")."""
    name = (field_name or "date").strip() or "date"
    if name == "fecha":
        name = "date"
    if name not in SORTABLE_FIELDS:
        raise InvalidSortField(name)
    raw_direction = (direction or "desc").strip().lower()
    try:
        parsed_direction = SortDirection(raw_direction)
    except ValueError as exc:
        raise QueryValidationError(f"Dirección de ordenamiento inválida: {direction!r}") from exc
    return SortSpec(field=name, direction=parsed_direction)


def parse_date_bound(value: str | None, *, name: str, end_of_day: bool = False) -> datetime | None:
    """Límite de fecha desde texto ISO-8601; sin zona se asume UTC.

    Con `end_of_day`, una fecha sin hora cubre el día completo.
    """
    if not value or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise QueryValidationError(f"{name}_invalido: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)
    if end_of_day and len(text) == 10:
        parsed = parsed + timedelta(days=1) - timedelta(microseconds=1)
    return parsed
