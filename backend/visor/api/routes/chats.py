"""Rutas del visor de chats: listado filtrado, selectores y exportación."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from visor.api.deps import get_chat_service, get_export_service
from visor.core.logging import get_logger
from visor.models.conversation import AssistantType, DateRange, FilterCriteria
from visor.repositories.conversations import ConversationRepositoryError, StoreConnectionError
from visor.services.chats import ChatHistoryService, format_phone_number, group_by_session
from visor.services.export import ExportService
from visor.services.query_builder import QueryValidationError, parse_date_bound, parse_sort

router = APIRouter(prefix="/chats", tags=["chats"])

logger = get_logger(__name__)

_COLLECTION_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _validate_collection(coleccion: str) -> str:
    if not _COLLECTION_PATTERN.match(coleccion) or coleccion.startswith("system"):
        raise HTTPException(status_code=400, detail="coleccion_invalida")
    return coleccion


def _parse_date_value(value: str | None, *, field: str, end_of_day: bool = False) -> datetime | None:
    try:
        return parse_date_bound(value, name=field, end_of_day=end_of_day)
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail=f"{field}_invalido") from exc


def _parse_assistant(value: str | None) -> AssistantType | None:
    if not value:
        return None
    try:
        return AssistantType.parse(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="asistente_invalido") from exc


def _build_filters(
    asistente: str | None,
    session_id: str | None,
    fecha_inicio: str | None,
    fecha_fin: str | None,
    busqueda: str | None,
) -> FilterCriteria:
    start = _parse_date_value(fecha_inicio, field="fechaInicio")
    end = _parse_date_value(fecha_fin, field="fechaFin", end_of_day=True)
    try:
        date_range = DateRange(start=start, end=end) if start or end else None
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail="rango_fecha_invalido") from exc
    return FilterCriteria(
        assistant_type=_parse_assistant(asistente),
        session_id=session_id or None,
        date_range=date_range,
        search_text=busqueda or None,
    )


def _failure(status_code: int, coleccion: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "mensaje": "Error al cargar chats",
            "coleccion": coleccion,
            "chats": [],
            "error": str(exc),
        },
    )


@router.get("/{coleccion}", summary="Chats filtrados de una colección")
async def listar_chats(
    coleccion: str,
    asistente: str | None = Query(default=None),
    session_id: str | None = Query(default=None, alias="sessionId"),
    fecha_inicio: str | None = Query(default=None, alias="fechaInicio"),
    fecha_fin: str | None = Query(default=None, alias="fechaFin"),
    busqueda: str | None = Query(default=None),
    ordenar_por: str | None = Query(default=None, alias="ordenarPor"),
    direccion: str | None = Query(default=None),
    limite: int | None = Query(default=None, ge=1),
    service: ChatHistoryService = Depends(get_chat_service),
) -> Any:
    _validate_collection(coleccion)
    filters = _build_filters(asistente, session_id, fecha_inicio, fecha_fin, busqueda)
    try:
        sort = parse_sort(ordenar_por, direccion)
    except QueryValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        records = await service.list_conversations(coleccion, filters, sort, limite)
        sesiones = await service.session_options(coleccion)
    except StoreConnectionError as exc:
        logger.error("chats.store_unavailable", extra={"collection": coleccion, "error": str(exc)})
        return _failure(503, coleccion, exc)
    except ConversationRepositoryError as exc:
        logger.error("chats.query_failed", extra={"collection": coleccion, "error": str(exc)})
        return _failure(502, coleccion, exc)

    grupos = [
        {
            "sessionId": key,
            "label": format_phone_number(key),
            "assistantType": group[0].assistant_type.value,
            "chats": [record.id for record in group],
            "mensajes": sum(record.message_count for record in group),
        }
        for key, group in group_by_session(records).items()
    ]
    return {
        "ok": True,
        "mensaje": f"Chats de {coleccion}",
        "coleccion": coleccion,
        "total": len(records),
        "chats": [record.model_dump(mode="json", by_alias=True) for record in records],
        "grupos": grupos,
        "filtros": filters.model_dump(mode="json", by_alias=True, exclude_none=True),
        "orden": sort.model_dump(mode="json", by_alias=True),
        "sessionIds": [option.model_dump(by_alias=True) for option in sesiones],
        "tiposAsistentes": [assistant.value for assistant in service.assistant_types()],
    }


@router.get("/{coleccion}/sessionids", summary="sessionIds únicos de la colección")
async def listar_session_ids(
    coleccion: str,
    asistente: str | None = Query(default=None),
    service: ChatHistoryService = Depends(get_chat_service),
) -> list[str]:
    _validate_collection(coleccion)
    try:
        return await service.session_ids(coleccion, _parse_assistant(asistente))
    except StoreConnectionError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ConversationRepositoryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("/{coleccion}/asistentes", summary="Tipos de asistentes conocidos")
async def listar_asistentes(coleccion: str) -> list[str]:
    _validate_collection(coleccion)
    return [assistant.value for assistant in ChatHistoryService.assistant_types()]


@router.get("/{coleccion}/exportar", summary="Descarga el historial filtrado en JSON")
async def exportar_historial(
    coleccion: str,
    asistente: str | None = Query(default=None),
    session_id: str | None = Query(default=None, alias="sessionId"),
    fecha_inicio: str | None = Query(default=None, alias="fechaInicio"),
    fecha_fin: str | None = Query(default=None, alias="fechaFin"),
    busqueda: str | None = Query(default=None),
    service: ExportService = Depends(get_export_service),
) -> JSONResponse:
    _validate_collection(coleccion)
    filters = _build_filters(asistente, session_id, fecha_inicio, fecha_fin, busqueda)
    try:
        result = await service.export_history(coleccion, filters)
    except StoreConnectionError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except ConversationRepositoryError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return JSONResponse(
        content=result.documents,
        headers={"Content-Disposition": f"attachment; filename={result.filename}"},
    )
