"""Rutas del panel de estadísticas."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query

from visor.api.deps import get_dashboard_service
from visor.core.logging import get_logger
from visor.repositories.conversations import ConversationRepositoryError, StoreConnectionError
from visor.services.dashboard import DashboardService, Period

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

logger = get_logger(__name__)

STAT_TYPES = (
    "total-por-asistente",
    "conversaciones-por-dia",
    "conversaciones-por-semana",
    "conversaciones-por-mes",
    "promedio-mensajes",
    "conversaciones-recientes",
)


@router.get("", summary="Todas las estadísticas del panel")
async def dashboard(service: DashboardService = Depends(get_dashboard_service)) -> dict[str, Any]:
    stats = await service.get_dashboard_stats()
    return {"ok": True, "stats": stats.model_dump(mode="json", by_alias=True)}


@router.get("/stats/{tipo}", summary="Una estadística puntual")
async def dashboard_stat(
    tipo: str,
    coleccion: str | None = Query(default=None),
    limite: int | None = Query(default=None, ge=1, le=50),
    service: DashboardService = Depends(get_dashboard_service),
) -> dict[str, Any]:
    if tipo not in STAT_TYPES:
        raise HTTPException(status_code=400, detail="tipo_estadistica_invalido")

    try:
        if tipo == "total-por-asistente":
            data: Any = await service.total_by_assistant()
        elif tipo.startswith("conversaciones-por-"):
            period = {
                "dia": Period.DAY,
                "semana": Period.WEEK,
                "mes": Period.MONTH,
            }[tipo.removeprefix("conversaciones-por-")]
            data = await service.conversations_by_period(period, coleccion)
        elif tipo == "promedio-mensajes":
            data = await service.average_messages(coleccion)
        else:
            data = await service.recent_conversations(limite, coleccion)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreConnectionError as exc:
        logger.error("dashboard.store_unavailable", extra={"tipo": tipo, "error": str(exc)})
        raise HTTPException(status_code=503, detail="Error al cargar estadísticas") from exc
    except ConversationRepositoryError as exc:
        logger.error("dashboard.stat_failed", extra={"tipo": tipo, "error": str(exc)})
        raise HTTPException(status_code=502, detail="Error al cargar estadísticas") from exc

    if isinstance(data, list):
        payload: Any = [item.model_dump(mode="json", by_alias=True) for item in data]
    else:
        payload = data.model_dump(mode="json", by_alias=True)
    return {"ok": True, "tipo": tipo, "data": payload}
