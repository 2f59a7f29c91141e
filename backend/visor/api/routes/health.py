"""Endpoint de salud mínimo para validaciones rápidas."""
from fastapi import APIRouter, Depends

from visor.api.deps import get_store
from visor.core.database import MongoStore

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", summary="Estado del servicio")
def healthcheck(store: MongoStore = Depends(get_store)) -> dict[str, str]:
    """Indica que la API está viva sin forzar la conexión a MongoDB."""
    return {"status": "ok", "store": "connected" if store.connected else "idle"}
