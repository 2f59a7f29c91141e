"""Punto de entrada principal para la aplicación FastAPI."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from visor.api.routes.chats import router as chats_router
from visor.api.routes.dashboard import router as dashboard_router
from visor.api.routes.health import router as health_router
from visor.core.config import settings
from visor.core.database import MongoStore
from visor.core.logging import configure_logging, get_logger, resolve_log_level
from visor.core.middleware import RequestLoggingMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    app.state.store.close()


def create_app() -> FastAPI:
    """Crea y configura la instancia de FastAPI."""
    default_log_level = logging.DEBUG if settings.environment != "production" else logging.INFO
    log_level = resolve_log_level(settings.log_level, default=default_log_level)
    configure_logging(level=log_level, log_file=settings.log_file_path)

    app = FastAPI(title="Visor de historial", version="0.1.0", lifespan=lifespan)
    # La conexión se abre en la primera consulta, no al arrancar
    app.state.store = MongoStore(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Se ajustará por ambiente
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)
    app.include_router(chats_router)
    app.include_router(dashboard_router)

    @app.get("/", include_in_schema=False)
    def root() -> RedirectResponse:
        return RedirectResponse(url=f"/chats/{settings.default_collection}")

    get_logger("visor").info(
        "app.created",
        extra={"database": settings.mongodb_database, "environment": settings.environment},
    )
    return app


app = create_app()
