"""Middlewares del visor."""

from __future__ import annotations

import time
from uuid import uuid4

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from visor.core.config import settings
from visor.core.logging import get_logger, resolve_log_level

logger = get_logger("visor.request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Registra inicio y fin de cada request con un identificador propio."""

    def __init__(
        self,
        app,
        *,
        level: str | int | None = None,
        skip_prefixes: tuple[str, ...] | None = None,
    ) -> None:
        super().__init__(app)
        self._level = resolve_log_level(level if level is not None else settings.request_log_level)
        self._skip_prefixes = (
            skip_prefixes if skip_prefixes is not None else settings.request_log_skip_prefixes
        )

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if any(path.startswith(prefix) for prefix in self._skip_prefixes):
            return await call_next(request)

        request_id = uuid4().hex
        start = time.perf_counter()
        base = {"request_id": request_id, "method": request.method, "path": path}
        logger.log(self._level, "request.started", extra={**base, "query": request.url.query})

        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.exception("request.failed", extra={**base, "duration_ms": round(duration_ms, 2)})
            raise

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["x-request-id"] = request_id
        logger.log(
            self._level,
            "request.completed",
            extra={
                **base,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
            },
        )
        return response
