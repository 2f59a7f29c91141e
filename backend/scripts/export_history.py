#!/usr/bin/env python3
"""Herramienta para exportar el historial de una colección a un archivo JSON."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError

from visor.core.config import settings
from visor.core.database import MongoStore
from visor.models.conversation import AssistantType, DateRange, FilterCriteria
from visor.repositories.conversations import ConversationRepository, ConversationRepositoryError
from visor.services.export import ExportService
from visor.services.query_builder import parse_date_bound


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description=(
            "Exporta el historial de chats usando la misma consulta del visor. "
            "El archivo queda ordenado del más antiguo al más reciente."
        )
    )
    parser.add_argument(
        "coleccion",
        nargs="?",
        default=settings.default_collection,
        help=f"Colección a exportar (default: {settings.default_collection}).",
    )
    parser.add_argument("--asistente", help="Filtra por tipo de asistente.")
    parser.add_argument("--session-id", help="Filtra por sessionId exacto.")
    parser.add_argument("--busqueda", help="Texto a buscar en los mensajes.")
    parser.add_argument(
        "--fecha-inicio",
        help="Fecha o fecha-hora ISO-8601 desde la que incluir actividad (UTC si no trae zona).",
    )
    parser.add_argument(
        "--fecha-fin",
        help="Fecha o fecha-hora ISO-8601 límite; una fecha sola cubre el día completo.",
    )
    parser.add_argument(
        "--output-dir",
        default="exports",
        help="Directorio donde guardar el archivo (default: exports).",
    )
    parser.add_argument(
        "--limit",
        type=int,
        help=f"Máximo de documentos (default: {settings.export_limit}).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce el output a sólo errores.",
    )
    return parser.parse_args(argv)


def build_filters(args: argparse.Namespace) -> FilterCriteria:
    """Mismos filtros que la ruta de exportación."""
    start = parse_date_bound(args.fecha_inicio, name="fechaInicio")
    end = parse_date_bound(args.fecha_fin, name="fechaFin", end_of_day=True)
    try:
        date_range = DateRange(start=start, end=end) if start or end else None
    except ValidationError as exc:
        raise ValueError("rango_fecha_invalido: fecha-inicio es posterior a fecha-fin") from exc
    return FilterCriteria(
        assistant_type=AssistantType.parse(args.asistente) if args.asistente else None,
        session_id=args.session_id or None,
        date_range=date_range,
        search_text=args.busqueda or None,
    )


async def run_export(args: argparse.Namespace, filters: FilterCriteria) -> Path:
    store = MongoStore(settings)
    try:
        service = ExportService(ConversationRepository(store), limit=args.limit)
        result = await service.export_history(args.coleccion, filters)
    finally:
        store.close()

    output_dir = Path(args.output_dir).expanduser().resolve()
    output_dir.mkdir(parents=True, exist_ok=True)
    destination = output_dir / result.filename
    destination.write_text(
        json.dumps(result.documents, ensure_ascii=False, indent=2),
        encoding="utf-8",
    )
    if not args.quiet:
        print(f"[export_history] {result.count} documentos exportados en {destination}")
    return destination


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        filters = build_filters(args)
        asyncio.run(run_export(args, filters))
    except ValueError as exc:
        print(f"[export_history] ERROR: {exc}", file=sys.stderr)
        return 2
    except ConversationRepositoryError as exc:
        print(f"[export_history] ERROR al consultar MongoDB: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover - script manual
    sys.exit(main())
