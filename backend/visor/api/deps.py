"""Dependencias compartidas por los routers."""

from fastapi import Depends, Request

from visor.core.database import MongoStore
from visor.repositories.conversations import ConversationRepository
from visor.services.chats import ChatHistoryService
from visor.services.dashboard import DashboardService
from visor.services.export import ExportService


def get_store(request: Request) -> MongoStore:
    """Conexión única creada por `create_app`."""
    return request.app.state.store


def get_repository(store: MongoStore = Depends(get_store)) -> ConversationRepository:
    return ConversationRepository(store)


def get_chat_service(
    repository: ConversationRepository = Depends(get_repository),
) -> ChatHistoryService:
    return ChatHistoryService(repository)


def get_export_service(
    repository: ConversationRepository = Depends(get_repository),
) -> ExportService:
    return ExportService(repository)


def get_dashboard_service(
    repository: ConversationRepository = Depends(get_repository),
) -> DashboardService:
    return DashboardService(repository)
