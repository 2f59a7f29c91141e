from __future__ import annotations

from datetime import datetime, timezone

from bson import ObjectId

from visor.models.conversation import FilterCriteria
from visor.repositories.conversations import ConversationRepository
from visor.services.chats import ChatHistoryService
from visor.services.export import ExportService, export_filename, to_jsonable

NOW = datetime(2024, 10, 16, 15, 30, tzinfo=timezone.utc)


def _docs(total: int) -> list[dict]:
    return [
        {
            "_id": ObjectId(),
            "sessionId": "5491112345678",
            "messages": [
                {
                    "type": "human",
                    "data": {"content": f"mensaje {i}"},
                    "timestamp": datetime(2024, 10, 1, tzinfo=timezone.utc),
                }
            ],
        }
        for i in range(total)
    ]


def test_export_filename_uses_collection_and_date() -> None:
    assert export_filename("asistente_fc", NOW) == "historial-asistente_fc-2024-10-16.json"


def test_to_jsonable_converts_bson_values() -> None:
    oid = ObjectId()
    converted = to_jsonable({"_id": oid, "fecha": NOW, "nested": [{"id": oid}]})

    assert converted["_id"] == str(oid)
    assert converted["fecha"] == "2024-10-16T15:30:00Z"
    assert converted["nested"][0]["id"] == str(oid)


async def test_export_sorts_ascending_and_applies_ceiling(repository: ConversationRepository, fake_db) -> None:
    fake_db["mensajes"].documents = _docs(8)
    service = ExportService(repository, limit=5)

    result = await service.export_history("mensajes", FilterCriteria(search_text="mensaje"), now=NOW)

    pipeline = fake_db["mensajes"].pipelines[0]
    assert {"$limit": 5} in pipeline
    assert next(stage["$sort"] for stage in pipeline if "$sort" in stage) == {"_recency": 1, "_id": 1}
    assert result.count == 5
    assert result.filename == "historial-mensajes-2024-10-16.json"
    assert isinstance(result.documents[0]["_id"], str)


async def test_default_ceiling_comes_from_settings(repository: ConversationRepository) -> None:
    assert ExportService(repository).limit == 1000


async def test_export_is_never_smaller_than_interactive_result(
    repository: ConversationRepository, fake_db
) -> None:
    fake_db["mensajes"].documents = _docs(150)

    interactive = await ChatHistoryService(repository).list_conversations("mensajes")
    exported = await ExportService(repository).export_history("mensajes", now=NOW)

    assert len(interactive) == 100
    assert exported.count >= len(interactive)
