from __future__ import annotations

from datetime import datetime, timezone

import pytest
from bson import ObjectId

from visor.models.conversation import AssistantType, DocumentShape, MessageRole
from visor.services import normalizer


def _ts(day: int, hour: int = 12) -> datetime:
    return datetime(2024, 10, day, hour, tzinfo=timezone.utc)


def _current(*messages: tuple[str, str, datetime | None], **extra) -> dict:
    return {
        "_id": ObjectId(),
        "sessionId": "5491112345678",
        "messages": [
            {"type": kind, "data": {"content": content}, "timestamp": ts}
            for kind, content, ts in messages
        ],
        **extra,
    }


def test_classify_recognizes_each_shape() -> None:
    assert normalizer.classify({"messages": []}) is DocumentShape.CURRENT
    assert normalizer.classify({"mensajes": []}) is DocumentShape.LEGACY
    assert normalizer.classify({"mensaje": "hola"}) is DocumentShape.FLAT
    assert normalizer.classify({"texto": "hola"}) is DocumentShape.UNRECOGNIZED


def test_current_document_maps_roles_and_keeps_count() -> None:
    doc = _current(
        ("human", "Hola", _ts(1, 10)),
        ("ai", "Soy Martina de Pampawagen", _ts(1, 11)),
        ("human", "Quiero un turno", _ts(1, 12)),
    )

    record = normalizer.normalize_document(doc, "mensajes")

    assert record.id == str(doc["_id"])
    assert record.message_count == 3
    assert [m.role for m in record.messages] == [
        MessageRole.USER,
        MessageRole.ASSISTANT,
        MessageRole.USER,
    ]
    assert record.first_timestamp == _ts(1, 10)
    assert record.last_timestamp == _ts(1, 12)
    assert record.assistant_type is AssistantType.PAMPAWAGEN


def test_legacy_document_is_sorted_chronologically() -> None:
    doc = {
        "_id": "legacy-1",
        "sessionId": "5493415550000",
        "mensajes": [
            {"texto": "respuesta", "esUsuario": False, "fecha": _ts(2, 9)},
            {"texto": "pregunta", "esUsuario": True, "fecha": _ts(2, 8)},
        ],
    }

    record = normalizer.normalize_document(doc, "mensajes")

    assert record.source_shape is DocumentShape.LEGACY
    assert [m.content for m in record.messages] == ["pregunta", "respuesta"]
    timestamps = [m.timestamp for m in record.messages]
    assert timestamps == sorted(timestamps)


def test_messages_without_timestamp_inherit_document_date() -> None:
    doc = {
        "_id": "legacy-2",
        "fecha": _ts(3, 7),
        "mensajes": [
            {"texto": "tarde", "esUsuario": True, "fecha": _ts(3, 9)},
            {"texto": "sin fecha", "esUsuario": False},
        ],
    }

    record = normalizer.normalize_document(doc, "mensajes")

    assert [m.content for m in record.messages] == ["sin fecha", "tarde"]
    assert record.first_timestamp == _ts(3, 7)


def test_messages_without_any_date_go_last_in_source_order() -> None:
    doc = _current(("human", "b", None), ("ai", "a", _ts(4)), ("human", "c", None))

    record = normalizer.normalize_document(doc, "mensajes")

    assert [m.content for m in record.messages] == ["a", "b", "c"]


def test_flat_document_becomes_single_message() -> None:
    doc = {"_id": "flat-1", "mensaje": "hola", "esUsuario": True, "fecha": "2024-10-05T10:00:00Z"}

    record = normalizer.normalize_document(doc, "mensajes")

    assert record.source_shape is DocumentShape.FLAT
    assert record.message_count == 1
    assert record.messages[0].role is MessageRole.USER
    assert record.first_timestamp == datetime(2024, 10, 5, 10, tzinfo=timezone.utc)


def test_document_without_dates_gets_synthetic_timestamp() -> None:
    now = _ts(9)
    record = normalizer.normalize_document(_current(("human", "hola", None)), "mensajes", now=now)

    assert record.synthetic_timestamp is True
    assert record.first_timestamp == now


def test_unrecognized_document_raises() -> None:
    with pytest.raises(normalizer.MalformedDocument):
        normalizer.normalize_document({"_id": "x", "foo": 1}, "mensajes")


def test_normalize_documents_drops_malformed(caplog: pytest.LogCaptureFixture) -> None:
    docs = [{"_id": "bad"}, _current(("human", "hola", _ts(1)))]

    with caplog.at_level("WARNING"):
        records = normalizer.normalize_documents(docs, "mensajes")

    assert len(records) == 1
    assert any(r.getMessage() == "normalizer.document_dropped" for r in caplog.records)


def test_dedicated_collection_overrides_content() -> None:
    doc = _current(("ai", "Hola, soy de Granville", _ts(1)))

    record = normalizer.normalize_document(doc, "asistente_fc")

    assert record.assistant_type is AssistantType.FORTECAR


def test_legacy_marker_resolves_assistant() -> None:
    doc = {"_id": "m1", "asistente_fc": "Fortecar", "mensajes": [{"texto": "hola", "esUsuario": True}]}

    record = normalizer.normalize_document(doc, "mensajes", now=_ts(1))

    assert record.assistant_type is AssistantType.FORTECAR


def test_content_detection_uses_fixed_precedence() -> None:
    doc = _current(
        ("human", "Me recomendaron Fortecar", _ts(1, 9)),
        ("ai", "Bienvenido a Granville, te atiende Martina", _ts(1, 10)),
    )

    record = normalizer.normalize_document(doc, "mensajes")

    assert record.assistant_type is AssistantType.PAMPAWAGEN


def test_unknown_when_no_name_matches() -> None:
    doc = _current(("ai", "Hola, ¿en qué te ayudo?", _ts(1)))

    record = normalizer.normalize_document(doc, "mensajes")

    assert record.assistant_type is AssistantType.UNKNOWN


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("2024-10-05T10:00:00Z", datetime(2024, 10, 5, 10, tzinfo=timezone.utc)),
        (datetime(2024, 10, 5, 10), datetime(2024, 10, 5, 10, tzinfo=timezone.utc)),
        (1728122400000, datetime(2024, 10, 5, 10, tzinfo=timezone.utc)),
        ("no es fecha", None),
        (None, None),
    ],
)
def test_parse_timestamp(value, expected) -> None:
    assert normalizer.parse_timestamp(value) == expected
