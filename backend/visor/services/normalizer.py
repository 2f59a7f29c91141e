"""Normalización de documentos de ambos esquemas históricos a `ConversationRecord`.

Los documentos pueden venir en tres formas:

* actual: ``messages: [{type, data: {content}, timestamp}]``
* legado: ``mensajes: [{texto, esUsuario, fecha}]``
* plana: un único mensaje en ``mensaje`` / ``esUsuario`` / ``fecha``

`classify` decide la forma una sola vez y el resto del módulo despacha sobre
ese resultado.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from visor.assistants import registry
from visor.core.logging import get_logger
from visor.models.conversation import (
    AssistantType,
    ConversationRecord,
    DocumentShape,
    Message,
    MessageRole,
)

logger = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class MalformedDocument(ValueError):
    """El documento no coincide con ninguna forma conocida."""


def classify(document: Mapping[str, Any]) -> DocumentShape:
    if isinstance(document.get("messages"), list):
        return DocumentShape.CURRENT
    if isinstance(document.get("mensajes"), list):
        return DocumentShape.LEGACY
    if isinstance(document.get("mensaje"), str):
        return DocumentShape.FLAT
    return DocumentShape.UNRECOGNIZED


def parse_timestamp(value: Any) -> datetime | None:
    """Interpreta fechas BSON, cadenas ISO-8601 o epoch en milisegundos como UTC."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _current_messages(items: Iterable[Any]) -> list[Message]:
    messages: list[Message] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        data = item.get("data")
        content = data.get("content") if isinstance(data, Mapping) else None
        role = MessageRole.USER if item.get("type") == "human" else MessageRole.ASSISTANT
        messages.append(
            Message(
                content=str(content or ""),
                role=role,
                timestamp=parse_timestamp(item.get("timestamp")),
            )
        )
    return messages


def _legacy_messages(items: Iterable[Any]) -> list[Message]:
    messages: list[Message] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        role = MessageRole.USER if item.get("esUsuario") is True else MessageRole.ASSISTANT
        messages.append(
            Message(
                content=str(item.get("texto") or ""),
                role=role,
                timestamp=parse_timestamp(item.get("fecha")),
            )
        )
    return messages


def extract_messages(document: Mapping[str, Any], shape: DocumentShape) -> list[Message]:
    """Mapea los mensajes en orden de origen, sin ordenar."""
    if shape is DocumentShape.CURRENT:
        return _current_messages(document["messages"])
    if shape is DocumentShape.LEGACY:
        return _legacy_messages(document["mensajes"])
    if shape is DocumentShape.FLAT:
        role = MessageRole.USER if document.get("esUsuario") is True else MessageRole.ASSISTANT
        return [
            Message(
                content=document["mensaje"],
                role=role,
                timestamp=parse_timestamp(document.get("fecha")),
            )
        ]
    raise MalformedDocument(f"Forma de documento no reconocida: {_document_id(document)}")


def detect_assistant_in_content(content: str) -> AssistantType | None:
    """Primer nombre conocido según la precedencia fija del registro."""
    for binding in registry.detection_order():
        if any(alias in content for alias in binding.aliases):
            return binding.assistant
    return None


def resolve_assistant(
    document: Mapping[str, Any],
    messages: list[Message],
    collection: str,
) -> AssistantType:
    binding = registry.binding_for_collection(collection)
    if binding is not None:
        return binding.assistant

    for assistant in registry.DASHBOARD_ORDER:
        marker = registry.binding_for_assistant(assistant).legacy_marker
        if document.get(marker) == assistant.value:
            return assistant

    first_reply = next((m for m in messages if m.role is MessageRole.ASSISTANT), None)
    if first_reply is not None:
        detected = detect_assistant_in_content(first_reply.content)
        if detected is not None:
            return detected
    return AssistantType.UNKNOWN


def _sort_messages(messages: list[Message], fallback: datetime | None) -> list[Message]:
    if fallback is not None:
        messages = [
            m if m.timestamp is not None else m.model_copy(update={"timestamp": fallback})
            for m in messages
        ]
    # sorted es estable: los mensajes sin fecha conservan su orden al final
    return sorted(messages, key=lambda m: (m.timestamp is None, m.timestamp or _EPOCH))


def _document_id(document: Mapping[str, Any]) -> str:
    value = document.get("_id")
    return str(value) if value is not None else ""


def normalize_document(
    document: Mapping[str, Any],
    collection: str,
    *,
    now: datetime | None = None,
) -> ConversationRecord:
    """Convierte un documento crudo en su registro canónico.

    Raises:
        MalformedDocument: si el documento no tiene ninguna de las formas conocidas.
    """
    shape = classify(document)
    raw_messages = extract_messages(document, shape)
    document_date = parse_timestamp(document.get("fecha"))
    messages = _sort_messages(raw_messages, document_date)
    assistant = resolve_assistant(document, raw_messages, collection)

    stamped = [m.timestamp for m in messages if m.timestamp is not None]
    synthetic = False
    if stamped:
        first, last = stamped[0], stamped[-1]
    elif document_date is not None:
        first = last = document_date
    else:
        first = last = now or datetime.now(timezone.utc)
        synthetic = True

    session_id = document.get("sessionId")
    return ConversationRecord(
        id=_document_id(document),
        session_id=str(session_id) if session_id is not None else None,
        collection=collection,
        assistant_type=assistant,
        source_shape=shape,
        messages=messages,
        first_timestamp=first,
        last_timestamp=last,
        synthetic_timestamp=synthetic,
    )


def normalize_documents(
    documents: Iterable[Mapping[str, Any]],
    collection: str,
) -> list[ConversationRecord]:
    """Normaliza en bloque y descarta los documentos malformados."""
    records: list[ConversationRecord] = []
    dropped = 0
    for document in documents:
        try:
            records.append(normalize_document(document, collection))
        except MalformedDocument:
            dropped += 1
            logger.warning(
                "normalizer.document_dropped",
                extra={"collection": collection, "document_id": _document_id(document)},
            )
    if dropped:
        logger.info(
            "normalizer.summary",
            extra={"collection": collection, "kept": len(records), "dropped": dropped},
        )
    return records
