"""Registro de colecciones dedicadas a cada asistente."""

from dataclasses import dataclass

from visor.models.conversation import AssistantType


@dataclass(frozen=True, slots=True)
class AssistantBinding:
    """Vincula una colección con la persona que la escribe."""

    collection: str
    assistant: AssistantType
    color: str
    # Campo que los bots antiguos dejaban en documentos de colecciones genéricas
    legacy_marker: str
    # Nombres que el asistente usa al presentarse; el orden de REGISTRY define la precedencia
    aliases: tuple[str, ...]


REGISTRY: dict[str, AssistantBinding] = {
    "asistente_pw": AssistantBinding(
        collection="asistente_pw",
        assistant=AssistantType.PAMPAWAGEN,
        color="#ffc107",
        legacy_marker="asistente_pw",
        aliases=("Pampawagen", "Martina"),
    ),
    "asistente_fc": AssistantBinding(
        collection="asistente_fc",
        assistant=AssistantType.FORTECAR,
        color="#28a745",
        legacy_marker="asistente_fc",
        aliases=("Fortecar",),
    ),
    "asistente": AssistantBinding(
        collection="asistente",
        assistant=AssistantType.GRANVILLE,
        color="#4a6fa5",
        legacy_marker="asistente",
        aliases=("Granville",),
    ),
}

# Orden de presentación del panel
DASHBOARD_ORDER: tuple[AssistantType, ...] = (
    AssistantType.GRANVILLE,
    AssistantType.FORTECAR,
    AssistantType.PAMPAWAGEN,
)


def binding_for_collection(collection: str) -> AssistantBinding | None:
    """Devuelve el vínculo de la colección o None si es genérica."""
    return REGISTRY.get(collection)


def binding_for_assistant(assistant: AssistantType) -> AssistantBinding:
    for binding in REGISTRY.values():
        if binding.assistant is assistant:
            return binding
    raise ValueError(f"Assistant '{assistant.value}' has no dedicated collection")


def dedicated_bindings() -> list[AssistantBinding]:
    """Colecciones dedicadas en el orden en que se muestran en el panel."""
    return [binding_for_assistant(assistant) for assistant in DASHBOARD_ORDER]


def detection_order() -> list[AssistantBinding]:
    """Vínculos en la precedencia usada al buscar nombres en el contenido."""
    return list(REGISTRY.values())
