"""Pruebas del registro de asistentes."""
import pytest

from visor.assistants import registry
from visor.models.conversation import AssistantType


def test_binding_for_unknown_assistant_raises_error() -> None:
    with pytest.raises(ValueError):
        registry.binding_for_assistant(AssistantType.UNKNOWN)


def test_generic_collection_has_no_binding() -> None:
    assert registry.binding_for_collection("mensajes") is None
    assert registry.binding_for_collection("asistente_fc").assistant is AssistantType.FORTECAR


def test_dedicated_bindings_follow_dashboard_order() -> None:
    assert [b.assistant for b in registry.dedicated_bindings()] == [
        AssistantType.GRANVILLE,
        AssistantType.FORTECAR,
        AssistantType.PAMPAWAGEN,
    ]


def test_detection_order_checks_pampawagen_first() -> None:
    assert registry.detection_order()[0].aliases == ("Pampawagen", "Martina")
