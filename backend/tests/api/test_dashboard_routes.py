from __future__ import annotations

import pytest
from httpx import AsyncClient

from visor.core.database import StoreUnavailable


async def test_dashboard_returns_all_sections(api_client: AsyncClient, fake_db) -> None:
    fake_db["asistente"].count_result = 3

    response = await api_client.get("/dashboard")

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalsByAssistant"][0] == {
        "assistantType": "Granville",
        "count": 3,
        "displayColor": "#4a6fa5",
    }
    assert len(stats["bucketsByPeriod"]["day"]) == 24
    assert stats["averageMessages"]["overall"] == 0.0
    assert stats["recentConversations"] == []


async def test_dashboard_survives_store_outage(api_client: AsyncClient, fake_store) -> None:
    fake_store.error = StoreUnavailable("sin conexión")

    response = await api_client.get("/dashboard")

    assert response.status_code == 200
    stats = response.json()["stats"]
    assert stats["totalsByAssistant"] == []
    assert stats["bucketsByPeriod"] == {"day": [], "week": [], "month": []}


async def test_single_stat(api_client: AsyncClient, fake_db) -> None:
    fake_db["asistente_fc"].count_result = 2

    response = await api_client.get("/dashboard/stats/total-por-asistente")

    body = response.json()
    assert body["tipo"] == "total-por-asistente"
    assert [item["count"] for item in body["data"]] == [0, 2, 0]


async def test_period_stat_for_one_collection(api_client: AsyncClient, fake_db) -> None:
    response = await api_client.get(
        "/dashboard/stats/conversaciones-por-semana", params={"coleccion": "asistente_pw"}
    )

    assert response.status_code == 200
    assert len(response.json()["data"]) == 7
    assert "asistente" not in fake_db


@pytest.mark.parametrize(
    ("path", "params"),
    [
        ("/dashboard/stats/desconocida", {}),
        ("/dashboard/stats/promedio-mensajes", {"coleccion": "mensajes"}),
    ],
)
async def test_bad_stat_requests(api_client: AsyncClient, path: str, params: dict) -> None:
    response = await api_client.get(path, params=params)

    assert response.status_code == 400


async def test_single_stat_store_down(api_client: AsyncClient, fake_store) -> None:
    fake_store.error = StoreUnavailable("sin conexión")

    response = await api_client.get("/dashboard/stats/promedio-mensajes")

    assert response.status_code == 503
