"""Fixtures compartidas para las pruebas."""

import os

# La configuración exige la cadena de conexión al importarse
os.environ.setdefault("MONGODB_URI", "mongodb://localhost:27017")

import pytest
from httpx import ASGITransport, AsyncClient

from visor.api.deps import get_store
from visor.main import app
from visor.repositories.conversations import ConversationRepository


class FakeCursor:
    def __init__(self, documents: list[dict], error: Exception | None = None) -> None:
        self._documents = documents
        self._error = error

    async def to_list(self, length: int | None = None) -> list[dict]:
        if self._error is not None:
            raise self._error
        documents = list(self._documents)
        return documents if length is None else documents[:length]


class FakeCollection:
    """Imita la parte de `AsyncIOMotorCollection` que usa el repositorio.

    No evalúa predicados: devuelve los documentos cargados y registra lo recibido.
    """

    def __init__(self) -> None:
        self.documents: list[dict] = []
        self.pipelines: list[list[dict]] = []
        self.count_predicates: list[dict] = []
        self.count_result = 0
        self.distinct_values: list[object] = []
        self.error: Exception | None = None

    def aggregate(self, pipeline: list[dict]) -> FakeCursor:
        self.pipelines.append(pipeline)
        return FakeCursor(self.documents, self.error)

    async def count_documents(self, predicate: dict) -> int:
        self.count_predicates.append(predicate)
        if self.error is not None:
            raise self.error
        return self.count_result

    async def distinct(self, field: str, predicate: dict) -> list[object]:
        if self.error is not None:
            raise self.error
        return list(self.distinct_values)


class FakeDatabase(dict):
    def __missing__(self, name: str) -> FakeCollection:
        collection = FakeCollection()
        self[name] = collection
        return collection


class FakeStore:
    def __init__(self, database: FakeDatabase, error: Exception | None = None) -> None:
        self.database = database
        self.error = error
        self.calls = 0
        self.connected = False

    async def get_database(self) -> FakeDatabase:
        self.calls += 1
        if self.error is not None:
            raise self.error
        self.connected = True
        return self.database

    def close(self) -> None:
        self.connected = False


@pytest.fixture(name="fake_db")
def fixture_fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture(name="fake_store")
def fixture_fake_store(fake_db: FakeDatabase) -> FakeStore:
    return FakeStore(fake_db)


@pytest.fixture(name="repository")
def fixture_repository(fake_store: FakeStore) -> ConversationRepository:
    return ConversationRepository(fake_store)


@pytest.fixture(name="async_client")
async def fixture_async_client() -> AsyncClient:
    """Retorna un cliente asíncrono contra la app principal utilizando ASGITransport."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture(name="api_client")
async def fixture_api_client(fake_store: FakeStore) -> AsyncClient:
    """Cliente con el almacén reemplazado por la base en memoria."""
    app.dependency_overrides[get_store] = lambda: fake_store
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.pop(get_store, None)
