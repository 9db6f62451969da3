"""Shared test fixtures."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.tv_admin.application.service import AdminService
from src.tv_common.database import get_db_session
from src.tv_engine.dependencies import get_admin_service, get_engine, get_query_service
from src.tv_engine.engine import EngineConfig, ValuationEngine
from src.tv_market.application.service import ValuationQueryService
from tests.fakes import FakeEntityRepository, FakeLedgerStore, FakeSession, InMemoryDatabase


@pytest.fixture
def database() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def store() -> FakeLedgerStore:
    return FakeLedgerStore()


@pytest.fixture
def entities() -> FakeEntityRepository:
    return FakeEntityRepository()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(backoff_seconds=0.0)


@pytest.fixture
def engine(
    store: FakeLedgerStore, entities: FakeEntityRepository, engine_config: EngineConfig
) -> ValuationEngine:
    return ValuationEngine(store=store, entities=entities, config=engine_config)


@pytest.fixture
def session(database: InMemoryDatabase) -> FakeSession:
    return FakeSession(database)


@pytest.fixture
def query_service(
    store: FakeLedgerStore, entities: FakeEntityRepository
) -> ValuationQueryService:
    return ValuationQueryService(store=store, entities=entities, default_price=2000)


@pytest.fixture
async def client(
    database: InMemoryDatabase,
    store: FakeLedgerStore,
    entities: FakeEntityRepository,
    engine: ValuationEngine,
    query_service: ValuationQueryService,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints against in-memory storage."""

    async def _session() -> AsyncGenerator[FakeSession, None]:
        yield FakeSession(database)

    app.dependency_overrides[get_db_session] = _session
    app.dependency_overrides[get_engine] = lambda: engine
    app.dependency_overrides[get_query_service] = lambda: query_service
    app.dependency_overrides[get_admin_service] = lambda: AdminService(
        engine, store=store, entities=entities
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
