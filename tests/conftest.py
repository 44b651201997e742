import json

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db.models import Base
from habeas.judit.client import JuditApiClient
from habeas.judit.cooldown import Clock, CooldownLimiter, MemoryStore
from habeas.judit.orchestrator import JuditOrchestrator

BASE_URL = "http://habeas.test/api"
API_PREFIX = "/api"


class FakeClock(Clock):
    def __init__(self, start_ms: int = 1_700_000_000_000):
        self.now = start_ms

    def now_ms(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeBackend:
    """Responde por (método, caminho) e registra cada requisição recebida."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method, path, payload=None, status=200):
        self.routes[(method, API_PREFIX + path)] = (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": f"rota desconhecida {key}"})
        status, payload = self.routes[key]
        if callable(payload):
            payload = payload(request)
        return httpx.Response(status, json=payload)

    def paths(self):
        return [(r.method, r.url.path[len(API_PREFIX):]) for r in self.calls]

    def last_json(self):
        return json.loads(self.calls[-1].content)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def limiter(clock):
    return CooldownLimiter(MemoryStore(), clock, window_ms=30_000)


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
async def judit_client(backend):
    client = JuditApiClient(
        base_url=BASE_URL,
        token="test-token",
        transport=httpx.MockTransport(backend.handler),
    )
    yield client
    await client.close()


@pytest.fixture
def orchestrator(judit_client, limiter):
    return JuditOrchestrator(judit_client, limiter)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()
