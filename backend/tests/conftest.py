"""
Shared fixtures: a throwaway SQLite database with the provider catalog seeded,
and a fake HTTP endpoint for webhook deliveries
"""
import os
import tempfile

_db_dir = tempfile.mkdtemp(prefix="integrations-hub-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["JSON_LOGS"] = "false"

import httpx
import pytest

import integrations_hub.models  # noqa: F401
from integrations_hub.core.database import Base, SessionLocal, engine
from integrations_hub.services.provider_registry import seed_providers
from integrations_hub.services.webhook_dispatcher import WebhookDispatcher
from integrations_hub.utils.cache import api_key_usage_cache, provider_cache


@pytest.fixture(autouse=True)
def database():
    """Fresh schema and catalog for every test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    provider_cache.clear()
    api_key_usage_cache.clear()

    session = SessionLocal()
    try:
        seed_providers(session)
    finally:
        session.close()

    yield

    provider_cache.clear()
    api_key_usage_cache.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeEndpoints:
    """
    httpx MockTransport handler. URLs answer 200 unless configured otherwise;
    every request is recorded.
    """

    def __init__(self):
        self.requests = []
        self.routes = {}

    def respond(self, url, status_code=200, text="ok", error=None):
        self.routes[str(httpx.URL(url))] = (status_code, text, error)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status_code, text, error = self.routes.get(str(request.url), (200, "ok", None))
        if error is not None:
            raise error("simulated transport failure", request=request)
        return httpx.Response(status_code, text=text)

    def requests_to(self, url):
        return [r for r in self.requests if str(r.url) == str(httpx.URL(url))]

    def client_factory(self, timeout):
        return httpx.AsyncClient(transport=httpx.MockTransport(self), timeout=timeout)


@pytest.fixture
def endpoints():
    return FakeEndpoints()


@pytest.fixture
def dispatcher(endpoints):
    return WebhookDispatcher(client_factory=endpoints.client_factory)
