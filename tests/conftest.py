import pytest
from fastapi.testclient import TestClient

from mirror_proxy.main import create_app
from mirror_proxy.settings import Settings

from tests.support import ROUTES


@pytest.fixture
def settings() -> Settings:
    return Settings(upstreams=ROUTES, mode="production")


@pytest.fixture
def client(settings):
    app = create_app(settings)
    with TestClient(app, base_url="https://docker.example.com") as test_client:
        yield test_client


@pytest.fixture
def debug_client():
    settings = Settings(upstreams=ROUTES, mode="debug", target_upstream="https://registry.example.org")
    app = create_app(settings)
    with TestClient(app, base_url="http://localhost:5000") as test_client:
        yield test_client
