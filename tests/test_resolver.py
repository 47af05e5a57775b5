import pytest
from pydantic import ValidationError

from mirror_proxy.resolver import RouteTable
from mirror_proxy.settings import Settings

from tests.support import DOCKER_HUB, ROUTES


def test_resolve_known_host():
    routes = RouteTable(routes=ROUTES)
    assert routes.resolve("docker.example.com") == DOCKER_HUB
    assert routes.resolve("Quay.Mirrors.Example.com") == "https://quay.io"


@pytest.mark.parametrize("host", ["unknown.example.com", "example.com", "", None])
def test_resolve_unknown_host(host):
    assert RouteTable(routes=ROUTES).resolve(host) is None


def test_resolve_debug_fallback():
    routes = RouteTable(routes=ROUTES, debug=True, fallback_upstream="https://registry.example.org")
    assert routes.resolve("localhost") == "https://registry.example.org"
    assert routes.resolve("docker.example.com") == DOCKER_HUB


def test_route_table_is_read_only():
    source = dict(ROUTES)
    routes = RouteTable(routes=source)
    source["late.example.com"] = "https://late.example.com"

    assert routes.resolve("late.example.com") is None
    with pytest.raises(TypeError):
        routes.routes["other.example.com"] = "https://other.example.com"


def test_is_primary_and_mirror_host():
    routes = RouteTable(routes=ROUTES)
    assert routes.is_primary(DOCKER_HUB)
    assert not routes.is_primary("https://quay.io")
    assert not routes.is_primary(None)
    assert routes.is_mirror_host("gcr.mirrors.example.com")
    assert not routes.is_mirror_host("docker.example.com")


def test_from_settings():
    settings = Settings(
        upstreams={"Docker.Example.com": "https://registry-1.docker.io/"},
        mode="debug",
        target_upstream="http://localhost:5001/",
        mirror_marker="proxy.",
    )
    routes = RouteTable.from_settings(settings)
    assert routes.as_dict() == {"docker.example.com": DOCKER_HUB}
    assert routes.debug
    assert routes.fallback_upstream == "http://localhost:5001"
    assert routes.is_mirror_host("quay.proxy.example.com")


@pytest.mark.parametrize("upstream", ["quay.io", "https://quay.io/v2", "ftp://quay.io"])
def test_settings_rejects_invalid_upstream(upstream):
    with pytest.raises(ValidationError):
        Settings(upstreams={"quay.example.com": upstream}, mode="production")


def test_settings_debug_requires_target_upstream():
    with pytest.raises(ValidationError):
        Settings(mode="debug", target_upstream=None)


def test_settings_loads_yaml(tmp_path, monkeypatch):
    config = tmp_path / "config.yaml"
    config.write_text(
        "upstreams:\n"
        "  docker.example.com: https://registry-1.docker.io\n"
        "service_name: example-proxy\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CONFIG_FILE", str(config))
    monkeypatch.delenv("MODE", raising=False)

    settings = Settings()

    assert settings.upstreams == {"docker.example.com": DOCKER_HUB}
    assert settings.service_name == "example-proxy"
    assert not settings.debug


def test_settings_no_upstream_timeout_by_default(tmp_path, monkeypatch):
    monkeypatch.setenv("CONFIG_FILE", str(tmp_path / "missing.yaml"))
    monkeypatch.delenv("UPSTREAM_TIMEOUT", raising=False)
    assert Settings(mode="production").upstream_timeout is None
