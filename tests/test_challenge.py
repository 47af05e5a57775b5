import asyncio

import httpx
import pytest

from mirror_proxy.challenge import (
    AuthenticateParseError,
    WwwAuthenticate,
    fetch_token,
    parse_authenticate,
    unauthorized_response,
)
from starlette.datastructures import URL


def test_parse_authenticate():
    result = parse_authenticate('Bearer realm="https://auth.x.com/token",service="registry.x.io"')
    assert result == WwwAuthenticate(realm="https://auth.x.com/token", service="registry.x.io")


def test_parse_authenticate_takes_first_two_values():
    header = 'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:user/image:pull"'
    result = parse_authenticate(header)
    assert result.realm == "https://ghcr.io/token"
    assert result.service == "ghcr.io"


def test_parse_authenticate_keeps_escaped_quote():
    result = parse_authenticate(r'Bearer realm="https://a/\"x",service=""')
    assert result.realm == r'https://a/\"x'
    assert result.service == ""


@pytest.mark.parametrize("header", [
    "Bearer foo",
    'Bearer realm="https://auth.x.com/token"',
    'Bearer realm="https://auth.x.com/token",service="unterminated',
    "",
])
def test_parse_authenticate_invalid(header):
    with pytest.raises(AuthenticateParseError):
        parse_authenticate(header)


def test_unauthorized_response_production():
    resp = unauthorized_response(URL("https://docker.example.com:8443/v2/"), debug=False, service="registry-proxy")
    assert resp.status_code == 401
    assert resp.headers["www-authenticate"] == (
        'Bearer realm="https://docker.example.com/v2/auth",service="registry-proxy"'
    )
    assert resp.body == b'{"message":"UNAUTHORIZED"}'


def test_unauthorized_response_debug_keeps_port():
    resp = unauthorized_response(URL("http://localhost:5000/v2/"), debug=True, service="proxy")
    assert resp.headers["www-authenticate"] == 'Bearer realm="http://localhost:5000/v2/auth",service="proxy"'


async def _fetch(www_auth, scope=None, authorization=None):
    async with httpx.AsyncClient() as client:
        resp = await fetch_token(client, www_auth, scope, authorization)
        await resp.aread()
        await resp.aclose()
        return resp


def test_fetch_token_sets_service_scope_and_authorization(respx_mock):
    route = respx_mock.get("https://auth.docker.io/token").mock(
        return_value=httpx.Response(200, json={"token": "abc"})
    )
    www_auth = WwwAuthenticate(realm="https://auth.docker.io/token", service="registry.docker.io")

    resp = asyncio.run(_fetch(www_auth, "repository:library/busybox:pull", "Basic dXNlcjpwYXNz"))

    assert resp.status_code == 200
    request = route.calls.last.request
    assert request.url.params["service"] == "registry.docker.io"
    assert request.url.params["scope"] == "repository:library/busybox:pull"
    assert request.headers["authorization"] == "Basic dXNlcjpwYXNz"


def test_fetch_token_skips_empty_service_and_scope(respx_mock):
    route = respx_mock.get("https://auth.example.org/token").mock(return_value=httpx.Response(401))
    www_auth = WwwAuthenticate(realm="https://auth.example.org/token", service="")

    resp = asyncio.run(_fetch(www_auth))

    assert resp.status_code == 401
    request = route.calls.last.request
    assert "service" not in request.url.params
    assert "scope" not in request.url.params
    assert "authorization" not in request.headers
