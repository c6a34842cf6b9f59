import asyncio
import json
import time
from collections.abc import Callable
from typing import Any

import httpx
import jwt
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm

import eid_verify as m

DOMAIN = "example.idura.broker"
ISSUER = f"https://{DOMAIN}"
CLIENT_ID = "urn:my:application"
REDIRECT_URI = "https://app.example.com/callback"


@pytest.fixture(scope="session")
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def make_rsa_jwk(rsa_private_key: rsa.RSAPrivateKey):
    """
    Factory fixture that returns a function.

    Usage in tests:
        jwk_dict = make_rsa_jwk(kid="k1")
    """

    def _make(*, kid: str = "kid1", key: rsa.RSAPrivateKey | None = None) -> dict[str, Any]:
        public_key = (key or rsa_private_key).public_key()
        jwk_dict = json.loads(RSAAlgorithm.to_jwk(public_key))
        jwk_dict.update({"kid": kid, "alg": "RS256", "use": "sig"})
        return jwk_dict

    return _make


@pytest.fixture(scope="session")
def make_token(rsa_private_key: rsa.RSAPrivateKey):
    """
    Factory fixture for signed ID tokens.

    Claims default to a valid token for CLIENT_ID from ISSUER. Pass a claim as
    None to leave it out.

    Usage in tests:
        token = make_token(iat=int(time.time()) + 240, kid="k1")
    """

    def _make(
        *,
        kid: str | None = "kid1",
        key: Any = None,
        algorithm: str = "RS256",
        **claims: Any,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": ISSUER,
            "sub": "e2f1d9a4-user",
            "aud": CLIENT_ID,
            "iat": now,
            "exp": now + 600,
            "identityscheme": "dkmitid",
            "name": "Jens Jensen",
        }
        payload.update(claims)
        payload = {k: v for k, v in payload.items() if v is not None}
        headers = {"kid": kid} if kid is not None else None
        return jwt.encode(
            payload,
            key if key is not None else rsa_private_key,
            algorithm=algorithm,
            headers=headers,
        )

    return _make


class FakeProvider:
    """
    In-memory OIDC provider served through httpx.MockTransport.
    Records every request and mints an ID token bound to the last pushed nonce.
    """

    def __init__(self, jwks: dict[str, Any], mint: Callable[..., str]):
        self.discovery: dict[str, Any] = {
            "issuer": ISSUER,
            "authorization_endpoint": f"{ISSUER}/oauth2/authorize",
            "token_endpoint": f"{ISSUER}/oauth2/token",
            "pushed_authorization_request_endpoint": f"{ISSUER}/oauth2/par",
            "end_session_endpoint": f"{ISSUER}/oauth2/logout",
            "jwks_uri": f"{ISSUER}/.well-known/jwks.json",
        }
        self.jwks = jwks
        self.par_status = 201
        self.par_body: dict[str, Any] = {
            "request_uri": "urn:ietf:params:oauth:request_uri:abc123",
            "expires_in": 90,
        }
        self.token_status = 200
        self.token_body: dict[str, Any] | None = None
        self.token_claims: dict[str, Any] = {}
        self.failing_paths: set[str] = set()
        self.requests: list[httpx.Request] = []
        self.pushed: dict[str, str] = {}
        self._mint = mint

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path in self.failing_paths:
            return httpx.Response(503)
        if path == "/.well-known/openid-configuration":
            return httpx.Response(200, json=self.discovery)
        if path == "/.well-known/jwks.json":
            return httpx.Response(200, json=self.jwks)
        if path == "/oauth2/par":
            self.pushed = form_of(request)
            return httpx.Response(self.par_status, json=self.par_body)
        if path == "/oauth2/token":
            body = self.token_body
            if body is None:
                claims = {"nonce": self.pushed.get("nonce"), **self.token_claims}
                body = {"id_token": self._mint(**claims), "token_type": "Bearer"}
            return httpx.Response(self.token_status, json=body)
        return httpx.Response(404)

    def calls(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]


def form_of(request: httpx.Request) -> dict[str, str]:
    return dict(httpx.QueryParams(request.content.decode("ascii")))


class ScriptedBrowser:
    """
    BrowserDelegate double. Records launched URLs and answers with whatever
    `respond(url)` returns, or raises it if it is an exception.
    """

    def __init__(self, respond: Callable[[str], str | BaseException]):
        self.respond = respond
        self.urls: list[str] = []

    async def launch(self, url: str) -> str:
        self.urls.append(url)
        result = self.respond(url)
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.fixture
def provider(make_rsa_jwk, make_token) -> FakeProvider:
    return FakeProvider({"keys": [make_rsa_jwk(kid="kid1")]}, make_token)


@pytest_asyncio.fixture
async def http_client(provider: FakeProvider):
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)) as client:
        yield client


@pytest.fixture
def browser(provider: FakeProvider) -> ScriptedBrowser:
    """Completes every login with a code and the state that was pushed."""

    def _respond(url: str) -> str:
        return f"{REDIRECT_URI}?code=auth-code-1&state={provider.pushed['state']}"

    return ScriptedBrowser(_respond)


@pytest.fixture
def settings() -> m.VerifySettings:
    return m.VerifySettings(client_id=CLIENT_ID, domain=DOMAIN, redirect_uri=REDIRECT_URI)


@pytest_asyncio.fixture
async def engine(settings, browser, http_client):
    async with m.VerifyEngine.from_settings(
        settings, browser=browser, http_client=http_client
    ) as engine:
        yield engine


@pytest.fixture
def make_browser():
    """Factory fixture returning ScriptedBrowser instances."""
    return ScriptedBrowser


@pytest.fixture
def make_engine(settings, browser, http_client):
    """
    Factory fixture for engines sharing the fake provider.

    Usage in tests:
        engine = make_engine(browser=None, app_switch_uri="https://app.example.com/resume")
    """

    def _make(**kwargs: Any) -> m.VerifyEngine:
        kwargs.setdefault("browser", browser)
        kwargs.setdefault("http_client", http_client)
        return m.VerifyEngine(
            settings.client_id, settings.domain, settings.redirect_uri, **kwargs
        )

    return _make


@pytest_asyncio.fixture
async def gated_client(provider: FakeProvider):
    """
    Factory fixture for clients whose requests to one path block until the
    returned event is set.

    Usage in tests:
        gate, client = gated_client("/oauth2/par")
    """
    clients: list[httpx.AsyncClient] = []

    def _make(path: str) -> tuple[asyncio.Event, httpx.AsyncClient]:
        gate = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == path:
                await gate.wait()
            return provider.handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return gate, client

    yield _make
    for client in clients:
        await client.aclose()
