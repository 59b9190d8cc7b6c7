"""Shared fixtures for capability proxy tests."""

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from capproxy.app.auth.keys import generate_key_pair, issue_token
from capproxy.app.config import Settings
from capproxy.app.main import create_app


TARGET_SERVER = "https://jsonplaceholder.typicode.com/"
TOKEN_HEADER = "x-bump-proxy-token"


class FakeUpstream:
    """
    Callable for ``httpx.MockTransport`` that records every request.

    Use ``respond`` for canned replies, or set ``responder`` directly (e.g.
    to raise a transport error).
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self.responder: Callable[[httpx.Request], httpx.Response]
        self.respond(200)

    def respond(
        self,
        status_code: int,
        content: bytes = b"",
        headers: Optional[List[Tuple[str, str]]] = None,
        json_body: Any = None,
    ) -> None:
        """
        Reply with a streamed response, as a real network transport does.

        ``httpx.Response(content=...)`` would be read eagerly, leaving no
        raw stream for the forwarder to consume.
        """
        headers = list(headers or [])
        if json_body is not None:
            content = json.dumps(json_body).encode()
            headers.append(("Content-Type", "application/json"))
        headers.append(("Content-Length", str(len(content))))

        self.responder = lambda request: httpx.Response(
            status_code, headers=headers, stream=httpx.ByteStream(content)
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responder(request)

    @property
    def last_request(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture(scope="session")
def key_pair():
    """RSA key pair generated once per test session"""
    return generate_key_pair()


@pytest.fixture(scope="session")
def private_pem(key_pair) -> str:
    return key_pair[0]


@pytest.fixture(scope="session")
def public_pem(key_pair) -> str:
    return key_pair[1]


@pytest.fixture(scope="session")
def other_private_pem() -> str:
    """Private key the proxy does not trust"""
    return generate_key_pair()[0]


@pytest.fixture
def settings(public_pem) -> Settings:
    return Settings(JWT_SIGNING_PUBLIC_KEY=public_pem, _env_file=None)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def app(settings, upstream):
    return create_app(settings, upstream_transport=httpx.MockTransport(upstream))


@pytest.fixture
def client(app) -> TestClient:
    return TestClient(app)


@pytest.fixture
def make_token(private_pem) -> Callable[..., str]:
    """
    Build a signed capability token; defaults grant GET /posts on the
    jsonplaceholder server.
    """
    def _make_token(**overrides: Any) -> str:
        claims: Dict[str, Any] = {
            "verb": "GET",
            "servers": [TARGET_SERVER],
            "path": "/posts",
            "expires_in": 4 * 3600,
        }
        claims.update(overrides)
        return issue_token(private_pem, **claims)

    return _make_token
