"""Metasys testing configuration file."""

from __future__ import annotations

import copy
import json
import os
from typing import Any

import pytest

BASE_URL = "https://hostname/api/v2/"
OBJECT_ID = "11111111-2222-3333-4444-555555555555"
OBJECT_ID2 = "11111111-2222-3333-4444-555555555556"
TOKEN_RESPONSE = {"accessToken": "faketoken", "expires": "2030-01-01T00:00:00Z"}


class MockResponse:
    """Stand-in for aiohttp.ClientResponse."""

    def __init__(
        self,
        status: int = 200,
        json_data: Any = None,
        *,
        text: str | None = None,
        body: bytes | None = None,
        reason: str = "",
    ) -> None:
        self.status = status
        self.reason = reason
        self.headers: dict[str, str] = {"Content-Type": "application/json"}
        if body is None:
            if text is None:
                text = json.dumps(json_data) if json_data is not None else ""
            body = text.encode()
        self._body = body

    async def __aenter__(self) -> MockResponse:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def read(self) -> bytes:
        return self._body

    async def text(self) -> str:
        return self._body.decode("utf-8", errors="replace")

    async def json(self, content_type: str | None = None) -> Any:
        # Decodes like aiohttp, raising UnicodeDecodeError on invalid bytes
        text = self._body.decode("utf-8")
        if not text.strip():
            return None
        return json.loads(text)


class FakeSession:
    """Stand-in for aiohttp.ClientSession that answers from a route table.

    Routes are keyed by method, url and optionally query parameters. When a
    route has several responses they are returned in order, and the last one
    is repeated. Unknown routes get a 404 response.
    """

    def __init__(self) -> None:
        self._routes: dict[tuple[str, str, str | None], list[Any]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.closed = False

    @staticmethod
    def _url(url: str) -> str:
        return url if url.startswith(("http://", "https://")) else BASE_URL + url

    @staticmethod
    def _params_key(params: dict[str, Any] | None) -> str | None:
        if params is None:
            return None
        return json.dumps({k: str(v) for k, v in params.items()}, sort_keys=True)

    def add(
        self,
        method: str,
        url: str,
        *responses: Any,
        params: dict[str, Any] | None = None,
    ) -> None:
        """Add responses for a request. Dicts and lists are sent as json."""
        queue = [
            r if isinstance(r, (MockResponse, Exception)) else MockResponse(200, r)
            for r in responses
        ]
        self._routes[(method.lower(), self._url(url), self._params_key(params))] = queue

    def request(self, method: str, url: str, **kwargs: Any) -> MockResponse:
        kwargs.pop("timeout", None)
        self.calls.append((method.lower(), url, copy.deepcopy(kwargs)))
        params = self._params_key(kwargs.get("params"))
        queue = self._routes.get((method.lower(), url, params))
        if queue is None:
            queue = self._routes.get((method.lower(), url, None))
        if not queue:
            return MockResponse(404, text="Not Found", reason="Not Found")
        result = queue[0] if len(queue) == 1 else queue.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def calls_to(self, method: str, url: str) -> list[dict[str, Any]]:
        """Return the keyword arguments of the calls made to a url."""
        full = self._url(url)
        return [kw for m, u, kw in self.calls if m == method.lower() and u == full]

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake() -> FakeSession:
    """Return a fake aiohttp session."""
    return FakeSession()


@pytest.fixture
def logged_in(fake: FakeSession) -> FakeSession:
    """Return a fake aiohttp session that accepts logins."""
    fake.add("post", "login", TOKEN_RESPONSE)
    fake.add("get", "refreshToken", TOKEN_RESPONSE)
    return fake


@pytest.fixture(scope="session")
def skip_if_in_github_actions() -> None:
    """Check if we are running in Github actions and skip any dependant tests if true."""
    if os.getenv("GITHUB_ACTIONS") == "true":
        pytest.skip("This test doesn't work in Github Actions.")


@pytest.fixture(scope="session")
def metasys_credentials(skip_if_in_github_actions) -> tuple[str, str, str]:  # noqa: ANN001 (the input is purely to create a dependency to the env-flag above)
    """
    Get the Metasys host, username and password stored in env.

    Any test relying on this fixture will be skipped if the test is running
    in Github Actions, or if no server is configured.
    """
    host = os.environ.get("METASYS_HOST")
    username = os.environ.get("METASYS_USERNAME")
    password = os.environ.get("METASYS_PASSWORD")
    if not (host and username and password):
        pytest.skip(
            "Set METASYS_HOST, METASYS_USERNAME and METASYS_PASSWORD to test against a server."
        )
    return host, username, password
