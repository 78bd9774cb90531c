"""Shared fixtures: an App wired to a fake upstream over httpx.MockTransport."""

import json
from collections.abc import Callable

import httpx
import pytest

from certiwize.app import App
from certiwize.config import AppConfig, Env
from certiwize.testing import TestClient

AUTH = {"Authorization": "Bearer user-token"}

ENV = {
    "APP_URL": "https://app.test",
    "N8N_CHAT_WEBHOOK": "https://hooks.test/chat",
    "N8N_HOOK_ANALYZE_DOC": "https://hooks.test/analyze",
    "N8N_HOOK_CONVENTION": "https://hooks.test/convention",
    "N8N_HOOK_PROJ_ETUDE": "https://hooks.test/proj-etude",
    "N8N_HOOK_GENERATE_TRAINING": "https://hooks.test/training",
    "N8N_HOOK_SIGNATURE": "https://hooks.test/signature",
    "SUPABASE_URL": "https://db.test",
    "SUPABASE_SERVICE_ROLE_KEY": "service-key",
    "GOCARDLESS_ACCESS_TOKEN": "gc-token",
}

type Responder = Callable[[httpx.Request], httpx.Response]


class FakeUpstream:
    """Answers outbound calls by method and URL (query ignored) and records them."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[tuple[str, str], Responder] = {}

    def on(
        self,
        method: str,
        url: str,
        *,
        status: int = 200,
        json: object = None,
        content: bytes | None = None,
        responder: Responder | None = None,
    ) -> None:
        def respond(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status, json=json, content=content)

        self._routes[(method, url)] = responder or respond

    def calls(self, method: str, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method and _bare_url(r) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        respond = self._routes.get((request.method, _bare_url(request)))
        if respond is None:
            return httpx.Response(404, json={"message": f"no fake for {request.method} {request.url}"})
        return respond(request)


def _bare_url(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


def sent_json(request: httpx.Request) -> object:
    return json.loads(request.content)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
async def client(upstream: FakeUpstream):
    http = httpx.AsyncClient(transport=httpx.MockTransport(upstream))
    app = App(AppConfig(static_dir=None), env=Env(ENV), http=http)
    async with TestClient(app) as test_client:
        yield test_client
    await http.aclose()
