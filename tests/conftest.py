from __future__ import annotations

import os
import sys
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Must be set before the cached Settings instance is first built.
TEST_ENV = {
    "RECORDING_TOKEN_SECRET": "test-secret",
    "TWILIO_ACCOUNT_SID": "AC123",
    "TWILIO_AUTH_TOKEN": "auth-token",
    "TWILIO_API_KEY_SID": "SK123",
    "TWILIO_API_KEY_SECRET": "key-secret",
    "TWILIO_TWIML_APP_SID": "AP123",
    "BASE44_APP_ID": "app1",
    "BASE44_ADMIN_EMAIL": "ops@example.com",
    "BASE44_ADMIN_PASSWORD": "hunter2",
    "DISCONNECT_POLL_INTERVAL_SECONDS": "0.01",
}
os.environ.update(TEST_ENV)

TWILIO_ACCOUNT_URL = "https://api.twilio.com/2010-04-01/Accounts/AC123"
BASE44_APP_URL = "https://base44.app/api/apps/app1"


class UpstreamStub:
    """Routes httpx requests to canned responses and records what was asked."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, url: str, *responses) -> None:
        self.routes.setdefault((method, url), []).extend(responses)

    def calls(self, url: str) -> list[httpx.Request]:
        return [request for request in self.requests if str(request.url) == url]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get((request.method, str(request.url)))
        if not queue:
            return httpx.Response(404, json={"message": "not stubbed"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item):
            return await item(request)
        # Fresh copy so a canned response can be served more than once.
        return httpx.Response(
            item.status_code, headers=item.headers, stream=httpx.ByteStream(item.content)
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=True)


@pytest.fixture()
def upstream() -> UpstreamStub:
    return UpstreamStub()


@pytest.fixture(scope="session")
def app():
    import importlib

    from config.settings import get_settings

    get_settings.cache_clear()
    main = importlib.import_module("main")
    return main.app


@pytest.fixture()
def client(app, upstream):
    import api.dependencies as deps
    from config.settings import get_settings
    from integrations.record_store import RecordStoreSessionCache
    from recordings.proxy import RecordingStreamProxy

    settings = get_settings()
    cache = RecordStoreSessionCache(settings.record_store_session_ttl_seconds)
    app.dependency_overrides[deps.get_recording_proxy] = lambda: RecordingStreamProxy(
        settings, cache, upstream.client
    )

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
