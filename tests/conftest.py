import asyncio
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from outreach_api.deps import Services, get_services
from outreach_api.main import app
from outreach_api.schemas.email import ConsentSnapshot
from outreach_api.services.leads import LeadStore

CONSENT = {
    "source": "web_form",
    "captured_at": "2025-01-15T10:30:00Z",
    "exact_text": "I agree to receive emails about coverage options.",
}


def run(coro):
    """Run a coroutine to completion from a sync test."""
    return asyncio.run(coro)


def make_variant(variant_id: str = "v1", **overrides) -> dict:
    variant = {
        "id": variant_id,
        "subject": "Quick question, John",
        "body": "Hi John, families in 90210 are reviewing their coverage.",
        "used_tokens": ["first_name", "zip"],
    }
    variant.update(overrides)
    return variant


class StubBackend:
    """
    Stand-in for the AI backend behind an httpx.MockTransport.

    Replace ``generate`` / ``send`` with callables taking the decoded JSON
    payload and returning an httpx.Response (or raising an httpx error).
    """

    def __init__(self):
        self.requests: list[tuple[str, dict]] = []
        self.generate = lambda payload: httpx.Response(
            200, json={"variants": [make_variant()], "model": "stub-model"}
        )
        self.send = lambda payload: httpx.Response(200, json={"ok": True})

    def handle(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append((request.url.path, payload))
        handler = {"/generate": self.generate, "/send": self.send}[request.url.path]
        return handler(payload)

    def calls(self, path: str) -> list[dict]:
        return [payload for p, payload in self.requests if p == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url="http://backend.test",
            transport=httpx.MockTransport(self.handle),
        )


class RecordingSleep:
    """Drop-in for asyncio.sleep that returns immediately and remembers each delay."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def backend():
    return StubBackend()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def consent():
    return ConsentSnapshot(**CONSENT)


@pytest.fixture
def services(backend, sleep):
    return Services.build(backend.client(), sleep=sleep, leads=LeadStore())


@pytest.fixture
def client(services):
    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()
