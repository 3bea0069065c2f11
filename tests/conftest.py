"""
Pytest configuration and fixtures for recipe_admin tests.

The recipe backend is replaced by `FakeBackend`, an `httpx.MockTransport`
handler with scripted responses per route; `hold` keeps a request in flight
until the test releases it. Coroutines are driven with `asyncio.run`; the
orchestrator sleeps through `RecordingSleep`, which records every requested
delay and only yields to the event loop.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

import httpx
import pytest
from fastapi.testclient import TestClient

from recipe_admin.configuration import load_settings
from recipe_admin.dashboard import RecipeDashboard
from recipe_admin.main import create_app

BACKEND_URL = "http://backend.test"
SEARCH_PATH = "/api/bucket/search"


class FakeBackend:
    """Scriptable stand-in for the recipe backend."""

    def __init__(self) -> None:
        self.requests: List[httpx.Request] = []
        self._routes: Dict[Tuple[str, str], List[Any]] = {}
        self._gates: Dict[Tuple[str, str], "asyncio.Future[None]"] = {}

    def script(self, method: str, path: str, *responses: Any) -> None:
        """
        Queue responses for a route. Each item is a `(status, json_body)` pair
        or an exception to raise. The last item repeats once the queue drains.
        """
        self._routes[(method.upper(), path)] = list(responses)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def hold(self, method: str, path: str) -> "asyncio.Future[None]":
        """
        Keep the next request to a route waiting until the returned future is
        resolved. Must be called from inside the running event loop.
        """
        gate = asyncio.get_running_loop().create_future()
        self._gates[(method.upper(), path)] = gate
        return gate

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        gate = self._gates.pop((request.method, request.url.path), None)
        if gate is not None:
            return self._respond_after(gate, request)
        return self._respond(request)

    async def _respond_after(self, gate: "asyncio.Future[None]", request: httpx.Request) -> httpx.Response:
        await gate
        return self._respond(request)

    def _respond(self, request: httpx.Request) -> httpx.Response:
        queue = self._routes.get((request.method, request.url.path))
        if not queue:
            return httpx.Response(404, json={"message": f"no route for {request.method} {request.url.path}"})

        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        if body is None:
            return httpx.Response(status)
        return httpx.Response(status, json=body)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        await asyncio.sleep(0)


def bucket_payload(*records: Dict[str, Any]) -> Dict[str, Any]:
    return {"results": {"studentUploadReadingDTOS": list(records)}}


@pytest.fixture
def today_iso():
    return (datetime.now(timezone.utc) - timedelta(seconds=1)).isoformat()


@pytest.fixture
def bucket_records(today_iso):
    """Three raw bucket records covering the normalization rules."""
    return [
        {
            "idExterne": "r1",
            "url": "http://bucket.test/pdfs/tacos-au-poisson.pdf",
            "tag1": "poisson, tortilla, citron vert",
            "tag2": "Tacos au poisson",
            "tag3": today_iso,
        },
        {
            "idExterne": "r2",
            "url": "http://bucket.test/pdfs/creme-brulee.pdf",
            "tag1": "recipe",
            "tag2": "Crème brûlée",
            "tag3": "2024-01-15T09:30:00Z",
        },
        {
            "idExterne": "r3",
            "url": "http://bucket.test/pdfs/risotto.pdf",
            "tag2": "",
            "thumbnailUrl": "http://bucket.test/thumbs/risotto.png",
        },
    ]


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def settings():
    return load_settings({"backend": {"base_url": BACKEND_URL, "api_key": "test-key-123"}})


@pytest.fixture
def run_dashboard(settings, fake_backend, recording_sleep):
    """
    Run `scenario(dashboard)` on a fresh event loop and close the dashboard
    afterwards. Returns whatever the scenario returns.
    """

    def runner(scenario):
        async def main():
            dashboard = RecipeDashboard(
                settings,
                transport=httpx.MockTransport(fake_backend),
                sleep=recording_sleep,
            )
            try:
                return await scenario(dashboard)
            finally:
                await dashboard.close()

        return asyncio.run(main())

    return runner


@pytest.fixture
def client(fake_backend, bucket_records):
    """TestClient over an app whose generation loop polls too slowly to finish during a test."""
    fake_backend.script("GET", SEARCH_PATH, (200, bucket_payload(*bucket_records)))
    fake_backend.script("GET", "/api/storage/info", (200, {"activeStorageType": "OVH Object Storage"}))
    api_settings = load_settings(
        {
            "backend": {"base_url": BACKEND_URL},
            "generation": {"poll_interval": 30.0, "simulation_tick": 30.0},
        }
    )
    dashboard = RecipeDashboard(api_settings, transport=httpx.MockTransport(fake_backend))
    with TestClient(create_app(dashboard)) as test_client:
        yield test_client
