"""
tests/test_app.py
Application-level behaviour: health, metrics, error envelope, headers.
"""

import pytest
from httpx import AsyncClient

from shared.middleware.metrics import REGISTRY
from shared.models.models import Profile


@pytest.mark.asyncio
async def test_root(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["docs"] == "/docs"


@pytest.mark.asyncio
async def test_health_without_redis(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] == "ok"
    assert body["redis"] == "disabled"


@pytest.mark.asyncio
async def test_request_id_and_timing_headers(client: AsyncClient):
    response = await client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Process-Time"].endswith("ms")


@pytest.mark.asyncio
async def test_unknown_route_uses_error_envelope(client: AsyncClient):
    response = await client.get("/does-not-exist")
    assert response.status_code == 404
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "NotFound"
    assert "request_id" in body


@pytest.mark.asyncio
async def test_metrics_exposed(client: AsyncClient, student: Profile):
    await client.get(f"/profiles/{student.external_identity}")
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "alumni_connect_http_requests_total" in response.text


def _root_requests() -> float:
    return REGISTRY.get_sample_value(
        "alumni_connect_http_requests_total",
        {"method": "GET", "endpoint": "/", "status_code": "200"},
    ) or 0.0


@pytest.mark.asyncio
async def test_each_request_counted_once(client: AsyncClient):
    before = _root_requests()
    await client.get("/")
    assert _root_requests() - before == 1
    await client.get("/")
    assert _root_requests() - before == 2
