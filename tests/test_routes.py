"""HTTP contract tests for signal, metrics, reset and health endpoints."""

from __future__ import annotations

import asyncio

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from dashboard.counters.constants import METRIC_NAMES
from dashboard.main import create_app

from conftest import FlakyDocumentStore

ZERO = {"paircode": 0, "api": 0, "bot": 0, "cdn": 0}


@pytest.mark.asyncio
@pytest.mark.parametrize("name", METRIC_NAMES)
async def test_sequential_signals_report_exact_count(async_client: AsyncClient, name: str) -> None:
    for expected in range(1, 4):
        response = await async_client.post("/signal", json={"type": name})
        assert response.status_code == 200
        assert response.json() == {"success": True, "newCount": expected}

    metrics = (await async_client.get("/metrics")).json()
    assert metrics == {**ZERO, name: 3}


@pytest.mark.asyncio
async def test_unknown_metric_is_rejected(async_client: AsyncClient) -> None:
    before = (await async_client.get("/metrics")).json()

    response = await async_client.post("/signal", json={"type": "nonexistent"})

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Invalid metric type"}
    assert (await async_client.get("/metrics")).json() == before


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("kwargs", "error"),
    [
        ({"json": {}}, "Type is required"),
        ({"json": {"type": ""}}, "Type is required"),
        ({"json": {"type": None}}, "Type is required"),
        ({}, "Type is required"),
        ({"json": {"type": 5}}, "Invalid metric type"),
        ({"json": ["api"]}, "Invalid metric type"),
        ({"content": b"{not json", "headers": {"content-type": "application/json"}}, "Invalid metric type"),
    ],
)
async def test_malformed_signal_bodies(async_client: AsyncClient, kwargs: dict, error: str) -> None:
    response = await async_client.post("/signal", **kwargs)

    assert response.status_code == 400
    assert response.json() == {"success": False, "error": error}
    assert (await async_client.get("/metrics")).json() == ZERO


@pytest.mark.asyncio
async def test_parallel_signals_lose_no_updates(async_client: AsyncClient) -> None:
    responses = await asyncio.gather(
        *(async_client.post("/signal", json={"type": "api"}) for _ in range(100))
    )

    assert all(response.status_code == 200 for response in responses)
    assert sorted(response.json()["newCount"] for response in responses) == list(range(1, 101))
    assert (await async_client.get("/metrics")).json()["api"] == 100


@pytest.mark.asyncio
async def test_internal_failure_returns_generic_error(
    app: FastAPI, async_client: AsyncClient, monkeypatch: pytest.MonkeyPatch
) -> None:
    def explode(name: str):
        raise RuntimeError("store exploded")

    monkeypatch.setattr(app.state.counter_store, "increment", explode)

    response = await async_client.post("/signal", json={"type": "api"})

    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}


@pytest.mark.asyncio
async def test_reset_returns_zero_state(async_client: AsyncClient, read_document) -> None:
    await async_client.post("/signal", json={"type": "bot"})
    await async_client.post("/signal", json={"type": "cdn"})

    response = await async_client.post("/reset")

    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "Metrics reset", "metrics": ZERO}
    assert (await async_client.get("/metrics")).json() == ZERO
    assert {name: read_document()[name] for name in METRIC_NAMES} == ZERO


@pytest.mark.asyncio
async def test_signals_succeed_during_store_outage(
    async_client: AsyncClient, document_store, read_document
) -> None:
    document_store.failing = True
    for _ in range(3):
        response = await async_client.post("/signal", json={"type": "paircode"})
        assert response.status_code == 200

    health = (await async_client.get("/health")).json()["data"]
    assert health["persistence"] == "degraded"
    assert health["counters"]["persist.failure"] == 3

    document_store.failing = False
    response = await async_client.post("/signal", json={"type": "paircode"})

    assert response.json()["newCount"] == 4
    assert read_document()["paircode"] == 4
    assert (await async_client.get("/health")).json()["data"]["persistence"] == "ok"


@pytest.mark.asyncio
async def test_restart_reproduces_persisted_state(app: FastAPI, async_client: AsyncClient, write_document) -> None:
    write_document({"paircode": 10, "api": 2, "bot": 0, "cdn": 7, "updated_at": "2024-01-01T00:00:00+00:00"})

    await app.state.counter_service.startup()

    response = await async_client.get("/metrics")
    assert response.json() == {"paircode": 10, "api": 2, "bot": 0, "cdn": 7}


@pytest.mark.asyncio
async def test_health_endpoint(async_client: AsyncClient) -> None:
    await async_client.post("/signal", json={"type": "api"})

    response = await async_client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["data"]["status"] == "healthy"
    assert body["data"]["subscribers"] == 0
    assert body["data"]["counters"]["signal.accepted"] == 1


@pytest.mark.asyncio
async def test_backend_panic_still_answers_success(settings) -> None:
    class PanickingDocumentStore(FlakyDocumentStore):
        def write(self, fields, seq):  # type: ignore[override]
            raise RuntimeError("store panic")

    app = create_app(settings, document_store=PanickingDocumentStore(settings.metrics_document_path))
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as client:
        response = await client.post("/signal", json={"type": "api"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "newCount": 1}
        assert (await client.get("/metrics")).json()["api"] == 1
        assert (await client.get("/health")).json()["data"]["persistence"] == "degraded"
