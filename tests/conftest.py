"""Pytest fixtures for signal dashboard tests."""

from collections.abc import AsyncIterator, Iterator
import json
import os
from pathlib import Path
from typing import Any, Mapping

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

_STORAGE_PATH = Path(__file__).resolve().parent / "__storage"
os.environ.setdefault("DASHBOARD_ENV", "test")
os.environ.setdefault("STORAGE_DIR", str(_STORAGE_PATH))
_STORAGE_PATH.mkdir(parents=True, exist_ok=True)

from dashboard.config import Settings
from dashboard.counters.persistence import JsonDocumentStore
from dashboard.lib.metrics import OPS_METRICS
from dashboard.main import create_app


class FlakyDocumentStore(JsonDocumentStore):
    """Document store that can be switched into a simulated outage."""

    def __init__(self, path: Path) -> None:
        super().__init__(path)
        self.failing = False
        self.writes = 0

    def read(self) -> dict[str, Any] | None:
        if self.failing:
            raise OSError("document store unreachable")
        return super().read()

    def write(self, fields: Mapping[str, int], seq: int) -> bool:
        if self.failing:
            raise OSError("document store unreachable")
        self.writes += 1
        return super().write(fields, seq)


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    """Settings pointing at an isolated storage directory."""

    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        DASHBOARD_ENV="test",
        STORAGE_DIR=tmp_path,
        PERSIST_TIMEOUT_SECONDS=1.0,
        SUBSCRIBER_SEND_TIMEOUT_SECONDS=1.0,
        SUBSCRIBER_QUEUE_SIZE=32,
    )


@pytest.fixture()
def document_store(settings: Settings) -> FlakyDocumentStore:
    return FlakyDocumentStore(settings.metrics_document_path)


@pytest.fixture()
def write_document(settings: Settings):
    """Seed the persisted metrics document before the app starts."""

    def _write(document: dict[str, Any]) -> Path:
        path = settings.metrics_document_path
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write


@pytest.fixture()
def read_document(settings: Settings):
    def _read() -> dict[str, Any]:
        return json.loads(settings.metrics_document_path.read_text(encoding="utf-8"))

    return _read


@pytest.fixture()
def app(settings: Settings, document_store: FlakyDocumentStore) -> FastAPI:
    """Return a fresh FastAPI application wired to the flaky document store."""

    return create_app(settings, document_store=document_store)


@pytest_asyncio.fixture()
async def async_client(app: FastAPI) -> AsyncIterator[AsyncClient]:
    """Provide an `httpx.AsyncClient` configured for the FastAPI app."""

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture(autouse=True)
def reset_ops_metrics() -> Iterator[None]:
    """Reset operational counters across tests."""

    OPS_METRICS.reset()
    yield
    OPS_METRICS.reset()
