"""Durable mirror of the counter store kept in a single JSON document.

The document is a restart-recovery copy, not the source of truth: callers keep
serving from memory when any method here raises ``PersistenceError``.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Mapping, TypeVar

from pydantic import ValidationError

from dashboard.counters.constants import METRIC_NAMES
from dashboard.counters.schemas import CounterState
from dashboard.lib.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class PersistenceError(Exception):
    """The document store could not be read or written."""


class JsonDocumentStore:
    """One JSON object on disk holding an integer field per metric.

    Writes replace the file atomically and are upserts: the document is
    overwritten in place and never accumulates history. Each field remembers the
    sequence number of its last write so a late, older write is ignored.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._field_seq: dict[str, int] = {}

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> dict[str, Any] | None:
        with self._lock:
            return self._read_unlocked()

    def write(self, fields: Mapping[str, int], seq: int) -> bool:
        """Upsert ``fields`` into the document; return False if every field was stale."""

        with self._lock:
            fresh = {
                name: value
                for name, value in fields.items()
                if seq >= self._field_seq.get(name, -1)
            }
            if not fresh:
                return False

            if set(fresh) >= set(METRIC_NAMES):
                document: dict[str, Any] = {}
            else:
                document = self._read_unlocked() or dict.fromkeys(METRIC_NAMES, 0)
            document.update(fresh)
            document["updated_at"] = datetime.now(tz=UTC).isoformat()
            self._atomic_write(document)

            for name in fresh:
                self._field_seq[name] = seq
            return True

    def _read_unlocked(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        document = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(document, dict):
            raise ValueError(f"Metrics document {self._path} is not a JSON object")
        return document

    def _atomic_write(self, document: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)


class PersistenceAdapter:
    """Async facade running document I/O off the event loop with a deadline."""

    def __init__(self, backend: JsonDocumentStore, timeout_seconds: float = 2.0) -> None:
        self._backend = backend
        self._timeout = timeout_seconds

    @property
    def backend(self) -> JsonDocumentStore:
        return self._backend

    async def load_or_init(self) -> CounterState:
        """Return the persisted state, creating an all-zero document when none exists."""

        document = await self._call(self._backend.read)
        if document is None:
            state = CounterState()
            await self._call(self._backend.write, state.as_dict(), 0)
            logger.info("metrics_document_created", extra={"path": str(self._backend.path)})
            return state
        try:
            return CounterState.from_document(document)
        except ValidationError as exc:
            raise PersistenceError(f"Invalid metrics document: {exc}") from exc

    async def save(self, name: str, value: int, seq: int) -> None:
        await self._call(self._backend.write, {name: value}, seq)

    async def save_all(self, state: CounterState, seq: int) -> None:
        await self._call(self._backend.write, state.as_dict(), seq)

    async def _call(self, fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn, *args), timeout=self._timeout)
        except TimeoutError as exc:
            raise PersistenceError(f"Metrics store timed out after {self._timeout}s") from exc
        except (OSError, ValueError) as exc:
            raise PersistenceError(str(exc)) from exc
        except Exception as exc:
            logger.exception("metrics_store_error", extra={"backend": type(self._backend).__name__})
            raise PersistenceError(f"Unexpected metrics store error: {exc!r}") from exc
