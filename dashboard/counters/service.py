"""Signal ingestion and reset orchestration over store, hub and persistence."""

from __future__ import annotations

from typing import Awaitable

from dashboard.counters.constants import ERROR_INTERNAL, ERROR_INVALID_TYPE, ERROR_TYPE_REQUIRED
from dashboard.counters.hub import SubscriberHub
from dashboard.counters.persistence import PersistenceAdapter, PersistenceError
from dashboard.counters.schemas import CounterState
from dashboard.counters.store import CounterStore, CounterUpdate, UnknownMetricError
from dashboard.lib.logger import get_logger
from dashboard.lib.metrics import OPS_METRICS, MetricsRegistry

logger = get_logger(__name__)


class SignalRejected(Exception):
    """A signal or reset that must be answered with an error body."""

    def __init__(self, status_code: int, error: str) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error


class CounterService:
    """Apply signals to the store, then broadcast, then persist.

    Persistence is best-effort: a failed write is logged and the request still
    succeeds, because live viewers must keep updating while the store is down.
    After a failure the next write sends the whole snapshot so the document
    converges on the in-memory state.
    """

    def __init__(
        self,
        store: CounterStore,
        hub: SubscriberHub,
        persistence: PersistenceAdapter,
        ops: MetricsRegistry = OPS_METRICS,
    ) -> None:
        self._store = store
        self._hub = hub
        self._persistence = persistence
        self._ops = ops
        self._dirty = False
        # Bumped on every failed write; a full write only clears the dirty
        # flag if no failure happened after it took its snapshot.
        self._failure_generation = 0

    @property
    def persistence_healthy(self) -> bool:
        return not self._dirty

    def snapshot(self) -> CounterState:
        return self._store.snapshot()

    async def startup(self) -> CounterState:
        """Load persisted counters, falling back to zeros when the store is unreachable."""

        try:
            state = await self._persistence.load_or_init()
        except PersistenceError as exc:
            logger.warning("metrics_load_failed", extra={"error": str(exc)})
            state = CounterState()
            self._mark_dirty()
        self._store.load(state)
        logger.info("metrics_loaded", extra={"metrics": state.as_dict()})
        return state

    async def shutdown(self) -> None:
        """Flush the full snapshot and disconnect all subscribers."""

        state, seq = self._store.versioned_snapshot()
        try:
            await self._persistence.save_all(state, seq)
        except PersistenceError as exc:
            logger.error("metrics_flush_failed", extra={"error": str(exc), "metrics": state.as_dict()})
        else:
            logger.info("metrics_flushed", extra={"metrics": state.as_dict()})
        self._hub.close_all()

    async def record_signal(self, metric_type: str | None) -> int:
        """Increment ``metric_type`` and return its new count."""

        if not metric_type:
            self._ops.increment("signal.rejected")
            raise SignalRejected(400, ERROR_TYPE_REQUIRED)

        try:
            update = self._store.increment(metric_type)
        except UnknownMetricError:
            self._ops.increment("signal.rejected")
            logger.info("signal_rejected", extra={"metric": metric_type})
            raise SignalRejected(400, ERROR_INVALID_TYPE) from None
        except Exception as exc:
            self._ops.increment("signal.error")
            logger.exception("signal_failed", extra={"metric": metric_type})
            raise SignalRejected(500, ERROR_INTERNAL) from exc

        # No await between the increment and the enqueue: subscribers see
        # updates in exactly the order the store applied them.
        try:
            delivered = self._hub.publish_update(update)
        except Exception:
            delivered = 0
            logger.exception("broadcast_failed", extra={"metric": update.metric})

        self._ops.increment("signal.accepted")
        logger.info(
            "signal_accepted",
            extra={"metric": update.metric, "value": update.value, "delivered": delivered},
        )
        await self._persist_update(update)
        return update.value

    async def reset(self) -> CounterState:
        """Zero every counter, push a fresh INIT to everyone and persist the zeros."""

        try:
            state, seq = self._store.reset_versioned()
            self._hub.publish_init(state)
        except Exception as exc:
            logger.exception("reset_failed")
            raise SignalRejected(500, ERROR_INTERNAL) from exc

        self._ops.increment("reset.count")
        logger.info("metrics_reset")
        generation = self._failure_generation
        await self._persist(self._persistence.save_all(state, seq), metric=None, full=True, generation=generation)
        return state

    async def _persist_update(self, update: CounterUpdate) -> None:
        if self._dirty:
            generation = self._failure_generation
            state, seq = self._store.versioned_snapshot()
            await self._persist(
                self._persistence.save_all(state, seq),
                metric=update.metric,
                full=True,
                generation=generation,
            )
        else:
            await self._persist(
                self._persistence.save(update.metric, update.value, update.seq),
                metric=update.metric,
                full=False,
            )

    async def _persist(
        self,
        write: Awaitable[None],
        *,
        metric: str | None,
        full: bool,
        generation: int | None = None,
    ) -> None:
        try:
            await write
        except PersistenceError as exc:
            self._mark_dirty()
            self._ops.increment("persist.failure")
            logger.warning("persist_failed", extra={"metric": metric, "error": str(exc)})
            return
        self._ops.increment("persist.success")
        # Only a full write taken after the latest failure proves every field has caught up.
        if full and self._dirty and generation == self._failure_generation:
            self._dirty = False
            logger.info("persist_recovered")

    def _mark_dirty(self) -> None:
        self._dirty = True
        self._failure_generation += 1
