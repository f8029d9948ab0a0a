"""Counter package: state, persistence mirror, subscriber fan-out and routes."""

from dashboard.counters.hub import SubscriberHub
from dashboard.counters.persistence import JsonDocumentStore, PersistenceAdapter
from dashboard.counters.routes import router
from dashboard.counters.service import CounterService, SignalRejected
from dashboard.counters.store import CounterStore

__all__ = [
    "CounterService",
    "CounterStore",
    "JsonDocumentStore",
    "PersistenceAdapter",
    "SignalRejected",
    "SubscriberHub",
    "router",
]
