"""Externally persisted state blobs (circuit breaker, task registration)."""

from pinchwire.state.store import InMemoryStateStore, StateStore, StateUpdater
from pinchwire.state.store_sql import SQLStateStore, StateRecord

__all__ = [
    "InMemoryStateStore",
    "SQLStateStore",
    "StateRecord",
    "StateStore",
    "StateUpdater",
]
