"""State store protocol and in-memory implementation."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Callable, Protocol

StateUpdater = Callable[[Any], Any]


class StateStore(Protocol):
    """Key/value store for small JSON-serializable state blobs.

    ``update`` is the only read-modify-write primitive and must apply the
    updater atomically with respect to every other ``update`` on the same key.
    """

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def update(self, key: str, updater: StateUpdater) -> Any: ...


class InMemoryStateStore:
    """Process-local state store serialized by a single asyncio lock."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            return copy.deepcopy(self._data.get(key))

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def update(self, key: str, updater: StateUpdater) -> Any:
        async with self._lock:
            new_value = updater(copy.deepcopy(self._data.get(key)))
            self._data[key] = copy.deepcopy(new_value)
            return new_value

    def keys(self) -> list[str]:
        return sorted(self._data)
