"""Failure-counting circuit breaker for the outbound gateway."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable

from pinchwire.state.store import StateStore

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 3
COOLDOWN_SECONDS = 60


class CircuitState(str, Enum):
    """Circuit breaker states. ``HALF_OPEN`` is reported, never stored."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class CircuitSnapshot:
    """Persisted breaker blob plus whether the last update opened the circuit."""

    state: CircuitState
    consecutive_failures: int
    opened_at: float | None
    just_opened: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "consecutive_failures": self.consecutive_failures,
            "opened_at": self.opened_at,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> CircuitSnapshot:
        if not isinstance(raw, dict):
            return cls(CircuitState.CLOSED, 0, None)
        state = CircuitState.OPEN if raw.get("state") == CircuitState.OPEN.value else CircuitState.CLOSED
        try:
            failures = max(0, int(raw.get("consecutive_failures", 0)))
        except (TypeError, ValueError):
            failures = 0
        opened_at = raw.get("opened_at")
        if state is CircuitState.OPEN and not isinstance(opened_at, int | float):
            # An open blob without a timestamp cannot expire; treat it as closed.
            return cls(CircuitState.CLOSED, failures, None)
        return cls(state, failures, float(opened_at) if opened_at is not None else None)


class CircuitBreaker:
    """Shared breaker guarding every dispatch attempt to one gateway.

    State lives in a ``StateStore`` blob and every mutation goes through
    ``StateStore.update`` so concurrent workers increment atomically.

    Race policy: a failure restamps ``opened_at`` only when its increment makes
    the count reach the threshold exactly, or when it is the trial call after
    the cooldown elapsed. Failures that land while the circuit is already open
    and cooling down only add to the counter, so concurrent failures past the
    threshold open the circuit once and never extend the cooldown.
    """

    def __init__(
        self,
        state_store: StateStore,
        *,
        target: str = "gateway",
        failure_threshold: int = FAILURE_THRESHOLD,
        cooldown_seconds: float = COOLDOWN_SECONDS,
        clock: Callable[[], float] | None = None,
        store_prefix: str = "pinchwire:circuit_breaker",
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be a positive integer")
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be positive")
        self._store = state_store
        self.target = target
        self.failure_threshold = failure_threshold
        self.cooldown_seconds = float(cooldown_seconds)
        self._clock = clock or time.time
        self._store_prefix = store_prefix

    @property
    def store_key(self) -> str:
        return f"{self._store_prefix}:{self.target}"

    async def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot.from_dict(await self._store.get(self.store_key))

    async def is_available(self) -> bool:
        """False only while open and still inside the cooldown window. Never mutates state."""
        return self._remaining(await self.snapshot(), self._clock()) <= 0

    async def state(self) -> CircuitState:
        snap = await self.snapshot()
        if snap.state is CircuitState.OPEN and self._remaining(snap, self._clock()) <= 0:
            return CircuitState.HALF_OPEN
        return snap.state

    async def record_success(self) -> CircuitSnapshot:
        previous: list[CircuitSnapshot] = []

        def _apply(raw: Any) -> dict[str, Any]:
            previous.append(CircuitSnapshot.from_dict(raw))
            return CircuitSnapshot(CircuitState.CLOSED, 0, None).to_dict()

        result = CircuitSnapshot.from_dict(await self._store.update(self.store_key, _apply))
        if previous and previous[0].state is CircuitState.OPEN:
            logger.info("circuit closed target=%s after_failures=%d", self.target, previous[0].consecutive_failures)
        return result

    async def record_failure(self) -> CircuitSnapshot:
        now = self._clock()
        opened: list[bool] = []

        def _apply(raw: Any) -> dict[str, Any]:
            snap = CircuitSnapshot.from_dict(raw)
            failures = snap.consecutive_failures + 1
            opened.clear()
            if snap.state is CircuitState.CLOSED:
                if failures >= self.failure_threshold:
                    opened.append(True)
                    return CircuitSnapshot(CircuitState.OPEN, failures, now).to_dict()
                return CircuitSnapshot(CircuitState.CLOSED, failures, None).to_dict()
            if self._remaining(snap, now) <= 0:
                # Trial call after cooldown failed; start a new cooldown.
                opened.append(True)
                return CircuitSnapshot(CircuitState.OPEN, failures, now).to_dict()
            return CircuitSnapshot(CircuitState.OPEN, failures, snap.opened_at).to_dict()

        stored = CircuitSnapshot.from_dict(await self._store.update(self.store_key, _apply))
        just_opened = bool(opened)
        if just_opened:
            logger.warning(
                "circuit opened target=%s consecutive_failures=%d cooldown_seconds=%s",
                self.target,
                stored.consecutive_failures,
                self.cooldown_seconds,
            )
        return CircuitSnapshot(stored.state, stored.consecutive_failures, stored.opened_at, just_opened)

    async def get_retry_after(self) -> int:
        """Seconds until the cooldown ends; 0 when closed or already elapsed."""
        return int(math.ceil(self._remaining(await self.snapshot(), self._clock())))

    async def reset(self) -> None:
        """Force the circuit closed with zero failures."""
        await self._store.update(
            self.store_key, lambda _raw: CircuitSnapshot(CircuitState.CLOSED, 0, None).to_dict()
        )
        logger.info("circuit reset target=%s", self.target)

    async def status(self) -> dict[str, Any]:
        snap = await self.snapshot()
        now = self._clock()
        remaining = self._remaining(snap, now)
        state = snap.state
        if state is CircuitState.OPEN and remaining <= 0:
            state = CircuitState.HALF_OPEN
        return {
            "target": self.target,
            "state": state.value,
            "consecutive_failures": snap.consecutive_failures,
            "retry_after": int(math.ceil(remaining)),
        }

    def _remaining(self, snap: CircuitSnapshot, now: float) -> float:
        if snap.state is not CircuitState.OPEN or snap.opened_at is None:
            return 0.0
        return max(0.0, snap.opened_at + self.cooldown_seconds - now)
