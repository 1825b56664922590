"""Fixed-window rate limit on new outbound deliveries."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable

from pinchwire.config.models import DeliveryConfig
from pinchwire.state.store import StateStore

logger = logging.getLogger(__name__)

RATE_LIMIT_KEY = "pinchwire:webhook_rate"


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """Outcome of one ``acquire`` call."""

    allowed: bool
    count: int
    limit: int
    window_seconds: int
    reset_in: int


class WebhookRateLimiter:
    """Counts deliveries per fixed window in a ``StateStore`` blob.

    The window starts with the first delivery after the previous one expired
    and is never extended by later deliveries. A limit of 0 disables
    throttling and leaves the store untouched.
    """

    def __init__(
        self,
        state_store: StateStore,
        config: DeliveryConfig | None = None,
        *,
        clock: Callable[[], float] | None = None,
        store_key: str = RATE_LIMIT_KEY,
    ) -> None:
        self._store = state_store
        self._config = config or DeliveryConfig()
        self._clock = clock or time.time
        self.store_key = store_key

    def configure(self, config: DeliveryConfig) -> None:
        self._config = config

    @property
    def enabled(self) -> bool:
        return self._config.rate_limit > 0

    async def acquire(self) -> RateLimitDecision:
        """Take one slot in the current window, or report that none is left."""
        limit = self._config.rate_limit
        window = self._config.rate_limit_window_seconds
        if limit <= 0:
            return RateLimitDecision(True, 0, 0, window, 0)
        now = self._clock()
        decisions: list[RateLimitDecision] = []

        def _apply(raw: Any) -> dict[str, Any]:
            started, count = _read_window(raw)
            if started is None or now - started >= window:
                started, count = now, 0
            reset_in = int(math.ceil(max(0.0, started + window - now)))
            if count >= limit:
                decisions.append(RateLimitDecision(False, count, limit, window, reset_in))
                return {"window_started_at": started, "count": count}
            decisions.append(RateLimitDecision(True, count + 1, limit, window, reset_in))
            return {"window_started_at": started, "count": count + 1}

        await self._store.update(self.store_key, _apply)
        decision = decisions[-1]
        if not decision.allowed:
            logger.warning("webhook rate limit reached limit=%d window_seconds=%d", limit, window)
        return decision

    async def status(self) -> dict[str, Any]:
        started, count = _read_window(await self._store.get(self.store_key))
        window = self._config.rate_limit_window_seconds
        now = self._clock()
        if started is None or now - started >= window:
            count, reset_in = 0, 0
        else:
            reset_in = int(math.ceil(started + window - now))
        return {
            "limit": self._config.rate_limit,
            "window_seconds": window,
            "count": count,
            "reset_in": reset_in,
        }


def _read_window(raw: Any) -> tuple[float | None, int]:
    if not isinstance(raw, dict):
        return None, 0
    started = raw.get("window_started_at")
    if not isinstance(started, int | float):
        return None, 0
    try:
        count = max(0, int(raw.get("count", 0)))
    except (TypeError, ValueError):
        count = 0
    return float(started), count
