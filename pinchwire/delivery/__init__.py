"""Outbound delivery: circuit breaker, gateway payloads and the retrying dispatcher."""

from pinchwire.delivery.circuit_breaker import (
    COOLDOWN_SECONDS,
    FAILURE_THRESHOLD,
    CircuitBreaker,
    CircuitSnapshot,
    CircuitState,
)
from pinchwire.delivery.dispatcher import (
    MAX_RETRIES,
    RETRY_HOOK,
    RETRY_INTERVALS,
    DeliveryDispatcher,
    DeliveryOutcome,
)
from pinchwire.delivery.events import OutboundEvent, RetryState
from pinchwire.delivery.rate_limit import RateLimitDecision, WebhookRateLimiter

__all__ = [
    "COOLDOWN_SECONDS",
    "FAILURE_THRESHOLD",
    "MAX_RETRIES",
    "RETRY_HOOK",
    "RETRY_INTERVALS",
    "CircuitBreaker",
    "CircuitSnapshot",
    "CircuitState",
    "DeliveryDispatcher",
    "DeliveryOutcome",
    "OutboundEvent",
    "RateLimitDecision",
    "RetryState",
    "WebhookRateLimiter",
]
