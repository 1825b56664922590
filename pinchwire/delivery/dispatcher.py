"""Delivery dispatcher: one HTTP attempt per call, retries via the durable job queue."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

import httpx

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.types import (
    CIRCUIT_OPEN,
    SCHEDULER_ERROR,
    WEBHOOK_ABANDONED,
    WEBHOOK_CIRCUIT_OPEN,
    WEBHOOK_FAILED,
    WEBHOOK_RATE_LIMITED,
    WEBHOOK_SENT,
)
from pinchwire.config.models import GatewayConfig
from pinchwire.delivery.circuit_breaker import CircuitBreaker
from pinchwire.delivery.events import OutboundEvent, RetryState
from pinchwire.delivery.rate_limit import WebhookRateLimiter
from pinchwire.hooks import WEBHOOK_PAYLOAD, HookRegistry, is_suppressed
from pinchwire.hooks import WEBHOOK_FAILED as WEBHOOK_FAILED_ACTION
from pinchwire.hooks import WEBHOOK_SENT as WEBHOOK_SENT_ACTION
from pinchwire.queue.base import JobQueue

logger = logging.getLogger(__name__)

RETRY_HOOK = "pinchwire_retry_webhook"
RETRY_INTERVALS: tuple[int, ...] = (300, 1800, 7200, 43200)
MAX_RETRIES = len(RETRY_INTERVALS)
AUDIT_SOURCE = "webhook"
BREAKER_AUDIT_SOURCE = "gateway"
_ERROR_BODY_LIMIT = 200


class DeliveryOutcome(str, Enum):
    """How one delivery attempt ended."""

    SENT = "sent"
    FAILED = "failed"
    ABANDONED = "abandoned"
    CIRCUIT_OPEN = "circuit_open"
    RATE_LIMITED = "rate_limited"
    UNCONFIGURED = "unconfigured"
    SUPPRESSED = "suppressed"


@dataclass(frozen=True, slots=True)
class _PostResult:
    ok: bool
    status_code: int | None
    error: str | None


class DeliveryDispatcher:
    """Send outbound events to the gateway with circuit breaking and scheduled retries.

    Every network attempt, circuit-open skip and rate-limited drop writes
    exactly one audit entry. Downstream failures never raise; callers get
    ``False`` and the ledger carries the detail. The rate limit only gates
    new events, so a retry chain already in flight is never cut short.
    """

    def __init__(
        self,
        gateway: GatewayConfig,
        breaker: CircuitBreaker,
        ledger: AuditLedgerBase,
        queue: JobQueue,
        *,
        hooks: HookRegistry | None = None,
        rate_limiter: WebhookRateLimiter | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._gateway = gateway
        self._breaker = breaker
        self._ledger = ledger
        self._queue = queue
        self._hooks = hooks
        self._rate_limiter = rate_limiter
        self._transport = transport
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    @property
    def is_configured(self) -> bool:
        return self._gateway.is_configured

    @property
    def endpoint(self) -> str:
        return f"{(self._gateway.url or '').rstrip('/')}/hooks/agent"

    def configure(self, gateway: GatewayConfig) -> None:
        """Swap gateway settings, e.g. after a config reload."""
        self._gateway = gateway

    def register(self) -> None:
        """Register the retry handler with the job queue."""
        self._queue.register_handler(RETRY_HOOK, self.handle_retry_job)

    async def dispatch(self, event_type: str, message: str, context: dict[str, Any] | None = None) -> bool:
        """Send one event now. Returns ``True`` only when the gateway answered 2xx."""
        if not self.is_configured:
            logger.debug("webhook not configured; dispatch skipped event_type=%s", event_type)
            return False
        event = OutboundEvent(
            event_type=event_type,
            message=message,
            context=dict(context or {}),
            created_at=self._clock(),
        )
        return await self.dispatch_event(event)

    async def dispatch_event(self, event: OutboundEvent) -> bool:
        if not self.is_configured:
            logger.debug("webhook not configured; dispatch skipped event_type=%s", event.event_type)
            return False
        outcome = await self._deliver(event, attempt=None)
        return outcome is DeliveryOutcome.SENT

    async def retry(self, event: OutboundEvent, attempt_count: int) -> DeliveryOutcome:
        """Resend a previously failed event. Invoked by the job queue, never raises for delivery failures."""
        if not self.is_configured:
            logger.info("webhook not configured; retry dropped event_id=%s attempt=%d", event.event_id, attempt_count)
            return DeliveryOutcome.UNCONFIGURED
        if not 0 <= attempt_count < MAX_RETRIES:
            logger.warning("retry attempt out of range event_id=%s attempt=%d", event.event_id, attempt_count)
            return DeliveryOutcome.ABANDONED
        return await self._deliver(event, attempt=attempt_count)

    async def handle_retry_job(self, args: dict[str, Any]) -> str:
        """Job queue entry point for ``RETRY_HOOK``."""
        state = RetryState.from_job_args(args)
        outcome = await self.retry(state.event, state.attempt_count)
        return outcome.value

    async def circuit_status(self) -> dict[str, Any]:
        return await self._breaker.status()

    def build_payload(self, event: OutboundEvent) -> dict[str, Any]:
        return {
            "message": f"[{self._gateway.site_name} - {event.event_type}] {event.message}",
            "sessionKey": f"pinchwire-{event.event_type}",
            "wakeMode": "always",
            "channel": self._gateway.channel,
            "metadata": {
                "event": event.event_type,
                "event_id": event.event_id,
                "site_url": self._gateway.site_url,
                "timestamp": event.created_at.isoformat(),
                "data": dict(event.context),
            },
        }

    async def _deliver(self, event: OutboundEvent, attempt: int | None) -> DeliveryOutcome:
        """One attempt. ``attempt`` is ``None`` for the initial send, else the retry index."""
        payload: Any = self.build_payload(event)
        if self._hooks is not None:
            payload = await self._hooks.apply_filters(WEBHOOK_PAYLOAD, payload, event)
            if is_suppressed(payload):
                logger.info("webhook payload suppressed event_type=%s event_id=%s", event.event_type, event.event_id)
                return DeliveryOutcome.SUPPRESSED

        slot = attempt if attempt is not None else 0
        base_context: dict[str, Any] = {
            "event_id": event.event_id,
            "event_type": event.event_type,
            "attempt": attempt,
        }
        if event.context.get("user_id") is not None:
            base_context["user_id"] = event.context["user_id"]

        if not await self._breaker.is_available():
            retry_after = await self._breaker.get_retry_after()
            next_at = self._clock() + timedelta(seconds=RETRY_INTERVALS[slot])
            await self._ledger.insert(
                WEBHOOK_CIRCUIT_OPEN,
                AUDIT_SOURCE,
                f"Circuit open; delivery of {event.event_type} deferred.",
                {**base_context, "retry_after": retry_after, "next_attempt_at": next_at.isoformat()},
            )
            logger.info(
                "webhook skipped circuit open event_type=%s attempt=%s retry_after=%d",
                event.event_type,
                attempt,
                retry_after,
            )
            await self._schedule_retry(event, slot, next_at)
            return DeliveryOutcome.CIRCUIT_OPEN

        if attempt is None and self._rate_limiter is not None:
            decision = await self._rate_limiter.acquire()
            if not decision.allowed:
                await self._ledger.insert(
                    WEBHOOK_RATE_LIMITED,
                    AUDIT_SOURCE,
                    f"Delivery of {event.event_type} dropped: rate limit exceeded.",
                    {
                        **base_context,
                        "limit": decision.limit,
                        "window_seconds": decision.window_seconds,
                        "reset_in": decision.reset_in,
                    },
                )
                logger.warning(
                    "webhook dropped rate limited event_type=%s limit=%d reset_in=%d",
                    event.event_type,
                    decision.limit,
                    decision.reset_in,
                )
                return DeliveryOutcome.RATE_LIMITED

        result = await self._post(payload)
        if result.ok:
            await self._breaker.record_success()
            await self._ledger.insert(
                WEBHOOK_SENT,
                AUDIT_SOURCE,
                f"Delivered {event.event_type} to gateway.",
                {**base_context, "status_code": result.status_code},
            )
            logger.info("webhook sent event_type=%s attempt=%s", event.event_type, attempt)
            if self._hooks is not None:
                await self._hooks.do_action(WEBHOOK_SENT_ACTION, event, result.status_code)
            return DeliveryOutcome.SENT

        snapshot = await self._breaker.record_failure()
        if snapshot.just_opened:
            await self._ledger.insert(
                CIRCUIT_OPEN,
                BREAKER_AUDIT_SOURCE,
                f"Circuit breaker opened after {snapshot.consecutive_failures} consecutive failures; "
                f"deliveries are deferred for {int(self._breaker.cooldown_seconds)} seconds.",
                {
                    "target": self._breaker.target,
                    "consecutive_failures": snapshot.consecutive_failures,
                    "event_id": event.event_id,
                },
            )
        next_slot = 0 if attempt is None else attempt + 1
        failure_context = {
            **base_context,
            "status_code": result.status_code,
            "error": result.error,
            "circuit_opened": snapshot.just_opened,
        }
        if next_slot < MAX_RETRIES:
            next_at = self._clock() + timedelta(seconds=RETRY_INTERVALS[next_slot])
            await self._ledger.insert(
                WEBHOOK_FAILED,
                AUDIT_SOURCE,
                f"Delivery of {event.event_type} failed: {result.error}",
                {**failure_context, "next_attempt": next_slot, "next_attempt_at": next_at.isoformat()},
            )
            logger.warning(
                "webhook dispatch failed event_type=%s attempt=%s error=%s next_attempt=%d",
                event.event_type,
                attempt,
                result.error,
                next_slot,
            )
            await self._schedule_retry(event, next_slot, next_at)
            outcome = DeliveryOutcome.FAILED
        else:
            await self._ledger.insert(
                WEBHOOK_ABANDONED,
                AUDIT_SOURCE,
                f"Delivery of {event.event_type} abandoned after {MAX_RETRIES + 1} attempts: {result.error}",
                {**failure_context, "attempts": MAX_RETRIES + 1},
            )
            logger.error(
                "webhook abandoned event_type=%s event_id=%s error=%s",
                event.event_type,
                event.event_id,
                result.error,
            )
            outcome = DeliveryOutcome.ABANDONED
        if self._hooks is not None:
            await self._hooks.do_action(WEBHOOK_FAILED_ACTION, event, result.status_code, result.error)
        return outcome

    async def _post(self, payload: dict[str, Any]) -> _PostResult:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._gateway.token}",
        }
        try:
            async with httpx.AsyncClient(timeout=self._gateway.timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.endpoint, json=payload, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return _PostResult(ok=False, status_code=None, error=f"{type(exc).__name__}: {exc}")
        if 200 <= response.status_code < 300:
            return _PostResult(ok=True, status_code=response.status_code, error=None)
        body = response.text[:_ERROR_BODY_LIMIT].strip()
        error = f"HTTP {response.status_code}" + (f": {body}" if body else "")
        return _PostResult(ok=False, status_code=response.status_code, error=error)

    async def _schedule_retry(self, event: OutboundEvent, attempt: int, run_at: datetime) -> bool:
        state = RetryState(event=event, attempt_count=attempt, next_attempt_at=run_at)
        try:
            await self._queue.schedule_once_at(RETRY_HOOK, run_at, state.to_job_args())
        except Exception as exc:
            logger.exception("failed to schedule webhook retry event_id=%s attempt=%d", event.event_id, attempt)
            await self._ledger.insert(
                SCHEDULER_ERROR,
                AUDIT_SOURCE,
                f"Could not schedule retry for {event.event_type}: {exc}",
                {"event_id": event.event_id, "event_type": event.event_type, "attempt": attempt},
            )
            return False
        return True
