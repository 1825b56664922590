"""Outbound event and retry state value objects."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class OutboundEvent:
    """One unit of delivery. Retries resend the identical event."""

    event_type: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utc_now)
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if not isinstance(self.event_type, str) or not self.event_type.strip():
            raise ValueError("event_type must be a non-empty string")

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "message": self.message,
            "context": dict(self.context),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OutboundEvent:
        created_raw = data.get("created_at")
        created_at = datetime.fromisoformat(created_raw) if isinstance(created_raw, str) else _utc_now()
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            event_type=str(data["event_type"]),
            message=str(data.get("message", "")),
            context=dict(data.get("context") or {}),
            created_at=created_at,
            event_id=str(data.get("event_id") or uuid.uuid4().hex),
        )


@dataclass(frozen=True, slots=True)
class RetryState:
    """Args carried by one scheduled retry job."""

    event: OutboundEvent
    attempt_count: int
    next_attempt_at: datetime

    def to_job_args(self) -> dict[str, Any]:
        return {
            "event": self.event.to_dict(),
            "attempt": self.attempt_count,
            "next_attempt_at": self.next_attempt_at.isoformat(),
        }

    @classmethod
    def from_job_args(cls, args: dict[str, Any]) -> RetryState:
        if "event" not in args or not isinstance(args["event"], dict):
            raise ValueError("retry job args must include an event mapping")
        attempt = int(args.get("attempt", 0))
        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        next_raw = args.get("next_attempt_at")
        next_at = datetime.fromisoformat(next_raw) if isinstance(next_raw, str) else _utc_now()
        return cls(event=OutboundEvent.from_dict(args["event"]), attempt_count=attempt, next_attempt_at=next_at)
