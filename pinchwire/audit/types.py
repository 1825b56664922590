"""Audit ledger value types and query filters."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

# Event types written by the pipeline itself.
WEBHOOK_SENT = "webhook_sent"
WEBHOOK_FAILED = "webhook_failed"
WEBHOOK_CIRCUIT_OPEN = "webhook_circuit_open"
WEBHOOK_ABANDONED = "webhook_abandoned"
WEBHOOK_RATE_LIMITED = "webhook_rate_limited"
GOVERNANCE_FINDING = "governance_finding"
GOVERNANCE_ERROR = "governance_error"
SCHEDULER_ERROR = "scheduler_error"
AUDIT_PURGED = "audit_purged"
CIRCUIT_OPEN = "circuit_open"
CIRCUIT_RESET = "circuit_reset"

ORDERABLE_COLUMNS = frozenset({"id", "event_type", "source", "created_at"})
DEFAULT_ORDER_BY = "created_at"
DEFAULT_PER_PAGE = 50
CSV_HEADER = ("ID", "Date", "Event Type", "Source", "Message", "Context")


@dataclass(frozen=True, slots=True)
class AuditEntry:
    """One immutable audit ledger row."""

    id: int
    event_type: str
    source: str
    message: str
    context: dict[str, Any]
    user_id: str | None
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "source": self.source,
            "message": self.message,
            "context": dict(self.context),
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class AuditQueryFilters:
    """Filters for querying the audit ledger.

    ``date_from``/``date_to`` are inclusive whole UTC days. Unknown ``order_by``
    columns and ``order`` values fall back to ``created_at`` descending.
    """

    event_type: str | None = None
    source: str | None = None
    search: str | None = None
    date_from: date | None = None
    date_to: date | None = None
    per_page: int = DEFAULT_PER_PAGE
    page: int = 1
    order_by: str = DEFAULT_ORDER_BY
    order: str = "desc"

    def __post_init__(self) -> None:
        self.event_type = _blank_to_none(self.event_type)
        self.source = _blank_to_none(self.source)
        self.search = _blank_to_none(self.search)
        self.per_page = max(1, int(self.per_page))
        self.page = max(1, int(self.page))
        if self.order_by not in ORDERABLE_COLUMNS:
            self.order_by = DEFAULT_ORDER_BY
        normalized_order = str(self.order).strip().lower()
        self.order = normalized_order if normalized_order in {"asc", "desc"} else "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.per_page


@dataclass(slots=True)
class AuditPage:
    """One page of query results plus the unpaginated match count."""

    items: list[AuditEntry] = field(default_factory=list)
    total: int = 0


@dataclass(slots=True)
class UserDataExport:
    """One batch of a per-user data export."""

    data: list[dict[str, Any]]
    done: bool


@dataclass(slots=True)
class UserDataErasure:
    """Outcome of one per-user erasure batch."""

    items_removed: int
    items_retained: int
    messages: list[str]
    done: bool


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None
