"""In-memory audit ledger for lite mode and tests."""

from __future__ import annotations

import itertools
from datetime import date, datetime, time, timezone
from typing import Any

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.types import AuditEntry, AuditPage, AuditQueryFilters


class InMemoryAuditLedger(AuditLedgerBase):
    """Audit ledger kept in a process-local list; same interface as ``AuditLedger``."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._entries: list[AuditEntry] = []
        self._ids = itertools.count(1)

    async def _append(
        self,
        *,
        event_type: str,
        source: str,
        message: str,
        context: dict[str, Any],
        user_id: str | None,
        created_at: datetime,
    ) -> int:
        entry = AuditEntry(
            id=next(self._ids),
            event_type=event_type,
            source=source,
            message=message,
            context=dict(context),
            user_id=user_id,
            created_at=created_at,
        )
        self._entries.append(entry)
        return entry.id

    async def _query(self, filters: AuditQueryFilters) -> AuditPage:
        matches = [entry for entry in self._entries if _matches(entry, filters)]
        reverse = filters.order == "desc"
        matches.sort(key=lambda e: (getattr(e, filters.order_by), e.id), reverse=reverse)
        start = filters.offset
        return AuditPage(items=matches[start : start + filters.per_page], total=len(matches))

    async def _delete_before(self, cutoff: datetime) -> int:
        before = len(self._entries)
        self._entries = [entry for entry in self._entries if entry.created_at >= cutoff]
        return before - len(self._entries)

    async def _user_entries(self, user_id: str, *, offset: int, limit: int) -> list[AuditEntry]:
        owned = [entry for entry in self._entries if entry.user_id == user_id]
        return owned[offset : offset + limit]

    async def _delete_user_batch(self, user_id: str, limit: int) -> int:
        doomed = {entry.id for entry in self._entries if entry.user_id == user_id}
        doomed = set(sorted(doomed)[:limit])
        self._entries = [entry for entry in self._entries if entry.id not in doomed]
        return len(doomed)

    async def _count_user(self, user_id: str) -> int:
        return sum(1 for entry in self._entries if entry.user_id == user_id)

    async def get_event_types(self) -> list[str]:
        return sorted({entry.event_type for entry in self._entries})

    async def clear(self) -> int:
        removed = len(self._entries)
        self._entries = []
        return removed

    def all_entries(self) -> list[AuditEntry]:
        return list(self._entries)


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    return (
        datetime.combine(day, time.min, tzinfo=timezone.utc),
        datetime.combine(day, time.max, tzinfo=timezone.utc),
    )


def _matches(entry: AuditEntry, filters: AuditQueryFilters) -> bool:
    if filters.event_type is not None and entry.event_type != filters.event_type:
        return False
    if filters.source is not None and entry.source != filters.source:
        return False
    if filters.search is not None and filters.search.lower() not in entry.message.lower():
        return False
    if filters.date_from is not None and entry.created_at < _day_bounds(filters.date_from)[0]:
        return False
    if filters.date_to is not None and entry.created_at > _day_bounds(filters.date_to)[1]:
        return False
    return True
