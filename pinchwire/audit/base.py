"""Storage-independent audit ledger behaviour."""

from __future__ import annotations

import csv
import io
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from pinchwire.audit.types import (
    AUDIT_PURGED,
    CSV_HEADER,
    AuditEntry,
    AuditPage,
    AuditQueryFilters,
    UserDataErasure,
    UserDataExport,
)
from pinchwire.hooks import AUDIT_ENTRY, HookRegistry, is_suppressed

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 64
RETENTION_DAYS = 90
EXPORT_MAX_ROWS = 5000
ERASE_BATCH_SIZE = 100

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_label(value: Any, field_name: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{field_name} must be a non-empty string")
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{field_name} must be a non-empty string")
    if len(normalized) > MAX_LABEL_LENGTH:
        raise ValueError(f"{field_name} must be at most {MAX_LABEL_LENGTH} characters")
    return normalized


class AuditLedgerBase(ABC):
    """Append-only audit log with query, CSV export, retention and per-user erasure.

    Subclasses provide the storage primitives; validation, the ``audit_entry``
    veto hook and batching live here so every backend behaves the same.
    """

    def __init__(
        self,
        hooks: HookRegistry | None = None,
        *,
        retention_days: int = RETENTION_DAYS,
        export_max_rows: int = EXPORT_MAX_ROWS,
        erase_batch_size: int = ERASE_BATCH_SIZE,
        clock: Clock | None = None,
    ) -> None:
        if retention_days < 1:
            raise ValueError("retention_days must be a positive integer")
        if export_max_rows < 1 or erase_batch_size < 1:
            raise ValueError("export_max_rows and erase_batch_size must be positive integers")
        self._hooks = hooks
        self.retention_days = retention_days
        self.export_max_rows = export_max_rows
        self.erase_batch_size = erase_batch_size
        self._clock = clock or utc_now

    async def insert(
        self,
        event_type: str,
        source: str,
        message: str,
        context: dict[str, Any] | None = None,
        user_id: str | int | None = None,
    ) -> int | None:
        """Append one entry and return its id, or ``None`` when a hook vetoed it."""
        entry: dict[str, Any] = {
            "event_type": _normalize_label(event_type, "event_type"),
            "source": _normalize_label(source, "source"),
            "message": str(message),
            "context": dict(context or {}),
            "user_id": user_id,
        }
        if self._hooks is not None:
            filtered = await self._hooks.apply_filters(AUDIT_ENTRY, entry)
            if is_suppressed(filtered):
                logger.debug("audit entry vetoed event_type=%s source=%s", entry["event_type"], entry["source"])
                return None
            entry = filtered
        resolved_user = entry.get("user_id")
        if resolved_user is None:
            resolved_user = entry["context"].get("user_id")
        return await self._append(
            event_type=entry["event_type"],
            source=entry["source"],
            message=entry["message"],
            context=entry["context"],
            user_id=None if resolved_user is None else str(resolved_user),
            created_at=self._clock(),
        )

    async def query(self, filters: AuditQueryFilters | None = None) -> AuditPage:
        """Return one page of entries matching ``filters`` and the total match count."""
        return await self._query(filters or AuditQueryFilters())

    async def export_csv(self, filters: AuditQueryFilters | None = None) -> str:
        """Render matching entries as CSV, capped at ``export_max_rows`` rows."""
        base = filters or AuditQueryFilters()
        page = await self._query(replace(base, page=1, per_page=self.export_max_rows))
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_HEADER)
        for item in page.items:
            writer.writerow(
                [
                    item.id,
                    item.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                    item.event_type,
                    item.source,
                    item.message,
                    json.dumps(item.context, sort_keys=True, default=str) if item.context else "",
                ]
            )
        return buffer.getvalue()

    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete entries older than the retention window. Returns the number removed."""
        cutoff = (now or self._clock()) - timedelta(days=self.retention_days)
        removed = await self._delete_before(cutoff)
        if removed:
            logger.info("audit retention sweep removed=%d cutoff=%s", removed, cutoff.isoformat())
        return removed

    async def export_user_data(self, user_id: str | int, page: int = 1) -> UserDataExport:
        """Return one batch of entries tied to ``user_id``; callers loop until ``done``."""
        page = max(1, int(page))
        entries = await self._user_entries(
            str(user_id),
            offset=(page - 1) * self.erase_batch_size,
            limit=self.erase_batch_size,
        )
        return UserDataExport(
            data=[entry.to_dict() for entry in entries],
            done=len(entries) < self.erase_batch_size,
        )

    async def erase_user_data(self, user_id: str | int) -> UserDataErasure:
        """Hard-delete one batch of entries tied to ``user_id``; callers loop until ``done``."""
        key = str(user_id)
        removed = await self._delete_user_batch(key, self.erase_batch_size)
        remaining = await self._count_user(key)
        if removed:
            logger.info("audit user erasure removed=%d remaining=%d", removed, remaining)
        return UserDataErasure(
            items_removed=removed,
            items_retained=0,
            messages=[],
            done=remaining == 0,
        )

    async def cleanup_job(self, _args: dict[str, Any] | None = None) -> int:
        """Recurring job handler: purge expired rows and record the sweep."""
        removed = await self.purge_expired()
        if removed:
            await self.insert(
                AUDIT_PURGED,
                "audit",
                f"Removed {removed} audit entries older than {self.retention_days} days.",
                {"removed": removed, "retention_days": self.retention_days},
            )
        return removed

    @abstractmethod
    async def get_event_types(self) -> list[str]:
        """Distinct event types present in the ledger, sorted."""

    @abstractmethod
    async def clear(self) -> int:
        """Remove every entry. Used on uninstall."""

    @abstractmethod
    async def _append(
        self,
        *,
        event_type: str,
        source: str,
        message: str,
        context: dict[str, Any],
        user_id: str | None,
        created_at: datetime,
    ) -> int: ...

    @abstractmethod
    async def _query(self, filters: AuditQueryFilters) -> AuditPage: ...

    @abstractmethod
    async def _delete_before(self, cutoff: datetime) -> int: ...

    @abstractmethod
    async def _user_entries(self, user_id: str, *, offset: int, limit: int) -> list[AuditEntry]: ...

    @abstractmethod
    async def _delete_user_batch(self, user_id: str, limit: int) -> int: ...

    @abstractmethod
    async def _count_user(self, user_id: str) -> int: ...
