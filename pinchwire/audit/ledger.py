"""SQL-backed audit ledger."""

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any

from sqlalchemy import DateTime, Index, String, Text, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.types import AuditEntry, AuditPage, AuditQueryFilters
from pinchwire.db.base import Base, BigIntegerPK, JSONType

logger = logging.getLogger(__name__)


class AuditLogRecord(Base):
    """One row of the ``pinchwire_audit_log`` table."""

    __tablename__ = "pinchwire_audit_log"
    __table_args__ = (
        Index("idx_pinchwire_audit_type_created", "event_type", "created_at"),
        {"comment": "Append-only record of dispatch attempts, task runs and admin actions"},
    )

    id: Mapped[int] = mapped_column(BigIntegerPK, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        index=True,
    )

    def to_entry(self) -> AuditEntry:
        created_at = self.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return AuditEntry(
            id=int(self.id),
            event_type=self.event_type,
            source=self.source,
            message=self.message,
            context=dict(self.context or {}),
            user_id=self.user_id,
            created_at=created_at,
        )


class AuditLedger(AuditLedgerBase):
    """Audit ledger persisted through SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._session_factory = session_factory

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
        record = AuditLogRecord(
            event_type=event_type,
            source=source,
            message=message,
            context=context,
            user_id=user_id,
            created_at=created_at,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
            return int(record.id)

    async def _query(self, filters: AuditQueryFilters) -> AuditPage:
        conditions = []
        if filters.event_type is not None:
            conditions.append(AuditLogRecord.event_type == filters.event_type)
        if filters.source is not None:
            conditions.append(AuditLogRecord.source == filters.source)
        if filters.search is not None:
            conditions.append(AuditLogRecord.message.icontains(filters.search, autoescape=True))
        if filters.date_from is not None:
            start_dt = datetime.combine(filters.date_from, time.min, tzinfo=timezone.utc)
            conditions.append(AuditLogRecord.created_at >= start_dt)
        if filters.date_to is not None:
            end_dt = datetime.combine(filters.date_to, time.max, tzinfo=timezone.utc)
            conditions.append(AuditLogRecord.created_at <= end_dt)

        column = getattr(AuditLogRecord, filters.order_by)
        ordering = column.asc() if filters.order == "asc" else column.desc()
        tiebreak = AuditLogRecord.id.asc() if filters.order == "asc" else AuditLogRecord.id.desc()

        async with self._session_factory() as session:
            total = (
                await session.execute(select(func.count(AuditLogRecord.id)).where(*conditions))
            ).scalar_one()
            stmt = (
                select(AuditLogRecord)
                .where(*conditions)
                .order_by(ordering, tiebreak)
                .offset(filters.offset)
                .limit(filters.per_page)
            )
            records = (await session.execute(stmt)).scalars().all()
        return AuditPage(items=[record.to_entry() for record in records], total=int(total))

    async def _delete_before(self, cutoff: datetime) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(AuditLogRecord).where(AuditLogRecord.created_at < cutoff)
            )
        return int(result.rowcount or 0)

    async def _user_entries(self, user_id: str, *, offset: int, limit: int) -> list[AuditEntry]:
        stmt = (
            select(AuditLogRecord)
            .where(AuditLogRecord.user_id == user_id)
            .order_by(AuditLogRecord.id.asc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [record.to_entry() for record in records]

    async def _delete_user_batch(self, user_id: str, limit: int) -> int:
        async with self._session_factory() as session, session.begin():
            ids = (
                await session.execute(
                    select(AuditLogRecord.id)
                    .where(AuditLogRecord.user_id == user_id)
                    .order_by(AuditLogRecord.id.asc())
                    .limit(limit)
                )
            ).scalars().all()
            if not ids:
                return 0
            await session.execute(delete(AuditLogRecord).where(AuditLogRecord.id.in_(ids)))
        return len(ids)

    async def _count_user(self, user_id: str) -> int:
        async with self._session_factory() as session:
            count = (
                await session.execute(
                    select(func.count(AuditLogRecord.id)).where(AuditLogRecord.user_id == user_id)
                )
            ).scalar_one()
        return int(count)

    async def get_event_types(self) -> list[str]:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(AuditLogRecord.event_type).distinct().order_by(AuditLogRecord.event_type)
                )
            ).scalars().all()
        return list(rows)

    async def clear(self) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(delete(AuditLogRecord))
        removed = int(result.rowcount or 0)
        logger.info("audit ledger cleared removed=%d", removed)
        return removed
