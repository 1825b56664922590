"""SQLAlchemy-backed state store with row-locking updates."""

from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, String, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from pinchwire.db.base import Base, JSONType
from pinchwire.state.store import StateUpdater

logger = logging.getLogger(__name__)


class StateRecord(Base):
    """One persisted state blob."""

    __tablename__ = "pinchwire_state"

    key: Mapped[str] = mapped_column(String(191), primary_key=True)
    value: Mapped[Any] = mapped_column(JSONType, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class SQLStateStore:
    """State store over the ``pinchwire_state`` table.

    ``update`` locks the row with ``SELECT ... FOR UPDATE`` inside one
    transaction so concurrent workers serialize on the blob.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._local_lock = asyncio.Lock()

    async def get(self, key: str) -> Any | None:
        async with self._session_factory() as session:
            record = await session.get(StateRecord, key)
            return None if record is None else record.value

    async def set(self, key: str, value: Any) -> None:
        await self.update(key, lambda _old: value)

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session, session.begin():
            await session.execute(delete(StateRecord).where(StateRecord.key == key))

    async def update(self, key: str, updater: StateUpdater) -> Any:
        async with self._local_lock:
            await self._ensure_row(key)
            async with self._session_factory() as session, session.begin():
                stmt = select(StateRecord).where(StateRecord.key == key).with_for_update()
                record = (await session.execute(stmt)).scalar_one()
                new_value = updater(copy.deepcopy(record.value))
                record.value = new_value
                record.updated_at = datetime.now(timezone.utc)
            return new_value

    async def _ensure_row(self, key: str) -> None:
        async with self._session_factory() as session:
            if await session.get(StateRecord, key) is not None:
                return
            session.add(StateRecord(key=key, value=None))
            try:
                await session.commit()
            except IntegrityError:
                # Another worker created the row first.
                await session.rollback()
                logger.debug("state row already created key=%s", key)
