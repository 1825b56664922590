"""Async session factory for Pinchwire's SQL-backed stores."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory shared by the audit ledger and state store.

    Stores open their own transactions (``session.begin()``), so sessions do
    not autoflush and keep loaded rows usable after commit.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
