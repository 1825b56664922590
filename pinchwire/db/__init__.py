"""Pinchwire database layer: Base, engine, session factory, exceptions."""

from pinchwire.db.base import Base
from pinchwire.db.engine import DATABASE_URL_ENV, create_engine
from pinchwire.db.exceptions import ConfigurationError, DatabaseError
from pinchwire.db.session import create_session_factory

__all__ = [
    "Base",
    "DATABASE_URL_ENV",
    "create_engine",
    "create_session_factory",
    "DatabaseError",
    "ConfigurationError",
]
