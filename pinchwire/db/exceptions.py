"""Database-related exceptions for Pinchwire.

Messages never include passwords or full connection strings.
"""

from pinchwire.errors import PinchwireError


class DatabaseError(PinchwireError):
    """Base exception for database operations."""


class ConfigurationError(DatabaseError):
    """Raised when database configuration is invalid or missing."""
