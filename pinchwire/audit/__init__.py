"""Audit ledger: append-only record of dispatch attempts, task runs and admin actions."""

from pinchwire.audit.base import AuditLedgerBase
from pinchwire.audit.ledger import AuditLedger, AuditLogRecord
from pinchwire.audit.ledger_inmemory import InMemoryAuditLedger
from pinchwire.audit.types import (
    AuditEntry,
    AuditPage,
    AuditQueryFilters,
    UserDataErasure,
    UserDataExport,
)

__all__ = [
    "AuditEntry",
    "AuditLedger",
    "AuditLedgerBase",
    "AuditLogRecord",
    "AuditPage",
    "AuditQueryFilters",
    "InMemoryAuditLedger",
    "UserDataErasure",
    "UserDataExport",
]
