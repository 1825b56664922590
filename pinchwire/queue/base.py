"""Durable job queue contract consumed by the dispatcher and scheduler."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Protocol, Union

JobHandler = Callable[[dict[str, Any]], Union[Awaitable[Any], Any]]


class JobQueue(Protocol):
    """Host-provided persistent scheduler for recurring and one-off jobs.

    Handlers are looked up by hook name when a job fires and receive the
    ``args`` mapping the job was scheduled with. ``check_recurring`` lets
    callers validate a registration before removing the one it replaces.
    """

    def register_handler(self, hook_name: str, handler: JobHandler) -> None: ...

    def check_recurring(self, hook_name: str, interval_seconds: int) -> None:
        """Raise ``ValueError`` if ``schedule_recurring`` would reject these arguments."""

    async def schedule_recurring(
        self,
        hook_name: str,
        interval_seconds: int,
        args: dict[str, Any] | None = None,
    ) -> str: ...

    async def schedule_once_at(
        self,
        hook_name: str,
        run_at: datetime,
        args: dict[str, Any] | None = None,
    ) -> str: ...

    async def unschedule_all(self, hook_name: str) -> int: ...
