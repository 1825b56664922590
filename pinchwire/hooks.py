"""Named extension points that external code can use to observe or veto pipeline data."""

from __future__ import annotations

import inspect
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

WEBHOOK_PAYLOAD = "webhook_payload"
AUDIT_ENTRY = "audit_entry"
GOVERNANCE_FINDINGS = "governance_findings"
WEBHOOK_SENT = "webhook_sent"
WEBHOOK_FAILED = "webhook_failed"

HookCallback = Callable[..., Any]


class _Suppress:
    """Sentinel returned by a filter to veto the value entirely."""

    _instance: _Suppress | None = None

    def __new__(cls) -> _Suppress:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "SUPPRESS"


SUPPRESS = _Suppress()


def is_suppressed(value: Any) -> bool:
    return value is SUPPRESS


@dataclass(order=True)
class _Registration:
    priority: int
    sequence: int
    callback: HookCallback = field(compare=False)


class HookRegistry:
    """Ordered filter and action callbacks keyed by extension point name.

    Filters run by ascending priority, then registration order. A filter that
    returns ``SUPPRESS`` or ``False`` vetoes the value and later filters are
    skipped; ``None`` keeps the current value; anything else replaces it.
    Callbacks may be plain functions or coroutines.
    """

    def __init__(self) -> None:
        self._filters: dict[str, list[_Registration]] = {}
        self._actions: dict[str, list[_Registration]] = {}
        self._sequence = itertools.count()

    def add_filter(self, name: str, callback: HookCallback, priority: int = 10) -> None:
        self._add(self._filters, name, callback, priority)

    def add_action(self, name: str, callback: HookCallback, priority: int = 10) -> None:
        self._add(self._actions, name, callback, priority)

    def remove_filter(self, name: str, callback: HookCallback) -> bool:
        return self._remove(self._filters, name, callback)

    def remove_action(self, name: str, callback: HookCallback) -> bool:
        return self._remove(self._actions, name, callback)

    def has_filters(self, name: str) -> bool:
        return bool(self._filters.get(name))

    async def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Run filters registered for ``name`` and return the final value or ``SUPPRESS``."""
        current = value
        for registration in list(self._filters.get(name, [])):
            result = registration.callback(current, *args)
            if inspect.isawaitable(result):
                result = await result
            if result is SUPPRESS or result is False:
                logger.debug("hook vetoed value name=%s callback=%s", name, _callback_name(registration.callback))
                return SUPPRESS
            if result is not None:
                current = result
        return current

    async def do_action(self, name: str, *args: Any) -> None:
        """Notify observers registered for ``name``.

        An observer that raises is logged and skipped; later observers still run
        and the caller never sees the exception.
        """
        for registration in list(self._actions.get(name, [])):
            try:
                result = registration.callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("hook action failed name=%s callback=%s", name, _callback_name(registration.callback))

    def _add(
        self,
        table: dict[str, list[_Registration]],
        name: str,
        callback: HookCallback,
        priority: int,
    ) -> None:
        if not name or not name.strip():
            raise ValueError("hook name must be a non-empty string")
        if not callable(callback):
            raise TypeError("hook callback must be callable")
        registrations = table.setdefault(name, [])
        registrations.append(_Registration(priority, next(self._sequence), callback))
        registrations.sort()

    @staticmethod
    def _remove(table: dict[str, list[_Registration]], name: str, callback: HookCallback) -> bool:
        registrations = table.get(name, [])
        for registration in registrations:
            if registration.callback is callback:
                registrations.remove(registration)
                return True
        return False


def _callback_name(callback: HookCallback) -> str:
    return getattr(callback, "__qualname__", repr(callback))
