"""Locate the host application's Pinchwire instance for CLI commands."""

from __future__ import annotations

import asyncio
import importlib
import os
from collections.abc import Awaitable, Callable
from typing import TypeVar

import typer

from pinchwire.app import Pinchwire

APP_ENV_VAR = "PINCHWIRE_APP"

T = TypeVar("T")


def load_app(app_ref: str | None = None, config: str | None = None) -> Pinchwire:
    """Import ``module:attribute`` (or ``$PINCHWIRE_APP``), else build from config."""
    ref = (app_ref or os.environ.get(APP_ENV_VAR, "")).strip()
    if not ref:
        return Pinchwire.from_config(config_path=config)
    module_name, _, attr = ref.partition(":")
    if not module_name:
        raise typer.BadParameter("--app must look like 'package.module:attribute'.")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise typer.BadParameter(f"Cannot import {module_name}: {exc}") from exc
    target = getattr(module, attr or "app", None)
    if callable(target) and not isinstance(target, Pinchwire):
        target = target()
    if not isinstance(target, Pinchwire):
        raise typer.BadParameter(f"{ref} is not a Pinchwire application.")
    return target


def run_with_app(app: Pinchwire, action: Callable[[Pinchwire], Awaitable[T]]) -> T:
    """Run one async action against ``app`` and release its database engine."""

    async def _runner() -> T:
        try:
            return await action(app)
        finally:
            await app.close()

    return asyncio.run(_runner())
