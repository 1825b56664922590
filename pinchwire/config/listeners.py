"""Configuration change listener helpers for runtime components."""

from __future__ import annotations

import logging
from typing import Any

from pinchwire.config.manager import ConfigManager

logger = logging.getLogger(__name__)


def register_app_reload_listener(app: Any, manager: ConfigManager | None = None) -> None:
    """Register listener that pushes reloaded settings into a running app.

    Governance changes only take effect on the job queue at the next
    ``ensure_tasks_scheduled()`` call, which compares fingerprints.
    """
    cfg_manager = manager or ConfigManager.instance()

    def _on_change(old_cfg, new_cfg) -> None:  # type: ignore[no-untyped-def]
        app.apply_config(new_cfg)
        if old_cfg.governance != new_cfg.governance:
            logger.info("governance config changed; task registration is stale")

    cfg_manager.on_change(_on_change)
