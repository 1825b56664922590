"""Unified configuration system for Pinchwire."""

from pinchwire.config.listeners import register_app_reload_listener
from pinchwire.config.loader import ConfigLoadError, YAMLConfigLoader
from pinchwire.config.manager import ConfigManager, ReloadResult
from pinchwire.config.models import (
    AuditConfig,
    DatabaseConfig,
    DeliveryConfig,
    EventsConfig,
    GatewayConfig,
    GovernanceConfig,
    HatchetConfigSection,
    PinchwireConfig,
)

__all__ = [
    "AuditConfig",
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "DeliveryConfig",
    "EventsConfig",
    "GatewayConfig",
    "GovernanceConfig",
    "HatchetConfigSection",
    "PinchwireConfig",
    "ReloadResult",
    "register_app_reload_listener",
    "YAMLConfigLoader",
]
