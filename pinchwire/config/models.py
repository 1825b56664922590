"""Configuration models for Pinchwire."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _Section(BaseModel):
    model_config = ConfigDict(extra="forbid")


class GatewayConfig(_Section):
    """Outbound gateway connection settings."""

    url: str | None = Field(default=None, description="Gateway base URL; /hooks/agent is appended.")
    token: str | None = Field(default=None, description="Bearer token for the gateway.")
    timeout_seconds: float = Field(default=10.0, gt=0.0, le=45.0)
    channel: str = Field(default="pinchwire")
    site_url: str = Field(default="")
    site_name: str = Field(default="Pinchwire")

    @field_validator("url", "token")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.token)


class DeliveryConfig(_Section):
    """Outbound delivery throttling."""

    rate_limit: int = Field(default=30, ge=0, description="New deliveries allowed per window; 0 disables the limit.")
    rate_limit_window_seconds: int = Field(default=60, ge=1)


class GovernanceConfig(_Section):
    """Governance task scheduling settings."""

    enabled_tasks: list[str] = Field(
        default_factory=list,
        description="Enabled task names; empty enables every registered task.",
    )
    intervals: dict[str, int] = Field(default_factory=dict, description="Per-task interval overrides in seconds.")
    version: str = Field(default="", description="Version string folded into the registration fingerprint.")

    @field_validator("intervals")
    @classmethod
    def _positive_intervals(cls, value: dict[str, int]) -> dict[str, int]:
        for name, seconds in value.items():
            if seconds < 60:
                raise ValueError(f"interval for {name} must be at least 60 seconds")
        return value


class EventsConfig(_Section):
    """Site event notification settings."""

    enabled: list[str] = Field(default_factory=list, description="Enabled event types; empty enables all.")


class AuditConfig(_Section):
    """Audit ledger retention and export settings."""

    retention_days: int = Field(default=90, ge=1)
    export_max_rows: int = Field(default=5000, ge=1)
    erase_batch_size: int = Field(default=100, ge=1)
    cleanup_interval_seconds: int = Field(default=7 * 86400, ge=3600)


class DatabaseConfig(_Section):
    """Storage settings; no URL selects in-memory components."""

    url: str | None = Field(default=None)
    pool_size: int = Field(default=10, ge=1)
    max_overflow: int = Field(default=5, ge=0)
    echo: bool = Field(default=False)


class HatchetConfigSection(_Section):
    """Durable job queue (Hatchet) connection settings."""

    enabled: bool = Field(default=False)
    server_url: str = Field(default="")
    api_token: str | None = Field(default=None)
    namespace: str = Field(default="pinchwire")


class PinchwireConfig(BaseSettings):
    """Root configuration model for Pinchwire."""

    gateway: GatewayConfig = Field(default_factory=GatewayConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    governance: GovernanceConfig = Field(default_factory=GovernanceConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    hatchet: HatchetConfigSection = Field(default_factory=HatchetConfigSection)

    model_config = SettingsConfigDict(
        env_prefix="PINCHWIRE_",
        env_nested_delimiter="__",
        extra="ignore",
    )
