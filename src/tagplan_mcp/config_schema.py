"""Unified configuration schema for tagplan_mcp.

Pydantic models for the YAML config file, one section per concern, plus an
adapter producing the runtime ``Config`` dataclass.

Usage:
    from tagplan_mcp.config_schema import build_config, to_runtime_config

    raw = load_hierarchical_config()
    unified = build_config(raw)
    config = to_runtime_config(unified, cli_overrides={"debug": True})
"""

from __future__ import annotations

import logging
from typing import Literal

from pydantic import BaseModel, Field

from .config import Config

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Section models
# ---------------------------------------------------------------------------


class GoogleConfig(BaseModel):
    """Credentials and the accounts holding containers and properties.

    All optional: environment variables can supply them instead.
    """

    credentials_file: str | None = Field(
        default=None, description="Service-account JSON key file"
    )
    gtm_account_id: str | None = Field(
        default=None, description="Tag Manager account id"
    )
    ga4_account_id: str | None = Field(
        default=None, description="Analytics account id"
    )

    model_config = {"frozen": True, "coerce_numbers_to_str": True}


class SyncConfig(BaseModel):
    """Pacing, retry and matching behaviour of the sync."""

    api_delay_seconds: float = Field(
        default=1.0,
        ge=0,
        le=60,
        description="Minimum delay between mutating calls (0-60 s)",
    )
    quota_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per call when the quota is exceeded (1-10)",
    )
    quota_backoff_seconds: float = Field(
        default=60.0,
        ge=0,
        le=600,
        description="Wait before retrying a quota failure (0-600 s)",
    )
    name_matching: Literal["substring", "word"] = Field(
        default="substring",
        description="How local event names match remote display names",
    )
    protected_triggers: list[str] = Field(
        default_factory=list,
        description="Extra trigger names never deleted as orphans",
    )
    protected_tags: list[str] = Field(
        default_factory=list,
        description="Extra tag names never deleted as orphans",
    )
    protected_variables: list[str] = Field(
        default_factory=list,
        description="Extra variable names never deleted as orphans",
    )

    model_config = {"frozen": True}


class PlanConfig(BaseModel):
    """Locations of the project's local files, relative to its root."""

    plan_file: str = Field(
        default="tracking/tracking-plan.yml",
        description="Tracking plan YAML file",
    )
    marker_file: str = Field(
        default=".google-setup.json",
        description="Project marker JSON file",
    )

    model_config = {"frozen": True}


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        file: Optional log file path.
    """

    level: str = Field(default="INFO", description="Log level")
    file: str | None = Field(default=None, description="Log file path")

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# Top-level unified config
# ---------------------------------------------------------------------------


class UnifiedConfig(BaseModel):
    """All config sections.  ``UnifiedConfig()`` is always valid."""

    google: GoogleConfig = Field(default_factory=GoogleConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    plan: PlanConfig = Field(default_factory=PlanConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}


def build_config(raw_data: dict) -> UnifiedConfig:
    """Validate the merged dict from ``load_hierarchical_config()``.

    Absent sections get defaults.

    Raises:
        pydantic.ValidationError: If a value is out of range or mistyped.
    """
    if not raw_data:
        return UnifiedConfig()
    return UnifiedConfig(**raw_data)


def yaml_fallbacks(unified: UnifiedConfig) -> dict:
    """Flatten the sections ``load_config`` reads as its lowest-precedence
    source."""
    return {
        **unified.google.model_dump(exclude_none=True),
        **unified.sync.model_dump(),
        **unified.plan.model_dump(),
    }


def to_runtime_config(
    unified: UnifiedConfig,
    cli_overrides: dict | None = None,
) -> Config:
    """Build a runtime ``Config`` from *unified*, CLI overrides on top.

    Precedence: CLI override > unified config value > default.  The result
    is not validated; call ``validate_config()`` on it.
    """
    overrides = cli_overrides or {}
    google = unified.google
    sync = unified.sync

    return Config(
        credentials_file=overrides.get("credentials_file")
        or google.credentials_file,
        gtm_account_id=overrides.get("gtm_account_id") or google.gtm_account_id,
        ga4_account_id=overrides.get("ga4_account_id") or google.ga4_account_id,
        api_delay_seconds=sync.api_delay_seconds,
        quota_max_attempts=sync.quota_max_attempts,
        quota_backoff_seconds=sync.quota_backoff_seconds,
        name_matching=sync.name_matching,
        protected_triggers=tuple(sync.protected_triggers),
        protected_tags=tuple(sync.protected_tags),
        protected_variables=tuple(sync.protected_variables),
        plan_file=unified.plan.plan_file,
        marker_file=unified.plan.marker_file,
        debug=overrides.get("debug", False),
    )
