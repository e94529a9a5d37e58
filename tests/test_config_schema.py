"""Tests for the unified config schema and adapter functions.

Covers the section models, build_config(), yaml_fallbacks() and
to_runtime_config().
"""

import pytest
from pydantic import ValidationError

from tagplan_mcp.config import Config, validate_config
from tagplan_mcp.config_schema import (
    GoogleConfig,
    LoggingConfig,
    SyncConfig,
    UnifiedConfig,
    build_config,
    to_runtime_config,
    yaml_fallbacks,
)

# ---------------------------------------------------------------------------
# UnifiedConfig tests
# ---------------------------------------------------------------------------


class TestUnifiedConfig:
    def test_defaults(self):
        config = UnifiedConfig()

        assert config.google.gtm_account_id is None
        assert config.sync.api_delay_seconds == 1.0
        assert config.sync.name_matching == "substring"
        assert config.plan.plan_file == "tracking/tracking-plan.yml"
        assert config.logging.level == "INFO"

    def test_frozen(self):
        config = UnifiedConfig()

        with pytest.raises(ValidationError):
            config.google = GoogleConfig()

    def test_numeric_account_ids_coerced(self):
        google = GoogleConfig(gtm_account_id=123456)
        assert google.gtm_account_id == "123456"


class TestSyncConfig:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("api_delay_seconds", -0.5),
            ("api_delay_seconds", 61),
            ("quota_max_attempts", 0),
            ("quota_max_attempts", 11),
            ("quota_backoff_seconds", 601),
            ("name_matching", "fuzzy"),
        ],
    )
    def test_ranges(self, field, value):
        with pytest.raises(ValidationError):
            SyncConfig(**{field: value})

    def test_protected_lists(self):
        sync = SyncConfig(protected_triggers=["Consent Init"])
        assert sync.protected_triggers == ["Consent Init"]
        assert sync.protected_tags == []


# ---------------------------------------------------------------------------
# build_config()
# ---------------------------------------------------------------------------


class TestBuildConfig:
    def test_empty(self):
        assert build_config({}) == UnifiedConfig()

    def test_partial_sections(self):
        config = build_config(
            {
                "google": {"gtm_account_id": "42"},
                "sync": {"quota_max_attempts": 5},
                "logging": {"level": "DEBUG"},
            }
        )

        assert config.google.gtm_account_id == "42"
        assert config.sync.quota_max_attempts == 5
        assert config.sync.api_delay_seconds == 1.0
        assert config.logging == LoggingConfig(level="DEBUG")

    def test_invalid_value(self):
        with pytest.raises(ValidationError):
            build_config({"sync": {"api_delay_seconds": "slow"}})


# ---------------------------------------------------------------------------
# Adapters
# ---------------------------------------------------------------------------


class TestYamlFallbacks:
    def test_flattened(self):
        unified = build_config(
            {
                "google": {"ga4_account_id": "7"},
                "sync": {"protected_tags": ["Consent"]},
                "plan": {"marker_file": "setup.json"},
            }
        )

        fb = yaml_fallbacks(unified)

        assert fb["ga4_account_id"] == "7"
        assert "gtm_account_id" not in fb
        assert fb["protected_tags"] == ["Consent"]
        assert fb["marker_file"] == "setup.json"
        assert fb["api_delay_seconds"] == 1.0


class TestToRuntimeConfig:
    def test_values_carried(self):
        unified = build_config(
            {
                "google": {"gtm_account_id": "42"},
                "sync": {"name_matching": "word", "protected_variables": ["Consent"]},
            }
        )

        config = to_runtime_config(unified)

        assert isinstance(config, Config)
        assert config.gtm_account_id == "42"
        assert config.name_matching == "word"
        assert config.protected_variables == ("Consent",)
        assert config.debug is False
        validate_config(config)

    def test_cli_overrides_win(self):
        unified = build_config({"google": {"gtm_account_id": "42"}})

        config = to_runtime_config(
            unified, cli_overrides={"gtm_account_id": "99", "debug": True}
        )

        assert config.gtm_account_id == "99"
        assert config.debug is True
