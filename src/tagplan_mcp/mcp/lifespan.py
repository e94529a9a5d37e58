"""Lifespan management for MCP server startup and shutdown."""

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from dotenv import load_dotenv

from ..config import load_config
from ..config_loader import (
    discover_config_files,
    load_hierarchical_config,
)
from ..config_schema import build_config, yaml_fallbacks
from ..core.async_utils import run_sync
from ..core.auth import GoogleServices, authorized_session
from .tools.registry import ServerContext

logger = logging.getLogger(__name__)


def _stderr_print(msg: str) -> None:
    """Print message to stderr for user feedback (safe in MCP mode)."""
    print(msg, file=sys.stderr, flush=True)


@asynccontextmanager
async def server_lifespan(
    config_overrides: dict[str, Any] | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """
    Manage server startup and shutdown lifecycle.

    On startup:
    - Load .env file (so values are available for env var lookups and YAML interpolation)
    - Load YAML config file if present (as fallback values)
    - Merge all sources via load_config(): CLI > env vars > .env > YAML > defaults
    - Build authorised Google clients and check the Tag Manager account is reachable
    - Fail fast on configuration or credential errors

    Args:
        config_overrides: Optional dict with config values from CLI
            (credentials_file, gtm_account_id, ga4_account_id, debug)

    Yields:
        Dict with 'context' key containing the ServerContext for tool handlers

    Raises:
        RuntimeError: If configuration is invalid or credentials are unusable.
    """
    logger.info("MCP server starting...")
    _stderr_print("Tagplan MCP Server starting...")

    try:
        # .env first, so ${VAR} interpolation in YAML can use its values
        load_dotenv()

        fallbacks: dict[str, Any] | None = None
        config_files = discover_config_files()
        sources = []

        if config_files:
            raw = load_hierarchical_config()
            fallbacks = yaml_fallbacks(build_config(raw))
            sources.append(f"config file: {config_files[0]}")

        overrides = config_overrides or {}
        config = load_config(
            credentials_file=overrides.get("credentials_file"),
            gtm_account_id=overrides.get("gtm_account_id"),
            ga4_account_id=overrides.get("ga4_account_id"),
            debug=overrides.get("debug", False),
            project_dir=overrides.get("project_dir"),
            yaml_fallbacks=fallbacks,
        )

        if overrides:
            sources.append("CLI arguments")
        sources.append("environment variables")
        source_desc = ", ".join(sources)
        logger.info("Configuration loaded from: %s", source_desc)
        _stderr_print(f"  Configuration loaded from: {source_desc}")
        _stderr_print(f"  Project: {config.project_dir}")
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        _stderr_print(f"ERROR: Configuration error: {e}")
        raise RuntimeError(
            f"Configuration error: {e}. Check TAGPLAN_* variables and .tagplan/config.yml."
        ) from e

    try:
        session = authorized_session(config.credentials_file)
        services = GoogleServices.from_session(session)
        if config.gtm_account_id:
            accounts = await run_sync(services.tagmanager.list_accounts)
            logger.info("Tag Manager reachable: %d account(s)", len(accounts))
            _stderr_print(f"  Tag Manager accounts visible: {len(accounts)}")
        else:
            _stderr_print(
                "  No Tag Manager account configured; sync tools will ask for one."
            )
        _stderr_print("Server ready. Waiting for MCP client connection...")
    except Exception as e:
        logger.error("Failed to reach Google APIs: %s", e)
        _stderr_print("ERROR: Google API connection failed.")
        _stderr_print(f"  {e}")
        raise RuntimeError(
            f"Google API connection failed: {e}. Check TAGPLAN_CREDENTIALS."
        ) from e

    yield {"context": ServerContext(config=config, services=services)}

    logger.info("MCP server shutting down")
    session.close()
    _stderr_print("Tagplan MCP Server shutting down.")
