"""Runtime configuration.

Reads settings from CLI args, environment variables, .env files and YAML
config file fallbacks.  The resulting ``Config`` is passed explicitly to
every component; nothing else reads the environment.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    TAGPLAN_CREDENTIALS: Service-account key file (falls back to
        GOOGLE_APPLICATION_CREDENTIALS, then application default credentials)
    TAGPLAN_GTM_ACCOUNT_ID: Tag Manager account id
    TAGPLAN_GA4_ACCOUNT_ID: Analytics account id
    TAGPLAN_API_DELAY: Seconds between mutating calls (default: 1.0, 0-60)
    TAGPLAN_QUOTA_RETRIES: Attempts per call on quota errors (default: 3, 1-10)
    TAGPLAN_QUOTA_BACKOFF: Seconds before a quota retry (default: 60, 0-600)
    TAGPLAN_NAME_MATCHING: "substring" (default) or "word"
    TAGPLAN_DEBUG: Enable debug logging
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

NAME_MATCHING_MODES = ("substring", "word")


@dataclass
class Config:
    credentials_file: str | None = None
    gtm_account_id: str | None = None
    ga4_account_id: str | None = None
    api_delay_seconds: float = 1.0
    quota_max_attempts: int = 3
    quota_backoff_seconds: float = 60.0
    name_matching: str = "substring"
    protected_triggers: tuple[str, ...] = ()
    protected_tags: tuple[str, ...] = ()
    protected_variables: tuple[str, ...] = ()
    plan_file: str = "tracking/tracking-plan.yml"
    marker_file: str = ".google-setup.json"
    project_dir: Path = Path(".")
    debug: bool = False

    @property
    def plan_path(self) -> Path:
        return self.project_dir / self.plan_file


def validate_config(config: Config) -> None:
    """Validate configuration values and raise ValueError if invalid.

    Account ids are not required here: only the remote operations need
    them, and they fail with their own message.

    Raises:
        ValueError: If a numeric value is out of range or the matching mode
            is unknown.
    """
    if not 0 <= config.api_delay_seconds <= 60:
        raise ValueError(
            f"Invalid API delay {config.api_delay_seconds}: must be between 0 and 60 seconds"
        )
    if not 1 <= config.quota_max_attempts <= 10:
        raise ValueError(
            f"Invalid quota retry ceiling {config.quota_max_attempts}: must be between 1 and 10"
        )
    if not 0 <= config.quota_backoff_seconds <= 600:
        raise ValueError(
            f"Invalid quota back-off {config.quota_backoff_seconds}: must be between 0 and 600 seconds"
        )
    if config.name_matching not in NAME_MATCHING_MODES:
        raise ValueError(
            f"Invalid name matching mode '{config.name_matching}': "
            f"must be one of {', '.join(NAME_MATCHING_MODES)}"
        )
    if config.credentials_file:
        path = Path(config.credentials_file).expanduser()
        if not path.is_file():
            raise ValueError(
                f"Credentials file '{config.credentials_file}' not found. "
                "Set TAGPLAN_CREDENTIALS to a service-account key file."
            )
        config.credentials_file = str(path)


def _number_env(
    key: str, cast: type, low: float, high: float
) -> float | int | None:
    """Parse a numeric env var, or return None when unset."""
    raw = os.getenv(key)
    if raw is None:
        return None
    try:
        value = cast(raw)
    except ValueError:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        ) from None
    if not low <= value <= high:
        raise ValueError(
            f"Invalid {key} '{raw}': must be a number between {low} and {high}"
        )
    return value


def load_config(
    credentials_file: str | None = None,
    gtm_account_id: str | None = None,
    ga4_account_id: str | None = None,
    debug: bool = False,
    project_dir: Path | None = None,
    yaml_fallbacks: dict | None = None,
) -> Config:
    """Load configuration with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` first so that
    .env values are visible through ``os.getenv()``.

    Args:
        credentials_file: Override key file path.
        gtm_account_id: Override Tag Manager account id.
        ga4_account_id: Override Analytics account id.
        debug: Enable debug logging (CLI flag).
        project_dir: Root of the tracked project (default: CWD).
        yaml_fallbacks: Flattened YAML values (see
            ``config_schema.yaml_fallbacks``).

    Returns:
        Validated Config instance.

    Raises:
        ValueError: If a value is invalid after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML ---

    final_credentials = (
        credentials_file
        or os.getenv("TAGPLAN_CREDENTIALS")
        or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        or fb.get("credentials_file")
    )
    final_gtm = (
        gtm_account_id
        or os.getenv("TAGPLAN_GTM_ACCOUNT_ID")
        or fb.get("gtm_account_id")
    )
    final_ga4 = (
        ga4_account_id
        or os.getenv("TAGPLAN_GA4_ACCOUNT_ID")
        or fb.get("ga4_account_id")
    )
    final_matching = (
        os.getenv("TAGPLAN_NAME_MATCHING")
        or fb.get("name_matching")
        or "substring"
    ).strip().lower()

    # --- Boolean fields: CLI > env > YAML > default ---

    def get_bool_env(key: str) -> bool | None:
        """Return True/False from env var, or None if unset."""
        val = os.getenv(key)
        if val is None:
            return None
        return val.lower() in ("true", "1", "yes", "on")

    if debug:
        final_debug = True
    else:
        env_debug = get_bool_env("TAGPLAN_DEBUG")
        final_debug = (
            env_debug if env_debug is not None else bool(fb.get("debug", False))
        )

    # --- Numeric fields: env > YAML > default ---

    api_delay = _number_env("TAGPLAN_API_DELAY", float, 0, 60)
    if api_delay is None:
        api_delay = float(fb.get("api_delay_seconds", 1.0))

    max_attempts = _number_env("TAGPLAN_QUOTA_RETRIES", int, 1, 10)
    if max_attempts is None:
        max_attempts = int(fb.get("quota_max_attempts", 3))

    backoff = _number_env("TAGPLAN_QUOTA_BACKOFF", float, 0, 600)
    if backoff is None:
        backoff = float(fb.get("quota_backoff_seconds", 60.0))

    config = Config(
        credentials_file=final_credentials.strip() if final_credentials else None,
        gtm_account_id=str(final_gtm).strip() if final_gtm else None,
        ga4_account_id=str(final_ga4).strip() if final_ga4 else None,
        api_delay_seconds=api_delay,
        quota_max_attempts=max_attempts,
        quota_backoff_seconds=backoff,
        name_matching=final_matching,
        protected_triggers=tuple(fb.get("protected_triggers") or ()),
        protected_tags=tuple(fb.get("protected_tags") or ()),
        protected_variables=tuple(fb.get("protected_variables") or ()),
        plan_file=fb.get("plan_file") or "tracking/tracking-plan.yml",
        marker_file=fb.get("marker_file") or ".google-setup.json",
        project_dir=project_dir or Path.cwd(),
        debug=final_debug,
    )

    validate_config(config)

    return config
