"""YAML persistence and validation of the tracking plan.

Loading is strict: a missing file or an unparsable document is fatal, and
callers are expected to do this before any remote call so a broken plan
never leads to a half-applied sync.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import PlanNotFoundError, PlanParseError
from ..file_handler import read_file_with_encoding, write_file_atomic
from .merger import merge_plans
from .models import TrackingPlan

logger = logging.getLogger(__name__)

DEFAULT_PLAN_PATH = Path("tracking") / "tracking-plan.yml"

_HEADER = """\
# Tracking plan
# Last updated: {date}
#
# Structure:
# - project: project information and remote identifiers
# - consolidated_events: grouped events (1 tag = several actions)
# - events: standalone events (1 tag = 1 action)
# - variables: data-layer variables to create in the container
#
# To switch an event on or off, edit "enabled: true/false".
# To mark an event as a conversion, edit "conversion: true".

"""


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def parse_plan(text: str, source: str = "<string>") -> TrackingPlan:
    """Parse YAML *text* into a ``TrackingPlan``.

    Raises:
        PlanParseError: If the YAML is invalid or does not describe a plan.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise PlanParseError(
            f"Tracking plan {source} is not valid YAML: {e}",
            details={"path": source},
            cause=e,
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise PlanParseError(
            f"Tracking plan {source} must be a mapping, got {type(data).__name__}",
            details={"path": source},
        )

    try:
        return TrackingPlan.model_validate(data)
    except ValidationError as e:
        raise PlanParseError(
            f"Tracking plan {source} has an invalid structure: {e}",
            details={"path": source, "errors": e.errors()},
            cause=e,
        ) from e


def load_plan(path: Path) -> TrackingPlan:
    """Load the tracking plan from *path*.

    Raises:
        PlanNotFoundError: If the file does not exist.
        PlanParseError: If the file cannot be parsed.
    """
    if not path.is_file():
        raise PlanNotFoundError(
            f"Tracking plan not found: {path}. "
            "Generate one first with the 'autoedit' step.",
            step="autoedit",
            details={"path": str(path)},
        )
    content, encoding = read_file_with_encoding(path)
    logger.debug("Loaded tracking plan %s (%s)", path, encoding)
    return parse_plan(content, source=str(path))


def load_plan_if_exists(path: Path) -> TrackingPlan | None:
    """Like ``load_plan`` but returns ``None`` when the file is absent."""
    if not path.is_file():
        return None
    return load_plan(path)


def dump_plan(plan: TrackingPlan, today: str | None = None) -> str:
    """Serialise *plan* to YAML with an explanatory comment header."""
    date = today or datetime.now(timezone.utc).date().isoformat()
    body = yaml.safe_dump(
        plan.to_document(),
        sort_keys=False,
        allow_unicode=True,
        indent=2,
        width=120,
    )
    return _HEADER.format(date=date) + body


def save_plan(path: Path, plan: TrackingPlan) -> int:
    """Write *plan* to *path* atomically. Returns bytes written."""
    written = write_file_atomic(path, dump_plan(plan))
    logger.info("Saved tracking plan to %s", path)
    return written


def merge_into(path: Path, incoming: TrackingPlan) -> TrackingPlan:
    """Merge *incoming* into the plan saved at *path* and persist the result.

    A missing saved plan is not an error: the incoming plan becomes the
    first saved version.
    """
    existing = load_plan_if_exists(path)
    merged = merge_plans(existing, incoming)
    save_plan(path, merged)
    return merged


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@dataclass
class PlanValidation:
    """Structural checks on a plan; errors block a sync, warnings do not."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    events_count: int = 0
    groups_count: int = 0
    total_actions: int = 0

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "stats": {
                "events_count": self.events_count,
                "groups_count": self.groups_count,
                "total_actions": self.total_actions,
            },
        }


def validate_plan(plan: TrackingPlan) -> PlanValidation:
    """Check *plan* for missing identities and incomplete sections."""
    result = PlanValidation(
        events_count=len(plan.events),
        groups_count=len(plan.consolidated_events),
    )
    result.total_actions = len(plan.events) + sum(
        len(g.actions) for g in plan.consolidated_events
    )

    if plan.project is None:
        result.errors.append('Section "project" is missing')
    else:
        if not plan.project.name:
            result.warnings.append("project.name is not set")
        if not plan.measurement_id:
            result.warnings.append("project.ga4_measurement_id is not set")

    if not plan.events and not plan.consolidated_events:
        result.warnings.append("No events defined")

    for index, event in enumerate(plan.events):
        label = event.id or event.event_name
        if not label:
            result.errors.append(
                f"Event #{index + 1} has neither an id nor a datalayer.event_name"
            )
            continue
        if not event.selector and not event.remote_trigger_name:
            result.warnings.append(
                f'Event "{label}" has no HTML selector or remote trigger'
            )

    for index, group in enumerate(plan.consolidated_events):
        if not group.id:
            result.errors.append(f"Event group #{index + 1} has no id")
            continue
        if not group.actions:
            result.warnings.append(f'Group "{group.id}" has no actions')

    return result
