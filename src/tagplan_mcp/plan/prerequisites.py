"""Workflow prerequisite checks.

Each remote-facing operation depends on files produced by earlier steps.
These checks run before any remote call and fail with the name of the step
that produces the missing input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..errors import PrerequisiteError
from .models import TrackingPlan
from .project import INIT_STEP, ProjectMarker, ProjectMarkerStore
from .store import load_plan, validate_plan

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncInputs:
    """Validated local inputs of a sync run."""

    marker: ProjectMarker | None
    plan: TrackingPlan
    plan_path: Path


def check_project_initialised(
    store: ProjectMarkerStore, required: bool = True
) -> ProjectMarker | None:
    """Return the project marker, ensuring it names a project and a domain.

    Args:
        store: Marker store of the project directory.
        required: When False, a missing marker yields ``None`` instead of
            an error (an incomplete one is still an error).

    Raises:
        PrerequisiteError: If the marker is missing (and required) or lacks
            the project name or domain.
    """
    marker = store.load() if required else store.load_optional()
    if marker is not None and not marker.is_complete:
        raise PrerequisiteError(
            f"{store.path.name} is incomplete (projectName and domain are "
            f"required). Run '{INIT_STEP}' again.",
            step=INIT_STEP,
            details={"path": str(store.path)},
        )
    return marker


def check_plan_available(plan_path: Path) -> TrackingPlan:
    """Load the plan, logging any validation findings.

    Validation errors are not fatal here: the comparator skips entries it
    cannot identify, and the measurement id may come from the marker file.

    Raises:
        PlanNotFoundError: If the plan file does not exist.
        PlanParseError: If the plan cannot be parsed.
    """
    plan = load_plan(plan_path)
    validation = validate_plan(plan)
    for error in validation.errors:
        logger.warning("Tracking plan %s: %s", plan_path, error)
    for warning in validation.warnings:
        logger.warning("Tracking plan: %s", warning)
    return plan


def require_sync_prerequisites(
    project_dir: Path,
    plan_path: Path,
    marker_store: ProjectMarkerStore | None = None,
    require_marker: bool = False,
) -> SyncInputs:
    """Run every local check a sync needs, in workflow order."""
    store = marker_store or ProjectMarkerStore(project_dir)
    marker = check_project_initialised(store, required=require_marker)
    plan = check_plan_available(plan_path)
    return SyncInputs(marker=marker, plan=plan, plan_path=plan_path)
