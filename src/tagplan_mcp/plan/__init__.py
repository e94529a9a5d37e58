"""Tracking-plan document: models, merge, persistence and local checks.

Modules:

- ``models``        -- Pydantic models of the plan sections.
- ``merger``        -- ``merge_plans``: merge a regenerated plan into the
  saved one without discarding human edits.
- ``store``         -- YAML load/save and structural validation.
- ``project``       -- ``.google-setup.json`` marker file.
- ``prerequisites`` -- checks run before any remote call.
"""

from .merger import merge_plans
from .models import (
    Action,
    ConsolidatedEventGroup,
    Event,
    EventParam,
    MergeInfo,
    ProjectInfo,
    TrackingPlan,
    Variable,
)
from .project import ProjectMarker, ProjectMarkerStore
from .store import (
    DEFAULT_PLAN_PATH,
    PlanValidation,
    dump_plan,
    load_plan,
    merge_into,
    save_plan,
    validate_plan,
)

__all__ = [
    "Action",
    "ConsolidatedEventGroup",
    "DEFAULT_PLAN_PATH",
    "Event",
    "EventParam",
    "MergeInfo",
    "PlanValidation",
    "ProjectInfo",
    "ProjectMarker",
    "ProjectMarkerStore",
    "TrackingPlan",
    "Variable",
    "dump_plan",
    "load_plan",
    "merge_into",
    "merge_plans",
    "save_plan",
    "validate_plan",
]
