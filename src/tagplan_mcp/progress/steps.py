"""Static definition of the deployment steps and their tasks.

Each task is a predicate over an audit snapshot (the dict built by
``tagplan_mcp.audit.auditor``).  Predicates may assume the fields they read
are well-formed: the completion model treats any lookup or type error as
"not satisfied".

Steps are declared in dependency order: a step only ever depends on a step
declared before it.  Weights are exact fractions so they sum to exactly 1.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from fractions import Fraction
from typing import Any

AuditSnapshot = Mapping[str, Any]

# Tag types as reported by the container API
GA4_CONFIG_TAG_TYPES = frozenset({"gaawc", "googtag"})
GA4_EVENT_TAG_TYPE = "gaawe"

MIN_EVENT_TAGS = 3
MIN_DATALAYER_VARIABLES = 5
MIN_CUSTOM_EVENT_TRIGGERS = 3


@dataclass(frozen=True, slots=True)
class Task:
    """One checkable condition of a step.

    Attributes:
        id: Stable task identifier.
        name: Human-readable label.
        check: Predicate over the audit snapshot.
        optional: Counts toward the percentage but not toward completion.
    """

    id: str
    name: str
    check: Callable[[AuditSnapshot], Any]
    optional: bool = False


@dataclass(frozen=True, slots=True)
class DeploymentStep:
    id: str
    name: str
    weight: Fraction
    tasks: tuple[Task, ...]
    depends_on: str | None = None


def _count_tags(audit: AuditSnapshot, types: frozenset[str]) -> int:
    return sum(1 for tag in audit["gtm"]["tags"] if tag["type"] in types)


STEPS: tuple[DeploymentStep, ...] = (
    DeploymentStep(
        id="ga4",
        name="Google Analytics 4",
        weight=Fraction(3, 10),
        tasks=(
            Task(
                "ga4_exists",
                "GA4 property exists",
                lambda a: a["ga4"]["installed"],
            ),
            Task(
                "ga4_stream",
                "Data stream configured",
                lambda a: a["ga4"]["data_stream_id"] is not None,
            ),
            Task(
                "ga4_conversions",
                "Conversions marked",
                lambda a: a["ga4"]["conversions_count"] > 0,
                optional=True,
            ),
        ),
    ),
    DeploymentStep(
        id="gtm",
        name="Google Tag Manager",
        weight=Fraction(1, 5),
        depends_on="ga4",
        tasks=(
            Task(
                "gtm_exists",
                "Container exists",
                lambda a: a["gtm"]["installed"],
            ),
            Task(
                "gtm_ga4_tag",
                "GA4 configuration tag",
                lambda a: _count_tags(a, GA4_CONFIG_TAG_TYPES) > 0,
            ),
            Task(
                "gtm_events",
                f"Event tags (min {MIN_EVENT_TAGS})",
                lambda a: _count_tags(a, frozenset({GA4_EVENT_TAG_TYPE}))
                >= MIN_EVENT_TAGS,
            ),
        ),
    ),
    DeploymentStep(
        id="datalayer",
        name="Custom data layer",
        weight=Fraction(3, 10),
        depends_on="gtm",
        tasks=(
            Task(
                "dl_variables",
                f"Data-layer variables (min {MIN_DATALAYER_VARIABLES})",
                lambda a: a["datalayer"]["variables_count"]
                >= MIN_DATALAYER_VARIABLES,
            ),
            Task(
                "dl_triggers",
                f"Custom event triggers (min {MIN_CUSTOM_EVENT_TRIGGERS})",
                lambda a: a["datalayer"]["custom_event_triggers"]
                >= MIN_CUSTOM_EVENT_TRIGGERS,
            ),
        ),
    ),
    DeploymentStep(
        id="search_console",
        name="Search Console",
        weight=Fraction(3, 20),
        tasks=(
            Task(
                "sc_verified",
                "Site verified",
                lambda a: a["search_console"]["verified"],
            ),
            Task(
                "sc_sitemap",
                "Sitemap submitted",
                lambda a: a["search_console"]["sitemap_submitted"],
            ),
        ),
    ),
    DeploymentStep(
        id="hotjar",
        name="Hotjar",
        weight=Fraction(1, 20),
        depends_on="gtm",
        tasks=(
            Task(
                "hj_installed",
                "Hotjar installed",
                lambda a: a["hotjar"]["installed"],
            ),
        ),
    ),
)


def check_step_definitions(steps: tuple[DeploymentStep, ...]) -> None:
    """Raise ``ValueError`` unless weights sum to 1 and dependencies precede.

    Runs at import time on ``STEPS``.
    """
    total = sum((step.weight for step in steps), Fraction(0))
    if total != 1:
        raise ValueError(f"Step weights must sum to 1, got {total}")
    seen: set[str] = set()
    for step in steps:
        if step.depends_on is not None and step.depends_on not in seen:
            raise ValueError(
                f"Step '{step.id}' depends on '{step.depends_on}', "
                "which is not declared before it"
            )
        seen.add(step.id)


check_step_definitions(STEPS)
