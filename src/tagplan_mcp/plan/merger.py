"""Merge a freshly generated tracking plan into the saved one.

The saved plan is the single source of truth for local intent and carries
human edits (``enabled`` switches, conversion flags, hand-written
selectors).  Regenerating the plan must never silently discard those edits,
so the merge is section by section with explicit identity rules:

- **project**: incoming fields win, except remote identifiers already set
  in the saved plan.
- **consolidated groups**: matched by id; actions are unioned by action id
  and never removed.
- **standalone events**: matched by id, then selector, then data-layer event
  name (first match wins).  Only non-empty values count as a match, so two
  events with no identity at all are never merged.
- **variables**: deduplicated by name, plus variables inferred from event
  parameters.  Inferred variables are written to the document, so the first
  merge of a hand-written plan may add ``source: inferred`` entries; from
  then on merging the plan with itself leaves it unchanged.
- **other keys** (top level and inside ``variables``): saved values win,
  incoming ones fill the gaps, lists are unioned.

``merge_plans`` is pure: it never touches the filesystem and never raises
on well-formed input.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, TypeVar

from .models import (
    INFERRED_SOURCE,
    ConsolidatedEventGroup,
    Event,
    EventParam,
    MergeInfo,
    PlanModel,
    ProjectInfo,
    TrackingPlan,
    Variable,
    VariablesSection,
)

logger = logging.getLogger(__name__)

GENERATED_BY = "tagplan merge"

# Identifiers that, once set in the saved plan, are never replaced
_STICKY_PROJECT_FIELDS = ("ga4_id", "ga4_measurement_id", "gtm_container_id")

M = TypeVar("M", bound=PlanModel)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _doc(model: PlanModel | None) -> dict[str, Any]:
    """Explicitly-set content of *model* as a plain dict."""
    if model is None:
        return {}
    return model.model_dump(by_alias=True, exclude_unset=True)


def _overlay(
    model_cls: type[M],
    existing: PlanModel,
    incoming: PlanModel,
    **fixed: Any,
) -> M:
    """Build *model_cls* from existing fields, overwritten by incoming ones.

    Keyword arguments in *fixed* are applied last and are the section's
    identity-preserving decisions.
    """
    merged = {**_doc(existing), **_doc(incoming)}
    merged.update(fixed)
    return model_cls.model_validate(merged)


def _union_params(*lists: list[EventParam]) -> list[EventParam]:
    """Union parameter lists by name, keeping the first definition seen."""
    seen: dict[str, EventParam] = {}
    for params in lists:
        for param in params:
            seen.setdefault(param.name, param)
    return list(seen.values())


def _detection(
    existing: dict[str, Any] | None,
    incoming: dict[str, Any] | None,
    stamp: str,
) -> dict[str, Any]:
    return {**(existing or {}), **(incoming or {}), "last_scan": stamp}


def _merge_extras(existing: PlanModel, incoming: PlanModel) -> dict[str, Any]:
    """Merge the unknown keys of two sections.

    Saved values win; incoming ones fill keys that are absent or empty.
    Lists present on both sides are unioned without duplicates.
    """
    extras = dict(existing.model_extra or {})
    for key, value in (incoming.model_extra or {}).items():
        if not extras.get(key):
            extras[key] = value
        elif isinstance(value, list) and isinstance(extras[key], list):
            extras[key] = extras[key] + [
                v for v in value if v not in extras[key]
            ]
    return extras


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def merge_project(
    existing: ProjectInfo | None,
    incoming: ProjectInfo | None,
    stamp: str,
) -> ProjectInfo:
    """Incoming metadata wins except for identifiers already set."""
    existing = existing or ProjectInfo()
    incoming = incoming or ProjectInfo()
    sticky = {
        field: getattr(existing, field) or getattr(incoming, field)
        for field in _STICKY_PROJECT_FIELDS
        if getattr(existing, field) or getattr(incoming, field)
    }
    return _overlay(
        ProjectInfo,
        existing,
        incoming,
        created=existing.created or incoming.created,
        updated=stamp,
        last_merge=stamp,
        **sticky,
    )


def merge_groups(
    existing: list[ConsolidatedEventGroup],
    incoming: list[ConsolidatedEventGroup],
    stamp: str,
) -> list[ConsolidatedEventGroup]:
    """Merge consolidated groups by group id.

    Actions are unioned by action id (existing order first, then new ones)
    and never removed.  The saved ``enabled`` flag wins when present.
    A group without an id is always appended as new.
    """
    merged = list(existing)
    for new_group in incoming:
        index = next(
            (
                i
                for i, group in enumerate(merged)
                if new_group.id and group.id == new_group.id
            ),
            None,
        )
        if index is None:
            merged.append(_new_group(new_group, stamp))
            continue

        old_group = merged[index]
        actions = list(old_group.actions)
        known_ids = set(old_group.action_ids)
        for action in new_group.actions:
            if action.id is None or action.id not in known_ids:
                actions.append(action)
                if action.id:
                    known_ids.add(action.id)

        merged[index] = _overlay(
            ConsolidatedEventGroup,
            old_group,
            new_group,
            enabled=(
                old_group.enabled
                if old_group.enabled is not None
                else new_group.enabled
            ),
            actions=[a.model_dump(exclude_unset=True) for a in actions],
            gtm=_merged_gtm(old_group, new_group),
            datalayer=_merged_datalayer(old_group, new_group),
            ga4=_merged_ga4(old_group, new_group),
            detection=_detection(
                old_group.detection, new_group.detection, stamp
            ),
        )
    return merged


def _new_group(
    group: ConsolidatedEventGroup, stamp: str
) -> ConsolidatedEventGroup:
    detection = {**(group.detection or {}), "first_detected": stamp}
    return group.model_copy(
        update={
            "enabled": group.enabled if group.enabled is not None else True,
            "detection": detection,
        }
    )


def _merged_datalayer(old: Event, new: Event) -> dict[str, Any]:
    merged = {**_doc(old.datalayer), **_doc(new.datalayer)}
    merged["params"] = [
        p.model_dump(exclude_unset=True)
        for p in _union_params(old.datalayer.params, new.datalayer.params)
    ]
    return merged


def _merged_gtm(old: Event, new: Event) -> dict[str, Any] | None:
    """Remote names already recorded in the saved plan win."""
    if old.gtm is None and new.gtm is None:
        return None
    return {**_doc(new.gtm), **_doc(old.gtm)}


def _merged_ga4(old: Event, new: Event) -> dict[str, Any] | None:
    if old.ga4 is None and new.ga4 is None:
        return None
    merged = {**_doc(old.ga4), **_doc(new.ga4)}
    old_conversion = old.ga4.conversion if old.ga4 else None
    new_conversion = new.ga4.conversion if new.ga4 else None
    conversion = old_conversion if old_conversion is not None else new_conversion
    if conversion is None:
        merged.pop("conversion", None)
    else:
        merged["conversion"] = conversion
    return merged


def find_matching_event(events: list[Event], candidate: Event) -> int | None:
    """Return the index of the saved event *candidate* corresponds to.

    Tiers are tried in order across the whole list: id, then selector,
    then data-layer event name.  Empty values never match.
    """
    tiers = (
        lambda e: e.id,
        lambda e: e.selector,
        lambda e: e.event_name,
    )
    for key in tiers:
        wanted = key(candidate)
        if not wanted:
            continue
        for i, event in enumerate(events):
            if key(event) == wanted:
                return i
    return None


def merge_events(
    existing: list[Event],
    incoming: list[Event],
    stamp: str,
) -> list[Event]:
    """Merge standalone events, preserving human edits on matched events."""
    merged = list(existing)
    for new_event in incoming:
        index = find_matching_event(merged, new_event)
        if index is None:
            detection = {**(new_event.detection or {}), "first_detected": stamp}
            merged.append(new_event.model_copy(update={"detection": detection}))
            continue

        old_event = merged[index]
        trigger = {**_doc(old_event.trigger), **_doc(new_event.trigger)}
        selector = old_event.selector or new_event.selector
        if selector:
            trigger["html_selector"] = selector

        merged[index] = _overlay(
            Event,
            old_event,
            new_event,
            enabled=(
                old_event.enabled
                if old_event.enabled is not None
                else new_event.enabled
            ),
            trigger=trigger or None,
            gtm=_merged_gtm(old_event, new_event),
            datalayer=_merged_datalayer(old_event, new_event),
            ga4=_merged_ga4(old_event, new_event),
            detection=_detection(
                old_event.detection, new_event.detection, stamp
            ),
        )
    return merged


def merge_variables(
    existing: VariablesSection,
    incoming: VariablesSection,
    referenced_params: list[str],
) -> VariablesSection:
    """Deduplicate variables by name and add ones inferred from parameters.

    A variable is a duplicate when its name or its data-layer key matches
    one already kept.  Parameter names not covered by any variable are
    appended with ``source: inferred``.  Other keys of the section are
    taken from incoming only when absent, except lists which are unioned.
    """
    kept: list[Variable] = []
    names: set[str] = set()
    for variable in [*existing.datalayer, *incoming.datalayer]:
        if variable.name in names or variable.key in names:
            continue
        kept.append(variable)
        names.update({variable.name, variable.key})

    for param in referenced_params:
        if param not in names:
            kept.append(Variable(name=param, source=INFERRED_SOURCE))
            names.add(param)

    return VariablesSection.model_validate(
        {
            **_merge_extras(existing, incoming),
            "datalayer": [v.model_dump(exclude_unset=True) for v in kept],
        }
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def merge_plans(
    existing: TrackingPlan | None,
    incoming: TrackingPlan,
    now: str | None = None,
) -> TrackingPlan:
    """Merge *incoming* into *existing* and return the merged plan.

    Args:
        existing: The saved plan, or ``None`` when none exists yet.
        incoming: The newly generated or edited plan.
        now: ISO 8601 timestamp for merge bookkeeping (defaults to now).

    Returns:
        A new ``TrackingPlan``.  When *existing* is ``None`` or empty, the
        incoming plan annotated with creation metadata.
    """
    stamp = now or _now()

    if existing is None or _is_empty(existing):
        project = incoming.project or ProjectInfo()
        return incoming.model_copy(
            update={
                "project": project.model_copy(
                    update={
                        "created": project.created or stamp,
                        "generated_by": project.generated_by or GENERATED_BY,
                    }
                )
            }
        )

    groups = merge_groups(
        existing.consolidated_events, incoming.consolidated_events, stamp
    )
    events = merge_events(existing.events, incoming.events, stamp)

    params: dict[str, None] = {}
    for item in [*groups, *events]:
        for name in item.param_names:
            params.setdefault(name, None)

    previous = existing.merge_info or MergeInfo()
    merged = TrackingPlan(
        **_merge_extras(existing, incoming),
        project=merge_project(existing.project, incoming.project, stamp),
        consolidated_events=groups,
        events=events,
        variables=merge_variables(
            existing.variables, incoming.variables, list(params)
        ),
        merge_info=MergeInfo(
            last_merge=stamp,
            merge_count=previous.merge_count + 1,
            previous_events_count=len(existing.events),
            previous_groups_count=len(existing.consolidated_events),
        ),
    )
    logger.debug(
        "Merged plan: %d groups (%d before), %d events (%d before)",
        len(groups),
        len(existing.consolidated_events),
        len(events),
        len(existing.events),
    )
    return merged


def _is_empty(plan: TrackingPlan) -> bool:
    return not plan.model_fields_set and not plan.model_extra
