"""Compare the local tracking plan with a remote container snapshot.

Remote display names are free text edited by humans, so matching is a
heuristic rather than an equality relation: both sides are normalised
(known prefixes such as ``Event -`` or ``GA4 Event -`` stripped, case
folded) and two names match when one contains the other.  The relation is
neither symmetric in intent nor transitive; ``"form"`` matches
``"form_step"``.  ``NameMatching.WORD`` restricts containment to whole
words for containers where that produces false positives.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from ..plan.models import Event, TrackingPlan
from .models import (
    Diff,
    ElementSet,
    OrphanSet,
    PlannedEvent,
    PlannedVariable,
    RemoteContainerState,
    RemoteElement,
)

logger = logging.getLogger(__name__)

CUSTOM_EVENT_TRIGGER_TYPES = frozenset({"customEvent", "CUSTOM_EVENT"})
EVENT_TAG_TYPE = "gaawe"
DATALAYER_VARIABLE_TYPE = "v"

_PREFIX_RE = re.compile(r"^(?:GA4\s*-?\s*)?(?:EV|Event|DLV)\s*-\s*", re.IGNORECASE)


class NameMatching(str, Enum):
    SUBSTRING = "substring"
    WORD = "word"


@dataclass(frozen=True)
class ProtectedNames:
    """Remote elements never reported as orphans, whatever they match."""

    triggers: frozenset[str] = frozenset(
        {"All Pages", "DOM Ready", "Window Loaded", "Initialization - All Pages"}
    )
    tags: frozenset[str] = frozenset()
    variables: frozenset[str] = frozenset(
        {"Page URL", "Page Path", "Page Hostname", "Referrer", "Event"}
    )

    def extended(
        self,
        triggers: Iterable[str] = (),
        tags: Iterable[str] = (),
        variables: Iterable[str] = (),
    ) -> ProtectedNames:
        return ProtectedNames(
            triggers=self.triggers | frozenset(triggers),
            tags=self.tags | frozenset(tags),
            variables=self.variables | frozenset(variables),
        )

    def protects(self, element: RemoteElement) -> bool:
        names = {
            "trigger": self.triggers,
            "tag": self.tags,
            "variable": self.variables,
        }[element.kind.value]
        return element.name in names


DEFAULT_PROTECTED = ProtectedNames()


def normalize_name(name: str) -> str:
    """Strip the naming-convention prefix and case-fold *name*."""
    return _PREFIX_RE.sub("", name.strip()).strip().casefold()


def _contains_word(haystack: str, needle: str) -> bool:
    return re.search(rf"(?<!\w){re.escape(needle)}(?!\w)", haystack) is not None


def names_match(
    local: str, remote: str, mode: NameMatching = NameMatching.SUBSTRING
) -> bool:
    """Whether *local* and *remote* name the same element.

    Empty names never match anything.
    """
    a, b = normalize_name(local), normalize_name(remote)
    if not a or not b:
        return False
    if mode is NameMatching.WORD:
        return _contains_word(a, b) or _contains_word(b, a)
    return a in b or b in a


def variable_in_use(variable_name: str, local_events: Iterable[str]) -> bool:
    """Prefix heuristic tying a data-layer variable to the local events.

    A variable counts as used when its name starts with the first
    ``_``-separated segment of some event name, or when some event name
    contains the variable's first segment.  Deliberately conservative: it
    keeps variables that are probably unused rather than risk deleting one
    that is.
    """
    var = normalize_name(variable_name)
    if not var:
        return True
    var_prefix = var.split("_")[0]
    for event in local_events:
        local = event.casefold()
        if not local:
            continue
        if var.startswith(local.split("_")[0]) or var_prefix in local:
            return True
    return False


# ---------------------------------------------------------------------------
# Local intent
# ---------------------------------------------------------------------------


def _planned(item: Event, *, is_group: bool) -> PlannedEvent | None:
    name = item.event_name
    if not name:
        return None
    return PlannedEvent(
        source_id=item.id,
        event_name=name,
        params=item.param_names if is_group else [],
        is_group=is_group,
        trigger_name=item.remote_trigger_name or f"Event - {name}",
        tag_name=item.remote_tag_name or f"GA4 Event - {name}",
    )


def planned_events(plan: TrackingPlan) -> list[PlannedEvent]:
    """Enabled groups then enabled events, one entry per event name.

    Items without an event name cannot be mapped to a trigger and are
    skipped.
    """
    result: list[PlannedEvent] = []
    seen: set[str] = set()
    items = [(g, True) for g in plan.enabled_groups()] + [
        (e, False) for e in plan.enabled_events()
    ]
    for item, is_group in items:
        planned = _planned(item, is_group=is_group)
        if planned is None:
            logger.debug("Skipping %s without event name", item.id)
            continue
        key = planned.event_name.casefold()
        if key in seen:
            continue
        seen.add(key)
        result.append(planned)
    return result


def planned_variables(plan: TrackingPlan) -> list[PlannedVariable]:
    """Declared variables plus parameter names no declaration covers."""
    result: list[PlannedVariable] = []
    seen: set[str] = set()
    for var in plan.variables.datalayer:
        if var.key in seen:
            continue
        seen.add(var.key)
        result.append(
            PlannedVariable(
                name=var.name, datalayer_key=var.key, inferred=var.is_inferred
            )
        )
    for param in plan.inferred_param_names():
        if param not in seen:
            seen.add(param)
            result.append(
                PlannedVariable(name=param, datalayer_key=param, inferred=True)
            )
    return result


# ---------------------------------------------------------------------------
# Comparator
# ---------------------------------------------------------------------------


class StateComparator:
    """Partition local and remote elements into missing, synced and orphaned.

    Args:
        matching: Name matching mode.
        protected: Names excluded from orphan detection.
    """

    def __init__(
        self,
        matching: NameMatching = NameMatching.SUBSTRING,
        protected: ProtectedNames = DEFAULT_PROTECTED,
    ) -> None:
        self.matching = matching
        self.protected = protected

    def _event_matches(self, event: PlannedEvent, remote: RemoteElement) -> bool:
        explicit = (event.trigger_name, event.tag_name)
        if remote.name.casefold() in (n.casefold() for n in explicit):
            return True
        return names_match(event.event_name, remote.name, self.matching)

    def _variable_matches(
        self, variable: PlannedVariable, remote: RemoteElement
    ) -> bool:
        if remote.datalayer_key and remote.datalayer_key == variable.datalayer_key:
            return True
        return names_match(variable.datalayer_key, remote.name, self.matching)

    def compare(
        self, plan: TrackingPlan, remote: RemoteContainerState
    ) -> Diff:
        events = planned_events(plan)
        variables = planned_variables(plan)

        triggers = [
            t for t in remote.triggers if t.type in CUSTOM_EVENT_TRIGGER_TYPES
        ]
        event_tags = [t for t in remote.tags if t.type == EVENT_TAG_TYPE]
        dl_variables = [
            v for v in remote.variables if v.type == DATALAYER_VARIABLE_TYPE
        ]

        missing_events: list[PlannedEvent] = []
        synced_events: list[PlannedEvent] = []
        for event in events:
            if any(self._event_matches(event, t) for t in triggers):
                synced_events.append(event)
            else:
                missing_events.append(event)

        missing_vars: list[PlannedVariable] = []
        synced_vars: list[PlannedVariable] = []
        for var in variables:
            if any(self._variable_matches(var, v) for v in dl_variables):
                synced_vars.append(var)
            else:
                missing_vars.append(var)

        event_names = [e.event_name for e in events]
        orphans = OrphanSet(
            tags=[
                t
                for t in event_tags
                if not self.protected.protects(t)
                and not any(self._event_matches(e, t) for e in events)
            ],
            triggers=[
                t
                for t in triggers
                if not self.protected.protects(t)
                and not any(self._event_matches(e, t) for e in events)
            ],
            variables=[
                v
                for v in dl_variables
                if not self.protected.protects(v)
                and not variable_in_use(v.name, event_names)
                and not any(self._variable_matches(p, v) for p in variables)
            ],
        )

        diff = Diff(
            missing_remote=ElementSet(events=missing_events, variables=missing_vars),
            synced=ElementSet(events=synced_events, variables=synced_vars),
            orphan_remote=orphans,
        )
        logger.debug(
            "Compared plan with %s: %d missing, %d synced, %d orphaned",
            remote.public_id or remote.container_path,
            len(diff.missing_remote),
            len(diff.synced),
            len(diff.orphan_remote),
        )
        return diff


def compare(
    plan: TrackingPlan,
    remote: RemoteContainerState,
    matching: NameMatching = NameMatching.SUBSTRING,
    protected: ProtectedNames = DEFAULT_PROTECTED,
) -> Diff:
    """Shorthand for ``StateComparator(matching, protected).compare(...)``."""
    return StateComparator(matching, protected).compare(plan, remote)
