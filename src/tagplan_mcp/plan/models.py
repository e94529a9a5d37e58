"""Pydantic models for the tracking-plan document.

The plan is a hand-edited YAML file, so every model accepts and preserves
unknown keys (``extra="allow"``).  Older generator releases wrote a few
sections under different names; those legacy shapes are normalised when the
document is validated, so the merger, comparator and executor only ever see
the current shape:

- top-level ``event_groups`` -> ``consolidated_events``
- group ``group_id`` -> ``id``, group ``events`` -> ``actions``
- action ``source_event`` -> ``id``
- event ``html_selector`` -> ``trigger.html_selector``
- event parameters given as bare strings -> ``{"name": ...}``
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

INFERRED_SOURCE = "inferred"


class PlanModel(BaseModel):
    """Base for all plan sections: open to unknown keys, populated by name."""

    model_config = {"extra": "allow", "populate_by_name": True}

    def to_document(self) -> dict[str, Any]:
        """Return the YAML-ready dict form (aliases applied, unset keys dropped)."""
        return self.model_dump(
            by_alias=True, exclude_none=True, mode="json"
        )


def _rename(data: Any, legacy: str, current: str) -> Any:
    """Move *legacy* key to *current* when only the legacy key is present."""
    if isinstance(data, dict) and legacy in data:
        data = dict(data)
        legacy_value = data.pop(legacy)
        if data.get(current) in (None, [], ""):
            data[current] = legacy_value
    return data


# ---------------------------------------------------------------------------
# Project metadata
# ---------------------------------------------------------------------------


class ProjectInfo(PlanModel):
    """Project metadata block.

    ``ga4_id``, ``ga4_measurement_id`` and ``gtm_container_id`` identify the
    remote property and container; once set they survive later merges.
    """

    name: str | None = None
    domain: str | None = None
    ga4_id: str | None = None
    ga4_measurement_id: str | None = None
    gtm_container_id: str | None = None
    created: str | None = None
    updated: str | None = None
    last_merge: str | None = None
    generated_by: str | None = None


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class EventParam(PlanModel):
    name: str

    @model_validator(mode="before")
    @classmethod
    def _coerce_bare_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data


class Trigger(PlanModel):
    """Where an event fires on the page."""

    type: str | None = None
    html_selector: str | None = None


class DataLayerSpec(PlanModel):
    """The data-layer push emitted for an event."""

    event_name: str | None = None
    params: list[EventParam] = Field(default_factory=list)


class NamedRef(PlanModel):
    name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_bare_name(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"name": data}
        return data


class GtmRefs(PlanModel):
    """Explicit remote element names, when they differ from the convention."""

    trigger: NamedRef | None = None
    tag: NamedRef | None = None


class Ga4Spec(PlanModel):
    conversion: bool | None = None


class Event(PlanModel):
    """One trackable user action, mapped to one trigger/tag pair.

    ``enabled`` stays ``None`` when the document does not say; an absent
    flag is treated as enabled but is still replaceable by a later merge.
    """

    id: str | None = None
    enabled: bool | None = None
    trigger: Trigger | None = None
    datalayer: DataLayerSpec = Field(default_factory=DataLayerSpec)
    gtm: GtmRefs | None = None
    ga4: Ga4Spec | None = None
    detection: dict[str, Any] | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy(cls, data: Any) -> Any:
        if isinstance(data, dict) and "html_selector" in data:
            data = dict(data)
            selector = data.pop("html_selector")
            trigger = dict(data.get("trigger") or {})
            trigger.setdefault("html_selector", selector)
            data["trigger"] = trigger
        return data

    @property
    def is_enabled(self) -> bool:
        return self.enabled is not False

    @property
    def selector(self) -> str | None:
        return self.trigger.html_selector if self.trigger else None

    @property
    def event_name(self) -> str | None:
        return self.datalayer.event_name

    @property
    def param_names(self) -> list[str]:
        return [p.name for p in self.datalayer.params]

    @property
    def remote_trigger_name(self) -> str | None:
        if self.gtm and self.gtm.trigger:
            return self.gtm.trigger.name
        return None

    @property
    def remote_tag_name(self) -> str | None:
        if self.gtm and self.gtm.tag:
            return self.gtm.tag.name
        return None


class Action(PlanModel):
    """A sub-event of a consolidated group (e.g. one button of a set)."""

    id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy(cls, data: Any) -> Any:
        return _rename(data, "source_event", "id")


class ConsolidatedEventGroup(Event):
    """Several actions mapped onto a single remote trigger/tag pair.

    Actions are told apart by a shared parameter value, so the group's
    parameter list is attached to the remote tag.
    """

    actions: list[Action] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _normalise_group_legacy(cls, data: Any) -> Any:
        data = _rename(data, "group_id", "id")
        return _rename(data, "events", "actions")

    @property
    def action_ids(self) -> list[str]:
        return [a.id for a in self.actions if a.id]


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class Variable(PlanModel):
    """A data-layer field expected to reach the container.

    ``source`` is ``"inferred"`` for variables the merger derived from
    event parameters; hand-declared variables leave it unset.
    """

    name: str
    datalayer_name: str | None = None
    type: str | None = None
    source: str | None = None

    @property
    def key(self) -> str:
        """Data-layer key the remote variable reads."""
        return self.datalayer_name or self.name

    @property
    def is_inferred(self) -> bool:
        return self.source == INFERRED_SOURCE


class VariablesSection(PlanModel):
    datalayer: list[Variable] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class MergeInfo(PlanModel):
    last_merge: str | None = None
    merge_count: int = 0
    previous_events_count: int = 0
    previous_groups_count: int = 0


class TrackingPlan(PlanModel):
    """The whole tracking-plan document."""

    project: ProjectInfo | None = None
    consolidated_events: list[ConsolidatedEventGroup] = Field(
        default_factory=list
    )
    events: list[Event] = Field(default_factory=list)
    variables: VariablesSection = Field(default_factory=VariablesSection)
    merge_info: MergeInfo | None = Field(default=None, alias="_merge_info")

    @model_validator(mode="before")
    @classmethod
    def _normalise_legacy(cls, data: Any) -> Any:
        data = _rename(data, "event_groups", "consolidated_events")
        if isinstance(data, dict):
            # Explicit nulls in YAML ("events:") mean empty sections
            data = {
                k: v
                for k, v in data.items()
                if not (
                    v is None
                    and k in ("consolidated_events", "events", "variables")
                )
            }
        return data

    @property
    def measurement_id(self) -> str | None:
        if self.project is None:
            return None
        return self.project.ga4_measurement_id or self.project.ga4_id or None

    def enabled_events(self) -> list[Event]:
        return [e for e in self.events if e.is_enabled]

    def enabled_groups(self) -> list[ConsolidatedEventGroup]:
        return [g for g in self.consolidated_events if g.is_enabled]

    def inferred_param_names(self) -> list[str]:
        """Parameter names referenced by events and groups, in first-seen order."""
        seen: dict[str, None] = {}
        for item in [*self.consolidated_events, *self.events]:
            for name in item.param_names:
                seen.setdefault(name, None)
        return list(seen)
