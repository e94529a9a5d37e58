"""Tests for plan/merger.py -- merging a regenerated plan into the saved one.

Covers:
- First merge (no saved plan) annotates creation metadata
- Human edits survive: enabled flags, conversion flags, remote names
- Event identity tiers: id, then selector, then event name
- Group actions are unioned, never removed
- Sticky project identifiers
- Variables deduplicated and inferred from parameters
- Merge bookkeeping and repeat-merge stability
- Unknown keys are carried through; merging a plan with itself is a no-op
"""

from tagplan_mcp.plan.merger import GENERATED_BY, find_matching_event, merge_plans
from tagplan_mcp.plan.models import Event, TrackingPlan
from tagplan_mcp.plan.store import dump_plan, parse_plan

STAMP = "2026-03-01T10:00:00+00:00"


def _plan(**sections) -> TrackingPlan:
    data = {"project": {"name": "Example", "domain": "example.com"}}
    data.update(sections)
    return TrackingPlan.model_validate(data)


# ---------------------------------------------------------------------------
# First merge
# ---------------------------------------------------------------------------


class TestFirstMerge:
    def test_no_saved_plan_returns_incoming(self):
        incoming = _plan(events=[{"id": "a", "datalayer": {"event_name": "a"}}])

        merged = merge_plans(None, incoming, now=STAMP)

        assert [e.id for e in merged.events] == ["a"]
        assert merged.project.created == STAMP
        assert merged.project.generated_by == GENERATED_BY

    def test_empty_saved_plan_is_treated_as_absent(self):
        incoming = _plan(events=[{"id": "a"}])

        merged = merge_plans(TrackingPlan(), incoming, now=STAMP)

        assert merged.merge_info is None
        assert merged.project.created == STAMP

    def test_existing_created_date_is_kept(self):
        incoming = _plan()
        incoming = incoming.model_copy(
            update={
                "project": incoming.project.model_copy(
                    update={"created": "2025-01-01"}
                )
            }
        )

        merged = merge_plans(None, incoming, now=STAMP)

        assert merged.project.created == "2025-01-01"


# ---------------------------------------------------------------------------
# Standalone events
# ---------------------------------------------------------------------------


class TestMergeEvents:
    def test_saved_enabled_flag_wins(self):
        existing = _plan(events=[{"id": "a", "enabled": False}])
        incoming = _plan(events=[{"id": "a", "enabled": True}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.events[0].enabled is False

    def test_absent_enabled_flag_is_replaceable(self):
        existing = _plan(events=[{"id": "a"}])
        incoming = _plan(events=[{"id": "a", "enabled": False}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.events[0].enabled is False

    def test_absent_enabled_flag_counts_as_enabled(self):
        plan = _plan(events=[{"id": "a"}])

        assert [e.id for e in plan.enabled_events()] == ["a"]

    def test_match_by_selector_when_ids_differ(self):
        existing = _plan(
            events=[
                {
                    "id": "x",
                    "html_selector": "#btn",
                    "datalayer": {"event_name": "click_btn"},
                }
            ]
        )
        incoming = _plan(events=[{"id": "y", "trigger": {"html_selector": "#btn"}}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert len(merged.events) == 1
        assert merged.events[0].selector == "#btn"
        assert merged.events[0].event_name == "click_btn"

    def test_match_by_event_name(self):
        existing = _plan(events=[{"id": "x", "datalayer": {"event_name": "signup"}}])
        incoming = _plan(events=[{"id": "y", "datalayer": {"event_name": "signup"}}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert len(merged.events) == 1

    def test_events_without_identity_never_match(self):
        existing = _plan(events=[{"enabled": True}])
        incoming = _plan(events=[{"enabled": True}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert len(merged.events) == 2

    def test_new_event_is_appended_with_first_detected(self):
        existing = _plan(events=[{"id": "a"}])
        incoming = _plan(events=[{"id": "b"}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert [e.id for e in merged.events] == ["a", "b"]
        assert merged.events[1].detection["first_detected"] == STAMP

    def test_saved_remote_names_win(self):
        existing = _plan(
            events=[{"id": "a", "gtm": {"trigger": "My custom trigger"}}]
        )
        incoming = _plan(events=[{"id": "a", "gtm": {"trigger": "Event - a"}}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.events[0].remote_trigger_name == "My custom trigger"

    def test_saved_conversion_flag_wins(self):
        existing = _plan(events=[{"id": "a", "ga4": {"conversion": True}}])
        incoming = _plan(events=[{"id": "a", "ga4": {"conversion": False}}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.events[0].ga4.conversion is True

    def test_params_are_unioned(self):
        existing = _plan(
            events=[{"id": "a", "datalayer": {"event_name": "a", "params": ["p1"]}}]
        )
        incoming = _plan(
            events=[
                {"id": "a", "datalayer": {"event_name": "a", "params": ["p2", "p1"]}}
            ]
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.events[0].param_names == ["p1", "p2"]


class TestFindMatchingEvent:
    def test_id_tier_wins_over_earlier_selector_match(self):
        events = [
            Event.model_validate({"id": "other", "html_selector": "#x"}),
            Event.model_validate({"id": "wanted"}),
        ]
        candidate = Event.model_validate({"id": "wanted", "html_selector": "#x"})

        assert find_matching_event(events, candidate) == 1

    def test_no_match_returns_none(self):
        events = [Event.model_validate({"id": "a"})]

        assert find_matching_event(events, Event.model_validate({"id": "b"})) is None


# ---------------------------------------------------------------------------
# Consolidated groups
# ---------------------------------------------------------------------------


class TestMergeGroups:
    def test_actions_are_unioned_and_never_removed(self):
        existing = _plan(
            consolidated_events=[
                {"id": "g", "actions": [{"id": "a"}, {"id": "b"}]}
            ]
        )
        incoming = _plan(
            consolidated_events=[
                {"id": "g", "actions": [{"id": "b"}, {"id": "c"}]}
            ]
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.consolidated_events[0].action_ids == ["a", "b", "c"]

    def test_legacy_group_keys_are_normalised(self):
        existing = _plan(
            event_groups=[
                {"group_id": "g", "events": [{"source_event": "a"}]}
            ]
        )
        incoming = _plan(consolidated_events=[{"id": "g", "actions": [{"id": "b"}]}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert len(merged.consolidated_events) == 1
        assert merged.consolidated_events[0].action_ids == ["a", "b"]

    def test_new_group_defaults_to_enabled(self):
        existing = _plan(consolidated_events=[{"id": "g1", "enabled": False}])
        incoming = _plan(consolidated_events=[{"id": "g2"}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert [g.enabled for g in merged.consolidated_events] == [False, True]

    def test_saved_group_enabled_flag_wins(self):
        existing = _plan(consolidated_events=[{"id": "g", "enabled": False}])
        incoming = _plan(consolidated_events=[{"id": "g", "enabled": True}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.consolidated_events[0].enabled is False


# ---------------------------------------------------------------------------
# Project and variables
# ---------------------------------------------------------------------------


class TestMergeProject:
    def test_remote_ids_are_sticky(self):
        existing = _plan()
        existing = existing.model_copy(
            update={
                "project": existing.project.model_copy(
                    update={"gtm_container_id": "GTM-OLD"}
                )
            }
        )
        incoming = TrackingPlan.model_validate(
            {"project": {"name": "Renamed", "gtm_container_id": "GTM-NEW"}}
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.project.gtm_container_id == "GTM-OLD"
        assert merged.project.name == "Renamed"
        assert merged.project.last_merge == STAMP

    def test_missing_remote_id_is_filled_from_incoming(self):
        existing = _plan(events=[{"id": "a"}])
        incoming = TrackingPlan.model_validate(
            {"project": {"ga4_measurement_id": "G-NEW"}}
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.measurement_id == "G-NEW"


class TestMergeVariables:
    def test_params_become_inferred_variables(self):
        existing = _plan(events=[{"id": "a"}])
        incoming = _plan(
            events=[{"id": "a", "datalayer": {"event_name": "a", "params": ["plan_tier"]}}]
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        variables = merged.variables.datalayer
        assert [v.name for v in variables] == ["plan_tier"]
        assert variables[0].is_inferred

    def test_declared_variable_covers_param(self):
        existing = _plan(
            events=[{"id": "a", "datalayer": {"event_name": "a", "params": ["tier"]}}],
            variables={"datalayer": [{"name": "Plan tier", "datalayer_name": "tier"}]},
        )
        incoming = _plan(events=[{"id": "a"}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert [v.key for v in merged.variables.datalayer] == ["tier"]

    def test_duplicates_by_name_are_dropped(self):
        existing = _plan(variables={"datalayer": [{"name": "user_id"}]})
        incoming = _plan(
            variables={"datalayer": [{"name": "user_id"}, {"name": "page_type"}]}
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert [v.name for v in merged.variables.datalayer] == ["user_id", "page_type"]


# ---------------------------------------------------------------------------
# Bookkeeping
# ---------------------------------------------------------------------------


class TestMergeInfo:
    def test_merge_count_increments(self):
        existing = _plan(events=[{"id": "a"}, {"id": "b"}])
        incoming = _plan(events=[{"id": "a"}])

        first = merge_plans(existing, incoming, now=STAMP)
        second = merge_plans(first, incoming, now=STAMP)

        assert first.merge_info.merge_count == 1
        assert first.merge_info.previous_events_count == 2
        assert second.merge_info.merge_count == 2

    def test_repeat_merge_is_stable(self):
        existing = _plan(
            consolidated_events=[{"id": "g", "actions": [{"id": "a"}]}],
            events=[{"id": "e1", "enabled": False}],
        )
        incoming = _plan(
            consolidated_events=[{"id": "g", "actions": [{"id": "b"}]}],
            events=[{"id": "e1", "enabled": True}, {"id": "e2"}],
        )

        first = merge_plans(existing, incoming, now=STAMP)
        second = merge_plans(first, incoming, now=STAMP)

        def strip(items):
            return [i.model_dump(exclude={"detection"}) for i in items]

        assert strip(second.events) == strip(first.events)
        assert strip(second.consolidated_events) == strip(
            first.consolidated_events
        )


# ---------------------------------------------------------------------------
# Unknown keys and self-merge
# ---------------------------------------------------------------------------

HAND_EDITED_PLAN = """\
notes: keep me
owners: [web-team]
project:
  name: Example
  domain: example.com
  ga4_measurement_id: G-1
consolidated_events:
  - id: cta
    enabled: true
    review: pending
    datalayer:
      event_name: cta_click
      params: [cta_label]
    actions:
      - {id: hero_button, label: Hero}
      - {id: footer_button}
events:
  - id: signup
    enabled: false
    trigger: {html_selector: 'form#signup'}
    datalayer:
      event_name: signup
      params: [{name: plan_tier}, {name: button_id}]
    ga4: {conversion: true}
variables:
  custom: [page_type]
  datalayer:
    - {name: cta_label}
    - {name: Plan tier, datalayer_name: plan_tier}
    - {name: button_id, source: inferred}
"""


def _content(plan: TrackingPlan) -> dict:
    """Document form without merge timestamps and bookkeeping."""
    doc = plan.to_document()
    doc.pop("_merge_info", None)
    for key in ("updated", "last_merge"):
        doc.get("project", {}).pop(key, None)
    for section in ("events", "consolidated_events"):
        for item in doc.get(section, []):
            item.pop("detection", None)
    return doc


class TestUnknownKeys:
    def test_top_level_keys_survive(self):
        existing = _plan(notes="keep me", events=[{"id": "a"}])
        incoming = _plan(events=[{"id": "a"}])

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.model_extra == {"notes": "keep me"}
        assert "notes: keep me" in dump_plan(merged)

    def test_saved_value_wins_and_gaps_are_filled(self):
        existing = _plan(notes="saved", owners=["web"], events=[{"id": "a"}])
        incoming = _plan(
            notes="generated", owners=["web", "seo"], locale="fr", events=[{"id": "a"}]
        )

        merged = merge_plans(existing, incoming, now=STAMP)

        assert merged.model_extra == {
            "notes": "saved",
            "owners": ["web", "seo"],
            "locale": "fr",
        }


class TestSelfMerge:
    def test_merging_a_plan_with_itself_changes_nothing(self):
        plan = parse_plan(HAND_EDITED_PLAN)

        merged = merge_plans(plan, plan, now=STAMP)

        assert _content(merged) == _content(plan)
        assert merged.model_extra == {"notes": "keep me", "owners": ["web-team"]}
        assert merged.variables.model_extra == {"custom": ["page_type"]}

    def test_undeclared_params_are_written_once(self):
        plan = parse_plan(
            "project: {name: Example}\n"
            "events:\n"
            "  - id: cta\n"
            "    datalayer: {event_name: cta_click, params: [button_id]}\n"
        )

        first = merge_plans(plan, plan, now=STAMP)
        second = merge_plans(first, first, now=STAMP)

        assert [(v.name, v.source) for v in first.variables.datalayer] == [
            ("button_id", "inferred")
        ]
        assert _content(second) == _content(first)
