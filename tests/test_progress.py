"""Tests for progress/ -- the completion model and the audit KPI.

Covers:
- Step percentage, completion and blocking by dependency
- Global weighted progress and next-step selection
- Malformed audit data never raises
- Summary line wording
- Step definition checks
- KPI scoring, grades and recommendation ordering
"""

from fractions import Fraction

import pytest

from tagplan_mcp.progress.completion import (
    actions_for_step,
    evaluate,
    progress_summary,
    round_half_up,
)
from tagplan_mcp.progress.kpi import calculate_kpi, grade_for
from tagplan_mcp.progress.steps import (
    STEPS,
    DeploymentStep,
    Task,
    check_step_definitions,
)


def _full_audit() -> dict:
    return {
        "ga4": {"installed": True, "data_stream_id": "s1", "conversions_count": 2},
        "gtm": {
            "installed": True,
            "tags": [
                {"type": "gaawc"},
                {"type": "gaawe"},
                {"type": "gaawe"},
                {"type": "gaawe"},
            ],
        },
        "datalayer": {"variables_count": 6, "custom_event_triggers": 3},
        "search_console": {"verified": True, "sitemap_submitted": True},
        "hotjar": {"installed": True},
    }


# ---------------------------------------------------------------------------
# Completion model
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_everything_done(self):
        report = evaluate(_full_audit())

        assert report.global_progress == 100
        assert report.is_complete
        assert report.next_step is None
        assert all(s.is_complete for s in report.steps)

    def test_empty_audit(self):
        report = evaluate({})

        assert report.global_progress == 0
        assert not report.is_complete
        assert report.next_step.id == "ga4"
        assert [s.id for s in report.pending_steps] == ["ga4", "search_console"]

    def test_none_audit_is_empty(self):
        assert evaluate(None).global_progress == 0

    def test_optional_task_counts_toward_percentage_only(self):
        audit = _full_audit()
        audit["ga4"]["conversions_count"] = 0

        report = evaluate(audit)
        ga4 = report.step("ga4")

        assert ga4.progress == 67
        assert ga4.tasks_complete
        assert ga4.is_complete
        assert report.global_progress == 90
        assert not report.is_complete

    def test_unmet_dependency_blocks_downstream_steps(self):
        audit = _full_audit()
        audit["ga4"]["installed"] = False

        report = evaluate(audit)

        gtm = report.step("gtm")
        assert gtm.tasks_complete
        assert gtm.blocked
        assert not gtm.is_complete
        assert report.step("datalayer").blocked
        assert report.step("hotjar").blocked
        assert not report.step("search_console").blocked
        assert report.next_step.id == "ga4"

    def test_blocked_steps_still_count_toward_global(self):
        audit = _full_audit()
        audit["ga4"]["installed"] = False

        report = evaluate(audit)

        # ga4 at 67%, everything else at 100%
        assert report.global_progress == round_half_up(
            Fraction(3, 10) * 67 + Fraction(7, 10) * 100
        )

    def test_malformed_fields_fail_tasks(self):
        audit = {
            "ga4": "not a mapping",
            "gtm": {"installed": True, "tags": [{"no_type": True}]},
            "datalayer": {"variables_count": None},
        }

        report = evaluate(audit)

        assert report.step("ga4").progress == 0
        assert report.step("gtm").completed_count == 1
        assert report.step("datalayer").progress == 0

    def test_steps_keep_declaration_order(self):
        report = evaluate({})

        assert [s.id for s in report.steps] == [s.id for s in STEPS]


class TestActionsForStep:
    def test_lists_failing_required_tasks(self):
        actions = actions_for_step("ga4", {})

        assert [a["task_id"] for a in actions] == ["ga4_exists", "ga4_stream"]

    def test_unknown_step(self):
        assert actions_for_step("nope", {}) == []


class TestProgressSummary:
    def test_complete(self):
        assert progress_summary(evaluate(_full_audit())) == "Setup complete (5/5 steps)"

    def test_nothing(self):
        assert progress_summary(evaluate({})) == "Nothing configured (0/5 steps)"

    def test_in_progress(self):
        audit = {"search_console": {"verified": True, "sitemap_submitted": True}}

        assert progress_summary(evaluate(audit)) == "In progress (1/5 steps, 15%)"


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (Fraction(1, 2), 1),
            (Fraction(149, 2), 75),
            (Fraction(200, 3), 67),
            (Fraction(100, 3), 33),
        ],
    )
    def test_rounding(self, value, expected):
        assert round_half_up(value) == expected


class TestStepDefinitions:
    def test_weights_must_sum_to_one(self):
        steps = (
            DeploymentStep("a", "A", Fraction(1, 2), (Task("t", "T", bool),)),
        )

        with pytest.raises(ValueError, match="sum to 1"):
            check_step_definitions(steps)

    def test_dependency_must_be_declared_first(self):
        steps = (
            DeploymentStep(
                "a", "A", Fraction(1, 2), (Task("t", "T", bool),), depends_on="b"
            ),
            DeploymentStep("b", "B", Fraction(1, 2), (Task("t", "T", bool),)),
        )

        with pytest.raises(ValueError, match="not declared before"):
            check_step_definitions(steps)

    def test_shipped_steps_are_consistent(self):
        check_step_definitions(STEPS)


# ---------------------------------------------------------------------------
# KPI
# ---------------------------------------------------------------------------


class TestKpi:
    def test_perfect_scores(self):
        audit = {
            key: {"score": 100, "installed": True, "verified": True,
                  "sitemap_submitted": True, "conversions_count": 1}
            for key in ("gtm", "ga4", "datalayer", "search_console", "hotjar")
        }

        kpi = calculate_kpi(audit)

        assert kpi.overall_score == 100
        assert kpi.grade == "A+"
        assert kpi.recommendations == []

    def test_weighted_score(self):
        kpi = calculate_kpi({"gtm": {"score": 50}, "ga4": {"score": 100}})

        assert kpi.overall_score == 40
        assert kpi.grade == "D"

    def test_non_numeric_scores_count_as_zero(self):
        kpi = calculate_kpi({"gtm": {"score": True}, "ga4": {"score": "90"}})

        assert kpi.scores["gtm"] == 0
        assert kpi.scores["ga4"] == 0

    def test_empty_audit_recommendations_are_prioritised(self):
        kpi = calculate_kpi({})

        assert kpi.overall_score == 0
        assert kpi.grade == "F"
        assert [(r.priority, r.category) for r in kpi.recommendations] == [
            ("critical", "gtm"),
            ("critical", "ga4"),
            ("critical", "datalayer"),
            ("high", "search_console"),
            ("medium", "hotjar"),
        ]

    def test_weak_container_recommendations(self):
        audit = {
            "gtm": {
                "installed": True,
                "score": 30,
                "tags": [{"type": "gaawe"}],
                "tags_count": 1,
                "variables_count": 1,
            }
        }

        actions = [r.action for r in calculate_kpi(audit).recommendations]

        assert actions[0] == "deploy_ga4_tag"
        assert "deploy_datalayer_vars" in actions
        assert "add_event_tags" in actions

    @pytest.mark.parametrize(
        "score,grade",
        [(90, "A+"), (89, "A"), (80, "A"), (70, "B"), (60, "C"), (40, "D"), (39, "F")],
    )
    def test_grade_boundaries(self, score, grade):
        assert grade_for(score) == grade
