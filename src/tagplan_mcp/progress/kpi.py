"""Audit KPI: weighted subsystem score, grade and prioritised recommendations.

Unlike the completion model, which counts passing tasks, the KPI blends the
0-100 score each detector assigns to its subsystem.
"""

from __future__ import annotations

from collections.abc import Mapping
from fractions import Fraction
from typing import Any

from pydantic import BaseModel

from .completion import round_half_up

SUBSYSTEM_WEIGHTS: dict[str, Fraction] = {
    "gtm": Fraction(1, 5),
    "ga4": Fraction(3, 10),
    "datalayer": Fraction(3, 10),
    "search_console": Fraction(3, 20),
    "hotjar": Fraction(1, 20),
}

GRADES: tuple[tuple[int, str], ...] = (
    (90, "A+"),
    (80, "A"),
    (70, "B"),
    (60, "C"),
    (40, "D"),
)

PRIORITY_ORDER = {"critical": 0, "high": 1, "medium": 2, "low": 3}


class Recommendation(BaseModel):
    priority: str
    category: str
    message: str
    impact: int
    action: str

    model_config = {"frozen": True}


class KpiReport(BaseModel):
    scores: dict[str, int]
    overall_score: int
    grade: str
    recommendations: list[Recommendation]

    model_config = {"frozen": True}


def _section(audit: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = audit.get(key)
    return value if isinstance(value, Mapping) else {}


def _number(section: Mapping[str, Any], key: str) -> int:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def grade_for(score: int) -> str:
    for threshold, grade in GRADES:
        if score >= threshold:
            return grade
    return "F"


def calculate_kpi(audit: Mapping[str, Any] | None) -> KpiReport:
    """Score *audit*; absent subsystems score 0."""
    audit = audit if isinstance(audit, Mapping) else {}
    scores = {
        key: _number(_section(audit, key), "score")
        for key in SUBSYSTEM_WEIGHTS
    }
    overall = round_half_up(
        sum(
            (SUBSYSTEM_WEIGHTS[key] * score for key, score in scores.items()),
            Fraction(0),
        )
    )
    return KpiReport(
        scores=scores,
        overall_score=overall,
        grade=grade_for(overall),
        recommendations=recommendations_for(audit, scores),
    )


def recommendations_for(
    audit: Mapping[str, Any], scores: dict[str, int]
) -> list[Recommendation]:
    """Build recommendations, most urgent first."""
    recs: list[Recommendation] = []

    def add(
        priority: str, category: str, message: str, impact: int, action: str
    ) -> None:
        recs.append(
            Recommendation(
                priority=priority,
                category=category,
                message=message,
                impact=impact,
                action=action,
            )
        )

    gtm = _section(audit, "gtm")
    if not gtm.get("installed"):
        add("critical", "gtm", "Tag container not installed", 20, "deploy_gtm")
    elif scores["gtm"] < 80:
        tags = gtm.get("tags") or []
        if not any(
            isinstance(t, Mapping) and t.get("type") in ("gaawc", "googtag")
            for t in tags
        ):
            add(
                "critical",
                "gtm",
                "No GA4 configuration tag in the container",
                10,
                "deploy_ga4_tag",
            )
        if _number(gtm, "variables_count") < 5:
            add(
                "high",
                "gtm",
                "Too few data-layer variables (< 5)",
                15,
                "deploy_datalayer_vars",
            )
        if _number(gtm, "tags_count") < 4:
            add("medium", "gtm", "Few tags configured", 10, "add_event_tags")

    ga4 = _section(audit, "ga4")
    if not ga4.get("installed"):
        add("critical", "ga4", "GA4 not configured", 30, "deploy_ga4")
    elif _number(ga4, "conversions_count") == 0:
        add(
            "high",
            "ga4",
            "No conversion marked: goals cannot be measured",
            15,
            "mark_conversions",
        )

    datalayer = _section(audit, "datalayer")
    if not datalayer.get("installed"):
        add(
            "critical",
            "datalayer",
            "Custom data layer not configured",
            30,
            "deploy_datalayer",
        )
    elif scores["datalayer"] < 60:
        add(
            "high",
            "datalayer",
            "Data layer incomplete: add more custom variables",
            20,
            "enhance_datalayer",
        )

    search_console = _section(audit, "search_console")
    if not search_console.get("verified"):
        add(
            "high",
            "search_console",
            "Search Console not verified",
            15,
            "verify_sc",
        )
    elif not search_console.get("sitemap_submitted"):
        add(
            "medium",
            "search_console",
            "No sitemap submitted",
            10,
            "submit_sitemap",
        )

    if not _section(audit, "hotjar").get("installed"):
        add(
            "medium",
            "hotjar",
            "Hotjar not installed: no heatmaps or recordings",
            5,
            "deploy_hotjar",
        )

    # sorted() is stable, so insertion order breaks ties
    return sorted(recs, key=lambda r: PRIORITY_ORDER[r.priority])
