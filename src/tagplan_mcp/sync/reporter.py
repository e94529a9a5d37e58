"""Report formatting functions.

Human-readable and machine-readable output for every engine operation:

- ``format_diff_preview`` -- what a sync would create (and what is orphaned).
- ``format_sync_report`` -- post-sync or post-clean summary.
- ``format_change_summary`` / ``format_publish_outcome`` -- version diff.
- ``format_progress_report`` -- deployment progress, next actions and KPI.
- ``report_to_json`` / ``publish_to_json`` -- dicts for MCP tool output.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from ..progress.completion import actions_for_step, progress_summary

if TYPE_CHECKING:
    from ..progress.completion import ProgressReport
    from ..progress.kpi import KpiReport
    from .models import ChangeSummary, Diff, PublishOutcome, SyncReport


def _section(lines: list[str], title: str, items: list[str]) -> None:
    if not items:
        return
    lines.append(f"{title}:")
    lines.extend(f"  {item}" for item in items)
    lines.append("")


def count_line(report: SyncReport) -> str:
    """``created N, matched N, orphaned N, failed N``."""
    parts = [
        f"created {report.created}",
        f"matched {report.matched}",
        f"orphaned {report.orphaned}",
        f"failed {len(report.errors)}",
    ]
    if report.cleanup is not None:
        parts.insert(1, f"deleted {report.deleted}")
    return ", ".join(parts)


# ------------------------------------------------------------------
# Diff preview
# ------------------------------------------------------------------


def format_diff_preview(diff: Diff, target: str) -> str:
    """Format a dry-run preview of *diff*.

    Orphans are listed for information only; a sync never deletes them.
    """
    lines: list[str] = ["DRY RUN -- No changes will be made", f"Target: {target}", ""]

    _section(
        lines,
        "[CREATE] Events (trigger + tag)",
        [
            e.event_name + (f" ({len(e.params)} params)" if e.params else "")
            for e in diff.missing_remote.events
        ],
    )
    _section(
        lines,
        "[CREATE] Variables",
        [v.remote_name for v in diff.missing_remote.variables],
    )

    orphans = diff.orphan_remote
    _section(
        lines,
        "[ORPHAN] Not in the plan (removed only by clean)",
        [f"tag: {t.name}" for t in orphans.tags]
        + [f"trigger: {t.name}" for t in orphans.triggers]
        + [f"variable: {v.name}" for v in orphans.variables],
    )

    synced = len(diff.synced)
    if synced:
        lines.append(f"In sync: {synced} elements")
        lines.append("")

    if diff.in_sync:
        lines.append("No changes needed.")
        lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Sync / clean report
# ------------------------------------------------------------------


def format_sync_report(report: SyncReport) -> str:
    """Format a completed sync or clean report.

    Sections only appear when non-empty.
    """
    if report.dry_run and report.operation != "clean":
        return format_diff_preview(report.diff, report.target)

    lines: list[str] = []
    header = f"{report.operation.capitalize()} report for '{report.target}'"
    if report.dry_run:
        header += " (DRY RUN)"
    lines.append(header)
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")
    lines.append(count_line(report).capitalize())
    lines.append("")

    if report.result is not None:
        _section(lines, "Created triggers", report.result.created_triggers)
        _section(lines, "Created tags", report.result.created_tags)
        _section(lines, "Created variables", report.result.created_variables)
        _section(
            lines,
            "Tags skipped (no measurement id)",
            report.result.skipped_tags,
        )

    if report.cleanup is not None:
        _section(lines, "Deleted tags", report.cleanup.deleted_tags)
        _section(lines, "Deleted triggers", report.cleanup.deleted_triggers)
        _section(lines, "Deleted variables", report.cleanup.deleted_variables)
    elif report.operation == "clean":
        orphans = report.diff.orphan_remote
        _section(
            lines,
            "Would delete" if report.dry_run else "Orphans",
            [f"tag: {t.name}" for t in orphans.tags]
            + [f"trigger: {t.name}" for t in orphans.triggers]
            + [f"variable: {v.name}" for v in orphans.variables],
        )
        if not len(orphans):
            lines.append("Container is clean: no orphaned elements.")
            lines.append("")

    _section(
        lines,
        "Errors",
        [
            f"{e.operation} {e.kind.value} {e.name}: {e.error}"
            for e in report.errors
        ],
    )

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# Publish
# ------------------------------------------------------------------


def format_change_summary(summary: ChangeSummary) -> str:
    if summary.is_empty:
        return "No changes detected"
    lines: list[str] = [summary.description(), ""]
    for kind, changes in summary.by_kind().items():
        for symbol, items in (
            ("+", changes.added),
            ("~", changes.modified),
            ("-", changes.deleted),
        ):
            lines.extend(f"  {symbol} {kind.value}: {e.name}" for e in items)
    return "\n".join(lines).rstrip()


def format_publish_outcome(outcome: PublishOutcome) -> str:
    lines = [outcome.message]
    if not outcome.summary.is_empty:
        lines.append("")
        lines.append(format_change_summary(outcome.summary))
    return "\n".join(lines)


# ------------------------------------------------------------------
# Progress
# ------------------------------------------------------------------


def format_progress_report(
    progress: ProgressReport,
    kpi: KpiReport | None = None,
    audit: Mapping[str, Any] | None = None,
) -> str:
    """Render *progress*; with *audit*, list what the next step still needs."""
    lines: list[str] = [progress_summary(progress), ""]
    for step in progress.steps:
        if step.is_complete:
            marker = "done"
        elif step.blocked:
            marker = "blocked"
        else:
            marker = f"{step.progress}%"
        lines.append(f"  {step.name}: {marker}")
        for task in step.tasks:
            check = "x" if task.done else " "
            suffix = " (optional)" if task.optional else ""
            lines.append(f"    [{check}] {task.name}{suffix}")
    if audit is not None and progress.next_step is not None:
        lines.append("")
        lines.append(f"Next step: {progress.next_step.name}")
        for action in actions_for_step(progress.next_step.id, audit):
            lines.append(f"  - {action['task_name']}")
    if kpi is not None:
        lines.append("")
        lines.append(f"KPI: {kpi.overall_score}/100 ({kpi.grade})")
        for rec in kpi.recommendations:
            lines.append(f"  [{rec.priority}] {rec.message}")
    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: SyncReport) -> dict:
    """Convert a report to a dict for MCP ``structuredContent`` output."""
    diff = report.diff
    data: dict = {
        "target": report.target,
        "operation": report.operation,
        "dry_run": report.dry_run,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "counts": {
            "created": report.created,
            "deleted": report.deleted,
            "matched": report.matched,
            "orphaned": report.orphaned,
            "failed": len(report.errors),
        },
        "missing": {
            "events": [e.event_name for e in diff.missing_remote.events],
            "variables": [v.remote_name for v in diff.missing_remote.variables],
        },
        "orphans": {
            "tags": [t.name for t in diff.orphan_remote.tags],
            "triggers": [t.name for t in diff.orphan_remote.triggers],
            "variables": [v.name for v in diff.orphan_remote.variables],
        },
        "errors": [e.model_dump(mode="json") for e in report.errors],
    }
    if report.result is not None:
        data["created"] = {
            "triggers": report.result.created_triggers,
            "tags": report.result.created_tags,
            "variables": report.result.created_variables,
            "skipped_tags": report.result.skipped_tags,
        }
    if report.cleanup is not None:
        data["deleted"] = {
            "tags": report.cleanup.deleted_tags,
            "triggers": report.cleanup.deleted_triggers,
            "variables": report.cleanup.deleted_variables,
        }
    return data


def publish_to_json(outcome: PublishOutcome) -> dict:
    return {
        "published": outcome.published,
        "dry_run": outcome.dry_run,
        "message": outcome.message,
        "version_id": outcome.version_id,
        "version_name": outcome.version_name,
        "previous_version_name": outcome.previous_version_name,
        "description": outcome.summary.description(),
        "changes": {
            kind.value: {
                "added": [e.name for e in changes.added],
                "modified": [e.name for e in changes.modified],
                "deleted": [e.name for e in changes.deleted],
            }
            for kind, changes in outcome.summary.by_kind().items()
        },
    }
