"""MCP tool handlers for tracking-plan reconciliation.

Defines the tracking tools:

- ``tracking_status`` -- audit a domain: deployment progress, next actions and KPI.
- ``tracking_diff`` -- read-only plan vs. container comparison.
- ``tracking_sync`` -- create what the container lacks.
- ``tracking_clean`` -- delete orphaned user-managed elements.
- ``tracking_publish`` -- publish the workspace as a new version.
- ``tracking_plan_merge`` -- merge a regenerated plan into the saved one.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import mcp.types as types

from ...audit import Auditor
from ...file_handler import read_file_with_encoding
from ...plan.store import merge_into, parse_plan, validate_plan
from ...progress.completion import actions_for_step
from ...sync.engine import SyncEngine
from ...sync.reporter import (
    format_diff_preview,
    format_progress_report,
    format_publish_outcome,
    format_sync_report,
    publish_to_json,
    report_to_json,
)
from .errors import build_error_response
from .registry import DELETE, EDIT, PUBLISH, READ, ServerContext, ToolSpec

logger = logging.getLogger(__name__)

_TARGET_PROPERTY = {
    "type": "string",
    "description": (
        "Domain (example.com) or container public id (GTM-XXXX). "
        "Defaults to the id recorded in the project marker."
    ),
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _engine(context: ServerContext) -> SyncEngine:
    return SyncEngine(context.config, context.services.tagmanager)


def _result(text: str, structured: dict[str, Any]) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_status(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_status`` tool."""
    domain = (args.get("domain") or "").strip()
    if not domain:
        return build_error_response(
            "validation_error",
            "domain is required",
            "Provide the 'domain' parameter, e.g. example.com.",
        )
    auditor = Auditor(
        context.services,
        context.config.gtm_account_id,
        context.config.ga4_account_id,
        http_session=context.services.session,
    )
    result = await auditor.audit(domain)
    text = format_progress_report(result.progress, result.kpi, result.snapshot)
    next_step = result.progress.next_step
    return _result(
        text,
        {
            "domain": domain,
            "global_progress": result.progress.global_progress,
            "next_step": next_step.id if next_step else None,
            "next_actions": actions_for_step(next_step.id, result.snapshot)
            if next_step
            else [],
            "kpi": result.kpi.model_dump(mode="json"),
            "snapshot": result.snapshot,
            "duration_seconds": result.duration_seconds,
        },
    )


async def _handle_diff(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_diff`` tool."""
    report = await _engine(context).preview(args.get("target"))
    return _result(
        format_diff_preview(report.diff, report.target), report_to_json(report)
    )


async def _handle_sync(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_sync`` tool.

    Without ``auto_confirm`` this is a preview; nothing is created.
    """
    auto_confirm = bool(args.get("auto_confirm", False))
    report = await _engine(context).sync(
        args.get("target"),
        dry_run=not auto_confirm,
        measurement_id=args.get("measurement_id"),
    )
    text = format_sync_report(report)
    if not auto_confirm and not report.diff.in_sync:
        text += "\n\nCall tracking_sync again with auto_confirm=true to apply."
    return _result(text, report_to_json(report))


async def _handle_clean(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_clean`` tool."""
    dry_run = bool(args.get("dry_run", True))
    report = await _engine(context).clean(args.get("target"), dry_run=dry_run)
    return _result(format_sync_report(report), report_to_json(report))


async def _handle_publish(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_publish`` tool."""
    outcome = await _engine(context).publish(
        args.get("target"), dry_run=bool(args.get("dry_run", False))
    )
    return _result(format_publish_outcome(outcome), publish_to_json(outcome))


async def _handle_plan_merge(
    context: ServerContext, args: dict[str, Any]
) -> types.CallToolResult:
    """Handle the ``tracking_plan_merge`` tool."""
    incoming_path = args.get("incoming_path")
    if not incoming_path:
        return build_error_response(
            "validation_error",
            "incoming_path is required",
            "Provide the path of the regenerated tracking plan YAML.",
        )
    path = Path(incoming_path)
    if not path.is_absolute():
        path = context.config.project_dir / path
    if not path.is_file():
        return build_error_response(
            "not_found",
            f"File not found: {path}",
            "Check the path of the regenerated plan.",
        )

    content, _ = read_file_with_encoding(path)
    incoming = parse_plan(content, source=str(path))
    merged = merge_into(context.config.plan_path, incoming)
    validation = validate_plan(merged)

    info = merged.merge_info
    lines = [f"Merged {path} into {context.config.plan_path}"]
    if info is not None:
        lines.append(
            f"  merge #{info.merge_count}: events {info.previous_events_count}"
            f" -> {len(merged.events)}, groups {info.previous_groups_count}"
            f" -> {len(merged.consolidated_events)}"
        )
    for error in validation.errors:
        lines.append(f"  error: {error}")
    for warning in validation.warnings:
        lines.append(f"  warning: {warning}")

    return _result(
        "\n".join(lines),
        {
            "plan_path": str(context.config.plan_path),
            "merge_info": info.model_dump(mode="json") if info else None,
            "validation": validation.to_dict(),
        },
    )


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------


TRACKING_SPECS: list[ToolSpec] = [
    ToolSpec(
        tool=types.Tool(
            name="tracking_status",
            description=(
                "Audit a domain's tracking stack (tag container, analytics "
                "property, search indexing, behaviour recording) and return "
                "deployment progress, the next step and a KPI score."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "domain": {
                        "type": "string",
                        "description": "Site domain, e.g. example.com",
                    },
                },
                "required": ["domain"],
            },
        ),
        permissions=frozenset({READ}),
        handler=_handle_status,
    ),
    ToolSpec(
        tool=types.Tool(
            name="tracking_diff",
            description=(
                "Compare the local tracking plan with the tag container: "
                "what is missing remotely, what is in sync and what is "
                "orphaned. Read-only."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=True,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {"target": _TARGET_PROPERTY},
                "required": [],
            },
        ),
        permissions=frozenset({READ}),
        handler=_handle_diff,
    ),
    ToolSpec(
        tool=types.Tool(
            name="tracking_sync",
            description=(
                "Create the triggers, tags and variables the plan needs and "
                "the container lacks. Never deletes. Returns a preview "
                "unless auto_confirm is true."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "target": _TARGET_PROPERTY,
                    "auto_confirm": {
                        "type": "boolean",
                        "default": False,
                        "description": "Apply the changes instead of previewing them",
                    },
                    "measurement_id": {
                        "type": "string",
                        "description": "GA4 measurement id (G-XXXX) for created tags",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({READ, EDIT}),
        handler=_handle_sync,
    ),
    ToolSpec(
        tool=types.Tool(
            name="tracking_clean",
            description=(
                "Delete user-managed tags, triggers and variables that the "
                "plan no longer references. Built-in and protected elements "
                "are never touched. Dry run by default."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=True,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "target": _TARGET_PROPERTY,
                    "dry_run": {
                        "type": "boolean",
                        "default": True,
                        "description": "List orphans without deleting them",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({READ, EDIT, DELETE}),
        handler=_handle_clean,
    ),
    ToolSpec(
        tool=types.Tool(
            name="tracking_publish",
            description=(
                "Publish the container workspace as a new version when it "
                "differs from the last published version."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=True,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "target": _TARGET_PROPERTY,
                    "dry_run": {
                        "type": "boolean",
                        "default": False,
                        "description": "Show the change summary without publishing",
                    },
                },
                "required": [],
            },
        ),
        permissions=frozenset({READ, PUBLISH}),
        handler=_handle_publish,
    ),
    ToolSpec(
        tool=types.Tool(
            name="tracking_plan_merge",
            description=(
                "Merge a regenerated tracking plan into the saved plan, "
                "keeping human edits (enabled flags, renamed triggers) and "
                "recording what was kept, added and removed."
            ),
            annotations=types.ToolAnnotations(
                readOnlyHint=False,
                destructiveHint=False,
                idempotentHint=True,
                openWorldHint=False,
            ),
            inputSchema={
                "type": "object",
                "properties": {
                    "incoming_path": {
                        "type": "string",
                        "description": (
                            "Regenerated plan YAML, absolute or relative to "
                            "the project root"
                        ),
                    },
                },
                "required": ["incoming_path"],
            },
        ),
        permissions=frozenset({EDIT}),
        handler=_handle_plan_merge,
    ),
]
