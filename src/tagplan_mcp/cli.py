"""``tagplan`` command-line entry point.

Commands:
    sync TARGET [--yes]                 create what the container lacks
    clean TARGET [--dry-run] [--force]  delete orphaned elements
    publish TARGET [--dry-run]          publish the workspace
    status TARGET                       audit progress and KPI
    merge INCOMING                      merge a regenerated plan

TARGET is a domain or a ``GTM-XXXX`` public id.  Exit status is 0 on
success, 1 when the run failed or recorded per-element errors.  Nothing is
rolled back: re-running applies only what is still missing.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from . import __version__
from .audit import Auditor
from .config import Config, load_config
from .config_loader import load_hierarchical_config
from .config_schema import build_config, yaml_fallbacks
from .core.auth import GoogleServices, authorized_session
from .errors import TagPlanError
from .file_handler import read_file_with_encoding
from .logger import setup_logging
from .plan.store import merge_into, parse_plan, validate_plan
from .sync.engine import SyncEngine
from .sync.reporter import (
    format_progress_report,
    format_publish_outcome,
    format_sync_report,
)

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagplan",
        description="Keep a Tag Manager container in line with a tracking plan",
    )
    parser.add_argument("--credentials", help="Service-account JSON key")
    parser.add_argument("--gtm-account", help="Tag Manager account id")
    parser.add_argument("--ga4-account", help="Analytics account id")
    parser.add_argument(
        "--project-dir",
        type=Path,
        help="Root of the tracked project (default: current directory)",
    )
    parser.add_argument("--debug", action="store_true", help="Debug logging")
    parser.add_argument("--log-file", help="Also log to this file")
    parser.add_argument(
        "--version", action="version", version=f"tagplan {__version__}"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("sync", help="Create missing triggers, tags and variables")
    p.add_argument("target", nargs="?", help="Domain or GTM-XXXX id")
    p.add_argument(
        "-y", "--yes", action="store_true", help="Apply without confirmation"
    )
    p.add_argument("--measurement-id", help="GA4 measurement id for new tags")

    p = sub.add_parser("clean", help="Delete elements the plan no longer uses")
    p.add_argument("target", nargs="?", help="Domain or GTM-XXXX id")
    p.add_argument(
        "--dry-run", action="store_true", help="List orphans only"
    )
    p.add_argument(
        "--force", action="store_true", help="Delete without confirmation"
    )

    p = sub.add_parser("publish", help="Publish the workspace as a new version")
    p.add_argument("target", nargs="?", help="Domain or GTM-XXXX id")
    p.add_argument(
        "--dry-run", action="store_true", help="Show the change summary only"
    )

    p = sub.add_parser("status", help="Audit deployment progress and KPI")
    p.add_argument("target", help="Domain")

    p = sub.add_parser("merge", help="Merge a regenerated plan into the saved one")
    p.add_argument("incoming", type=Path, help="Regenerated plan YAML")

    return parser


def _load_config(args: argparse.Namespace) -> Config:
    load_dotenv()
    fallbacks = yaml_fallbacks(build_config(load_hierarchical_config()))
    return load_config(
        credentials_file=args.credentials,
        gtm_account_id=args.gtm_account,
        ga4_account_id=args.ga4_account,
        debug=args.debug,
        project_dir=args.project_dir,
        yaml_fallbacks=fallbacks,
    )


def _services(config: Config) -> GoogleServices:
    return GoogleServices.from_session(authorized_session(config.credentials_file))


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _sync(args: argparse.Namespace, engine: SyncEngine) -> int:
    if not args.yes:
        preview = await engine.sync(
            args.target, dry_run=True, measurement_id=args.measurement_id
        )
        print(format_sync_report(preview))
        if preview.diff.in_sync:
            return 0
        if not _confirm("Apply these changes?"):
            print("Aborted.")
            return 0
    report = await engine.sync(args.target, measurement_id=args.measurement_id)
    print(format_sync_report(report))
    return 1 if report.errors else 0


async def _clean(args: argparse.Namespace, engine: SyncEngine) -> int:
    preview = await engine.clean(args.target, dry_run=True)
    print(format_sync_report(preview))
    if args.dry_run or not len(preview.diff.orphan_remote):
        return 0
    if not args.force and not _confirm("Delete these elements?"):
        print("Aborted.")
        return 0
    report = await engine.clean(args.target, dry_run=False)
    print(format_sync_report(report))
    return 1 if report.errors else 0


async def _publish(args: argparse.Namespace, engine: SyncEngine) -> int:
    outcome = await engine.publish(args.target, dry_run=args.dry_run)
    print(format_publish_outcome(outcome))
    return 0


async def _status(args: argparse.Namespace, config: Config, services: GoogleServices) -> int:
    auditor = Auditor(
        services,
        config.gtm_account_id,
        config.ga4_account_id,
        http_session=services.session,
    )
    result = await auditor.audit(args.target)
    print(format_progress_report(result.progress, result.kpi, result.snapshot))
    return 0


def _merge(args: argparse.Namespace, config: Config) -> int:
    incoming_path = args.incoming
    if not incoming_path.is_file():
        print(f"Error: file not found: {incoming_path}", file=sys.stderr)
        return 1
    content, _ = read_file_with_encoding(incoming_path)
    merged = merge_into(
        config.plan_path, parse_plan(content, source=str(incoming_path))
    )
    validation = validate_plan(merged)
    print(
        f"Merged {incoming_path} into {config.plan_path}: "
        f"{len(merged.events)} events, {len(merged.consolidated_events)} groups"
    )
    for warning in validation.warnings:
        print(f"  warning: {warning}")
    for error in validation.errors:
        print(f"  error: {error}")
    return 1 if validation.errors else 0


async def _run(args: argparse.Namespace, config: Config) -> int:
    services = _services(config)
    try:
        if args.command == "status":
            return await _status(args, config, services)
        engine = SyncEngine(config, services.tagmanager)
        match args.command:
            case "sync":
                return await _sync(args, engine)
            case "clean":
                return await _clean(args, engine)
            case "publish":
                return await _publish(args, engine)
            case _:
                raise ValueError(f"Unknown command: {args.command}")
    finally:
        services.session.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(mode="cli", debug=args.debug, log_file=args.log_file)

    try:
        config = _load_config(args)
        if args.command == "merge":
            return _merge(args, config)
        return asyncio.run(_run(args, config))
    except TagPlanError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        step = getattr(e, "step", None)
        if step:
            print(f"Run the '{step}' step first.", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
