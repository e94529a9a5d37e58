"""Sync engine: orchestrates one preview, sync, clean or publish run.

Every run follows the same order:

1. Local prerequisites (project marker, tracking plan).  Failures here are
   fatal and happen before any remote call.
2. Fresh read of the remote workspace (never cached across runs).
3. Comparison of plan and workspace.
4. The mutation the caller asked for, if any.

A plain sync only creates what is missing; orphans are deleted only by an
explicit clean.  Nothing is rolled back on partial failure: the comparison
is identity based, so re-running retries only what is still missing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from ..config import Config
from ..core.async_utils import Sleeper, gather_all
from ..core.client import TagManagerClient
from ..errors import PrerequisiteError
from ..plan.models import TrackingPlan
from ..plan.prerequisites import SyncInputs, require_sync_prerequisites
from ..plan.project import INIT_STEP, ProjectMarker, ProjectMarkerStore
from .comparator import (
    DEFAULT_PROTECTED,
    NameMatching,
    StateComparator,
    planned_events,
)
from .executor import SyncExecutor, SyncOptions
from .models import ChangeSummary, Diff, PublishOutcome, RemoteContainerState, SyncReport
from .publisher import VersionPublisher
from .ratelimit import RateLimiter, RetryPolicy
from .remote import (
    fetch_container_state,
    fetch_last_published,
    fetch_workspace_state,
    find_container,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def resolve_target(
    target: str | None,
    marker: ProjectMarker | None,
    plan: TrackingPlan | None,
) -> str:
    """Pick the container designator: explicit target, then the ids and
    domain the project recorded.

    Raises:
        PrerequisiteError: If nothing designates a container.
    """
    project = plan.project if plan else None
    for candidate in (
        target,
        marker.gtm_container_id if marker else None,
        project.gtm_container_id if project else None,
        marker.domain if marker else None,
        project.domain if project else None,
    ):
        if candidate and candidate.strip():
            return candidate.strip()
    raise PrerequisiteError(
        "No target container: pass a domain or GTM-XXXX id, or run "
        f"'{INIT_STEP}' to record one.",
        step=INIT_STEP,
    )


class SyncEngine:
    """Reconcile a project's tracking plan with its tag container.

    Args:
        config: Runtime configuration.
        client: Tag Manager REST client.
        marker_store: Project marker store (default: from *config*).
        sleep: Awaitable sleep used for pacing and back-off.
        clock: Monotonic clock used for pacing.
    """

    def __init__(
        self,
        config: Config,
        client: TagManagerClient,
        *,
        marker_store: ProjectMarkerStore | None = None,
        sleep: Sleeper = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.client = client
        self.marker_store = marker_store or ProjectMarkerStore(
            config.project_dir, config.marker_file
        )
        protected = DEFAULT_PROTECTED.extended(
            triggers=config.protected_triggers,
            tags=config.protected_tags,
            variables=config.protected_variables,
        )
        self.comparator = StateComparator(
            NameMatching(config.name_matching), protected
        )
        # One limiter per engine: pacing spans every mutating call of a run
        self.limiter = RateLimiter(
            config.api_delay_seconds, clock=clock, sleep=sleep
        )
        self.retry = RetryPolicy(
            max_attempts=config.quota_max_attempts,
            backoff_seconds=config.quota_backoff_seconds,
            sleep=sleep,
        )

    # ------------------------------------------------------------------
    # Local inputs
    # ------------------------------------------------------------------

    def _inputs(self) -> SyncInputs:
        return require_sync_prerequisites(
            self.config.project_dir,
            self.config.plan_path,
            marker_store=self.marker_store,
        )

    def _account_id(self, marker: ProjectMarker | None) -> str:
        account_id = self.config.gtm_account_id or (
            marker.gtm_account_id if marker else None
        )
        if not account_id:
            raise PrerequisiteError(
                "Tag Manager account id not configured. Set "
                "TAGPLAN_GTM_ACCOUNT_ID or add google.gtm_account_id to "
                ".tagplan/config.yml.",
                step=INIT_STEP,
            )
        return account_id

    def _measurement_id(
        self,
        override: str | None,
        marker: ProjectMarker | None,
        plan: TrackingPlan,
    ) -> str | None:
        return (
            override
            or (marker.ga4_measurement_id if marker else None)
            or plan.measurement_id
        )

    async def _remote(
        self, inputs: SyncInputs, target: str | None
    ) -> tuple[str, RemoteContainerState]:
        resolved = resolve_target(target, inputs.marker, inputs.plan)
        account_id = self._account_id(inputs.marker)
        remote = await fetch_container_state(self.client, account_id, resolved)
        return resolved, remote

    def _remember(
        self, remote: RemoteContainerState, measurement_id: str | None
    ) -> None:
        self.marker_store.remember_ids(
            gtm_account_id=remote.account_id,
            gtm_container_id=remote.public_id,
            ga4_measurement_id=measurement_id,
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def diff(self, target: str | None = None) -> tuple[str, Diff]:
        """Compare the plan with the remote workspace, read-only."""
        inputs = self._inputs()
        resolved, remote = await self._remote(inputs, target)
        return resolved, self.comparator.compare(inputs.plan, remote)

    async def preview(self, target: str | None = None) -> SyncReport:
        started_at = _now()
        resolved, diff = await self.diff(target)
        return SyncReport(
            target=resolved,
            operation="preview",
            dry_run=True,
            diff=diff,
            started_at=started_at,
            completed_at=_now(),
        )

    async def sync(
        self,
        target: str | None = None,
        *,
        dry_run: bool = False,
        measurement_id: str | None = None,
    ) -> SyncReport:
        """Create the triggers, tags and variables the container lacks.

        Raises:
            PrerequisiteError: Missing plan, marker data or account id.
            PlanParseError: The plan is not valid YAML.
            PermissionDeniedError: The identity may not edit the container.
        """
        started_at = _now()
        inputs = self._inputs()
        resolved, remote = await self._remote(inputs, target)
        diff = self.comparator.compare(inputs.plan, remote)
        logger.info(
            "%s: %d to create, %d in sync, %d orphaned",
            resolved,
            len(diff.missing_remote),
            len(diff.synced),
            len(diff.orphan_remote),
        )
        if dry_run or diff.in_sync:
            return SyncReport(
                target=resolved,
                operation="sync",
                dry_run=dry_run,
                diff=diff,
                started_at=started_at,
                completed_at=_now(),
            )

        mid = self._measurement_id(measurement_id, inputs.marker, inputs.plan)
        executor = SyncExecutor(
            self.client,
            remote.workspace_path,
            limiter=self.limiter,
            retry=self.retry,
        )
        result = await executor.apply(diff, SyncOptions(measurement_id=mid))
        self._remember(remote, mid)
        logger.info(
            "%s: created %d element(s), %d error(s)",
            resolved,
            result.created_count,
            len(result.errors),
        )
        return SyncReport(
            target=resolved,
            operation="sync",
            diff=diff,
            result=result,
            started_at=started_at,
            completed_at=_now(),
        )

    async def clean(
        self, target: str | None = None, *, dry_run: bool = True
    ) -> SyncReport:
        """Delete remote user-managed elements the plan does not know.

        Refuses to run against a plan with no enabled event, which would
        make every remote element an orphan.
        """
        started_at = _now()
        inputs = self._inputs()
        if not planned_events(inputs.plan):
            raise PrerequisiteError(
                f"{inputs.plan_path} has no enabled event; refusing to treat "
                "every remote element as an orphan.",
                step="autoedit",
                details={"path": str(inputs.plan_path)},
            )
        resolved, remote = await self._remote(inputs, target)
        diff = self.comparator.compare(inputs.plan, remote)
        if dry_run or not len(diff.orphan_remote):
            return SyncReport(
                target=resolved,
                operation="clean",
                dry_run=dry_run,
                diff=diff,
                started_at=started_at,
                completed_at=_now(),
            )

        executor = SyncExecutor(
            self.client,
            remote.workspace_path,
            limiter=self.limiter,
            retry=self.retry,
        )
        cleanup = await executor.cleanup(diff.orphan_remote)
        logger.info(
            "%s: deleted %d element(s), %d error(s)",
            resolved,
            cleanup.deleted_count,
            len(cleanup.errors),
        )
        return SyncReport(
            target=resolved,
            operation="clean",
            diff=diff,
            cleanup=cleanup,
            started_at=started_at,
            completed_at=_now(),
        )

    async def changes(
        self, target: str | None = None
    ) -> tuple[VersionPublisher, ChangeSummary, str | None]:
        """Diff the workspace against the last published version."""
        marker = self.marker_store.load_optional()
        plan = None
        if self.config.plan_path.is_file():
            plan = self._inputs().plan
        resolved = resolve_target(target, marker, plan)
        account_id = self._account_id(marker)

        container = await find_container(self.client, account_id, resolved)
        draft, published = await gather_all(
            [
                fetch_workspace_state(self.client, account_id, container),
                fetch_last_published(self.client, container["path"]),
            ]
        )
        publisher = VersionPublisher(
            self.client,
            draft.workspace_path,
            limiter=self.limiter,
            retry=self.retry,
        )
        summary = publisher.diff(draft, published)
        return publisher, summary, published.name if published else None

    async def publish(
        self, target: str | None = None, *, dry_run: bool = False
    ) -> PublishOutcome:
        """Publish the workspace as the next version, unless unchanged.

        The plan is optional here: publishing only needs the container.
        """
        publisher, summary, previous = await self.changes(target)
        return await publisher.publish(
            summary, previous_version_name=previous, dry_run=dry_run
        )
