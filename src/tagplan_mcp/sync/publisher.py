"""Snapshot the workspace into a new container version and publish it.

Publication is refused when the draft equals the last published version:
no version is created, no call is made and the version number does not
move.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence

from ..core.client import TagManagerClient
from ..errors import ConflictError
from .models import (
    ChangeSummary,
    ElementChanges,
    PublishOutcome,
    RemoteContainerState,
    RemoteElement,
    VersionSnapshot,
)
from .ratelimit import RateLimiter, RetryPolicy, paced_call

logger = logging.getLogger(__name__)

INITIAL_VERSION_NAME = "v1.0.0"
FALLBACK_NEXT_VERSION = "v1.0.1"

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)\.(\d+)")


def increment_version(name: str | None) -> str:
    """Bump the patch number: ``v1.0.2`` -> ``v1.0.3``.

    Names without a three-part number restart at ``v1.0.1``.
    """
    match = _VERSION_RE.search(name or "")
    if not match:
        return FALLBACK_NEXT_VERSION
    major, minor, patch = match.groups()
    return f"v{int(major)}.{int(minor)}.{int(patch) + 1}"


def _element_changes(
    current: Sequence[RemoteElement], previous: Sequence[RemoteElement]
) -> ElementChanges:
    before = {e.id: e for e in previous}
    after = {e.id: e for e in current}
    return ElementChanges(
        added=[e for e in current if e.id not in before],
        modified=[
            e
            for e in current
            if e.id in before and before[e.id].fingerprint != e.fingerprint
        ],
        deleted=[e for e in previous if e.id not in after],
    )


def diff_snapshots(
    draft: RemoteContainerState | VersionSnapshot,
    published: VersionSnapshot | None,
) -> ChangeSummary:
    """Partition each element kind into added, modified and deleted.

    Elements are matched by stable id; "modified" means the fingerprint
    differs.  With no published version, everything in the draft is added.
    """
    return ChangeSummary(
        tags=_element_changes(draft.tags, published.tags if published else []),
        triggers=_element_changes(
            draft.triggers, published.triggers if published else []
        ),
        variables=_element_changes(
            draft.variables, published.variables if published else []
        ),
    )


class VersionPublisher:
    """Create and publish container versions.

    Args:
        client: Tag Manager REST client.
        workspace_path: Workspace to snapshot.
        limiter: Minimum spacing between calls.
        retry: Quota retry policy.
    """

    def __init__(
        self,
        client: TagManagerClient,
        workspace_path: str,
        *,
        limiter: RateLimiter | None = None,
        retry: RetryPolicy | None = None,
    ) -> None:
        self.client = client
        self.workspace_path = workspace_path
        self.limiter = limiter or RateLimiter()
        self.retry = retry or RetryPolicy()

    def diff(
        self,
        draft: RemoteContainerState,
        last_published: VersionSnapshot | None,
    ) -> ChangeSummary:
        return diff_snapshots(draft, last_published)

    async def publish(
        self,
        summary: ChangeSummary,
        *,
        previous_version_name: str | None = None,
        dry_run: bool = False,
        notes_prefix: str = "Published by tagplan",
    ) -> PublishOutcome:
        """Publish the workspace as the next version.

        Args:
            summary: Result of ``diff``; an empty summary is a no-op.
            previous_version_name: Name of the last published version.
            dry_run: Compute the next name without creating anything.
            notes_prefix: First line of the version notes.

        Raises:
            ConflictError: The workspace could not be snapshotted (merge
                conflicts or compiler errors).
        """
        previous = previous_version_name or INITIAL_VERSION_NAME
        if summary.is_empty:
            logger.info("Nothing to publish: no changes since %s", previous)
            return PublishOutcome(
                published=False,
                message=f"Nothing to publish: no changes since {previous}",
                summary=summary,
                previous_version_name=previous,
                dry_run=dry_run,
            )

        next_name = increment_version(previous)
        description = summary.description()
        if dry_run:
            return PublishOutcome(
                published=False,
                message=f"Would publish {next_name} ({description})",
                summary=summary,
                version_name=next_name,
                previous_version_name=previous,
                dry_run=True,
            )

        notes = f"{notes_prefix}\n\nChanges: {description}"
        response = await paced_call(
            self.limiter,
            self.retry,
            f"create version {next_name}",
            self.client.create_version,
            self.workspace_path,
            next_name,
            notes,
        )
        version = response.get("containerVersion")
        if not version:
            raise ConflictError(
                f"Version {next_name} could not be created: the workspace has "
                "conflicts or compiler errors. Resolve them in the Tag Manager "
                "UI and retry.",
                details={
                    key: response[key]
                    for key in ("syncStatus", "compilerError")
                    if key in response
                },
            )
        logger.info("Created version %s", next_name)

        await paced_call(
            self.limiter,
            self.retry,
            f"publish version {next_name}",
            self.client.publish_version,
            version["path"],
        )
        logger.info("Published version %s (%s)", next_name, description)
        return PublishOutcome(
            published=True,
            message=f"Published {next_name} ({description})",
            summary=summary,
            version_id=str(version.get("containerVersionId", "")) or None,
            version_name=next_name,
            previous_version_name=previous,
        )
