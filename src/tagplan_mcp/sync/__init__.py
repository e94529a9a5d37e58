"""Plan-to-container reconciliation.

Modules:

- ``models``     -- Pydantic models of remote state, diffs and outcomes.
- ``remote``     -- container lookup and workspace / version reads.
- ``comparator`` -- ``StateComparator``: plan vs. workspace diff.
- ``ratelimit``  -- call pacing and quota retry.
- ``executor``   -- ``SyncExecutor``: create missing, delete orphans.
- ``publisher``  -- ``VersionPublisher``: version diff and publish.
- ``engine``     -- ``SyncEngine``: one full run per operation.
- ``reporter``   -- text and JSON rendering of results.
"""

from .comparator import (
    DEFAULT_PROTECTED,
    NameMatching,
    ProtectedNames,
    StateComparator,
    compare,
    names_match,
    planned_events,
    planned_variables,
)
from .engine import SyncEngine, resolve_target
from .executor import SyncExecutor, SyncOptions
from .models import (
    ChangeSummary,
    CleanupResult,
    Diff,
    ElementKind,
    PublishOutcome,
    RemoteContainerState,
    RemoteElement,
    SyncReport,
    SyncResult,
    VersionSnapshot,
)
from .publisher import VersionPublisher, diff_snapshots, increment_version
from .ratelimit import RateLimiter, RetryPolicy
from .reporter import (
    format_change_summary,
    format_diff_preview,
    format_progress_report,
    format_publish_outcome,
    format_sync_report,
    publish_to_json,
    report_to_json,
)

__all__ = [
    "DEFAULT_PROTECTED",
    "ChangeSummary",
    "CleanupResult",
    "Diff",
    "ElementKind",
    "NameMatching",
    "ProtectedNames",
    "PublishOutcome",
    "RateLimiter",
    "RemoteContainerState",
    "RemoteElement",
    "RetryPolicy",
    "StateComparator",
    "SyncEngine",
    "SyncExecutor",
    "SyncOptions",
    "SyncReport",
    "SyncResult",
    "VersionPublisher",
    "VersionSnapshot",
    "compare",
    "diff_snapshots",
    "format_change_summary",
    "format_diff_preview",
    "format_progress_report",
    "format_publish_outcome",
    "format_sync_report",
    "increment_version",
    "names_match",
    "planned_events",
    "planned_variables",
    "publish_to_json",
    "report_to_json",
    "resolve_target",
]
