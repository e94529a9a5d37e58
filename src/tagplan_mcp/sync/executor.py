"""Apply a diff to the remote container workspace.

All mutating calls go through one path, ``SyncExecutor._call``: wait for the
rate limiter, issue the blocking client call off the event loop, and retry
on quota errors under the retry policy.  Calls are strictly sequential.

Failure policy per item:

- ``PermissionDeniedError`` aborts the whole run (retrying cannot help and
  every later call would fail the same way).
- Any other ``RemoteApiError``, including a quota error that outlived its
  retries, is recorded in the result and the batch moves on.

Nothing already created is rolled back; re-running after a partial failure
only retries what is still missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from ..core.client import TagManagerClient
from ..errors import PermissionDeniedError, RemoteApiError
from .models import (
    CleanupResult,
    Diff,
    ElementKind,
    OrphanSet,
    PlannedEvent,
    PlannedVariable,
    RemoteElement,
    SyncItemError,
    SyncResult,
)
from .ratelimit import RateLimiter, RetryPolicy, paced_call

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------


def trigger_payload(event: PlannedEvent) -> dict[str, Any]:
    """Custom-event trigger firing when ``{{_event}}`` equals the event name."""
    return {
        "name": event.trigger_name,
        "type": "customEvent",
        "customEventFilter": [
            {
                "type": "equals",
                "parameter": [
                    {"type": "template", "key": "arg0", "value": "{{_event}}"},
                    {"type": "template", "key": "arg1", "value": event.event_name},
                ],
            }
        ],
    }


def tag_payload(
    event: PlannedEvent, measurement_id: str, trigger_id: str
) -> dict[str, Any]:
    """GA4 event tag fired by *trigger_id*.

    Consolidated groups also forward their parameters, each read from its
    data-layer variable.
    """
    parameter: list[dict[str, Any]] = [
        {"type": "tagReference", "key": "measurementId", "value": measurement_id},
        {"type": "template", "key": "eventName", "value": event.event_name},
    ]
    if event.params:
        parameter.append(
            {
                "type": "list",
                "key": "eventParameters",
                "list": [
                    {
                        "type": "map",
                        "map": [
                            {"type": "template", "key": "name", "value": p},
                            {
                                "type": "template",
                                "key": "value",
                                "value": f"{{{{DLV - {p}}}}}",
                            },
                        ],
                    }
                    for p in event.params
                ],
            }
        )
    return {
        "name": event.tag_name,
        "type": "gaawe",
        "parameter": parameter,
        "firingTriggerId": [trigger_id],
    }


def variable_payload(variable: PlannedVariable) -> dict[str, Any]:
    """Data-layer variable (version 2) reading ``variable.datalayer_key``."""
    return {
        "name": variable.remote_name,
        "type": "v",
        "parameter": [
            {"type": "template", "key": "name", "value": variable.datalayer_key},
            {"type": "integer", "key": "dataLayerVersion", "value": "2"},
        ],
    }


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SyncOptions:
    """Per-run options.

    Attributes:
        measurement_id: Analytics measurement id for event tags.  Without
            one, events are created trigger-only.
        create_variables: Whether to create missing data-layer variables.
    """

    measurement_id: str | None = None
    create_variables: bool = True


class SyncExecutor:
    """Create missing elements and delete orphans, one call at a time.

    Args:
        client: Tag Manager REST client.
        workspace_path: ``accounts/../containers/../workspaces/..``.
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

    async def _call(
        self, description: str, func: Callable[..., Any], *args: Any
    ) -> Any:
        return await paced_call(
            self.limiter, self.retry, description, func, *args
        )

    @staticmethod
    def _item_error(
        kind: ElementKind, name: str, operation: str, error: RemoteApiError
    ) -> SyncItemError:
        logger.error("Failed to %s %s %r: %s", operation, kind.value, name, error)
        return SyncItemError(
            kind=kind,
            name=name,
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )

    # -- Creation -----------------------------------------------------------

    async def apply(
        self, diff: Diff, options: SyncOptions | None = None
    ) -> SyncResult:
        """Create what ``diff.missing_remote`` lists.

        Each event gets its trigger first, then a tag referencing the id
        the trigger was just issued.  Orphans are never touched here.

        Raises:
            PermissionDeniedError: On the first call the identity may not make.
        """
        options = options or SyncOptions()
        triggers: list[str] = []
        tags: list[str] = []
        variables: list[str] = []
        skipped: list[str] = []
        errors: list[SyncItemError] = []

        if diff.missing_remote.events and not options.measurement_id:
            logger.warning(
                "No measurement id known: creating triggers without event tags"
            )

        for event in diff.missing_remote.events:
            try:
                created = await self._call(
                    f"create trigger {event.trigger_name!r}",
                    self.client.create_trigger,
                    self.workspace_path,
                    trigger_payload(event),
                )
            except PermissionDeniedError:
                raise
            except RemoteApiError as e:
                errors.append(
                    self._item_error(ElementKind.TRIGGER, event.trigger_name, "create", e)
                )
                continue
            trigger_id = str(created.get("triggerId") or "")
            triggers.append(event.trigger_name)
            logger.info("Created trigger %r (id %s)", event.trigger_name, trigger_id)

            if not options.measurement_id:
                skipped.append(event.tag_name)
                continue
            if not trigger_id:
                errors.append(
                    SyncItemError(
                        kind=ElementKind.TAG,
                        name=event.tag_name,
                        operation="create",
                        error="Trigger was created but no trigger id was returned",
                        error_type="RemoteApiError",
                    )
                )
                continue
            try:
                await self._call(
                    f"create tag {event.tag_name!r}",
                    self.client.create_tag,
                    self.workspace_path,
                    tag_payload(event, options.measurement_id, trigger_id),
                )
            except PermissionDeniedError:
                raise
            except RemoteApiError as e:
                errors.append(
                    self._item_error(ElementKind.TAG, event.tag_name, "create", e)
                )
                continue
            tags.append(event.tag_name)
            logger.info("Created tag %r", event.tag_name)

        if options.create_variables:
            for var in diff.missing_remote.variables:
                try:
                    await self._call(
                        f"create variable {var.remote_name!r}",
                        self.client.create_variable,
                        self.workspace_path,
                        variable_payload(var),
                    )
                except PermissionDeniedError:
                    raise
                except RemoteApiError as e:
                    errors.append(
                        self._item_error(
                            ElementKind.VARIABLE, var.remote_name, "create", e
                        )
                    )
                    continue
                variables.append(var.remote_name)
                logger.info("Created variable %r", var.remote_name)

        return SyncResult(
            created_triggers=triggers,
            created_tags=tags,
            created_variables=variables,
            skipped_tags=skipped,
            errors=errors,
        )

    # -- Deletion -----------------------------------------------------------

    def _element_path(self, element: RemoteElement) -> str:
        if element.path:
            return element.path
        return f"{self.workspace_path}/{element.kind.value}s/{element.id}"

    async def cleanup(self, orphans: OrphanSet) -> CleanupResult:
        """Delete *orphans*: all tags, then all triggers, then all variables.

        A tag may reference a trigger, so the referencing side goes first.

        Raises:
            PermissionDeniedError: On the first call the identity may not make.
        """
        deleters = {
            ElementKind.TAG: self.client.delete_tag,
            ElementKind.TRIGGER: self.client.delete_trigger,
            ElementKind.VARIABLE: self.client.delete_variable,
        }
        deleted: dict[ElementKind, list[str]] = {kind: [] for kind in deleters}
        errors: list[SyncItemError] = []

        for kind, elements in (
            (ElementKind.TAG, orphans.tags),
            (ElementKind.TRIGGER, orphans.triggers),
            (ElementKind.VARIABLE, orphans.variables),
        ):
            for element in elements:
                try:
                    await self._call(
                        f"delete {kind.value} {element.name!r}",
                        deleters[kind],
                        self._element_path(element),
                    )
                except PermissionDeniedError:
                    raise
                except RemoteApiError as e:
                    errors.append(self._item_error(kind, element.name, "delete", e))
                    continue
                deleted[kind].append(element.name)
                logger.info("Deleted %s %r", kind.value, element.name)

        return CleanupResult(
            deleted_tags=deleted[ElementKind.TAG],
            deleted_triggers=deleted[ElementKind.TRIGGER],
            deleted_variables=deleted[ElementKind.VARIABLE],
            errors=errors,
        )
