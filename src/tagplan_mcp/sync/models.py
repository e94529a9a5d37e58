"""Pydantic models for the reconciliation engine.

Defines the data contracts passed between the sync modules:

- ``RemoteElement`` / ``RemoteContainerState``: a fresh snapshot of the
  container workspace.
- ``PlannedEvent`` / ``PlannedVariable``: what the local plan asks for.
- ``Diff``: missing, synced and orphaned elements.
- ``SyncResult`` / ``CleanupResult``: outcome of applying a diff.
- ``VersionSnapshot`` / ``ChangeSummary`` / ``PublishOutcome``: version
  diff and publication.
- ``SyncReport``: everything one run reports.

All models are frozen (immutable) for safety.
"""

from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Server-assigned fields that do not describe an element's content
_DYNAMIC_FIELDS = frozenset(
    {
        "accountId",
        "containerId",
        "workspaceId",
        "path",
        "fingerprint",
        "tagId",
        "triggerId",
        "variableId",
        "tagManagerUrl",
        "parentFolderId",
    }
)


class ElementKind(str, Enum):
    """Kinds of workspace elements the engine manages."""

    TAG = "tag"
    TRIGGER = "trigger"
    VARIABLE = "variable"

    @property
    def id_field(self) -> str:
        return f"{self.value}Id"


def content_fingerprint(data: dict[str, Any]) -> str:
    """SHA-256 of an element's content, ignoring server-assigned fields.

    Used when the API response carries no ``fingerprint``.
    """
    content = {k: v for k, v in data.items() if k not in _DYNAMIC_FIELDS}
    encoded = json.dumps(content, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _parameter_value(data: dict[str, Any], key: str) -> str | None:
    for param in data.get("parameter") or []:
        if isinstance(param, dict) and param.get("key") == key:
            value = param.get("value")
            return str(value) if value is not None else None
    return None


# ---------------------------------------------------------------------------
# Remote state
# ---------------------------------------------------------------------------


class RemoteElement(BaseModel):
    """One tag, trigger or variable of the remote workspace.

    Attributes:
        kind: Element kind.
        id: Stable id (``tagId``, ``triggerId`` or ``variableId``).
        name: Free-text display name.
        type: API type code (``customEvent``, ``gaawe``, ``v``, ...).
        fingerprint: Opaque content hash; changes when the element changes.
        path: API resource path, used for deletion.
        datalayer_key: For data-layer variables, the key they read.
    """

    kind: ElementKind
    id: str
    name: str
    type: str
    fingerprint: str | None = None
    path: str | None = None
    datalayer_key: str | None = None

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, kind: ElementKind, data: dict[str, Any]) -> RemoteElement:
        return cls(
            kind=kind,
            id=str(data.get(kind.id_field, "")),
            name=data.get("name", ""),
            type=data.get("type", ""),
            fingerprint=data.get("fingerprint") or content_fingerprint(data),
            path=data.get("path"),
            datalayer_key=_parameter_value(data, "name")
            if kind is ElementKind.VARIABLE
            else None,
        )


class RemoteContainerState(BaseModel):
    """Snapshot of one container workspace, read fresh for every run."""

    account_id: str
    container_id: str
    container_path: str
    workspace_path: str
    public_id: str | None = None
    container_name: str | None = None
    tags: list[RemoteElement] = []
    triggers: list[RemoteElement] = []
    variables: list[RemoteElement] = []

    model_config = {"frozen": True}

    def elements(self, kind: ElementKind) -> list[RemoteElement]:
        match kind:
            case ElementKind.TAG:
                return self.tags
            case ElementKind.TRIGGER:
                return self.triggers
            case ElementKind.VARIABLE:
                return self.variables


class VersionSnapshot(BaseModel):
    """Elements of one container version (usually the last published)."""

    version_id: str
    name: str
    path: str | None = None
    tags: list[RemoteElement] = []
    triggers: list[RemoteElement] = []
    variables: list[RemoteElement] = []

    model_config = {"frozen": True}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> VersionSnapshot:
        version_id = str(data.get("containerVersionId", ""))
        return cls(
            version_id=version_id,
            name=data.get("name") or f"v1.0.{version_id}",
            path=data.get("path"),
            tags=[
                RemoteElement.from_api(ElementKind.TAG, t)
                for t in data.get("tag") or []
            ],
            triggers=[
                RemoteElement.from_api(ElementKind.TRIGGER, t)
                for t in data.get("trigger") or []
            ],
            variables=[
                RemoteElement.from_api(ElementKind.VARIABLE, v)
                for v in data.get("variable") or []
            ],
        )


# ---------------------------------------------------------------------------
# Local intent
# ---------------------------------------------------------------------------


class PlannedEvent(BaseModel):
    """An enabled event or consolidated group, as the executor needs it.

    Attributes:
        source_id: Plan id of the event or group.
        event_name: Data-layer event name (what the trigger listens for).
        params: Parameter names attached to the tag (groups only).
        is_group: True for consolidated groups.
        trigger_name / tag_name: Remote display names to create.
    """

    source_id: str | None = None
    event_name: str
    params: list[str] = []
    is_group: bool = False
    trigger_name: str
    tag_name: str

    model_config = {"frozen": True}


class PlannedVariable(BaseModel):
    name: str
    datalayer_key: str
    inferred: bool = False

    model_config = {"frozen": True}

    @property
    def remote_name(self) -> str:
        return f"DLV - {self.datalayer_key}"


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class ElementSet(BaseModel):
    events: list[PlannedEvent] = []
    variables: list[PlannedVariable] = []

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.events) + len(self.variables)


class OrphanSet(BaseModel):
    """Remote user-managed elements with no local counterpart."""

    tags: list[RemoteElement] = []
    triggers: list[RemoteElement] = []
    variables: list[RemoteElement] = []

    model_config = {"frozen": True}

    def __len__(self) -> int:
        return len(self.tags) + len(self.triggers) + len(self.variables)


class Diff(BaseModel):
    """Local plan versus remote container.

    ``missing_remote``, ``synced`` and ``orphan_remote`` are disjoint.
    """

    missing_remote: ElementSet = ElementSet()
    synced: ElementSet = ElementSet()
    orphan_remote: OrphanSet = OrphanSet()

    model_config = {"frozen": True}

    @property
    def in_sync(self) -> bool:
        return len(self.missing_remote) == 0


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


class SyncItemError(BaseModel):
    kind: ElementKind
    name: str
    operation: str
    error: str
    error_type: str

    model_config = {"frozen": True}


class SyncResult(BaseModel):
    """Outcome of applying the missing part of a diff.

    Attributes:
        created_triggers / created_tags / created_variables: Names created.
        skipped_tags: Events created trigger-only for lack of a
            measurement id.
        errors: One entry per failed item; the batch went on after each.
    """

    created_triggers: list[str] = []
    created_tags: list[str] = []
    created_variables: list[str] = []
    skipped_tags: list[str] = []
    errors: list[SyncItemError] = []

    model_config = {"frozen": True}

    @property
    def created_count(self) -> int:
        return (
            len(self.created_triggers)
            + len(self.created_tags)
            + len(self.created_variables)
        )


class CleanupResult(BaseModel):
    deleted_tags: list[str] = []
    deleted_triggers: list[str] = []
    deleted_variables: list[str] = []
    errors: list[SyncItemError] = []

    model_config = {"frozen": True}

    @property
    def deleted_count(self) -> int:
        return (
            len(self.deleted_tags)
            + len(self.deleted_triggers)
            + len(self.deleted_variables)
        )


class ElementChanges(BaseModel):
    added: list[RemoteElement] = []
    modified: list[RemoteElement] = []
    deleted: list[RemoteElement] = []

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted)


class ChangeSummary(BaseModel):
    """Structural diff between the draft and the last published version."""

    tags: ElementChanges = ElementChanges()
    triggers: ElementChanges = ElementChanges()
    variables: ElementChanges = ElementChanges()

    model_config = {"frozen": True}

    @property
    def is_empty(self) -> bool:
        return self.tags.is_empty and self.triggers.is_empty and self.variables.is_empty

    def by_kind(self) -> dict[ElementKind, ElementChanges]:
        return {
            ElementKind.TAG: self.tags,
            ElementKind.TRIGGER: self.triggers,
            ElementKind.VARIABLE: self.variables,
        }

    def description(self) -> str:
        """Short summary such as ``+1 tag, ~2 triggers, -1 variable``."""
        parts: list[str] = []
        for kind, changes in self.by_kind().items():
            for symbol, items in (
                ("+", changes.added),
                ("~", changes.modified),
                ("-", changes.deleted),
            ):
                if items:
                    label = kind.value + ("s" if len(items) > 1 else "")
                    parts.append(f"{symbol}{len(items)} {label}")
        return ", ".join(parts) if parts else "No changes detected"


class PublishOutcome(BaseModel):
    published: bool
    message: str
    summary: ChangeSummary
    version_id: str | None = None
    version_name: str | None = None
    previous_version_name: str | None = None
    dry_run: bool = False

    model_config = {"frozen": True}


class SyncReport(BaseModel):
    """Aggregate report for one engine run.

    Attributes:
        target: Domain or public container id the run resolved.
        operation: ``preview``, ``sync`` or ``clean``.
        dry_run: Whether mutations were skipped.
        diff: Diff computed at the start of the run.
        result: Creation outcome (sync runs).
        cleanup: Deletion outcome (clean runs).
    """

    target: str
    operation: str
    dry_run: bool = False
    diff: Diff
    result: SyncResult | None = None
    cleanup: CleanupResult | None = None
    started_at: str
    completed_at: str | None = None

    model_config = {"frozen": True}

    @property
    def created(self) -> int:
        return self.result.created_count if self.result else 0

    @property
    def deleted(self) -> int:
        return self.cleanup.deleted_count if self.cleanup else 0

    @property
    def matched(self) -> int:
        return len(self.diff.synced)

    @property
    def orphaned(self) -> int:
        return len(self.diff.orphan_remote)

    @property
    def errors(self) -> list[SyncItemError]:
        errors: list[SyncItemError] = []
        if self.result:
            errors.extend(self.result.errors)
        if self.cleanup:
            errors.extend(self.cleanup.errors)
        return errors
