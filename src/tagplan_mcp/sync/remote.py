"""Read the remote container state.

The workspace is a draft other people edit too, so nothing here is cached:
every operation re-reads what it needs at its start.  Reads are
independent, so the three element listings run concurrently.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from ..core.async_utils import gather_all, run_sync
from ..core.client import TagManagerClient
from ..errors import ContainerNotFoundError
from .models import ElementKind, RemoteContainerState, RemoteElement, VersionSnapshot

logger = logging.getLogger(__name__)

_PUBLIC_ID_RE = re.compile(r"^GTM-[A-Z0-9]+$", re.IGNORECASE)
_SCHEME_RE = re.compile(r"^(?:https?://)?(?:www\.)?", re.IGNORECASE)


def is_public_id(target: str) -> bool:
    return bool(_PUBLIC_ID_RE.match(target.strip()))


def normalize_domain(domain: str) -> str:
    """``https://www.Example.com/`` -> ``example.com``."""
    return _SCHEME_RE.sub("", domain.strip().lower()).rstrip("/")


def match_container(
    containers: list[dict[str, Any]], target: str
) -> dict[str, Any]:
    """Pick the container *target* designates.

    A ``GTM-XXXX`` target matches the public id exactly.  A domain matches
    containers whose name or notes contain it; failing that, containers
    whose name shares the domain's first label.

    Raises:
        ContainerNotFoundError: If nothing matches.
    """
    if is_public_id(target):
        wanted = target.strip().upper()
        for container in containers:
            if str(container.get("publicId", "")).upper() == wanted:
                return container
        raise ContainerNotFoundError(
            f"Container {wanted} not found in the configured account",
            details={"target": target},
        )

    domain = normalize_domain(target)
    if not domain:
        raise ContainerNotFoundError("A domain or GTM-XXXX id is required")
    for container in containers:
        name = (container.get("name") or "").lower()
        notes = (container.get("notes") or "").lower()
        if domain in name or domain in notes:
            return container
    label = domain.split(".")[0]
    for container in containers:
        name = (container.get("name") or "").lower()
        first_word = name.split(" ")[0] if name else ""
        if label in name or (first_word and first_word in domain):
            return container
    raise ContainerNotFoundError(
        f"No container found for {domain!r}. Check TAGPLAN_GTM_ACCOUNT_ID or "
        "pass the GTM-XXXX id instead.",
        details={"target": target},
    )


async def find_container(
    client: TagManagerClient, account_id: str, target: str
) -> dict[str, Any]:
    containers = await run_sync(client.list_containers, account_id)
    container = match_container(containers, target)
    logger.debug(
        "Resolved %s to container %s (%s)",
        target,
        container.get("publicId"),
        container.get("path"),
    )
    return container


async def fetch_workspace_state(
    client: TagManagerClient, account_id: str, container: dict[str, Any]
) -> RemoteContainerState:
    """List the tags, triggers and variables of the container's workspace.

    Raises:
        ContainerNotFoundError: If the container has no workspace.
    """
    container_path = container["path"]
    workspaces = await run_sync(client.list_workspaces, container_path)
    if not workspaces:
        raise ContainerNotFoundError(
            f"Container {container.get('publicId')} has no workspace",
            details={"container_path": container_path},
        )
    workspace_path = workspaces[0]["path"]

    tags, triggers, variables = await gather_all(
        [
            run_sync(client.list_tags, workspace_path),
            run_sync(client.list_triggers, workspace_path),
            run_sync(client.list_variables, workspace_path),
        ]
    )
    return RemoteContainerState(
        account_id=account_id,
        container_id=str(container.get("containerId", "")),
        container_path=container_path,
        workspace_path=workspace_path,
        public_id=container.get("publicId"),
        container_name=container.get("name"),
        tags=[RemoteElement.from_api(ElementKind.TAG, t) for t in tags],
        triggers=[RemoteElement.from_api(ElementKind.TRIGGER, t) for t in triggers],
        variables=[
            RemoteElement.from_api(ElementKind.VARIABLE, v) for v in variables
        ],
    )


async def fetch_container_state(
    client: TagManagerClient, account_id: str, target: str
) -> RemoteContainerState:
    """Resolve *target* and read its workspace."""
    container = await find_container(client, account_id, target)
    return await fetch_workspace_state(client, account_id, container)


def pick_last_published(
    headers: list[dict[str, Any]],
) -> dict[str, Any] | None:
    """The first header that was ever published, else the first header."""
    live = [h for h in headers if not h.get("deleted")]
    for header in live:
        try:
            published = int(header.get("numContainerVersionsPublished") or 0)
        except (TypeError, ValueError):
            published = 0
        if published > 0:
            return header
    return live[0] if live else None


async def fetch_last_published(
    client: TagManagerClient, container_path: str
) -> VersionSnapshot | None:
    """Load the last published version, or ``None`` for a new container."""
    headers = await run_sync(client.list_version_headers, container_path)
    header = pick_last_published(headers)
    if header is None:
        return None
    version_id = header.get("containerVersionId")
    data = await run_sync(
        client.get_version, f"{container_path}/versions/{version_id}"
    )
    return VersionSnapshot.from_api(data)
