"""REST clients for the Google Tag Manager API.

The clients are thin and synchronous: one method per REST call, JSON in and
JSON out, with HTTP failures mapped to the typed exceptions of
``tagplan_mcp.errors``.  Pacing, retries and ordering belong to the sync
executor, not to the client.  Async callers wrap methods in ``run_sync``.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..errors import HttpErrorInfo, NetworkError, RemoteApiError, map_http_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = (10, 60)


class GoogleApiClient:
    """Base JSON-over-HTTP client for a Google REST API.

    Args:
        session: An authorised ``requests.Session`` (usually a
            ``google.auth.transport.requests.AuthorizedSession``).
        base_url: API root; request paths are relative to it.
        timeout: ``(connect, read)`` timeout in seconds.
    """

    base_url: str = ""

    def __init__(
        self,
        session: requests.Session,
        base_url: str | None = None,
        timeout: tuple[float, float] = DEFAULT_TIMEOUT,
    ) -> None:
        self.session = session
        if base_url is not None:
            self.base_url = base_url
        self.timeout = timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Issue one request and return the decoded JSON body.

        Raises:
            NetworkError: On any transport failure (connection, timeout,
                truncated body).
            RemoteApiError: (or a subclass) on any HTTP error status, or
                when a successful response is not JSON.
        """
        url = self._url(path)
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(
                f"{method} {url} failed: {e}",
                details={"url": url},
                cause=e,
            ) from e

        if response.status_code >= 400:
            raise self._error_from_response(response)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                f"{method} {url} returned a non-JSON response "
                f"(HTTP {response.status_code})",
                details={"url": url, "status_code": response.status_code},
                cause=e,
            ) from e

    @staticmethod
    def _error_from_response(response: requests.Response) -> RemoteApiError:
        """Map a Google error payload to a typed exception.

        Google APIs return ``{"error": {"code", "message", "status",
        "errors": [{"reason": ...}]}}``; the first ``reason`` (or the
        ``status`` string) drives quota detection.
        """
        reason: str | None = None
        message: str | None = None
        try:
            payload = response.json().get("error", {})
        except ValueError:
            payload = {}
        if isinstance(payload, dict):
            message = payload.get("message")
            errors = payload.get("errors") or []
            if errors and isinstance(errors[0], dict):
                reason = errors[0].get("reason")
            reason = reason or payload.get("status")
        return map_http_error(
            HttpErrorInfo(
                status_code=response.status_code,
                reason=reason,
                message=message
                or f"HTTP {response.status_code} from {response.url}",
                details={"url": response.url},
            )
        )

    def _list(
        self,
        path: str,
        key: str,
        params: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """GET a collection, following ``nextPageToken`` until exhausted."""
        items: list[dict[str, Any]] = []
        query = dict(params or {})
        while True:
            data = self._request("GET", path, params=query or None)
            items.extend(data.get(key) or [])
            token = data.get("nextPageToken")
            if not token:
                return items
            query["pageToken"] = token


class TagManagerClient(GoogleApiClient):
    """Tag Manager API v2: containers, workspaces, elements and versions.

    Paths follow the API's resource names, e.g.
    ``accounts/1/containers/2/workspaces/3``.
    """

    base_url = "https://tagmanager.googleapis.com/tagmanager/v2"

    # -- Accounts / containers / workspaces ---------------------------------

    def list_accounts(self) -> list[dict[str, Any]]:
        return self._list("accounts", "account")

    def list_containers(self, account_id: str) -> list[dict[str, Any]]:
        return self._list(f"accounts/{account_id}/containers", "container")

    def list_workspaces(self, container_path: str) -> list[dict[str, Any]]:
        return self._list(f"{container_path}/workspaces", "workspace")

    # -- Workspace elements -------------------------------------------------

    def list_tags(self, workspace_path: str) -> list[dict[str, Any]]:
        return self._list(f"{workspace_path}/tags", "tag")

    def list_triggers(self, workspace_path: str) -> list[dict[str, Any]]:
        return self._list(f"{workspace_path}/triggers", "trigger")

    def list_variables(self, workspace_path: str) -> list[dict[str, Any]]:
        return self._list(f"{workspace_path}/variables", "variable")

    def create_tag(
        self, workspace_path: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self._request("POST", f"{workspace_path}/tags", body=body)

    def create_trigger(
        self, workspace_path: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self._request("POST", f"{workspace_path}/triggers", body=body)

    def create_variable(
        self, workspace_path: str, body: dict[str, Any]
    ) -> dict[str, Any]:
        return self._request("POST", f"{workspace_path}/variables", body=body)

    def delete_tag(self, tag_path: str) -> None:
        self._request("DELETE", tag_path)

    def delete_trigger(self, trigger_path: str) -> None:
        self._request("DELETE", trigger_path)

    def delete_variable(self, variable_path: str) -> None:
        self._request("DELETE", variable_path)

    # -- Versions -----------------------------------------------------------

    def list_version_headers(
        self, container_path: str
    ) -> list[dict[str, Any]]:
        return self._list(
            f"{container_path}/version_headers", "containerVersionHeader"
        )

    def get_version(self, version_path: str) -> dict[str, Any]:
        return self._request("GET", version_path)

    def create_version(
        self, workspace_path: str, name: str, notes: str = ""
    ) -> dict[str, Any]:
        """Snapshot the workspace into a new container version.

        The response carries ``containerVersion`` on success; when the
        workspace has merge conflicts or compiler errors it is omitted.
        """
        return self._request(
            "POST",
            f"{workspace_path}:create_version",
            body={"name": name, "notes": notes},
        )

    def publish_version(self, version_path: str) -> dict[str, Any]:
        return self._request("POST", f"{version_path}:publish")
