"""Shared pytest fixtures for tagplan-mcp tests."""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Any

import pytest

from tagplan_mcp.config import Config
from tagplan_mcp.plan.models import TrackingPlan
from tagplan_mcp.plan.store import parse_plan


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require live Google API credentials",
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "live: mark test as requiring live Google API credentials"
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# In-memory Tag Manager
# ---------------------------------------------------------------------------


class FakeTagManagerClient:
    """In-memory stand-in for ``TagManagerClient``.

    Holds one container with one workspace.  Every call is appended to
    ``calls``; ``fail()`` makes a method raise.
    """

    ACCOUNT_ID = "100"
    CONTAINER_PATH = "accounts/100/containers/200"
    WORKSPACE_PATH = "accounts/100/containers/200/workspaces/1"

    def __init__(self) -> None:
        self.containers: list[dict[str, Any]] = [
            {
                "accountId": self.ACCOUNT_ID,
                "containerId": "200",
                "publicId": "GTM-ABC123",
                "name": "example.com",
                "path": self.CONTAINER_PATH,
            }
        ]
        self.workspaces: list[dict[str, Any]] = [
            {"workspaceId": "1", "name": "Default", "path": self.WORKSPACE_PATH}
        ]
        self.tags: list[dict[str, Any]] = []
        self.triggers: list[dict[str, Any]] = []
        self.variables: list[dict[str, Any]] = []
        self.version_headers: list[dict[str, Any]] = []
        self.versions: dict[str, dict[str, Any]] = {}
        self.create_version_response: dict[str, Any] | None = None
        self.calls: list[tuple] = []
        self._failures: dict[str, list] = {}
        self._next_id = 10

    # -- Test helpers -------------------------------------------------------

    def fail(self, method: str, error: Exception, times: int | None = None) -> None:
        """Make *method* raise *error* (*times* times, or always)."""
        self._failures[method] = [error, times]

    def clear_failures(self) -> None:
        self._failures.clear()

    def calls_to(self, method: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == method]

    def _record(self, method: str, *args: Any) -> None:
        self.calls.append((method, *args))
        entry = self._failures.get(method)
        if entry is None:
            return
        error, remaining = entry
        if remaining is None:
            raise error
        if remaining > 0:
            entry[1] = remaining - 1
            raise error

    def _new(self, kind: str, body: dict[str, Any]) -> dict[str, Any]:
        self._next_id += 1
        element_id = str(self._next_id)
        return {
            **body,
            f"{kind}Id": element_id,
            "path": f"{self.WORKSPACE_PATH}/{kind}s/{element_id}",
            "fingerprint": f"fp-{element_id}",
        }

    def add_trigger(self, name: str, type: str = "customEvent") -> dict[str, Any]:
        trigger = self._new("trigger", {"name": name, "type": type})
        self.triggers.append(trigger)
        return trigger

    def add_tag(self, name: str, type: str = "gaawe") -> dict[str, Any]:
        tag = self._new("tag", {"name": name, "type": type})
        self.tags.append(tag)
        return tag

    def add_variable(
        self, name: str, key: str | None = None, type: str = "v"
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"name": name, "type": type}
        if key:
            body["parameter"] = [{"type": "template", "key": "name", "value": key}]
        variable = self._new("variable", body)
        self.variables.append(variable)
        return variable

    def publish_current(self, name: str = "v1.0.3") -> str:
        """Record the current workspace as the last published version."""
        version_id = str(len(self.version_headers) + 1)
        path = f"{self.CONTAINER_PATH}/versions/{version_id}"
        self.versions[path] = {
            "containerVersionId": version_id,
            "name": name,
            "path": path,
            "tag": [dict(t) for t in self.tags],
            "trigger": [dict(t) for t in self.triggers],
            "variable": [dict(v) for v in self.variables],
        }
        self.version_headers.insert(
            0,
            {
                "containerVersionId": version_id,
                "name": name,
                "numContainerVersionsPublished": "1",
            },
        )
        return path

    # -- TagManagerClient surface -------------------------------------------

    def list_accounts(self) -> list[dict[str, Any]]:
        self._record("list_accounts")
        return [{"accountId": self.ACCOUNT_ID, "name": "Example"}]

    def list_containers(self, account_id: str) -> list[dict[str, Any]]:
        self._record("list_containers", account_id)
        return list(self.containers)

    def list_workspaces(self, container_path: str) -> list[dict[str, Any]]:
        self._record("list_workspaces", container_path)
        return list(self.workspaces)

    def list_tags(self, workspace_path: str) -> list[dict[str, Any]]:
        self._record("list_tags", workspace_path)
        return list(self.tags)

    def list_triggers(self, workspace_path: str) -> list[dict[str, Any]]:
        self._record("list_triggers", workspace_path)
        return list(self.triggers)

    def list_variables(self, workspace_path: str) -> list[dict[str, Any]]:
        self._record("list_variables", workspace_path)
        return list(self.variables)

    def create_trigger(self, workspace_path: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create_trigger", workspace_path, body)
        trigger = self._new("trigger", body)
        self.triggers.append(trigger)
        return trigger

    def create_tag(self, workspace_path: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create_tag", workspace_path, body)
        tag = self._new("tag", body)
        self.tags.append(tag)
        return tag

    def create_variable(self, workspace_path: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record("create_variable", workspace_path, body)
        variable = self._new("variable", body)
        self.variables.append(variable)
        return variable

    def _delete(self, collection: list[dict[str, Any]], path: str) -> None:
        collection[:] = [e for e in collection if e.get("path") != path]

    def delete_tag(self, tag_path: str) -> None:
        self._record("delete_tag", tag_path)
        self._delete(self.tags, tag_path)

    def delete_trigger(self, trigger_path: str) -> None:
        self._record("delete_trigger", trigger_path)
        self._delete(self.triggers, trigger_path)

    def delete_variable(self, variable_path: str) -> None:
        self._record("delete_variable", variable_path)
        self._delete(self.variables, variable_path)

    def list_version_headers(self, container_path: str) -> list[dict[str, Any]]:
        self._record("list_version_headers", container_path)
        return list(self.version_headers)

    def get_version(self, version_path: str) -> dict[str, Any]:
        self._record("get_version", version_path)
        return self.versions[version_path]

    def create_version(
        self, workspace_path: str, name: str, notes: str = ""
    ) -> dict[str, Any]:
        self._record("create_version", workspace_path, name, notes)
        if self.create_version_response is not None:
            return self.create_version_response
        version_id = str(len(self.versions) + 1)
        path = f"{self.CONTAINER_PATH}/versions/{version_id}"
        self.versions[path] = {
            "containerVersionId": version_id,
            "name": name,
            "path": path,
        }
        return {"containerVersion": self.versions[path]}

    def publish_version(self, version_path: str) -> dict[str, Any]:
        self._record("publish_version", version_path)
        return {"containerVersion": self.versions.get(version_path, {})}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


SAMPLE_PLAN = textwrap.dedent(
    """\
    project:
      name: Example
      domain: example.com
      ga4_measurement_id: G-TEST123
    consolidated_events:
      - id: cta_group
        enabled: true
        datalayer:
          event_name: cta_click
          params: [cta_label, cta_location]
        actions:
          - id: hero_cta
          - id: footer_cta
    events:
      - id: form_submit
        enabled: true
        trigger:
          html_selector: "form#contact"
        datalayer:
          event_name: form_submit
      - id: old_banner
        enabled: false
        datalayer:
          event_name: banner_click
    """
)


@pytest.fixture
def fake_client() -> FakeTagManagerClient:
    return FakeTagManagerClient()


@pytest.fixture
def plan() -> TrackingPlan:
    """The sample plan, parsed."""
    return parse_plan(SAMPLE_PLAN)


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A project directory holding the sample plan and a marker file."""
    plan_path = tmp_path / "tracking" / "tracking-plan.yml"
    plan_path.parent.mkdir(parents=True)
    plan_path.write_text(SAMPLE_PLAN, encoding="utf-8")
    (tmp_path / ".google-setup.json").write_text(
        '{"projectName": "Example", "domain": "example.com"}\n',
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def config(project_dir: Path) -> Config:
    """Runtime config pointing at *project_dir*, with no pacing or back-off."""
    return Config(
        gtm_account_id=FakeTagManagerClient.ACCOUNT_ID,
        ga4_account_id="300",
        api_delay_seconds=0.0,
        quota_max_attempts=3,
        quota_backoff_seconds=0.0,
        project_dir=project_dir,
    )
