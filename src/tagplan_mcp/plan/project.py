"""Local project marker file (``.google-setup.json``).

The marker records what the initialisation step resolved: the project
name, its domain and the last-known remote identifiers.  The sync reads it
to locate the container and the measurement id, and writes the ids back
once they are known, so later runs skip the lookup.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..errors import PrerequisiteError
from ..file_handler import read_file_with_encoding, write_file_atomic

logger = logging.getLogger(__name__)

MARKER_FILENAME = ".google-setup.json"
INIT_STEP = "init-tracking"


class ProjectMarker(BaseModel):
    """Contents of the marker file.  Unknown keys are preserved on save."""

    project_name: str | None = Field(default=None, alias="projectName")
    domain: str | None = None
    gtm_account_id: str | None = Field(default=None, alias="gtmAccountId")
    gtm_container_id: str | None = Field(default=None, alias="gtmContainerId")
    ga4_measurement_id: str | None = Field(
        default=None, alias="ga4MeasurementId"
    )
    ga4_property_id: str | None = Field(default=None, alias="ga4PropertyId")

    model_config = {"extra": "allow", "populate_by_name": True}

    @model_validator(mode="before")
    @classmethod
    def _nested_ga4(cls, data: Any) -> Any:
        # Older markers nest the id under "ga4": {"measurementId": ...}
        if isinstance(data, dict) and not data.get("ga4MeasurementId"):
            nested = data.get("ga4")
            if isinstance(nested, dict) and nested.get("measurementId"):
                data = {**data, "ga4MeasurementId": nested["measurementId"]}
        return data

    @property
    def is_complete(self) -> bool:
        return bool(self.project_name and self.domain)


class ProjectMarkerStore:
    """Load and save the marker file of one project directory.

    Args:
        project_dir: Root directory of the tracked website project.
        filename: Marker file name relative to *project_dir*.
    """

    def __init__(
        self, project_dir: Path, filename: str = MARKER_FILENAME
    ) -> None:
        self.path = project_dir / filename

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> ProjectMarker:
        """Read the marker.

        Raises:
            PrerequisiteError: If the file is missing or unreadable.
        """
        if not self.exists():
            raise PrerequisiteError(
                f"{self.path.name} not found in {self.path.parent}. "
                f"Run '{INIT_STEP}' first.",
                step=INIT_STEP,
                details={"path": str(self.path)},
            )
        content, _ = read_file_with_encoding(self.path)
        try:
            return ProjectMarker.model_validate(json.loads(content or "{}"))
        except (json.JSONDecodeError, ValidationError) as e:
            raise PrerequisiteError(
                f"{self.path.name} is corrupted: {e}. Run '{INIT_STEP}' again.",
                step=INIT_STEP,
                details={"path": str(self.path)},
            ) from e

    def load_optional(self) -> ProjectMarker | None:
        """Read the marker, or return ``None`` when it does not exist."""
        if not self.exists():
            return None
        return self.load()

    def save(self, marker: ProjectMarker) -> None:
        data = marker.model_dump(by_alias=True, exclude_none=True)
        write_file_atomic(self.path, json.dumps(data, indent=2) + "\n")
        logger.debug("Saved project marker %s", self.path)

    def remember_ids(
        self,
        *,
        gtm_account_id: str | None = None,
        gtm_container_id: str | None = None,
        ga4_measurement_id: str | None = None,
    ) -> ProjectMarker | None:
        """Record remote ids discovered during a run.

        A no-op when there is no marker or nothing new to record.
        """
        marker = self.load_optional()
        if marker is None:
            return None
        updates = {
            key: value
            for key, value in (
                ("gtm_account_id", gtm_account_id),
                ("gtm_container_id", gtm_container_id),
                ("ga4_measurement_id", ga4_measurement_id),
            )
            if value and getattr(marker, key) != value
        }
        if not updates:
            return marker
        marker = marker.model_copy(update=updates)
        self.save(marker)
        return marker
