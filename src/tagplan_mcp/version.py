"""Version checks for detecting a stale installed package."""

import tomllib
from pathlib import Path

PYPROJECT_PATH = Path(__file__).parent.parent.parent / "pyproject.toml"


def read_source_version(pyproject_path: Path = PYPROJECT_PATH) -> str | None:
    """Return ``project.version`` from *pyproject_path*, or None if absent."""
    if not pyproject_path.exists():
        return None
    with open(pyproject_path, "rb") as f:
        data = tomllib.load(f)
    return data.get("project", {}).get("version")


def check_version_consistency(
    pyproject_path: Path = PYPROJECT_PATH,
) -> tuple[bool, str]:
    """Compare the runtime ``__version__`` with the source tree version.

    An editable install picks up source changes immediately, but a regular
    install keeps the version it was built with.  A mismatch means the
    installed server is older than the checkout it is run from.

    Returns:
        Tuple of (is_consistent, message).
    """
    from . import __version__ as runtime_version

    try:
        source_version = read_source_version(pyproject_path)
    except (OSError, tomllib.TOMLDecodeError) as e:
        return False, f"Failed to read version from pyproject.toml: {e}"

    if source_version is None:
        # Installed from a wheel: nothing to compare against
        return True, f"Version {runtime_version} (no source tree found)"

    if runtime_version != source_version:
        return False, (
            f"Version mismatch detected! "
            f"Runtime: {runtime_version}, Source: {source_version}. "
            f"Reinstall with: pip install -e ."
        )

    return True, f"Version verified: {runtime_version}"
