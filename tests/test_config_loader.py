"""Tests for tagplan_mcp.config_loader -- hierarchical config loading."""

import textwrap

import pytest
import yaml

from tagplan_mcp.config_loader import (
    _interpolate_recursive,
    _load_yaml_with_includes,
    discover_config_files,
    ensure_config,
    interpolate_env_vars,
    load_hierarchical_config,
    resolve_config_path,
)


@pytest.fixture
def isolated(tmp_path, monkeypatch):
    """CWD and HOME inside tmp_path, no TAGPLAN_CONFIG."""
    monkeypatch.delenv("TAGPLAN_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(textwrap.dedent(text))
    return path


# -------------------------------------------------------------------------
# Env var interpolation
# -------------------------------------------------------------------------


class TestInterpolateEnvVars:
    """Tests for ${VAR} and ${VAR:-default} substitution."""

    def test_replaces_set_var(self, monkeypatch):
        monkeypatch.setenv("GTM_ACCOUNT", "123")
        assert interpolate_env_vars("${GTM_ACCOUNT}") == "123"

    def test_unset_var_replaced_with_empty(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ}") == ""

    def test_default_used_when_unset(self, monkeypatch):
        monkeypatch.delenv("UNSET_VAR_XYZ", raising=False)
        assert interpolate_env_vars("${UNSET_VAR_XYZ:-fallback}") == "fallback"

    def test_empty_env_var_uses_default(self, monkeypatch):
        monkeypatch.setenv("EMPTY_VAR", "")
        assert interpolate_env_vars("${EMPTY_VAR:-fallback}") == "fallback"

    def test_unclosed_left_alone(self):
        assert interpolate_env_vars("${NO_CLOSE") == "${NO_CLOSE"

    def test_nested_structures(self, monkeypatch):
        monkeypatch.setenv("KEY_FILE", "/keys/sa.json")
        data = {"google": {"credentials_file": "${KEY_FILE}"}, "list": ["${KEY_FILE}", 3]}

        assert _interpolate_recursive(data) == {
            "google": {"credentials_file": "/keys/sa.json"},
            "list": ["/keys/sa.json", 3],
        }


# -------------------------------------------------------------------------
# YAML !include support
# -------------------------------------------------------------------------


class TestIncludeDirective:
    def test_include_relative_file(self, tmp_path):
        _write(tmp_path / "google.yml", "gtm_account_id: '42'\n")
        main = _write(tmp_path / "config.yml", "google: !include google.yml\n")

        assert _load_yaml_with_includes(main) == {"google": {"gtm_account_id": "42"}}

    def test_include_nonexistent_raises(self, tmp_path):
        main = _write(tmp_path / "config.yml", "data: !include missing.yml\n")

        with pytest.raises(FileNotFoundError, match="missing.yml"):
            _load_yaml_with_includes(main)

    def test_circular_include_raises(self, tmp_path):
        a = _write(tmp_path / "a.yml", "x: !include b.yml\n")
        _write(tmp_path / "b.yml", "y: !include a.yml\n")

        with pytest.raises(ValueError, match="Circular include"):
            _load_yaml_with_includes(a)

    def test_global_safe_loader_not_polluted(self, tmp_path):
        cfg = _write(tmp_path / "test.yml", "x: !include other.yml\n")

        with pytest.raises(yaml.constructor.ConstructorError):
            with open(cfg) as fh:
                yaml.safe_load(fh)


# -------------------------------------------------------------------------
# Convention-based file discovery
# -------------------------------------------------------------------------


class TestDiscoverConfigFiles:
    def test_env_var_first(self, isolated, monkeypatch):
        custom = _write(isolated / "custom.yml", "sync: {}\n")
        project = _write(isolated / ".tagplan" / "config.yml", "sync: {}\n")
        monkeypatch.setenv("TAGPLAN_CONFIG", str(custom))

        result = discover_config_files()

        assert result == [custom.resolve(), project]

    def test_project_before_global(self, isolated):
        project = _write(isolated / ".tagplan" / "config.yml", "a: 1\n")
        global_cfg = _write(
            isolated / "home" / ".config" / "tagplan" / "config.yml", "b: 2\n"
        )

        assert discover_config_files() == [project, global_cfg]

    def test_yaml_extension(self, isolated):
        project = _write(isolated / ".tagplan" / "config.yaml", "a: 1\n")

        assert discover_config_files() == [project]

    def test_nothing_found(self, isolated):
        assert discover_config_files() == []


class TestEnsureConfig:
    def test_creates_starter(self, isolated):
        path = ensure_config()

        assert path == isolated / ".tagplan" / "config.yml"
        assert "# tagplan configuration" in path.read_text()
        # The starter is all comments
        assert yaml.safe_load(path.read_text()) is None

    def test_existing_file_kept(self, isolated):
        existing = _write(isolated / ".tagplan" / "config.yml", "sync: {}\n")

        assert ensure_config() == existing
        assert existing.read_text() == "sync: {}\n"

    def test_resolve_without_files(self, isolated):
        assert resolve_config_path() == isolated / ".tagplan" / "config.yml"
        assert not resolve_config_path().exists()


# -------------------------------------------------------------------------
# Hierarchical merge
# -------------------------------------------------------------------------


class TestLoadHierarchicalConfig:
    def test_project_replaces_global_sections(self, isolated):
        _write(
            isolated / "home" / ".config" / "tagplan" / "config.yml",
            """\
            google:
              gtm_account_id: "1"
              ga4_account_id: "2"
            sync:
              api_delay_seconds: 5
            """,
        )
        _write(
            isolated / ".tagplan" / "config.yml",
            """\
            google:
              gtm_account_id: "9"
            """,
        )

        result = load_hierarchical_config()

        assert result["google"] == {"gtm_account_id": "9"}
        assert result["sync"] == {"api_delay_seconds": 5}

    def test_interpolation_after_merge(self, isolated, monkeypatch):
        monkeypatch.setenv("KEY_FILE", "/keys/sa.json")
        _write(
            isolated / ".tagplan" / "config.yml",
            """\
            google:
              credentials_file: "${KEY_FILE}"
            """,
        )

        result = load_hierarchical_config()

        assert result["google"]["credentials_file"] == "/keys/sa.json"

    def test_zero_config(self, isolated):
        assert load_hierarchical_config() == {}

    def test_non_dict_root_skipped(self, isolated, monkeypatch):
        custom = _write(isolated / "bad.yml", "- item1\n- item2\n")
        monkeypatch.setenv("TAGPLAN_CONFIG", str(custom))

        assert load_hierarchical_config() == {}

    def test_broken_yaml_propagates(self, isolated):
        _write(isolated / ".tagplan" / "config.yml", "google: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_hierarchical_config()
