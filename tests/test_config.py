"""Tests for configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from promptcoach.config import ConfigLoader, discover_project_dir
from promptcoach.exceptions import ConfigError
from promptcoach.models import Profile, Strictness


def _write_config(project: Path, data: object) -> Path:
    path = project / ".claude" / "prompt-coach.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data))
    return path


class TestConfigLoader:
    """Tests for ConfigLoader."""

    def test_missing_file_uses_defaults(self, tmp_path: Path) -> None:
        """No config file yields built-in defaults."""
        config = ConfigLoader(tmp_path).load()
        assert config.profile == Profile.STANDARD
        assert config.triage.strictness == Strictness.STANDARD
        assert "git status" in config.triage.skip
        assert config.state_dir == tmp_path / ".claude" / "prompt-coach-state"

    def test_partial_override(self, tmp_path: Path) -> None:
        """Overriding one list keeps the other defaults."""
        _write_config(tmp_path, {
            "profile": "minimal",
            "triage": {"always_check": ["Rewards", " payments "], "strictness": "strict"},
        })
        config = ConfigLoader(tmp_path).load()

        assert config.profile == Profile.MINIMAL
        assert config.triage.always_check == ["rewards", "payments"]
        assert config.triage.strictness == Strictness.STRICT
        assert config.triage.ambiguous_length_threshold == 80
        assert "schema" in config.triage.cross_service

    def test_relative_state_dir(self, tmp_path: Path) -> None:
        """Relative state directories resolve against the project."""
        _write_config(tmp_path, {"state_dir": "var/coach"})
        assert ConfigLoader(tmp_path).load().state_dir == tmp_path / "var" / "coach"

    def test_schema_violation(self, tmp_path: Path) -> None:
        """Unknown triage keys fail schema validation."""
        _write_config(tmp_path, {"triage": {"skip_words": ["x"]}})
        with pytest.raises(ConfigError, match="Schema validation failed"):
            ConfigLoader(tmp_path).load()

    def test_bad_strictness(self, tmp_path: Path) -> None:
        """Strictness is restricted to three values."""
        _write_config(tmp_path, {"triage": {"strictness": "paranoid"}})
        with pytest.raises(ConfigError):
            ConfigLoader(tmp_path).load()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Unparseable YAML raises ConfigError."""
        path = tmp_path / ".claude" / "prompt-coach.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("triage: [unclosed")
        with pytest.raises(ConfigError, match="parse"):
            ConfigLoader(tmp_path).load()

    def test_non_mapping(self, tmp_path: Path) -> None:
        """A YAML list is not a config."""
        _write_config(tmp_path, ["a", "b"])
        with pytest.raises(ConfigError, match="mapping"):
            ConfigLoader(tmp_path).load()

    def test_explicit_missing_path(self, tmp_path: Path) -> None:
        """An explicit path that does not exist is an error."""
        with pytest.raises(ConfigError, match="not found"):
            ConfigLoader(tmp_path).load(tmp_path / "nope.yaml")

    def test_load_or_default_recovers(self, tmp_path: Path) -> None:
        """Invalid files fall back to defaults."""
        _write_config(tmp_path, {"profile": "turbo"})
        config = ConfigLoader(tmp_path).load_or_default()
        assert config.profile == Profile.STANDARD

    def test_empty_file(self, tmp_path: Path) -> None:
        """An empty file behaves like defaults."""
        path = tmp_path / ".claude" / "prompt-coach.yaml"
        path.parent.mkdir(parents=True)
        path.write_text("")
        assert ConfigLoader(tmp_path).load().profile == Profile.STANDARD


class TestDiscoverProjectDir:
    """Tests for project root discovery."""

    def test_finds_ancestor_with_claude_dir(self, tmp_path: Path) -> None:
        """The nearest ancestor with .claude/ is the project."""
        (tmp_path / ".claude").mkdir()
        nested = tmp_path / "src" / "pkg"
        nested.mkdir(parents=True)
        assert discover_project_dir(nested) == tmp_path.resolve()

    def test_falls_back_to_start(self, tmp_path: Path) -> None:
        """Without .claude/ anywhere, the start directory is used."""
        nested = tmp_path / "a"
        nested.mkdir()
        result = discover_project_dir(nested)
        assert result == nested.resolve() or (result / ".claude").is_dir()
