"""Configuration loader with schema validation and built-in defaults."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import CoachConfig, Profile, TriageConfig
from .store import STATE_DIR_NAME

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "prompt-coach.yaml"

_KEYWORD_LIST = {"type": "array", "items": {"type": "string"}}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "Prompt Coach Configuration",
    "type": "object",
    "properties": {
        "profile": {"type": "string", "enum": [p.value for p in Profile]},
        "state_dir": {"type": "string"},
        "triage": {
            "type": "object",
            "properties": {
                "skip": _KEYWORD_LIST,
                "always_check": _KEYWORD_LIST,
                "cross_service": _KEYWORD_LIST,
                "multi_step": _KEYWORD_LIST,
                "short_commands": _KEYWORD_LIST,
                "strictness": {"type": "string", "enum": ["relaxed", "standard", "strict"]},
            },
            "additionalProperties": False,
        },
    },
}


class ConfigLoader:
    """Loads and validates Prompt Coach configuration for a project."""

    def __init__(self, project_dir: Path) -> None:
        """Initialize loader with the project root.

        Args:
            project_dir: Project directory containing .claude/prompt-coach.yaml
        """
        self.project_dir = Path(project_dir)

    @property
    def config_path(self) -> Path:
        return self.project_dir / ".claude" / CONFIG_FILE_NAME

    def load(self, path: Path | None = None) -> CoachConfig:
        """Load and validate the configuration file.

        Args:
            path: Explicit config file; defaults to .claude/prompt-coach.yaml

        Returns:
            Validated configuration (defaults when the file does not exist)

        Raises:
            ConfigError: If the file cannot be read, parsed or validated
        """
        config_path = path or self.config_path
        if not config_path.exists():
            if path is not None:
                msg = f"Config file not found: {config_path}"
                raise ConfigError(msg)
            return self._defaults()

        try:
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            msg = f"Failed to parse config YAML: {e}"
            raise ConfigError(msg) from e
        except OSError as e:
            msg = f"Failed to read config file: {e}"
            raise ConfigError(msg) from e

        if not isinstance(data, dict):
            msg = f"Config file must contain a mapping: {config_path}"
            raise ConfigError(msg)

        try:
            jsonschema.validate(data, CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            msg = f"Schema validation failed: {e.message}"
            raise ConfigError(msg, details={"path": list(e.absolute_path)}) from e

        state_dir = Path(data.get("state_dir", STATE_DIR_NAME))
        data["state_dir"] = state_dir if state_dir.is_absolute() else self.project_dir / state_dir
        try:
            return CoachConfig.model_validate(data)
        except ValidationError as e:
            msg = f"Config validation failed: {e}"
            raise ConfigError(msg) from e

    def load_or_default(self, path: Path | None = None) -> CoachConfig:
        """Load configuration, falling back to defaults on any config error."""
        try:
            return self.load(path)
        except ConfigError as e:
            logger.warning("Using default configuration: %s", e)
            return self._defaults()

    def _defaults(self) -> CoachConfig:
        return CoachConfig(
            triage=TriageConfig(),
            state_dir=self.project_dir / STATE_DIR_NAME,
        )


def discover_project_dir(start: Path | None = None) -> Path:
    """Find the nearest ancestor containing a .claude directory.

    Returns the starting directory when none is found.
    """
    start = (start or Path.cwd()).resolve()
    current = start
    while current != current.parent:
        if (current / ".claude").is_dir():
            return current
        current = current.parent
    return start
