"""Custom exceptions for Prompt Coach."""

from typing import Any


class PromptCoachError(Exception):
    """Base exception for all Prompt Coach errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ConfigError(PromptCoachError):
    """Raised when a configuration file cannot be loaded or is invalid."""


class StoreError(PromptCoachError):
    """Raised when the correction store cannot be written."""


class CapabilityError(PromptCoachError):
    """Raised when an operation is not enabled for the active profile."""
