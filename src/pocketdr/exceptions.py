"""PocketDr exception hierarchy.

Backend model failures are never raised; they travel as completion
outcomes. These exceptions cover the failures that should stop a caller.
"""

from __future__ import annotations


class PocketDrError(Exception):
    """Base for all PocketDr exceptions."""


class ConfigError(PocketDrError):
    """Raised when configuration loading or validation fails."""


class ModelError(PocketDrError):
    """Invalid model request or descriptor."""


class PromptError(PocketDrError):
    """Prompt template loading or rendering failures."""
