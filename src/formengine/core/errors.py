"""
Error types for formengine configuration loading and runtime collaborators.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class FormEngineError(Exception):
    """Base exception for all formengine errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}\n{self.message}"
        return self.message


class FormConfigError(FormEngineError):
    """
    Raised when a FormConfig cannot be loaded or fails validation.

    Examples:
    - Malformed YAML/JSON/TOML
    - Step referencing a field that does not exist
    - Cascading filter whose parent is not a relationship
    - Cyclic cascading chains
    """

    pass


class CapabilityError(FormEngineError):
    """
    Raised when a relationship cannot be wired to a data capability.

    Examples:
    - No bundle registered for the relationship's target entity
    """

    pass


class StorageError(FormEngineError):
    """
    Raised when a storage backend fails to persist a value.

    Corrupt payloads on read are never raised; they read as absent.
    """

    pass


class SubmissionError(FormEngineError):
    """
    Raised by the engine's submit path when the entity collaborator fails.

    The engine catches it and reports through the notifier, so callers of
    ``FormEngine.submit`` only see it inside a ``SubmitOutcome``.
    """

    pass


@dataclass
class ErrorContext:
    """
    Where a configuration error was found.

    Attributes:
        location: Dotted path inside the config, e.g. ``relationships.subCallType``
        file: Source file the config was loaded from, if any
        entity: Entity name of the offending config, if known
    """

    location: str
    file: Path | None = None
    entity: str | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "call.yaml: relationships.subCallType (Call)"
        """
        where = f"{self.file}: {self.location}" if self.file else self.location
        if self.entity:
            where += f" ({self.entity})"
        return where


def make_config_error(
    message: str,
    location: str = "<root>",
    file: Path | None = None,
    entity: str | None = None,
) -> FormConfigError:
    """
    Helper to create a FormConfigError with context.

    Args:
        message: Error description
        location: Dotted path inside the configuration
        file: Optional source file path
        entity: Optional entity name

    Returns:
        FormConfigError with context attached
    """
    return FormConfigError(message, ErrorContext(location=location, file=file, entity=entity))
