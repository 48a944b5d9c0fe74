"""Core formengine functionality: configuration model, loading, linting, settings."""

from . import config
from .config_loader import dump_form_config, load_form_config, parse_form_config
from .errors import (
    CapabilityError,
    ErrorContext,
    FormConfigError,
    FormEngineError,
    StorageError,
    SubmissionError,
)
from .lint import lint_form_config
from .settings import EngineSettings, get_settings

__all__ = [
    "config",
    "CapabilityError",
    "EngineSettings",
    "ErrorContext",
    "FormConfigError",
    "FormEngineError",
    "StorageError",
    "SubmissionError",
    "dump_form_config",
    "get_settings",
    "lint_form_config",
    "load_form_config",
    "parse_form_config",
]
