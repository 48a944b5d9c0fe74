"""
formengine: a config-driven, multi-step entity form engine.

A ``FormConfig`` describes an entity's steps, fields and relationships;
``FormEngine`` runs one form session against it.
"""

from formengine._version import get_version
from formengine.core import (
    CapabilityError,
    FormConfigError,
    FormEngineError,
    StorageError,
    SubmissionError,
    load_form_config,
    parse_form_config,
)
from formengine.core.config import FormConfig
from formengine.runtime import (
    CapabilityRegistry,
    EntityDataSource,
    FormEngine,
    InMemoryEntitySource,
    SubmitOutcome,
)

__version__ = get_version()

__all__ = [
    "__version__",
    "CapabilityError",
    "CapabilityRegistry",
    "EntityDataSource",
    "FormConfig",
    "FormConfigError",
    "FormEngine",
    "FormEngineError",
    "InMemoryEntitySource",
    "StorageError",
    "SubmissionError",
    "SubmitOutcome",
    "load_form_config",
    "parse_form_config",
]
