"""
Runtime settings for formengine.

Values the configuration file does not own (page size of option lists,
search debounce, where file-backed stores live, log level) are read from
the environment so a host application can tune them without touching
generated FormConfig files.

Environment variables:
    - FORMENGINE_PAGE_SIZE: records per option page (default 20)
    - FORMENGINE_SEARCH_DEBOUNCE_MS: search input debounce (default 300)
    - FORMENGINE_STORAGE_DIR: directory for file-backed stores (default .formengine)
    - FORMENGINE_LOG_LEVEL: logging level for the CLI (default INFO)

Usage:
    from formengine.core.settings import get_settings

    settings = get_settings()
    engine = FormEngine(config, ..., settings=settings)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

PAGE_SIZE_VAR = "FORMENGINE_PAGE_SIZE"
SEARCH_DEBOUNCE_VAR = "FORMENGINE_SEARCH_DEBOUNCE_MS"
STORAGE_DIR_VAR = "FORMENGINE_STORAGE_DIR"
LOG_LEVEL_VAR = "FORMENGINE_LOG_LEVEL"

DEFAULT_PAGE_SIZE = 20
DEFAULT_SEARCH_DEBOUNCE_MS = 300
DEFAULT_STORAGE_DIR = ".formengine"
DEFAULT_LOG_LEVEL = "INFO"


@dataclass(frozen=True)
class EngineSettings:
    """Process-wide engine settings."""

    page_size: int = DEFAULT_PAGE_SIZE
    search_debounce_ms: int = DEFAULT_SEARCH_DEBOUNCE_MS
    storage_dir: Path = Path(DEFAULT_STORAGE_DIR)
    log_level: str = DEFAULT_LOG_LEVEL

    @property
    def search_debounce_seconds(self) -> float:
        return self.search_debounce_ms / 1000.0


def _int_from_env(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s value '%s'. Using default %d.", name, raw, default)
        return default
    if value < minimum:
        logger.warning("%s must be >= %d, got %d. Using default %d.", name, minimum, value, default)
        return default
    return value


def get_settings() -> EngineSettings:
    """Build EngineSettings from the environment.

    Returns:
        EngineSettings with defaults for anything unset or invalid.

    Examples:
        >>> import os
        >>> os.environ["FORMENGINE_PAGE_SIZE"] = "50"
        >>> get_settings().page_size
        50
    """
    log_level = os.environ.get(LOG_LEVEL_VAR, DEFAULT_LOG_LEVEL).upper().strip()
    if log_level not in logging.getLevelNamesMapping():
        logger.warning("Unknown %s value '%s'. Defaulting to INFO.", LOG_LEVEL_VAR, log_level)
        log_level = DEFAULT_LOG_LEVEL

    return EngineSettings(
        page_size=_int_from_env(PAGE_SIZE_VAR, DEFAULT_PAGE_SIZE, minimum=1),
        search_debounce_ms=_int_from_env(SEARCH_DEBOUNCE_VAR, DEFAULT_SEARCH_DEBOUNCE_MS, minimum=0),
        storage_dir=Path(os.environ.get(STORAGE_DIR_VAR, DEFAULT_STORAGE_DIR)),
        log_level=log_level,
    )
