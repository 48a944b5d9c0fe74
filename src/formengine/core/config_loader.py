"""
FormConfig loader.

Loads form configurations from YAML, JSON or TOML files, or from an
already-parsed mapping, and converts every failure into a FormConfigError
that names the offending location.
"""

from __future__ import annotations

import json
import logging
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .config import FormConfig
from .errors import FormConfigError, make_config_error

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".yaml", ".yml", ".json", ".toml")


def _format_location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "<root>"


def _from_validation_error(
    e: ValidationError, file: Path | None, entity: str | None
) -> FormConfigError:
    first = e.errors()[0]
    message = first["msg"].removeprefix("Value error, ")
    extra = len(e.errors()) - 1
    if extra:
        message += f" (and {extra} more error{'s' if extra > 1 else ''})"
    return make_config_error(
        message,
        location=_format_location(tuple(first["loc"])),
        file=file,
        entity=entity,
    )


def parse_form_config(data: Mapping[str, Any], *, source: Path | None = None) -> FormConfig:
    """Build a FormConfig from a mapping.

    Args:
        data: Parsed configuration (camelCase or snake_case keys)
        source: File the data came from, for error context

    Returns:
        Validated FormConfig.

    Raises:
        FormConfigError: If the mapping does not describe a valid form.
    """
    if not isinstance(data, Mapping):
        raise make_config_error(
            f"Expected a mapping at the top level, got {type(data).__name__}", file=source
        )
    entity = data.get("entity") if isinstance(data.get("entity"), str) else None
    try:
        return FormConfig.model_validate(dict(data))
    except ValidationError as e:
        raise _from_validation_error(e, source, entity) from e


def _read_file(path: Path) -> Any:
    content = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(content)
    if suffix == ".json":
        return json.loads(content)
    return tomllib.loads(content)


def load_form_config(path: Path) -> FormConfig:
    """Load a FormConfig from a file.

    Args:
        path: .yaml/.yml/.json/.toml file

    Returns:
        Validated FormConfig.

    Raises:
        FormConfigError: If the file is missing, unparseable or invalid.
    """
    if path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise make_config_error(
            f"Unsupported config format '{path.suffix}' "
            f"(expected one of {', '.join(SUPPORTED_SUFFIXES)})",
            file=path,
        )
    if not path.exists():
        raise make_config_error("Config file not found", file=path)

    try:
        data = _read_file(path)
    except yaml.YAMLError as e:
        raise make_config_error(f"Invalid YAML: {e}", file=path) from e
    except json.JSONDecodeError as e:
        raise make_config_error(f"Invalid JSON: {e}", file=path) from e
    except tomllib.TOMLDecodeError as e:
        raise make_config_error(f"Invalid TOML: {e}", file=path) from e

    if not data:
        raise make_config_error("Empty configuration", file=path)

    config = parse_form_config(data, source=path)
    logger.debug(
        f"Loaded form config for {config.entity} from {path} "
        f"({len(config.steps)} steps, {len(config.fields)} fields, "
        f"{len(config.relationships)} relationships)"
    )
    return config


def dump_form_config(config: FormConfig, path: Path) -> Path:
    """Write a FormConfig back out in camelCase, format chosen by suffix."""
    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    suffix = path.suffix.lower()
    if suffix in (".yaml", ".yml"):
        path.write_text(
            yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )
    elif suffix == ".json":
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    else:
        raise make_config_error(f"Cannot write config as '{suffix}'", file=path)
    logger.info(f"Saved form config for {config.entity} to {path}")
    return path
