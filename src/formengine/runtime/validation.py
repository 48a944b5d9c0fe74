"""
Value validation and submission serialization.

Validation never raises: every check returns an error message or None,
and the engine stores messages in ``FormState.errors``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Iterable, Mapping
from datetime import date, datetime
from typing import Any

from formengine.core.config import FieldConfig, FieldType, FormConfig, RelationshipConfig

# Enum sentinel meaning "explicitly no value".
NONE_SENTINEL = "__none__"

CustomValidator = Callable[[Any, Mapping[str, Any]], str | None]


def is_empty(value: Any) -> bool:
    """None, blank strings and empty collections are empty; 0 and False are not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, list | tuple | set | dict):
        return len(value) == 0
    return False


def parse_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return None if isinstance(value, float) and math.isnan(value) else float(value)
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def parse_date(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _format_bound(bound: float) -> str:
    return str(int(bound)) if bound.is_integer() else str(bound)


def validate_field(field: FieldConfig, value: Any) -> str | None:
    """Check one scalar field value against its configuration."""
    label = field.display_label
    empty = is_empty(value) or (field.type == FieldType.ENUM and value == NONE_SENTINEL)

    if empty:
        if field.is_required:
            return f"{label} is required"
        return None

    rules = field.validation

    if field.type == FieldType.NUMBER:
        number = parse_number(value)
        if number is None:
            return f"{label} must be a number"
        if rules.min is not None and number < rules.min:
            return f"{label} must be at least {_format_bound(rules.min)}"
        if rules.max is not None and number > rules.max:
            return f"{label} must be at most {_format_bound(rules.max)}"
        return None

    if field.type == FieldType.DATE:
        if parse_date(value) is None:
            return f"{label} must be a valid date"
        return None

    if field.type == FieldType.ENUM:
        if str(value) not in field.option_values:
            return f"{label} must be one of: {', '.join(field.option_values)}"
        return None

    if field.type in (FieldType.BOOLEAN, FieldType.FILE):
        return None

    text = str(value)
    if rules.min_length is not None and len(text) < rules.min_length:
        return f"{label} must be at least {rules.min_length} characters"
    if rules.max_length is not None and len(text) > rules.max_length:
        return f"{label} must be at most {rules.max_length} characters"
    if rules.pattern and re.fullmatch(rules.pattern, text) is None:
        return f"{label} has an invalid format"
    return None


def validate_relationship(rel: RelationshipConfig, value: Any) -> str | None:
    if rel.required and is_empty(value):
        return f"Please select {'at least one ' if rel.multiple else ''}{rel.display_label}"
    return None


class FormValidator:
    """
    Validates members of one FormConfig.

    Args:
        config: Form configuration
        custom: Extra checks per member name, run after the built-in ones
    """

    def __init__(
        self, config: FormConfig, custom: Mapping[str, CustomValidator] | None = None
    ) -> None:
        self.config = config
        self.custom = dict(custom or {})

    def validate_member(self, name: str, values: Mapping[str, Any]) -> str | None:
        value = values.get(name)
        field = self.config.get_field(name)
        if field is not None:
            error = validate_field(field, value)
        else:
            rel = self.config.get_relationship(name)
            error = validate_relationship(rel, value) if rel is not None else None
        if error is None and name in self.custom:
            error = self.custom[name](value, values)
        return error

    def validate_members(self, names: Iterable[str], values: Mapping[str, Any]) -> dict[str, str]:
        errors: dict[str, str] = {}
        for name in names:
            error = self.validate_member(name, values)
            if error:
                errors[name] = error
        return errors

    def validate_step(self, index: int, values: Mapping[str, Any]) -> dict[str, str]:
        return self.validate_members(self.config.steps[index].members, values)

    def validate_all(self, values: Mapping[str, Any]) -> dict[str, str]:
        """Validate every member of every visible step."""
        errors: dict[str, str] = {}
        for step in self.config.steps:
            if not step.is_visible(values):
                continue
            for name, error in self.validate_members(step.members, values).items():
                errors.setdefault(name, error)
        return errors


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    return bool(value)


def _serialize_field(field: FieldConfig, value: Any) -> tuple[bool, Any]:
    """Returns (include, value)."""
    if field.type == FieldType.BOOLEAN:
        return True, _coerce_bool(value)

    if field.type == FieldType.NUMBER:
        number = parse_number(value)
        if number is not None:
            return True, int(number) if number.is_integer() else number
    elif field.type == FieldType.ENUM:
        if not is_empty(value) and value != NONE_SENTINEL:
            return True, value
    elif field.type == FieldType.DATE:
        parsed = parse_date(value) if not is_empty(value) else None
        if parsed is not None:
            return True, parsed.isoformat()
    elif not is_empty(value):
        return True, str(value)

    # Empty: required fields are sent as explicit nulls, optional ones omitted.
    return field.is_required, None


def serialize_for_submission(
    config: FormConfig, values: Mapping[str, Any], extra: Mapping[str, Any] | None = None
) -> dict[str, Any]:
    """
    Flatten form values into the object handed to the create/update collaborator.

    Relationships become ``{primaryKey: id}`` references (or a list of them).
    """
    payload: dict[str, Any] = {}
    for field in config.fields:
        include, value = _serialize_field(field, values.get(field.name))
        if include:
            payload[field.name] = value

    for rel in config.relationships:
        value = values.get(rel.name)
        if rel.multiple:
            ids = value if isinstance(value, list) else ([] if is_empty(value) else [value])
            payload[rel.name] = [{rel.primary_key: v} for v in ids if not is_empty(v)]
        elif is_empty(value):
            payload[rel.name] = None
        else:
            payload[rel.name] = {rel.primary_key: value}

    if extra:
        payload.update(extra)
    return payload
