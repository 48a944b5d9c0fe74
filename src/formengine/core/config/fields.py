"""
Scalar field definitions for formengine configuration.

A field maps 1:1 to a scalar or date value on the entity being edited.
"""

from __future__ import annotations

import re
from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator, model_validator

from .base import ConfigModel


class FieldType(StrEnum):
    """Primitive input types a field can render as."""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ENUM = "enum"
    FILE = "file"
    TEXTAREA = "textarea"


class FieldOption(ConfigModel):
    """A selectable value of an enum field."""

    value: str
    label: str


class FieldValidation(ConfigModel):
    """
    Declarative constraints for a single field.

    Attributes:
        required: Value must be non-empty
        min_length / max_length: String length bounds
        min / max: Numeric bounds (inclusive)
        pattern: Regular expression the string value must match (full match)
    """

    required: bool = False
    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=0)
    min: float | None = None
    max: float | None = None
    pattern: str | None = None

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        """Ensure the pattern compiles."""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f"Invalid pattern '{v}': {e}") from e
        return v

    @model_validator(mode="after")
    def validate_bounds(self) -> FieldValidation:
        if (
            self.min_length is not None
            and self.max_length is not None
            and self.min_length > self.max_length
        ):
            raise ValueError(f"minLength {self.min_length} exceeds maxLength {self.max_length}")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"min {self.min} exceeds max {self.max}")
        return self


class FieldUIConfig(ConfigModel):
    """Rendering hints; opaque to the engine except ``disabled``/``readonly``."""

    rows: int | None = None
    input_type: str | None = None
    class_name: str | None = None
    disabled: bool = False
    readonly: bool = False


class FieldConfig(ConfigModel):
    """
    Specification for a single scalar field on the form.

    Attributes:
        name: Field identifier (value key in FormState.values)
        type: Primitive input type
        label: Human-readable label used in error messages
        required: Whether a value must be supplied
        options: Choices for enum fields
        default_value: Initial value for new forms
        validation: Constraint block
    """

    name: str
    type: FieldType = FieldType.TEXT
    label: str = ""
    placeholder: str | None = None
    required: bool = False
    options: list[FieldOption] = Field(default_factory=list)
    accept: str | None = None
    default_value: Any = None
    validation: FieldValidation = Field(default_factory=FieldValidation)
    ui: FieldUIConfig = Field(default_factory=FieldUIConfig)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"Field name '{v}' is not a valid identifier")
        return v

    @model_validator(mode="after")
    def validate_enum_options(self) -> FieldConfig:
        if self.type == FieldType.ENUM and not self.options:
            raise ValueError(f"Enum field '{self.name}' declares no options")
        return self

    @property
    def is_required(self) -> bool:
        """Required either at the top level or inside the validation block."""
        return self.required or self.validation.required

    @property
    def display_label(self) -> str:
        return self.label or self.name

    @property
    def option_values(self) -> list[str]:
        return [opt.value for opt in self.options]

    def initial_value(self) -> Any:
        """Empty value for a new form, honouring ``default_value``."""
        if self.default_value is not None:
            return self.default_value
        if self.type == FieldType.BOOLEAN:
            return False
        if self.type == FieldType.ENUM:
            return self.options[0].value if self.is_required and self.options else None
        if self.type in (FieldType.DATE, FieldType.FILE):
            return None
        return ""
