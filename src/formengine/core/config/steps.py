"""
Step definitions for formengine configuration.

Steps are static; the engine's current step index is the only mutable
projection of them.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import Field

from .base import ConfigModel


class ValidationMode(StrEnum):
    """When single-field errors are recomputed."""

    ON_CHANGE = "onChange"
    ON_BLUR = "onBlur"
    ON_SUBMIT = "onSubmit"


class ConditionalOperator(StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    EXISTS = "exists"


class RuleLogic(StrEnum):
    AND = "and"
    OR = "or"


class StepValidation(ConfigModel):
    """Per-step validation behaviour."""

    mode: ValidationMode = ValidationMode.ON_BLUR
    validate_on_next: bool = True


class ConditionalRule(ConfigModel):
    """
    Visibility rule evaluated against the current form values.

    A rule compares ``values[field]`` with ``value`` using ``operator``;
    nested ``rules`` are combined with the rule's own result using ``logic``.

    Examples:
        - {field: type, operator: equals, value: inbound}
        - {field: customer, operator: exists}
    """

    field: str
    operator: ConditionalOperator = ConditionalOperator.EQUALS
    value: Any = None
    logic: RuleLogic = RuleLogic.AND
    rules: list[ConditionalRule] = Field(default_factory=list)

    def _matches(self, values: Mapping[str, Any]) -> bool:
        actual = values.get(self.field)
        if self.operator == ConditionalOperator.EXISTS:
            return actual not in (None, "", [])
        if self.operator == ConditionalOperator.EQUALS:
            return bool(actual == self.value)
        if self.operator == ConditionalOperator.NOT_EQUALS:
            return bool(actual != self.value)
        # CONTAINS
        if isinstance(actual, str):
            return str(self.value) in actual
        if isinstance(actual, (list, tuple, set)):
            return self.value in actual
        return False

    def evaluate(self, values: Mapping[str, Any]) -> bool:
        results = [self._matches(values)] + [rule.evaluate(values) for rule in self.rules]
        if self.logic == RuleLogic.OR:
            return any(results)
        return all(results)

    def referenced_fields(self) -> set[str]:
        names = {self.field}
        for rule in self.rules:
            names |= rule.referenced_fields()
        return names


class FormStep(ConfigModel):
    """
    One page of the wizard.

    Attributes:
        id: Step identifier
        title: Heading shown to the user
        fields: Ordered field names rendered on this step
        relationships: Ordered relationship names rendered on this step
        validation: Step validation; None inherits the form's navigation policy
        conditional_render: Optional visibility rule
    """

    id: str
    title: str = ""
    description: str = ""
    fields: list[str] = Field(default_factory=list)
    relationships: list[str] = Field(default_factory=list)
    validation: StepValidation | None = None
    conditional_render: ConditionalRule | None = None

    @property
    def members(self) -> list[str]:
        """Field names followed by relationship names, in declaration order."""
        return [*self.fields, *self.relationships]

    def is_visible(self, values: Mapping[str, Any]) -> bool:
        if self.conditional_render is None:
            return True
        return self.conditional_render.evaluate(values)
