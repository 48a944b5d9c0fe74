"""
The FormConfig root type.

A FormConfig is immutable per entity type. Cross-references (step members,
cascading parents, auto-population sources and targets) are checked when
the model is built, so a config that references an unknown name never
reaches the runtime.
"""

from __future__ import annotations

from pydantic import Field, model_validator

from .base import ConfigModel
from .behavior import BehaviorConfig, UIConfig, ValidationConfig
from .fields import FieldConfig
from .relationships import AutoPopulate, RelationshipConfig
from .steps import FormStep, ValidationMode


def _duplicates(names: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


class FormConfig(ConfigModel):
    """
    Complete description of one entity's stepped form.

    Attributes:
        entity: Entity name, e.g. "Call"
        steps: Ordered wizard steps; the last one is conventionally the review step
        fields: Scalar field definitions
        relationships: Relationship definitions
        validation: Form-wide validation settings
        ui: Presentation hints
        behavior: Persistence, navigation, cross-entity and draft behaviour
    """

    entity: str
    steps: list[FormStep]
    fields: list[FieldConfig] = Field(default_factory=list)
    relationships: list[RelationshipConfig] = Field(default_factory=list)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)

    @model_validator(mode="after")
    def validate_references(self) -> FormConfig:
        """Reject configs whose names do not resolve."""
        if not self.steps:
            raise ValueError("steps: a form needs at least one step")

        for label, names in (
            ("step id", [s.id for s in self.steps]),
            ("field", [f.name for f in self.fields]),
            ("relationship", [r.name for r in self.relationships]),
        ):
            dupes = _duplicates(names)
            if dupes:
                raise ValueError(f"Duplicate {label} name(s): {', '.join(dupes)}")

        field_names = {f.name for f in self.fields}
        rel_names = {r.name for r in self.relationships}
        shared = sorted(field_names & rel_names)
        if shared:
            raise ValueError(f"Names used by both a field and a relationship: {', '.join(shared)}")

        for step in self.steps:
            for name in step.fields:
                if name not in field_names:
                    raise ValueError(f"steps.{step.id}: unknown field '{name}'")
            for name in step.relationships:
                if name not in rel_names:
                    raise ValueError(f"steps.{step.id}: unknown relationship '{name}'")

        for rel in self.relationships:
            cf = rel.cascading_filter
            if cf is not None:
                if cf.parent_field == rel.name:
                    raise ValueError(
                        f"relationships.{rel.name}: cascadingFilter.parentField cannot be itself"
                    )
                if cf.parent_field not in rel_names:
                    raise ValueError(
                        f"relationships.{rel.name}: cascadingFilter.parentField "
                        f"'{cf.parent_field}' is not a relationship"
                    )
            ap = rel.auto_populate
            if ap is not None:
                if ap.source_field not in rel_names:
                    raise ValueError(
                        f"relationships.{rel.name}: autoPopulate.sourceField "
                        f"'{ap.source_field}' is not a relationship"
                    )
                if ap.target_field not in field_names | rel_names:
                    raise ValueError(
                        f"relationships.{rel.name}: autoPopulate.targetField "
                        f"'{ap.target_field}' is not a field or relationship"
                    )

        self._check_cascade_cycles()
        return self

    def _check_cascade_cycles(self) -> None:
        parents = {
            r.name: r.cascading_filter.parent_field
            for r in self.relationships
            if r.cascading_filter is not None
        }
        for start in parents:
            chain = [start]
            current = parents.get(start)
            while current is not None:
                if current in chain:
                    cycle = " -> ".join([*chain, current])
                    raise ValueError(f"Cyclic cascading filter: {cycle}")
                chain.append(current)
                current = parents.get(current)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_step(self, step_id: str) -> FormStep | None:
        """Get step by id."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def get_field(self, name: str) -> FieldConfig | None:
        """Get field by name."""
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def get_relationship(self, name: str) -> RelationshipConfig | None:
        """Get relationship by name."""
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def has_member(self, name: str) -> bool:
        return self.get_field(name) is not None or self.get_relationship(name) is not None

    def step_members(self, step_id: str) -> list[str]:
        step = self.get_step(step_id)
        return step.members if step else []

    def step_index_of(self, name: str) -> int | None:
        """Index of the first step rendering the given field or relationship."""
        for index, step in enumerate(self.steps):
            if name in step.members:
                return index
        return None

    def dependents_of(self, name: str) -> list[RelationshipConfig]:
        """Relationships whose cascading filter names ``name`` as parent."""
        return [
            r
            for r in self.relationships
            if r.cascading_filter is not None and r.cascading_filter.parent_field == name
        ]

    def auto_populations_from(self, source: str) -> list[AutoPopulate]:
        """Auto-population rules triggered by a selection in ``source``."""
        return [
            r.auto_populate
            for r in self.relationships
            if r.auto_populate is not None and r.auto_populate.source_field == source
        ]

    def step_validates_on_next(self, index: int) -> bool:
        step = self.steps[index]
        if step.validation is None:
            return self.behavior.navigation.validate_on_next
        return step.validation.validate_on_next

    def step_validation_mode(self, index: int) -> ValidationMode:
        step = self.steps[index]
        if step.validation is None:
            return self.validation.mode
        return step.validation.mode

    @property
    def review_step_index(self) -> int:
        return len(self.steps) - 1

    @property
    def member_names(self) -> list[str]:
        return [f.name for f in self.fields] + [r.name for r in self.relationships]
