"""
Relationship definitions for formengine configuration.

A relationship is a form value that references records of another entity:
its options come from that entity's data source, it may be filtered by a
parent relationship (cascading filter), it may copy a property of the
selected record into another field (auto-population), and the user may be
allowed to create a missing target record inline.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, Field, field_validator

from .base import ConfigModel


class RelationshipType(StrEnum):
    """Cardinality of the reference."""

    MANY_TO_ONE = "many-to-one"
    ONE_TO_MANY = "one-to-many"
    MANY_TO_MANY = "many-to-many"


class RelationshipCategory(StrEnum):
    """Grouping used only by review and UI layers."""

    GEOGRAPHIC = "geographic"
    USER = "user"
    CLASSIFICATION = "classification"
    BUSINESS = "business"
    OTHER = "other"


class CascadingFilter(ConfigModel):
    """
    Restricts this relationship's options by the parent's current selection.

    Attributes:
        parent_field: Name of the parent relationship
        filter_field: Property of this relationship's records holding the parent id;
            sent to the data source as ``<filter_field>Id.equals``
    """

    parent_field: str
    filter_field: str

    @property
    def filter_param(self) -> str:
        return f"{self.filter_field}Id.equals"


class AutoPopulate(ConfigModel):
    """
    Copies a property of the record selected in ``source_field`` into ``target_field``.

    The write happens when the target is empty, or always when
    ``allow_override`` is set; it is skipped when the value would not change.
    """

    source_field: str
    source_property: str
    target_field: str
    allow_override: bool = False


class RelationshipAPI(ConfigModel):
    """
    Names of the data capabilities a relationship needs.

    Generated configs name hooks (``useGetAllHook``); both spellings load.
    The engine resolves capabilities by target entity, these names are kept
    for diagnostics and to declare whether search/count are available.
    """

    list_all: str = Field(
        default="",
        validation_alias=AliasChoices("listAll", "list_all", "useGetAllHook"),
    )
    search: str | None = Field(
        default=None,
        validation_alias=AliasChoices("search", "useSearchHook"),
    )
    count: str | None = Field(
        default=None,
        validation_alias=AliasChoices("count", "useCountHook"),
    )
    entity_name: str = ""


class CreationConfig(ConfigModel):
    """Whether and where the user may create a missing target record."""

    can_create: bool = False
    create_path: str | None = None
    create_permission: str | None = None


class RelationshipUIConfig(ConfigModel):
    label: str = ""
    placeholder: str = ""
    icon: str | None = None
    disabled: bool = False


class RelationshipConfig(ConfigModel):
    """
    Specification for a single relationship on the form.

    Attributes:
        name: Relationship identifier (value key in FormState.values)
        type: Cardinality
        target_entity: Entity whose records are offered as options
        display_field: Record property used as the human-readable label
        primary_key: Record property holding the id
        multiple: Value is a list of ids instead of a single id
        cascading_filter: Optional parent filter
        auto_populate: Optional derived write triggered by a source selection
        custom_filters: Static params always sent to the data source
    """

    name: str
    type: RelationshipType = RelationshipType.MANY_TO_ONE
    target_entity: str
    display_field: str = "name"
    primary_key: str = "id"
    required: bool = False
    multiple: bool = False
    category: RelationshipCategory = RelationshipCategory.OTHER
    cascading_filter: CascadingFilter | None = None
    auto_populate: AutoPopulate | None = None
    custom_filters: dict[str, Any] = Field(default_factory=dict)
    api: RelationshipAPI = Field(default_factory=RelationshipAPI)
    creation: CreationConfig = Field(default_factory=CreationConfig)
    ui: RelationshipUIConfig = Field(default_factory=RelationshipUIConfig)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"Relationship name '{v}' is not a valid identifier")
        return v

    @property
    def display_label(self) -> str:
        return self.ui.label or self.name

    @property
    def entity_name(self) -> str:
        """Name used to match cross-entity handoffs to this relationship."""
        return self.api.entity_name or self.target_entity

    @property
    def supports_search(self) -> bool:
        return bool(self.api.search)

    def initial_value(self) -> Any:
        return [] if self.multiple else None
