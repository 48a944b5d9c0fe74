"""
Payload models exchanged through storage.

These records cross process and form boundaries (a handoff is written by
one form and read by another; drafts outlive the form that saved them),
so they serialize with the camelCase keys used by the host application.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DRAFT_FORMAT_VERSION = "1.0"

# A handoff older than this is ignored on return.
HANDOFF_MAX_AGE = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Stored timestamps without an offset are read as UTC."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class PayloadModel(BaseModel):
    """Base for stored payloads: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class RelationshipFieldInfo(PayloadModel):
    """Which relationship on the origin form is waiting for a new record."""

    entity_name: str
    display_field: str = "name"
    multiple: bool = False
    relationship_name: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)

    def matches(self, entity_name: str, relationship_name: str | None = None) -> bool:
        if self.entity_name != entity_name:
            return False
        if relationship_name and self.relationship_name:
            return self.relationship_name == relationship_name
        return True


class EntityCreationContext(PayloadModel):
    origin_route: str
    origin_entity_name: str
    target_entity_name: str
    source_entity: str | None = None
    created_from: str = "relationship"


class NavigationHandoff(PayloadModel):
    """
    Pending cross-entity creation, written when the user leaves form A.

    Attributes:
        return_url: Where the target form sends the user after creation
        relationship_field_info: The waiting relationship on form A
        entity_creation_context: Origin and target entity for the creation
    """

    return_url: str
    relationship_field_info: RelationshipFieldInfo
    entity_creation_context: EntityCreationContext | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        now = as_utc(now or utcnow())
        return now - self.relationship_field_info.timestamp > HANDOFF_MAX_AGE


class CreatedEntityNotice(PayloadModel):
    """Written by the target form after a successful create; consumed once by form A."""

    entity_id: Any
    relationship_field_info: RelationshipFieldInfo


class DraftSummary(PayloadModel):
    """Listing projection of a draft."""

    id: str
    name: str
    entity_id: Any | None = None
    current_step: int = 0
    created_at: datetime
    updated_at: datetime
    is_stale: bool = False


class Draft(PayloadModel):
    """
    Named snapshot of form values.

    ``sequence`` breaks ties between drafts created within the same clock
    tick so eviction order stays deterministic.
    """

    id: str
    entity_type: str
    entity_id: Any | None = None
    name: str
    values: dict[str, Any] = Field(default_factory=dict)
    current_step: int = 0
    session_id: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    sequence: int = 0
    version: str = DRAFT_FORMAT_VERSION

    @field_validator("created_at", "updated_at")
    @classmethod
    def validate_timestamps(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def age_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.sequence)

    def is_stale(self, timeout: timedelta, now: datetime | None = None) -> bool:
        now = as_utc(now or utcnow())
        return now - self.updated_at > timeout

    def summary(self, timeout: timedelta, now: datetime | None = None) -> DraftSummary:
        return DraftSummary(
            id=self.id,
            name=self.name,
            entity_id=self.entity_id,
            current_step=self.current_step,
            created_at=self.created_at,
            updated_at=self.updated_at,
            is_stale=self.is_stale(timeout, now),
        )


class InProgressSnapshot(PayloadModel):
    """Unsaved values kept across a navigation, keyed by form session."""

    data: dict[str, Any] = Field(default_factory=dict)
    current_step: int = 0
    timestamp: datetime = Field(default_factory=utcnow)
    entity: str
    session_id: str
    cross_form_navigation: bool = False

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        return as_utc(v)

    def is_fresh(self, timeout: timedelta, now: datetime | None = None) -> bool:
        now = as_utc(now or utcnow())
        return now - self.timestamp <= timeout
