"""
Global validation, UI and behavior settings of a form.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import Field

from .base import ConfigModel
from .steps import ValidationMode


class ValidationConfig(ConfigModel):
    """
    Form-wide validation settings.

    Attributes:
        mode: Default single-field validation trigger
        revalidate_mode: Trigger once a field already shows an error
        submit_timeout: Milliseconds allowed for the create/update call
    """

    mode: ValidationMode = ValidationMode.ON_BLUR
    revalidate_mode: ValidationMode = ValidationMode.ON_BLUR
    submit_timeout: int = Field(default=30000, gt=0)


class ResponsiveConfig(ConfigModel):
    mobile: str = ""
    tablet: str = ""
    desktop: str = ""


class AnimationConfig(ConfigModel):
    step_transition: str = ""
    field_focus: str = ""


class SpacingConfig(ConfigModel):
    step_gap: str = ""
    field_gap: str = ""
    section_gap: str = ""


class UIConfig(ConfigModel):
    """Presentation hints, carried through untouched for the host UI."""

    responsive: ResponsiveConfig = Field(default_factory=ResponsiveConfig)
    animations: AnimationConfig = Field(default_factory=AnimationConfig)
    spacing: SpacingConfig = Field(default_factory=SpacingConfig)


class AutoSaveConfig(ConfigModel):
    """Debounced save of in-progress state after every change."""

    enabled: bool = False
    debounce_ms: int = Field(default=2000, ge=0)


class PersistenceConfig(ConfigModel):
    """In-progress state persistence (distinct from drafts)."""

    enabled: bool = True
    session_timeout_minutes: int = Field(default=30, gt=0)
    storage_prefix: str = "FormState_"


class NavigationConfig(ConfigModel):
    confirm_on_cancel: bool = False
    allow_step_skipping: bool = False
    validate_on_next: bool = True


class CrossEntityConfig(ConfigModel):
    """Well-known storage keys of the cross-entity handoff."""

    enabled: bool = True
    return_url_key: str = "returnUrl"
    relationship_info_key: str = "relationshipFieldInfo"
    new_entity_id_key: str = "newlyCreatedEntityId"
    creation_context_key: str = "entityCreationContext"


class SaveBehavior(StrEnum):
    """When drafts are written without an explicit save."""

    ON_NAVIGATION = "onNavigation"
    ON_UNLOAD = "onUnload"
    BOTH = "both"
    MANUAL = "manual"

    @property
    def saves_on_navigation(self) -> bool:
        return self in (SaveBehavior.ON_NAVIGATION, SaveBehavior.BOTH)

    @property
    def saves_on_unload(self) -> bool:
        return self in (SaveBehavior.ON_UNLOAD, SaveBehavior.BOTH)


class DraftsConfig(ConfigModel):
    """
    Named draft snapshots.

    Attributes:
        save_behavior: Automatic save triggers
        confirm_dialog: Ask before an automatic save instead of saving silently
        max_drafts: Cap per entity type; the oldest draft is evicted on overflow
        show_restoration_dialog: Prompt on mount instead of auto-restoring
    """

    enabled: bool = False
    save_behavior: SaveBehavior = SaveBehavior.ON_NAVIGATION
    confirm_dialog: bool = True
    auto_save: bool = False
    max_drafts: int = Field(default=5, ge=1)
    show_restoration_dialog: bool = True


class BehaviorConfig(ConfigModel):
    auto_save: AutoSaveConfig = Field(default_factory=AutoSaveConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    navigation: NavigationConfig = Field(default_factory=NavigationConfig)
    cross_entity: CrossEntityConfig = Field(default_factory=CrossEntityConfig)
    drafts: DraftsConfig = Field(default_factory=DraftsConfig)
