"""
Mutable per-session form state.
"""

from __future__ import annotations

import uuid
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formengine.runtime.models import DraftSummary


class DraftDialog(StrEnum):
    """Which draft dialog, if any, the host should show."""

    NONE = "none"
    SAVE = "save"  # Save-before-leaving prompt
    RESTORE = "restore"  # Drafts found on mount


class DraftDialogChoice(StrEnum):
    SAVE = "save"
    DISCARD = "discard"
    CANCEL = "cancel"


def new_session_id() -> str:
    return f"session_{uuid.uuid4().hex[:12]}"


class FormState(BaseModel):
    """State of one active form session."""

    current_step: int = Field(default=0, description="Index of the active step")
    values: dict[str, Any] = Field(default_factory=dict, description="Field and relationship values")
    errors: dict[str, str] = Field(default_factory=dict, description="Validation errors by member")
    touched_fields: set[str] = Field(default_factory=set)
    visited_steps: set[int] = Field(default_factory=lambda: {0})
    is_dirty: bool = False
    is_loading: bool = False
    is_submitting: bool = False
    is_submitted: bool = False
    is_auto_populating: bool = False
    session_id: str = Field(default_factory=new_session_id)

    # Draft sub-state
    drafts: list[DraftSummary] = Field(default_factory=list)
    draft_dialog: DraftDialog = DraftDialog.NONE
    current_draft_id: str | None = None
    is_saving_draft: bool = False
    pending_navigation: str | None = Field(
        default=None, description="Navigation target parked behind the save-draft dialog"
    )

    model_config = ConfigDict(frozen=False)

    @property
    def show_draft_dialog(self) -> bool:
        return self.draft_dialog == DraftDialog.SAVE

    @property
    def show_restore_dialog(self) -> bool:
        return self.draft_dialog == DraftDialog.RESTORE
