"""Headless form runtime: option sources, relationship rules, navigation, handoff, drafts."""

from .collaborator import (
    CapabilityBundle,
    CapabilityRegistry,
    EntityDataSource,
    InMemoryEntitySource,
)
from .drafts import DraftManager, DraftRepository, EntityDraftRepository, StorageDraftRepository
from .engine import FormEngine, SubmitOutcome
from .handoff import HandoffChannel
from .models import (
    CreatedEntityNotice,
    Draft,
    DraftSummary,
    EntityCreationContext,
    InProgressSnapshot,
    NavigationHandoff,
    RelationshipFieldInfo,
)
from .navigation import StepNavigator
from .notifications import LoggingNotifier, Notifier
from .options import OptionMode, OptionSource
from .resolver import DerivedWrite, RelationshipResolver
from .state import DraftDialog, DraftDialogChoice, FormState
from .storage import JsonFileStore, KeyValueStore, MemoryStore, SqliteStore, open_store
from .validation import FormValidator, serialize_for_submission

__all__ = [
    "CapabilityBundle",
    "CapabilityRegistry",
    "CreatedEntityNotice",
    "DerivedWrite",
    "Draft",
    "DraftDialog",
    "DraftDialogChoice",
    "DraftManager",
    "DraftRepository",
    "DraftSummary",
    "EntityCreationContext",
    "EntityDataSource",
    "EntityDraftRepository",
    "FormEngine",
    "FormState",
    "FormValidator",
    "HandoffChannel",
    "InMemoryEntitySource",
    "InProgressSnapshot",
    "JsonFileStore",
    "KeyValueStore",
    "LoggingNotifier",
    "MemoryStore",
    "NavigationHandoff",
    "Notifier",
    "OptionMode",
    "OptionSource",
    "RelationshipFieldInfo",
    "RelationshipResolver",
    "SqliteStore",
    "StepNavigator",
    "StorageDraftRepository",
    "SubmitOutcome",
    "open_store",
    "serialize_for_submission",
]
