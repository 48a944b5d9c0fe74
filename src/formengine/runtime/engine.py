"""
FormEngine: one active form session.

The engine owns ``FormState`` and routes every interaction through the
subsystems:

- ``StepNavigator`` for step transitions and step validation;
- ``RelationshipResolver`` for option sources, cascading resets and
  auto-population;
- ``HandoffChannel`` for cross-entity creation;
- ``DraftManager`` for named drafts, plus in-progress persistence under
  ``<storagePrefix><sessionId>``.

Hydration order on ``mount()``:
    edit mode: fetch the entity (relationship objects flattened to ids);
    new mode: created-entity notice (restores in-progress state, then
    selects the new id), else in-progress state, then the draft check.
The active step's option sources start loading afterwards.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from formengine.core.config import FormConfig, ValidationMode
from formengine.core.errors import FormEngineError, SubmissionError
from formengine.core.settings import EngineSettings
from formengine.runtime.collaborator import (
    CapabilityBundle,
    CapabilityRegistry,
    EntityDataSource,
    Record,
)
from formengine.runtime.drafts import (
    DRAFT_KEY_SEGMENT,
    DraftManager,
    DraftRepository,
    StorageDraftRepository,
)
from formengine.runtime.handoff import HandoffChannel
from formengine.runtime.models import (
    EntityCreationContext,
    InProgressSnapshot,
    NavigationHandoff,
    RelationshipFieldInfo,
    utcnow,
)
from formengine.runtime.navigation import StepNavigator
from formengine.runtime.notifications import LoggingNotifier, Notifier
from formengine.runtime.options import OptionSource
from formengine.runtime.resolver import DerivedWrite, RelationshipResolver, should_write
from formengine.runtime.state import DraftDialog, DraftDialogChoice, FormState
from formengine.runtime.storage import KeyValueStore, MemoryStore, read_json, write_json
from formengine.runtime.validation import CustomValidator, FormValidator, serialize_for_submission

logger = logging.getLogger(__name__)


@dataclass
class SubmitOutcome:
    """
    Result of ``FormEngine.submit``.

    Attributes:
        ok: The collaborator accepted the entity
        entity: Record returned by create/update
        entity_id: Id of the saved entity
        redirect_url: Return URL of a completed cross-entity handoff
        error: Collaborator failure message
        errors: Validation errors that blocked submission
    """

    ok: bool
    entity: Record | None = None
    entity_id: Any = None
    redirect_url: str | None = None
    error: str | None = None
    errors: dict[str, str] = field(default_factory=dict)


class FormEngine:
    """
    Headless runtime for one FormConfig.

    Args:
        config: Form configuration
        source: Data collaborator for the form's own entity
        registry: Capabilities for relationship option loading
        entity_id: Existing entity to edit; None for a new entity
        durable: Store that survives navigation (drafts, in-progress state, handoff)
        short_lived: Store consumed once (created-entity notice, form session id)
        notifier: Receives user-facing messages
        draft_repository: Draft storage; defaults to the durable store
        validators: Extra validation per member name
        settings: Page size and search debounce
        clock: Returns the current time
    """

    def __init__(
        self,
        config: FormConfig,
        source: EntityDataSource,
        *,
        registry: CapabilityRegistry | None = None,
        entity_id: Any = None,
        durable: KeyValueStore | None = None,
        short_lived: KeyValueStore | None = None,
        notifier: Notifier | None = None,
        draft_repository: DraftRepository | None = None,
        validators: Mapping[str, CustomValidator] | None = None,
        settings: EngineSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.source = source
        self.entity_id = entity_id
        self.durable = durable if durable is not None else MemoryStore()
        self.short_lived = short_lived if short_lived is not None else MemoryStore()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.settings = settings or EngineSettings()
        self.clock = clock

        bundles: dict[str, CapabilityBundle] = (registry or CapabilityRegistry()).bind(config)

        self.state = FormState(values=self.initial_values())
        self._baseline: dict[str, Any] = copy.deepcopy(self.state.values)
        self.validator = FormValidator(config, validators)
        self.navigator = StepNavigator(config, self.state, self.validator)
        self.resolver = RelationshipResolver(
            config,
            bundles,
            get_values=lambda: self.state.values,
            apply_writes=self._apply_writes,
            page_size=self.settings.page_size,
            debounce_seconds=self.settings.search_debounce_seconds,
        )
        self.handoff = HandoffChannel(self.durable, self.short_lived, config.behavior.cross_entity)
        persistence = config.behavior.persistence
        self.drafts = DraftManager(
            config,
            draft_repository or StorageDraftRepository(self.durable, persistence.storage_prefix),
            clock=clock,
        )
        self._autosave: asyncio.Task[None] | None = None
        self._mounted = False

    def __repr__(self) -> str:
        mode = f"edit {self.entity_id}" if self.is_edit else "new"
        return f"FormEngine({self.config.entity!r}, {mode}, step={self.state.current_step})"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_edit(self) -> bool:
        return self.entity_id is not None

    @property
    def is_new(self) -> bool:
        return self.entity_id is None

    @property
    def values(self) -> dict[str, Any]:
        return self.state.values

    @property
    def drafts_enabled(self) -> bool:
        return self.config.behavior.drafts.enabled and self.is_new

    @property
    def session_key(self) -> str:
        return f"{self.config.entity}_FormSession"

    @property
    def state_key(self) -> str:
        return f"{self.config.behavior.persistence.storage_prefix}{self.state.session_id}"

    def initial_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {}
        for f in self.config.fields:
            values[f.name] = f.initial_value()
        for rel in self.config.relationships:
            values[rel.name] = rel.initial_value()
        return values

    def options(self, name: str) -> OptionSource:
        """Option source backing relationship ``name``."""
        return self.resolver.source(name)

    def is_disabled(self, name: str) -> bool:
        return self.resolver.is_disabled(name, self.state.values)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def mount(self) -> None:
        """Hydrate state and start loading the active step's options."""
        if self._mounted:
            return
        self._mounted = True
        self.state.is_loading = True
        try:
            if self.is_edit:
                await self._hydrate_from_entity()
            else:
                self.clear_old_form_states()
                self._resume_session()
                restored = self._consume_created_entity()
                if not restored:
                    restored = self.restore_form_state()
                await self.check_for_drafts(auto_restore=not restored)
        finally:
            self.state.is_loading = False
        self._activate_current_step()

    async def settle(self) -> None:
        """Wait for outstanding option fetches and deferred auto-population."""
        await self.resolver.settle()
        self.state.is_auto_populating = self.resolver.is_auto_populating

    def unmount(self) -> None:
        self.resolver.close()
        if self._autosave is not None:
            self._autosave.cancel()
            self._autosave = None
        self._mounted = False

    def _resume_session(self) -> None:
        existing = read_json(self.short_lived, self.session_key)
        if isinstance(existing, str) and existing:
            self.state.session_id = existing
        else:
            write_json(self.short_lived, self.session_key, self.state.session_id)

    async def _hydrate_from_entity(self) -> None:
        try:
            record = await self.source.get(self.entity_id)
        except Exception as e:
            logger.warning(f"Failed to load {self.config.entity} {self.entity_id}: {e}")
            self.notifier.error(f"Failed to load {self.config.entity}")
            return
        if record is None:
            self.notifier.error(f"{self.config.entity} {self.entity_id} not found")
            return
        values = self.initial_values()
        for f in self.config.fields:
            if record.get(f.name) is not None:
                values[f.name] = record[f.name]
        for rel in self.config.relationships:
            values[rel.name] = _flatten_relationship(
                record.get(rel.name, record.get(f"{rel.name}Id")), rel.primary_key, rel.multiple
            )
        self.state.values = values
        self._baseline = copy.deepcopy(values)
        self._refresh_dirty()
        logger.debug(f"Hydrated {self.config.entity} {self.entity_id}")

    def _activate_current_step(self) -> None:
        step = self.config.steps[self.state.current_step]
        self.resolver.activate(step.relationships)

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def set_value(self, name: str, value: Any) -> bool:
        """
        User edit of a field or relationship.

        Returns False when ``name`` is a relationship that is currently
        disabled (its cascading parent is empty); the value is left as is.
        """
        if not self.config.has_member(name):
            raise KeyError(f"{self.config.entity} has no field or relationship '{name}'")
        if self.resolver.is_disabled(name, self.state.values):
            logger.debug(f"Ignoring edit of disabled relationship '{name}'")
            return False
        self.state.touched_fields.add(name)
        self._commit(name, value)
        if self._revalidates(name, ValidationMode.ON_CHANGE):
            self.validate_member(name)
        return True

    def blur(self, name: str) -> None:
        self.state.touched_fields.add(name)
        if self._revalidates(name, ValidationMode.ON_BLUR):
            self.validate_member(name)

    def validate_member(self, name: str) -> bool:
        error = self.validator.validate_member(name, self.state.values)
        if error:
            self.state.errors[name] = error
        else:
            self.state.errors.pop(name, None)
        return error is None

    def _revalidates(self, name: str, trigger: ValidationMode) -> bool:
        if name in self.state.errors:
            return self.config.validation.revalidate_mode == trigger
        return self.config.step_validation_mode(self.state.current_step) == trigger

    def _commit(self, name: str, value: Any) -> None:
        old = self.state.values.get(name)
        if old == value:
            return
        self.state.values[name] = value
        if self.config.get_relationship(name) is not None:
            change = self.resolver.handle_change(name, self.state.values)
            for dep, cleared in change.resets.items():
                self.state.values[dep] = cleared
                self.state.errors.pop(dep, None)
            self._apply_writes(change.writes)
        self._refresh_dirty()
        self._schedule_autosave()

    def _apply_writes(self, writes: list[DerivedWrite]) -> None:
        """Phase two of auto-population: apply a computed batch."""
        if not writes:
            return
        self.state.is_auto_populating = True
        try:
            for write in writes:
                if not should_write(write.rule, self.state.values.get(write.target), write.value):
                    continue
                logger.debug(f"Auto-populating '{write.target}' from '{write.rule.source_field}'")
                self._commit(write.target, write.value)
                if write.target in self.state.errors:
                    self.validate_member(write.target)
        finally:
            self.state.is_auto_populating = self.resolver.is_auto_populating

    def _refresh_dirty(self) -> None:
        self.state.is_dirty = self.state.values != self._baseline

    def _replace_values(self, data: Mapping[str, Any], step: int) -> None:
        values = self.initial_values()
        values.update({k: v for k, v in data.items() if self.config.has_member(k)})
        self.state.values = values
        self.state.errors = {}
        self.navigator.restore(step)
        self._refresh_dirty()
        if self._mounted and not self.state.is_loading:
            self._activate_current_step()

    # ------------------------------------------------------------------
    # Relationship options
    # ------------------------------------------------------------------

    def search(self, name: str, term: str) -> asyncio.Task[None] | None:
        return self.options(name).set_search_term(term)

    async def load_more(self, name: str) -> None:
        await self.options(name).load_more()

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def next_step(self) -> bool:
        moved = self.navigator.next()
        if moved:
            self._activate_current_step()
        return moved

    def prev_step(self) -> bool:
        moved = self.navigator.prev()
        if moved:
            self._activate_current_step()
        return moved

    def go_to_step(self, index: int) -> bool:
        moved = self.navigator.go_to_step(index)
        if moved:
            self._activate_current_step()
        return moved

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, extra: Mapping[str, Any] | None = None) -> SubmitOutcome:
        """
        Validate the whole form and hand the flattened values to the collaborator.

        Only available from the review step. Collaborator failures are
        reported through the notifier; the form stays on the review step
        with its values intact.
        """
        if self.state.is_submitting or self.state.is_submitted:
            return SubmitOutcome(ok=False, error="Form is already submitting or submitted")
        if not self.navigator.is_review:
            return SubmitOutcome(ok=False, error="Submit is only available from the review step")
        if self.resolver.is_auto_populating:
            await self.settle()
        if not self.navigator.validate_all():
            self.notifier.error("Please fix the highlighted fields before submitting")
            return SubmitOutcome(ok=False, errors=dict(self.state.errors))

        payload = serialize_for_submission(self.config, self.state.values, extra)
        timeout = self.config.validation.submit_timeout / 1000.0
        self.state.is_submitting = True
        try:
            result = await asyncio.wait_for(self._save_entity(payload), timeout)
        except TimeoutError:
            return self._submit_failed(
                SubmissionError(f"Saving {self.config.entity} timed out after {timeout:g}s")
            )
        except SubmissionError as e:
            return self._submit_failed(e)
        finally:
            self.state.is_submitting = False

        self.navigator.mark_submitted()
        entity_id = result.get("id", self.entity_id)
        redirect_url = None
        if self.is_new and self.config.behavior.cross_entity.enabled:
            redirect_url = self.handoff.complete(entity_id, entity_name=self.config.entity)
        await self._cleanup_after_submit()
        verb = "updated" if self.is_edit else "created"
        self.notifier.success(f"{self.config.entity} {verb} successfully")
        return SubmitOutcome(ok=True, entity=result, entity_id=entity_id, redirect_url=redirect_url)

    async def _save_entity(self, payload: Record) -> Record:
        try:
            if self.is_edit:
                result = await self.source.update(self.entity_id, payload)
            else:
                result = await self.source.create(payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise SubmissionError(f"Failed to save {self.config.entity}: {e}") from e
        return result or {}

    def _submit_failed(self, error: SubmissionError) -> SubmitOutcome:
        logger.warning(error.message)
        self.notifier.error(error.message)
        return SubmitOutcome(ok=False, error=error.message)

    async def _cleanup_after_submit(self) -> None:
        self.durable.remove(self.state_key)
        if self._autosave is not None:
            self._autosave.cancel()
            self._autosave = None
        if self.state.current_draft_id is not None:
            try:
                await self.drafts.delete_draft(self.state.current_draft_id)
            except Exception as e:
                logger.warning(f"Failed to delete submitted draft: {e}")
            self.state.current_draft_id = None
        self._baseline = copy.deepcopy(self.state.values)
        self._refresh_dirty()

    def reset(self) -> None:
        """Back to a blank form on the first step."""
        self.durable.remove(self.state_key)
        self.state.values = self.initial_values()
        self.state.errors = {}
        self.state.touched_fields = set()
        self.state.visited_steps = {0}
        self.state.current_step = 0
        self.state.current_draft_id = None
        self.state.is_submitted = False
        self._baseline = copy.deepcopy(self.state.values)
        self._refresh_dirty()
        if self._mounted:
            self.resolver.activate(self.config.steps[0].relationships)

    # ------------------------------------------------------------------
    # In-progress persistence
    # ------------------------------------------------------------------

    def save_form_state(self, *, cross_form: bool = False) -> bool:
        """Persist current values under the session key (new entities only)."""
        if self.is_edit or not self.config.behavior.persistence.enabled:
            return False
        snapshot = InProgressSnapshot(
            data=copy.deepcopy(self.state.values),
            current_step=self.state.current_step,
            timestamp=self.clock(),
            entity=self.config.entity,
            session_id=self.state.session_id,
            cross_form_navigation=cross_form,
        )
        write_json(self.durable, self.state_key, snapshot.to_payload())
        logger.debug(f"Saved in-progress {self.config.entity} state")
        return True

    def restore_form_state(self) -> bool:
        """Restore in-progress values saved by this session, unless stale."""
        if self.is_edit or not self.config.behavior.persistence.enabled:
            return False
        payload = read_json(self.durable, self.state_key)
        if not isinstance(payload, dict):
            return False
        try:
            snapshot = InProgressSnapshot.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding malformed in-progress state")
            self.durable.remove(self.state_key)
            return False
        timeout = timedelta(minutes=self.config.behavior.persistence.session_timeout_minutes)
        if (
            snapshot.entity != self.config.entity
            or snapshot.session_id != self.state.session_id
            or not snapshot.is_fresh(timeout, self.clock())
        ):
            logger.debug("Discarding stale in-progress state")
            self.durable.remove(self.state_key)
            return False
        self._replace_values(snapshot.data, snapshot.current_step)
        logger.info(f"Restored in-progress {self.config.entity} state")
        return True

    def clear_old_form_states(self) -> int:
        """Remove stale in-progress snapshots of this entity left by other sessions."""
        prefix = self.config.behavior.persistence.storage_prefix
        timeout = timedelta(minutes=self.config.behavior.persistence.session_timeout_minutes)
        removed = 0
        for key in self.durable.keys(prefix):
            if key.startswith(f"{prefix}{DRAFT_KEY_SEGMENT}"):
                continue
            payload = read_json(self.durable, key)
            if not isinstance(payload, dict) or "sessionId" not in payload:
                continue
            try:
                snapshot = InProgressSnapshot.model_validate(payload)
            except ValidationError:
                continue
            if snapshot.entity == self.config.entity and not snapshot.is_fresh(
                timeout, self.clock()
            ):
                self.durable.remove(key)
                removed += 1
        return removed

    def _schedule_autosave(self) -> None:
        if not self.config.behavior.auto_save.enabled or self.is_edit:
            return
        if self._autosave is not None:
            self._autosave.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._autosave_now()
            return
        self._autosave = loop.create_task(self._autosave_later())

    async def _autosave_later(self) -> None:
        await asyncio.sleep(self.config.behavior.auto_save.debounce_ms / 1000.0)
        self._autosave = None
        self._autosave_now()
        if self.config.behavior.drafts.auto_save and self.state.current_draft_id:
            await self.save_draft(silent=True)

    def _autosave_now(self) -> None:
        self.save_form_state()

    async def flush_autosave(self) -> None:
        """Run a pending debounced autosave immediately."""
        if self._autosave is None:
            return
        self._autosave.cancel()
        self._autosave = None
        self._autosave_now()
        if self.config.behavior.drafts.auto_save and self.state.current_draft_id:
            await self.save_draft(silent=True)

    # ------------------------------------------------------------------
    # Cross-entity creation
    # ------------------------------------------------------------------

    def begin_create_related(
        self, name: str, *, return_url: str, origin_route: str | None = None
    ) -> str:
        """
        Leave this form to create a record for relationship ``name``.

        Saves the in-progress values, posts the handoff and returns the
        create path to navigate to.
        """
        rel = self.config.get_relationship(name)
        if rel is None:
            raise KeyError(f"{self.config.entity} has no relationship '{name}'")
        if not self.config.behavior.cross_entity.enabled:
            raise FormEngineError(f"Cross-entity creation is disabled for {self.config.entity}")
        if not rel.creation.can_create or not rel.creation.create_path:
            raise FormEngineError(f"Relationship '{name}' does not allow inline creation")
        self.save_form_state(cross_form=True)
        self.handoff.post(
            NavigationHandoff(
                return_url=return_url,
                relationship_field_info=RelationshipFieldInfo(
                    entity_name=rel.entity_name,
                    display_field=rel.display_field,
                    multiple=rel.multiple,
                    relationship_name=rel.name,
                    timestamp=self.clock(),
                ),
                entity_creation_context=EntityCreationContext(
                    origin_route=origin_route or return_url,
                    origin_entity_name=self.config.entity,
                    target_entity_name=rel.target_entity,
                    source_entity=self.config.entity,
                ),
            )
        )
        return rel.creation.create_path

    def handle_entity_created(self, name: str, entity_id: Any) -> None:
        """Select a newly created record (appended for multi-selects)."""
        rel = self.config.get_relationship(name)
        if rel is None:
            raise KeyError(f"{self.config.entity} has no relationship '{name}'")
        if rel.multiple:
            current = list(self.state.values.get(name) or [])
            if entity_id not in current:
                current.append(entity_id)
            self.set_value(name, current)
        else:
            self.set_value(name, entity_id)
        if name in self.state.errors:
            self.validate_member(name)

    def _consume_created_entity(self) -> bool:
        if not self.config.behavior.cross_entity.enabled:
            return False
        for rel in self.config.relationships:
            notice = self.handoff.consume(rel.entity_name, rel.name)
            if notice is None:
                continue
            self.restore_form_state()
            self.handle_entity_created(rel.name, notice.entity_id)
            self.notifier.success(f"New {rel.display_label} selected")
            return True
        return False

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    async def save_draft(self, name: str | None = None, *, silent: bool = False) -> bool:
        if not self.drafts_enabled:
            return False
        self.state.is_saving_draft = True
        try:
            draft = await self.drafts.save_draft(
                self.state.values,
                current_step=self.state.current_step,
                session_id=self.state.session_id,
                entity_id=self.entity_id,
                name=name,
                draft_id=self.state.current_draft_id,
            )
        except Exception as e:
            logger.warning(f"Failed to save draft: {e}")
            self.notifier.error("Failed to save draft")
            return False
        finally:
            self.state.is_saving_draft = False
        self.state.current_draft_id = draft.id
        self._baseline = copy.deepcopy(self.state.values)
        self._refresh_dirty()
        await self.refresh_drafts()
        if not silent:
            self.notifier.success("Draft saved successfully")
        return True

    async def load_draft(self, draft_id: str, *, silent: bool = False) -> bool:
        if not self.config.behavior.drafts.enabled:
            return False
        try:
            draft = await self.drafts.load_draft(draft_id)
        except Exception as e:
            logger.warning(f"Failed to load draft {draft_id}: {e}")
            draft = None
        if draft is None:
            if not silent:
                self.notifier.error("Draft not found or has been deleted")
            return False
        self._replace_values(draft.values, draft.current_step)
        self.state.current_draft_id = draft.id
        self.state.draft_dialog = DraftDialog.NONE
        self._baseline = copy.deepcopy(self.state.values)
        self._refresh_dirty()
        if not silent:
            self.notifier.success("Draft restored successfully")
        return True

    async def delete_draft(self, draft_id: str) -> bool:
        if not self.config.behavior.drafts.enabled:
            return False
        try:
            deleted = await self.drafts.delete_draft(draft_id)
        except Exception as e:
            logger.warning(f"Failed to delete draft {draft_id}: {e}")
            self.notifier.error("Failed to delete draft")
            return False
        if self.state.current_draft_id == draft_id:
            self.state.current_draft_id = None
        await self.refresh_drafts()
        if deleted:
            self.notifier.success("Draft deleted successfully")
        return deleted

    async def refresh_drafts(self) -> None:
        try:
            self.state.drafts = await self.drafts.summaries(self.entity_id)
        except Exception as e:
            logger.warning(f"Failed to list drafts: {e}")
            self.state.drafts = []

    async def check_for_drafts(self, *, auto_restore: bool = True) -> None:
        """List drafts on entry; prompt or silently restore per configuration."""
        if not self.drafts_enabled:
            return
        try:
            check = await self.drafts.check_for_drafts(self.entity_id)
        except Exception as e:
            logger.warning(f"Draft check failed: {e}")
            return
        self.state.drafts = check.drafts
        if not auto_restore:
            return
        if check.prompt:
            self.state.draft_dialog = DraftDialog.RESTORE
        elif check.restore is not None:
            await self.load_draft(check.restore.id, silent=True)

    def dismiss_restore_dialog(self) -> None:
        if self.state.draft_dialog == DraftDialog.RESTORE:
            self.state.draft_dialog = DraftDialog.NONE

    def has_unsaved_changes(self) -> bool:
        return self.state.is_dirty and self.drafts_enabled

    async def on_navigation(self, target: str) -> bool:
        """
        The host is about to leave the form for ``target``.

        Returns True when navigation may proceed now. With ``confirmDialog``
        the save-draft dialog is raised and navigation is parked until
        ``resolve_draft_dialog``.
        """
        drafts = self.config.behavior.drafts
        if not self.has_unsaved_changes() or not drafts.save_behavior.saves_on_navigation:
            return True
        if drafts.confirm_dialog:
            self.state.pending_navigation = target
            self.state.draft_dialog = DraftDialog.SAVE
            return False
        await self.save_draft(silent=True)
        return True

    async def on_unload(self) -> bool:
        """The host is closing; saves a draft silently when configured. Returns whether it saved."""
        drafts = self.config.behavior.drafts
        if not self.has_unsaved_changes() or not drafts.save_behavior.saves_on_unload:
            return False
        return await self.save_draft(silent=True)

    async def resolve_draft_dialog(self, choice: DraftDialogChoice | str) -> str | None:
        """
        Answer the save-draft dialog.

        Returns the parked navigation target when navigation should now
        proceed, or None when it stays cancelled (or saving failed).
        """
        choice = DraftDialogChoice(choice)
        target = self.state.pending_navigation
        if choice == DraftDialogChoice.CANCEL:
            self.state.pending_navigation = None
            self.state.draft_dialog = DraftDialog.NONE
            return None
        if choice == DraftDialogChoice.SAVE and not await self.save_draft():
            return None
        self.state.pending_navigation = None
        self.state.draft_dialog = DraftDialog.NONE
        return target


def _flatten_relationship(value: Any, primary_key: str, multiple: bool) -> Any:
    """Entity payloads embed related objects; form values hold their ids."""

    def key_of(item: Any) -> Any:
        return item.get(primary_key) if isinstance(item, dict) else item

    if multiple:
        if value is None:
            return []
        items = value if isinstance(value, list) else [value]
        return [k for k in (key_of(i) for i in items) if k is not None]
    return key_of(value)
