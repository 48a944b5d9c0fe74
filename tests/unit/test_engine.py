"""End-to-end tests for FormEngine sessions."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from formengine.core.config import FormConfig, SaveBehavior
from formengine.core.errors import FormEngineError
from formengine.runtime.collaborator import CapabilityRegistry, InMemoryEntitySource
from formengine.runtime.drafts import DraftManager, StorageDraftRepository
from formengine.runtime.engine import FormEngine
from formengine.runtime.models import InProgressSnapshot, utcnow
from formengine.runtime.state import DraftDialog, DraftDialogChoice


def _with(config: FormConfig, section: str, **changes: Any) -> FormConfig:
    """Copy of ``config`` with fields of ``behavior.<section>`` or ``validation`` replaced."""
    if section == "validation":
        return config.model_copy(update={"validation": config.validation.model_copy(update=changes)})
    part = getattr(config.behavior, section).model_copy(update=changes)
    return config.model_copy(
        update={"behavior": config.behavior.model_copy(update={section: part})}
    )


async def _fill_valid(engine: FormEngine) -> None:
    engine.set_value("priority", 1)
    engine.set_value("callType", 5)
    engine.set_value("customer", 100)
    engine.set_value("callDateTime", "2024-05-01T10:00:00Z")
    await engine.settle()


class FailingSource(InMemoryEntitySource):
    async def create(self, data: dict[str, Any]) -> dict[str, Any]:
        raise RuntimeError("database unavailable")


class TestMountAndValues:
    @pytest.mark.asyncio
    async def test_new_form_starts_blank(self, make_call_engine, call_sources) -> None:
        engine = make_call_engine()
        await engine.mount()
        await engine.settle()
        assert engine.state.current_step == 0
        assert engine.values["customerPhone"] == ""
        assert not engine.state.is_dirty
        assert len(engine.options("priority").records) == 2
        assert engine.is_disabled("subCallType")
        assert call_sources["customer"].calls == []

    @pytest.mark.asyncio
    async def test_unknown_member_rejected(self, make_call_engine) -> None:
        engine = make_call_engine()
        with pytest.raises(KeyError):
            engine.set_value("nickname", "x")

    @pytest.mark.asyncio
    async def test_dirty_tracks_baseline(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("remark", "hello")
        assert engine.state.is_dirty
        engine.set_value("remark", "")
        assert not engine.state.is_dirty

    @pytest.mark.asyncio
    async def test_cascading_reset_through_engine(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("callType", 5)
        await engine.settle()
        engine.set_value("subCallType", 51)
        engine.set_value("callType", 7)
        assert engine.values["subCallType"] is None
        await engine.settle()
        assert [r["id"] for r in engine.options("subCallType").records] == [71]

    @pytest.mark.asyncio
    async def test_disabled_child_refuses_edits(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        assert engine.is_disabled("subCallType")
        assert not engine.set_value("subCallType", 51)
        assert engine.values["subCallType"] is None
        assert not engine.state.is_dirty

        assert engine.set_value("callType", 5)
        assert engine.set_value("subCallType", 51)
        assert engine.values["subCallType"] == 51

    @pytest.mark.asyncio
    async def test_auto_population_after_lookup(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("customer", 101)
        await engine.settle()
        assert engine.values["customerPhone"] == "8888"
        assert not engine.state.is_auto_populating

    @pytest.mark.asyncio
    async def test_blur_then_change_revalidates(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("priority", None)
        assert "priority" not in engine.state.errors
        engine.blur("priority")
        assert engine.state.errors["priority"] == "Please select priority"
        engine.set_value("priority", 2)
        assert "priority" not in engine.state.errors

    @pytest.mark.asyncio
    async def test_search_and_load_more(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.next_step()
        engine.set_value("priority", 1)
        engine.set_value("callType", 5)
        assert engine.next_step()
        await engine.settle()
        assert len(engine.options("customer").records) == 2

        engine.search("customer", "glo")
        await engine.settle()
        assert [r["customerBusinessName"] for r in engine.options("customer").records] == [
            "Globex"
        ]
        await engine.load_more("customer")

    @pytest.mark.asyncio
    async def test_reset(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        await _fill_valid(engine)
        assert engine.go_to_step(3)
        engine.reset()
        assert engine.state.current_step == 0
        assert engine.values == engine.initial_values()
        assert not engine.state.is_dirty
        assert engine.state.visited_steps == {0}


class TestEditMode:
    @pytest.fixture
    def call_source(self) -> InMemoryEntitySource:
        return InMemoryEntitySource(
            "Call",
            [
                {
                    "id": 9,
                    "remark": "existing",
                    "callDateTime": "2024-05-01T10:00:00+00:00",
                    "priority": {"id": 1, "name": "High"},
                    "callType": {"id": 5, "name": "Complaint"},
                    "customer": {"id": 100, "customerBusinessName": "Acme"},
                    "subCallType": None,
                }
            ],
        )

    @pytest.mark.asyncio
    async def test_hydrates_flattened_values(self, make_call_engine, call_source) -> None:
        engine = make_call_engine(source=call_source, entity_id=9)
        await engine.mount()
        assert engine.values["priority"] == 1
        assert engine.values["customer"] == 100
        assert engine.values["remark"] == "existing"
        assert engine.values["subCallType"] is None
        assert not engine.state.is_dirty
        assert not engine.drafts_enabled

    @pytest.mark.asyncio
    async def test_update_submission(self, make_call_engine, call_source, notifier) -> None:
        engine = make_call_engine(source=call_source, entity_id=9)
        await engine.mount()
        engine.set_value("remark", "revised")
        assert engine.go_to_step(4)
        outcome = await engine.submit()
        assert outcome.ok
        assert outcome.entity_id == 9
        assert outcome.redirect_url is None
        assert call_source.params_for("update")[0]["customer"] == {"id": 100}
        assert (await call_source.get(9))["remark"] == "revised"
        assert notifier.of("success") == ["Call updated successfully"]

    @pytest.mark.asyncio
    async def test_missing_entity_reported(self, make_call_engine, call_source, notifier) -> None:
        engine = make_call_engine(source=call_source, entity_id=404)
        await engine.mount()
        assert notifier.of("error") == ["Call 404 not found"]
        assert engine.values == engine.initial_values()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_create(self, make_call_engine, call_sources, notifier, durable) -> None:
        engine = make_call_engine()
        await engine.mount()
        await _fill_valid(engine)
        assert engine.go_to_step(4)
        outcome = await engine.submit()
        assert outcome.ok
        assert outcome.entity_id == 1
        created = call_sources["Call"].params_for("create")[0]
        assert created["customerPhone"] == "9999"
        assert created["customer"] == {"id": 100}
        assert created["callDateTime"] == "2024-05-01T10:00:00+00:00"
        assert engine.state.is_submitted
        assert not engine.state.is_dirty
        assert durable.get(engine.state_key) is None
        assert notifier.of("success") == ["Call created successfully"]

        again = await engine.submit()
        assert not again.ok
        assert not engine.go_to_step(0)

    @pytest.mark.asyncio
    async def test_handoff_timestamp_without_offset(self, make_call_engine, durable) -> None:
        recent = utcnow().replace(tzinfo=None) - timedelta(minutes=1)
        durable.set("returnUrl", json.dumps("/leads/new"))
        durable.set(
            "relationshipFieldInfo",
            json.dumps({"entityName": "Call", "timestamp": recent.isoformat()}),
        )
        engine = make_call_engine()
        await engine.mount()
        await _fill_valid(engine)
        assert engine.go_to_step(4)
        outcome = await engine.submit()
        assert outcome.ok
        assert outcome.redirect_url == "/leads/new"
        assert durable.get("returnUrl") is None

    @pytest.mark.asyncio
    async def test_only_from_review(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        outcome = await engine.submit()
        assert not outcome.ok
        assert outcome.error == "Submit is only available from the review step"

    @pytest.mark.asyncio
    async def test_invalid_form_blocked(self, make_call_engine, notifier) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.navigator.restore(4)
        outcome = await engine.submit()
        assert not outcome.ok
        assert set(outcome.errors) == {"priority", "callType", "customer", "callDateTime"}
        assert notifier.of("error") == ["Please fix the highlighted fields before submitting"]

    @pytest.mark.asyncio
    async def test_collaborator_failure_keeps_values(self, make_call_engine, notifier) -> None:
        engine = make_call_engine(source=FailingSource("Call"))
        await engine.mount()
        await _fill_valid(engine)
        engine.go_to_step(4)
        outcome = await engine.submit()
        assert not outcome.ok
        assert outcome.error == "Failed to save Call: database unavailable"
        assert notifier.of("error") == ["Failed to save Call: database unavailable"]
        assert engine.state.current_step == 4
        assert engine.values["customer"] == 100
        assert not engine.state.is_submitting
        assert not engine.state.is_submitted

    @pytest.mark.asyncio
    async def test_timeout(self, make_call_engine, call_config) -> None:
        engine = make_call_engine(
            config=_with(call_config, "validation", submit_timeout=10),
            source=InMemoryEntitySource("Call", delay=0.5),
        )
        await engine.mount()
        await _fill_valid(engine)
        engine.go_to_step(4)
        outcome = await engine.submit()
        assert not outcome.ok
        assert outcome.error == "Saving Call timed out after 0.01s"
        assert not engine.state.is_submitting


class TestInProgressPersistence:
    @pytest.mark.asyncio
    async def test_restored_by_same_session(self, make_call_engine) -> None:
        first = make_call_engine()
        await first.mount()
        first.set_value("remark", "half done")
        first.navigator.restore(3)
        assert first.save_form_state()
        first.unmount()

        second = make_call_engine()
        await second.mount()
        assert second.state.session_id == first.state.session_id
        assert second.values["remark"] == "half done"
        assert second.state.current_step == 3

    @pytest.mark.asyncio
    async def test_stale_state_discarded(self, make_call_engine, durable) -> None:
        start = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)
        first = make_call_engine(clock=lambda: start)
        await first.mount()
        first.set_value("remark", "old")
        first.save_form_state()

        second = make_call_engine(clock=lambda: start + timedelta(minutes=31))
        await second.mount()
        assert second.values["remark"] == ""
        assert durable.get(first.state_key) is None

    @pytest.mark.asyncio
    async def test_clear_old_form_states(self, make_call_engine, durable) -> None:
        start = datetime(2024, 5, 1, 9, 0, tzinfo=UTC)
        old = make_call_engine(clock=lambda: start, short_lived=None)
        old.save_form_state()
        current = make_call_engine(clock=lambda: start + timedelta(hours=1))
        current.save_form_state()
        assert current.clear_old_form_states() == 1
        assert durable.get(current.state_key) is not None

    @pytest.mark.asyncio
    async def test_mount_clears_stale_sessions(self, make_call_engine, durable) -> None:
        stale = InProgressSnapshot(
            data={"remark": "abandoned"},
            timestamp=utcnow() - timedelta(days=3),
            entity="Call",
            session_id="other",
        )
        durable.set("CallFormState_other", json.dumps(stale.to_payload()))
        durable.set("CallFormState_draft:keep", json.dumps({"sessionId": "other"}))

        engine = make_call_engine()
        await engine.mount()
        engine.unmount()
        assert durable.get("CallFormState_other") is None
        assert durable.get("CallFormState_draft:keep") is not None

    @pytest.mark.asyncio
    async def test_autosave_debounced(self, make_call_engine, call_config, durable) -> None:
        engine = make_call_engine(
            config=_with(call_config, "auto_save", enabled=True, debounce_ms=10)
        )
        await engine.mount()
        engine.set_value("remark", "typing")
        assert durable.get(engine.state_key) is None
        await asyncio.sleep(0.05)
        assert durable.get(engine.state_key) is not None

    @pytest.mark.asyncio
    async def test_flush_autosave(self, make_call_engine, call_config, durable) -> None:
        engine = make_call_engine(
            config=_with(call_config, "auto_save", enabled=True, debounce_ms=60_000)
        )
        await engine.mount()
        engine.set_value("remark", "typing")
        await engine.flush_autosave()
        assert durable.get(engine.state_key) is not None


class TestCrossEntity:
    @pytest.mark.asyncio
    async def test_create_related_round_trip(
        self,
        make_call_engine,
        make_config,
        call_sources,
        durable,
        short_lived,
        notifier,
    ) -> None:
        origin = make_call_engine()
        await origin.mount()
        origin.set_value("priority", 1)
        origin.set_value("remark", "needs a new customer")
        origin.navigator.restore(1)
        path = origin.begin_create_related("customer", return_url="/calls/new")
        assert path == "/customers/new"
        origin.unmount()

        target = FormEngine(
            make_config(entity="Customer"),
            call_sources["customer"],
            durable=durable,
            short_lived=short_lived,
            notifier=notifier,
        )
        await target.mount()
        target.set_value("name", "Zeta")
        assert target.next_step()
        outcome = await target.submit()
        assert outcome.ok
        assert outcome.entity_id == 102
        assert outcome.redirect_url == "/calls/new"

        back = make_call_engine()
        await back.mount()
        await back.settle()
        assert back.values["customer"] == 102
        assert back.values["priority"] == 1
        assert back.values["remark"] == "needs a new customer"
        assert back.state.current_step == 1
        assert "New customer selected" in notifier.of("success")
        assert back.handoff.peek() is None
        back.unmount()

        again = make_call_engine()
        await again.mount()
        assert again.values["customer"] is None

    @pytest.mark.asyncio
    async def test_create_not_allowed(self, make_call_engine, call_config) -> None:
        engine = make_call_engine()
        with pytest.raises(FormEngineError):
            engine.begin_create_related("subCallType", return_url="/calls/new")
        with pytest.raises(KeyError):
            engine.begin_create_related("nope", return_url="/calls/new")

        disabled = make_call_engine(config=_with(call_config, "cross_entity", enabled=False))
        with pytest.raises(FormEngineError, match="disabled"):
            disabled.begin_create_related("customer", return_url="/calls/new")

    @pytest.mark.asyncio
    async def test_multiple_relationship_appends(self, make_config) -> None:
        config = make_config(
            relationships=[{"name": "tags", "targetEntity": "tag", "multiple": True}],
            steps=[{"id": "basic", "fields": ["name"], "relationships": ["tags"]}, {"id": "review"}],
        )
        registry = CapabilityRegistry()
        registry.register("tag", InMemoryEntitySource("tag"))
        engine = FormEngine(config, InMemoryEntitySource("Contact"), registry=registry)
        engine.handle_entity_created("tags", 5)
        engine.handle_entity_created("tags", 5)
        engine.handle_entity_created("tags", 6)
        assert engine.values["tags"] == [5, 6]


class TestDrafts:
    @pytest.mark.asyncio
    async def test_save_dialog_on_navigation(self, make_call_engine, notifier) -> None:
        engine = make_call_engine()
        await engine.mount()
        assert await engine.on_navigation("/home")

        engine.set_value("remark", "unsaved")
        assert engine.has_unsaved_changes()
        assert not await engine.on_navigation("/home")
        assert engine.state.show_draft_dialog
        assert engine.state.pending_navigation == "/home"

        assert await engine.resolve_draft_dialog(DraftDialogChoice.SAVE) == "/home"
        assert engine.state.draft_dialog == DraftDialog.NONE
        assert engine.state.current_draft_id is not None
        assert len(engine.state.drafts) == 1
        assert not engine.state.is_dirty
        assert notifier.of("success") == ["Draft saved successfully"]

    @pytest.mark.asyncio
    async def test_discard_and_cancel(self, make_call_engine) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("remark", "unsaved")
        await engine.on_navigation("/home")
        assert await engine.resolve_draft_dialog("cancel") is None
        assert engine.state.pending_navigation is None

        await engine.on_navigation("/elsewhere")
        assert f"{engine.state.draft_dialog}" == "save"
        assert await engine.resolve_draft_dialog("discard") == "/elsewhere"
        assert engine.state.drafts == []

    @pytest.mark.asyncio
    async def test_silent_save_without_confirm(self, make_call_engine, call_config) -> None:
        engine = make_call_engine(config=_with(call_config, "drafts", confirm_dialog=False))
        await engine.mount()
        engine.set_value("remark", "unsaved")
        assert await engine.on_navigation("/home")
        assert len(engine.state.drafts) == 1

    @pytest.mark.asyncio
    async def test_unload_saves_only_when_configured(self, make_call_engine, call_config) -> None:
        engine = make_call_engine()
        await engine.mount()
        engine.set_value("remark", "unsaved")
        assert not await engine.on_unload()

        both = make_call_engine(
            config=_with(call_config, "drafts", save_behavior=SaveBehavior.BOTH)
        )
        await both.mount()
        both.set_value("remark", "unsaved")
        assert await both.on_unload()

    @pytest.mark.asyncio
    async def test_restore_dialog_on_mount(
        self, make_call_engine, call_config, durable, notifier
    ) -> None:
        manager = DraftManager(call_config, StorageDraftRepository(durable, "CallFormState_"))
        draft = await manager.save_draft({"remark": "from draft", "priority": 2}, current_step=3)

        engine = make_call_engine()
        await engine.mount()
        assert engine.state.show_restore_dialog
        assert [d.id for d in engine.state.drafts] == [draft.id]

        assert await engine.load_draft(draft.id)
        assert engine.values["remark"] == "from draft"
        assert engine.state.current_step == 3
        assert engine.state.draft_dialog == DraftDialog.NONE
        assert not engine.state.is_dirty
        assert notifier.of("success") == ["Draft restored successfully"]

    @pytest.mark.asyncio
    async def test_restore_dialog_dismissed(self, make_call_engine, call_config, durable) -> None:
        manager = DraftManager(call_config, StorageDraftRepository(durable, "CallFormState_"))
        await manager.save_draft({"remark": "ignored"})

        engine = make_call_engine()
        await engine.mount()
        engine.dismiss_restore_dialog()
        assert engine.state.draft_dialog == DraftDialog.NONE
        assert engine.values["remark"] == ""
        assert len(engine.state.drafts) == 1

    @pytest.mark.asyncio
    async def test_submit_deletes_current_draft(self, make_call_engine, durable) -> None:
        engine = make_call_engine()
        await engine.mount()
        await _fill_valid(engine)
        assert await engine.save_draft("before submit")
        assert durable.keys("CallFormState_draft:")
        engine.go_to_step(4)
        assert (await engine.submit()).ok
        assert durable.keys("CallFormState_draft:") == []
        assert engine.state.current_draft_id is None

    @pytest.mark.asyncio
    async def test_missing_and_deleted_drafts(self, make_call_engine, notifier) -> None:
        engine = make_call_engine()
        await engine.mount()
        assert not await engine.load_draft("nope")
        assert notifier.of("error") == ["Draft not found or has been deleted"]

        engine.set_value("remark", "x")
        await engine.save_draft()
        draft_id = engine.state.current_draft_id
        assert await engine.delete_draft(draft_id)
        assert engine.state.current_draft_id is None
        assert engine.state.drafts == []
        assert "Draft deleted successfully" in notifier.of("success")

    @pytest.mark.asyncio
    async def test_drafts_disabled(self, make_config) -> None:
        engine = FormEngine(make_config(), InMemoryEntitySource("Contact"))
        await engine.mount()
        engine.set_value("name", "Ann")
        assert not engine.has_unsaved_changes()
        assert await engine.on_navigation("/home")
        assert not await engine.save_draft()
