"""
Draft persistence.

A draft is a named snapshot of form values, independent of the implicit
in-progress state. Drafts are capped per entity type (oldest evicted on
overflow) and outlive the session timeout: stale drafts are never
restored automatically but stay listed for manual restoration.
"""

from __future__ import annotations

import json
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError

from formengine.core.config import FormConfig
from formengine.runtime.collaborator import EntityDataSource, Record
from formengine.runtime.models import Draft, DraftSummary, as_utc, utcnow
from formengine.runtime.options import unwrap_records
from formengine.runtime.storage import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

DRAFT_KEY_SEGMENT = "draft:"


class DraftRepository(ABC):
    """Storage for drafts of any entity type."""

    @abstractmethod
    async def list(self, entity_type: str) -> list[Draft]:
        """All drafts of one entity type, in no particular order."""

    @abstractmethod
    async def get(self, draft_id: str) -> Draft | None:
        """A draft by id, or None when absent or unreadable."""

    @abstractmethod
    async def save(self, draft: Draft) -> Draft:
        """Create or replace a draft; returns the stored draft."""

    @abstractmethod
    async def delete(self, draft_id: str) -> bool:
        """Delete a draft. Returns whether it existed."""


class StorageDraftRepository(DraftRepository):
    """One key per draft in a key-value store, under ``<prefix>draft:``."""

    def __init__(self, store: KeyValueStore, prefix: str = "FormState_") -> None:
        self.store = store
        self.prefix = prefix

    @property
    def key_prefix(self) -> str:
        return f"{self.prefix}{DRAFT_KEY_SEGMENT}"

    def _key(self, draft_id: str) -> str:
        return f"{self.key_prefix}{draft_id}"

    def _read(self, key: str) -> Draft | None:
        payload = read_json(self.store, key)
        if not isinstance(payload, dict):
            return None
        try:
            return Draft.model_validate(payload)
        except ValidationError:
            logger.warning(f"Ignoring malformed draft under '{key}'")
            return None

    async def list(self, entity_type: str) -> list[Draft]:
        drafts = []
        for key in self.store.keys(self.key_prefix):
            draft = self._read(key)
            if draft is not None and draft.entity_type == entity_type:
                drafts.append(draft)
        return drafts

    async def all(self) -> list[Draft]:
        drafts = (self._read(key) for key in self.store.keys(self.key_prefix))
        return [d for d in drafts if d is not None]

    async def get(self, draft_id: str) -> Draft | None:
        return self._read(self._key(draft_id))

    async def save(self, draft: Draft) -> Draft:
        write_json(self.store, self._key(draft.id), draft.to_payload())
        return draft

    async def delete(self, draft_id: str) -> bool:
        key = self._key(draft_id)
        existed = self.store.get(key) is not None
        self.store.remove(key)
        return existed


class EntityDraftRepository(DraftRepository):
    """
    Drafts stored as records of a user-draft entity.

    Each record carries the entity type, a status and the draft as a JSON
    string; the record id becomes the draft id.
    """

    def __init__(
        self,
        source: EntityDataSource,
        *,
        type_field: str = "type",
        payload_field: str = "jsonPayload",
        status: str = "ACTIVE",
    ) -> None:
        self.source = source
        self.type_field = type_field
        self.payload_field = payload_field
        self.status = status

    def _to_draft(self, record: Record) -> Draft | None:
        record_id = record.get("id")
        raw = record.get(self.payload_field)
        if record_id is None or not isinstance(raw, str):
            return None
        try:
            payload = json.loads(raw)
            return Draft.model_validate({**payload, "id": str(record_id)})
        except (json.JSONDecodeError, TypeError, ValidationError):
            logger.warning(f"Ignoring malformed draft record {record_id}")
            return None

    def _to_record(self, draft: Draft) -> Record:
        payload = draft.to_payload()
        payload.pop("id", None)
        return {
            self.type_field: draft.entity_type,
            "status": self.status,
            self.payload_field: json.dumps(payload),
        }

    async def list(self, entity_type: str) -> list[Draft]:
        raw = await self.source.list(
            {
                f"{self.type_field}.equals": entity_type,
                "status.equals": self.status,
                "page": 0,
                "size": 1000,
            }
        )
        drafts = (self._to_draft(r) for r in unwrap_records(raw))
        return [d for d in drafts if d is not None]

    async def get(self, draft_id: str) -> Draft | None:
        record = await self.source.get(draft_id)
        if record is None or record.get("status", self.status) != self.status:
            return None
        return self._to_draft(record)

    async def save(self, draft: Draft) -> Draft:
        existing = await self.source.get(draft.id) if draft.id else None
        if existing is not None:
            await self.source.update(draft.id, self._to_record(draft))
            return draft
        created = await self.source.create(self._to_record(draft))
        return draft.model_copy(update={"id": str(created["id"])})

    async def delete(self, draft_id: str) -> bool:
        if await self.source.get(draft_id) is None:
            return False
        await self.source.delete(draft_id)
        return True


@dataclass
class DraftCheck:
    """Result of the on-mount draft check."""

    drafts: list[DraftSummary] = field(default_factory=list)
    prompt: bool = False
    restore: Draft | None = None


class DraftManager:
    """
    Draft operations for one form configuration.

    Args:
        config: Form configuration (entity type, draft and persistence settings)
        repository: Where drafts live
        clock: Returns the current time
    """

    def __init__(
        self,
        config: FormConfig,
        repository: DraftRepository,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.config = config
        self.repository = repository
        self.clock = clock

    @property
    def entity_type(self) -> str:
        return self.config.entity

    @property
    def enabled(self) -> bool:
        return self.config.behavior.drafts.enabled

    @property
    def max_drafts(self) -> int:
        return self.config.behavior.drafts.max_drafts

    @property
    def session_timeout(self) -> timedelta:
        return timedelta(minutes=self.config.behavior.persistence.session_timeout_minutes)

    async def list_drafts(self, entity_id: Any = None, *, all_contexts: bool = False) -> list[Draft]:
        """Drafts of this entity type, newest first."""
        drafts = await self.repository.list(self.entity_type)
        if not all_contexts:
            drafts = [d for d in drafts if d.entity_id == entity_id]
        return sorted(drafts, key=lambda d: d.age_key, reverse=True)

    async def summaries(self, entity_id: Any = None) -> list[DraftSummary]:
        now = self.clock()
        return [d.summary(self.session_timeout, now) for d in await self.list_drafts(entity_id)]

    async def save_draft(
        self,
        values: dict[str, Any],
        *,
        current_step: int = 0,
        session_id: str | None = None,
        entity_id: Any = None,
        name: str | None = None,
        draft_id: str | None = None,
    ) -> Draft:
        """
        Save a snapshot. Updates ``draft_id`` when it exists, otherwise
        creates a new draft, evicting the oldest ones beyond ``maxDrafts``.
        """
        now = self.clock()
        existing = await self.repository.get(draft_id) if draft_id else None
        if existing is not None:
            draft = existing.model_copy(
                update={
                    "values": dict(values),
                    "current_step": current_step,
                    "session_id": session_id,
                    "name": name or existing.name,
                    "updated_at": now,
                }
            )
            saved = await self.repository.save(draft)
            logger.debug(f"Updated draft {saved.id} for {self.entity_type}")
            return saved

        drafts = await self.list_drafts(all_contexts=True)
        evicted = 0
        oldest_first = sorted(drafts, key=lambda d: d.age_key)
        while len(oldest_first) - evicted >= self.max_drafts:
            await self.repository.delete(oldest_first[evicted].id)
            evicted += 1
        if evicted:
            logger.info(f"Evicted {evicted} oldest {self.entity_type} draft(s)")

        sequence = max((d.sequence for d in drafts), default=0) + 1
        draft = Draft(
            id=uuid.uuid4().hex,
            entity_type=self.entity_type,
            entity_id=entity_id,
            name=name or f"{self.entity_type} draft {now:%Y-%m-%d %H:%M}",
            values=dict(values),
            current_step=current_step,
            session_id=session_id,
            created_at=now,
            updated_at=now,
            sequence=sequence,
        )
        saved = await self.repository.save(draft)
        logger.debug(f"Created draft {saved.id} for {self.entity_type}")
        return saved

    async def load_draft(self, draft_id: str) -> Draft | None:
        draft = await self.repository.get(draft_id)
        if draft is None or draft.entity_type != self.entity_type:
            return None
        return draft

    async def delete_draft(self, draft_id: str) -> bool:
        return await self.repository.delete(draft_id)

    async def check_for_drafts(self, entity_id: Any = None) -> DraftCheck:
        """
        Look for drafts on form entry.

        Prompts when ``showRestorationDialog`` is set; otherwise picks the
        newest non-stale draft for silent restoration.
        """
        if not self.enabled:
            return DraftCheck()
        now = self.clock()
        drafts = await self.list_drafts(entity_id)
        summaries = [d.summary(self.session_timeout, now) for d in drafts]
        if not drafts:
            return DraftCheck()
        if self.config.behavior.drafts.show_restoration_dialog:
            return DraftCheck(drafts=summaries, prompt=True)
        fresh = [d for d in drafts if not d.is_stale(self.session_timeout, now)]
        return DraftCheck(drafts=summaries, restore=fresh[0] if fresh else None)

    async def purge(self, older_than: timedelta) -> int:
        """Delete drafts of this entity type created before ``now - older_than``."""
        cutoff = as_utc(self.clock()) - older_than
        removed = 0
        for draft in await self.list_drafts(all_contexts=True):
            if draft.created_at < cutoff and await self.repository.delete(draft.id):
                removed += 1
        if removed:
            logger.info(f"Purged {removed} {self.entity_type} draft(s)")
        return removed
