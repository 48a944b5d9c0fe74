"""
Cross-entity navigation handoff.

One channel per host application. Form A posts a ``NavigationHandoff``
to durable storage before sending the user to create a related record.
The target form completes it after a successful create, which moves the
new id into short-lived storage and returns the URL to go back to. On
remount, form A consumes the notice exactly once.

Keys are the well-known names from ``behavior.crossEntity`` and are not
namespaced, so every form in the application shares one slot (last
write wins).
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from formengine.core.config import CrossEntityConfig
from formengine.runtime.models import (
    CreatedEntityNotice,
    EntityCreationContext,
    NavigationHandoff,
    RelationshipFieldInfo,
)
from formengine.runtime.storage import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)


class HandoffChannel:
    """
    Typed inbox/outbox over the durable and short-lived stores.

    Args:
        durable: Survives navigation and reload; holds the pending handoff
        short_lived: Consumed once; holds the created-entity notice
        keys: Storage key names
    """

    def __init__(
        self,
        durable: KeyValueStore,
        short_lived: KeyValueStore,
        keys: CrossEntityConfig | None = None,
    ) -> None:
        self.durable = durable
        self.short_lived = short_lived
        self.keys = keys or CrossEntityConfig()

    # ------------------------------------------------------------------
    # Origin side
    # ------------------------------------------------------------------

    def post(self, handoff: NavigationHandoff) -> None:
        """Record a pending handoff, replacing any earlier one."""
        write_json(self.durable, self.keys.return_url_key, handoff.return_url)
        write_json(
            self.durable,
            self.keys.relationship_info_key,
            handoff.relationship_field_info.to_payload(),
        )
        if handoff.entity_creation_context is not None:
            write_json(
                self.durable,
                self.keys.creation_context_key,
                handoff.entity_creation_context.to_payload(),
            )
        else:
            self.durable.remove(self.keys.creation_context_key)
        logger.info(
            f"Posted handoff for {handoff.relationship_field_info.entity_name} "
            f"(return to {handoff.return_url})"
        )

    def pending(self) -> NavigationHandoff | None:
        """The pending handoff, or None when absent, corrupt or expired."""
        return_url = read_json(self.durable, self.keys.return_url_key)
        info = read_json(self.durable, self.keys.relationship_info_key)
        if not isinstance(return_url, str) or not isinstance(info, dict):
            return None
        context = read_json(self.durable, self.keys.creation_context_key)
        try:
            handoff = NavigationHandoff(
                return_url=return_url,
                relationship_field_info=RelationshipFieldInfo.model_validate(info),
                entity_creation_context=(
                    EntityCreationContext.model_validate(context)
                    if isinstance(context, dict)
                    else None
                ),
            )
        except ValidationError as e:
            logger.warning(f"Ignoring malformed handoff: {e.error_count()} error(s)")
            return None
        if handoff.is_expired():
            logger.info("Ignoring expired handoff")
            return None
        return handoff

    # ------------------------------------------------------------------
    # Target side
    # ------------------------------------------------------------------

    def complete(self, entity_id: Any, entity_name: str | None = None) -> str | None:
        """
        Hand a newly created id back to the waiting form.

        When ``entity_name`` is given, only a handoff waiting for that
        entity is completed. Returns the URL to return to, or None when
        there was nothing to complete.
        """
        handoff = self.pending()
        if handoff is None:
            return None
        if entity_name is not None and not self._targets(handoff, entity_name):
            return None
        notice = CreatedEntityNotice(
            entity_id=entity_id, relationship_field_info=handoff.relationship_field_info
        )
        self._clear_durable()
        write_json(self.short_lived, self.keys.new_entity_id_key, notice.entity_id)
        write_json(
            self.short_lived,
            self.keys.relationship_info_key,
            notice.relationship_field_info.to_payload(),
        )
        logger.info(f"Completed handoff with new {entity_name or 'entity'} {entity_id}")
        return handoff.return_url

    @staticmethod
    def _targets(handoff: NavigationHandoff, entity_name: str) -> bool:
        if handoff.entity_creation_context is not None:
            target = handoff.entity_creation_context.target_entity_name
        else:
            target = handoff.relationship_field_info.entity_name
        return target.lower() == entity_name.lower()

    # ------------------------------------------------------------------
    # Return
    # ------------------------------------------------------------------

    def peek(self) -> CreatedEntityNotice | None:
        """The waiting notice without consuming it."""
        entity_id = read_json(self.short_lived, self.keys.new_entity_id_key)
        info = read_json(self.short_lived, self.keys.relationship_info_key)
        if entity_id is None or not isinstance(info, dict):
            return None
        try:
            return CreatedEntityNotice(
                entity_id=entity_id,
                relationship_field_info=RelationshipFieldInfo.model_validate(info),
            )
        except ValidationError:
            logger.warning("Ignoring malformed created-entity notice")
            return None

    def consume(
        self, entity_name: str, relationship_name: str | None = None
    ) -> CreatedEntityNotice | None:
        """
        Take the notice if it is meant for ``entity_name``.

        A matching notice is removed before it is returned, so it is
        delivered at most once. Non-matching notices are left in place.
        """
        notice = self.peek()
        if notice is None or not notice.relationship_field_info.matches(
            entity_name, relationship_name
        ):
            return None
        self.short_lived.remove(self.keys.new_entity_id_key)
        self.short_lived.remove(self.keys.relationship_info_key)
        logger.debug(f"Consumed created-entity notice for {entity_name}: {notice.entity_id}")
        return notice

    def clear(self) -> None:
        """Forget any pending handoff and undelivered notice."""
        self._clear_durable()
        self.short_lived.remove(self.keys.new_entity_id_key)
        self.short_lived.remove(self.keys.relationship_info_key)

    def _clear_durable(self) -> None:
        self.durable.remove(self.keys.return_url_key)
        self.durable.remove(self.keys.relationship_info_key)
        self.durable.remove(self.keys.creation_context_key)
