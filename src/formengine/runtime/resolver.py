"""
Relationship resolution: cascading filters and auto-population.

A selection change is handled in a fixed order:

1. cascading reset: every transitive dependent of the changed relationship
   is cleared and its option source re-scoped to the new parent value;
2. auto-population: derived writes are computed against the post-reset
   values and returned as one batch for the engine to apply once the
   triggering update has committed.

When option data arrives for a relationship that already has a selection,
the batch is computed on arrival and applied on the next loop iteration.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from formengine.core.config import AutoPopulate, FormConfig, RelationshipConfig
from formengine.runtime.collaborator import CapabilityBundle, Record, get_path
from formengine.runtime.options import (
    DEFAULT_DEBOUNCE_SECONDS,
    DEFAULT_PAGE_SIZE,
    OptionSource,
)
from formengine.runtime.validation import is_empty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DerivedWrite:
    """One auto-population write: ``value`` goes into ``target``."""

    target: str
    value: Any
    rule: AutoPopulate


@dataclass
class SelectionChange:
    """Outcome of a relationship value change."""

    resets: dict[str, Any]
    writes: list[DerivedWrite]


def derived_value(record: Record, source_property: str) -> Any:
    """Read ``source_property`` off a record; nested objects contribute their id."""
    value = get_path(record, source_property)
    if isinstance(value, dict):
        return value.get("id")
    return value


def selected_key(rel: RelationshipConfig, value: Any) -> Any:
    """Primary key whose record drives auto-population (first one for multi-selects)."""
    if isinstance(value, list):
        return value[0] if value else None
    return value


class RelationshipResolver:
    """
    Owns the option sources of one form and applies relationship rules.

    Args:
        config: Form configuration
        bundles: Capabilities per relationship name (``CapabilityRegistry.bind``)
        get_values: Returns the current form values
        apply_writes: Phase two; applies a batch of derived writes
        page_size: Browse page size for option sources
        debounce_seconds: Search debounce for option sources
    """

    def __init__(
        self,
        config: FormConfig,
        bundles: Mapping[str, CapabilityBundle],
        *,
        get_values: Callable[[], Mapping[str, Any]],
        apply_writes: Callable[[list[DerivedWrite]], None],
        page_size: int = DEFAULT_PAGE_SIZE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.config = config
        self._get_values = get_values
        self._apply_writes = apply_writes
        self.sources: dict[str, OptionSource] = {}
        self._active: set[str] = set()
        self._lookups: set[asyncio.Task[None]] = set()
        self._pending_batches = 0

        for rel in config.relationships:
            source = OptionSource(
                rel,
                bundles[rel.name],
                page_size=page_size,
                debounce_seconds=debounce_seconds,
            )
            if config.auto_populations_from(rel.name):
                source.add_listener(self._on_data)
            self.sources[rel.name] = source

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def is_auto_populating(self) -> bool:
        return self._pending_batches > 0 or bool(self._lookups)

    def source(self, name: str) -> OptionSource:
        return self.sources[name]

    def is_disabled(self, name: str, values: Mapping[str, Any]) -> bool:
        """A relationship is disabled while its cascading parent has no value."""
        rel = self.config.get_relationship(name)
        if rel is None:
            return False
        if rel.ui.disabled:
            return True
        cf = rel.cascading_filter
        return cf is not None and is_empty(values.get(cf.parent_field))

    def descendants_of(self, name: str) -> list[RelationshipConfig]:
        """Transitive cascading dependents, parents before children."""
        ordered: list[RelationshipConfig] = []
        queue = [name]
        while queue:
            current = queue.pop(0)
            for dep in self.config.dependents_of(current):
                if dep not in ordered:
                    ordered.append(dep)
                    queue.append(dep.name)
        return ordered

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------

    def activate(self, names: Iterable[str]) -> list[asyncio.Task[None]]:
        """Start loading the option sources of the given relationships."""
        values = self._get_values()
        tasks: list[asyncio.Task[None]] = []
        for name in names:
            source = self.sources.get(name)
            if source is None:
                continue
            parent, disabled = self._scope_for(source.rel, values)
            first = name not in self._active
            self._active.add(name)
            if first or parent != source.parent_value:
                task = source.set_scope(parent, disabled=disabled)
                if task is not None:
                    tasks.append(task)
        return tasks

    def _scope_for(self, rel: RelationshipConfig, values: Mapping[str, Any]) -> tuple[Any, bool]:
        cf = rel.cascading_filter
        if cf is None:
            return None, rel.ui.disabled
        parent = values.get(cf.parent_field)
        parent = None if is_empty(parent) else selected_key(rel, parent)
        return parent, parent is None or rel.ui.disabled

    # ------------------------------------------------------------------
    # Selection changes
    # ------------------------------------------------------------------

    def cascade_resets(self, name: str) -> dict[str, Any]:
        """Cleared values for every transitive dependent of ``name``."""
        return {dep.name: dep.initial_value() for dep in self.descendants_of(name)}

    def handle_change(self, name: str, values: Mapping[str, Any]) -> SelectionChange:
        """
        Phase one of a committed change to relationship ``name``.

        ``values`` already holds the new value. Returns the cascading resets
        and the derived writes; the engine applies both.
        """
        resets = self.cascade_resets(name)
        view = {**values, **resets}
        for dep in self.descendants_of(name):
            parent, disabled = self._scope_for(dep, view)
            source = self.sources[dep.name]
            if dep.name in self._active:
                source.set_scope(parent, disabled=disabled)
            else:
                source.parent_value = parent
                source.disabled = disabled
        if resets:
            logger.debug(f"Cascading reset from '{name}': {', '.join(resets)}")
        return SelectionChange(resets=resets, writes=self.plan(name, view, fetch_missing=True))

    def plan(
        self, source_name: str, values: Mapping[str, Any], *, fetch_missing: bool = False
    ) -> list[DerivedWrite]:
        """
        Compute the derived writes triggered by ``source_name``'s selection.

        At most one write per target; the first applicable rule wins. When
        the selected record is not loaded and ``fetch_missing`` is set, a
        lookup is started and its batch is applied when it completes.
        """
        rules = self.config.auto_populations_from(source_name)
        if not rules:
            return []
        rel = self.sources[source_name].rel
        key = selected_key(rel, values.get(source_name))
        if is_empty(key):
            return []
        record = self.sources[source_name].find(key)
        if record is None:
            if fetch_missing:
                self._start_lookup(source_name, key)
            return []
        return compute_writes(rules, record, values)

    # ------------------------------------------------------------------
    # Deferred batches
    # ------------------------------------------------------------------

    def _on_data(self, source: OptionSource) -> None:
        writes = self.plan(source.name, self._get_values())
        if writes:
            self._defer(writes)

    def _defer(self, writes: list[DerivedWrite]) -> None:
        self._pending_batches += 1
        asyncio.get_running_loop().call_soon(self._run_batch, writes)

    def _run_batch(self, writes: list[DerivedWrite]) -> None:
        self._pending_batches -= 1
        self._apply_writes(writes)

    def _start_lookup(self, source_name: str, key: Any) -> None:
        async def run() -> None:
            record = await self.sources[source_name].lookup(key)
            if record is None:
                return
            values = self._get_values()
            if selected_key(self.sources[source_name].rel, values.get(source_name)) != key:
                return
            writes = compute_writes(self.config.auto_populations_from(source_name), record, values)
            if writes:
                self._defer(writes)

        task = asyncio.get_running_loop().create_task(run())
        self._lookups.add(task)
        task.add_done_callback(self._lookups.discard)

    async def settle(self) -> None:
        """Wait until no fetch, lookup or deferred batch is outstanding."""
        while True:
            for source in list(self.sources.values()):
                await source.wait_idle()
            if self._lookups:
                await asyncio.gather(*list(self._lookups), return_exceptions=True)
                continue
            if self._pending_batches:
                await asyncio.sleep(0)
                continue
            if any(s.busy for s in self.sources.values()):
                await asyncio.sleep(0)
                continue
            return

    def close(self) -> None:
        for task in list(self._lookups):
            task.cancel()
        for source in self.sources.values():
            source.close()


def compute_writes(
    rules: Iterable[AutoPopulate], record: Record, values: Mapping[str, Any]
) -> list[DerivedWrite]:
    """Writes for ``rules`` given the selected ``record`` and current ``values``."""
    writes: list[DerivedWrite] = []
    claimed: set[str] = set()
    for rule in rules:
        if rule.target_field in claimed:
            continue
        value = derived_value(record, rule.source_property)
        if value is None:
            continue
        if not should_write(rule, values.get(rule.target_field), value):
            continue
        claimed.add(rule.target_field)
        writes.append(DerivedWrite(target=rule.target_field, value=value, rule=rule))
    return writes


def should_write(rule: AutoPopulate, current: Any, value: Any) -> bool:
    """Write iff the target is empty (or override is allowed) and the value differs."""
    if not (is_empty(current) or rule.allow_override):
        return False
    return current != value
