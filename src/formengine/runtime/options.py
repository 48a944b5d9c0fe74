"""
Option source for one relationship.

Resolves the candidate records a relationship can select from. Two modes:

- browse: pages of ``size`` records sorted by the display field, scoped by
  the cascading parent value and any custom filters;
- search: a debounced, non-empty term. With a search capability the term
  yields one best-effort batch; without one, browse pages are narrowed by
  ``<displayField>.contains``.

Results accumulate across pages, deduplicated by primary key (first
occurrence wins). Records without a primary key or display value are
dropped. Fetch errors are caught and exposed on ``error``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from enum import StrEnum
from typing import Any

from formengine.core.config import RelationshipConfig
from formengine.runtime.collaborator import CapabilityBundle, ListResult, Record, get_path

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 20
DEFAULT_DEBOUNCE_SECONDS = 0.3

OptionListener = Callable[["OptionSource"], None]


class OptionMode(StrEnum):
    BROWSE = "browse"
    SEARCH = "search"


def unwrap_records(raw: ListResult | None) -> list[Record]:
    """Records from a flat list or a ``content``/``data`` envelope."""
    if raw is None:
        return []
    if isinstance(raw, dict):
        items = raw.get("content")
        if items is None:
            items = raw.get("data")
        raw = items if isinstance(items, list) else []
    return [r for r in raw if isinstance(r, dict)]


class OptionSource:
    """
    Paginated, searchable candidate list for one relationship.

    Args:
        rel: Relationship configuration
        capabilities: Bound list/search/count calls
        page_size: Records per browse page
        debounce_seconds: Quiet period before a search term is applied
    """

    def __init__(
        self,
        rel: RelationshipConfig,
        capabilities: CapabilityBundle,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self.rel = rel
        self.capabilities = capabilities
        self.page_size = page_size
        self.debounce_seconds = debounce_seconds

        self.records: list[Record] = []
        self.page = 0
        self.mode = OptionMode.BROWSE
        self.search_term = ""
        self.parent_value: Any = None
        self.disabled = False
        self.has_more = False
        self.is_loading = False
        self.is_fetching_more = False
        self.error: str | None = None
        self.loaded = False

        self._keys: set[str] = set()
        self._lookups: dict[str, Record] = {}
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._debounce: asyncio.Task[None] | None = None
        self._listeners: list[OptionListener] = []
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"OptionSource({self.rel.name!r}, mode={self.mode.value}, "
            f"records={len(self.records)}, has_more={self.has_more})"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self.rel.name

    @property
    def busy(self) -> bool:
        return self.is_loading or self.is_fetching_more

    def scope_params(self) -> dict[str, Any]:
        """Filters every request carries: custom filters plus the cascading parent."""
        params: dict[str, Any] = dict(self.rel.custom_filters)
        cf = self.rel.cascading_filter
        if cf is not None and self.parent_value is not None:
            params[cf.filter_param] = self.parent_value
        return params

    def browse_params(self, page: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "page": page,
            "size": self.page_size,
            "sort": [f"{self.rel.display_field},asc"],
        }
        params.update(self.scope_params())
        if self.mode == OptionMode.SEARCH:
            params[f"{self.rel.display_field}.contains"] = self.search_term
        return params

    def search_params(self) -> dict[str, Any]:
        return {"query": self.search_term, "size": self.page_size, **self.scope_params()}

    def find(self, key: Any) -> Record | None:
        """Loaded record with the given primary key, if any."""
        if key is None:
            return None
        wanted = str(key)
        for record in self.records:
            if str(record.get(self.rel.primary_key)) == wanted:
                return record
        return self._lookups.get(wanted)

    def label_for(self, key: Any) -> str | None:
        record = self.find(key)
        if record is None:
            return None
        return str(get_path(record, self.rel.display_field))

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: OptionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: OptionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def refresh(self) -> asyncio.Task[None] | None:
        """Drop accumulated results and fetch the first page (or search batch)."""
        if self._closed:
            return None
        self._cancel_fetch()
        self._reset_results()
        if self.disabled:
            self._notify()
            return None
        self.is_loading = True
        self._task = asyncio.get_running_loop().create_task(
            self._fetch(self._generation, page=0, fresh=True)
        )
        return self._task

    async def load(self) -> None:
        """Fetch the first page and wait for it."""
        task = self.refresh()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def load_more(self) -> None:
        """Fetch the next browse page; no-op while busy, exhausted or disabled."""
        if self._closed or self.disabled or self.busy or not self.has_more:
            return
        if self.mode == OptionMode.SEARCH and self.capabilities.search is not None:
            return
        self.is_fetching_more = True
        self._task = asyncio.get_running_loop().create_task(
            self._fetch(self._generation, page=self.page + 1, fresh=False)
        )
        await asyncio.gather(self._task, return_exceptions=True)

    def set_search_term(self, term: str) -> asyncio.Task[None] | None:
        """
        Update the search input.

        A non-empty term switches to search mode after the debounce period;
        clearing the term returns to browse mode immediately.
        """
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = None
        if not term.strip():
            if self.mode == OptionMode.SEARCH or self.search_term:
                self.mode = OptionMode.BROWSE
                self.search_term = ""
                return self.refresh()
            return None
        self._debounce = asyncio.get_running_loop().create_task(self._apply_term_later(term))
        return self._debounce

    async def _apply_term_later(self, term: str) -> None:
        await asyncio.sleep(self.debounce_seconds)
        if term == self.search_term and self.mode == OptionMode.SEARCH:
            return
        self.mode = OptionMode.SEARCH
        self.search_term = term
        self.refresh()

    def set_scope(self, parent_value: Any, *, disabled: bool = False) -> asyncio.Task[None] | None:
        """Re-scope to a new cascading parent value and reload."""
        self.parent_value = parent_value
        self.disabled = disabled
        return self.refresh()

    async def lookup(self, key: Any) -> Record | None:
        """
        Find a record by primary key, fetching it when it is not loaded.

        Fetched records are kept aside; they never enter the paged results.
        """
        found = self.find(key)
        if found is not None or key is None:
            return found
        params = {f"{self.rel.primary_key}.equals": key, "page": 0, "size": 1}
        try:
            raw = await self.capabilities.list_all(params)
        except Exception as e:
            logger.warning(f"Lookup of {self.rel.target_entity} {key} failed: {e}")
            return None
        for record in unwrap_records(raw):
            if str(record.get(self.rel.primary_key)) == str(key):
                self._lookups[str(key)] = record
                return record
        return None

    async def wait_idle(self) -> None:
        """Wait for the pending debounce and fetch, including ones they start."""
        while True:
            pending = [t for t in (self._debounce, self._task) if t is not None and not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel in-flight work; the source ignores every later result."""
        self._closed = True
        if self._debounce is not None:
            self._debounce.cancel()
        self._cancel_fetch()
        self._listeners.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _cancel_fetch(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self.is_loading = False
        self.is_fetching_more = False

    def _reset_results(self) -> None:
        self.records = []
        self._keys = set()
        self.page = 0
        self.has_more = False
        self.error = None
        self.loaded = False

    async def _fetch(self, generation: int, *, page: int, fresh: bool) -> None:
        try:
            if self.mode == OptionMode.SEARCH and self.capabilities.search is not None:
                raw = await self.capabilities.search(self.search_params())
                batch = unwrap_records(raw)
                has_more = False
            else:
                params = self.browse_params(page)
                raw = await self.capabilities.list_all(params)
                batch = unwrap_records(raw)
                has_more = await self._has_more(raw, batch, page)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if generation != self._generation:
                return
            logger.warning(f"Failed to load options for '{self.rel.name}': {e}")
            self.error = str(e) or type(e).__name__
            if fresh:
                self.records = []
                self._keys = set()
            self.has_more = False
            self.loaded = True
            self._notify()
            return
        finally:
            if generation == self._generation:
                self.is_loading = False
                self.is_fetching_more = False

        if generation != self._generation:
            logger.debug(f"Discarding superseded options for '{self.rel.name}'")
            return
        self._merge(batch)
        self.page = page
        self.has_more = has_more
        self.error = None
        self.loaded = True
        self._notify()

    async def _has_more(self, raw: ListResult, batch: list[Record], page: int) -> bool:
        if isinstance(raw, dict):
            if "last" in raw:
                return not raw["last"]
            if "totalElements" in raw:
                return (page + 1) * self.page_size < int(raw["totalElements"])
        if self.capabilities.count is not None:
            count_params = self.scope_params()
            if self.mode == OptionMode.SEARCH:
                count_params[f"{self.rel.display_field}.contains"] = self.search_term
            try:
                total = await self.capabilities.count(count_params)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.debug(f"Count for '{self.rel.name}' failed, using page size: {e}")
            else:
                return (page + 1) * self.page_size < total
        return len(batch) == self.page_size

    def _merge(self, batch: list[Record]) -> None:
        pk = self.rel.primary_key
        dropped = 0
        for record in batch:
            key = record.get(pk)
            if key is None or get_path(record, self.rel.display_field) is None:
                dropped += 1
                continue
            if str(key) in self._keys:
                continue
            self._keys.add(str(key))
            self.records.append(record)
        if dropped:
            logger.debug(f"Dropped {dropped} incomplete record(s) for '{self.rel.name}'")
