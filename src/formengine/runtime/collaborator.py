"""
Entity data collaborators and the capability lookup table.

The engine never talks to a REST client directly. Each entity type is
reached through an ``EntityDataSource``; relationship option loading only
needs the list/search/count subset, which is captured in a
``CapabilityBundle`` resolved once per config.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from formengine.core.config import FormConfig, RelationshipConfig
from formengine.core.errors import CapabilityError

logger = logging.getLogger(__name__)

Record = dict[str, Any]
# A list call returns either a flat list or a paginated envelope.
ListResult = list[Record] | dict[str, Any]
ListCall = Callable[[dict[str, Any]], Awaitable[ListResult]]
CountCall = Callable[[dict[str, Any]], Awaitable[int]]


class EntityDataSource(ABC):
    """
    Data access for one entity type.

    ``search`` and ``count`` are optional; sources that implement them set
    ``supports_search`` / ``supports_count``.
    """

    entity_name: str = ""
    supports_search: bool = False
    supports_count: bool = False

    @abstractmethod
    async def list(self, params: dict[str, Any]) -> ListResult:
        """List records matching generated-client style filter params."""

    @abstractmethod
    async def get(self, entity_id: Any) -> Record | None:
        """Fetch a record by id, or None."""

    @abstractmethod
    async def create(self, data: Record) -> Record:
        """Create a record and return it with its id."""

    @abstractmethod
    async def update(self, entity_id: Any, data: Record) -> Record:
        """Update a record and return it."""

    @abstractmethod
    async def delete(self, entity_id: Any) -> None:
        """Delete a record."""

    async def search(self, params: dict[str, Any]) -> ListResult:
        raise NotImplementedError(f"{type(self).__name__} does not support search")

    async def count(self, params: dict[str, Any]) -> int:
        raise NotImplementedError(f"{type(self).__name__} does not support count")


@dataclass(frozen=True)
class CapabilityBundle:
    """The data-access calls one relationship needs."""

    list_all: ListCall
    search: ListCall | None = None
    count: CountCall | None = None

    @classmethod
    def from_source(cls, source: EntityDataSource) -> CapabilityBundle:
        return cls(
            list_all=source.list,
            search=source.search if source.supports_search else None,
            count=source.count if source.supports_count else None,
        )


class CapabilityRegistry:
    """
    Lookup table from entity name to capability bundle.

    Relationships resolve by ``targetEntity`` first, then by
    ``api.entityName``.
    """

    def __init__(self) -> None:
        self._bundles: dict[str, CapabilityBundle] = {}

    def register(self, entity: str, provider: CapabilityBundle | EntityDataSource) -> None:
        if isinstance(provider, EntityDataSource):
            provider = CapabilityBundle.from_source(provider)
        self._bundles[entity] = provider
        logger.debug(f"Registered capabilities for entity '{entity}'")

    def register_sources(self, sources: Iterable[EntityDataSource]) -> None:
        for source in sources:
            if not source.entity_name:
                raise CapabilityError(f"{type(source).__name__} has no entity_name")
            self.register(source.entity_name, source)

    def __contains__(self, entity: str) -> bool:
        return entity in self._bundles

    def resolve(self, rel: RelationshipConfig) -> CapabilityBundle | None:
        bundle = self._bundles.get(rel.target_entity)
        if bundle is None and rel.api.entity_name:
            bundle = self._bundles.get(rel.api.entity_name)
        return bundle

    def bind(self, config: FormConfig) -> dict[str, CapabilityBundle]:
        """
        Resolve a bundle for every relationship of ``config``.

        Raises:
            CapabilityError: If any relationship has no registered bundle
        """
        bound: dict[str, CapabilityBundle] = {}
        missing: list[str] = []
        for rel in config.relationships:
            bundle = self.resolve(rel)
            if bundle is None:
                missing.append(f"{rel.name} ({rel.target_entity})")
                continue
            if not rel.supports_search and bundle.search is not None:
                bundle = CapabilityBundle(list_all=bundle.list_all, count=bundle.count)
            bound[rel.name] = bundle
        if missing:
            raise CapabilityError(
                f"No data capability registered for {config.entity} relationship(s): "
                + ", ".join(missing)
            )
        return bound


# ---------------------------------------------------------------------------
# In-memory source
# ---------------------------------------------------------------------------

_RESERVED_PARAMS = {"page", "size", "sort", "query"}


def get_path(record: Record, path: str) -> Any:
    """Read a dotted attribute path off a record."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


def _field_value(record: Record, field: str) -> Any:
    """Value of ``field``, resolving ``xId`` against a nested ``x`` object."""
    if field in record:
        value = record[field]
    elif field.endswith("Id") and field[:-2] in record:
        value = record[field[:-2]]
    else:
        return None
    if isinstance(value, dict):
        return value.get("id")
    return value


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ("true", "1", "yes")
    return bool(value)


def _matches(record: Record, key: str, expected: Any) -> bool:
    field, _, op = key.rpartition(".")
    if not field:
        field, op = key, "equals"
    actual = _field_value(record, field)
    if op == "equals":
        return actual is not None and str(actual) == str(expected)
    if op == "notEquals":
        return actual is None or str(actual) != str(expected)
    if op == "contains":
        return actual is not None and str(expected).lower() in str(actual).lower()
    if op == "in":
        options = expected if isinstance(expected, list | tuple) else str(expected).split(",")
        return actual is not None and str(actual) in {str(o) for o in options}
    if op == "specified":
        return (actual is not None) == _truthy(expected)
    logger.debug(f"Ignoring unsupported filter operator '{op}'")
    return True


def _sort_key(field: str) -> Callable[[Record], tuple[bool, str]]:
    def key(record: Record) -> tuple[bool, str]:
        value = _field_value(record, field)
        return (value is None, str(value).lower() if value is not None else "")

    return key


class InMemoryEntitySource(EntityDataSource):
    """
    Entity source over a Python list, filtering the way generated clients do.

    Args:
        entity_name: Entity type served by this source
        records: Initial records
        primary_key: Primary key attribute
        envelope: Return ``{content, totalElements, last}`` instead of a flat list
        searchable: Expose ``search`` (matches ``query`` against string values)
        countable: Expose ``count``
        delay: Seconds each call sleeps before answering
    """

    def __init__(
        self,
        entity_name: str,
        records: Iterable[Record] | None = None,
        *,
        primary_key: str = "id",
        envelope: bool = False,
        searchable: bool = False,
        countable: bool = False,
        delay: float = 0.0,
    ) -> None:
        self.entity_name = entity_name
        self.primary_key = primary_key
        self.envelope = envelope
        self.supports_search = searchable
        self.supports_count = countable
        self.delay = delay
        self._records: dict[str, Record] = {}
        self._counter = 0
        self.calls: list[tuple[str, dict[str, Any]]] = []
        for record in records or []:
            self._insert(dict(record))

    def _insert(self, record: Record) -> Record:
        if record.get(self.primary_key) is None:
            self._counter += 1
            while str(self._counter) in self._records:
                self._counter += 1
            record[self.primary_key] = self._counter
        elif isinstance(record[self.primary_key], int):
            self._counter = max(self._counter, record[self.primary_key])
        self._records[str(record[self.primary_key])] = record
        return record

    @property
    def records(self) -> list[Record]:
        return list(self._records.values())

    def params_for(self, operation: str) -> list[dict[str, Any]]:
        """Params of every recorded call to ``operation``."""
        return [params for op, params in self.calls if op == operation]

    async def _pause(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)

    def _filter(self, params: dict[str, Any]) -> list[Record]:
        records = self.records
        for key, expected in params.items():
            if key in _RESERVED_PARAMS or expected is None:
                continue
            records = [r for r in records if _matches(r, key, expected)]
        query = params.get("query")
        if query:
            needle = str(query).lower()
            records = [
                r
                for r in records
                if any(isinstance(v, str) and needle in v.lower() for v in r.values())
            ]
        sort = params.get("sort") or []
        if isinstance(sort, str):
            sort = [sort]
        for spec in reversed(sort):
            field, _, direction = spec.partition(",")
            records.sort(key=_sort_key(field), reverse=direction.lower() == "desc")
        return records

    def _page(self, records: list[Record], params: dict[str, Any]) -> ListResult:
        page = int(params.get("page", 0))
        size = int(params.get("size", len(records) or 1))
        start = page * size
        chunk = [dict(r) for r in records[start : start + size]]
        if not self.envelope:
            return chunk
        return {
            "content": chunk,
            "totalElements": len(records),
            "number": page,
            "size": size,
            "last": start + size >= len(records),
        }

    async def list(self, params: dict[str, Any]) -> ListResult:
        self.calls.append(("list", dict(params)))
        await self._pause()
        return self._page(self._filter(params), params)

    async def search(self, params: dict[str, Any]) -> ListResult:
        if not self.supports_search:
            return await super().search(params)
        self.calls.append(("search", dict(params)))
        await self._pause()
        return self._page(self._filter(params), params)

    async def count(self, params: dict[str, Any]) -> int:
        if not self.supports_count:
            return await super().count(params)
        self.calls.append(("count", dict(params)))
        await self._pause()
        return len(self._filter(params))

    async def get(self, entity_id: Any) -> Record | None:
        self.calls.append(("get", {"id": entity_id}))
        await self._pause()
        record = self._records.get(str(entity_id))
        return dict(record) if record is not None else None

    async def create(self, data: Record) -> Record:
        self.calls.append(("create", dict(data)))
        await self._pause()
        return dict(self._insert(dict(data)))

    async def update(self, entity_id: Any, data: Record) -> Record:
        self.calls.append(("update", {"id": entity_id, **data}))
        await self._pause()
        record = self._records.get(str(entity_id))
        if record is None:
            raise KeyError(f"{self.entity_name} {entity_id} not found")
        record.update(data)
        record[self.primary_key] = record.get(self.primary_key, entity_id)
        return dict(record)

    async def delete(self, entity_id: Any) -> None:
        self.calls.append(("delete", {"id": entity_id}))
        await self._pause()
        self._records.pop(str(entity_id), None)
