"""Shared pytest fixtures for formengine tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from formengine.core.config import FormConfig
from formengine.core.config_loader import load_form_config, parse_form_config
from formengine.core.settings import EngineSettings
from formengine.runtime.collaborator import CapabilityRegistry, InMemoryEntitySource
from formengine.runtime.engine import FormEngine
from formengine.runtime.storage import MemoryStore


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, str]] = []

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))

    def error(self, message: str) -> None:
        self.messages.append(("error", message))

    def of(self, kind: str) -> list[str]:
        return [m for k, m in self.messages if k == kind]


def minimal_config_data(**overrides: Any) -> dict[str, Any]:
    """Two-step form: a required ``name`` field, then review."""
    data: dict[str, Any] = {
        "entity": "Contact",
        "steps": [
            {"id": "basic", "title": "Basic", "fields": ["name"]},
            {"id": "review", "title": "Review"},
        ],
        "fields": [{"name": "name", "type": "text", "label": "Name", "required": True}],
    }
    data.update(overrides)
    return data


@pytest.fixture
def fixtures_dir() -> Path:
    """Return path to fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def call_config(fixtures_dir: Path) -> FormConfig:
    return load_form_config(fixtures_dir / "call_form.yaml")


@pytest.fixture
def minimal_config() -> FormConfig:
    return parse_form_config(minimal_config_data())


@pytest.fixture
def config_data() -> Callable[..., dict[str, Any]]:
    """Factory for raw config mappings based on the minimal two-step form."""
    return minimal_config_data


@pytest.fixture
def make_config() -> Callable[..., FormConfig]:
    def factory(**overrides: Any) -> FormConfig:
        return parse_form_config(minimal_config_data(**overrides))

    return factory


@pytest.fixture
def call_sources() -> dict[str, InMemoryEntitySource]:
    """In-memory collaborators for every entity the call form touches."""
    return {
        "Call": InMemoryEntitySource("Call"),
        "priority": InMemoryEntitySource(
            "priority",
            [{"id": 1, "name": "High"}, {"id": 2, "name": "Low"}],
            countable=True,
        ),
        "callType": InMemoryEntitySource(
            "callType",
            [{"id": 5, "name": "Complaint"}, {"id": 7, "name": "Enquiry"}],
            searchable=True,
        ),
        "subCallType": InMemoryEntitySource(
            "subCallType",
            [
                {"id": 51, "name": "Billing", "callType": {"id": 5}},
                {"id": 52, "name": "Service", "callType": {"id": 5}},
                {"id": 71, "name": "Pricing", "callType": {"id": 7}},
            ],
        ),
        "customer": InMemoryEntitySource(
            "customer",
            [
                {"id": 100, "customerBusinessName": "Acme", "mobile": "9999"},
                {"id": 101, "customerBusinessName": "Globex", "mobile": "8888"},
            ],
            searchable=True,
        ),
        "userProfile": InMemoryEntitySource(
            "userProfile",
            [
                {"id": "u1", "displayName": "Asha", "channelType": {"id": 3, "name": "Direct"}},
                {"id": "u2", "displayName": "Ben", "channelType": {"id": 4, "name": "Partner"}},
            ],
        ),
        "channelType": InMemoryEntitySource(
            "channelType",
            [{"id": 3, "name": "Direct"}, {"id": 4, "name": "Partner"}],
        ),
    }


@pytest.fixture
def call_registry(call_sources: dict[str, InMemoryEntitySource]) -> CapabilityRegistry:
    registry = CapabilityRegistry()
    for name, source in call_sources.items():
        if name != "Call":
            registry.register(name, source)
    return registry


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def durable() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def short_lived() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def make_call_engine(
    call_config: FormConfig,
    call_sources: dict[str, InMemoryEntitySource],
    call_registry: CapabilityRegistry,
    durable: MemoryStore,
    short_lived: MemoryStore,
    notifier: RecordingNotifier,
) -> Callable[..., FormEngine]:
    """Factory for call-form engines sharing one set of stores."""

    def factory(**kwargs: Any) -> FormEngine:
        kwargs.setdefault("registry", call_registry)
        kwargs.setdefault("durable", durable)
        kwargs.setdefault("short_lived", short_lived)
        kwargs.setdefault("notifier", notifier)
        kwargs.setdefault("settings", EngineSettings(search_debounce_ms=0))
        config = kwargs.pop("config", call_config)
        return FormEngine(config, kwargs.pop("source", call_sources["Call"]), **kwargs)

    return factory
