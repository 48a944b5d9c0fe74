"""Tests for CLI commands."""

import asyncio
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from typer.testing import CliRunner

from formengine.cli import app
from formengine.core.config_loader import load_form_config
from formengine.runtime.drafts import DraftManager, StorageDraftRepository
from formengine.runtime.handoff import HandoffChannel
from formengine.runtime.models import NavigationHandoff, RelationshipFieldInfo
from formengine.runtime.storage import JsonFileStore, MemoryStore


@pytest.fixture
def cli_runner():
    """Return a CLI test runner."""
    return CliRunner()


@pytest.fixture
def call_yaml(fixtures_dir: Path) -> Path:
    return fixtures_dir / "call_form.yaml"


@pytest.fixture
def store_path(tmp_path: Path) -> Path:
    path = tmp_path / "store.json"
    path.write_text("{}")
    return path


def _save_draft(store_path: Path, config_path: Path, name: str, *, days_ago: int = 0) -> str:
    created = datetime.now(UTC) - timedelta(days=days_ago)
    config = load_form_config(config_path)
    manager = DraftManager(
        config,
        StorageDraftRepository(JsonFileStore(store_path), config.behavior.persistence.storage_prefix),
        clock=lambda: created,
    )
    return asyncio.run(manager.save_draft({"remark": name}, name=name)).id


def test_version(cli_runner: CliRunner):
    result = cli_runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("formengine ")


def test_validate_success(cli_runner: CliRunner, call_yaml: Path):
    result = cli_runner.invoke(app, ["validate", str(call_yaml)])
    assert result.exit_code == 0
    assert "(Call, 5 steps)" in result.output
    assert "warning" not in result.output


def test_validate_reports_broken_config(cli_runner: CliRunner, tmp_path: Path):
    broken = tmp_path / "broken.yaml"
    broken.write_text("entity: Call\nsteps:\n  - id: one\n    fields: [ghost]\n")
    result = cli_runner.invoke(app, ["validate", str(broken)])
    assert result.exit_code == 1
    assert "unknown field 'ghost'" in result.output


def test_validate_strict_fails_on_warnings(cli_runner: CliRunner, tmp_path: Path):
    config = tmp_path / "contact.json"
    config.write_text(
        json.dumps(
            {
                "entity": "Contact",
                "steps": [{"id": "basic", "fields": ["name"]}, {"id": "review"}],
                "fields": [{"name": "name"}, {"name": "orphan"}],
            }
        )
    )
    relaxed = cli_runner.invoke(app, ["validate", str(config)])
    assert relaxed.exit_code == 0
    assert "'orphan' is not placed" in relaxed.output

    strict = cli_runner.invoke(app, ["validate", "--strict", str(config)])
    assert strict.exit_code == 1


def test_inspect(cli_runner: CliRunner, call_yaml: Path):
    result = cli_runner.invoke(app, ["inspect", str(call_yaml)])
    assert result.exit_code == 0
    assert "Call steps" in result.output
    assert "Relationships" in result.output


def test_normalize(cli_runner: CliRunner, call_yaml: Path, tmp_path: Path):
    out = tmp_path / "call.json"
    result = cli_runner.invoke(app, ["normalize", str(call_yaml), str(out)])
    assert result.exit_code == 0
    data = json.loads(out.read_text())
    assert data["relationships"][2]["cascadingFilter"]["parentField"] == "callType"

    bad = cli_runner.invoke(app, ["normalize", str(call_yaml), str(tmp_path / "call.toml")])
    assert bad.exit_code == 1


def test_drafts_missing_store(cli_runner: CliRunner, tmp_path: Path):
    result = cli_runner.invoke(app, ["drafts", "list", "--store", str(tmp_path / "none.json")])
    assert result.exit_code == 1
    assert "No store found" in result.output


def test_drafts_list_and_delete(cli_runner: CliRunner, call_yaml: Path, store_path: Path):
    empty = cli_runner.invoke(
        app, ["drafts", "list", "--store", str(store_path), "--prefix", "CallFormState_"]
    )
    assert "No drafts found." in empty.output

    draft_id = _save_draft(store_path, call_yaml, "Morning")
    listed = cli_runner.invoke(
        app, ["drafts", "list", "--store", str(store_path), "--prefix", "CallFormState_"]
    )
    assert listed.exit_code == 0
    assert "Drafts" in listed.output
    assert "1 draft(s)" in listed.output

    other = cli_runner.invoke(
        app,
        ["drafts", "list", "--store", str(store_path), "--prefix", "CallFormState_", "-e", "Lead"],
    )
    assert "No drafts found." in other.output

    args = ["drafts", "delete", draft_id, "--store", str(store_path), "--prefix", "CallFormState_"]
    deleted = cli_runner.invoke(app, args)
    assert deleted.exit_code == 0
    assert f"Deleted draft {draft_id}" in deleted.output
    assert cli_runner.invoke(app, args).exit_code == 1


def test_drafts_purge(cli_runner: CliRunner, call_yaml: Path, store_path: Path):
    _save_draft(store_path, call_yaml, "Old", days_ago=40)
    _save_draft(store_path, call_yaml, "Recent", days_ago=1)
    result = cli_runner.invoke(app, ["drafts", "purge", str(call_yaml), "--store", str(store_path)])
    assert result.exit_code == 0
    assert "Purged 1 Call draft(s)" in result.output
    assert len(JsonFileStore(store_path).keys("CallFormState_draft:")) == 1


def test_handoff_show_and_clear(cli_runner: CliRunner, store_path: Path):
    result = cli_runner.invoke(app, ["handoff", "show", "--store", str(store_path)])
    assert result.exit_code == 0
    assert "No pending handoff." in result.output

    HandoffChannel(JsonFileStore(store_path), MemoryStore()).post(
        NavigationHandoff(
            return_url="/calls/new",
            relationship_field_info=RelationshipFieldInfo(
                entity_name="Customers", relationship_name="customer"
            ),
        )
    )
    shown = cli_runner.invoke(app, ["handoff", "show", "--store", str(store_path)])
    assert "Pending handoff" in shown.output
    assert "/calls/new" in shown.output

    cleared = cli_runner.invoke(app, ["handoff", "clear", "--store", str(store_path)])
    assert cleared.exit_code == 0
    assert "Cleared handoff" in cleared.output
    assert JsonFileStore(store_path).keys() == []


def test_handoff_show_notice_in_same_store(cli_runner: CliRunner, store_path: Path):
    store = JsonFileStore(store_path)
    channel = HandoffChannel(store, store)
    channel.post(
        NavigationHandoff(
            return_url="/calls/new",
            relationship_field_info=RelationshipFieldInfo(
                entity_name="Customers", relationship_name="customer"
            ),
        )
    )
    assert channel.complete(102) == "/calls/new"

    shown = cli_runner.invoke(app, ["handoff", "show", "--store", str(store_path)])
    assert shown.exit_code == 0
    assert "No pending handoff." in shown.output
    assert "Undelivered notice: new Customers 102" in shown.output

    cli_runner.invoke(app, ["handoff", "clear", "--store", str(store_path)])
    assert JsonFileStore(store_path).keys() == []
