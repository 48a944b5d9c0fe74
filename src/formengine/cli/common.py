"""Shared CLI helpers."""

from __future__ import annotations

from pathlib import Path

import typer

from formengine.core.config import FormConfig
from formengine.core.config_loader import load_form_config
from formengine.core.errors import FormConfigError
from formengine.core.settings import get_settings
from formengine.runtime.storage import KeyValueStore, open_store

DEFAULT_STORE_NAME = "store.json"
STORE_HELP = "Store file (.json, or .db/.sqlite for SQLite); defaults to FORMENGINE_STORAGE_DIR/store.json"


def default_store_path() -> Path:
    return get_settings().storage_dir / DEFAULT_STORE_NAME


def open_cli_store(path: Path | None) -> KeyValueStore:
    """Open a durable store, exiting with code 1 when it does not exist."""
    store_path = path or default_store_path()
    if not store_path.exists():
        typer.echo(f"Error: No store found at {store_path}", err=True)
        raise typer.Exit(code=1)
    return open_store(store_path)


def load_or_exit(path: Path) -> FormConfig:
    try:
        return load_form_config(path)
    except FormConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
