"""
Draft store commands.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from formengine.cli.common import STORE_HELP, load_or_exit, open_cli_store
from formengine.runtime.drafts import DraftManager, StorageDraftRepository

drafts_app = typer.Typer(help="Inspect and clean up stored drafts.", no_args_is_help=True)

console = Console()


@drafts_app.command("list")
def list_drafts(
    store: Path | None = typer.Option(None, "--store", "-s", help=STORE_HELP),
    prefix: str = typer.Option("FormState_", "--prefix", help="Storage prefix of the form"),
    entity: str | None = typer.Option(None, "--entity", "-e", help="Only drafts of this entity"),
) -> None:
    """List drafts, newest first."""
    repository = StorageDraftRepository(open_cli_store(store), prefix)
    drafts = asyncio.run(repository.all())
    if entity:
        drafts = [d for d in drafts if d.entity_type == entity]
    if not drafts:
        console.print("[dim]No drafts found.[/dim]")
        return

    table = Table(title="Drafts")
    table.add_column("ID", style="dim")
    table.add_column("Entity")
    table.add_column("Name")
    table.add_column("Step")
    table.add_column("Created")
    table.add_column("Updated")
    for draft in sorted(drafts, key=lambda d: d.age_key, reverse=True):
        table.add_row(
            draft.id,
            draft.entity_type,
            draft.name,
            str(draft.current_step),
            draft.created_at.isoformat(timespec="seconds"),
            draft.updated_at.isoformat(timespec="seconds"),
        )
    console.print(table)
    console.print(f"\n[dim]{len(drafts)} draft(s)[/dim]")


@drafts_app.command("delete")
def delete_draft(
    draft_id: str = typer.Argument(..., help="Draft id"),
    store: Path | None = typer.Option(None, "--store", "-s", help=STORE_HELP),
    prefix: str = typer.Option("FormState_", "--prefix", help="Storage prefix of the form"),
) -> None:
    """Delete one draft."""
    repository = StorageDraftRepository(open_cli_store(store), prefix)
    if not asyncio.run(repository.delete(draft_id)):
        typer.echo(f"Error: Draft not found: {draft_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted draft {draft_id}")


@drafts_app.command("purge")
def purge_drafts(
    config_path: Path = typer.Argument(..., help="FormConfig whose drafts to purge"),
    store: Path | None = typer.Option(None, "--store", "-s", help=STORE_HELP),
    older_than_days: int = typer.Option(
        30, "--older-than-days", "-d", min=0, help="Delete drafts created before this many days ago"
    ),
) -> None:
    """Delete old drafts of one entity type."""
    config = load_or_exit(config_path)
    repository = StorageDraftRepository(
        open_cli_store(store), config.behavior.persistence.storage_prefix
    )
    manager = DraftManager(config, repository)
    removed = asyncio.run(manager.purge(timedelta(days=older_than_days)))
    typer.echo(f"Purged {removed} {config.entity} draft(s)")
