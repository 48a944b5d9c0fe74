"""
Cross-entity handoff commands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from formengine.cli.common import STORE_HELP, open_cli_store
from formengine.runtime.handoff import HandoffChannel

handoff_app = typer.Typer(help="Inspect or clear a pending cross-entity handoff.", no_args_is_help=True)

console = Console()


def _channel(store: Path | None, session_store: Path | None) -> HandoffChannel:
    durable = open_cli_store(store)
    short_lived = open_cli_store(session_store) if session_store else durable
    return HandoffChannel(durable, short_lived)


@handoff_app.command("show")
def show_handoff(
    store: Path | None = typer.Option(None, "--store", "-s", help=STORE_HELP),
    session_store: Path | None = typer.Option(
        None, "--session-store", help="Short-lived store holding created-entity notices; defaults to --store"
    ),
) -> None:
    """Show the pending handoff and any undelivered notice."""
    channel = _channel(store, session_store)
    handoff = channel.pending()
    if handoff is None:
        console.print("[dim]No pending handoff.[/dim]")
    else:
        info = handoff.relationship_field_info
        console.print("[bold]Pending handoff[/bold]")
        console.print(f"  Return URL:   {handoff.return_url}")
        console.print(f"  Waiting for:  {info.entity_name} (field {info.relationship_name or '?'})")
        console.print(f"  Multiple:     {'yes' if info.multiple else 'no'}")
        console.print(f"  Posted:       {info.timestamp.isoformat(timespec='seconds')}")
        ctx = handoff.entity_creation_context
        if ctx is not None:
            console.print(f"  Origin:       {ctx.origin_entity_name} at {ctx.origin_route}")
    notice = channel.peek()
    if notice is not None:
        console.print(
            f"[green]Undelivered notice:[/green] new {notice.relationship_field_info.entity_name} "
            f"{notice.entity_id}"
        )


@handoff_app.command("clear")
def clear_handoff(
    store: Path | None = typer.Option(None, "--store", "-s", help=STORE_HELP),
    session_store: Path | None = typer.Option(
        None, "--session-store", help="Short-lived store holding created-entity notices; defaults to --store"
    ),
) -> None:
    """Forget the pending handoff and any undelivered notice."""
    _channel(store, session_store).clear()
    typer.echo("Cleared handoff")
