"""
formengine CLI.

- forms.py: validate, inspect and normalize FormConfig files
- drafts.py: list, delete and purge stored drafts
- handoff.py: inspect or clear a pending cross-entity handoff
- common.py: shared helpers
"""

from __future__ import annotations

import logging

import typer

from formengine._version import get_version
from formengine.cli.drafts import drafts_app
from formengine.cli.forms import inspect_command, normalize_command, validate_command
from formengine.cli.handoff import handoff_app
from formengine.core.settings import get_settings

app = typer.Typer(
    help="formengine: config-driven multi-step entity forms",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"formengine {get_version()}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool | None = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """formengine CLI main callback for global options."""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(levelname)s %(name)s: %(message)s",
    )


app.command(name="validate")(validate_command)
app.command(name="inspect")(inspect_command)
app.command(name="normalize")(normalize_command)
app.add_typer(drafts_app, name="drafts")
app.add_typer(handoff_app, name="handoff")


def main() -> None:
    app(standalone_mode=True)


__all__ = ["app", "main"]
