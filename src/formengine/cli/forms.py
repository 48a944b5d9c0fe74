"""
FormConfig commands: validate, inspect, normalize.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from formengine.cli.common import load_or_exit
from formengine.core.config import FormConfig
from formengine.core.config_loader import dump_form_config, load_form_config
from formengine.core.errors import FormConfigError
from formengine.core.lint import lint_form_config

console = Console()


def validate_command(
    configs: list[Path] = typer.Argument(..., help="FormConfig files (.yaml, .yml, .json, .toml)"),
    strict: bool = typer.Option(False, "--strict", help="Treat lint warnings as errors"),
) -> None:
    """Load and validate FormConfig files."""
    failed = 0
    warned = 0
    for path in configs:
        try:
            config = load_form_config(path)
        except FormConfigError as e:
            failed += 1
            typer.echo(f"✗ {path}\n  {e}", err=True)
            continue
        warnings = lint_form_config(config)
        warned += bool(warnings)
        typer.echo(f"✓ {path} ({config.entity}, {len(config.steps)} steps)")
        for warning in warnings:
            typer.echo(f"  warning: {warning}")

    if failed or (strict and warned):
        raise typer.Exit(code=1)


def _yes(flag: bool) -> str:
    return "yes" if flag else ""


def _render(config: FormConfig) -> None:
    steps = Table(title=f"{config.entity} steps")
    steps.add_column("#", style="dim")
    steps.add_column("ID")
    steps.add_column("Title")
    steps.add_column("Members")
    steps.add_column("Gates next")
    for index, step in enumerate(config.steps):
        steps.add_row(
            str(index),
            step.id,
            step.title,
            ", ".join(step.members) or "[dim]review[/dim]",
            _yes(config.step_validates_on_next(index)),
        )
    console.print(steps)

    if config.fields:
        fields = Table(title="Fields")
        fields.add_column("Name")
        fields.add_column("Type")
        fields.add_column("Required")
        fields.add_column("Label")
        for f in config.fields:
            fields.add_row(f.name, f.type.value, _yes(f.is_required), f.display_label)
        console.print(fields)

    if config.relationships:
        rels = Table(title="Relationships")
        rels.add_column("Name")
        rels.add_column("Target")
        rels.add_column("Type")
        rels.add_column("Multiple")
        rels.add_column("Required")
        rels.add_column("Cascades from")
        rels.add_column("Auto-populates")
        for rel in config.relationships:
            ap = rel.auto_populate
            rels.add_row(
                rel.name,
                rel.target_entity,
                rel.type.value,
                _yes(rel.multiple),
                _yes(rel.required),
                rel.cascading_filter.parent_field if rel.cascading_filter else "",
                (
                    f"{ap.source_field}.{ap.source_property} → {ap.target_field}"
                    + (" (override)" if ap.allow_override else "")
                    if ap
                    else ""
                ),
            )
        console.print(rels)

    behavior = config.behavior
    console.print(
        f"[dim]drafts: {'on' if behavior.drafts.enabled else 'off'} "
        f"(max {behavior.drafts.max_drafts}, {behavior.drafts.save_behavior.value}), "
        f"persistence prefix: {behavior.persistence.storage_prefix!r}, "
        f"step skipping: {'on' if behavior.navigation.allow_step_skipping else 'off'}[/dim]"
    )


def inspect_command(
    config_path: Path = typer.Argument(..., help="FormConfig file"),
) -> None:
    """Show steps, fields, relationships, cascades and auto-population rules."""
    _render(load_or_exit(config_path))


def normalize_command(
    config_path: Path = typer.Argument(..., help="FormConfig file to read"),
    output: Path = typer.Argument(..., help="Output file (.yaml, .yml or .json)"),
) -> None:
    """Re-emit a FormConfig with canonical camelCase keys."""
    config = load_or_exit(config_path)
    try:
        dump_form_config(config, output)
    except FormConfigError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Wrote {output}")
