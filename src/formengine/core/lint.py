"""
Non-fatal checks for FormConfig.

Reference errors are rejected when the config is built; this module
reports the things that load fine but usually indicate a generator or
hand-editing mistake.
"""

from __future__ import annotations

from .config import FieldType, FormConfig


def lint_steps(config: FormConfig) -> list[str]:
    warnings: list[str] = []
    last = config.steps[-1]
    if last.members:
        warnings.append(
            f"Last step '{last.id}' has members; the last step is usually a review step "
            "with no inputs."
        )

    placed = {name for step in config.steps for name in step.members}
    for name in config.member_names:
        if name not in placed:
            warnings.append(f"'{name}' is not placed on any step and can never be edited.")

    for step in config.steps:
        if step.conditional_render is None:
            continue
        for ref in sorted(step.conditional_render.referenced_fields()):
            if not config.has_member(ref):
                warnings.append(f"Step '{step.id}' visibility rule references unknown '{ref}'.")
    return warnings


def lint_fields(config: FormConfig) -> list[str]:
    warnings: list[str] = []
    for field in config.fields:
        if field.type == FieldType.NUMBER and (
            field.validation.min_length is not None or field.validation.max_length is not None
        ):
            warnings.append(f"Field '{field.name}' is numeric; length bounds are ignored.")
        if field.type not in (FieldType.NUMBER,) and (
            field.validation.min is not None or field.validation.max is not None
        ):
            warnings.append(f"Field '{field.name}' is not numeric; min/max bounds are ignored.")
        if field.validation.required and not field.required:
            warnings.append(
                f"Field '{field.name}' is required only inside its validation block."
            )
    return warnings


def lint_relationships(config: FormConfig) -> list[str]:
    warnings: list[str] = []
    for rel in config.relationships:
        if rel.creation.can_create and not rel.creation.create_path:
            warnings.append(f"Relationship '{rel.name}' allows creation but has no createPath.")
        if not rel.api.list_all:
            warnings.append(f"Relationship '{rel.name}' declares no list capability name.")

        cf = rel.cascading_filter
        if cf is not None:
            parent_step = config.step_index_of(cf.parent_field)
            child_step = config.step_index_of(rel.name)
            if parent_step is not None and child_step is not None and parent_step > child_step:
                warnings.append(
                    f"Relationship '{rel.name}' is shown before its cascading parent "
                    f"'{cf.parent_field}' and stays disabled until the user goes forward."
                )

    targets: dict[str, list[str]] = {}
    for rel in config.relationships:
        if rel.auto_populate is not None:
            key = f"{rel.auto_populate.source_field}->{rel.auto_populate.target_field}"
            targets.setdefault(key, []).append(rel.name)
    for key, owners in targets.items():
        if len(owners) > 1:
            warnings.append(
                f"Auto-population {key} is declared {len(owners)} times "
                f"({', '.join(owners)}); only the first applies."
            )
    return warnings


def lint_form_config(config: FormConfig) -> list[str]:
    """
    Collect warnings for a loaded FormConfig.

    Args:
        config: A config that already passed load-time validation

    Returns:
        List of warning messages (empty when nothing looks off)
    """
    warnings: list[str] = []
    warnings.extend(lint_steps(config))
    warnings.extend(lint_fields(config))
    warnings.extend(lint_relationships(config))
    if config.behavior.drafts.enabled and not config.behavior.persistence.enabled:
        warnings.append(
            "Drafts are enabled while in-progress persistence is off; "
            "cross-entity navigation will not restore progress."
        )
    return warnings
