"""
Shared base model for formengine configuration types.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ConfigModel(BaseModel):
    """Immutable configuration node.

    Generated configuration files use camelCase keys (``targetEntity``,
    ``validateOnNext``); Python callers may use the snake_case field names.
    Both are accepted, and ``model_dump(by_alias=True)`` round-trips to the
    camelCase form.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )
