"""
formengine configuration types.

The configuration model is a tree of frozen pydantic models describing one
entity's steps, fields, relationships and behaviour. All types are
re-exported here.
"""

from .base import ConfigModel
from .behavior import (
    AnimationConfig,
    AutoSaveConfig,
    BehaviorConfig,
    CrossEntityConfig,
    DraftsConfig,
    NavigationConfig,
    PersistenceConfig,
    ResponsiveConfig,
    SaveBehavior,
    SpacingConfig,
    UIConfig,
    ValidationConfig,
)
from .fields import FieldConfig, FieldOption, FieldType, FieldUIConfig, FieldValidation
from .form import FormConfig
from .relationships import (
    AutoPopulate,
    CascadingFilter,
    CreationConfig,
    RelationshipAPI,
    RelationshipCategory,
    RelationshipConfig,
    RelationshipType,
    RelationshipUIConfig,
)
from .steps import (
    ConditionalOperator,
    ConditionalRule,
    FormStep,
    RuleLogic,
    StepValidation,
    ValidationMode,
)

__all__ = [
    "AnimationConfig",
    "AutoPopulate",
    "AutoSaveConfig",
    "BehaviorConfig",
    "CascadingFilter",
    "ConditionalOperator",
    "ConditionalRule",
    "ConfigModel",
    "CreationConfig",
    "CrossEntityConfig",
    "DraftsConfig",
    "FieldConfig",
    "FieldOption",
    "FieldType",
    "FieldUIConfig",
    "FieldValidation",
    "FormConfig",
    "FormStep",
    "NavigationConfig",
    "PersistenceConfig",
    "RelationshipAPI",
    "RelationshipCategory",
    "RelationshipConfig",
    "RelationshipType",
    "RelationshipUIConfig",
    "ResponsiveConfig",
    "RuleLogic",
    "SaveBehavior",
    "SpacingConfig",
    "StepValidation",
    "UIConfig",
    "ValidationConfig",
    "ValidationMode",
]
