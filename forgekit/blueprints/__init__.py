"""Blueprint descriptors: schema, loading and the registry.

Quick usage::

    from forgekit.blueprints import BlueprintRegistry, FileProvider

    registry = BlueprintRegistry.from_provider(FileProvider.directory("./blueprints"))
    descriptor = registry.get("web-api-clean")
"""

from forgekit.blueprints.loader import MANIFEST_NAME, BlueprintLoader
from forgekit.blueprints.models import (
    BlueprintDescriptor,
    BlueprintFragment,
    DependencySpec,
    FeatureSpec,
    FileSpec,
    HookSpec,
    IncludeRefs,
    ValidationRule,
    VariableSpec,
    derive_blueprint_id,
)
from forgekit.blueprints.provider import FileProvider
from forgekit.blueprints.registry import DEFAULT_BLUEPRINT_ID, BlueprintRegistry

__all__ = [
    "DEFAULT_BLUEPRINT_ID",
    "MANIFEST_NAME",
    "BlueprintDescriptor",
    "BlueprintFragment",
    "BlueprintLoader",
    "BlueprintRegistry",
    "DependencySpec",
    "FeatureSpec",
    "FileProvider",
    "FileSpec",
    "HookSpec",
    "IncludeRefs",
    "ValidationRule",
    "VariableSpec",
    "derive_blueprint_id",
]
