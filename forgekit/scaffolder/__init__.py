"""forgekit scaffolder -- binds variables and generates projects from blueprints.

Quick usage::

    from forgekit.blueprints import BlueprintLoader, BlueprintRegistry, FileProvider
    from forgekit.scaffolder import BindingSources, GenerationOptions, ProjectGenerator

    provider = FileProvider.directory("./blueprints")
    registry = BlueprintRegistry.from_provider(provider)
    generator = ProjectGenerator(registry, BlueprintLoader.from_provider(provider))
    result = await generator.generate(
        "cli-simple",
        BindingSources(cli={"ProjectName": "demo"}),
        GenerationOptions(output_path="/tmp/demo"),
    )
"""

from forgekit.scaffolder.binder import BindingSources, RenderContext, VariableBinder
from forgekit.scaffolder.generator import (
    GenerationOptions,
    GenerationResult,
    PlannedFile,
    ProjectGenerator,
    validate_destination,
)
from forgekit.scaffolder.hooks import HookRunner
from forgekit.scaffolder.prompts import RichPrompter, StaticPrompter
from forgekit.scaffolder.templates import TemplateRenderer

__all__ = [
    "BindingSources",
    "GenerationOptions",
    "GenerationResult",
    "HookRunner",
    "PlannedFile",
    "ProjectGenerator",
    "RenderContext",
    "RichPrompter",
    "StaticPrompter",
    "TemplateRenderer",
    "VariableBinder",
    "validate_destination",
]
