"""Command-line interface.

Examples::

    forgekit list
    forgekit list --type web-api
    forgekit new cli-simple --name demo --module github.com/acme/demo
    forgekit new --type web-api --architecture clean --name shop --dry-run
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any

from rich.markup import escape
from rich.table import Table

from forgekit import __version__
from forgekit.blueprints import BlueprintLoader, BlueprintRegistry, derive_blueprint_id
from forgekit.config import EngineConfig, UserConfig
from forgekit.errors import ForgeError
from forgekit.scaffolder import (
    BindingSources,
    GenerationOptions,
    GenerationResult,
    ProjectGenerator,
    RichPrompter,
)
from forgekit.utils import (
    console,
    format_duration,
    parse_assignments,
    print_error,
    print_success,
    print_summary_table,
    print_warning,
    sanitize_name,
    setup_logging,
)

logger = logging.getLogger(__name__)

# ``forgekit new`` flags and the blueprint variables they set.
FLAG_VARIABLES: dict[str, str] = {
    "name": "ProjectName",
    "module": "ModulePath",
    "go_version": "GoVersion",
    "logger": "Logger",
    "database": "DatabaseDriver",
    "framework": "Framework",
}


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--log-level",
        choices=["error", "warning", "info", "debug"],
        default=None,
        help="Logging verbosity (default: warning, or FORGEKIT_LOG_LEVEL)",
    )
    common.add_argument(
        "--blueprints",
        default=None,
        help="Blueprint collection directory (default: bundled blueprints)",
    )

    parser = argparse.ArgumentParser(
        prog="forgekit",
        description="Generate projects from versioned blueprints",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  forgekit list\n"
            "  forgekit new cli-simple --name demo --module github.com/acme/demo\n"
            "  forgekit new --type web-api --architecture clean --name shop --dry-run\n"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", parents=[common], help="List available blueprints")
    list_cmd.add_argument("--type", dest="blueprint_type", default=None, help="Only this blueprint type")

    new_cmd = commands.add_parser("new", parents=[common], help="Generate a new project")
    new_cmd.add_argument("blueprint", nargs="?", default=None, help="Blueprint ID")
    new_cmd.add_argument("--type", dest="blueprint_type", default=None, help="Blueprint type (with --architecture)")
    new_cmd.add_argument("--architecture", default="", help="Architecture variant of --type")
    new_cmd.add_argument("--name", help="Project name")
    new_cmd.add_argument("--module", help="Module path (e.g. github.com/user/project)")
    new_cmd.add_argument("--go-version", help="Go version for the generated module")
    new_cmd.add_argument("--logger", help="Logger to use (slog, zap, logrus, zerolog)")
    new_cmd.add_argument("--database", help="Database driver (postgres, mysql, sqlite)")
    new_cmd.add_argument("--framework", help="Framework to use (gin, echo, cobra, ...)")
    new_cmd.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Set any blueprint variable (repeatable)",
    )
    new_cmd.add_argument("--output", "-o", default=None, help="Output directory (default: ./<name>)")
    new_cmd.add_argument("--force", action="store_true", help="Generate into a non-empty directory")
    new_cmd.add_argument("--dry-run", action="store_true", help="Show the planned files; write nothing")
    new_cmd.add_argument("--interactive", "-i", action="store_true", help="Prompt for every variable")
    new_cmd.add_argument("--git", action="store_true", help="Initialize a git repository")
    new_cmd.add_argument("--profile", default=None, help="User config profile to apply")
    new_cmd.add_argument("--config", default=None, help="User config file (default: .forgekit.yaml)")
    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for ``forgekit``.  Returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = EngineConfig.from_env()
    if args.blueprints:
        config = config.model_copy(update={"blueprints_dir": Path(args.blueprints), "blueprints_subdir": ""})
    setup_logging(args.log_level or config.log_level)

    try:
        if args.command == "list":
            return _cmd_list(args, config)
        return _cmd_new(args, config, parser)
    except ForgeError as exc:
        print_error(str(exc))
        return 1


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _cmd_list(args: argparse.Namespace, config: EngineConfig) -> int:
    registry = BlueprintRegistry.from_provider(config.provider(), config.default_blueprint)
    blueprints = registry.get_by_type(args.blueprint_type) if args.blueprint_type else registry.list()
    if not blueprints:
        print_warning("No blueprints found")
        return 0

    table = Table(title="Blueprints", header_style="bold cyan")
    table.add_column("ID", no_wrap=True)
    table.add_column("Type")
    table.add_column("Architecture")
    table.add_column("Version")
    table.add_column("Description")
    for descriptor in blueprints:
        marker = " [green](default)[/green]" if descriptor.id == registry.default_id else ""
        table.add_row(
            descriptor.id + marker,
            descriptor.type,
            descriptor.architecture or "-",
            descriptor.version or "-",
            escape(descriptor.description),
        )
    console.print(table)
    return 0


def _cmd_new(args: argparse.Namespace, config: EngineConfig, parser: argparse.ArgumentParser) -> int:
    try:
        cli_values: dict[str, Any] = parse_assignments(args.var)
    except ValueError as exc:
        parser.error(str(exc))

    for flag, variable in FLAG_VARIABLES.items():
        value = getattr(args, flag)
        if value:
            cli_values[variable] = value

    blueprint_id = args.blueprint
    if not blueprint_id and args.blueprint_type:
        blueprint_id = derive_blueprint_id(args.blueprint_type, args.architecture)
    blueprint_id = blueprint_id or config.default_blueprint

    provider = config.provider()
    registry = BlueprintRegistry.from_provider(provider, config.default_blueprint)
    generator = ProjectGenerator(registry, BlueprintLoader.from_provider(provider), config=config)

    user_config = UserConfig.load(Path(args.config) if args.config else None)
    sources = BindingSources.from_environment(
        config=user_config.profile_values(args.profile),
        cli=cli_values,
        interactive=args.interactive,
        prompter=RichPrompter(console) if args.interactive else None,
    )
    options = GenerationOptions(
        output_path=Path(args.output or _default_output(cli_values, blueprint_id)),
        force=args.force,
        dry_run=args.dry_run,
        init_git=args.git,
    )

    logger.debug("Generating %s into %s", blueprint_id, options.output_path)
    if options.dry_run:
        generator.preview(blueprint_id, sources, options, console=console)
        print_success("Dry run complete; nothing was written")
        return 0

    result = asyncio.run(generator.generate(blueprint_id, sources, options))
    _report(result)
    return 0


def _default_output(cli_values: dict[str, Any], blueprint_id: str) -> str:
    name = sanitize_name(str(cli_values.get("ProjectName") or "")) or blueprint_id
    return f"./{name}"


def _report(result: GenerationResult) -> None:
    print_summary_table(
        {
            "Blueprint": result.blueprint_id,
            "Project": str(result.project_path),
            "Files": str(len(result.files_created)),
            "Dependencies": str(len(result.dependencies)),
            "Hooks": f"{len(result.hooks_run)} ok, {len(result.hook_errors)} failed",
            "Git": "initialized" if result.git_initialized else "-",
            "Duration": format_duration(result.duration),
        },
        title="Generation summary",
    )
    for error in result.hook_errors:
        print_warning(str(error))
        if error.output:
            console.print(error.output, markup=False, highlight=False)
    if result.success:
        print_success(f"Project generated at {result.project_path}")
    else:
        print_warning(f"Project generated at {result.project_path} with hook failures")
