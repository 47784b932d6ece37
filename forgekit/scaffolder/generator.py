"""Generation orchestrator.

Takes a registered blueprint plus binding sources and produces a project
directory: bind variables, plan and render every file, validate every
destination, write the tree, merge dependencies into the module manifest,
then run post-generation hooks and optionally ``git init``.

Generation is not transactional.  If a later step fails, files already
written stay on disk.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
import re
import stat
import time
from pathlib import Path, PurePosixPath
from typing import NamedTuple

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.table import Table

from forgekit.blueprints.loader import BlueprintLoader
from forgekit.blueprints.models import BlueprintDescriptor
from forgekit.blueprints.registry import BlueprintRegistry
from forgekit.config import EngineConfig
from forgekit.errors import HookError, PathSecurityError, RenderError, ValidationError, WriteError
from forgekit.scaffolder.binder import BindingSources, RenderContext, VariableBinder
from forgekit.scaffolder.dependencies import manifest_for, resolve_dependencies
from forgekit.scaffolder.hooks import HookRunner
from forgekit.scaffolder.templates import TemplateRenderer
from forgekit.utils import console as default_console
from forgekit.utils import run_command

logger = logging.getLogger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")

DEFAULT_GITIGNORE = """\
# Binaries
*.exe
*.dll
*.so
*.dylib
*.test
*.out
bin/
dist/
build/

# Dependencies
vendor/
go.work

# Environment
.env
.env.local

# Editors and OS files
.idea/
.vscode/
*.swp
.DS_Store
Thumbs.db

# Logs and temporary files
*.log
tmp/
"""


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class GenerationOptions(BaseModel):
    """How a generation run writes its output."""

    output_path: Path = Field(..., description="Directory the project is generated into")
    force: bool = Field(default=False, description="Allow a non-empty output directory")
    dry_run: bool = Field(default=False, description="Plan and render only; write nothing")
    init_git: bool = Field(default=False, description="Run 'git init' after generation")


class PlannedFile(BaseModel):
    """A rendered file waiting to be written."""

    model_config = ConfigDict(frozen=True)

    source: str
    destination: str = Field(..., description="POSIX path relative to the project root")
    content: str
    executable: bool = False


class GenerationResult(BaseModel):
    """Outcome of one generation run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    blueprint_id: str
    project_path: Path
    files_created: list[str] = Field(default_factory=list)
    dependencies: dict[str, str] = Field(default_factory=dict)
    hooks_run: list[str] = Field(default_factory=list)
    hook_errors: list[HookError] = Field(default_factory=list)
    git_initialized: bool = False
    duration: float = 0.0
    dry_run: bool = False

    @property
    def success(self) -> bool:
        return not self.hook_errors


class _Prepared(NamedTuple):
    root: Path
    context: RenderContext
    files: list[PlannedFile]


# ---------------------------------------------------------------------------
# Path validation
# ---------------------------------------------------------------------------


def validate_destination(destination: str, root: Path | None = None) -> str:
    """Return *destination* as a normalized POSIX path relative to the project root.

    Raises:
        PathSecurityError: The path is empty, absolute, contains a ``..``
            segment or, once joined to *root* and resolved, lands outside it.
    """
    candidate = destination.strip().replace("\\", "/")
    if not candidate:
        raise PathSecurityError(destination, "destination is empty")
    pure = PurePosixPath(candidate)
    if pure.is_absolute() or _DRIVE_RE.match(candidate):
        raise PathSecurityError(destination, "absolute paths are not allowed")
    if ".." in pure.parts:
        raise PathSecurityError(destination, "'..' segments are not allowed")

    normalized = posixpath.normpath(candidate)
    if normalized in (".", ""):
        raise PathSecurityError(destination, "destination resolves to the project root")

    if root is not None:
        base = root.resolve()
        target = base.joinpath(*PurePosixPath(normalized).parts).resolve()
        if not target.is_relative_to(base):
            raise PathSecurityError(destination, f"resolves outside the project root {base}")
    return normalized


# ---------------------------------------------------------------------------
# Main generator
# ---------------------------------------------------------------------------


class ProjectGenerator:
    """Generates projects from registered blueprints.

    One generator can serve concurrent ``generate`` calls: the registry is
    read-only during generation and every run gets its own render context.
    """

    def __init__(
        self,
        registry: BlueprintRegistry,
        loader: BlueprintLoader,
        renderer: TemplateRenderer | None = None,
        binder: VariableBinder | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.registry = registry
        self.loader = loader
        self.config = config or EngineConfig()
        self.renderer = renderer or TemplateRenderer(self.config.template_marker)
        self.binder = binder or VariableBinder(self.renderer)
        self.hooks = HookRunner(
            self.renderer,
            timeout=self.config.hook_timeout,
            grace_period=self.config.hook_grace_period,
        )

    # -- Public API --------------------------------------------------------

    async def generate(
        self,
        blueprint_id: str,
        sources: BindingSources,
        options: GenerationOptions,
    ) -> GenerationResult:
        """Generate a project from *blueprint_id* into ``options.output_path``.

        Raises:
            TemplateNotFoundError: The blueprint is not registered.
            ValidationError: The output directory is not empty (without
                ``force``) or the variables do not bind.
            RenderError: A template fails to render or two files share a
                destination.
            PathSecurityError: A destination escapes the project root.
            WriteError: A directory or file cannot be written.
            DependencyConflictError: Two versions of one module are requested.
        """
        started = time.perf_counter()
        descriptor = self.registry.get(blueprint_id)
        if not options.dry_run:
            self._check_output(Path(options.output_path), options.force)

        root, context, files = self._prepare(descriptor, sources, options.output_path)
        dependencies = resolve_dependencies(descriptor, context, self.renderer)
        if dependencies:
            validate_destination(descriptor.dependency_manifest, root)

        result = GenerationResult(
            blueprint_id=descriptor.id,
            project_path=root,
            files_created=[item.destination for item in files],
            dependencies=dependencies,
            dry_run=options.dry_run,
        )
        if options.dry_run:
            logger.info("Dry run: %d file(s) planned for %s", len(files), descriptor.id)
            result.duration = time.perf_counter() - started
            return result

        # 1. Directory skeleton, then file contents
        await self._create_directories(root, files)
        await self._write_files(root, files)
        logger.info("Wrote %d file(s) to %s", len(files), root)

        # 2. Dependencies into the module manifest
        if dependencies:
            manifest = manifest_for(descriptor.dependency_manifest)
            added = await asyncio.to_thread(
                manifest.merge, root / descriptor.dependency_manifest, dependencies, context
            )
            logger.info("Added %d dependency(ies) to %s", len(added), descriptor.dependency_manifest)

        # 3. Post-generation hooks
        result.hooks_run, result.hook_errors = await self.hooks.run_all(
            descriptor.post_hooks, root, context
        )

        # 4. Git repository
        if options.init_git:
            result.git_initialized = await self._init_git(root)

        result.duration = time.perf_counter() - started
        return result

    def plan(
        self,
        blueprint_id: str,
        sources: BindingSources,
        options: GenerationOptions,
    ) -> list[PlannedFile]:
        """Render and validate every file without writing anything."""
        return self._prepare(self.registry.get(blueprint_id), sources, options.output_path).files

    def render_in_memory(
        self,
        blueprint_id: str,
        sources: BindingSources,
        output_path: str | Path = ".",
    ) -> dict[str, str]:
        """Return ``{destination: content}`` for every planned file."""
        files = self._prepare(self.registry.get(blueprint_id), sources, output_path).files
        return {item.destination: item.content for item in files}

    def preview(
        self,
        blueprint_id: str,
        sources: BindingSources,
        options: GenerationOptions,
        console: Console | None = None,
    ) -> list[PlannedFile]:
        """Print the planned files and dependencies as Rich tables."""
        out = console or default_console
        descriptor = self.registry.get(blueprint_id)
        root, context, files = self._prepare(descriptor, sources, options.output_path)

        table = Table(title=f"{descriptor.id} -> {root}", header_style="bold cyan")
        table.add_column("Destination", no_wrap=True)
        table.add_column("Source", style="dim")
        table.add_column("Size", justify="right")
        for item in files:
            name = item.destination + (" [green](x)[/green]" if item.executable else "")
            table.add_row(name, item.source, f"{len(item.content.encode('utf-8'))} B")
        out.print(table)

        dependencies = resolve_dependencies(descriptor, context, self.renderer)
        if dependencies:
            deps = Table(title=descriptor.dependency_manifest, header_style="bold cyan")
            deps.add_column("Module")
            deps.add_column("Version")
            for module, version in sorted(dependencies.items()):
                deps.add_row(module, version or "(latest)")
            out.print(deps)
        return files

    # -- Steps -------------------------------------------------------------

    @staticmethod
    def _check_output(output: Path, force: bool) -> None:
        if not output.exists():
            return
        if not output.is_dir():
            raise ValidationError(f"output path {output} exists and is not a directory")
        if not force and any(output.iterdir()):
            raise ValidationError(
                f"output directory {output} is not empty (use force to generate anyway)"
            )

    def _prepare(
        self,
        descriptor: BlueprintDescriptor,
        sources: BindingSources,
        output_path: str | Path,
    ) -> _Prepared:
        root = Path(output_path).expanduser().resolve()

        extras = {
            "OutputPath": str(root),
            "BlueprintID": descriptor.id,
            "BlueprintType": descriptor.type,
            "Architecture": descriptor.architecture,
        }
        run_sources = BindingSources(
            config=sources.config,
            env=sources.env,
            cli=sources.cli,
            extras={**extras, **sources.extras},
            interactive=sources.interactive,
            prompter=sources.prompter,
        )
        context = self.binder.bind(descriptor, run_sources)
        files = self._plan_files(descriptor, context, root)
        return _Prepared(root, context, files)

    def _plan_files(
        self, descriptor: BlueprintDescriptor, context: RenderContext, root: Path
    ) -> list[PlannedFile]:
        planned: list[PlannedFile] = []
        seen: dict[str, str] = {}
        directory = descriptor.path

        for spec in descriptor.files:
            if spec.condition and not self.renderer.evaluate_condition(
                spec.condition, context, name=f"condition of {spec.source}"
            ):
                logger.debug("Excluding %s: condition is false", spec.source)
                continue

            source = self.renderer.render_string(spec.source, context, name=spec.source)
            body = self.loader.load_template_file(directory, source)
            content = self.renderer.render_content(body, context, name=source)
            if body.strip() and not content.strip():
                logger.debug("Excluding %s: rendered to whitespace", source)
                continue

            destination = validate_destination(
                self.renderer.render_path(spec.destination, context), root
            )
            if destination in seen:
                raise RenderError(
                    destination,
                    f"duplicate destination for {seen[destination]} and {source}",
                )
            seen[destination] = source
            planned.append(
                PlannedFile(
                    source=source,
                    destination=destination,
                    content=content,
                    executable=spec.executable,
                )
            )
        return planned

    async def _create_directories(self, root: Path, files: list[PlannedFile]) -> None:
        """Create the project root and every parent directory, shallowest first."""
        directories: set[Path] = {root}
        for item in files:
            parent = root.joinpath(*PurePosixPath(item.destination).parts).parent
            while parent != root and parent not in directories:
                directories.add(parent)
                parent = parent.parent

        for directory in sorted(directories, key=lambda p: (len(p.parts), str(p))):
            try:
                await asyncio.to_thread(directory.mkdir, parents=True, exist_ok=True)
            except OSError as exc:
                raise WriteError(str(directory), f"cannot create directory: {exc}") from exc

    async def _write_files(self, root: Path, files: list[PlannedFile]) -> None:
        """Write files through a bounded pool.

        After the first failure no further write starts; writes already
        running are waited for before that failure is raised, so nothing
        lands on disk after this coroutine returns.
        """
        if not files:
            return
        semaphore = asyncio.Semaphore(self.config.max_workers)
        failed = asyncio.Event()
        errors: list[Exception] = []

        async def _write(item: PlannedFile) -> None:
            async with semaphore:
                if failed.is_set():
                    return
                try:
                    await asyncio.to_thread(_write_file, root, item)
                except Exception as exc:
                    failed.set()
                    errors.append(exc)

        tasks = [asyncio.create_task(_write(item), name=item.destination) for item in files]
        try:
            await asyncio.wait(tasks)
        except asyncio.CancelledError:
            failed.set()
            await asyncio.wait(tasks)
            raise

        if errors:
            logger.debug("%d of %d writes failed", len(errors), len(files))
            raise errors[0]

    async def _init_git(self, root: Path) -> bool:
        gitignore = root / ".gitignore"
        try:
            if not gitignore.exists():
                await asyncio.to_thread(gitignore.write_text, DEFAULT_GITIGNORE, encoding="utf-8")
            returncode, _, stderr = await run_command(["git", "init"], cwd=root, timeout=60)
        except OSError as exc:
            logger.warning("git init failed: %s", exc)
            return False
        if returncode != 0:
            logger.warning("git init failed: %s", stderr or f"exit status {returncode}")
            return False
        logger.info("Initialized git repository in %s", root)
        return True


def _write_file(root: Path, item: PlannedFile) -> None:
    path = root.joinpath(*PurePosixPath(item.destination).parts)
    try:
        path.write_text(item.content, encoding="utf-8")
        if item.executable:
            _make_executable(path)
    except OSError as exc:
        raise WriteError(item.destination, str(exc)) from exc


def _make_executable(path: Path) -> None:
    """Set the executable bits on a file."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

