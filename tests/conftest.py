"""Shared pytest fixtures for the forgekit test suite.

Provides reusable fixtures for:
- Blueprint collections written under ``tmp_path``
- Loaders, registries and generators wired to those collections
- Binding sources with an isolated (empty) environment layer
- Mock subprocess helpers for hook and git tests
"""

from __future__ import annotations

import textwrap
from pathlib import Path
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest

from forgekit.blueprints import BlueprintLoader, BlueprintRegistry
from forgekit.config import EngineConfig
from forgekit.scaffolder import BindingSources, GenerationOptions, ProjectGenerator

MakeBlueprint = Callable[..., Path]


# ---------------------------------------------------------------------------
# Blueprint trees
# ---------------------------------------------------------------------------


def write_blueprint(
    root: Path,
    directory: str,
    manifest: str,
    files: dict[str, str] | None = None,
) -> Path:
    """Write ``<root>/<directory>/template.yaml`` plus template files."""
    blueprint_dir = root / directory
    blueprint_dir.mkdir(parents=True, exist_ok=True)
    (blueprint_dir / "template.yaml").write_text(textwrap.dedent(manifest), encoding="utf-8")
    for relative, content in (files or {}).items():
        path = blueprint_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")
    return blueprint_dir


@pytest.fixture
def blueprint_root(tmp_path: Path) -> Path:
    """Empty blueprint collection directory."""
    root = tmp_path / "blueprints"
    root.mkdir()
    return root


@pytest.fixture
def make_blueprint(blueprint_root: Path) -> MakeBlueprint:
    """Factory writing blueprints into ``blueprint_root``."""

    def _make(directory: str, manifest: str, files: dict[str, str] | None = None) -> Path:
        return write_blueprint(blueprint_root, directory, manifest, files)

    return _make


WEB_API_MANIFEST = """\
    name: web-api-clean
    description: Clean architecture web API
    type: web-api
    architecture: clean
    version: "1.0.0"
    include:
      variables: config/variables.yaml
      dependencies: config/dependencies.yaml
    variables:
      - name: ProjectName
        type: string
        required: true
        validation: "^[a-z][a-z0-9-]*$"
      - name: ModulePath
        type: string
        default: "github.com/acme/{{.ProjectName}}"
      - name: Logger
        type: select
        default: slog
        choices: [slog, zap]
    files:
      - source: main.go.tmpl
        destination: "cmd/{{.ProjectName}}/main.go.tmpl"
      - source: go.mod.tmpl
      - source: docker/Dockerfile.tmpl
        destination: Dockerfile
        condition: "{{.EnableDocker}}"
      - source: scripts/run.sh.tmpl
        executable: true
      - source: internal/logger/zap.go.tmpl
        condition: "Logger == 'zap'"
    dependencies:
      - module: github.com/go-chi/chi/v5
        version: v5.0.12
    features:
      - name: docker
        enabled_when: "EnableDocker"
    validation:
      - name: go_version
        description: Minimum Go version
        value: "1.21"
"""

WEB_API_FILES = {
    "main.go.tmpl": """\
        package main

        import "{{.ModulePath}}/internal/app"

        func main() { app.Run({{ Port }}) }
        """,
    "go.mod.tmpl": """\
        module {{.ModulePath}}

        go 1.21
        """,
    "docker/Dockerfile.tmpl": """\
        FROM golang:1.21
        EXPOSE {{ Port }}
        """,
    "scripts/run.sh.tmpl": """\
        #!/bin/sh
        exec go run ./cmd/{{.ProjectName}}
        """,
    "internal/logger/zap.go.tmpl": """\
        package logger
        """,
    "config/variables.yaml": """\
        variables:
          - name: EnableDocker
            type: bool
            default: false
          - name: Port
            type: int
            default: 8080
        """,
    "config/dependencies.yaml": """\
        dependencies:
          - module: go.uber.org/zap
            version: v1.27.0
            condition: "Logger == 'zap'"
        """,
}

SIMPLE_MANIFEST = """\
    name: cli-simple
    type: cli
    architecture: simple
    variables:
      - name: ProjectName
        type: string
        required: true
    files:
      - source: main.go.tmpl
        destination: main.go.tmpl
"""

SIMPLE_FILES = {"main.go.tmpl": "package main // {{.ProjectName}}\n"}


@pytest.fixture
def sample_blueprints(make_blueprint: MakeBlueprint, blueprint_root: Path) -> Path:
    """Collection with ``web-api-clean`` and ``cli-simple``."""
    make_blueprint("web-api-clean", WEB_API_MANIFEST, WEB_API_FILES)
    make_blueprint("cli-simple", SIMPLE_MANIFEST, SIMPLE_FILES)
    return blueprint_root


# ---------------------------------------------------------------------------
# Engine wiring
# ---------------------------------------------------------------------------


@pytest.fixture
def loader(sample_blueprints: Path) -> BlueprintLoader:
    return BlueprintLoader(sample_blueprints)


@pytest.fixture
def registry(loader: BlueprintLoader) -> BlueprintRegistry:
    registry = BlueprintRegistry()
    registry.load_from(loader)
    return registry


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(max_workers=4, hook_timeout=30, hook_grace_period=0.5)


@pytest.fixture
def generator(
    registry: BlueprintRegistry, loader: BlueprintLoader, engine_config: EngineConfig
) -> ProjectGenerator:
    return ProjectGenerator(registry, loader, config=engine_config)


@pytest.fixture
def sources() -> Callable[..., BindingSources]:
    """Factory for binding sources that never read ``os.environ``."""

    def _sources(**cli: object) -> BindingSources:
        return BindingSources(cli=dict(cli))

    return _sources


@pytest.fixture
def output_dir(tmp_path: Path) -> Path:
    """Not-yet-existing output directory for a generated project."""
    return tmp_path / "out" / "project"


@pytest.fixture
def options(output_dir: Path) -> GenerationOptions:
    return GenerationOptions(output_path=output_dir)


# ---------------------------------------------------------------------------
# Mock subprocess helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_subprocess_success() -> MagicMock:
    """Mock process that exits 0 with some stdout."""
    proc = MagicMock()
    proc.returncode = 0
    proc.communicate = AsyncMock(return_value=(b"ok\n", b""))
    proc.wait = AsyncMock(return_value=0)
    proc.kill = MagicMock()
    return proc


@pytest.fixture
def mock_subprocess_failure() -> MagicMock:
    """Mock process that exits 1 with an error on stderr."""
    proc = MagicMock()
    proc.returncode = 1
    proc.communicate = AsyncMock(return_value=(b"", b"boom\n"))
    proc.wait = AsyncMock(return_value=1)
    proc.kill = MagicMock()
    return proc
