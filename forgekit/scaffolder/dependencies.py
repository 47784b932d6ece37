"""Dependency resolution and merging into the generated module manifest.

Conditional dependencies are resolved against the render context.  Asking for
the same module at two different versions is an error, whether both requests
come from the blueprint or one of them is already pinned in the generated
manifest.  Dependencies are written to the manifest only; nothing is
downloaded.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from forgekit.blueprints.models import BlueprintDescriptor
from forgekit.errors import DependencyConflictError, ValidationError, WriteError
from forgekit.scaffolder.templates import TemplateRenderer

logger = logging.getLogger(__name__)

DEFAULT_GO_VERSION = "1.21"

_GO_REQUIRE_LINE_RE = re.compile(r"^\s*require\s+(\S+)\s+(\S+)")
_GO_REQUIRE_BLOCK_RE = re.compile(r"^\s*require\s*\(\s*$")
_GO_BLOCK_ENTRY_RE = re.compile(r"^\s*(\S+)\s+(\S+)")


def resolve_dependencies(
    descriptor: BlueprintDescriptor,
    context: Mapping[str, Any],
    renderer: TemplateRenderer,
) -> dict[str, str]:
    """Return ``{module: version}`` for every dependency whose condition holds.

    An empty version means "unpinned" and never conflicts with a pinned one.

    Raises:
        DependencyConflictError: The same module appears with two different
            pinned versions.
    """
    resolved: dict[str, str] = {}
    for dep in descriptor.dependencies:
        if dep.condition and not renderer.evaluate_condition(
            dep.condition, context, name=f"dependency {dep.module}"
        ):
            continue
        _merge_one(resolved, dep.module, dep.version)
    return resolved


def _merge_one(into: dict[str, str], module: str, version: str) -> None:
    existing = into.get(module)
    if existing is None or not existing:
        into[module] = version or (existing or "")
        return
    if version and version != existing:
        raise DependencyConflictError(module, [existing, version])


# ---------------------------------------------------------------------------
# Manifest formats
# ---------------------------------------------------------------------------


class ModuleManifest:
    """Base class for manifest formats."""

    def read(self, text: str) -> dict[str, str]:
        raise NotImplementedError

    def create(self, context: Mapping[str, Any]) -> str:
        raise NotImplementedError

    def append(self, text: str, additions: Mapping[str, str]) -> str:
        raise NotImplementedError

    def merge(self, path: Path, dependencies: Mapping[str, str], context: Mapping[str, Any]) -> dict[str, str]:
        """Merge *dependencies* into the manifest at *path*.

        Creates the manifest when it does not exist.  Returns the entries that
        were added.

        Raises:
            DependencyConflictError: A module is already pinned at another version.
            WriteError: The manifest cannot be read or written.
        """
        try:
            text = path.read_text(encoding="utf-8") if path.exists() else self.create(context)
        except OSError as exc:
            raise WriteError(str(path), f"cannot read manifest: {exc}") from exc

        existing = self.read(text)
        additions: dict[str, str] = {}
        for module, version in sorted(dependencies.items()):
            pinned = existing.get(module)
            if pinned is not None:
                if version and pinned and version != pinned:
                    raise DependencyConflictError(module, [pinned, version])
                continue
            additions[module] = version

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(self.append(text, additions), encoding="utf-8")
        except OSError as exc:
            raise WriteError(str(path), f"cannot write manifest: {exc}") from exc
        return additions


class GoModManifest(ModuleManifest):
    """``go.mod``: dependencies go into a ``require ( ... )`` block."""

    def read(self, text: str) -> dict[str, str]:
        requires: dict[str, str] = {}
        in_block = False
        for line in text.splitlines():
            stripped = line.split("//", 1)[0].strip()
            if in_block:
                if stripped == ")":
                    in_block = False
                    continue
                match = _GO_BLOCK_ENTRY_RE.match(stripped)
                if match:
                    requires[match.group(1)] = match.group(2)
            elif _GO_REQUIRE_BLOCK_RE.match(stripped):
                in_block = True
            else:
                match = _GO_REQUIRE_LINE_RE.match(stripped)
                if match:
                    requires[match.group(1)] = match.group(2)
        return requires

    def create(self, context: Mapping[str, Any]) -> str:
        module = context.get("ModulePath") or context.get("ProjectName")
        if not module:
            raise ValidationError(
                "cannot create go.mod without ModulePath or ProjectName",
                variable="ModulePath",
            )
        go_version = context.get("GoVersion") or DEFAULT_GO_VERSION
        if go_version == "auto":
            go_version = DEFAULT_GO_VERSION
        return f"module {module}\n\ngo {go_version}\n"

    def append(self, text: str, additions: Mapping[str, str]) -> str:
        pinned = {module: version for module, version in additions.items() if version}
        for module in sorted(set(additions) - set(pinned)):
            logger.warning("Dependency %s has no version; run 'go get %s' after generation", module, module)
        if not pinned:
            return text
        lines = "".join(f"\t{module} {version}\n" for module, version in sorted(pinned.items()))
        return text.rstrip("\n") + f"\n\nrequire (\n{lines})\n"


class RequirementsManifest(ModuleManifest):
    """``requirements.txt``: one ``module==version`` per line."""

    def read(self, text: str) -> dict[str, str]:
        requires: dict[str, str] = {}
        for line in text.splitlines():
            entry = line.split("#", 1)[0].strip()
            if not entry or entry.startswith("-"):
                continue
            module, _, version = entry.partition("==")
            requires[module.strip()] = version.strip()
        return requires

    def create(self, context: Mapping[str, Any]) -> str:
        return ""

    def append(self, text: str, additions: Mapping[str, str]) -> str:
        if not additions:
            return text
        lines = "".join(
            f"{module}=={version}\n" if version else f"{module}\n"
            for module, version in sorted(additions.items())
        )
        prefix = text if not text or text.endswith("\n") else text + "\n"
        return prefix + lines


def manifest_for(name: str) -> ModuleManifest:
    """Return the manifest format handling the file called *name*.

    Raises:
        ValidationError: No format handles that file name.
    """
    basename = name.replace("\\", "/").rsplit("/", 1)[-1]
    if basename == "go.mod":
        return GoModManifest()
    if basename.endswith(".txt"):
        return RequirementsManifest()
    raise ValidationError(f"unsupported dependency manifest {name!r}")
