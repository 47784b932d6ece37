"""Blueprint descriptor loading.

Reads ``template.yaml`` manifests from a filesystem root, resolves their
``include`` fragments and returns validated
:class:`~forgekit.blueprints.models.BlueprintDescriptor` objects.

The root is any ``importlib.resources`` Traversable: a plain ``Path`` for an
on-disk collection or a package resource tree for the bundled blueprints.
All paths handed around (``metadata["path"]``, include paths, template file
sources) are POSIX-style and relative to that root.
"""

from __future__ import annotations

import logging
import posixpath
from importlib.resources.abc import Traversable
from pathlib import Path, PurePosixPath
from typing import Any

import yaml
from pydantic import ValidationError as SchemaError

from forgekit.blueprints.models import BlueprintDescriptor, BlueprintFragment
from forgekit.blueprints.provider import FileProvider
from forgekit.errors import (
    IncludeResolutionError,
    ParseError,
    PathSecurityError,
    RenderError,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "template.yaml"


class BlueprintLoader:
    """Loads blueprint descriptors from a single filesystem root."""

    def __init__(self, root: Traversable | str | Path) -> None:
        if isinstance(root, str):
            root = Path(root)
        self.root: Traversable = root

    @classmethod
    def from_provider(cls, provider: FileProvider) -> "BlueprintLoader":
        return cls(provider.root())

    # -- Discovery ---------------------------------------------------------

    def load_all(self) -> list[BlueprintDescriptor]:
        """Load every blueprint directly below the root.

        If the root cannot be listed, falls back to :meth:`walk`.  Both
        produce the same descriptors, ordered by blueprint directory.
        """
        try:
            entries = sorted(self.root.iterdir(), key=lambda entry: entry.name)
        except OSError as exc:
            logger.debug("Cannot list blueprint root (%s); walking it instead", exc)
            return self.walk()

        descriptors: list[BlueprintDescriptor] = []
        for entry in entries:
            if not entry.is_dir() or not entry.joinpath(MANIFEST_NAME).is_file():
                continue
            descriptors.append(self.load_template(entry.name))

        logger.debug("Loaded %d blueprint(s) from root listing", len(descriptors))
        return descriptors

    def walk(self) -> list[BlueprintDescriptor]:
        """Recursively search the root for manifests.

        A directory holding a manifest is a blueprint; its subdirectories are
        not searched further (they contain that blueprint's template files).
        """
        found: list[str] = []

        def _visit(node: Traversable, relative: str) -> None:
            if node.joinpath(MANIFEST_NAME).is_file():
                found.append(relative)
                return
            try:
                children = sorted(node.iterdir(), key=lambda entry: entry.name)
            except OSError as exc:
                if relative == ".":
                    raise ParseError(".", f"blueprint root cannot be read: {exc}") from exc
                logger.warning("Skipping unreadable directory %s: %s", relative, exc)
                return
            for child in children:
                if child.is_dir():
                    _visit(child, child.name if relative == "." else f"{relative}/{child.name}")

        _visit(self.root, ".")
        descriptors = [self.load_template(directory) for directory in sorted(found)]
        logger.debug("Loaded %d blueprint(s) from recursive walk", len(descriptors))
        return descriptors

    # -- Single blueprint --------------------------------------------------

    def load_template(self, directory: str) -> BlueprintDescriptor:
        """Load one blueprint from *directory* (relative to the root).

        Include fragments are appended after the entries declared in the
        base manifest.

        Raises:
            ParseError: The manifest is unreadable, not YAML, or fails schema
                validation.
            IncludeResolutionError: An include fragment is missing, escapes
                the blueprint directory, or is malformed.
        """
        manifest_path = _join(directory, MANIFEST_NAME)
        try:
            raw = self._resolve(manifest_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ParseError(manifest_path, f"cannot read manifest: {exc}") from exc

        data = _parse_mapping(raw, manifest_path, ParseError)
        try:
            descriptor = BlueprintDescriptor.model_validate(data)
        except SchemaError as exc:
            raise ParseError(manifest_path, _summarize(exc)) from exc

        merged: set[str] = set()
        for slot, include in descriptor.include.paths():
            include_path = _confined(directory, include)
            if include_path is None:
                raise IncludeResolutionError(
                    include, f"{slot} include escapes blueprint directory {directory}"
                )
            if include_path in merged:
                continue
            merged.add(include_path)
            descriptor.merge_fragment(self._load_fragment(include_path))

        if not descriptor.id:
            raise ParseError(manifest_path, "blueprint declares neither 'id' nor 'type'")

        descriptor.metadata["path"] = directory
        logger.debug(
            "Loaded blueprint %s from %s (%d includes)", descriptor.id, directory, len(merged)
        )
        return descriptor

    def _load_fragment(self, include_path: str) -> BlueprintFragment:
        try:
            raw = self._resolve(include_path).read_text(encoding="utf-8")
        except OSError as exc:
            raise IncludeResolutionError(include_path, f"cannot read fragment: {exc}") from exc

        data = _parse_mapping(raw, include_path, IncludeResolutionError)
        try:
            return BlueprintFragment.model_validate(data)
        except SchemaError as exc:
            raise IncludeResolutionError(include_path, _summarize(exc)) from exc

    # -- Template files ----------------------------------------------------

    def load_template_file(self, directory: str, source: str) -> str:
        """Read a template file belonging to the blueprint in *directory*.

        Raises:
            PathSecurityError: *source* points outside the blueprint directory.
            RenderError: The file does not exist or cannot be read.
        """
        path = _confined(directory, source)
        if path is None:
            raise PathSecurityError(source, f"template source escapes blueprint directory {directory}")
        try:
            return self._resolve(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise RenderError(source, f"cannot read template file: {exc}") from exc

    def file_exists(self, directory: str, source: str) -> bool:
        """Return ``True`` if *source* exists inside the blueprint directory."""
        path = _confined(directory, source)
        return path is not None and self._resolve(path).is_file()

    # -- Internal helpers --------------------------------------------------

    def _resolve(self, relative: str) -> Traversable:
        node = self.root
        for part in PurePosixPath(relative).parts:
            if part != ".":
                node = node.joinpath(part)
        return node


def _join(directory: str, name: str) -> str:
    return name if directory in ("", ".") else f"{directory}/{name}"


def _confined(directory: str, relative: str) -> str | None:
    """Join *relative* onto *directory*; ``None`` if it would leave the directory."""
    relative = relative.replace("\\", "/")
    if not relative or relative.startswith("/") or PurePosixPath(relative).is_absolute():
        return None
    normalized = posixpath.normpath(relative)
    if normalized == ".." or normalized.startswith("../"):
        return None
    return posixpath.normpath(_join(directory, normalized))


def _parse_mapping(
    raw: str, path: str, error: type[ParseError] | type[IncludeResolutionError]
) -> dict[str, Any]:
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise error(path, f"invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise error(path, f"expected a mapping at top level, got {type(data).__name__}")
    return data


def _summarize(exc: SchemaError) -> str:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{location}: {item['msg']}")
    return "; ".join(problems)
