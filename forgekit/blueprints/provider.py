"""Explicit filesystem roots for blueprint collections.

A :class:`FileProvider` states where a blueprint collection lives: either an
on-disk directory (development mode) or a resource tree inside an installed
Python package (the bundled mode).  The caller also states whether the
collection sits at that root or in a named subdirectory; nothing is guessed
by probing the filesystem.
"""

from __future__ import annotations

import os
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path, PurePosixPath
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

BUNDLED_PACKAGE = "forgekit"
BUNDLED_SUBDIR = "bundled"


class FileProvider(BaseModel):
    """Caller-declared location of a blueprint collection."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["directory", "package"] = "package"
    location: str = BUNDLED_PACKAGE
    subdir: str = BUNDLED_SUBDIR

    @field_validator("subdir")
    @classmethod
    def _relative_subdir(cls, value: str) -> str:
        path = PurePosixPath(value.replace("\\", "/"))
        if path.is_absolute() or ".." in path.parts:
            raise ValueError(f"subdir must be a relative path inside the root: {value!r}")
        return "" if str(path) == "." else str(path)

    # -- Constructors ------------------------------------------------------

    @classmethod
    def directory(cls, path: str | Path, subdir: str = "") -> "FileProvider":
        """Provider for an on-disk blueprint directory."""
        return cls(kind="directory", location=str(path), subdir=subdir)

    @classmethod
    def bundled(cls) -> "FileProvider":
        """Provider for the blueprints shipped inside the ``forgekit`` package."""
        return cls()

    @classmethod
    def from_env(cls) -> "FileProvider":
        """Build a provider from ``FORGEKIT_BLUEPRINTS_DIR`` / ``FORGEKIT_BLUEPRINTS_SUBDIR``.

        Falls back to the bundled blueprints when no directory is configured.
        """
        directory = os.environ.get("FORGEKIT_BLUEPRINTS_DIR")
        if not directory:
            return cls.bundled()
        return cls.directory(directory, os.environ.get("FORGEKIT_BLUEPRINTS_SUBDIR", ""))

    # -- Resolution --------------------------------------------------------

    def root(self) -> Traversable:
        """Return the Traversable the loader reads blueprints from."""
        base: Traversable
        if self.kind == "directory":
            base = Path(self.location)
        else:
            base = resources.files(self.location)
        for part in PurePosixPath(self.subdir).parts if self.subdir else ():
            base = base.joinpath(part)
        return base

    def describe(self) -> str:
        """Human-readable description used in log messages."""
        suffix = f"/{self.subdir}" if self.subdir else ""
        return f"{self.kind}:{self.location}{suffix}"
