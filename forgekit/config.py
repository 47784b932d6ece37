"""forgekit configuration.

Two layers, both pydantic v2 models:

* :class:`EngineConfig` tunes the engine itself (where blueprints live,
  worker pool size, hook timeouts).  It can be built from ``FORGEKIT_*``
  environment variables and persisted to JSON.
* :class:`UserConfig` is the user's YAML file of named profiles.  The active
  profile supplies the "config" layer of variable binding.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError as SchemaError

from forgekit.blueprints.models import DEFAULT_MARKER
from forgekit.blueprints.provider import FileProvider
from forgekit.blueprints.registry import DEFAULT_BLUEPRINT_ID
from forgekit.errors import ParseError, ValidationError, WriteError

logger = logging.getLogger(__name__)

USER_CONFIG_NAME = ".forgekit.yaml"


class EngineConfig(BaseModel):
    """Engine-wide settings.

    Instances are created once by the CLI (or by an embedding application)
    and passed to the generator.
    """

    blueprints_dir: Path | None = Field(
        default=None, description="On-disk blueprint collection; bundled blueprints when unset"
    )
    blueprints_subdir: str = Field(default="", description="Subdirectory of blueprints_dir holding the collection")
    default_blueprint: str = Field(default=DEFAULT_BLUEPRINT_ID)
    template_marker: str = Field(default=DEFAULT_MARKER, description="Suffix stripped from rendered destinations")
    max_workers: int = Field(default=8, ge=1, description="Concurrent file writes")
    hook_timeout: float = Field(default=300, gt=0, description="Per-hook timeout in seconds")
    hook_grace_period: float = Field(
        default=5.0, ge=0, description="Seconds a running hook may finish after cancellation"
    )
    log_level: str = Field(default="warning")

    def provider(self) -> FileProvider:
        """Return the :class:`FileProvider` for the configured collection."""
        if self.blueprints_dir is None:
            return FileProvider.bundled()
        return FileProvider.directory(self.blueprints_dir, self.blueprints_subdir)

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Persist the configuration to a JSON file and return its path."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "EngineConfig":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build an ``EngineConfig`` from environment variables.

        Recognised variables (all optional):
            FORGEKIT_BLUEPRINTS_DIR, FORGEKIT_BLUEPRINTS_SUBDIR,
            FORGEKIT_DEFAULT_BLUEPRINT, FORGEKIT_TEMPLATE_MARKER,
            FORGEKIT_MAX_WORKERS, FORGEKIT_HOOK_TIMEOUT,
            FORGEKIT_HOOK_GRACE_PERIOD, FORGEKIT_LOG_LEVEL.
        """
        kwargs: dict[str, Any] = {}
        if os.environ.get("FORGEKIT_BLUEPRINTS_DIR"):
            kwargs["blueprints_dir"] = Path(os.environ["FORGEKIT_BLUEPRINTS_DIR"])
        if os.environ.get("FORGEKIT_BLUEPRINTS_SUBDIR"):
            kwargs["blueprints_subdir"] = os.environ["FORGEKIT_BLUEPRINTS_SUBDIR"]
        if os.environ.get("FORGEKIT_DEFAULT_BLUEPRINT"):
            kwargs["default_blueprint"] = os.environ["FORGEKIT_DEFAULT_BLUEPRINT"]
        if os.environ.get("FORGEKIT_TEMPLATE_MARKER"):
            kwargs["template_marker"] = os.environ["FORGEKIT_TEMPLATE_MARKER"]
        if os.environ.get("FORGEKIT_MAX_WORKERS"):
            kwargs["max_workers"] = int(os.environ["FORGEKIT_MAX_WORKERS"])
        if os.environ.get("FORGEKIT_HOOK_TIMEOUT"):
            kwargs["hook_timeout"] = float(os.environ["FORGEKIT_HOOK_TIMEOUT"])
        if os.environ.get("FORGEKIT_HOOK_GRACE_PERIOD"):
            kwargs["hook_grace_period"] = float(os.environ["FORGEKIT_HOOK_GRACE_PERIOD"])
        if os.environ.get("FORGEKIT_LOG_LEVEL"):
            kwargs["log_level"] = os.environ["FORGEKIT_LOG_LEVEL"]
        return cls(**kwargs)


# ---------------------------------------------------------------------------
# User profiles
# ---------------------------------------------------------------------------


class Profile(BaseModel):
    """A named set of values reused across generations."""

    author: str = ""
    email: str = ""
    license: str = ""
    variables: dict[str, Any] = Field(default_factory=dict)

    def values(self) -> dict[str, Any]:
        """Binding values: explicit ``variables`` win over the named fields."""
        values: dict[str, Any] = {}
        if self.author:
            values["Author"] = self.author
        if self.email:
            values["Email"] = self.email
        if self.license:
            values["License"] = self.license
        values.update(self.variables)
        return values


class UserConfig(BaseModel):
    """The user's ``.forgekit.yaml``."""

    profiles: dict[str, Profile] = Field(default_factory=dict)
    current_profile: str = ""

    @staticmethod
    def default_path() -> Path:
        """``./.forgekit.yaml`` when it exists, else ``~/.forgekit.yaml``."""
        local = Path.cwd() / USER_CONFIG_NAME
        if local.is_file():
            return local
        return Path.home() / USER_CONFIG_NAME

    @classmethod
    def load(cls, path: Path | None = None) -> "UserConfig":
        """Read the YAML file at *path* (or :meth:`default_path`).

        A missing file gives an empty configuration.

        Raises:
            ParseError: The file is unreadable, not YAML or has the wrong shape.
        """
        target = Path(path) if path is not None else cls.default_path()
        if not target.is_file():
            logger.debug("No user config at %s", target)
            return cls()
        try:
            data = yaml.safe_load(target.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ParseError(str(target), str(exc)) from exc
        try:
            return cls.model_validate(data or {})
        except SchemaError as exc:
            raise ParseError(str(target), f"{exc.error_count()} invalid field(s)") from exc

    def save(self, path: Path | None = None) -> Path:
        """Write the configuration as YAML and return its path."""
        target = Path(path) if path is not None else Path.home() / USER_CONFIG_NAME
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(
                yaml.safe_dump(self.model_dump(mode="json"), sort_keys=False),
                encoding="utf-8",
            )
        except OSError as exc:
            raise WriteError(str(target), str(exc)) from exc
        return target

    def profile_values(self, name: str | None = None) -> dict[str, Any]:
        """Values of profile *name* (or the current profile) for binding.

        Raises:
            ValidationError: A profile was named explicitly but does not exist.
        """
        selected = name or self.current_profile
        if not selected:
            return {}
        profile = self.profiles.get(selected)
        if profile is None:
            if name:
                raise ValidationError(f"profile {name!r} not found in user config")
            logger.warning("Current profile %r is not defined; ignoring it", selected)
            return {}
        return profile.values()
