"""Pydantic models for blueprint manifests and include fragments.

A blueprint directory holds a ``template.yaml`` manifest.  The manifest is
validated once at parse time into a :class:`BlueprintDescriptor`; include
fragments are validated against the single :class:`BlueprintFragment` schema
so that their entries are structurally identical to the base manifest's
before they are merged.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Suffix marking a source file as a template; stripped from its destination.
DEFAULT_MARKER = ".tmpl"

# Types accepted for ``VariableSpec.type``, mapped to their canonical name.
VARIABLE_TYPES: dict[str, str] = {
    "string": "string",
    "str": "string",
    "bool": "bool",
    "boolean": "bool",
    "int": "int",
    "integer": "int",
    "select": "select",
}


def derive_blueprint_id(blueprint_type: str, architecture: str = "") -> str:
    """Derive a blueprint ID from its type and architecture variant.

    Examples::

        derive_blueprint_id("api")            -> "api"
        derive_blueprint_id("api", "standard") -> "api"
        derive_blueprint_id("api", "clean")    -> "api-clean"
    """
    if architecture and architecture != "standard":
        return f"{blueprint_type}-{architecture}"
    return blueprint_type


class _SpecModel(BaseModel):
    """Base for manifest entries: unknown keys are tolerated, values are frozen."""

    model_config = ConfigDict(extra="ignore", frozen=True, coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def _bool_conditions(cls, data: Any) -> Any:
        # YAML reads ``condition: true`` as a bool; conditions are expressions.
        if isinstance(data, dict):
            for key in ("condition", "enabled_when"):
                if isinstance(data.get(key), bool):
                    data = {**data, key: "true" if data[key] else "false"}
        return data


class VariableSpec(_SpecModel):
    """A configurable variable declared by a blueprint."""

    name: str
    type: str = "string"
    description: str = ""
    default: Any = None
    required: bool = False
    choices: tuple[str, ...] = ()
    validation: str = ""
    condition: str = ""

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("variable name cannot be empty")
        return value.strip()

    @field_validator("type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        canonical = VARIABLE_TYPES.get(value.strip().lower())
        if canonical is None:
            raise ValueError(
                f"unknown variable type {value!r} (expected one of "
                f"{', '.join(sorted(set(VARIABLE_TYPES.values())))})"
            )
        return canonical

    @field_validator("choices", mode="before")
    @classmethod
    def _choices_as_strings(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(str(item) for item in value)


class FileSpec(_SpecModel):
    """A template file and where it lands in the generated project."""

    source: str
    destination: str = ""
    condition: str = ""
    executable: bool = False

    @model_validator(mode="before")
    @classmethod
    def _default_destination(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("destination"):
            data = {**data, "destination": data.get("source", "")}
        return data


class DependencySpec(_SpecModel):
    """A module dependency merged into the generated module manifest."""

    module: str
    version: str = ""
    condition: str = ""


class FeatureSpec(_SpecModel):
    """A feature provided by the blueprint, enabled by a condition."""

    name: str
    description: str = ""
    enabled_when: str = "true"


class ValidationRule(_SpecModel):
    """An informational validation rule declared by the blueprint."""

    name: str
    description: str = ""
    value: Any = None


class HookSpec(_SpecModel):
    """A command executed after all files have been written."""

    name: str
    command: str
    args: tuple[str, ...] = ()
    work_dir: str = ""
    condition: str = ""

    @field_validator("args", mode="before")
    @classmethod
    def _args_as_strings(cls, value: Any) -> Any:
        if value is None:
            return ()
        return tuple(str(item) for item in value)


class IncludeRefs(_SpecModel):
    """Relative paths to include fragments, keyed by the section they supply."""

    variables: str = ""
    dependencies: str = ""
    features: str = ""

    def paths(self) -> list[tuple[str, str]]:
        """Return ``(slot, path)`` pairs for every declared include, in merge order."""
        return [
            (slot, path)
            for slot, path in (
                ("variables", self.variables),
                ("dependencies", self.dependencies),
                ("features", self.features),
            )
            if path
        ]


class BlueprintFragment(_SpecModel):
    """Schema shared by every include fragment."""

    variables: list[VariableSpec] = Field(default_factory=list)
    dependencies: list[DependencySpec] = Field(default_factory=list)
    features: list[FeatureSpec] = Field(default_factory=list)
    validation: list[ValidationRule] = Field(default_factory=list)
    post_hooks: list[HookSpec] = Field(default_factory=list)

    @field_validator("variables", "dependencies", "features", "validation", "post_hooks", mode="before")
    @classmethod
    def _list_or_empty(cls, value: Any) -> Any:
        return value if value is not None else []


class BlueprintDescriptor(BaseModel):
    """A fully resolved blueprint manifest.

    ``id`` is derived from ``type`` and ``architecture`` when the manifest does
    not set one explicitly, and ``metadata["path"]`` records the directory the
    blueprint was loaded from.
    """

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    id: str = ""
    name: str = ""
    description: str = ""
    type: str = ""
    architecture: str = ""
    version: str = ""
    author: str = ""
    license: str = ""
    include: IncludeRefs = Field(default_factory=IncludeRefs)
    variables: list[VariableSpec] = Field(default_factory=list)
    files: list[FileSpec] = Field(default_factory=list)
    dependencies: list[DependencySpec] = Field(default_factory=list)
    features: list[FeatureSpec] = Field(default_factory=list)
    validation: list[ValidationRule] = Field(default_factory=list)
    post_hooks: list[HookSpec] = Field(default_factory=list)
    dependency_manifest: str = "go.mod"
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator(
        "variables", "files", "dependencies", "features", "validation", "post_hooks",
        mode="before",
    )
    @classmethod
    def _list_or_empty(cls, value: Any) -> Any:
        return value if value is not None else []

    @field_validator("include", mode="before")
    @classmethod
    def _include_or_empty(cls, value: Any) -> Any:
        return value if value is not None else {}

    @field_validator("metadata", mode="before")
    @classmethod
    def _metadata_or_empty(cls, value: Any) -> Any:
        return value if value is not None else {}

    @model_validator(mode="after")
    def _derive_id(self) -> "BlueprintDescriptor":
        if not self.id and self.type:
            self.id = derive_blueprint_id(self.type, self.architecture)
        return self

    @property
    def path(self) -> str:
        """Directory the blueprint was loaded from (relative to the provider root)."""
        return str(self.metadata.get("path", ""))

    def merge_fragment(self, fragment: BlueprintFragment) -> None:
        """Append a fragment's entries after the ones already declared."""
        self.variables.extend(fragment.variables)
        self.dependencies.extend(fragment.dependencies)
        self.features.extend(fragment.features)
        self.validation.extend(fragment.validation)
        self.post_hooks.extend(fragment.post_hooks)

    def variable(self, name: str) -> VariableSpec | None:
        """Return the declared variable called *name*, if any."""
        for spec in self.variables:
            if spec.name == name:
                return spec
        return None
