"""Variable binding: from layered inputs to a validated render context.

Sources, lowest to highest precedence:

1. built-in extras supplied by the generator (``OutputPath``, ``BlueprintID``, ...)
2. ``VariableSpec.default``
3. persisted config file values (the active profile)
4. environment variables (``FORGEKIT_VAR_PROJECT_NAME`` for ``ProjectName``)
5. explicit CLI values
6. interactive prompt answers

Variables are bound in declaration order so a variable's ``condition`` can
test variables declared before it.  A condition that reads a variable
declared after it is a forward reference and fails immediately.  A string
default may itself be a template over the variables bound before it.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from forgekit.blueprints.models import BlueprintDescriptor, VariableSpec
from forgekit.errors import RenderError, ValidationError
from forgekit.scaffolder.prompts import Prompter
from forgekit.scaffolder.templates import TemplateRenderer, _snake_case_filter

logger = logging.getLogger(__name__)

ENV_PREFIX = "FORGEKIT_VAR_"

_TRUE_STRINGS = frozenset({"true", "yes", "y", "1", "on"})
_FALSE_STRINGS = frozenset({"false", "no", "n", "0", "off"})


# ---------------------------------------------------------------------------
# Render context
# ---------------------------------------------------------------------------


class RenderContext(Mapping[str, Any]):
    """Read-only mapping of bound values for one generation run."""

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values = MappingProxyType(dict(values or {}))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"RenderContext({dict(self._values)!r})"

    def with_values(self, **extra: Any) -> "RenderContext":
        """Return a new context with *extra* added; this one is unchanged."""
        return RenderContext({**self._values, **extra})


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


@dataclass
class BindingSources:
    """Inputs the binder layers over the blueprint's variable defaults."""

    config: dict[str, Any] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)
    cli: dict[str, Any] = field(default_factory=dict)
    extras: dict[str, Any] = field(default_factory=dict)
    interactive: bool = False
    prompter: Prompter | None = None

    @classmethod
    def from_environment(cls, **kwargs: Any) -> "BindingSources":
        """Sources whose environment layer is a snapshot of ``os.environ``."""
        return cls(env=dict(os.environ), **kwargs)


def env_var_name(variable: str) -> str:
    """Environment variable consulted for *variable*.

    ``ProjectName`` -> ``FORGEKIT_VAR_PROJECT_NAME``.
    """
    return ENV_PREFIX + _snake_case_filter(variable).upper()


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def coerce_value(spec: VariableSpec, raw: Any) -> Any:
    """Convert *raw* to the variable's declared type.

    ``None`` passes through unchanged.

    Raises:
        ValueError: If the value cannot be represented as the declared type.
    """
    if raw is None:
        return None

    if spec.type == "bool":
        if isinstance(raw, bool):
            return raw
        if isinstance(raw, int) and raw in (0, 1):
            return bool(raw)
        if isinstance(raw, str):
            lowered = raw.strip().lower()
            if lowered in _TRUE_STRINGS:
                return True
            if lowered in _FALSE_STRINGS:
                return False
        raise ValueError(f"expected a boolean, got {raw!r}")

    if spec.type == "int":
        if isinstance(raw, bool):
            raise ValueError(f"expected an integer, got {raw!r}")
        if isinstance(raw, int):
            return raw
        if isinstance(raw, str):
            try:
                return int(raw.strip())
            except ValueError:
                pass
        raise ValueError(f"expected an integer, got {raw!r}")

    # string and select
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, (str, int, float)):
        return str(raw)
    raise ValueError(f"expected a string, got {type(raw).__name__}")


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _unset_value(spec: VariableSpec) -> Any:
    if spec.type == "bool":
        return False
    if spec.type == "int":
        return None
    return ""


# ---------------------------------------------------------------------------
# VariableBinder
# ---------------------------------------------------------------------------


class VariableBinder:
    """Binds a blueprint's variables into a :class:`RenderContext`."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    def bind(self, descriptor: BlueprintDescriptor, sources: BindingSources) -> RenderContext:
        """Resolve, validate and coerce every declared variable.

        Raises:
            ValidationError: Listing every variable that is missing, of the
                wrong type, outside its choices or failing its pattern; or,
                immediately, the variable whose condition cannot be evaluated
                (forward reference, unknown name, broken expression).
        """
        values: dict[str, Any] = dict(sources.extras)
        positions = {spec.name: index for index, spec in enumerate(descriptor.variables)}
        invalid: list[str] = []
        problems: list[str] = []

        for index, spec in enumerate(descriptor.variables):
            if spec.condition and not self._visible(spec, index, positions, values):
                logger.debug("Skipping %s: condition %r is false", spec.name, spec.condition)
                values[spec.name] = _unset_value(spec)
                continue

            raw, origin = self._resolve(spec, sources)
            if origin == "default" and isinstance(raw, str) and ("{{" in raw or "{%" in raw):
                try:
                    raw = self.renderer.render_string(raw, values, name=f"default of {spec.name}")
                except RenderError as exc:
                    invalid.append(spec.name)
                    problems.append(f"{spec.name}: default cannot be rendered: {exc.message}")
                    values[spec.name] = None
                    continue
            if sources.interactive and sources.prompter is not None and spec.name not in sources.cli:
                raw = sources.prompter.ask(spec, raw)
                origin = "prompt"

            try:
                value = coerce_value(spec, raw)
                self._check(spec, value)
            except ValueError as exc:
                invalid.append(spec.name)
                problems.append(f"{spec.name}: {exc}")
                values[spec.name] = None
                continue

            if _is_missing(value):
                value = _unset_value(spec)
            values[spec.name] = value
            logger.debug("Bound %s from %s", spec.name, origin)

        if invalid:
            raise ValidationError(
                "invalid variables: " + "; ".join(problems),
                variables=invalid,
            )

        values["EnabledFeatures"] = tuple(
            feature.name
            for feature in descriptor.features
            if self.renderer.evaluate_condition(
                feature.enabled_when, values, name=f"feature {feature.name}"
            )
        )
        return RenderContext(values)

    # -- Helpers -----------------------------------------------------------

    def _visible(
        self,
        spec: VariableSpec,
        index: int,
        positions: Mapping[str, int],
        values: Mapping[str, Any],
    ) -> bool:
        label = f"condition of variable {spec.name}"
        try:
            names = self.renderer.referenced_names(spec.condition)
        except RenderError as exc:
            raise ValidationError(f"{label} is invalid: {exc.message}", variable=spec.name) from exc

        for name in sorted(names):
            if name in values:
                continue
            if positions.get(name, -1) >= index:
                raise ValidationError(
                    f"{label} references {name!r}, which is declared later (forward reference)",
                    variable=spec.name,
                )
            raise ValidationError(
                f"{label} references unknown variable {name!r}", variable=spec.name
            )

        try:
            return self.renderer.evaluate_condition(spec.condition, values, name=label)
        except RenderError as exc:
            raise ValidationError(f"{label} failed: {exc.message}", variable=spec.name) from exc

    @staticmethod
    def _resolve(spec: VariableSpec, sources: BindingSources) -> tuple[Any, str]:
        if spec.name in sources.cli:
            return sources.cli[spec.name], "cli"
        for key in (env_var_name(spec.name), ENV_PREFIX + spec.name):
            if key in sources.env:
                return sources.env[key], f"env {key}"
        if spec.name in sources.config:
            return sources.config[spec.name], "config"
        if spec.default is not None:
            return spec.default, "default"
        if spec.name in sources.extras:
            return sources.extras[spec.name], "extras"
        return None, "unset"

    @staticmethod
    def _check(spec: VariableSpec, value: Any) -> None:
        if _is_missing(value):
            if spec.required:
                raise ValueError("required but no value was provided")
            return
        if spec.choices and str(value) not in spec.choices:
            raise ValueError(
                f"{value!r} is not one of {', '.join(spec.choices)}"
            )
        if spec.validation:
            try:
                matched = re.fullmatch(spec.validation, str(value))
            except re.error as exc:
                raise ValueError(f"invalid validation pattern {spec.validation!r}: {exc}") from exc
            if matched is None:
                raise ValueError(f"{value!r} does not match {spec.validation!r}")
