"""Interactive answers for blueprint variables.

The binder asks a :class:`Prompter` for each visible variable when running
interactively.  :class:`RichPrompter` asks on the console with Rich prompts;
:class:`StaticPrompter` replays prepared answers (scripted runs and tests).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm, IntPrompt, Prompt

from forgekit.blueprints.models import VariableSpec


class Prompter(Protocol):
    """Supplies an answer for one variable.

    *default* is the value resolved from the lower-precedence sources (or
    ``None``); returning it unchanged keeps that value.
    """

    def ask(self, spec: VariableSpec, default: Any) -> Any: ...


class RichPrompter:
    """Asks for variable values on the console."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def ask(self, spec: VariableSpec, default: Any) -> Any:
        label = f"[bold]{escape(spec.name)}[/bold]"
        if spec.description:
            label += f" [dim]({escape(spec.description)})[/dim]"

        if spec.type == "bool":
            return Confirm.ask(
                label,
                default=_as_bool(default),
                console=self.console,
            )

        kwargs: dict[str, Any] = {"console": self.console}
        if default is not None and default != "":
            kwargs["default"] = default

        if spec.type == "int":
            return IntPrompt.ask(label, **kwargs)
        if spec.choices:
            kwargs["choices"] = list(spec.choices)
            if "default" in kwargs and str(kwargs["default"]) not in spec.choices:
                del kwargs["default"]
            elif "default" in kwargs:
                kwargs["default"] = str(kwargs["default"])
        elif "default" in kwargs:
            kwargs["default"] = str(kwargs["default"])
        return Prompt.ask(label, **kwargs)


class StaticPrompter:
    """Answers from a prepared mapping; unknown variables keep their default."""

    def __init__(self, answers: Mapping[str, Any]) -> None:
        self.answers = dict(answers)
        self.asked: list[str] = []

    def ask(self, spec: VariableSpec, default: Any) -> Any:
        self.asked.append(spec.name)
        return self.answers.get(spec.name, default)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "y", "1", "on")
    return bool(value)
