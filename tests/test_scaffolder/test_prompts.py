"""Tests for the interactive prompters (forgekit.scaffolder.prompts)."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from rich.console import Console

from forgekit.blueprints.models import VariableSpec
from forgekit.scaffolder.prompts import RichPrompter, StaticPrompter, _as_bool

pytestmark = pytest.mark.unit


class TestStaticPrompter:
    def test_answers_and_defaults(self):
        prompter = StaticPrompter({"A": "answer"})
        assert prompter.ask(VariableSpec(name="A"), "default") == "answer"
        assert prompter.ask(VariableSpec(name="B"), "default") == "default"
        assert prompter.asked == ["A", "B"]


class TestRichPrompter:
    @pytest.fixture
    def prompter(self) -> RichPrompter:
        return RichPrompter(Console(record=True))

    def test_string_with_default(self, prompter):
        with patch("forgekit.scaffolder.prompts.Prompt.ask", return_value="demo") as ask:
            value = prompter.ask(VariableSpec(name="ProjectName", description="Project name"), "x")
        assert value == "demo"
        label = ask.call_args.args[0]
        assert "ProjectName" in label and "Project name" in label
        assert ask.call_args.kwargs["default"] == "x"

    def test_string_without_default(self, prompter):
        with patch("forgekit.scaffolder.prompts.Prompt.ask", return_value="v") as ask:
            prompter.ask(VariableSpec(name="S"), "")
        assert "default" not in ask.call_args.kwargs

    def test_bool_uses_confirm(self, prompter):
        with patch("forgekit.scaffolder.prompts.Confirm.ask", return_value=True) as ask:
            assert prompter.ask(VariableSpec(name="Docker", type="bool"), "no") is True
        assert ask.call_args.kwargs["default"] is False

    def test_int_uses_int_prompt(self, prompter):
        with patch("forgekit.scaffolder.prompts.IntPrompt.ask", return_value=9000) as ask:
            assert prompter.ask(VariableSpec(name="Port", type="int"), 8080) == 9000
        assert ask.call_args.kwargs["default"] == 8080

    def test_select_passes_choices(self, prompter):
        spec = VariableSpec(name="Logger", type="select", choices=["slog", "zap"])
        with patch("forgekit.scaffolder.prompts.Prompt.ask", return_value="zap") as ask:
            prompter.ask(spec, "slog")
        assert ask.call_args.kwargs["choices"] == ["slog", "zap"]
        assert ask.call_args.kwargs["default"] == "slog"

    def test_select_drops_default_outside_choices(self, prompter):
        spec = VariableSpec(name="Logger", type="select", choices=["slog", "zap"])
        with patch("forgekit.scaffolder.prompts.Prompt.ask", return_value="zap") as ask:
            prompter.ask(spec, "log4j")
        assert "default" not in ask.call_args.kwargs


@pytest.mark.parametrize(
    ("value", "expected"),
    [("yes", True), ("On", True), ("no", False), ("", False), (None, False), (1, True)],
)
def test_as_bool(value, expected):
    assert _as_bool(value) is expected
