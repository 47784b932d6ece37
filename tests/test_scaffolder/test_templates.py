"""Tests for TemplateRenderer (forgekit.scaffolder.templates).

Covers:
- Root-reference shorthand (``{{.Name}}``)
- Strict undefined handling and syntax errors
- Marker stripping on rendered paths
- Condition evaluation (expressions and rendered templates)
- Referenced-name extraction
- Custom filters and globals
"""

from __future__ import annotations

import pytest

from forgekit.errors import RenderError
from forgekit.scaffolder.templates import (
    TemplateRenderer,
    _camel_case_filter,
    _kebab_case_filter,
    _module_join,
    _module_name_filter,
    _pascal_case_filter,
    _slugify_filter,
    _snake_case_filter,
)

pytestmark = pytest.mark.unit


@pytest.fixture
def renderer() -> TemplateRenderer:
    return TemplateRenderer()


class TestRootReferences:
    CONTEXT = {
        "ProjectName": "demo",
        "Debug": True,
        "GoVersion": "1.22",
        "Items": ["a", "b"],
        "Logger": "zap",
        "config": {"port": 8080},
    }

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{{.ProjectName}}", "demo"),
            ("{{ .ProjectName | upper }}", "DEMO"),
            ("{% if .Debug %}x{% endif %}", "x"),
            ("{% if not .Debug %}x{% else %}y{% endif %}", "y"),
            ("go 1.21 {{.GoVersion}}", "go 1.21 1.22"),
            ("{{ config.port }}", "8080"),
            ("{{ .config.port }}", "8080"),
            ("{% for item in .Items %}{{ item }}{% endfor %}", "ab"),
            ("{{ [.ProjectName, .Logger] | join(',') }}", "demo,zap"),
            ("{{ .ProjectName ~ '-' ~ .Logger }}", "demo-zap"),
            ("{{ '.hidden' }}", ".hidden"),
            ("text .Outside tags", "text .Outside tags"),
        ],
    )
    def test_shorthand(self, renderer, source, expected):
        assert renderer.render_string(source, self.CONTEXT) == expected

    def test_render_shorthand(self, renderer):
        assert renderer.render_string("package main // {{.ProjectName}}", {"ProjectName": "demo"}) == (
            "package main // demo"
        )

    def test_raw_block_left_verbatim(self, renderer):
        source = "{% raw %}<h1>{{ .Title }}</h1>{% endraw %}"
        assert renderer.render_content(source, {}) == "<h1>{{ .Title }}</h1>"

    def test_string_literal_left_verbatim(self, renderer):
        assert renderer.render_content('{{ "copy .env.example" }}', {}) == "copy .env.example"

    def test_string_method_call_kept(self, renderer):
        assert renderer.render_content("{{ 'a-b'.upper() }}", {}) == "A-B"

    def test_condition_shorthand(self, renderer):
        assert renderer.evaluate_condition(".Logger == 'zap' and not .Debug", self.CONTEXT) is False


class TestRenderString:
    def test_undefined_variable_fails(self, renderer):
        with pytest.raises(RenderError) as exc_info:
            renderer.render_string("{{ Missing }}", {}, name="main.go.tmpl")
        assert exc_info.value.file == "main.go.tmpl"

    def test_syntax_error(self, renderer):
        with pytest.raises(RenderError, match="syntax error"):
            renderer.render_string("{% if %}", {})

    def test_keeps_trailing_newline(self, renderer):
        assert renderer.render_content("a {{ X }}\n", {"X": 1}) == "a 1\n"

    def test_context_not_modified(self, renderer):
        context = {"X": "1"}
        renderer.render_string("{% set Y = 2 %}{{ X }}", context)
        assert context == {"X": "1"}

    def test_sandbox_blocks_unsafe_attributes(self, renderer):
        with pytest.raises(RenderError):
            renderer.render_string("{{ X.__class__.__mro__ }}", {"X": "s"})


class TestRenderPath:
    @pytest.mark.parametrize(
        ("template", "expected"),
        [
            ("main.go.tmpl", "main.go"),
            ("README.md.tmpl", "README.md"),
            ("main.go", "main.go"),
            ("main.go.tmpl.tmpl", "main.go.tmpl"),
            ("cmd/{{.ProjectName}}/main.go.tmpl", "cmd/demo/main.go"),
        ],
    )
    def test_strips_one_marker(self, renderer, template, expected):
        assert renderer.render_path(template, {"ProjectName": "demo"}) == expected

    def test_custom_marker(self):
        assert TemplateRenderer(marker=".j2").render_path("a.txt.j2", {}) == "a.txt"


class TestConditions:
    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            ("", True),
            ("true", True),
            ("false", False),
            ("Logger == 'zap'", True),
            (".Logger == 'slog'", False),
            ("Port > 8000 and Docker", True),
            ("not Docker", False),
            ("{{ .Docker }}", True),
            ("{{ Empty }}", False),
            ("{{ 0 }}", False),
            ("{{ 2 }}", True),
            ("{{ 'none' }}", False),
            ("{% if Docker %}yes{% endif %}", True),
            ("{{ Logger }}", True),
        ],
    )
    def test_evaluation(self, renderer, condition, expected):
        context = {"Logger": "zap", "Port": 8080, "Docker": True, "Empty": ""}
        assert renderer.evaluate_condition(condition, context) is expected

    def test_undefined_name_fails(self, renderer):
        with pytest.raises(RenderError):
            renderer.evaluate_condition("Unknown == 1", {})

    def test_invalid_expression(self, renderer):
        with pytest.raises(RenderError, match="invalid condition"):
            renderer.evaluate_condition("a ==", {"a": 1})

    def test_has_feature(self, renderer):
        context = {"EnabledFeatures": ["docker"]}
        assert renderer.evaluate_condition("has_feature('docker')", context) is True
        assert renderer.evaluate_condition("{{ has_feature('grpc') }}", context) is False


class TestReferencedNames:
    def test_expression(self, renderer):
        assert renderer.referenced_names("Logger == 'zap' and .Docker") == {"Logger", "Docker"}

    def test_template(self, renderer):
        assert renderer.referenced_names("{% if A %}{{ B | upper }}{% endif %}") == {"A", "B"}

    def test_globals_excluded(self, renderer):
        assert renderer.referenced_names("has_feature('x')") == set()

    def test_empty(self, renderer):
        assert renderer.referenced_names("  ") == set()

    def test_parse_failure(self, renderer):
        with pytest.raises(RenderError):
            renderer.referenced_names("a ==")


class TestFilters:
    def test_case_filters(self):
        assert _snake_case_filter("ProjectName") == "project_name"
        assert _snake_case_filter("my-service") == "my_service"
        assert _pascal_case_filter("my-service") == "MyService"
        assert _pascal_case_filter("projectName") == "ProjectName"
        assert _camel_case_filter("my_service") == "myService"
        assert _kebab_case_filter("ProjectName") == "project-name"
        assert _slugify_filter("Hello, World!") == "hello-world"

    def test_module_name(self):
        assert _module_name_filter("github.com/acme/billing") == "billing"
        assert _module_name_filter("github.com/acme/billing/v2") == "billing"
        assert _module_name_filter("") == ""

    def test_module_join(self):
        assert _module_join("github.com/acme/app/", "internal", "/config/") == (
            "github.com/acme/app/internal/config"
        )

    def test_filters_registered(self, renderer):
        out = renderer.render_string("{{ .Name | snake_case }} {{ module_join(.Mod, 'pkg') }}", {
            "Name": "MyApp",
            "Mod": "example.com/x",
        })
        assert out == "my_app example.com/x/pkg"
