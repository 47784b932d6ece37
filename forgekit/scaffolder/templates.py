"""Jinja2 template rendering for blueprint files, paths and conditions.

Provides the TemplateRenderer class which renders destination paths, file
contents and inclusion conditions against a render context.  Rendering runs
in a sandboxed environment with strict undefined handling, so a reference to
an unbound variable fails instead of producing an empty string.

Inside ``{{ ... }}`` and ``{% ... %}`` tags a leading-dot name refers to the
context root: ``{{.ProjectName}}`` and ``{{ ProjectName }}`` are the same
expression.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from typing import Any

from jinja2 import StrictUndefined, TemplateSyntaxError, meta, pass_context
from jinja2.ext import Extension
from jinja2.lexer import (
    TOKEN_DOT,
    TOKEN_FLOAT,
    TOKEN_INTEGER,
    TOKEN_NAME,
    TOKEN_RBRACE,
    TOKEN_RBRACKET,
    TOKEN_RPAREN,
    TOKEN_STRING,
    Token,
    TokenStream,
)
from jinja2.runtime import Context
from jinja2.sandbox import SandboxedEnvironment

from forgekit.blueprints.models import DEFAULT_MARKER
from forgekit.errors import RenderError

_MAJOR_VERSION_RE = re.compile(r"^v\d+$")

# Names after which a dot starts a root reference rather than an attribute.
_KEYWORDS = frozenset(
    {"and", "or", "not", "in", "is", "if", "elif", "else", "for", "set", "with", "print", "do"}
)
# Tokens that end an operand; a dot after one of these is attribute access.
_OPERAND_END = frozenset(
    {TOKEN_STRING, TOKEN_INTEGER, TOKEN_FLOAT, TOKEN_RPAREN, TOKEN_RBRACKET, TOKEN_RBRACE}
)


class RootReferenceExtension(Extension):
    """Drops the leading dot of ``.Name`` so it resolves against the context root.

    Works on the lexed token stream, so dots inside string literals,
    ``{% raw %}`` blocks and plain template text are never touched.
    """

    def filter_stream(self, stream: TokenStream) -> Iterator[Token]:
        previous: Token | None = None
        for token in stream:
            if (
                token.type == TOKEN_DOT
                and stream.current.type == TOKEN_NAME
                and not _ends_operand(previous)
            ):
                continue
            previous = token
            yield token


def _ends_operand(token: Token | None) -> bool:
    if token is None:
        return False
    if token.type == TOKEN_NAME:
        return token.value not in _KEYWORDS
    return token.type in _OPERAND_END


# ---------------------------------------------------------------------------
# TemplateRenderer
# ---------------------------------------------------------------------------


class TemplateRenderer:
    """Renders blueprint templates against a render context.

    Every method is a pure function of its arguments: the context is copied
    into the template namespace and never modified, so one renderer can be
    shared by concurrent renders.
    """

    def __init__(self, marker: str = DEFAULT_MARKER) -> None:
        self.marker = marker
        self.env = SandboxedEnvironment(
            undefined=StrictUndefined,
            autoescape=False,
            keep_trailing_newline=True,
            trim_blocks=True,
            lstrip_blocks=True,
            extensions=[RootReferenceExtension],
        )
        # Register custom filters
        self.env.filters["slugify"] = _slugify_filter
        self.env.filters["pascal_case"] = _pascal_case_filter
        self.env.filters["snake_case"] = _snake_case_filter
        self.env.filters["camel_case"] = _camel_case_filter
        self.env.filters["kebab_case"] = _kebab_case_filter
        self.env.filters["module_name"] = _module_name_filter
        self.env.filters["module_join"] = _module_join
        self.env.globals["module_join"] = _module_join
        self.env.globals["has_feature"] = _has_feature

    # -- Rendering ---------------------------------------------------------

    def render_string(
        self, template: str, context: Mapping[str, Any], name: str = "<string>"
    ) -> str:
        """Render an inline template string.

        Raises:
            RenderError: On syntax errors, undefined variables or any failure
                raised while executing the template.  ``name`` identifies the
                template in the error.
        """
        try:
            compiled = self.env.from_string(template)
        except TemplateSyntaxError as exc:
            raise RenderError(name, f"syntax error at line {exc.lineno}: {exc.message}") from exc
        try:
            return compiled.render(dict(context))
        except Exception as exc:
            raise RenderError(name, f"{type(exc).__name__}: {exc}") from exc

    def render_content(
        self, template: str, context: Mapping[str, Any], name: str | None = None
    ) -> str:
        """Render file content."""
        return self.render_string(template, context, name or "<content>")

    def render_path(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a path template and strip one trailing template marker.

        ``main.go.tmpl`` becomes ``main.go``; ``main.go.tmpl.tmpl`` becomes
        ``main.go.tmpl``; a path without the marker is returned unchanged.
        """
        rendered = self.render_string(template, context, name=template)
        return self.strip_marker(rendered)

    def strip_marker(self, path: str) -> str:
        if self.marker and path.endswith(self.marker):
            return path[: -len(self.marker)]
        return path

    # -- Conditions --------------------------------------------------------

    def evaluate_condition(
        self, condition: str, context: Mapping[str, Any], name: str = "condition"
    ) -> bool:
        """Evaluate an inclusion condition.

        A condition containing template tags is rendered and its trimmed
        output interpreted: ``true``/``false`` (any case), integers (non-zero
        is true), ``None`` and the empty string are false, anything else is
        true.  A condition without tags is a bare Jinja2 expression evaluated
        for truthiness.  An empty condition is true.
        """
        text = condition.strip()
        if not text:
            return True
        if "{{" in text or "{%" in text:
            return _interpret(self.render_string(text, context, name).strip())

        try:
            expression = self.env.compile_expression(text, undefined_to_none=False)
        except TemplateSyntaxError as exc:
            raise RenderError(name, f"invalid condition {text!r}: {exc.message}") from exc
        try:
            return bool(expression(**dict(context)))
        except Exception as exc:
            raise RenderError(name, f"{type(exc).__name__}: {exc}") from exc

    def referenced_names(self, expression: str) -> set[str]:
        """Return the context names an expression or template reads.

        Names provided by the renderer itself (helper functions) are not
        included.

        Raises:
            RenderError: If the expression does not parse.
        """
        text = expression.strip()
        if not text:
            return set()
        if "{{" not in text and "{%" not in text:
            text = "{{ " + text + " }}"
        try:
            ast = self.env.parse(text)
        except TemplateSyntaxError as exc:
            raise RenderError(expression, f"syntax error: {exc.message}") from exc
        return set(meta.find_undeclared_variables(ast)) - set(self.env.globals)


def _interpret(result: str) -> bool:
    lowered = result.lower()
    if lowered == "true":
        return True
    if lowered in ("false", "none", ""):
        return False
    try:
        return int(result) != 0
    except ValueError:
        return True


# ---------------------------------------------------------------------------
# Jinja2 custom filters and globals
# ---------------------------------------------------------------------------


def _slugify_filter(value: str) -> str:
    """Convert a string to a URL/filename-safe slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", str(value).lower().strip())
    return slug.strip("-")


def _pascal_case_filter(value: str) -> str:
    """Convert ``some-thing``, ``some_thing`` or ``someThing`` to ``SomeThing``."""
    parts = re.split(r"[-_\s]+", _snake_case_filter(value))
    return "".join(word.capitalize() for word in parts if word)


def _snake_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some-thing`` to ``some_thing``."""
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", str(value).strip())
    s2 = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1)
    return re.sub(r"[-\s]+", "_", s2).lower()


def _camel_case_filter(value: str) -> str:
    """Convert ``some-thing`` or ``some_thing`` to ``someThing``."""
    pascal = _pascal_case_filter(value)
    if pascal:
        return pascal[0].lower() + pascal[1:]
    return ""


def _kebab_case_filter(value: str) -> str:
    """Convert ``SomeThing`` or ``some_thing`` to ``some-thing``."""
    return _snake_case_filter(value).replace("_", "-")


def _module_name_filter(module_path: str) -> str:
    """Last element of a module path, skipping a major-version suffix.

    ``github.com/acme/billing`` and ``github.com/acme/billing/v2`` both give
    ``billing``.
    """
    parts = [part for part in str(module_path).strip("/").split("/") if part]
    if not parts:
        return ""
    if len(parts) > 1 and _MAJOR_VERSION_RE.match(parts[-1]):
        return parts[-2]
    return parts[-1]


def _module_join(module_path: str, *parts: str) -> str:
    """Join a module path and package path segments with ``/``."""
    segments = [str(module_path).rstrip("/")]
    segments.extend(str(part).strip("/") for part in parts if str(part).strip("/"))
    return "/".join(segments)


@pass_context
def _has_feature(context: Context, name: str) -> bool:
    """``True`` if *name* is one of the blueprint features enabled for this render."""
    return name in context.get("EnabledFeatures", ())
