"""Error kinds raised by the blueprint engine.

Every error derives from :class:`ForgeError` and carries a stable ``code`` so
callers (the CLI, tests, other tools) can tell the kinds apart without
parsing messages.  Each kind also keeps the piece of context needed to locate
the fault: the manifest file, include path, blueprint ID, variable name,
destination path or hook name.
"""

from __future__ import annotations

from collections.abc import Iterable


class ForgeError(Exception):
    """Base class for all engine errors."""

    code = "UNKNOWN"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class ParseError(ForgeError):
    """A manifest could not be read or is not valid YAML / schema."""

    code = "PARSE_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"failed to parse {path}: {reason}")


class IncludeResolutionError(ForgeError):
    """An ``include`` fragment is missing or malformed."""

    code = "INCLUDE_ERROR"

    def __init__(self, include_path: str, reason: str) -> None:
        self.include_path = include_path
        super().__init__(f"failed to resolve include {include_path}: {reason}")


class TemplateNotFoundError(ForgeError):
    """No blueprint is registered under the requested ID."""

    code = "TEMPLATE_NOT_FOUND"

    def __init__(self, blueprint_id: str) -> None:
        self.blueprint_id = blueprint_id
        super().__init__(f"template '{blueprint_id}' not found")


class ValidationError(ForgeError):
    """Variable binding or input validation failed.

    ``variable`` names the first offending variable (if any) and
    ``variables`` lists every variable known to be invalid.
    """

    code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        variable: str | None = None,
        variables: Iterable[str] | None = None,
    ) -> None:
        names = list(variables) if variables is not None else []
        if variable is not None and variable not in names:
            names.insert(0, variable)
        self.variables = names
        self.variable = variable if variable is not None else (names[0] if names else None)
        super().__init__(message)


class PathSecurityError(ForgeError):
    """A rendered path escapes the generation root.  Always fatal."""

    code = "PATH_SECURITY"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"unsafe path {path!r}: {reason}")


class RenderError(ForgeError):
    """Template syntax or execution failure."""

    code = "RENDER_ERROR"

    def __init__(self, file: str, reason: str) -> None:
        self.file = file
        super().__init__(f"failed to render {file}: {reason}")


class WriteError(ForgeError):
    """Filesystem failure while creating directories or files."""

    code = "FILESYSTEM_ERROR"

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        super().__init__(f"failed to write {path}: {reason}")


class DependencyConflictError(ForgeError):
    """The same module was requested with different versions."""

    code = "DEPENDENCY_CONFLICT"

    def __init__(self, module: str, versions: Iterable[str]) -> None:
        self.module = module
        self.versions = sorted(set(versions))
        super().__init__(
            f"conflicting versions for {module}: {', '.join(self.versions)}"
        )


class HookError(ForgeError):
    """A post-generation hook failed.

    Reported to the caller; files already written stay in place.
    """

    code = "HOOK_ERROR"

    def __init__(
        self,
        hook: str,
        reason: str,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        self.hook = hook
        self.returncode = returncode
        self.output = output
        super().__init__(f"hook '{hook}' failed: {reason}")
