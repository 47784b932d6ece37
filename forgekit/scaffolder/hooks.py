"""Post-generation hooks.

Hooks run one at a time, in declaration order, after every file has been
written.  A failing hook is recorded and the next one still runs; files that
were already written stay where they are.  Cancelling the calling task gives
the running hook ``grace_period`` seconds to finish before it is killed, and
skips the hooks after it.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Mapping, Sequence
from pathlib import Path, PurePosixPath
from typing import Any

from forgekit.blueprints.models import HookSpec
from forgekit.errors import HookError, RenderError
from forgekit.scaffolder.templates import TemplateRenderer
from forgekit.utils import run_command

logger = logging.getLogger(__name__)

_SHELL_CHARS = frozenset("*?[|&;<>$`")


class HookRunner:
    """Runs a blueprint's post-generation hooks in the generated project."""

    def __init__(
        self,
        renderer: TemplateRenderer,
        timeout: float = 300,
        grace_period: float = 5.0,
    ) -> None:
        self.renderer = renderer
        self.timeout = timeout
        self.grace_period = grace_period

    async def run_all(
        self,
        hooks: Sequence[HookSpec],
        root: Path,
        context: Mapping[str, Any],
    ) -> tuple[list[str], list[HookError]]:
        """Run *hooks* inside *root*.

        Returns:
            The names of the hooks that ran successfully and the errors of
            those that failed.  Hooks whose condition is false appear in
            neither list.
        """
        succeeded: list[str] = []
        errors: list[HookError] = []
        for hook in hooks:
            try:
                if not self._should_run(hook, context):
                    logger.debug("Skipping hook %s: condition is false", hook.name)
                    continue
                await self.run_one(hook, root, context)
            except HookError as exc:
                logger.warning("%s", exc.message)
                errors.append(exc)
            else:
                succeeded.append(hook.name)
        return succeeded, errors

    async def run_one(self, hook: HookSpec, root: Path, context: Mapping[str, Any]) -> None:
        """Run a single hook.

        Raises:
            HookError: The hook could not be rendered or started, timed out,
                or exited with a non-zero status.
        """
        cwd = self._work_dir(hook, root, context)
        cmd = self._command(hook, context)
        logger.info("Running hook %s in %s", hook.name, cwd)

        try:
            returncode, stdout, stderr = await run_command(
                cmd, cwd=cwd, timeout=self.timeout, grace_period=self.grace_period
            )
        except OSError as exc:
            raise HookError(hook.name, f"cannot start {hook.command!r}: {exc}") from exc

        if returncode == -1:
            raise HookError(hook.name, f"timed out after {self.timeout}s", returncode, stderr)
        if returncode != 0:
            raise HookError(
                hook.name,
                f"exited with status {returncode}",
                returncode,
                stderr or stdout,
            )
        logger.debug("Hook %s finished", hook.name)

    # -- Helpers -----------------------------------------------------------

    def _should_run(self, hook: HookSpec, context: Mapping[str, Any]) -> bool:
        if not hook.condition:
            return True
        try:
            return self.renderer.evaluate_condition(
                hook.condition, context, name=f"hook {hook.name}"
            )
        except RenderError as exc:
            raise HookError(hook.name, f"condition failed: {exc.message}") from exc

    def _work_dir(self, hook: HookSpec, root: Path, context: Mapping[str, Any]) -> Path:
        if not hook.work_dir:
            return root
        try:
            rendered = self.renderer.render_string(
                hook.work_dir, context, name=f"hook {hook.name} work_dir"
            ).strip()
        except RenderError as exc:
            raise HookError(hook.name, exc.message) from exc

        # Absolute work dirs (``{{.OutputPath}}/cmd``) are fine inside the root.
        base = root.resolve()
        requested = Path(rendered)
        if not requested.is_absolute():
            parts = PurePosixPath(rendered.replace("\\", "/")).parts
            if ".." in parts:
                raise HookError(hook.name, f"work_dir {rendered!r} escapes the project directory")
            requested = base.joinpath(*parts)
        cwd = requested.resolve()
        if not cwd.is_relative_to(base):
            raise HookError(hook.name, f"work_dir {rendered!r} escapes the project directory")
        if not cwd.is_dir():
            raise HookError(hook.name, f"work_dir {rendered!r} does not exist")
        return cwd

    def _command(self, hook: HookSpec, context: Mapping[str, Any]) -> str | list[str]:
        try:
            command = self.renderer.render_string(
                hook.command, context, name=f"hook {hook.name}"
            ).strip()
            args = [
                self.renderer.render_string(arg, context, name=f"hook {hook.name}")
                for arg in hook.args
            ]
        except RenderError as exc:
            raise HookError(hook.name, exc.message) from exc

        if not command:
            raise HookError(hook.name, "empty command")
        if args:
            return [command, *args]
        if _SHELL_CHARS.intersection(command):
            return command
        return shlex.split(command)
