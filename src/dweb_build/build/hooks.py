"""Build hooks: user callables run after routes are compiled.

Hooks are configured as import paths (``package.module:callable``) and
receive a ``BuildHookContext``. A hook that cannot be imported or raises is
logged and skipped; the build continues.
"""

from __future__ import annotations

import importlib
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class BuildHookContext:
    """What a build hook is told about the running build.

    Attributes:
        out_dir: Output root of the app being built.
        static_dir: Source static asset directory.
        is_production: Always True for builds.
    """

    out_dir: Path
    static_dir: Path
    is_production: bool = True


@runtime_checkable
class BuildHook(Protocol):
    def __call__(self, context: BuildHookContext) -> None:
        ...


def load_hook(path: str) -> BuildHook:
    """Import a hook from ``package.module:callable``.

    Raises:
        ValueError: If the path has no ``:`` separator.
        ImportError: If the module cannot be imported.
        AttributeError: If the module has no such attribute.
        TypeError: If the attribute is not callable.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"Hook path must look like 'package.module:callable', got {path!r}")

    target = importlib.import_module(module_name)
    for part in attribute.split("."):
        target = getattr(target, part)
    if not callable(target):
        raise TypeError(f"Hook {path!r} is not callable")
    return target


class HookRunner:
    """Runs configured build hooks in order.

    Example:
        >>> runner = HookRunner(["my_app.hooks:generate_sitemap"])
        >>> runner.run(BuildHookContext(out_dir=Path("dist"), static_dir=Path("assets")))
        1
    """

    def __init__(self, hooks: Sequence[str | BuildHook]) -> None:
        self.hooks = list(hooks)
        self._log = logger.bind(component="hook_runner")

    def run(self, context: BuildHookContext) -> int:
        """Invoke every hook with ``context``; return how many succeeded."""
        succeeded = 0
        for hook in self.hooks:
            name = hook if isinstance(hook, str) else getattr(hook, "__qualname__", repr(hook))
            try:
                callable_hook = load_hook(hook) if isinstance(hook, str) else hook
                callable_hook(context)
            except Exception as e:
                self._log.warning(
                    "build_hook_failed",
                    hook=name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                continue
            succeeded += 1
            self._log.debug("build_hook_completed", hook=name)
        return succeeded
