"""CLI entry point for dweb-build.

Subcommands are registered lazily so ``dweb --help`` does not import the
build pipeline.
"""

from __future__ import annotations

import importlib
from typing import Any

import click
import rich_click as rclick

from dweb_build.cli import __version__
from dweb_build.cli.output import set_no_color

rclick.rich_click.TEXT_MARKUP = "markdown"
rclick.rich_click.SHOW_ARGUMENTS = True
rclick.rich_click.GROUP_ARGUMENTS_OPTIONS = True


class LazyGroup(rclick.RichGroup):
    """Click group that imports a command's module only when it is used.

    Attributes:
        lazy_subcommands: Command name to ``module.attribute`` path.
    """

    def __init__(
        self,
        *args: Any,
        lazy_subcommands: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.lazy_subcommands: dict[str, str] = lazy_subcommands or {}

    def list_commands(self, ctx: click.Context) -> list[str]:
        commands = set(super().list_commands(ctx))
        commands.update(self.lazy_subcommands.keys())
        return sorted(commands)

    def get_command(self, ctx: click.Context, cmd_name: str) -> click.Command | None:
        cmd = super().get_command(ctx, cmd_name)  # type: ignore[arg-type]
        if cmd is not None:
            return cmd

        if cmd_name not in self.lazy_subcommands:
            return None

        module_name, attr_name = self.lazy_subcommands[cmd_name].rsplit(".", 1)
        mod = importlib.import_module(module_name)
        return getattr(mod, attr_name)  # type: ignore[no-any-return]


LAZY_COMMANDS = {
    "build": "dweb_build.cli.commands.build.build",
}


@click.command(cls=LazyGroup, lazy_subcommands=LAZY_COMMANDS)
@click.version_option(version=__version__, prog_name="dweb")
@click.option(
    "--no-color",
    is_flag=True,
    default=False,
    help="Disable colored output.",
    is_eager=True,
    expose_value=False,
    callback=lambda ctx, param, value: set_no_color(value) if value else None,
)
def cli() -> None:
    """dweb - production builds for dweb apps.

    **Getting Started:**

    - `dweb build` - Build every app in ./dweb.yaml
    - `dweb build --app backend` - Build one app of a multi-app project
    - `dweb build --no-cache` - Rebuild everything from a clean output directory
    """


if __name__ == "__main__":
    cli()
