"""dweb build command - compile apps into server and client artifacts."""

from __future__ import annotations

from pathlib import Path

import click
import yaml
from pydantic import ValidationError as PydanticValidationError

from dweb_build.build import BuildOrchestrator, EsbuildCompiler
from dweb_build.cli.errors import (
    CLIError,
    handle_file_not_found,
    handle_permission_error,
    handle_validation_error,
    handle_yaml_error,
)
from dweb_build.cli.output import build_summary, info, success
from dweb_build.errors import DwebError
from dweb_build.schemas import DEFAULT_CONFIG_FILE, AppConfig, ProjectConfig


def _apply_overrides(app: AppConfig, *, no_cache: bool, split: bool) -> AppConfig:
    """Return ``app`` with command line flags applied to its build section."""
    if app.build is None:
        return app
    update: dict[str, bool] = {}
    if no_cache:
        update["cache"] = False
    if split:
        update["split"] = True
    if not update:
        return app
    return app.model_copy(update={"build": app.build.model_copy(update=update)})


@click.command("build")
@click.option(
    "-f",
    "--file",
    "file_path",
    type=click.Path(exists=False),
    default=f"./{DEFAULT_CONFIG_FILE}",
    help=f"Path to {DEFAULT_CONFIG_FILE} [default: ./{DEFAULT_CONFIG_FILE}]",
)
@click.option(
    "--app",
    "app_name",
    type=str,
    default=None,
    help="Build only this app (multi-app projects)",
)
@click.option("--no-cache", is_flag=True, default=False, help="Clear output and rebuild everything")
@click.option("--split", is_flag=True, default=False, help="Enable code splitting")
@click.option("--serial", is_flag=True, default=False, help="Compile one file at a time")
def build(file_path: str, app_name: str | None, no_cache: bool, split: bool, serial: bool) -> None:
    """Build apps described by dweb.yaml.

    Paths in the configuration are relative to the directory holding
    the file.

    Examples:

        dweb build

        dweb build --app backend --no-cache

        dweb build --file sites/blog/dweb.yaml --split
    """
    path = Path(file_path)
    if not path.exists():
        handle_file_not_found(file_path)

    try:
        project = ProjectConfig.from_yaml(path)
    except yaml.YAMLError as e:
        handle_yaml_error(e, file_path)
    except PydanticValidationError as e:
        handle_validation_error(e, file_path)

    if app_name is not None:
        try:
            apps = [project.get_app(app_name)]
        except KeyError:
            raise CLIError(f"Unknown app '{app_name}' in {file_path}") from None
    else:
        apps = list(project.apps)

    orchestrator = BuildOrchestrator(
        cwd=path.resolve().parent,
        compiler=EsbuildCompiler(),
        parallel=not serial,
    )

    rows = []
    for app in apps:
        label = app.name or "app"
        info(f"Building {label}...")
        try:
            result = orchestrator.build_app(
                _apply_overrides(app, no_cache=no_cache, split=split),
                multi_app=project.is_multi_app,
            )
        except PermissionError as e:
            handle_permission_error(str(e.filename or file_path), "write")
        except DwebError as e:
            raise CLIError(f"Build failed for {label}: {e.user_message}") from None

        success(f"Built {label} -> {result.manifest_path}")
        rows.append(
            {
                "app": label,
                "out_dir": result.out_dir,
                "files": result.files,
                "routes": f"{result.server_routes}/{result.client_routes}",
                "duration_ms": result.duration_ms,
            }
        )

    build_summary(rows)
