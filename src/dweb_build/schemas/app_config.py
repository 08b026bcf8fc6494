"""App and project configuration models.

A ``dweb.yaml`` describes either one app (app keys at the top level) or
several (an ``apps`` list, multi-app mode). ``ProjectConfig.from_yaml``
decides the mode once, when the file is loaded; the build never inspects
the raw shape again.

Keys the build does not own (server, session, middleware, ...) belong to
the runtime and are ignored here.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from dweb_build.schemas.build_config import (
    DEFAULT_ENTRY,
    DEFAULT_STATIC_DIR,
    BuildConfig,
    I18nConfig,
    RouteConfig,
    StaticConfig,
)

DEFAULT_CONFIG_FILE = "dweb.yaml"

# deno.json / deno.jsonc carry the import alias table under "imports"
DENO_CONFIG_FILES = ("deno.json", "deno.jsonc")

APP_NAME_PATTERN = r"^[a-zA-Z][a-zA-Z0-9_-]{0,99}$"


class AppConfig(BaseModel):
    """Build-relevant configuration of one app.

    Attributes:
        name: App name. Required in multi-app mode.
        build: Build options. A build without this section is rejected.
        routes: Route discovery configuration. A build without it is
            rejected.
        static: Static asset configuration.
        i18n: Translation files configuration.
        import_map: Import alias table handed to the Compiler. ``None``
            means "read it from deno.json".
        hooks: Dotted paths (``package.module:callable``) of build hooks.

    Example:
        >>> app = AppConfig(build={"outDir": "dist"}, routes="routes")
        >>> app.routes.api_dir
        'routes/api'
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    name: str | None = Field(default=None, pattern=APP_NAME_PATTERN, description="App name")
    build: BuildConfig | None = Field(default=None, description="Build options")
    routes: RouteConfig | None = Field(default=None, description="Route discovery")
    static: StaticConfig = Field(default_factory=StaticConfig, description="Static assets")
    i18n: I18nConfig | None = Field(default=None, description="Translation files")
    import_map: dict[str, str] | None = Field(default=None, description="Import aliases")
    hooks: tuple[str, ...] = Field(default=(), description="Build hook import paths")

    @field_validator("routes", mode="before")
    @classmethod
    def _routes_from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"dir": value}
        return value

    def entry_file(self, multi_app: bool = False) -> str:
        """Return the configured entry module, applying the mode default."""
        if self.build is not None and self.build.entry:
            return self.build.entry
        if multi_app and self.name:
            return f"{self.name}/{DEFAULT_ENTRY}"
        return DEFAULT_ENTRY

    def static_dir(self, multi_app: bool = False) -> str:
        """Return the static asset directory, applying the mode default."""
        if self.static.dir:
            return self.static.dir
        if multi_app and self.name:
            return f"{self.name}/{DEFAULT_STATIC_DIR}"
        return DEFAULT_STATIC_DIR


class ProjectConfig(BaseModel):
    """A whole ``dweb.yaml``: one app or several.

    Attributes:
        mode: ``"single"`` or ``"multi"``; fixed at load time.
        apps: The app configurations. Exactly one in single mode.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    mode: Literal["single", "multi"] = Field(default="single", description="App mode")
    apps: tuple[AppConfig, ...] = Field(..., min_length=1, description="App configs")

    @property
    def is_multi_app(self) -> bool:
        return self.mode == "multi"

    def get_app(self, name: str | None = None) -> AppConfig:
        """Return the app called ``name`` (or the only app when ``None``).

        Raises:
            KeyError: If no app has that name, or ``name`` is omitted in
                multi-app mode with more than one app.
        """
        if name is None:
            if len(self.apps) == 1:
                return self.apps[0]
            raise KeyError("app name required in multi-app mode")
        for app in self.apps:
            if app.name == name:
                return app
        raise KeyError(name)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProjectConfig:
        """Build a ProjectConfig from already-parsed configuration data.

        In multi-app mode each app is deep-merged over the top-level keys,
        app values winning; hook lists are concatenated without duplicates.
        """
        if "apps" in data and isinstance(data["apps"], list):
            base = {k: v for k, v in data.items() if k != "apps"}
            apps = [
                AppConfig.model_validate(_merge_app_config(base, app))
                for app in data["apps"]
            ]
            return cls(mode="multi", apps=tuple(apps))
        return cls(mode="single", apps=(AppConfig.model_validate(data),))

    @classmethod
    def from_yaml(cls, path: str | Path) -> ProjectConfig:
        """Load and validate a project configuration file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            yaml.YAMLError: If the YAML is invalid.
            pydantic.ValidationError: If schema validation fails.

        Example:
            >>> project = ProjectConfig.from_yaml("dweb.yaml")
            >>> project.get_app().build.out_dir
            'dist'
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        with path.open("r") as f:
            data: dict[str, Any] = yaml.safe_load(f) or {}

        return cls.from_dict(data)


def _merge_app_config(base: dict[str, Any], app: dict[str, Any]) -> dict[str, Any]:
    merged: dict[str, Any] = dict(base)
    for key, value in app.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = _merge_app_config(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            combined: list[Any] = []
            for item in [*current, *value]:
                if item not in combined:
                    combined.append(item)
            merged[key] = combined
        else:
            merged[key] = value
    return merged


def load_import_map(cwd: Path) -> dict[str, str]:
    """Read the ``imports`` table from deno.json / deno.jsonc under ``cwd``.

    A missing or unparsable file yields an empty table.
    """
    for file_name in DENO_CONFIG_FILES:
        config_path = cwd / file_name
        if not config_path.is_file():
            continue
        try:
            text = config_path.read_text(encoding="utf-8")
            if file_name.endswith(".jsonc"):
                text = _strip_json_comments(text)
            data = json.loads(text)
        except (OSError, ValueError):
            return {}
        imports = data.get("imports") if isinstance(data, dict) else None
        if isinstance(imports, dict):
            return {str(k): str(v) for k, v in imports.items()}
        return {}
    return {}


_JSONC_TOKEN = re.compile(r'"(?:\\.|[^"\\])*"|//[^\n]*|/\*.*?\*/', re.DOTALL)


def _strip_json_comments(text: str) -> str:
    return _JSONC_TOKEN.sub(lambda m: m.group(0) if m.group(0).startswith('"') else "", text)
