"""Configuration schemas for dweb-build.

This module exports the pydantic models describing a ``dweb.yaml``:
- ProjectConfig: Whole file, single- or multi-app
- AppConfig: One app's build-relevant configuration
- BuildConfig, RouteConfig, StaticConfig, I18nConfig: App sections
"""

from __future__ import annotations

from dweb_build.schemas.app_config import (
    DEFAULT_CONFIG_FILE,
    AppConfig,
    ProjectConfig,
    load_import_map,
)
from dweb_build.schemas.build_config import (
    DEFAULT_ENTRY,
    DEFAULT_ROUTES_DIR,
    DEFAULT_STATIC_DIR,
    DEFAULT_TRANSLATIONS_DIR,
    BuildConfig,
    I18nConfig,
    RouteConfig,
    StaticConfig,
)

__all__ = [
    "ProjectConfig",
    "AppConfig",
    "BuildConfig",
    "RouteConfig",
    "StaticConfig",
    "I18nConfig",
    "load_import_map",
    "DEFAULT_CONFIG_FILE",
    "DEFAULT_ENTRY",
    "DEFAULT_ROUTES_DIR",
    "DEFAULT_STATIC_DIR",
    "DEFAULT_TRANSLATIONS_DIR",
]
