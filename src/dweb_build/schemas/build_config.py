"""Build-section configuration models.

These models cover the keys of a ``dweb.yaml`` app that the build pipeline
owns: ``build``, ``routes``, ``static`` and ``i18n``. Keys are camelCase in
YAML (``outDir``, ``apiDir``) and snake_case in Python.
"""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_ENTRY = "main.ts"
DEFAULT_ROUTES_DIR = "routes"
DEFAULT_STATIC_DIR = "assets"
DEFAULT_TRANSLATIONS_DIR = "locales"
DEFAULT_CHUNK_SIZE = 20000
DEFAULT_IMAGE_QUALITY = 80

_MODEL_CONFIG = ConfigDict(
    frozen=True,
    extra="forbid",
    alias_generator=to_camel,
    populate_by_name=True,
)


class BuildConfig(BaseModel):
    """Production build options.

    Attributes:
        out_dir: Output root directory.
        entry: Application entry module. ``None`` means ``main.ts`` (or
            ``<app>/main.ts`` in multi-app mode).
        cache: Keep previous output and skip sources whose fingerprint
            matches an existing artifact.
        split: Bundle all routes of a target in one Compiler call and share
            common code through chunks.
        chunk_size: Minimum chunk size hint in bytes. Advisory only; chunk
            boundaries are decided by the Compiler.
        compress: Minify compressible static assets while copying.
        image_quality: Image compression quality (0-100).

    Example:
        >>> config = BuildConfig(out_dir="dist", split=True)
        >>> config.cache
        True
    """

    model_config = _MODEL_CONFIG

    out_dir: str = Field(..., min_length=1, description="Output root directory")
    entry: str | None = Field(default=None, description="Application entry module")
    cache: bool = Field(default=True, description="Enable incremental build cache")
    split: bool = Field(default=False, description="Enable code splitting")
    chunk_size: int = Field(
        default=DEFAULT_CHUNK_SIZE,
        ge=0,
        description="Minimum chunk size hint (bytes)",
    )
    compress: bool = Field(default=False, description="Compress static assets")
    image_quality: int = Field(
        default=DEFAULT_IMAGE_QUALITY,
        ge=0,
        le=100,
        description="Image compression quality",
    )


class RouteConfig(BaseModel):
    """Route discovery configuration.

    Attributes:
        dir: Routes root directory.
        api_dir: API root directory. Defaults to ``<dir>/api``; may sit
            beside the routes root instead of inside it.
        ignore: Glob patterns (relative to the project root) excluded from
            discovery.
    """

    model_config = _MODEL_CONFIG

    dir: str = Field(default=DEFAULT_ROUTES_DIR, min_length=1, description="Routes root")
    api_dir: str | None = Field(default=None, description="API root")
    ignore: tuple[str, ...] = Field(default=(), description="Ignored glob patterns")

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        """Accept a bare directory string and fill in the default API root."""
        if isinstance(data, str):
            data = {"dir": data}
        if isinstance(data, dict):
            data = dict(data)
            routes_dir = data.get("dir", DEFAULT_ROUTES_DIR)
            if not data.get("apiDir") and not data.get("api_dir"):
                data["apiDir"] = str(PurePosixPath(routes_dir) / "api")
        return data


class StaticConfig(BaseModel):
    """Static asset configuration."""

    model_config = _MODEL_CONFIG

    dir: str | None = Field(default=None, description="Static asset directory")


class I18nConfig(BaseModel):
    """Translation files configuration.

    Its presence enables copying ``*.json`` translation files into the
    output directory.
    """

    model_config = _MODEL_CONFIG

    translations_dir: str = Field(
        default=DEFAULT_TRANSLATIONS_DIR,
        min_length=1,
        description="Translations directory",
    )
