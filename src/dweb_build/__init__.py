"""dweb-build: production build pipeline for dweb apps.

This package provides:
- ProjectConfig / AppConfig: Pydantic schemas for dweb.yaml
- BuildOrchestrator: Compiles routes into server and client artifact sets
- build / build_project: One-call entry points
- DwebError hierarchy: Typed build failures
"""

from __future__ import annotations

__version__ = "0.1.0"

# Pipeline
from dweb_build.build import (
    BuildOrchestrator,
    BuildResult,
    EsbuildCompiler,
    FileMap,
    Manifest,
    Target,
    build,
    build_project,
)

# Error types
from dweb_build.errors import (
    CacheProbeError,
    CompileError,
    ConfigurationError,
    DwebError,
    EntryCompileError,
    HashError,
    StabilizationOverrunError,
)

# Schema models
from dweb_build.schemas import (
    AppConfig,
    BuildConfig,
    I18nConfig,
    ProjectConfig,
    RouteConfig,
    StaticConfig,
)

__all__ = [
    "__version__",
    # Pipeline
    "BuildOrchestrator",
    "BuildResult",
    "EsbuildCompiler",
    "FileMap",
    "Manifest",
    "Target",
    "build",
    "build_project",
    # Errors
    "DwebError",
    "ConfigurationError",
    "CompileError",
    "EntryCompileError",
    "HashError",
    "CacheProbeError",
    "StabilizationOverrunError",
    # Schema models
    "ProjectConfig",
    "AppConfig",
    "BuildConfig",
    "RouteConfig",
    "StaticConfig",
    "I18nConfig",
]
