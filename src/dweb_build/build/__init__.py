"""Production build pipeline.

This package provides:
- BuildOrchestrator: Sequences a whole app build and writes the manifest
- FileCompiler: Per-file, batched and code-splitting compilation
- ChunkStabilizer: Content-addressed naming of split-build outputs
- ImportPathRewriter, RouteMapGenerator: Post-compile passes
- Compiler / EsbuildCompiler: The bundler collaborator
"""

from __future__ import annotations

from dweb_build.build.assets import AssetProcessor, AssetStats
from dweb_build.build.cache import CacheManager
from dweb_build.build.compiler import BundleOptions, Compiler, EsbuildCompiler
from dweb_build.build.file_compiler import FileCompiler
from dweb_build.build.file_map import FileMap
from dweb_build.build.hashing import HashCalculator
from dweb_build.build.hooks import BuildHook, BuildHookContext, HookRunner
from dweb_build.build.import_rewriter import ImportPathRewriter
from dweb_build.build.models import (
    BuildResult,
    ChunkRecord,
    CompileResult,
    DirectoryResult,
    Manifest,
    OutputFile,
    RewriteStats,
    RouteMaps,
    SplitResult,
    Target,
)
from dweb_build.build.orchestrator import BuildOrchestrator, build, build_project
from dweb_build.build.route_map import RouteMapGenerator
from dweb_build.build.stabilizer import ChunkStabilizer

__all__ = [
    # Pipeline
    "BuildOrchestrator",
    "build",
    "build_project",
    "FileCompiler",
    "ChunkStabilizer",
    "ImportPathRewriter",
    "RouteMapGenerator",
    "AssetProcessor",
    "HookRunner",
    # Collaborators
    "Compiler",
    "EsbuildCompiler",
    "BundleOptions",
    "HashCalculator",
    "CacheManager",
    "BuildHook",
    # Data
    "FileMap",
    "Target",
    "OutputFile",
    "ChunkRecord",
    "CompileResult",
    "SplitResult",
    "DirectoryResult",
    "RewriteStats",
    "RouteMaps",
    "BuildResult",
    "BuildHookContext",
    "AssetStats",
    "Manifest",
]
