"""BuildOrchestrator: sequences one production build of an app.

Stages, in order:
1. Clear the output directory (cache disabled) or keep it (cache enabled).
2. Copy static assets.
3. Create ``server/`` and ``client/``.
4. Compile the routes directory for both targets, then the API directory
   when it sits outside the routes directory.
5. Copy translation files (i18n configured).
6. Run build hooks.
7. Compile the application entry module (server target).
8. Rewrite sibling imports (non-split builds).
9. Write ``server.json`` and ``client.json``.
10. Write ``manifest.json``.

Stage failures other than configuration and the entry module are logged
and the build continues. A missing ``build``/``routes`` section or a
failing entry module aborts before the manifest is written, so a previous
manifest stays authoritative.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from pathlib import Path

import structlog

from dweb_build.build.assets import AssetProcessor
from dweb_build.build.compiler import Compiler, EsbuildCompiler
from dweb_build.build.file_compiler import FileCompiler
from dweb_build.build.file_map import FileMap, source_key
from dweb_build.build.hashing import HashCalculator
from dweb_build.build.hooks import BuildHookContext, HookRunner
from dweb_build.build.import_rewriter import ImportPathRewriter
from dweb_build.build.models import BuildResult, Manifest, Target
from dweb_build.build.route_map import RouteMapGenerator
from dweb_build.errors import CompileError, ConfigurationError, EntryCompileError
from dweb_build.schemas import AppConfig, ProjectConfig, load_import_map

logger = structlog.get_logger(__name__)

MANIFEST_FILE = "manifest.json"
ROUTE_TARGETS = (Target.SERVER, Target.CLIENT)


class BuildOrchestrator:
    """Builds apps from their configuration.

    Args:
        cwd: Project root. Configured paths are relative to it.
        compiler: Bundler collaborator. Defaults to ``EsbuildCompiler``.
        hash_calculator: Shared by the cache and the compilers.
        parallel: Fan non-split Compiler invocations out to a thread pool.

    Example:
        >>> orchestrator = BuildOrchestrator(cwd=Path("/app"))
        >>> result = orchestrator.build_app(app_config)
        >>> result.manifest_path
        PosixPath('/app/dist/manifest.json')
    """

    def __init__(
        self,
        *,
        cwd: Path | None = None,
        compiler: Compiler | None = None,
        hash_calculator: HashCalculator | None = None,
        parallel: bool = True,
    ) -> None:
        self.cwd = (cwd or Path.cwd()).resolve()
        self.compiler = compiler or EsbuildCompiler()
        self.hash_calculator = hash_calculator or HashCalculator()
        self.parallel = parallel
        self.asset_processor = AssetProcessor()
        self.import_rewriter = ImportPathRewriter(self.hash_calculator)
        self.route_map_generator = RouteMapGenerator(self.cwd)
        self._log = logger.bind(component="build_orchestrator")

    def _path(self, value: str | Path) -> Path:
        candidate = Path(value)
        return candidate if candidate.is_absolute() else self.cwd / candidate

    def build_app(self, config: AppConfig, *, multi_app: bool = False) -> BuildResult:
        """Run every build stage for one app.

        Args:
            config: The app configuration.
            multi_app: Whether the app is one of several; output then goes
                to ``<out_dir>/<name>`` and entry/static defaults are
                name-scoped.

        Returns:
            BuildResult summarizing the run.

        Raises:
            ConfigurationError: If ``build`` or ``routes`` is missing.
            EntryCompileError: If the application entry module fails.
        """
        if config.build is None:
            raise ConfigurationError("Build configuration is required", field_path="build")
        if config.routes is None:
            raise ConfigurationError("Route configuration is required", field_path="routes")

        started = time.monotonic()
        build_config = config.build
        route_config = config.routes
        app_log = self._log.bind(app=config.name or "default")

        out_root = self._path(build_config.out_dir)
        out_dir = out_root / config.name if multi_app and config.name else out_root
        static_dir = config.static_dir(multi_app)
        use_cache = build_config.cache
        app_log.info("build_started", out_dir=str(out_dir), cache=use_cache, split=build_config.split)

        # 1. Output directory
        if use_cache:
            out_dir.mkdir(parents=True, exist_ok=True)
        else:
            self.asset_processor.clear_directory(out_dir)
            out_dir.mkdir(parents=True, exist_ok=True)

        # 2. Static assets keep their names and land under the output root
        self.asset_processor.process_static_assets(
            self._path(static_dir),
            out_root / static_dir,
            compress=build_config.compress,
            image_quality=build_config.image_quality,
        )

        # 3. Target roots
        for target in ROUTE_TARGETS:
            FileCompiler.target_dir(out_dir, target).mkdir(parents=True, exist_ok=True)

        file_map = FileMap()
        import_map = config.import_map if config.import_map is not None else load_import_map(self.cwd)
        file_compiler = FileCompiler(
            self.compiler,
            cwd=self.cwd,
            import_map=import_map,
            hash_calculator=self.hash_calculator,
        )

        # 4. Routes, then a disjoint API directory
        routes_dir = self._path(route_config.dir)
        api_dir = self._path(route_config.api_dir or f"{route_config.dir}/api")
        self._compile_routes(
            file_compiler,
            routes_dir,
            out_dir,
            file_map,
            use_cache=use_cache,
            split=build_config.split,
            ignore=route_config.ignore,
        )
        api_in_routes = api_dir == routes_dir or api_dir.is_relative_to(routes_dir)
        if not api_in_routes and api_dir.is_dir():
            self._compile_routes(
                file_compiler,
                api_dir,
                out_dir,
                file_map,
                use_cache=use_cache,
                split=build_config.split,
                ignore=route_config.ignore,
            )

        # 5. Translations
        if config.i18n is not None:
            translations_dir = config.i18n.translations_dir
            self.asset_processor.copy_translations(
                self._path(translations_dir),
                out_dir / translations_dir,
            )

        # 6. Hooks
        if config.hooks:
            HookRunner(config.hooks).run(
                BuildHookContext(out_dir=out_root, static_dir=self._path(static_dir))
            )

        # 7. Entry module
        entry_file = config.entry_file(multi_app)
        entry_key = self._compile_entry(
            file_compiler, entry_file, out_dir, file_map, use_cache=use_cache
        )

        # 8. Sibling imports (split outputs are already final)
        if not build_config.split:
            self.import_rewriter.post_process_imports(out_dir, file_map)
        entry_reference = file_map.get(entry_key) if entry_key is not None else None

        # 9. Route tables
        route_maps = self.route_map_generator.generate(
            file_map, routes_dir, out_dir, api_dir
        )

        # 10. Manifest
        manifest = Manifest(
            timestamp=int(time.time() * 1000),
            entry=entry_reference,
            files=file_map.to_dict(),
        )
        manifest_path = out_dir / MANIFEST_FILE
        manifest_path.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")

        result = BuildResult(
            out_dir=out_dir,
            manifest_path=manifest_path,
            entry=entry_reference,
            files=len(file_map),
            server_routes=len(route_maps.server),
            client_routes=len(route_maps.client),
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        app_log.info(
            "build_completed",
            out_dir=str(out_dir),
            files=result.files,
            server_routes=result.server_routes,
            client_routes=result.client_routes,
            duration_ms=result.duration_ms,
        )
        return result

    def _compile_routes(
        self,
        file_compiler: FileCompiler,
        directory: Path,
        out_dir: Path,
        file_map: FileMap,
        *,
        use_cache: bool,
        split: bool,
        ignore: Sequence[str],
    ) -> None:
        for target in ROUTE_TARGETS:
            try:
                file_compiler.compile_directory(
                    directory,
                    out_dir,
                    file_map,
                    target=target,
                    use_cache=use_cache,
                    code_splitting=split,
                    parallel=self.parallel,
                    ignore=ignore,
                )
            except CompileError as e:
                self._log.warning(
                    "directory_compile_failed",
                    directory=str(directory),
                    target=target.value,
                    source=e.source_path,
                    error=e.user_message,
                )

    def _compile_entry(
        self,
        file_compiler: FileCompiler,
        entry_file: str,
        out_dir: Path,
        file_map: FileMap,
        *,
        use_cache: bool,
    ) -> str | None:
        """Compile the entry module and return its FileMap key, or None if missing."""
        entry_path = self._path(entry_file)
        if not entry_path.is_file():
            self._log.warning("entry_missing", entry=entry_file)
            return None

        try:
            result = file_compiler.compile_file(
                entry_path, out_dir, file_map, target=Target.SERVER, use_cache=use_cache
            )
        except CompileError as e:
            raise EntryCompileError(entry_file, reason=e.reason) from e

        # Registered under the same normalized key as any other source
        entry_key = source_key(entry_path, self.cwd)
        self._log.info("entry_compiled", entry=entry_key, reference=result.hash_name)
        return entry_key


def build(
    config: AppConfig,
    *,
    multi_app: bool = False,
    cwd: Path | None = None,
    compiler: Compiler | None = None,
) -> BuildResult:
    """Build one app with a fresh orchestrator."""
    return BuildOrchestrator(cwd=cwd, compiler=compiler).build_app(config, multi_app=multi_app)


def build_project(
    project: ProjectConfig,
    *,
    app_name: str | None = None,
    cwd: Path | None = None,
    compiler: Compiler | None = None,
) -> list[BuildResult]:
    """Build one named app, or every app of the project.

    Raises:
        ConfigurationError: If ``app_name`` does not name an app.
    """
    orchestrator = BuildOrchestrator(cwd=cwd, compiler=compiler)
    if app_name is not None:
        try:
            apps = [project.get_app(app_name)]
        except KeyError as e:
            raise ConfigurationError(f"Unknown app '{app_name}'", field_path="apps") from e
    else:
        apps = list(project.apps)

    return [orchestrator.build_app(app, multi_app=project.is_multi_app) for app in apps]
