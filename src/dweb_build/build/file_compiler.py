"""FileCompiler: compiles source files into dual-target artifacts.

Three entry points:
- compile_file: one source, one or both targets, cache-aware.
- compile_with_code_splitting: one Compiler invocation for a whole entry
  batch of a single target, followed by chunk stabilization.
- compile_directory: discovery plus either of the above. Non-split builds
  fan Compiler invocations out to a bounded thread pool in batches; all
  FileMap mutation stays on the calling thread.
"""

from __future__ import annotations

import fnmatch
import os
import shutil
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import structlog

from dweb_build.build.cache import CacheManager
from dweb_build.build.compiler import BundleOptions, Compiler
from dweb_build.build.file_map import FileMap, source_key
from dweb_build.build.hashing import HashCalculator
from dweb_build.build.models import CompileResult, DirectoryResult, SplitResult, Target
from dweb_build.build.stabilizer import ChunkStabilizer
from dweb_build.errors import CompileError, DwebError

logger = structlog.get_logger(__name__)

SOURCE_EXTENSIONS: tuple[str, ...] = (".ts", ".tsx")
MAX_BATCH_SIZE = 20
MIN_BATCH_SIZE = 4


def batch_size(file_count: int, cpu_count: int | None = None) -> int:
    """Return the number of files compiled concurrently.

    Example:
        >>> batch_size(100, cpu_count=4)
        8
        >>> batch_size(3, cpu_count=16)
        3
    """
    cores = cpu_count if cpu_count is not None else (os.cpu_count() or 1)
    return max(1, min(max(cores * 2, MIN_BATCH_SIZE), file_count, MAX_BATCH_SIZE))


@dataclass(frozen=True)
class _FileArtifacts:
    """Worker result: unprefixed artifact names per concrete target.

    ``fresh`` lists the targets compiled on this run; their cache markers
    are written when the artifacts are registered.
    """

    source: Path
    names: dict[Target, str]
    result: CompileResult
    out_dir: Path
    source_hash: str = ""
    fresh: tuple[Target, ...] = ()


class FileCompiler:
    """Compile sources into ``<out>/server`` and ``<out>/client`` artifacts.

    Args:
        compiler: Bundler collaborator.
        cwd: Project root. FileMap keys are source paths relative to it.
        import_map: Import alias table passed to every Compiler call.
        hash_calculator: Names artifacts by content.
        cache_manager: Source-fingerprint cache probe.
        stabilizer: Chunk stabilizer for split batches.
        minify: Minify Compiler output.

    Example:
        >>> compiler = FileCompiler(EsbuildCompiler(), cwd=Path.cwd())
        >>> file_map = FileMap()
        >>> compiler.compile_directory(Path("routes"), Path("dist"), file_map)
    """

    def __init__(
        self,
        compiler: Compiler,
        *,
        cwd: Path,
        import_map: Mapping[str, str] | None = None,
        hash_calculator: HashCalculator | None = None,
        cache_manager: CacheManager | None = None,
        stabilizer: ChunkStabilizer | None = None,
        minify: bool = True,
    ) -> None:
        self.compiler = compiler
        self.cwd = cwd
        self.import_map = dict(import_map or {})
        self.hash_calculator = hash_calculator or HashCalculator()
        self.cache_manager = cache_manager or CacheManager(self.hash_calculator)
        self.stabilizer = stabilizer or ChunkStabilizer(self.hash_calculator)
        self.minify = minify
        self._log = logger.bind(component="file_compiler")

    @staticmethod
    def target_dir(out_dir: Path, target: Target) -> Path:
        """Return the output directory of a concrete target."""
        return out_dir / target.value

    def _absolute(self, file_path: Path) -> Path:
        return file_path if file_path.is_absolute() else self.cwd / file_path

    def _options(self, target: Target, outdir: Path, *, splitting: bool = False) -> BundleOptions:
        return BundleOptions(
            cwd=self.cwd,
            import_map=self.import_map,
            splitting=splitting,
            strip_load_only=target is Target.CLIENT,
            outdir=outdir,
            is_server_build=target is Target.SERVER,
            minify=self.minify,
        )

    def compile_file(
        self,
        file_path: Path,
        out_dir: Path,
        file_map: FileMap,
        *,
        target: Target = Target.BOTH,
        use_cache: bool = True,
    ) -> CompileResult:
        """Compile one source for the requested target(s) and register it.

        Args:
            file_path: Source file, absolute or relative to cwd.
            out_dir: Output root; artifacts go to its ``server/``/``client/``.
            file_map: Receives one reference per concrete target.
            target: SERVER, CLIENT or BOTH.
            use_cache: Probe and record source-fingerprint cache markers.

        Returns:
            CompileResult for the primary target (server when requested).

        Raises:
            CompileError: If the Compiler rejects the source.
        """
        artifacts = self._build_file(file_path, out_dir, target, use_cache)
        self._register(artifacts, file_map)
        return artifacts.result

    def _build_file(
        self,
        file_path: Path,
        out_dir: Path,
        target: Target,
        use_cache: bool,
    ) -> _FileArtifacts:
        """Produce the artifacts of one source. Safe to run on a worker thread."""
        source = self._absolute(Path(file_path))
        key = source_key(source, self.cwd)
        targets = target.expand()

        if source.suffix not in SOURCE_EXTENSIONS:
            return self._copy_verbatim(source, out_dir, targets)

        source_hash = self.cache_manager.get_source_hash(source) if use_cache else ""
        names: dict[Target, str] = {}
        fresh: list[Target] = []
        hits = 0

        for concrete in targets:
            concrete_dir = self.target_dir(out_dir, concrete)
            cached = self.cache_manager.check_build_cache(key, concrete_dir, source_hash)
            if cached is not None:
                names[concrete] = cached
                hits += 1
                continue

            outputs = self.compiler.bundle([source], options=self._options(concrete, concrete_dir))
            if not outputs or not outputs[0].text:
                raise CompileError(key, reason="bundle is empty")

            text = outputs[0].text
            name = f"{self.hash_calculator.calculate_hash(text)}.js"
            concrete_dir.mkdir(parents=True, exist_ok=True)
            (concrete_dir / name).write_text(text, encoding="utf-8")
            names[concrete] = name
            fresh.append(concrete)

        cached_all = hits == len(targets)
        if cached_all:
            self._log.debug("cache_hit", source=key)

        primary = targets[0]
        return _FileArtifacts(
            source=source,
            names=names,
            result=CompileResult(
                output_path=self.target_dir(out_dir, primary) / names[primary],
                hash_name=f"{primary.prefix}{names[primary]}",
                cached=cached_all,
            ),
            out_dir=out_dir,
            source_hash=source_hash,
            fresh=tuple(fresh),
        )

    def _copy_verbatim(
        self,
        source: Path,
        out_dir: Path,
        targets: tuple[Target, ...],
    ) -> _FileArtifacts:
        """Copy a non-source file under ``<content hash><ext>``."""
        try:
            name = f"{self.hash_calculator.calculate_hash(source.read_bytes())}{source.suffix}"
            for concrete in targets:
                concrete_dir = self.target_dir(out_dir, concrete)
                concrete_dir.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(source, concrete_dir / name)
        except OSError as e:
            raise CompileError(source_key(source, self.cwd), reason="cannot copy file") from e

        primary = targets[0]
        return _FileArtifacts(
            source=source,
            names={concrete: name for concrete in targets},
            result=CompileResult(
                output_path=self.target_dir(out_dir, primary) / name,
                hash_name=f"{primary.prefix}{name}",
                cached=False,
            ),
            out_dir=out_dir,
        )

    def _register(self, artifacts: _FileArtifacts, file_map: FileMap) -> None:
        """Record cache markers and FileMap entries. Calling thread only."""
        key = source_key(artifacts.source, self.cwd)
        for concrete in artifacts.fresh:
            self.cache_manager.record(
                self.target_dir(artifacts.out_dir, concrete),
                artifacts.source_hash,
                artifacts.names[concrete],
                key,
            )
        for concrete, name in artifacts.names.items():
            file_map.set_mapping(key, name, concrete)

    def compile_with_code_splitting(
        self,
        entry_points: Sequence[Path],
        out_dir: Path,
        file_map: FileMap,
        *,
        target: Target,
    ) -> SplitResult:
        """Compile a batch of entries for one target with shared chunks.

        The whole batch is a single Compiler invocation; the stabilizer then
        names entries by content and resolves every chunk reference.

        Raises:
            ValueError: If ``target`` is BOTH.
            CompileError: If the Compiler rejects the batch.
        """
        if target is Target.BOTH:
            raise ValueError("Code splitting compiles one target at a time, not BOTH")

        entries = [self._absolute(Path(entry)) for entry in entry_points]
        concrete_dir = self.target_dir(out_dir, target)
        outputs = self.compiler.bundle(
            entries,
            options=self._options(target, concrete_dir, splitting=True),
        )
        return self.stabilizer.stabilize(
            outputs,
            entries,
            concrete_dir,
            self.cwd,
            target,
            file_map,
        )

    def discover_files(
        self,
        directory: Path,
        *,
        extensions: Iterable[str] = SOURCE_EXTENSIONS,
        ignore: Iterable[str] = (),
    ) -> list[Path]:
        """Return the compilable files under ``directory``, sorted.

        Args:
            directory: Root to walk recursively.
            extensions: Suffixes to keep.
            ignore: Glob patterns, matched against the path relative to the
                project root, the path relative to ``directory`` and the
                file name.
        """
        root = self._absolute(Path(directory))
        if not root.is_dir():
            self._log.warning("directory_missing", directory=str(root))
            return []

        suffixes = tuple(extensions)
        patterns = tuple(ignore)
        found: list[Path] = []
        for path in root.rglob("*"):
            if not path.is_file() or path.suffix not in suffixes:
                continue
            candidates = (
                source_key(path, self.cwd),
                path.relative_to(root).as_posix(),
                path.name,
            )
            if any(fnmatch.fnmatch(c, pattern) for c in candidates for pattern in patterns):
                continue
            found.append(path)
        return sorted(found)

    def compile_directory(
        self,
        directory: Path,
        out_dir: Path,
        file_map: FileMap,
        *,
        target: Target = Target.BOTH,
        use_cache: bool = True,
        code_splitting: bool = False,
        parallel: bool = True,
        ignore: Iterable[str] = (),
    ) -> DirectoryResult:
        """Compile every source under ``directory``.

        Args:
            directory: Source root (routes or API directory).
            out_dir: Output root.
            file_map: Receives every compiled source.
            target: Requested target(s). Must be concrete when splitting.
            use_cache: Use source-fingerprint cache markers (non-split only).
            code_splitting: Compile all files as one split batch.
            parallel: Fan Compiler invocations out to a thread pool.
            ignore: Glob patterns excluded from discovery.

        Returns:
            DirectoryResult with file, compiled and cache-hit counts.

        Raises:
            ValueError: If ``code_splitting`` is requested with BOTH.
            CompileError: If any file fails; carries the failing path.
        """
        if code_splitting and target is Target.BOTH:
            raise ValueError("Code splitting compiles one target at a time, not BOTH")

        files = self.discover_files(directory, ignore=ignore)
        if not files:
            return DirectoryResult(files=0, compiled=0, cached=0)

        if code_splitting and len(files) > 1:
            split = self.compile_with_code_splitting(files, out_dir, file_map, target=target)
            self._log.info(
                "directory_compiled",
                directory=source_key(directory, self.cwd),
                target=target.value,
                files=len(files),
                compiled=split.compiled,
                chunks=split.chunks,
            )
            return DirectoryResult(
                files=len(files),
                compiled=split.compiled,
                cached=0,
                split=split,
            )

        if parallel and len(files) > 1:
            results = self._compile_parallel(files, out_dir, file_map, target, use_cache)
        else:
            results = [
                self._compile_one(path, out_dir, file_map, target, use_cache) for path in files
            ]

        cached = sum(1 for result in results if result.cached)
        self._log.info(
            "directory_compiled",
            directory=source_key(directory, self.cwd),
            target=target.value,
            files=len(files),
            compiled=len(results) - cached,
            cached=cached,
        )
        return DirectoryResult(files=len(files), compiled=len(results) - cached, cached=cached)

    def _compile_one(
        self,
        path: Path,
        out_dir: Path,
        file_map: FileMap,
        target: Target,
        use_cache: bool,
    ) -> CompileResult:
        try:
            return self.compile_file(path, out_dir, file_map, target=target, use_cache=use_cache)
        except DwebError:
            raise
        except OSError as e:
            raise CompileError(source_key(path, self.cwd), reason=str(e)) from e

    def _compile_parallel(
        self,
        files: list[Path],
        out_dir: Path,
        file_map: FileMap,
        target: Target,
        use_cache: bool,
    ) -> list[CompileResult]:
        size = batch_size(len(files))
        results: list[CompileResult] = []

        with ThreadPoolExecutor(max_workers=size) as executor:
            for start in range(0, len(files), size):
                batch = files[start : start + size]
                futures = [
                    (path, executor.submit(self._build_file, path, out_dir, target, use_cache))
                    for path in batch
                ]
                # Each batch is awaited fully before the next is submitted
                for path, future in futures:
                    try:
                        artifacts = future.result()
                        self._register(artifacts, file_map)
                    except DwebError:
                        raise
                    except OSError as e:
                        raise CompileError(source_key(path, self.cwd), reason=str(e)) from e
                    results.append(artifacts.result)

        return results
