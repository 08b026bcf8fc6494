"""Compiler collaborator: bundles entry modules into JavaScript.

The build pipeline only depends on the ``Compiler`` protocol. The
``EsbuildCompiler`` implementation drives the ``esbuild`` command line
tool in a subprocess and never writes into the real output directory:
esbuild writes into a scratch directory and the files are returned in
memory, with paths re-rooted under the requested output directory, so
that naming and placement stay with the FileCompiler.
"""

from __future__ import annotations

import shutil
import subprocess
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import structlog

from dweb_build.build.models import OutputFile
from dweb_build.build.transform import remove_load_only_imports
from dweb_build.errors import CompileError

logger = structlog.get_logger(__name__)

DEFAULT_ESBUILD_BINARY = "esbuild"
DEFAULT_TIMEOUT_SECONDS = 300

# Remote and registry specifiers are resolved by the runtime, never bundled
ALWAYS_EXTERNAL = ("npm:*", "jsr:*", "node:*", "http://*", "https://*")

_SHADOW_IGNORED = shutil.ignore_patterns(".git", "node_modules", "__pycache__")


@dataclass(frozen=True)
class BundleOptions:
    """Options of one Compiler invocation.

    Attributes:
        cwd: Project root; relative imports and output layout are resolved
            against it.
        import_map: Import alias table. Aliased specifiers stay external.
        splitting: Share code between entries through chunk files.
        strip_load_only: Remove the ``load`` export (and imports used only
            by it) from every entry before bundling.
        outdir: Directory the returned paths are rooted in. Required when
            splitting.
        is_server_build: Bundle for the server runtime instead of browsers.
        minify: Minify output.
    """

    cwd: Path
    import_map: Mapping[str, str] = field(default_factory=dict)
    splitting: bool = False
    strip_load_only: bool = False
    outdir: Path | None = None
    is_server_build: bool = False
    minify: bool = True


class Compiler(Protocol):
    """Bundles entry modules.

    Contract:
        - Single-entry, non-split calls return exactly one fully inlined file.
        - Split calls return one file per entry, at
          ``outdir/<entry path relative to cwd, extension .js>``, plus zero
          or more shared chunk files whose names are only stable within
          that one call.
        - Any unresolved internal import or syntax error raises
          ``CompileError``; nothing is skipped silently.
    """

    def bundle(self, entry_points: Sequence[Path], *, options: BundleOptions) -> list[OutputFile]:
        ...


class EsbuildCompiler:
    """Compiler backed by the esbuild command line tool.

    Example:
        >>> compiler = EsbuildCompiler()
        >>> outputs = compiler.bundle(
        ...     [Path("/app/routes/index.tsx")],
        ...     options=BundleOptions(cwd=Path("/app")),
        ... )
    """

    def __init__(
        self,
        binary: str = DEFAULT_ESBUILD_BINARY,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.binary = binary
        self.timeout_seconds = timeout_seconds
        self._log = logger.bind(component="esbuild_compiler")

    def bundle(self, entry_points: Sequence[Path], *, options: BundleOptions) -> list[OutputFile]:
        if not entry_points:
            return []
        if options.splitting:
            return self._bundle_split(entry_points, options)

        outputs: list[OutputFile] = []
        for entry in entry_points:
            outputs.append(self._bundle_single(entry, options))
        return outputs

    def _common_args(self, options: BundleOptions) -> list[str]:
        args = [
            "--bundle",
            "--format=esm",
            "--keep-names",
            "--legal-comments=none",
            "--jsx=automatic",
            "--jsx-import-source=preact",
            "--platform=neutral" if options.is_server_build else "--platform=browser",
        ]
        if options.minify:
            args.append("--minify")
        for pattern in ALWAYS_EXTERNAL:
            args.append(f"--external:{pattern}")
        for alias in options.import_map:
            if alias.endswith("/"):
                args.append(f"--external:{alias}*")
            else:
                args.append(f"--external:{alias}")
                args.append(f"--external:{alias}/*")
        return args

    def _bundle_single(self, entry: Path, options: BundleOptions) -> OutputFile:
        out_root = options.outdir or entry.parent
        out_path = out_root / f"{entry.stem}.js"

        if options.strip_load_only:
            try:
                source = entry.read_text(encoding="utf-8")
            except OSError as e:
                raise CompileError(str(entry), reason="source unreadable") from e
            loader = "tsx" if entry.suffix in (".tsx", ".jsx") else "ts"
            args = [
                *self._common_args(options),
                f"--loader={loader}",
                f"--sourcefile={entry.name}",
            ]
            # stdin modules resolve relative imports against the process cwd
            stripped = remove_load_only_imports(source)
            text = self._run(args, source_path=entry, cwd=entry.parent, stdin=stripped)
        else:
            args = [str(entry), *self._common_args(options)]
            text = self._run(args, source_path=entry, cwd=options.cwd)

        if not text:
            raise CompileError(str(entry), reason="bundle is empty")
        return OutputFile(path=out_path, text=text)

    def _bundle_split(self, entry_points: Sequence[Path], options: BundleOptions) -> list[OutputFile]:
        if options.outdir is None:
            raise ValueError("splitting requires an output directory")

        with tempfile.TemporaryDirectory(prefix="dweb-build-") as scratch:
            scratch_dir = Path(scratch)
            out_tmp = scratch_dir / "out"
            root = options.cwd
            entries = list(entry_points)

            if options.strip_load_only:
                root = scratch_dir / "src"
                self._shadow_tree(options.cwd, root, options.outdir)
                entries = []
                for entry in entry_points:
                    shadow_entry = root / entry.relative_to(options.cwd)
                    source = shadow_entry.read_text(encoding="utf-8")
                    shadow_entry.write_text(remove_load_only_imports(source), encoding="utf-8")
                    entries.append(shadow_entry)

            args = [
                *(str(e) for e in entries),
                *self._common_args(options),
                "--splitting",
                f"--outdir={out_tmp}",
                f"--outbase={root}",
            ]
            self._run(args, source_path=entry_points[0], cwd=root)

            outputs: list[OutputFile] = []
            for produced in sorted(out_tmp.rglob("*.js")):
                relative = produced.relative_to(out_tmp)
                outputs.append(
                    OutputFile(
                        path=options.outdir / relative,
                        text=produced.read_text(encoding="utf-8"),
                    )
                )

        if not outputs:
            raise CompileError(str(entry_points[0]), reason="split bundle is empty")
        return outputs

    @staticmethod
    def _shadow_tree(source_root: Path, shadow_root: Path, outdir: Path) -> None:
        """Copy the project so entries can be rewritten without touching sources."""
        resolved_outdir = outdir.resolve()

        def ignore(directory: str, names: list[str]) -> set[str]:
            skipped = set(_SHADOW_IGNORED(directory, names))
            for name in names:
                candidate = (Path(directory) / name).resolve()
                if resolved_outdir == candidate or candidate in resolved_outdir.parents:
                    skipped.add(name)
            return skipped

        shutil.copytree(source_root, shadow_root, ignore=ignore)

    def _run(
        self,
        args: list[str],
        *,
        source_path: Path,
        cwd: Path,
        stdin: str | None = None,
    ) -> str:
        command = [self.binary, *args]
        self._log.debug("esbuild_invoked", source=str(source_path), argc=len(command))
        try:
            completed = subprocess.run(
                command,
                cwd=cwd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout_seconds,
                check=False,
            )
        except FileNotFoundError as e:
            raise CompileError(
                str(source_path),
                reason=f"'{self.binary}' executable not found",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise CompileError(
                str(source_path),
                reason=f"esbuild timed out after {self.timeout_seconds}s",
            ) from e

        if completed.returncode != 0:
            raise CompileError(
                str(source_path),
                reason="esbuild reported errors",
                internal_details=completed.stderr.strip() or None,
            )
        return completed.stdout
