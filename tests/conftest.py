"""Shared pytest fixtures for dweb-build tests.

Provides structlog capture, a deterministic in-process Compiler and a
small project tree to build.
"""

from __future__ import annotations

import hashlib
import os
import re
import shutil
import sys
import threading
from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
import structlog
from click.testing import CliRunner

from dweb_build.build.compiler import BundleOptions
from dweb_build.build.models import OutputFile
from dweb_build.build.transform import remove_load_only_imports
from dweb_build.errors import CompileError
from dweb_build.schemas import AppConfig

COMPILE_FAILURE_MARKER = "@@syntax-error@@"

_RELATIVE_IMPORT = re.compile(
    r"""^import\s+(?P<clause>.+?)\s+from\s+["'](?P<spec>\.{1,2}/[^"']+)["'];?[ \t]*$""",
    re.MULTILINE,
)


@pytest.fixture(autouse=True)
def configure_structlog_for_tests() -> None:
    """Configure structlog to output to stdout for test capture."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=False,  # Important for test isolation
    )


class FakeCompiler:
    """Deterministic stand-in for the bundler.

    - Non-split: one output per entry, ``<banner><source>``. Relative
      imports are left as written, as if the sibling were external.
    - Split: modules imported by two or more entries become
      ``chunk-<id>.js`` files at the output root; entries land at their
      cwd-relative path and import chunks through relative paths.
    - ``strip_load_only`` applies the real load-stripping transform.
    - A source containing ``@@syntax-error@@`` raises CompileError.

    Attributes:
        calls: ``(entry paths, options)`` per invocation.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[list[Path], BundleOptions]] = []
        self._lock = threading.Lock()

    def bundle(self, entry_points: Sequence[Path], *, options: BundleOptions) -> list[OutputFile]:
        entries = [Path(entry) for entry in entry_points]
        with self._lock:
            self.calls.append((entries, options))
        if options.splitting:
            return self._split(entries, options)
        return [self._single(entry, options) for entry in entries]

    def compiled_sources(self) -> list[str]:
        """Return the file names of every entry compiled so far."""
        return [entry.name for entries, _ in self.calls for entry in entries]

    @staticmethod
    def _source(entry: Path, options: BundleOptions) -> str:
        text = entry.read_text(encoding="utf-8")
        if COMPILE_FAILURE_MARKER in text:
            raise CompileError(str(entry), reason="syntax error")
        return remove_load_only_imports(text) if options.strip_load_only else text

    @staticmethod
    def _banner(entry: Path, options: BundleOptions) -> str:
        variant = "server" if options.is_server_build else "client"
        return f"// {variant} bundle: {entry.relative_to(options.cwd).as_posix()}\n"

    def _single(self, entry: Path, options: BundleOptions) -> OutputFile:
        out_root = options.outdir or entry.parent
        return OutputFile(
            path=out_root / f"{entry.stem}.js",
            text=self._banner(entry, options) + self._source(entry, options),
        )

    def _split(self, entries: list[Path], options: BundleOptions) -> list[OutputFile]:
        assert options.outdir is not None
        sources = {entry: self._source(entry, options) for entry in entries}

        importers: dict[Path, set[Path]] = {}
        for entry, text in sources.items():
            for match in _RELATIVE_IMPORT.finditer(text):
                module = Path(os.path.normpath(entry.parent / match["spec"]))
                importers.setdefault(module, set()).add(entry)

        chunks: dict[Path, Path] = {}
        for module in sorted(m for m, users in importers.items() if len(users) > 1):
            module_key = module.relative_to(options.cwd).as_posix()
            chunk_id = hashlib.sha1(module_key.encode()).hexdigest()[:8].upper()
            chunks[module] = options.outdir / f"chunk-{chunk_id}.js"

        outputs: list[OutputFile] = []
        for entry, text in sources.items():
            entry_out = options.outdir / entry.relative_to(options.cwd).with_suffix(".js")

            def link(match: re.Match[str], entry: Path = entry, entry_out: Path = entry_out) -> str:
                module = Path(os.path.normpath(entry.parent / match["spec"]))
                chunk = chunks.get(module)
                if chunk is None:
                    return f"/* inlined {match['spec']} */"
                reference = Path(os.path.relpath(chunk, entry_out.parent)).as_posix()
                if not reference.startswith("."):
                    reference = f"./{reference}"
                return f'import {match["clause"]} from "{reference}";'

            outputs.append(
                OutputFile(
                    path=entry_out,
                    text=self._banner(entry, options) + _RELATIVE_IMPORT.sub(link, text),
                )
            )

        for module, chunk in chunks.items():
            module_key = module.relative_to(options.cwd).as_posix()
            outputs.append(
                OutputFile(
                    path=chunk,
                    text=f"// shared chunk: {module_key}\n{module.read_text(encoding='utf-8')}",
                )
            )
        return outputs


PROJECT_FILES: dict[str, str] = {
    "routes/index.tsx": (
        'import { db } from "../lib/db.ts";\n'
        'import { Card } from "../components/card.tsx";\n'
        "\n"
        "export async function load() {\n"
        '  return db.query("SELECT secret FROM users");\n'
        "}\n"
        "\n"
        "export default function Home() {\n"
        '  return <Card title="home" />;\n'
        "}\n"
    ),
    "routes/about.tsx": (
        'import { Card } from "../components/card.tsx";\n'
        "\n"
        "export default function About() {\n"
        '  return <Card title="about" />;\n'
        "}\n"
    ),
    "routes/blog/index.tsx": (
        "export default function Blog() {\n"
        "  return <main>blog</main>;\n"
        "}\n"
    ),
    "routes/_layout.tsx": (
        "export default function Layout({ children }) {\n"
        "  return <div class=\"layout\">{children}</div>;\n"
        "}\n"
    ),
    "routes/api/users.ts": (
        "export function GET() {\n"
        '  return new Response("[]");\n'
        "}\n"
    ),
    "components/card.tsx": (
        "export function Card({ title }) {\n"
        "  return <section>{title}</section>;\n"
        "}\n"
    ),
    "lib/db.ts": (
        "export const db = {\n"
        "  query(sql) { return sql; },\n"
        "};\n"
    ),
    "main.ts": 'console.log("server starting");\n',
    "assets/logo.svg": "<svg>\n  <!-- logo -->\n  <circle r='4'/>\n</svg>\n",
    "assets/css/site.css": "body { margin: 0; }\n",
    "locales/en.json": '{"hello": "Hello"}\n',
    "locales/zh/common.json": '{"hello": "你好"}\n',
}


def write_files(root: Path, files: dict[str, str]) -> None:
    """Write ``files`` (relative path to text) under ``root``."""
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


@pytest.fixture
def write_tree() -> Callable[[Path, dict[str, str]], None]:
    """Return the ``write_files`` helper for tests that build their own tree."""
    return write_files


@pytest.fixture
def fake_compiler() -> FakeCompiler:
    """Return a fresh deterministic Compiler."""
    return FakeCompiler()


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """Create a small app tree (routes, API, components, assets, locales).

    Returns:
        The project root.
    """
    root = tmp_path / "project"
    write_files(root, PROJECT_FILES)
    return root


@pytest.fixture
def app_config() -> AppConfig:
    """Return a single-app configuration matching ``project_dir``."""
    return AppConfig.model_validate(
        {
            "build": {"outDir": "dist"},
            "routes": "routes",
            "i18n": {},
            "importMap": {},
        }
    )


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click test runner."""
    return CliRunner()


@pytest.fixture
def esbuild_binary() -> str:
    """Return the esbuild executable, skipping when it is not installed."""
    binary = shutil.which("esbuild")
    if binary is None:
        pytest.skip("esbuild is not on PATH")
    return binary
