"""Data model for the build pipeline.

Request-scoped records (OutputFile, ChunkRecord, per-stage results) are
plain frozen dataclasses. The Manifest is the one persisted contract and
is a pydantic model so it can be validated when read back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

CLIENT_KEY_SUFFIX = ".client"
"""Suffix tagging the client-variant key of a source path in the FileMap."""


class Target(str, Enum):
    """Compiled variant of an entry.

    Attributes:
        SERVER: Keeps the server-only ``load`` export.
        CLIENT: ``load`` and its exclusive imports stripped.
        BOTH: Both variants (non-split compilation only).
    """

    SERVER = "server"
    CLIENT = "client"
    BOTH = "both"

    @property
    def prefix(self) -> str:
        """Output reference prefix (``server/`` or ``client/``)."""
        if self is Target.BOTH:
            raise ValueError("Target.BOTH has no single output prefix")
        return f"{self.value}/"

    def expand(self) -> tuple[Target, ...]:
        """Return the concrete targets this request covers."""
        if self is Target.BOTH:
            return (Target.SERVER, Target.CLIENT)
        return (self,)

    def includes(self, other: Target) -> bool:
        return other in self.expand()


@dataclass(frozen=True)
class OutputFile:
    """One file produced by the Compiler.

    Attributes:
        path: Absolute path the Compiler assigned (under the requested
            output directory). Only meaningful within one invocation.
        text: File contents.
    """

    path: Path
    text: str


@dataclass(frozen=True)
class ChunkRecord:
    """A materialized file of a split build.

    Attributes:
        hash: Content hash (entries only, empty for chunks).
        hash_name: Current on-disk file name.
        content: Current file contents.
        relative_path: Compiler-assigned path relative to the output
            directory; the join key during stabilization.
    """

    hash: str
    hash_name: str
    content: str
    relative_path: str

    @property
    def is_entry(self) -> bool:
        return bool(self.hash)


@dataclass(frozen=True)
class CompileResult:
    """Outcome of compiling one source file.

    Attributes:
        output_path: Path of the primary artifact (server when requested).
        hash_name: Target-prefixed output reference, e.g. ``server/<hash>.js``.
        cached: True when the cache satisfied every requested target.
    """

    output_path: Path
    hash_name: str
    cached: bool


@dataclass(frozen=True)
class SplitResult:
    """Outcome of one code-splitting batch.

    Attributes:
        compiled: Number of entry outputs.
        chunks: Total number of Compiler outputs (entries and chunks).
        rounds: Stabilization rounds executed.
        converged: True when the last round changed nothing and no
            reference is left dangling.
        unresolved: Dangling references, as ``"<file>: <reference>"``.
    """

    compiled: int
    chunks: int
    rounds: int = 0
    converged: bool = True
    unresolved: tuple[str, ...] = ()


@dataclass(frozen=True)
class DirectoryResult:
    """Outcome of compiling a source directory for one target request."""

    files: int
    compiled: int
    cached: int
    split: SplitResult | None = None


@dataclass(frozen=True)
class RewriteStats:
    """Outcome of the import path post-processing pass."""

    processed: int
    modified: int
    rounds: int = 0


@dataclass(frozen=True)
class RouteMaps:
    """Logical route to output reference tables for both targets."""

    server: dict[str, str] = field(default_factory=dict)
    client: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class BuildResult:
    """Summary of a finished build."""

    out_dir: Path
    manifest_path: Path
    entry: str | None
    files: int
    server_routes: int
    client_routes: int
    duration_ms: int


class Manifest(BaseModel):
    """Build metadata written once per successful run as ``manifest.json``.

    Attributes:
        timestamp: Build time in epoch milliseconds.
        entry: Output reference of the compiled application entry module.
        files: Flattened FileMap (source key to output reference).

    Example:
        >>> manifest = Manifest(timestamp=0, entry="server/abc.js", files={})
        >>> manifest.model_dump_json()
        '{"timestamp":0,"entry":"server/abc.js","files":{}}'
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    timestamp: int = Field(..., ge=0, description="Build time (epoch ms)")
    entry: str | None = Field(default=None, description="Entry module output reference")
    files: dict[str, str] = Field(default_factory=dict, description="Flattened FileMap")
