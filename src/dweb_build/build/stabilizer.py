"""Chunk stabilization for code-splitting builds.

A split Compiler invocation returns entry files and shared chunk files whose
names are only meaningful inside that invocation. The stabilizer turns them
into a flat, content-addressed artifact set:

- Phase A (materialize): entries are written as ``<content hash>.js``,
  chunks keep the Compiler's basename. Every file is written once.
- Phase B (stabilize): every relative ``.js`` reference is rewritten to
  ``./<final name>``. Entries whose bytes change are rehashed and renamed
  (the stale file is deleted and the FileMap updated); chunks are rewritten
  in place. Rounds repeat until one changes nothing, bounded by a ceiling.

Convergence is checked, not assumed: after the loop every remaining
relative reference must point at a file of the batch.
"""

from __future__ import annotations

import posixpath
import re
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from pathlib import Path, PurePosixPath

import structlog

from dweb_build.build.file_map import FileMap, source_key
from dweb_build.build.hashing import CONTENT_HASH_LENGTH, HashCalculator
from dweb_build.build.models import ChunkRecord, OutputFile, SplitResult, Target
from dweb_build.errors import StabilizationOverrunError

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ROUNDS = 10

RELATIVE_REFERENCE = re.compile(
    r"""(?P<quote>["'])(?P<prefix>\.{1,2}/(?:[^"'\s/]+/)*)(?P<name>[^"'\s/]+\.js)(?P=quote)"""
)

_CONTENT_HASH_NAME = re.compile(rf"^[0-9a-f]{{{CONTENT_HASH_LENGTH}}}\.js$")


def match_entry(relative_path: str, entry_stems: Sequence[str]) -> str | None:
    """Return the entry stem a Compiler output path belongs to, if any.

    Args:
        relative_path: Output path relative to the output directory.
        entry_stems: Entry paths relative to cwd, extension stripped,
            ``/``-separated.

    Example:
        >>> match_entry("routes/index.js", ["routes/index"])
        'routes/index'
        >>> match_entry("chunk-AB12.js", ["routes/index"]) is None
        True
    """
    # Exact matches win over prefix matches (routes/blog.tsx vs routes/blog/index.tsx)
    for stem in entry_stems:
        if relative_path in (f"{stem}.js", stem):
            return stem
    for stem in entry_stems:
        if relative_path.startswith((f"{stem}.", f"{stem}/")):
            return stem
    return None


@dataclass
class _BatchState:
    """Mutable bookkeeping of one stabilization run."""

    records: dict[str, ChunkRecord] = field(default_factory=dict)
    """Compiler relative path to current record."""

    aliases: dict[str, str | None] = field(default_factory=dict)
    """Lower-cased basename (Compiler-assigned, current or retired) to relative path.

    None marks a basename shared by several outputs; those only resolve by path.
    """

    entry_sources: dict[str, Path] = field(default_factory=dict)
    """Compiler relative path of an entry output to its source path."""

    def alias(self, name: str, relative_path: str) -> None:
        key = name.lower()
        current = self.aliases.get(key, relative_path)
        self.aliases[key] = relative_path if current == relative_path else None

    def final_names(self) -> set[str]:
        return {record.hash_name for record in self.records.values()}


class ChunkStabilizer:
    """Rewrites split-build cross references to a fixed point.

    Args:
        hash_calculator: Names entry artifacts by content.
        max_rounds: Round ceiling of the rewrite loop.
        strict: Raise ``StabilizationOverrunError`` instead of accepting a
            non-converged state.
    """

    def __init__(
        self,
        hash_calculator: HashCalculator,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        strict: bool = False,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.hash_calculator = hash_calculator
        self.max_rounds = max_rounds
        self.strict = strict
        self._log = logger.bind(component="chunk_stabilizer")

    def stabilize(
        self,
        outputs: Sequence[OutputFile],
        entry_points: Sequence[Path],
        out_dir: Path,
        cwd: Path,
        target: Target,
        file_map: FileMap,
    ) -> SplitResult:
        """Materialize one split batch under ``out_dir`` and fix its references.

        Args:
            outputs: Everything the Compiler returned for the batch.
            entry_points: The requested entries, absolute or relative to cwd.
            out_dir: Target output directory (``<out>/server`` or ``<out>/client``).
            cwd: Project root the entry paths are relative to.
            target: Concrete target of the batch.
            file_map: Receives ``<prefix><final name>`` for every entry.

        Returns:
            SplitResult with entry and output counts, rounds executed and
            whatever references were left dangling.

        Raises:
            StabilizationOverrunError: When ``strict`` and the loop did not
                converge.
        """
        if target is Target.BOTH:
            raise ValueError("Split batches are compiled for one target at a time")

        state = self._materialize(outputs, entry_points, out_dir, cwd, target, file_map)

        rounds = 0
        dirty = True
        while dirty and rounds < self.max_rounds:
            rounds += 1
            dirty = self._run_round(state, out_dir, cwd, target, file_map)
            self._log.debug("stabilization_round", round=rounds, dirty=dirty)

        unresolved = self._dangling(state)
        converged = not dirty and not unresolved
        entries = sum(1 for record in state.records.values() if record.is_entry)

        if not converged:
            error = StabilizationOverrunError(rounds, unresolved)
            if self.strict:
                raise error
            self._log.warning(
                "stabilization_incomplete",
                error=error.user_message,
                rounds=rounds,
                unresolved=unresolved[:10],
            )

        self._log.info(
            "split_batch_stabilized",
            target=target.value,
            entries=entries,
            outputs=len(state.records),
            rounds=rounds,
            converged=converged,
        )
        return SplitResult(
            compiled=entries,
            chunks=len(state.records),
            rounds=rounds,
            converged=converged,
            unresolved=tuple(unresolved),
        )

    def _materialize(
        self,
        outputs: Sequence[OutputFile],
        entry_points: Sequence[Path],
        out_dir: Path,
        cwd: Path,
        target: Target,
        file_map: FileMap,
    ) -> _BatchState:
        state = _BatchState()
        stems: dict[str, Path] = {}
        for entry in entry_points:
            key = source_key(entry, cwd)
            stems[str(PurePosixPath(key).with_suffix(""))] = entry

        out_dir.mkdir(parents=True, exist_ok=True)
        for output in outputs:
            relative_path = self._relative_output_path(output.path, out_dir)
            stem = match_entry(relative_path, list(stems))

            if stem is not None:
                content_hash = self.hash_calculator.calculate_hash(output.text)
                record = ChunkRecord(
                    hash=content_hash,
                    hash_name=f"{content_hash}.js",
                    content=output.text,
                    relative_path=relative_path,
                )
                state.entry_sources[relative_path] = stems[stem]
                file_map.set_split_mapping(
                    source_key(stems[stem], cwd),
                    f"{target.prefix}{record.hash_name}",
                    target,
                )
            else:
                record = ChunkRecord(
                    hash="",
                    hash_name=PurePosixPath(relative_path).name,
                    content=output.text,
                    relative_path=relative_path,
                )

            (out_dir / record.hash_name).write_text(record.content, encoding="utf-8")
            state.records[relative_path] = record
            state.alias(PurePosixPath(relative_path).name, relative_path)
            state.alias(record.hash_name, relative_path)

        return state

    def _run_round(
        self,
        state: _BatchState,
        out_dir: Path,
        cwd: Path,
        target: Target,
        file_map: FileMap,
    ) -> bool:
        dirty = False
        for relative_path in sorted(state.records):
            record = state.records[relative_path]
            content = self._rewrite(record, state)
            if content == record.content:
                continue
            dirty = True

            if not record.is_entry:
                (out_dir / record.hash_name).write_text(content, encoding="utf-8")
                state.records[relative_path] = replace(record, content=content)
                continue

            content_hash = self.hash_calculator.calculate_hash(content)
            updated = ChunkRecord(
                hash=content_hash,
                hash_name=f"{content_hash}.js",
                content=content,
                relative_path=relative_path,
            )
            (out_dir / updated.hash_name).write_text(content, encoding="utf-8")
            state.records[relative_path] = updated
            state.alias(updated.hash_name, relative_path)

            if record.hash_name != updated.hash_name:
                if record.hash_name not in state.final_names():
                    (out_dir / record.hash_name).unlink(missing_ok=True)
                file_map.set_split_mapping(
                    source_key(state.entry_sources[relative_path], cwd),
                    f"{target.prefix}{updated.hash_name}",
                    target,
                )
        return dirty

    def _rewrite(self, record: ChunkRecord, state: _BatchState) -> str:
        def substitute(match: re.Match[str]) -> str:
            final_name = self._resolve(record, match["prefix"], match["name"], state)
            if final_name is None:
                return match.group(0)
            quote = match["quote"]
            return f"{quote}./{final_name}{quote}"

        return RELATIVE_REFERENCE.sub(substitute, record.content)

    @staticmethod
    def _resolve(
        record: ChunkRecord,
        prefix: str,
        name: str,
        state: _BatchState,
    ) -> str | None:
        # Compiler layout first, then basenames, then content hashes
        joined = posixpath.normpath(
            posixpath.join(posixpath.dirname(record.relative_path), prefix, name)
        )
        target = state.records.get(joined)
        if target is not None:
            return target.hash_name

        relative_path = state.aliases.get(name.lower())
        if relative_path is not None:
            return state.records[relative_path].hash_name

        if _CONTENT_HASH_NAME.match(name):
            content_hash = name[: -len(".js")]
            for candidate in state.records.values():
                if candidate.hash == content_hash:
                    return candidate.hash_name
        return None

    @staticmethod
    def _dangling(state: _BatchState) -> list[str]:
        final_names = state.final_names()
        dangling: list[str] = []
        for record in sorted(state.records.values(), key=lambda r: r.relative_path):
            for match in RELATIVE_REFERENCE.finditer(record.content):
                if match["prefix"] != "./" or match["name"] not in final_names:
                    reference = f"{match['prefix']}{match['name']}"
                    dangling.append(f"{record.hash_name}: {reference}")
        return dangling

    @staticmethod
    def _relative_output_path(path: Path, out_dir: Path) -> str:
        if path.is_relative_to(out_dir):
            return path.relative_to(out_dir).as_posix()
        return path.name
