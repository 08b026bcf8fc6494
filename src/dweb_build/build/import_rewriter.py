"""Post-processing of relative imports in non-split builds.

Each file of a non-split build is compiled on its own, so references to
sibling sources that the Compiler left external (``from "./card.tsx"``,
``import("../lib/db.ts")``) still name the source. This pass rewrites them
to the sibling's registered artifact. References that match no FileMap
entry are left alone: they are external or already final.

Compiled artifacts are never modified; they stay the cache targets. A
rewritten artifact is written under the hash of its rewritten bytes and
the FileMap is pointed at it. Rewriting always starts from the compiled
bytes, so a cached rerun lands on the same names, and an unchanged
importer follows a recompiled sibling. Rounds repeat until no reference
changes, since renaming one artifact changes the bytes of its importers.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path

import structlog

from dweb_build.build.file_compiler import SOURCE_EXTENSIONS
from dweb_build.build.file_map import FileMap
from dweb_build.build.hashing import HashCalculator
from dweb_build.build.models import CLIENT_KEY_SUFFIX, RewriteStats, Target

logger = structlog.get_logger(__name__)

DEFAULT_MAX_ROUNDS = 10

STATIC_IMPORT = re.compile(r"""from\s*(?P<quote>['"])(?P<path>\.\.?/[^'"]+\.(?:tsx?|jsx?))(?P=quote)""")
DYNAMIC_IMPORT = re.compile(
    r"""import\s*\(\s*(?P<quote>['"])(?P<path>\.\.?/[^'"]+\.(?:tsx?|jsx?))(?P=quote)\s*\)"""
)


@dataclass(frozen=True)
class _CompiledArtifact:
    source: str
    target: Target
    reference: str
    content: str


class ImportPathRewriter:
    """Rewrite source-relative imports to artifact references.

    Args:
        hash_calculator: Names rewritten artifacts by content.
        max_rounds: Round ceiling of the rewrite loop. Import cycles never
            reach a fixed point and stop here.

    Example:
        >>> rewriter = ImportPathRewriter()
        >>> stats = rewriter.post_process_imports(Path("dist"), file_map)
        >>> stats.modified
        3
    """

    def __init__(
        self,
        hash_calculator: HashCalculator | None = None,
        *,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
    ) -> None:
        if max_rounds < 1:
            raise ValueError("max_rounds must be at least 1")
        self.hash_calculator = hash_calculator or HashCalculator()
        self.max_rounds = max_rounds
        self._log = logger.bind(component="import_rewriter")

    def post_process_imports(self, out_dir: Path, file_map: FileMap) -> RewriteStats:
        """Rewrite every registered server and client artifact.

        Args:
            out_dir: Output root holding ``server/`` and ``client/``.
            file_map: The run's FileMap; keys are source paths. References
                of rewritten artifacts are replaced.

        Returns:
            RewriteStats with the number of artifacts read, the number now
            registered under a rewritten name and the rounds executed.
        """
        artifacts = self._load(out_dir, file_map)

        rounds = 0
        dirty = True
        while dirty and rounds < self.max_rounds:
            rounds += 1
            dirty = False
            for artifact in artifacts:
                reference = self._rewrite_artifact(artifact, out_dir, file_map)
                if reference is None or reference == file_map.get(artifact.source, artifact.target):
                    continue
                file_map.set_split_mapping(artifact.source, reference, artifact.target)
                dirty = True

        if dirty:
            self._log.warning("import_rewrite_incomplete", rounds=rounds)

        modified = sum(
            1
            for artifact in artifacts
            if file_map.get(artifact.source, artifact.target) != artifact.reference
        )
        self._log.info(
            "imports_rewritten",
            processed=len(artifacts),
            modified=modified,
            rounds=rounds,
        )
        return RewriteStats(processed=len(artifacts), modified=modified, rounds=rounds)

    def _load(self, out_dir: Path, file_map: FileMap) -> list[_CompiledArtifact]:
        artifacts: list[_CompiledArtifact] = []
        for key in file_map.sources():
            if not key.endswith(SOURCE_EXTENSIONS):
                continue
            for target in (Target.SERVER, Target.CLIENT):
                reference = file_map.get(key, target)
                if reference is None or not reference.startswith(target.prefix):
                    continue
                path = out_dir / reference
                if not path.is_file():
                    continue
                try:
                    content = path.read_text(encoding="utf-8")
                except OSError as e:
                    self._log.warning("import_rewrite_failed", artifact=reference, error=str(e))
                    continue
                artifacts.append(_CompiledArtifact(key, target, reference, content))
        return artifacts

    def _rewrite_artifact(
        self,
        artifact: _CompiledArtifact,
        out_dir: Path,
        file_map: FileMap,
    ) -> str | None:
        """Return the reference the artifact should be registered under.

        None when the rewritten file cannot be written; the current
        reference is kept then.
        """
        content = self.rewrite(artifact.content, artifact.source, artifact.target, file_map)
        if content == artifact.content:
            return artifact.reference

        name = f"{self.hash_calculator.calculate_hash(content)}.js"
        reference = f"{artifact.target.prefix}{name}"
        if reference == file_map.get(artifact.source, artifact.target):
            return reference
        try:
            (out_dir / reference).write_text(content, encoding="utf-8")
        except OSError as e:
            self._log.warning("import_rewrite_failed", artifact=reference, error=str(e))
            return None
        return reference

    def rewrite(self, content: str, source: str, target: Target, file_map: FileMap) -> str:
        """Return ``content`` with resolvable sibling imports rewritten.

        Args:
            content: Artifact text.
            source: FileMap key of the source the artifact was compiled from.
            target: Target the artifact belongs to.
            file_map: The run's FileMap.
        """

        def resolve(match: re.Match[str], template: str) -> str:
            replacement = self._relative_reference(match["path"], source, target, file_map)
            if replacement is None:
                return match.group(0)
            quote = match["quote"]
            return template.format(f"{quote}{replacement}{quote}")

        content = STATIC_IMPORT.sub(lambda m: resolve(m, "from {}"), content)
        return DYNAMIC_IMPORT.sub(lambda m: resolve(m, "import({})"), content)

    @staticmethod
    def _relative_reference(
        import_path: str,
        source: str,
        target: Target,
        file_map: FileMap,
    ) -> str | None:
        imported = posixpath.normpath(posixpath.join(posixpath.dirname(source), import_path))
        if imported.endswith(CLIENT_KEY_SUFFIX):
            return None

        # Same-target variant first; a client artifact may fall back to the server one
        reference = file_map.get(imported, target)
        if reference is None and target is Target.CLIENT:
            reference = file_map.get(imported, Target.SERVER)
        if reference is None:
            return None

        directory, _, name = reference.partition("/")
        if f"{directory}/" == target.prefix:
            return f"./{name}"
        return f"../{directory}/{name}"
