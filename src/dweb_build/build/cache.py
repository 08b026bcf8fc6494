"""Build cache probe.

There is no cache index: a ``<source fingerprint>.js`` file under a target
output directory is the cache signal. The marker is itself a valid module
re-exporting the content-addressed artifact it stands for, so a hit can
register the same artifact name the original compile registered. Its first
line names the source it was written for; two sources sharing a
fingerprint (same length and mtime) therefore miss instead of borrowing
each other's artifact; they keep replacing each other's marker and are
recompiled on every run.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog

from dweb_build.build.file_map import normalize_key
from dweb_build.build.hashing import HashCalculator
from dweb_build.errors import CacheProbeError

logger = structlog.get_logger(__name__)

_MARKER_SOURCE = re.compile(r"^// source: (.+)$", re.MULTILINE)
_MARKER_TARGET = re.compile(r'^export \* from "\./([^"/]+)";$', re.MULTILINE)


def marker_content(artifact_name: str, source: str | Path) -> str:
    """Return the body of a cache marker pointing at ``artifact_name``."""
    return (
        f"// source: {normalize_key(source)}\n"
        f'export * from "./{artifact_name}";\n'
        f'export {{ default }} from "./{artifact_name}";\n'
    )


class CacheManager:
    """Stateless filesystem cache check keyed by source fingerprints.

    Example:
        >>> cache = CacheManager(HashCalculator())
        >>> fingerprint = cache.get_source_hash("routes/index.tsx")
        >>> cache.check_build_cache("routes/index.tsx", Path("dist/server"), fingerprint)
    """

    def __init__(self, hash_calculator: HashCalculator) -> None:
        self.hash_calculator = hash_calculator

    def get_source_hash(self, file_path: str | Path) -> str:
        """Return the source fingerprint, or ``""`` when it cannot be computed."""
        return self.hash_calculator.calculate_source_hash(file_path)

    def check_build_cache(
        self,
        file_path: str | Path,
        out_dir: Path,
        source_hash: str,
    ) -> str | None:
        """Return the cached artifact name for ``source_hash`` if present.

        Args:
            file_path: Source file being probed, in the same form it was
                recorded with.
            out_dir: Target output directory.
            source_hash: Fingerprint from ``get_source_hash``.

        Returns:
            The artifact name recorded by ``<source_hash>.js`` when the
            marker belongs to ``file_path`` and both the marker and the
            artifact exist under ``out_dir``, otherwise None. I/O failures
            are a miss, never an error.
        """
        if not source_hash:
            return None

        try:
            return self._probe(out_dir, source_hash, normalize_key(file_path))
        except CacheProbeError as e:
            logger.warning(
                "cache_probe_failed",
                path=str(file_path),
                out_dir=str(out_dir),
                error=str(e.__cause__ or e),
            )
            return None

    def record(
        self,
        out_dir: Path,
        source_hash: str,
        artifact_name: str,
        file_path: str | Path,
    ) -> None:
        """Write the ``<source_hash>.js`` marker for a freshly compiled artifact."""
        if not source_hash:
            return
        marker = out_dir / f"{source_hash}.js"
        marker.write_text(marker_content(artifact_name, file_path), encoding="utf-8")

    @staticmethod
    def _probe(out_dir: Path, source_hash: str, source: str) -> str | None:
        marker = out_dir / f"{source_hash}.js"
        try:
            if not marker.is_file():
                return None
            text = marker.read_text(encoding="utf-8")
            owner = _MARKER_SOURCE.search(text)
            if owner is None or owner.group(1) != source:
                return None
            match = _MARKER_TARGET.search(text)
            if match is None:
                return None
            artifact_name = match.group(1)
            return artifact_name if (out_dir / artifact_name).is_file() else None
        except (OSError, UnicodeDecodeError) as e:
            raise CacheProbeError("Cannot probe build cache") from e
