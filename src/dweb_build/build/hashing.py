"""Content and source fingerprint hashing."""

from __future__ import annotations

import hashlib
from pathlib import Path

import structlog

from dweb_build.errors import HashError

logger = structlog.get_logger(__name__)

CONTENT_HASH_LENGTH = 15
SOURCE_HASH_LENGTH = 10


class HashCalculator:
    """Compute artifact content hashes and cheap source fingerprints.

    The content hash names entry artifacts: identical bytes always yield the
    same name. The source fingerprint only decides whether a source needs
    recompiling. It digests ``(byte length, mtime in ms)``, not the source
    bytes, so an edit that keeps both the length and the mtime goes
    unnoticed until the file is touched again.
    """

    def calculate_hash(self, content: str | bytes) -> str:
        """Return the 15-hex SHA-256 prefix of ``content`` (str is UTF-8 encoded)."""
        data = content.encode("utf-8") if isinstance(content, str) else content
        return hashlib.sha256(data).hexdigest()[:CONTENT_HASH_LENGTH]

    def calculate_source_hash(self, file_path: str | Path) -> str:
        """Return the 10-hex fingerprint of a source file.

        Returns an empty string when the file cannot be read; callers treat
        that as a cache miss.
        """
        try:
            return self._fingerprint(Path(file_path))
        except HashError as e:
            logger.warning(
                "source_hash_failed",
                path=str(file_path),
                error=str(e.__cause__ or e),
            )
            return ""

    def _fingerprint(self, path: Path) -> str:
        try:
            stat = path.stat()
        except OSError as e:
            raise HashError("Cannot fingerprint source file") from e
        mtime_ms = stat.st_mtime_ns // 1_000_000
        combined = f"{stat.st_size}-{mtime_ms}".encode()
        return hashlib.sha256(combined).hexdigest()[:SOURCE_HASH_LENGTH]
