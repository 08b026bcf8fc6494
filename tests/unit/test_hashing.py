"""Unit tests for content hashing and source fingerprints."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

import pytest

from dweb_build.build.hashing import (
    CONTENT_HASH_LENGTH,
    SOURCE_HASH_LENGTH,
    HashCalculator,
)


class TestCalculateHash:
    """Tests for HashCalculator.calculate_hash."""

    def test_hash_is_15_hex_sha256_prefix(self) -> None:
        """The content hash is the first 15 hex digits of SHA-256."""
        expected = hashlib.sha256(b"export default 1;").hexdigest()[:15]
        assert HashCalculator().calculate_hash(b"export default 1;") == expected
        assert len(expected) == CONTENT_HASH_LENGTH

    def test_str_and_bytes_agree(self) -> None:
        """Strings are hashed as their UTF-8 bytes."""
        calculator = HashCalculator()
        assert calculator.calculate_hash("héllo") == calculator.calculate_hash("héllo".encode())

    def test_identical_content_identical_hash(self) -> None:
        """Same bytes always produce the same name."""
        calculator = HashCalculator()
        assert calculator.calculate_hash("a") == calculator.calculate_hash("a")

    def test_single_byte_change_changes_hash(self) -> None:
        """Any byte change produces a different name."""
        calculator = HashCalculator()
        assert calculator.calculate_hash("const a = 1;") != calculator.calculate_hash("const a = 2;")


class TestCalculateSourceHash:
    """Tests for HashCalculator.calculate_source_hash."""

    def test_fingerprint_digests_length_and_mtime(self, tmp_path: Path) -> None:
        """The fingerprint is SHA-256 of '<size>-<mtime ms>', 10 hex digits."""
        source = tmp_path / "page.tsx"
        source.write_text("export default 1;\n")
        os.utime(source, ns=(1_700_000_000_123_000_000, 1_700_000_000_123_000_000))

        stat = source.stat()
        combined = f"{stat.st_size}-{stat.st_mtime_ns // 1_000_000}".encode()
        expected = hashlib.sha256(combined).hexdigest()[:SOURCE_HASH_LENGTH]

        assert HashCalculator().calculate_source_hash(source) == expected

    def test_fingerprint_changes_with_mtime(self, tmp_path: Path) -> None:
        """Touching a file changes its fingerprint."""
        source = tmp_path / "page.tsx"
        source.write_text("x")
        calculator = HashCalculator()
        os.utime(source, ns=(1_000_000_000_000, 1_000_000_000_000))
        before = calculator.calculate_source_hash(source)
        os.utime(source, ns=(2_000_000_000_000, 2_000_000_000_000))
        assert calculator.calculate_source_hash(source) != before

    def test_same_length_same_mtime_is_not_detected(self, tmp_path: Path) -> None:
        """An edit keeping length and mtime keeps the fingerprint (known gap)."""
        source = tmp_path / "page.tsx"
        calculator = HashCalculator()
        source.write_text("aaaa")
        os.utime(source, ns=(1_000_000_000_000, 1_000_000_000_000))
        before = calculator.calculate_source_hash(source)

        source.write_text("bbbb")
        os.utime(source, ns=(1_000_000_000_000, 1_000_000_000_000))
        assert calculator.calculate_source_hash(source) == before

    def test_missing_file_returns_empty_string(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """An unreadable source is a cache miss, logged as a warning."""
        result = HashCalculator().calculate_source_hash(tmp_path / "missing.tsx")
        assert result == ""
        captured = capsys.readouterr()
        assert "source_hash_failed" in captured.out
