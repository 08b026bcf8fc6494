"""Static asset and translation file handling.

Assets keep their original names (they are addressed by URL, not through
the FileMap). Copy failures are logged per file and never fail the build.
"""

from __future__ import annotations

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)

RASTER_IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp", ".gif"})
LARGE_IMAGE_BYTES = 50 * 1024

_SVG_COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_INTER_TAG_SPACE = re.compile(r">\s+<")


def minify_svg(svg: str) -> str:
    """Drop comments and collapse whitespace in an SVG document.

    Example:
        >>> minify_svg("<svg>\\n  <!-- icon -->\\n  <path d='M0 0'/>\\n</svg>")
        "<svg><path d='M0 0'/></svg>"
    """
    svg = _SVG_COMMENT.sub("", svg)
    svg = _WHITESPACE.sub(" ", svg)
    return _INTER_TAG_SPACE.sub("><", svg).strip()


@dataclass(frozen=True)
class AssetStats:
    """Outcome of a static asset pass."""

    copied: int = 0
    compressed: int = 0
    failed: int = 0


class AssetProcessor:
    """Copies static assets and translation files into the output tree."""

    def __init__(self) -> None:
        self._log = logger.bind(component="asset_processor")

    def process_static_assets(
        self,
        static_dir: Path,
        static_out_dir: Path,
        *,
        compress: bool = False,
        image_quality: int = 80,
    ) -> AssetStats:
        """Copy (or minify) every file under ``static_dir``.

        Args:
            static_dir: Source asset directory. Missing is not an error.
            static_out_dir: Destination, mirroring the source layout.
            compress: Minify SVG files and report large raster images.
            image_quality: Recorded with large-image warnings; raster
                recompression is left to external tools.

        Returns:
            AssetStats with copied, compressed and failed counts.
        """
        if not static_dir.is_dir():
            self._log.debug("static_dir_missing", static_dir=str(static_dir))
            return AssetStats()

        copied = compressed = failed = 0
        for path in sorted(static_dir.rglob("*")):
            if not path.is_file():
                continue
            destination = static_out_dir / path.relative_to(static_dir)
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                if compress and self._compress(path, destination, image_quality):
                    compressed += 1
                else:
                    shutil.copyfile(path, destination)
                    copied += 1
            except (OSError, UnicodeDecodeError) as e:
                failed += 1
                self._log.warning("asset_copy_failed", path=str(path), error=str(e))

        self._log.info(
            "static_assets_processed",
            copied=copied,
            compressed=compressed,
            failed=failed,
        )
        return AssetStats(copied=copied, compressed=compressed, failed=failed)

    def _compress(self, source: Path, destination: Path, image_quality: int) -> bool:
        """Write a compressed copy; return False when the file should be copied as is."""
        suffix = source.suffix.lower()
        if suffix == ".svg":
            minified = minify_svg(source.read_text(encoding="utf-8"))
            destination.write_text(minified, encoding="utf-8")
            return True

        if suffix in RASTER_IMAGE_EXTENSIONS:
            size = source.stat().st_size
            if size >= LARGE_IMAGE_BYTES:
                self._log.warning(
                    "large_image_uncompressed",
                    path=str(source),
                    size_kb=round(size / 1024, 2),
                    quality=image_quality,
                    hint="compress with an external image tool",
                )
        return False

    def copy_translations(self, translations_dir: Path, out_dir: Path) -> int:
        """Copy every ``*.json`` under ``translations_dir`` to ``out_dir``.

        Returns:
            Number of files copied.
        """
        if not translations_dir.is_dir():
            self._log.debug("translations_dir_missing", path=str(translations_dir))
            return 0

        copied = 0
        for path in sorted(translations_dir.rglob("*.json")):
            destination = out_dir / path.relative_to(translations_dir)
            try:
                destination.parent.mkdir(parents=True, exist_ok=True)
                shutil.copyfile(path, destination)
                copied += 1
            except OSError as e:
                self._log.warning("translation_copy_failed", path=str(path), error=str(e))

        self._log.info("translations_copied", copied=copied)
        return copied

    def clear_directory(self, directory: Path) -> None:
        """Remove everything inside ``directory``, keeping the directory itself."""
        if not directory.is_dir():
            return

        for child in directory.iterdir():
            try:
                if child.is_dir() and not child.is_symlink():
                    shutil.rmtree(child)
                else:
                    child.unlink()
            except OSError as e:
                self._log.warning("clear_failed", path=str(child), error=str(e))

        self._log.info("directory_cleared", path=str(directory))
