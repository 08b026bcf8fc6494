"""Command line interface for dweb-build."""

from __future__ import annotations

from dweb_build import __version__

__all__ = ["__version__"]
