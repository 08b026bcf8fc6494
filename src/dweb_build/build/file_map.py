"""FileMap: source path to output reference table for one build run.

Keys are ``/``-separated source paths; the client variant of a source is
keyed with a ``.client`` suffix. Values are output references relative to
the output root (``server/<hash>.js``, ``client/<hash>.js``). A FileMap is
created per run, passed explicitly to every stage and discarded afterwards;
only its flattened form survives, inside the manifest.
"""

from __future__ import annotations

from collections.abc import Iterator
from os import PathLike
from pathlib import Path, PurePath

from dweb_build.build.models import CLIENT_KEY_SUFFIX, Target

SourceKey = str | PathLike[str]


def normalize_key(source: SourceKey) -> str:
    """Return the ``/``-separated form of a source path."""
    return PurePath(source).as_posix()


def source_key(path: SourceKey, cwd: Path) -> str:
    """Return the FileMap key of a source: relative to ``cwd`` when inside it."""
    candidate = Path(path)
    if candidate.is_absolute() and candidate.is_relative_to(cwd):
        candidate = candidate.relative_to(cwd)
    return normalize_key(candidate)


class FileMap:
    """Mapping from (source path, target) to output reference.

    Holds at most one live reference per (source, target); registering a
    recompiled source replaces the previous reference.

    Example:
        >>> file_map = FileMap()
        >>> file_map.set_mapping("/app/routes/index.tsx", "abc.js", Target.BOTH)
        >>> file_map.get("/app/routes/index.tsx", Target.CLIENT)
        'client/abc.js'
    """

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}

    @staticmethod
    def key_for(source: SourceKey, target: Target) -> str:
        """Return the map key of ``source`` for a concrete target."""
        key = normalize_key(source)
        if target is Target.CLIENT:
            return f"{key}{CLIENT_KEY_SUFFIX}"
        if target is Target.SERVER:
            return key
        raise ValueError("Target.BOTH has no single map key")

    def set_mapping(self, source: SourceKey, hash_name: str, target: Target) -> None:
        """Register an unprefixed artifact name for every target requested."""
        for concrete in target.expand():
            self._entries[self.key_for(source, concrete)] = f"{concrete.prefix}{hash_name}"

    def set_split_mapping(self, source: SourceKey, reference: str, target: Target) -> None:
        """Register an already-prefixed reference (split batches, rewritten artifacts)."""
        self._entries[self.key_for(source, target)] = reference

    def get(self, source: SourceKey, target: Target = Target.SERVER) -> str | None:
        return self._entries.get(self.key_for(source, target))

    def sources(self) -> list[str]:
        """Return the distinct source keys, client-only sources included."""
        return list(dict.fromkeys(key.removesuffix(CLIENT_KEY_SUFFIX) for key in self._entries))

    def items(self) -> Iterator[tuple[str, str]]:
        return iter(self._entries.items())

    def to_dict(self) -> dict[str, str]:
        return dict(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)
