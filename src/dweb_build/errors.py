"""Exception hierarchy for dweb-build.

This module defines the exception classes raised by the build pipeline:
- DwebError: Base exception for all build errors
- ConfigurationError: Build or route configuration is missing or invalid
- CompileError: The Compiler rejected a source unit
- EntryCompileError: The application entry module failed to compile
- HashError / CacheProbeError: I/O failures while fingerprinting or probing
- StabilizationOverrunError: The chunk rewrite loop hit its round ceiling

User-facing messages are safe to display. Technical details (compiler
diagnostics, stack fragments, absolute paths) go to structlog only.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(__name__)


class DwebError(Exception):
    """Base exception for dweb-build.

    Args:
        user_message: Safe message to display to the user.
        internal_details: Optional technical details. Logged, never shown.

    Example:
        >>> raise DwebError(
        ...     "Build failed",
        ...     internal_details="esbuild exited with status 1",
        ... )
    """

    def __init__(
        self,
        user_message: str,
        *,
        internal_details: str | None = None,
    ) -> None:
        super().__init__(user_message)
        self.user_message = user_message
        self.internal_details = internal_details

        if internal_details:
            logger.error(
                "dweb_error",
                error_type=self.__class__.__name__,
                user_message=user_message,
                internal_details=internal_details,
            )


class ConfigurationError(DwebError):
    """Raised when the project or build configuration is unusable.

    Covers a missing ``build`` or ``routes`` section, an unreadable
    ``dweb.yaml`` and an unknown app name in multi-app mode.

    Attributes:
        file_path: Configuration file involved (if known).
        field_path: Dot-separated path of the offending field (if known).
    """

    def __init__(
        self,
        user_message: str,
        *,
        file_path: str | None = None,
        field_path: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        context_parts: list[str] = []
        if file_path:
            context_parts.append(f"in {file_path}")
        if field_path:
            context_parts.append(f"field '{field_path}'")

        if context_parts:
            full_message = f"{user_message} ({', '.join(context_parts)})"
        else:
            full_message = user_message

        super().__init__(full_message, internal_details=internal_details)

        self.file_path = file_path
        self.field_path = field_path


class CompileError(DwebError):
    """Raised when the Compiler rejects a source unit.

    Unresolved internal imports and syntax errors both end up here. The
    enclosing directory compile is aborted with the path attached.

    Attributes:
        source_path: The source file that failed (or the first entry of a
            split batch).
    """

    def __init__(
        self,
        source_path: str,
        *,
        reason: str | None = None,
        internal_details: str | None = None,
    ) -> None:
        user_message = f"Failed to compile {source_path}"
        if reason:
            user_message = f"{user_message}: {reason}"

        super().__init__(user_message, internal_details=internal_details)

        self.source_path = source_path
        self.reason = reason


class EntryCompileError(CompileError):
    """Raised when the application entry module fails to compile.

    Fatal for the whole run: no manifest is written, so any previous
    manifest stays authoritative.
    """


class HashError(DwebError):
    """Raised when a file cannot be read for fingerprinting.

    Never escapes the cache layer; it is resolved as a cache miss.
    """


class CacheProbeError(DwebError):
    """Raised when a cache probe cannot stat the output directory.

    Never escapes the cache layer; it is resolved as a cache miss.
    """


class StabilizationOverrunError(DwebError):
    """Raised when the chunk reference rewrite loop hits its round ceiling.

    In the default (lenient) mode the stabilizer logs this as a warning and
    accepts the current state as final.

    Attributes:
        rounds: Number of rounds executed.
        unresolved: Relative references still pointing at a non-final name,
            as ``"<file>: <reference>"`` strings.
    """

    def __init__(
        self,
        rounds: int,
        unresolved: list[str],
        *,
        internal_details: str | None = None,
    ) -> None:
        user_message = (
            f"Chunk references did not stabilize after {rounds} rounds "
            f"({len(unresolved)} unresolved)"
        )

        super().__init__(user_message, internal_details=internal_details)

        self.rounds = rounds
        self.unresolved = unresolved
