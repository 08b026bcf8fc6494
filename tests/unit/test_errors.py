"""Unit tests for the dweb-build exception hierarchy."""

from __future__ import annotations

import pytest

from dweb_build.errors import (
    CompileError,
    ConfigurationError,
    DwebError,
    EntryCompileError,
    StabilizationOverrunError,
)


class TestDwebError:
    """Tests for the base exception."""

    def test_user_message_is_str(self) -> None:
        """str() of the error is the safe message."""
        err = DwebError("Build failed")
        assert str(err) == "Build failed"
        assert err.internal_details is None

    def test_internal_details_are_logged_not_shown(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Technical details go to the log only."""
        err = DwebError("Build failed", internal_details="esbuild: exit 1")

        assert "esbuild" not in str(err)
        output = capsys.readouterr().out
        assert "dweb_error" in output
        assert "esbuild: exit 1" in output


class TestConfigurationError:
    """Tests for ConfigurationError."""

    def test_context_is_appended(self) -> None:
        """File and field context are part of the message."""
        err = ConfigurationError("Build configuration is required", file_path="dweb.yaml", field_path="build")
        assert err.user_message == "Build configuration is required (in dweb.yaml, field 'build')"

    def test_is_dweb_error(self) -> None:
        """All pipeline errors share the base class."""
        assert isinstance(ConfigurationError("x"), DwebError)


class TestCompileError:
    """Tests for CompileError and EntryCompileError."""

    def test_message_names_source(self) -> None:
        """The failing path and reason are in the message."""
        err = CompileError("routes/index.tsx", reason="syntax error")
        assert err.user_message == "Failed to compile routes/index.tsx: syntax error"
        assert err.source_path == "routes/index.tsx"

    def test_entry_error_is_compile_error(self) -> None:
        """Entry failures can be caught as compile failures."""
        err = EntryCompileError("main.ts")
        assert isinstance(err, CompileError)
        assert err.user_message == "Failed to compile main.ts"


class TestStabilizationOverrunError:
    """Tests for StabilizationOverrunError."""

    def test_counts_in_message(self) -> None:
        """Rounds and unresolved count are reported."""
        err = StabilizationOverrunError(10, ["a.js: ./b.js", "c.js: ../d.js"])
        assert "10 rounds" in err.user_message
        assert "2 unresolved" in err.user_message
        assert err.unresolved == ["a.js: ./b.js", "c.js: ../d.js"]
