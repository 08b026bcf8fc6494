"""Unit tests for dweb.yaml configuration models."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from dweb_build.schemas import (
    AppConfig,
    BuildConfig,
    ProjectConfig,
    RouteConfig,
    StaticConfig,
    load_import_map,
)


class TestBuildConfig:
    """Tests for BuildConfig."""

    def test_defaults(self) -> None:
        """Only outDir is required; cache on, split off."""
        config = BuildConfig.model_validate({"outDir": "dist"})
        assert config.out_dir == "dist"
        assert config.cache is True
        assert config.split is False
        assert config.entry is None
        assert config.chunk_size == 20000

    def test_out_dir_required(self) -> None:
        """A build section without outDir is invalid."""
        with pytest.raises(ValidationError):
            BuildConfig.model_validate({})

    def test_unknown_key_rejected(self) -> None:
        """Typos in the build section are reported."""
        with pytest.raises(ValidationError):
            BuildConfig.model_validate({"outDir": "dist", "minfy": True})

    @pytest.mark.parametrize("quality", [-1, 101])
    def test_image_quality_range(self, quality: int) -> None:
        """Image quality is a percentage."""
        with pytest.raises(ValidationError):
            BuildConfig.model_validate({"outDir": "dist", "imageQuality": quality})

    def test_frozen(self) -> None:
        """Configuration is immutable."""
        config = BuildConfig(out_dir="dist")
        with pytest.raises(ValidationError):
            config.split = True  # type: ignore[misc]


class TestStaticConfig:
    """Tests for StaticConfig."""

    def test_only_dir_is_accepted(self) -> None:
        """The section holds the asset directory and nothing else."""
        assert StaticConfig.model_validate({"dir": "public"}).dir == "public"
        with pytest.raises(ValidationError):
            StaticConfig.model_validate({"dir": "public", "prefix": "/static"})


class TestRouteConfig:
    """Tests for RouteConfig."""

    def test_string_shorthand(self) -> None:
        """``routes: pages`` means ``{dir: pages}`` with API under it."""
        config = RouteConfig.model_validate("pages")
        assert config.dir == "pages"
        assert config.api_dir == "pages/api"

    def test_explicit_api_dir(self) -> None:
        """An API directory may sit beside the routes."""
        config = RouteConfig.model_validate({"dir": "routes", "apiDir": "api"})
        assert config.api_dir == "api"

    def test_ignore_patterns(self) -> None:
        """Ignore patterns are kept in order."""
        config = RouteConfig.model_validate({"dir": "routes", "ignore": ["*.test.tsx", "_*"]})
        assert config.ignore == ("*.test.tsx", "_*")


class TestAppConfig:
    """Tests for AppConfig."""

    def test_runtime_keys_are_ignored(self) -> None:
        """Keys owned by the runtime do not fail validation."""
        app = AppConfig.model_validate(
            {"build": {"outDir": "dist"}, "routes": "routes", "server": {"port": 8000}}
        )
        assert app.routes is not None and app.routes.dir == "routes"

    def test_single_app_defaults(self) -> None:
        """Entry and static directory fall back to the project defaults."""
        app = AppConfig.model_validate({"build": {"outDir": "dist"}})
        assert app.entry_file() == "main.ts"
        assert app.static_dir() == "assets"

    def test_multi_app_defaults_are_name_scoped(self) -> None:
        """In multi-app mode defaults live under the app's directory."""
        app = AppConfig.model_validate({"name": "backend", "build": {"outDir": "dist"}})
        assert app.entry_file(multi_app=True) == "backend/main.ts"
        assert app.static_dir(multi_app=True) == "backend/assets"

    def test_explicit_entry_wins(self) -> None:
        """A configured entry is used verbatim."""
        app = AppConfig.model_validate({"name": "web", "build": {"outDir": "dist", "entry": "server.ts"}})
        assert app.entry_file(multi_app=True) == "server.ts"

    def test_invalid_name(self) -> None:
        """App names start with a letter."""
        with pytest.raises(ValidationError):
            AppConfig.model_validate({"name": "1app"})


class TestProjectConfig:
    """Tests for ProjectConfig loading."""

    def test_single_app_file(self, tmp_path: Path) -> None:
        """Top-level app keys make a single-app project."""
        path = tmp_path / "dweb.yaml"
        path.write_text(yaml.safe_dump({"build": {"outDir": "dist"}, "routes": "routes"}))

        project = ProjectConfig.from_yaml(path)

        assert project.is_multi_app is False
        assert project.get_app().build.out_dir == "dist"

    def test_multi_app_merges_shared_keys(self) -> None:
        """Each app is deep-merged over the shared top-level keys."""
        project = ProjectConfig.from_dict(
            {
                "build": {"outDir": "dist", "split": True},
                "hooks": ["shared.hooks:a"],
                "apps": [
                    {"name": "web", "routes": "web/routes", "hooks": ["web.hooks:b"]},
                    {"name": "admin", "build": {"split": False}},
                ],
            }
        )

        assert project.is_multi_app is True
        web = project.get_app("web")
        admin = project.get_app("admin")
        assert web.build.split is True
        assert web.hooks == ("shared.hooks:a", "web.hooks:b")
        assert admin.build.out_dir == "dist"
        assert admin.build.split is False

    def test_unknown_app(self) -> None:
        """Asking for an app that does not exist raises KeyError."""
        project = ProjectConfig.from_dict({"apps": [{"name": "web"}, {"name": "admin"}]})
        with pytest.raises(KeyError):
            project.get_app("missing")
        with pytest.raises(KeyError):
            project.get_app()

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            ProjectConfig.from_yaml(tmp_path / "dweb.yaml")

    def test_empty_file_is_an_app_without_sections(self, tmp_path: Path) -> None:
        """An empty file parses; the build later rejects the missing sections."""
        path = tmp_path / "dweb.yaml"
        path.write_text("")
        app = ProjectConfig.from_yaml(path).get_app()
        assert app.build is None
        assert app.routes is None


class TestLoadImportMap:
    """Tests for load_import_map."""

    def test_reads_deno_json(self, tmp_path: Path) -> None:
        """The ``imports`` table of deno.json is the import map."""
        (tmp_path / "deno.json").write_text('{"imports": {"preact": "npm:preact@10"}}')
        assert load_import_map(tmp_path) == {"preact": "npm:preact@10"}

    def test_reads_jsonc_with_comments(self, tmp_path: Path) -> None:
        """Comments in deno.jsonc are stripped; URLs inside strings survive."""
        (tmp_path / "deno.jsonc").write_text(
            '{\n  // aliases\n  "imports": {"std/": "https://deno.land/std/"} /* end */\n}'
        )
        assert load_import_map(tmp_path) == {"std/": "https://deno.land/std/"}

    def test_missing_or_invalid(self, tmp_path: Path) -> None:
        """No file or broken JSON yields an empty table."""
        assert load_import_map(tmp_path) == {}
        (tmp_path / "deno.json").write_text("{not json")
        assert load_import_map(tmp_path) == {}
