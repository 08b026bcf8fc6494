"""Unit tests for sibling import post-processing."""

from __future__ import annotations

from pathlib import Path

import pytest

from dweb_build.build.file_map import FileMap
from dweb_build.build.hashing import HashCalculator
from dweb_build.build.import_rewriter import ImportPathRewriter
from dweb_build.build.models import Target


@pytest.fixture
def file_map() -> FileMap:
    file_map = FileMap()
    file_map.set_mapping("routes/index.tsx", "index111.js", Target.BOTH)
    file_map.set_mapping("components/card.tsx", "card222.js", Target.BOTH)
    file_map.set_mapping("lib/db.ts", "db333.js", Target.SERVER)
    return file_map


class TestRewrite:
    """Tests for ImportPathRewriter.rewrite."""

    def test_same_target_sibling(self, file_map: FileMap) -> None:
        """A sibling in the same target becomes ``./<artifact>``."""
        content = 'import { Card } from "../components/card.tsx";'
        result = ImportPathRewriter().rewrite(content, "routes/index.tsx", Target.SERVER, file_map)
        assert result == 'import { Card } from "./card222.js";'

    def test_client_prefers_client_variant(self, file_map: FileMap) -> None:
        """The client artifact imports the client sibling."""
        content = "import { Card } from '../components/card.tsx';"
        result = ImportPathRewriter().rewrite(content, "routes/index.tsx", Target.CLIENT, file_map)
        assert result == "import { Card } from './card222.js';"

    def test_client_falls_back_to_server_artifact(self, file_map: FileMap) -> None:
        """Without a client variant the reference crosses into server/."""
        content = 'import { db } from "../lib/db.ts";'
        result = ImportPathRewriter().rewrite(content, "routes/index.tsx", Target.CLIENT, file_map)
        assert result == 'import { db } from "../server/db333.js";'

    def test_dynamic_import(self, file_map: FileMap) -> None:
        """``import("...")`` is rewritten like a static import."""
        content = 'const mod = await import( "../components/card.tsx" );'
        result = ImportPathRewriter().rewrite(content, "routes/index.tsx", Target.SERVER, file_map)
        assert result == 'const mod = await import("./card222.js");'

    def test_unknown_and_external_imports_untouched(self, file_map: FileMap) -> None:
        """Bare, remote and unregistered specifiers stay as written."""
        content = (
            'import { h } from "preact";\n'
            'import x from "https://esm.sh/x.js";\n'
            'import { y } from "./missing.ts";\n'
        )
        result = ImportPathRewriter().rewrite(content, "routes/index.tsx", Target.SERVER, file_map)
        assert result == content


def _write(out_dir: Path, reference: str, text: str) -> None:
    path = out_dir / reference
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _hash_name(text: str) -> str:
    return f"{HashCalculator().calculate_hash(text)}.js"


class TestPostProcessImports:
    """Tests for ImportPathRewriter.post_process_imports."""

    def test_rewritten_bytes_get_their_own_name(self, file_map: FileMap, tmp_path: Path) -> None:
        """Compiled artifacts stay untouched; the FileMap moves to the rewritten file."""
        compiled = 'import { Card } from "../components/card.tsx";'
        for reference in ("server/index111.js", "client/index111.js"):
            _write(tmp_path, reference, compiled)
        for reference in ("server/card222.js", "client/card222.js"):
            _write(tmp_path, reference, "export function Card() {}")
        _write(tmp_path, "server/db333.js", "export const db = {};")

        stats = ImportPathRewriter().post_process_imports(tmp_path, file_map)

        assert (stats.processed, stats.modified) == (5, 2)
        rewritten = 'import { Card } from "./card222.js";'
        assert file_map.get("routes/index.tsx", Target.CLIENT) == f"client/{_hash_name(rewritten)}"
        assert (tmp_path / "client" / _hash_name(rewritten)).read_text() == rewritten
        assert (tmp_path / "client" / "index111.js").read_text() == compiled
        assert file_map.get("components/card.tsx") == "server/card222.js"

    def test_chain_reaches_fixed_point(self, tmp_path: Path) -> None:
        """An importer of a rewritten artifact follows its final name."""
        file_map = FileMap()
        file_map.set_mapping("routes/a.tsx", "a0.js", Target.SERVER)
        file_map.set_mapping("routes/b.tsx", "b0.js", Target.SERVER)
        file_map.set_mapping("routes/c.tsx", "c0.js", Target.SERVER)
        _write(tmp_path, "server/a0.js", 'import b from "./b.tsx";')
        _write(tmp_path, "server/b0.js", 'import c from "./c.tsx";')
        _write(tmp_path, "server/c0.js", "export default 1;")

        stats = ImportPathRewriter().post_process_imports(tmp_path, file_map)

        b_final = _hash_name('import c from "./c0.js";')
        a_final = _hash_name(f'import b from "./{b_final}";')
        assert file_map.get("routes/b.tsx") == f"server/{b_final}"
        assert file_map.get("routes/a.tsx") == f"server/{a_final}"
        assert stats.modified == 2
        assert stats.rounds <= 3

    def test_rerun_from_compiled_names_is_stable(self, file_map: FileMap, tmp_path: Path) -> None:
        """Rewriting the same compiled artifacts twice yields the same references."""
        _write(tmp_path, "server/index111.js", 'import { Card } from "../components/card.tsx";')
        _write(tmp_path, "server/card222.js", "export function Card() {}")
        ImportPathRewriter().post_process_imports(tmp_path, file_map)
        first = file_map.to_dict()

        again = FileMap()
        again.set_mapping("routes/index.tsx", "index111.js", Target.BOTH)
        again.set_mapping("components/card.tsx", "card222.js", Target.BOTH)
        again.set_mapping("lib/db.ts", "db333.js", Target.SERVER)
        ImportPathRewriter().post_process_imports(tmp_path, again)

        assert again.to_dict() == first

    def test_import_cycle_stops_at_ceiling(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Mutually importing sources cannot converge and stop at max_rounds."""
        file_map = FileMap()
        file_map.set_mapping("routes/a.tsx", "a0.js", Target.SERVER)
        file_map.set_mapping("routes/b.tsx", "b0.js", Target.SERVER)
        _write(tmp_path, "server/a0.js", 'import b from "./b.tsx";')
        _write(tmp_path, "server/b0.js", 'import a from "./a.tsx";')

        stats = ImportPathRewriter(max_rounds=3).post_process_imports(tmp_path, file_map)

        assert stats.rounds == 3
        assert "import_rewrite_incomplete" in capsys.readouterr().out
        for source in ("routes/a.tsx", "routes/b.tsx"):
            assert (tmp_path / file_map.get(source)).is_file()

    def test_max_rounds_must_be_positive(self) -> None:
        """A zero ceiling is rejected."""
        with pytest.raises(ValueError):
            ImportPathRewriter(max_rounds=0)

    def test_missing_artifacts_are_skipped(
        self,
        file_map: FileMap,
        tmp_path: Path,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """References whose files are gone are ignored."""
        stats = ImportPathRewriter().post_process_imports(tmp_path, file_map)

        assert stats.processed == 0
        assert "imports_rewritten" in capsys.readouterr().out
