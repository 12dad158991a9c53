"""Pipeline orchestration tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from ccrecover.config import ConfigError, RecoveryConfig
from ccrecover.errors import FatalStructuralError, LayoutNotFoundError, OutOfRangeError
from ccrecover.layout import BuildLayout
from ccrecover.models import AssetKind, DiagnosticKind
from ccrecover.orchestrator import RecoveryPipeline, recover
from tests._fixtures.build_builder import (
    ENEMY_UUID,
    PLAYER_UUID,
    SCENE_UUID,
    TEXTURE_UUID,
    BuildBuilder,
    sample_modules,
)


def test_pipeline_recovers_legacy_build(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_legacy()

    result = RecoveryPipeline().run(source, write=False)

    assert result.succeeded
    assert result.layout is BuildLayout.LEGACY
    assert result.context.resolver.decode(0) == SCENE_UUID
    assert [unit.path for unit in result.units] == ["assets/scripts/Player.ts", "assets/scripts/Enemy.ts"]
    assert result.assignments.identifiers == tuple(sorted([SCENE_UUID, TEXTURE_UUID, PLAYER_UUID, ENEMY_UUID]))
    assert result.assignments[SCENE_UUID].kind is AssetKind.SCENE
    assert result.assignments[TEXTURE_UUID].kind is AssetKind.TEXTURE
    assert result.assignments[PLAYER_UUID].module_id == "Player"
    assert result.assignments.orphans == ()
    assert result.diagnostics == []


def test_pipeline_recovers_bundled_build_with_merged_dictionary(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_bundled()

    result = RecoveryPipeline().run(source, write=False)

    assert result.layout is BuildLayout.BUNDLED
    assert result.context.settings.dictionary == ()
    assert result.context.resolver.identifiers == (TEXTURE_UUID, SCENE_UUID)
    assert result.assignments[TEXTURE_UUID].metadata["bundle"] == "main"
    assert result.assignments.orphans == ()


def test_failed_manifest_still_completes(build_builder: BuildBuilder) -> None:
    source = build_builder.legacy("/* settings were stripped */\n", sample_modules())

    result = RecoveryPipeline().run(source, write=False)

    degraded = result.diagnostics_of(DiagnosticKind.DEGRADED_PARSE)
    assert [item.code for item in degraded] == ["empty_settings"]
    assert result.context.settings.dictionary == ()
    with pytest.raises(OutOfRangeError):
        result.context.resolver.decode(0)
    assert len(result.units) == 2
    assert result.assignments.identifiers == tuple(sorted([PLAYER_UUID, ENEMY_UUID]))


def test_layout_hint_is_honoured(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_legacy()
    result = recover(source, layout_hint="2.3.x", write=False)
    assert result.layout is BuildLayout.LEGACY


def test_unknown_layout_hint_is_fatal(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_legacy()
    with pytest.raises(FatalStructuralError):
        RecoveryPipeline().run(source, layout_hint="1.x", write=False)


def test_missing_build_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(FatalStructuralError):
        RecoveryPipeline().run(tmp_path / "nope", write=False)


def test_unrecognised_directory_is_fatal(build_builder: BuildBuilder) -> None:
    build_builder.write({"readme.txt": "not a build"})
    with pytest.raises(LayoutNotFoundError):
        RecoveryPipeline().run(build_builder.path(), write=False)


def test_invalid_config_in_source_falls_back_to_defaults(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_legacy()
    (source / ".ccrecover.yml").write_text("workers: -3\n", encoding="utf-8")

    result = RecoveryPipeline().run(source, write=False)

    assert result.context.config.workers == 4


def test_invalid_explicit_config_is_an_error(build_builder: BuildBuilder, tmp_path: Path) -> None:
    source = build_builder.sample_legacy()
    config_file = tmp_path / "bad.yml"
    config_file.write_text("layout: 9.9.x\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        RecoveryPipeline(config_path=config_file).run(source, write=False)


def test_config_in_source_is_applied(build_builder: BuildBuilder) -> None:
    source = build_builder.sample_legacy()
    (source / ".ccrecover.yml").write_text('scripts_dir: "assets/game"\nworkers: 2\n', encoding="utf-8")

    result = RecoveryPipeline(workers=1).run(source, write=False)

    assert result.context.config.workers == 1
    assert [unit.path for unit in result.units][0] == "assets/game/Player.ts"


def test_injected_config_wins(build_builder: BuildBuilder, tmp_path: Path) -> None:
    source = build_builder.sample_legacy()
    config = RecoveryConfig(root=tmp_path, scripts_dir="src")

    result = RecoveryPipeline(config=config).run(source, write=False)

    assert result.units[0].path == "src/Player.ts"


def test_summary_counts_diagnostics(build_builder: BuildBuilder) -> None:
    source = build_builder.legacy({"uuids": ["a1"]}, {"Main": ("module.exports = 1;", {})})

    summary = RecoveryPipeline().run(source, write=False).to_summary()

    assert summary["layout"] == "2.3.x"
    assert summary["modules"] == 1
    assert summary["orphans"] == ["a1"]
    assert summary["diagnostic_counts"] == {"unresolved_reference": 1}
    assert summary["output"] is None
