"""Tests for ccrecover.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from ccrecover.config import (
    DEFAULT_KIND_PRIORITY,
    ConfigError,
    RecoveryConfig,
    load_config,
)


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, RecoveryConfig)
    assert config.root == tmp_path.resolve()
    assert config.layout is None
    assert config.workers == 4
    assert config.scripts_dir == "assets/scripts"
    assert config.settings_namespaces == ("_CCSettings", "CCSettings")
    assert config.dictionary_keys == ("uuids", "resourceUuids")
    assert config.component_callees == ("cc.Class",)
    assert config.reconcile.kind_priority == DEFAULT_KIND_PRIORITY
    assert config.exclude_paths == ()


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".ccrecover.yml"
    config_file.write_text(
        """
layout: "2.4.x"
workers: 2
scripts_dir: "/assets/game/"
settings_namespaces:
  - "_MySettings"
component_callees: ["cc.Class", "Klass"]
reconcile:
  kind_priority: ["Texture", "audio"]
exclude_paths:
  - "**/*.map"
  - "debug/"
""",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.layout == "2.4.x"
    assert config.workers == 2
    assert config.scripts_dir == "assets/game"
    assert config.settings_namespaces == ("_MySettings",)
    assert config.dictionary_keys == ("uuids", "resourceUuids")
    assert config.component_callees == ("cc.Class", "Klass")
    assert config.reconcile.kind_priority == ("texture", "audio")
    assert config.exclude_paths == ("**/*.map", "debug/")


def test_load_config_accepts_explicit_file(tmp_path: Path) -> None:
    config_file = tmp_path / "custom.yml"
    config_file.write_text("workers: 8\n", encoding="utf-8")

    config = load_config(config_file)

    assert config.workers == 8
    assert config.root == tmp_path.resolve()


def test_empty_config_file_uses_defaults(tmp_path: Path) -> None:
    (tmp_path / ".ccrecover.yml").write_text("\n", encoding="utf-8")
    assert load_config(tmp_path).workers == 4


@pytest.mark.parametrize(
    "content",
    [
        "layout: 3.0.x\n",
        "workers: 0\n",
        "- just\n- a list\n",
        "layout: [unclosed\n",
    ],
)
def test_load_config_rejects_invalid_files(tmp_path: Path, content: str) -> None:
    (tmp_path / ".ccrecover.yml").write_text(content, encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)
