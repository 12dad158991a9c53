"""Build layout detection tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from ccrecover.errors import FatalStructuralError, LayoutNotFoundError
from ccrecover.layout import BuildLayout, detect_layout
from tests._fixtures.build_builder import BuildBuilder


def test_detects_legacy_layout(build_builder: BuildBuilder) -> None:
    root = build_builder.sample_legacy()

    paths = detect_layout(root)

    assert paths.layout is BuildLayout.LEGACY
    assert paths.manifest == root.resolve() / "src" / "settings.js"
    assert paths.bundle == root.resolve() / "src" / "project.js"
    assert paths.resources == root.resolve() / "res"
    assert paths.bundle_configs() == ()


def test_detects_bundled_layout(build_builder: BuildBuilder) -> None:
    root = build_builder.sample_bundled()

    paths = detect_layout(root)

    assert paths.layout is BuildLayout.BUNDLED
    assert paths.bundle == root.resolve() / "assets" / "main" / "index.js"
    assert paths.resources == root.resolve() / "assets"
    assert paths.bundle_configs() == (root.resolve() / "assets" / "main" / "config.json",)


def test_detects_md5_suffixed_files(build_builder: BuildBuilder) -> None:
    build_builder.write(
        {
            "src/settings.8c1a2.js": "window._CCSettings = {};",
            "src/project.3f4e5.js": "",
            "res/import/.keep": "",
        }
    )

    paths = detect_layout(build_builder.path())

    assert paths.layout is BuildLayout.LEGACY
    assert paths.manifest.name == "settings.8c1a2.js"
    assert paths.bundle.name == "project.3f4e5.js"


def test_hint_falls_back_when_it_does_not_match(build_builder: BuildBuilder) -> None:
    root = build_builder.sample_bundled()

    paths = detect_layout(root, "2.3.x")

    assert paths.layout is BuildLayout.BUNDLED


def test_unknown_hint_is_rejected(build_builder: BuildBuilder) -> None:
    root = build_builder.sample_legacy()
    with pytest.raises(ValueError):
        detect_layout(root, "3.0.x")


def test_missing_layout_lists_supported_structures(build_builder: BuildBuilder) -> None:
    build_builder.write({"index.html": "<html></html>"})

    with pytest.raises(LayoutNotFoundError) as excinfo:
        detect_layout(build_builder.path())

    message = str(excinfo.value)
    assert "2.4.x" in message
    assert "2.3.x" in message


def test_missing_directory_is_fatal(tmp_path: Path) -> None:
    with pytest.raises(FatalStructuralError):
        detect_layout(tmp_path / "absent")


def test_layout_from_hint_accepts_names() -> None:
    assert BuildLayout.from_hint("bundled") is BuildLayout.BUNDLED
    assert BuildLayout.from_hint("2.3.x") is BuildLayout.LEGACY
    assert BuildLayout.from_hint(None) is None
