"""Tests for the declared asset catalog."""

from __future__ import annotations

import json
from pathlib import Path
from types import MappingProxyType

from ccrecover.assets.catalog import build_catalog, load_bundle_configs, merged_dictionary
from ccrecover.identifiers import IdentifierResolver, compress_uuid
from ccrecover.models import DiagnosticKind, SettingsModel
from tests._fixtures.build_builder import SCENE_UUID, TEXTURE_UUID

AUDIO_UUID = "11111111-2222-4333-8444-555555555555"


def _settings(values: dict) -> SettingsModel:
    dictionary = tuple(values.get("uuids", ()))
    return SettingsModel(values=MappingProxyType(values), dictionary=dictionary)


def test_legacy_settings_populate_entries_scenes_and_packs() -> None:
    settings = _settings(
        {
            "launchScene": "db://assets/Scene/Main.fire",
            "rawAssets": {
                "assets": {
                    "1": ["textures/hero", 0],
                    "2": ["textures/hero/frame", 1, 1],
                },
                "internal": {compress_uuid(AUDIO_UUID): ["sounds/click", "cc.AudioClip"]},
            },
            "assetTypes": ["cc.Texture2D", "cc.SpriteFrame"],
            "scenes": [{"url": "db://assets/Scene/Main.fire", "uuid": 0}],
            "packedAssets": {"0f1e2d": [1, 2]},
            "uuids": [compress_uuid(SCENE_UUID), compress_uuid(TEXTURE_UUID), "frame01"],
        }
    )
    resolver = IdentifierResolver(settings.dictionary)

    outcome = build_catalog(settings, resolver)
    catalog = outcome.value

    assert outcome.diagnostics == []
    assert catalog.launch_scene == "db://assets/Scene/Main.fire"

    texture = catalog.get(TEXTURE_UUID)
    assert texture is not None
    assert texture.path == "textures/hero"
    assert texture.declared_type == "cc.Texture2D"
    assert texture.bundle == "assets"

    frame = catalog.get("frame01")
    assert frame is not None
    assert frame.sub_asset is True
    assert frame.to_metadata() == {
        "path": "textures/hero/frame",
        "declared_type": "cc.SpriteFrame",
        "bundle": "assets",
        "sub_asset": True,
    }

    audio = catalog.get(AUDIO_UUID)
    assert audio is not None
    assert audio.declared_type == "cc.AudioClip"
    assert audio.bundle == "internal"

    scene = catalog.get(SCENE_UUID)
    assert scene is not None
    assert scene.path == "Scene/Main"
    assert scene.declared_type == "cc.SceneAsset"
    assert scene.scene_url == "db://assets/Scene/Main.fire"

    assert catalog.packs == {"0f1e2d": (TEXTURE_UUID, "frame01")}
    assert catalog.pack_members() == {TEXTURE_UUID: "0f1e2d", "frame01": "0f1e2d"}


def test_unresolvable_keys_are_reported() -> None:
    settings = _settings({"rawAssets": {"assets": {"9": ["missing", 0]}}, "uuids": ["a1"]})

    outcome = build_catalog(settings, IdentifierResolver(settings.dictionary))

    assert outcome.value.entries == {}
    assert [(item.kind, item.code, item.subject) for item in outcome.diagnostics] == [
        (DiagnosticKind.UNRESOLVED_REFERENCE, "catalog_key", "assets")
    ]


def test_bundle_configs_use_their_own_dictionaries(tmp_path: Path) -> None:
    main = tmp_path / "main" / "config.json"
    main.parent.mkdir()
    main.write_text(
        json.dumps(
            {
                "name": "main",
                "uuids": [compress_uuid(TEXTURE_UUID), compress_uuid(SCENE_UUID)],
                "paths": {"0": ["textures/hero", 0]},
                "types": ["cc.Texture2D"],
                "scenes": {"db://assets/Scene/Main.fire": 1},
                "packs": {"07a1b": [0]},
            }
        ),
        encoding="utf-8",
    )
    broken = tmp_path / "broken" / "config.json"
    broken.parent.mkdir()
    broken.write_text("{", encoding="utf-8")

    bundles_outcome = load_bundle_configs([broken, main])
    bundles = bundles_outcome.value

    assert [bundle.name for bundle in bundles] == ["main"]
    assert [(item.code, item.subject) for item in bundles_outcome.diagnostics] == [("bundle_config", "broken")]
    assert merged_dictionary(bundles) == [TEXTURE_UUID, SCENE_UUID]

    outcome = build_catalog(SettingsModel.empty(), IdentifierResolver(), bundles)
    catalog = outcome.value

    assert outcome.diagnostics == []
    assert catalog.get(TEXTURE_UUID).path == "textures/hero"
    assert catalog.get(TEXTURE_UUID).bundle == "main"
    assert catalog.get(SCENE_UUID).path == "Scene/Main"
    assert catalog.get(SCENE_UUID).bundle == "main"
    assert catalog.packs == {"07a1b": (TEXTURE_UUID,)}


def test_scene_entry_merges_into_existing_path_entry() -> None:
    settings = _settings(
        {
            "rawAssets": {"assets": {"0": ["Scene/Main", 0]}},
            "assetTypes": ["cc.SceneAsset"],
            "scenes": [{"url": "db://assets/Scene/Main.fire", "uuid": 0}],
            "uuids": [compress_uuid(SCENE_UUID)],
        }
    )

    catalog = build_catalog(settings, IdentifierResolver(settings.dictionary)).value

    scene = catalog.get(SCENE_UUID)
    assert scene.bundle == "assets"
    assert scene.scene_url == "db://assets/Scene/Main.fire"
    assert len(catalog.entries) == 1
