"""Tests for the restricted manifest decoder."""

from __future__ import annotations

import pytest

from ccrecover.analyzers.manifest import ManifestDecoder, decode_manifest
from ccrecover.errors import OutOfRangeError
from ccrecover.identifiers import IdentifierResolver
from ccrecover.layout import BuildLayout
from ccrecover.models import DiagnosticKind


def test_decodes_dictionary_from_settings_assignment() -> None:
    outcome = decode_manifest('window.CCSettings = {"uuids":["a1","b2","c3"]};', BuildLayout.LEGACY)

    settings = outcome.value
    assert settings.dictionary == ("a1", "b2", "c3")
    assert settings.source_key == "CCSettings"
    assert outcome.diagnostics == []
    assert IdentifierResolver(settings.dictionary).decode(1) == "b2"


def test_decodes_minified_legacy_settings() -> None:
    text = (
        'window._CCSettings={platform:"web-mobile",groupList:["default"],'
        'collisionMatrix:[[true]],rawAssets:{assets:{"0":["textures/hero",0]}},'
        'assetTypes:["cc.Texture2D"],launchScene:"db://assets/Main.fire",'
        'scenes:[{url:"db://assets/Main.fire",uuid:1}],packedAssets:{},'
        'orientation:"",debug:!1,jsList:[],uuids:["a1","b2"]};'
    )

    outcome = decode_manifest(text, BuildLayout.LEGACY)

    settings = outcome.value
    assert settings.get("platform") == "web-mobile"
    assert settings.get("debug") is False
    assert settings.get("rawAssets") == {"assets": {"0": ["textures/hero", 0]}}
    assert settings.get("scenes") == [{"url": "db://assets/Main.fire", "uuid": 1}]
    assert settings.dictionary == ("a1", "b2")


def test_prefers_known_namespace_over_other_assignments() -> None:
    text = 'window.Other = {"uuids": ["x"]};\nwindow._CCSettings = {"uuids": ["y"]};'
    outcome = decode_manifest(text, BuildLayout.LEGACY)
    assert outcome.value.dictionary == ("y",)


def test_bare_literal_is_accepted_for_bundled_layout() -> None:
    text = '{"platform": "web-mobile", "launchScene": "db://assets/Main.fire"};'

    outcome = decode_manifest(text, BuildLayout.BUNDLED)

    assert outcome.value.get("launchScene") == "db://assets/Main.fire"
    assert outcome.value.dictionary == ()
    assert outcome.diagnostics == []


def test_bare_literal_is_not_accepted_for_legacy_layout() -> None:
    outcome = decode_manifest('{"uuids": ["a1"]}', BuildLayout.LEGACY)

    assert outcome.value.is_empty
    assert [item.code for item in outcome.diagnostics] == ["empty_settings"]


def test_failed_manifest_degrades_to_empty_settings() -> None:
    outcome = decode_manifest("this is not a settings file", BuildLayout.BUNDLED)

    assert outcome.value.is_empty
    assert outcome.value.dictionary == ()
    assert len(outcome.diagnostics) == 1
    assert outcome.diagnostics[0].kind is DiagnosticKind.DEGRADED_PARSE

    resolver = IdentifierResolver(outcome.value.dictionary)
    for index in range(3):
        with pytest.raises(OutOfRangeError):
            resolver.decode(index)


def test_non_literal_values_are_skipped_without_evaluation() -> None:
    text = 'window._CCSettings = {debug: location.hash === "#debug", uuids: ["a1"], platform: "web"};'

    outcome = decode_manifest(text, BuildLayout.LEGACY)

    assert "debug" not in outcome.value.values
    assert outcome.value.get("platform") == "web"
    assert outcome.value.dictionary == ("a1",)
    assert [(item.code, item.subject) for item in outcome.diagnostics] == [("settings_key", "debug")]


def test_malformed_dictionary_is_reported() -> None:
    outcome = decode_manifest('window._CCSettings = {uuids: [1, 2]};', BuildLayout.BUNDLED)

    assert outcome.value.dictionary == ()
    assert [item.code for item in outcome.diagnostics] == ["settings_key"]


def test_legacy_manifest_without_dictionary_warns() -> None:
    outcome = decode_manifest('window._CCSettings = {platform: "web"};', BuildLayout.LEGACY)
    assert [item.code for item in outcome.diagnostics] == ["no_dictionary"]


def test_custom_namespaces_and_dictionary_keys() -> None:
    decoder = ManifestDecoder(namespaces=("GameCfg",), dictionary_keys=("ids",))
    outcome = decoder.decode('self.GameCfg = {ids: ["q"]};', BuildLayout.LEGACY)
    assert outcome.value.dictionary == ("q",)


def test_string_escapes_are_decoded() -> None:
    outcome = decode_manifest(r'window._CCSettings = {title: "aA\n", uuids: []};', BuildLayout.BUNDLED)
    assert outcome.value.get("title") == "aA\n"
