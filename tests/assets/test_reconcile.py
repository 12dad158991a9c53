"""Tests for identifier-to-resource reconciliation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ccrecover.assets.catalog import AssetCatalog, CatalogEntry
from ccrecover.assets.reconcile import (
    AssetReconciler,
    kind_for_suffix,
    referenced_identifiers,
    script_modules,
    serialized_type,
)
from ccrecover.assets.scanner import scan_resource_tree
from ccrecover.identifiers import IdentifierResolver
from ccrecover.models import AssetKind, DiagnosticKind
from tests._fixtures.build_builder import TEXTURE_UUID


def _tree(root: Path, files: dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


def test_module_reference_matches_resource_file(tmp_path: Path, extract_graph) -> None:
    resolver = IdentifierResolver(["a1", "b2", "c3"])
    graph = extract_graph({"Icon": ('var icon = "b2";', {})}, resolver)
    listing = scan_resource_tree(_tree(tmp_path / "res", {"raw-assets/b2.png": "png"}))

    outcome = AssetReconciler().reconcile(listing, referenced_identifiers((), None, graph))

    table = outcome.value
    assert table.identifiers == ("b2",)
    assert table["b2"].files == ("raw-assets/b2.png",)
    assert table["b2"].kind is AssetKind.TEXTURE
    assert not any(item.kind is DiagnosticKind.AMBIGUOUS_MATCH for item in outcome.diagnostics)
    assert outcome.diagnostics == []


def test_competing_files_yield_one_assignment_and_one_warning(tmp_path: Path) -> None:
    listing = scan_resource_tree(
        _tree(tmp_path / "res", {"native/c3.png": "png", "raw-assets/c3.mp3": "mp3"})
    )

    outcome = AssetReconciler().reconcile(listing, ["c3"])

    assert len(outcome.value) == 1
    assignment = outcome.value["c3"]
    assert assignment.kind is AssetKind.AUDIO
    assert assignment.files == ("raw-assets/c3.mp3",)
    assert assignment.alternates == ("native/c3.png",)
    ambiguous = [item for item in outcome.diagnostics if item.kind is DiagnosticKind.AMBIGUOUS_MATCH]
    assert len(ambiguous) == 1
    assert ambiguous[0].subject == "c3"


def test_kind_priority_controls_tie_break(tmp_path: Path) -> None:
    listing = scan_resource_tree(
        _tree(tmp_path / "res", {"native/c3.png": "png", "raw-assets/c3.mp3": "mp3"})
    )

    outcome = AssetReconciler(["texture", "audio"]).reconcile(listing, ["c3"])

    assert outcome.value["c3"].files == ("native/c3.png",)


def test_same_kind_ties_pick_lowest_path(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {"b/c3.png": "png", "a/c3.jpg": "jpg"}))

    outcome = AssetReconciler().reconcile(listing, ["c3"])

    assert outcome.value["c3"].files == ("a/c3.jpg",)


def test_import_json_is_a_sidecar_for_native_files(tmp_path: Path) -> None:
    listing = scan_resource_tree(
        _tree(
            tmp_path / "res",
            {
                f"native/a8/{TEXTURE_UUID}.png": "png",
                f"import/a8/{TEXTURE_UUID}.json": json.dumps({"__type__": "cc.Texture2D"}),
            },
        )
    )

    outcome = AssetReconciler().reconcile(listing, [TEXTURE_UUID])

    assignment = outcome.value[TEXTURE_UUID]
    assert outcome.diagnostics == []
    assert assignment.kind is AssetKind.TEXTURE
    assert assignment.files == (f"native/a8/{TEXTURE_UUID}.png", f"import/a8/{TEXTURE_UUID}.json")
    assert assignment.sidecar == f"import/a8/{TEXTURE_UUID}.json"
    assert assignment.metadata["import_type"] == "cc.Texture2D"


def test_import_only_assets_take_their_serialized_type(tmp_path: Path) -> None:
    listing = scan_resource_tree(
        _tree(tmp_path / "res", {"import/pf/prefab01.json": json.dumps([{"__type__": "cc.Prefab"}])})
    )

    assignment = AssetReconciler().reconcile(listing, ["prefab01"]).value["prefab01"]

    assert assignment.kind is AssetKind.PREFAB
    assert assignment.files == ("import/pf/prefab01.json",)
    assert assignment.sidecar is None


def test_declared_type_and_metadata_come_from_catalog(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {"raw-assets/d4.bin": "data"}))
    catalog = AssetCatalog()
    catalog.add(CatalogEntry(identifier="d4", path="sounds/click", declared_type="cc.AudioClip", bundle="assets"))

    assignment = AssetReconciler().reconcile(listing, ["d4"], catalog).value["d4"]

    assert assignment.kind is AssetKind.AUDIO
    assert assignment.metadata == {"path": "sounds/click", "declared_type": "cc.AudioClip", "bundle": "assets"}


def test_missing_files_become_orphans(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {}))

    outcome = AssetReconciler().reconcile(listing, ["a1"])

    assignment = outcome.value["a1"]
    assert assignment.orphaned
    assert outcome.value.orphans == (assignment,)
    assert [(item.kind, item.code) for item in outcome.diagnostics] == [
        (DiagnosticKind.UNRESOLVED_REFERENCE, "orphaned")
    ]


def test_packed_members_point_at_their_pack(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {"import/0f/0f1e2d.json": "[]"}))
    catalog = AssetCatalog(packs={"0f1e2d": ("e5", "f6")})

    outcome = AssetReconciler().reconcile(listing, ["e5", "f6"], catalog)

    assert outcome.diagnostics == []
    for identifier in ("e5", "f6"):
        assignment = outcome.value[identifier]
        assert assignment.files == ("import/0f/0f1e2d.json",)
        assert assignment.metadata["packed_in"] == "0f1e2d"


def test_scripts_without_files_are_not_orphans(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {}))

    outcome = AssetReconciler().reconcile(listing, [], scripts={"s1": "Player"})

    assignment = outcome.value["s1"]
    assert assignment.kind is AssetKind.SCRIPT
    assert assignment.module_id == "Player"
    assert not assignment.orphaned
    assert outcome.diagnostics == []


def test_parallel_reconciliation_matches_serial(tmp_path: Path) -> None:
    files = {f"raw-assets/id{index}.png": "png" for index in range(12)}
    listing = scan_resource_tree(_tree(tmp_path / "res", files))
    identifiers = [f"id{index}" for index in range(14)]

    serial = AssetReconciler(workers=1).reconcile(listing, identifiers)
    parallel = AssetReconciler(workers=4).reconcile(listing, identifiers)

    assert [item.to_dict() for item in parallel.value] == [item.to_dict() for item in serial.value]
    assert parallel.diagnostics == serial.diagnostics


def test_annotations_cannot_be_overwritten(tmp_path: Path) -> None:
    listing = scan_resource_tree(_tree(tmp_path / "res", {"raw-assets/b2.png": "png"}))
    assignment = AssetReconciler().reconcile(listing, ["b2"]).value["b2"]

    assignment.annotate("output_path", "assets/b2.png")
    assignment.annotate("output_path", "assets/b2.png")
    with pytest.raises(ValueError):
        assignment.annotate("output_path", "elsewhere.png")


def test_helpers() -> None:
    assert kind_for_suffix(".PNG") is AssetKind.TEXTURE
    assert kind_for_suffix(".xyz") is AssetKind.OTHER
    assert serialized_type([{"__type__": "cc.Prefab"}, {}]) == "cc.Prefab"
    assert serialized_type({"__type__": 3}) is None
    assert script_modules(None) == {}
    assert referenced_identifiers(["a1"]) == {"a1"}
