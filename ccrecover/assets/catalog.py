"""Declared asset metadata gathered from settings and asset-bundle configs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..errors import IdentifierError
from ..identifiers import IdentifierResolver, merge_dictionaries
from ..logging import get_logger
from ..models import DiagnosticKind, Outcome, SettingsModel

logger = get_logger("catalog")


@dataclass(frozen=True)
class BundleConfig:
    """One ``<bundle>/config.json`` of a 2.4.x build."""

    name: str
    path: Path
    data: Mapping[str, Any]

    @property
    def dictionary(self) -> Tuple[str, ...]:
        uuids = self.data.get("uuids")
        if isinstance(uuids, list):
            return tuple(str(item) for item in uuids)
        return ()


@dataclass(frozen=True)
class CatalogEntry:
    """What a build declares about one identifier."""

    identifier: str
    path: Optional[str] = None
    declared_type: Optional[str] = None
    bundle: Optional[str] = None
    scene_url: Optional[str] = None
    sub_asset: bool = False

    def to_metadata(self) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {}
        for key in ("path", "declared_type", "bundle", "scene_url"):
            value = getattr(self, key)
            if value is not None:
                metadata[key] = value
        if self.sub_asset:
            metadata["sub_asset"] = True
        return metadata


@dataclass
class AssetCatalog:
    """Index of declared entries and packs across the settings and all bundles."""

    entries: Dict[str, CatalogEntry] = field(default_factory=dict)
    packs: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    launch_scene: Optional[str] = None

    def get(self, identifier: str) -> Optional[CatalogEntry]:
        return self.entries.get(identifier)

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return tuple(self.entries)

    def pack_members(self) -> Dict[str, str]:
        """Member identifier → pack id (first pack wins)."""
        members: Dict[str, str] = {}
        for pack_id, identifiers in self.packs.items():
            for identifier in identifiers:
                members.setdefault(identifier, pack_id)
        return members

    def add(self, entry: CatalogEntry) -> None:
        existing = self.entries.get(entry.identifier)
        if existing is None:
            self.entries[entry.identifier] = entry
            return
        # Scenes are listed apart from paths; merge the url into the first entry.
        if existing.scene_url is None and entry.scene_url is not None:
            self.entries[entry.identifier] = CatalogEntry(
                identifier=existing.identifier,
                path=existing.path or entry.path,
                declared_type=existing.declared_type or entry.declared_type,
                bundle=existing.bundle or entry.bundle,
                scene_url=entry.scene_url,
                sub_asset=existing.sub_asset,
            )


def load_bundle_configs(paths: Iterable[Path]) -> Outcome[List[BundleConfig]]:
    """Read bundle configs, ordered by bundle name; unreadable files become warnings."""
    outcome: Outcome[List[BundleConfig]] = Outcome([])
    for path in paths:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "bundle_config",
                f"Could not read bundle config {path.name}: {exc}",
                subject=path.parent.name,
            )
            continue
        if not isinstance(data, dict):
            outcome.warn(
                DiagnosticKind.DEGRADED_PARSE,
                "bundle_config",
                f"Bundle config {path.name} is not an object",
                subject=path.parent.name,
            )
            continue
        name = data.get("name") if isinstance(data.get("name"), str) else path.parent.name
        outcome.value.append(BundleConfig(name=name, path=path, data=data))
    outcome.value.sort(key=lambda config: config.name)
    return outcome


def merged_dictionary(bundles: Sequence[BundleConfig]) -> List[str]:
    """Global dictionary for builds whose manifest carries none."""
    return merge_dictionaries([bundle.dictionary for bundle in bundles])


def build_catalog(
    settings: SettingsModel,
    resolver: IdentifierResolver,
    bundles: Sequence[BundleConfig] = (),
) -> Outcome[AssetCatalog]:
    outcome: Outcome[AssetCatalog] = Outcome(AssetCatalog())
    catalog = outcome.value
    launch_scene = settings.get("launchScene")
    catalog.launch_scene = launch_scene if isinstance(launch_scene, str) else None

    types = _type_names(settings.get("assetTypes"))
    raw_assets = settings.get("rawAssets")
    if isinstance(raw_assets, dict):
        for mount, entries in raw_assets.items():
            if isinstance(entries, dict):
                _add_paths(catalog, entries, types, resolver, str(mount), outcome)
    scenes = settings.get("scenes")
    if isinstance(scenes, list):
        for scene in scenes:
            if isinstance(scene, dict) and "uuid" in scene:
                _add_scene(catalog, scene.get("url"), scene["uuid"], resolver, None, outcome)
    _add_packs(catalog, settings.get("packedAssets"), resolver, outcome)

    for bundle in bundles:
        bundle_resolver = IdentifierResolver(bundle.dictionary)
        bundle_types = _type_names(bundle.data.get("types"))
        paths = bundle.data.get("paths")
        if isinstance(paths, dict):
            _add_paths(catalog, paths, bundle_types, bundle_resolver, bundle.name, outcome)
        bundle_scenes = bundle.data.get("scenes")
        if isinstance(bundle_scenes, dict):
            for url, key in bundle_scenes.items():
                _add_scene(catalog, url, key, bundle_resolver, bundle.name, outcome)
        _add_packs(catalog, bundle.data.get("packs"), bundle_resolver, outcome)

    logger.debug(
        "Catalog holds %d declared entries and %d packs", len(catalog.entries), len(catalog.packs)
    )
    return outcome


def _type_names(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _resolve(
    resolver: IdentifierResolver, key: Any, outcome: Outcome[AssetCatalog], scope: Optional[str]
) -> Optional[str]:
    try:
        return resolver.resolve_key(key)
    except IdentifierError as exc:
        outcome.warn(
            DiagnosticKind.UNRESOLVED_REFERENCE,
            "catalog_key",
            f"Declared asset key {key!r} does not resolve: {exc}",
            subject=scope,
        )
        return None


def _add_paths(
    catalog: AssetCatalog,
    entries: Mapping[str, Any],
    types: Sequence[str],
    resolver: IdentifierResolver,
    bundle: str,
    outcome: Outcome[AssetCatalog],
) -> None:
    for key, value in entries.items():
        identifier = _resolve(resolver, key, outcome, bundle)
        if identifier is None:
            continue
        path: Optional[str] = None
        declared: Optional[str] = None
        sub_asset = False
        if isinstance(value, list):
            if value and isinstance(value[0], str):
                path = value[0]
            if len(value) > 1:
                declared = _declared_type(value[1], types)
            sub_asset = len(value) > 2 and bool(value[2])
        catalog.add(
            CatalogEntry(
                identifier=identifier,
                path=path,
                declared_type=declared,
                bundle=bundle,
                sub_asset=sub_asset,
            )
        )


def _declared_type(value: Any, types: Sequence[str]) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return types[value] if 0 <= value < len(types) else None
    if isinstance(value, str):
        return value
    return None


def _add_scene(
    catalog: AssetCatalog,
    url: Any,
    key: Any,
    resolver: IdentifierResolver,
    bundle: Optional[str],
    outcome: Outcome[AssetCatalog],
) -> None:
    identifier = _resolve(resolver, key, outcome, bundle)
    if identifier is None:
        return
    scene_url = url if isinstance(url, str) else None
    path = None
    if scene_url is not None:
        path = scene_url.split("://", 1)[-1]
        if path.startswith("assets/"):
            path = path[len("assets/") :]
        path = path.rsplit(".", 1)[0]
    catalog.add(
        CatalogEntry(
            identifier=identifier,
            path=path,
            declared_type="cc.SceneAsset",
            bundle=bundle,
            scene_url=scene_url,
        )
    )


def _add_packs(
    catalog: AssetCatalog,
    packs: Any,
    resolver: IdentifierResolver,
    outcome: Outcome[AssetCatalog],
) -> None:
    if not isinstance(packs, dict):
        return
    for pack_id, members in packs.items():
        if not isinstance(members, list):
            continue
        resolved = [
            identifier
            for identifier in (_resolve(resolver, member, outcome, str(pack_id)) for member in members)
            if identifier is not None
        ]
        existing = catalog.packs.get(str(pack_id), ())
        catalog.packs[str(pack_id)] = tuple(dict.fromkeys(existing + tuple(resolved)))


__all__ = [
    "AssetCatalog",
    "BundleConfig",
    "CatalogEntry",
    "build_catalog",
    "load_bundle_configs",
    "merged_dictionary",
]
