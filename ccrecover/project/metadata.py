"""Editor sidecar (.meta) and project descriptor templates."""

from __future__ import annotations

from typing import Any, Dict, Optional

from ..models import AssetKind

# importer name and meta version per asset kind, as written by Creator 2.x.
IMPORTERS: Dict[AssetKind, tuple[str, str]] = {
    AssetKind.TEXTURE: ("texture", "2.3.5"),
    AssetKind.SPRITE_FRAME: ("sprite-frame", "1.0.4"),
    AssetKind.AUDIO: ("audio-clip", "2.0.3"),
    AssetKind.ANIMATION: ("animation-clip", "2.1.2"),
    AssetKind.SCENE: ("scene", "1.2.9"),
    AssetKind.PREFAB: ("prefab", "1.2.9"),
    AssetKind.FONT: ("ttf-font", "1.1.2"),
    AssetKind.SCRIPT: ("typescript", "1.0.8"),
    AssetKind.JSON: ("json", "1.0.2"),
    AssetKind.OTHER: ("asset", "1.0.1"),
}

# Extensions for assets that only exist as serialized import JSON in a build.
SERIALIZED_EXTENSIONS = {
    AssetKind.SCENE: ".fire",
    AssetKind.PREFAB: ".prefab",
    AssetKind.ANIMATION: ".anim",
}

TSCONFIG: Dict[str, Any] = {
    "compilerOptions": {
        "module": "commonjs",
        "lib": ["es2015", "es2017", "dom"],
        "target": "es5",
        "experimentalDecorators": True,
        "skipLibCheck": True,
        "outDir": "temp/vscode-dist",
        "forceConsistentCasingInFileNames": True,
    },
    "exclude": ["node_modules", "library", "local", "temp", "build", "settings"],
}


def build_meta(
    identifier: str,
    kind: AssetKind,
    *,
    extension: str = "",
    orphaned: bool = False,
) -> Dict[str, Any]:
    """Return the .meta document for one asset."""
    importer, version = IMPORTERS.get(kind, IMPORTERS[AssetKind.OTHER])
    if kind is AssetKind.FONT and extension == ".fnt":
        importer, version = "bitmap-font", "2.1.0"
    meta: Dict[str, Any] = {"ver": version, "uuid": identifier, "importer": importer}
    if kind is AssetKind.TEXTURE:
        meta.update(
            {
                "type": "sprite",
                "wrapMode": "clamp",
                "filterMode": "bilinear",
                "premultiplyAlpha": False,
                "genMipmaps": False,
                "packable": True,
                "platformSettings": {},
            }
        )
    elif kind is AssetKind.SCRIPT:
        meta.update(
            {
                "isPlugin": False,
                "loadPluginInWeb": True,
                "loadPluginInNative": True,
                "loadPluginInEditor": False,
            }
        )
    elif kind in {AssetKind.SCENE, AssetKind.PREFAB}:
        meta.update({"asyncLoadAssets": False, "readonly": False})
        if kind is AssetKind.SCENE:
            meta["autoReleaseAssets"] = False
        else:
            meta["optimizationPolicy"] = "AUTO"
    elif kind is AssetKind.AUDIO:
        meta.update({"downloadMode": 0, "duration": 0})
    if orphaned:
        meta["recovered"] = "orphaned"
    meta["subMetas"] = {}
    return meta


def build_project_descriptor(name: str, layout_value: str, *, project_id: Optional[str] = None) -> Dict[str, Any]:
    """Return the ``project.json`` document for the recovered project."""
    return {
        "engine": "cocos2d-html5",
        "packages": "packages",
        "name": name,
        "id": project_id or "",
        "version": layout_value,
        "isNew": False,
    }


__all__ = [
    "IMPORTERS",
    "SERIALIZED_EXTENSIONS",
    "TSCONFIG",
    "build_meta",
    "build_project_descriptor",
]
