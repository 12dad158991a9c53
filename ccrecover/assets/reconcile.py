"""Match referenced identifiers against files in the resource tree."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from .catalog import AssetCatalog
from .scanner import ResourceListing
from ..config import DEFAULT_KIND_PRIORITY
from ..logging import get_logger
from ..models import (
    AssetKind,
    AssignmentTable,
    Diagnostic,
    DiagnosticKind,
    ModuleGraph,
    Outcome,
    ResourceAssignment,
    ResourceFile,
)

logger = get_logger("reconcile")

KIND_BY_TYPE = {
    "cc.Texture2D": AssetKind.TEXTURE,
    "cc.SpriteFrame": AssetKind.SPRITE_FRAME,
    "cc.SpriteAtlas": AssetKind.SPRITE_FRAME,
    "cc.AudioClip": AssetKind.AUDIO,
    "cc.AnimationClip": AssetKind.ANIMATION,
    "cc.SceneAsset": AssetKind.SCENE,
    "cc.Prefab": AssetKind.PREFAB,
    "cc.BitmapFont": AssetKind.FONT,
    "cc.TTFFont": AssetKind.FONT,
    "cc.LabelAtlas": AssetKind.FONT,
    "cc.JsonAsset": AssetKind.JSON,
    "cc.Script": AssetKind.SCRIPT,
    "cc.JavaScript": AssetKind.SCRIPT,
    "cc.TypeScript": AssetKind.SCRIPT,
}

KIND_BY_SUFFIX = {
    ".png": AssetKind.TEXTURE,
    ".jpg": AssetKind.TEXTURE,
    ".jpeg": AssetKind.TEXTURE,
    ".webp": AssetKind.TEXTURE,
    ".bmp": AssetKind.TEXTURE,
    ".gif": AssetKind.TEXTURE,
    ".pvr": AssetKind.TEXTURE,
    ".pkm": AssetKind.TEXTURE,
    ".astc": AssetKind.TEXTURE,
    ".mp3": AssetKind.AUDIO,
    ".ogg": AssetKind.AUDIO,
    ".wav": AssetKind.AUDIO,
    ".m4a": AssetKind.AUDIO,
    ".aac": AssetKind.AUDIO,
    ".anim": AssetKind.ANIMATION,
    ".fire": AssetKind.SCENE,
    ".scene": AssetKind.SCENE,
    ".prefab": AssetKind.PREFAB,
    ".ttf": AssetKind.FONT,
    ".otf": AssetKind.FONT,
    ".fnt": AssetKind.FONT,
    ".js": AssetKind.SCRIPT,
    ".ts": AssetKind.SCRIPT,
    ".json": AssetKind.JSON,
}


def kind_for_type(type_name: Optional[str]) -> Optional[AssetKind]:
    if not type_name:
        return None
    return KIND_BY_TYPE.get(type_name)


def kind_for_suffix(suffix: str) -> AssetKind:
    return KIND_BY_SUFFIX.get(suffix.lower(), AssetKind.OTHER)


def serialized_type(payload: Any) -> Optional[str]:
    """``__type__`` of an import JSON document (object or serialized array)."""
    if isinstance(payload, dict):
        value = payload.get("__type__")
        return value if isinstance(value, str) else None
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        value = payload[0].get("__type__")
        return value if isinstance(value, str) else None
    return None


def referenced_identifiers(
    dictionary: Iterable[str],
    catalog: Optional[AssetCatalog] = None,
    graph: Optional[ModuleGraph] = None,
) -> Set[str]:
    """Every canonical identifier the build refers to."""
    identifiers: Set[str] = set(dictionary)
    if catalog is not None:
        identifiers.update(catalog.identifiers)
        identifiers.update(catalog.pack_members())
    if graph is not None:
        for record in graph:
            if record.script_uuid:
                identifiers.add(record.script_uuid)
            identifiers.update(record.identifiers)
    return identifiers


def script_modules(graph: Optional[ModuleGraph]) -> Dict[str, str]:
    """Script uuid → module id."""
    if graph is None:
        return {}
    return {record.script_uuid: record.module_id for record in graph if record.script_uuid}


class AssetReconciler:
    """Builds the resource assignment table for one build."""

    def __init__(
        self,
        kind_priority: Sequence[str] = DEFAULT_KIND_PRIORITY,
        *,
        workers: int = 1,
    ) -> None:
        ranking: Dict[AssetKind, int] = {}
        for position, name in enumerate(kind_priority):
            try:
                ranking.setdefault(AssetKind(name), position)
            except ValueError:
                logger.warning("Ignoring unknown asset kind '%s' in kind_priority", name)
        for kind in AssetKind:
            ranking.setdefault(kind, len(ranking) + len(AssetKind))
        self._ranking = ranking
        self._workers = max(1, workers)

    def reconcile(
        self,
        listing: ResourceListing,
        identifiers: Iterable[str],
        catalog: Optional[AssetCatalog] = None,
        scripts: Optional[Mapping[str, str]] = None,
    ) -> Outcome[AssignmentTable]:
        catalog = catalog or AssetCatalog()
        scripts = dict(scripts or {})
        index = listing.by_identifier()
        packs = catalog.pack_members()
        ordered = sorted(set(identifiers) | set(scripts))

        def _job(identifier: str) -> Tuple[ResourceAssignment, List[Diagnostic]]:
            return self._assign(identifier, index.get(identifier, []), listing, catalog, packs, index, scripts)

        if self._workers > 1 and len(ordered) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as executor:
                results = list(executor.map(_job, ordered))
        else:
            results = [_job(identifier) for identifier in ordered]

        assignments: Dict[str, ResourceAssignment] = {}
        outcome: Outcome[AssignmentTable] = Outcome(AssignmentTable({}))
        for assignment, diagnostics in results:
            assignments[assignment.identifier] = assignment
            outcome.diagnostics.extend(diagnostics)
        outcome.value = AssignmentTable(assignments)
        logger.debug(
            "Reconciled %d identifiers (%d orphaned)", len(outcome.value), len(outcome.value.orphans)
        )
        return outcome

    # ------------------------------------------------------------------
    # Per-identifier matching

    def _assign(
        self,
        identifier: str,
        files: List[ResourceFile],
        listing: ResourceListing,
        catalog: AssetCatalog,
        packs: Mapping[str, str],
        index: Mapping[str, List[ResourceFile]],
        scripts: Mapping[str, str],
    ) -> Tuple[ResourceAssignment, List[Diagnostic]]:
        diagnostics: List[Diagnostic] = []
        entry = catalog.get(identifier)
        declared = entry.declared_type if entry is not None else None
        metadata: Dict[str, Any] = entry.to_metadata() if entry is not None else {}
        module_id = scripts.get(identifier)

        natives = [item for item in files if not item.is_import]
        imports = [item for item in files if item.is_import]
        sidecar: Optional[ResourceFile] = None
        if natives:
            candidates = natives
            sidecar = imports[0] if imports else None
        else:
            candidates = imports

        if not candidates:
            pack_id = packs.get(identifier)
            pack_files = index.get(pack_id, []) if pack_id is not None else []
            if pack_files:
                metadata["packed_in"] = pack_id
                kind = kind_for_type(declared) or AssetKind.OTHER
                return (
                    ResourceAssignment(
                        identifier=identifier,
                        kind=kind,
                        files=(pack_files[0].path,),
                        module_id=module_id,
                        metadata=metadata,
                    ),
                    diagnostics,
                )
            kind = AssetKind.SCRIPT if module_id is not None else (kind_for_type(declared) or AssetKind.OTHER)
            assignment = ResourceAssignment(
                identifier=identifier, kind=kind, module_id=module_id, metadata=metadata
            )
            if assignment.orphaned:
                diagnostics.append(
                    Diagnostic(
                        kind=DiagnosticKind.UNRESOLVED_REFERENCE,
                        code="orphaned",
                        message=f"No resource file found for identifier {identifier}",
                        subject=identifier,
                    )
                )
            return assignment, diagnostics

        sidecar_type = serialized_type(listing.read_json(sidecar.path)) if sidecar is not None else None
        ranked: List[Tuple[int, str, AssetKind, ResourceFile]] = []
        for candidate in candidates:
            type_name = sidecar_type
            if candidate.is_import:
                type_name = serialized_type(listing.read_json(candidate.path))
            kind = kind_for_type(type_name) or kind_for_type(declared) or kind_for_suffix(candidate.suffix)
            if module_id is not None and kind in {AssetKind.OTHER, AssetKind.JSON}:
                kind = AssetKind.SCRIPT
            ranked.append((self._ranking[kind], candidate.path, kind, candidate))
            if type_name and candidate.is_import:
                metadata.setdefault("import_type", type_name)
        ranked.sort(key=lambda item: (item[0], item[1]))
        _, _, kind, winner = ranked[0]
        alternates = tuple(item[1] for item in ranked[1:])
        if sidecar_type:
            metadata["import_type"] = sidecar_type

        if alternates:
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.AMBIGUOUS_MATCH,
                    code="ambiguous",
                    message=(
                        f"{len(ranked)} files claim identifier {identifier}; "
                        f"chose {winner.path} ({kind.value})"
                    ),
                    subject=identifier,
                )
            )

        files_out = (winner.path,) + ((sidecar.path,) if sidecar is not None else ())
        return (
            ResourceAssignment(
                identifier=identifier,
                kind=kind,
                files=files_out,
                sidecar=sidecar.path if sidecar is not None else None,
                module_id=module_id,
                alternates=alternates,
                metadata=metadata,
            ),
            diagnostics,
        )


__all__ = [
    "AssetReconciler",
    "KIND_BY_SUFFIX",
    "KIND_BY_TYPE",
    "kind_for_suffix",
    "kind_for_type",
    "referenced_identifiers",
    "script_modules",
    "serialized_type",
]
