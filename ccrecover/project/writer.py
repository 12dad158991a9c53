"""Write a recovered project (sources, assets and sidecars) to disk."""

from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any, Dict, Optional, Set

from .metadata import SERIALIZED_EXTENSIONS, TSCONFIG, build_meta, build_project_descriptor
from ..logging import get_logger
from ..models import AssetKind, ResourceAssignment
from ..result import RecoveryResult

logger = get_logger("writer")

ORPHAN_DIR = "assets/__orphaned__"
REPORT_FILENAME = "recovery-report.json"
_DEFAULT_BUNDLES = {None, "", "assets", "main"}


class ProjectWriter:
    """Lays a RecoveryResult out as a Creator 2.x project directory."""

    def __init__(self, output: Path) -> None:
        self.output = output.expanduser().resolve()
        self._used: Set[str] = set()

    def write(self, result: RecoveryResult) -> Path:
        self.output.mkdir(parents=True, exist_ok=True)
        self._used = set()

        scripts = {record.module_id: record.script_uuid for record in result.graph}
        for unit in result.units:
            self._write_text(unit.path, unit.text)
            self._used.add(unit.path)
            script_uuid = scripts.get(unit.module_id)
            if script_uuid:
                self._write_json(f"{unit.path}.meta", build_meta(script_uuid, AssetKind.SCRIPT))

        copied = 0
        for assignment in result.assignments:
            if assignment.orphaned:
                self._write_orphan(assignment)
            elif self._copy_asset(result, assignment):
                copied += 1

        descriptor = build_project_descriptor(result.context.paths.source.name, result.layout.value)
        self._write_json("project.json", descriptor)
        self._write_json("tsconfig.json", TSCONFIG)
        result.output = self.output
        self._write_json(REPORT_FILENAME, result.to_report())
        logger.info(
            "Wrote %d source units and %d assets to %s", len(result.units), copied, self.output
        )
        return self.output

    # ------------------------------------------------------------------
    # Assets

    def _copy_asset(self, result: RecoveryResult, assignment: ResourceAssignment) -> bool:
        metadata = assignment.metadata
        if assignment.primary is None or assignment.module_id is not None:
            return False
        if metadata.get("packed_in") or metadata.get("sub_asset"):
            return False

        source_file = result.context.paths.resources / assignment.primary
        if not source_file.is_file():
            logger.warning("Resource %s vanished before copying", source_file)
            return False

        destination = self._destination(assignment)
        target = self.output / destination
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source_file, target)
        extension = Path(destination).suffix
        self._write_json(f"{destination}.meta", build_meta(assignment.identifier, assignment.kind, extension=extension))
        assignment.annotate("output_path", destination)
        return True

    def _destination(self, assignment: ResourceAssignment) -> str:
        metadata = assignment.metadata
        primary = assignment.primary or ""
        extension = _extension(primary)
        if assignment.kind in SERIALIZED_EXTENSIONS and primary.endswith(".json"):
            extension = SERIALIZED_EXTENSIONS[assignment.kind]

        bundle = metadata.get("bundle")
        parts = ["assets"]
        if bundle not in _DEFAULT_BUNDLES:
            parts.append(str(bundle))
        declared_path = metadata.get("path")
        if isinstance(declared_path, str) and declared_path.strip("/"):
            parts.append(declared_path.strip("/") + extension)
        else:
            parts.append(f"{assignment.kind.value}/{assignment.identifier}{extension}")
        destination = "/".join(parts)

        if destination in self._used:
            stem, dot, suffix = destination.rpartition(".")
            short = assignment.identifier[:8]
            destination = f"{stem}_{short}.{suffix}" if dot and "/" not in suffix else f"{destination}_{short}"
        self._used.add(destination)
        return destination

    def _write_orphan(self, assignment: ResourceAssignment) -> None:
        destination = f"{ORPHAN_DIR}/{assignment.identifier}.meta"
        self._write_json(destination, build_meta(assignment.identifier, assignment.kind, orphaned=True))
        assignment.annotate("output_path", destination)

    # ------------------------------------------------------------------
    # Helpers

    def _write_text(self, rel_path: str, text: str) -> None:
        target = self.output / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(text, encoding="utf-8")

    def _write_json(self, rel_path: str, payload: Dict[str, Any]) -> None:
        self._write_text(rel_path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")


def _extension(path: str) -> str:
    name = path.rsplit("/", 1)[-1]
    return "." + name.rsplit(".", 1)[-1] if "." in name else ""


def write_project(result: RecoveryResult, output: Path) -> Path:
    return ProjectWriter(output).write(result)


__all__ = ["ORPHAN_DIR", "ProjectWriter", "REPORT_FILENAME", "write_project"]
