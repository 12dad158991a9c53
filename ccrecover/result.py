"""Result of one recovery run."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from .assets.catalog import AssetCatalog
from .context import RecoveryContext
from .layout import BuildLayout
from .models import AssignmentTable, Diagnostic, DiagnosticKind, ModuleGraph, SourceUnit


@dataclass
class RecoveryResult:
    """Everything a completed run produced, plus the diagnostics it collected."""

    context: RecoveryContext
    graph: ModuleGraph
    units: List[SourceUnit]
    assignments: AssignmentTable
    catalog: AssetCatalog = field(default_factory=AssetCatalog)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    output: Optional[Path] = None

    @property
    def succeeded(self) -> bool:
        # Fatal problems raise before a result exists.
        return True

    @property
    def layout(self) -> BuildLayout:
        return self.context.layout

    def diagnostics_of(self, kind: DiagnosticKind) -> List[Diagnostic]:
        return [item for item in self.diagnostics if item.kind is kind]

    def to_summary(self) -> Dict[str, Any]:
        counts = Counter(item.kind.value for item in self.diagnostics)
        return {
            "succeeded": self.succeeded,
            "layout": self.layout.value,
            "source": str(self.context.paths.source),
            "output": str(self.output) if self.output is not None else None,
            "modules": len(self.graph),
            "units": [unit.path for unit in self.units],
            "assignments": len(self.assignments),
            "orphans": [item.identifier for item in self.assignments.orphans],
            "diagnostic_counts": dict(sorted(counts.items())),
            "diagnostics": [item.to_dict() for item in self.diagnostics],
        }

    def to_report(self) -> Dict[str, Any]:
        report = self.to_summary()
        report["modules"] = [
            {
                "module_id": record.module_id,
                "name": record.name,
                "dependencies": list(record.dependencies),
                "exports": list(record.exports),
                "script_uuid": record.script_uuid,
            }
            for record in self.graph
        ]
        report["entries"] = list(self.graph.entries)
        report["launch_scene"] = self.catalog.launch_scene
        report["assignments"] = [item.to_dict() for item in self.assignments]
        return report


__all__ = ["RecoveryResult"]
