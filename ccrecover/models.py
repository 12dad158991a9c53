"""Core data models shared across ccrecover components."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Generic, Iterator, List, Mapping, Optional, Tuple, TypeVar

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from tree_sitter import Node

T = TypeVar("T")


class DiagnosticKind(str, Enum):
    """Recoverable problem categories collected during a run."""

    DEGRADED_PARSE = "degraded_parse"
    UNRESOLVED_REFERENCE = "unresolved_reference"
    AMBIGUOUS_MATCH = "ambiguous_match"


@dataclass(frozen=True)
class Diagnostic:
    """A warning attached to the run result instead of aborting it."""

    kind: DiagnosticKind
    code: str
    message: str
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "subject": self.subject,
        }


@dataclass
class Outcome(Generic[T]):
    """Value produced by a stage together with the diagnostics it raised."""

    value: T
    diagnostics: List[Diagnostic] = field(default_factory=list)

    def warn(
        self, kind: DiagnosticKind, code: str, message: str, subject: Optional[str] = None
    ) -> None:
        self.diagnostics.append(Diagnostic(kind=kind, code=code, message=message, subject=subject))


class AssetKind(str, Enum):
    """Asset categories recognised in a build's resource tree."""

    TEXTURE = "texture"
    SPRITE_FRAME = "sprite_frame"
    AUDIO = "audio"
    ANIMATION = "animation"
    SCENE = "scene"
    PREFAB = "prefab"
    FONT = "font"
    SCRIPT = "script"
    JSON = "json"
    OTHER = "other"


@dataclass(frozen=True)
class SettingsModel:
    """Structured settings decoded from the build manifest."""

    values: Mapping[str, Any] = field(default_factory=dict)
    dictionary: Tuple[str, ...] = ()
    source_key: Optional[str] = None

    @classmethod
    def empty(cls) -> "SettingsModel":
        return cls(values=MappingProxyType({}), dictionary=(), source_key=None)

    @property
    def is_empty(self) -> bool:
        return not self.values and not self.dictionary

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


@dataclass(frozen=True)
class ModuleRecord:
    """One module registration recovered from the bundle."""

    module_id: str
    name: str
    node: "Node" = field(compare=False, repr=False)
    source: bytes = field(compare=False, repr=False)
    params: Tuple[str, ...] = ()
    requires: Tuple[Tuple[str, str], ...] = ()
    dependencies: Tuple[str, ...] = ()
    exports: Tuple[str, ...] = ("default",)
    script_uuid: Optional[str] = None
    script_name: Optional[str] = None
    identifiers: Tuple[str, ...] = ()

    @property
    def require_param(self) -> Optional[str]:
        return self.params[0] if self.params else None

    @property
    def module_param(self) -> Optional[str]:
        return self.params[1] if len(self.params) > 1 else None

    @property
    def exports_param(self) -> Optional[str]:
        return self.params[2] if len(self.params) > 2 else None

    @property
    def require_map(self) -> Dict[str, str]:
        return dict(self.requires)

    @property
    def named_exports(self) -> Tuple[str, ...]:
        return tuple(name for name in self.exports if name != "default")


@dataclass(frozen=True)
class ModuleGraph:
    """Frozen dependency graph of every module found in the bundle."""

    records: Tuple[ModuleRecord, ...] = ()
    entries: Tuple[str, ...] = ()
    index: Mapping[str, ModuleRecord] = field(default_factory=dict, compare=False)
    syntax: Any = field(default=None, compare=False, repr=False)

    @classmethod
    def build(
        cls, records: List[ModuleRecord], entries: List[str], syntax: Any = None
    ) -> "ModuleGraph":
        index = MappingProxyType({record.module_id: record for record in records})
        return cls(records=tuple(records), entries=tuple(entries), index=index, syntax=syntax)

    def get(self, module_id: str) -> Optional[ModuleRecord]:
        return self.index.get(module_id)

    def __contains__(self, module_id: object) -> bool:
        return module_id in self.index

    def __iter__(self) -> Iterator[ModuleRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


@dataclass(frozen=True)
class SourceUnit:
    """Reconstructed source text for one module."""

    module_id: str
    path: str
    text: str


@dataclass(frozen=True)
class ResourceFile:
    """A file found in the build's resource tree."""

    path: str
    size: int
    root: str = field(default="", compare=False)

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def suffix(self) -> str:
        name = self.name
        if name.endswith(".meta"):
            name = name[: -len(".meta")]
        return "." + name.rsplit(".", 1)[-1].lower() if "." in name else ""

    @property
    def is_meta(self) -> bool:
        return self.name.endswith(".meta")

    @property
    def is_import(self) -> bool:
        parts = self.path.split("/")
        return self.name.endswith(".json") and "import" in parts[:-1]


@dataclass
class ResourceAssignment:
    """Resolved mapping from a canonical identifier to resource files."""

    identifier: str
    kind: AssetKind = AssetKind.OTHER
    files: Tuple[str, ...] = ()
    sidecar: Optional[str] = None
    module_id: Optional[str] = None
    alternates: Tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict)
    annotations: Dict[str, Any] = field(default_factory=dict)

    @property
    def orphaned(self) -> bool:
        return not self.files and self.module_id is None

    @property
    def primary(self) -> Optional[str]:
        return self.files[0] if self.files else None

    def annotate(self, key: str, value: Any) -> None:
        """Attach downstream information without touching the mapping itself."""
        if key in self.annotations and self.annotations[key] != value:
            raise ValueError(f"Annotation '{key}' already set for {self.identifier}")
        self.annotations[key] = value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "kind": self.kind.value,
            "files": list(self.files),
            "sidecar": self.sidecar,
            "module_id": self.module_id,
            "alternates": list(self.alternates),
            "metadata": dict(self.metadata),
            "annotations": dict(self.annotations),
            "orphaned": self.orphaned,
        }


class AssignmentTable:
    """Read-only view over the reconciled resource assignments."""

    def __init__(self, assignments: Mapping[str, ResourceAssignment]) -> None:
        ordered = {key: assignments[key] for key in sorted(assignments)}
        self._assignments = MappingProxyType(ordered)

    def get(self, identifier: str) -> Optional[ResourceAssignment]:
        return self._assignments.get(identifier)

    def __getitem__(self, identifier: str) -> ResourceAssignment:
        return self._assignments[identifier]

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._assignments

    def __iter__(self) -> Iterator[ResourceAssignment]:
        return iter(self._assignments.values())

    def __len__(self) -> int:
        return len(self._assignments)

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return tuple(self._assignments)

    @property
    def orphans(self) -> Tuple[ResourceAssignment, ...]:
        return tuple(item for item in self._assignments.values() if item.orphaned)
