"""Resource tree scanning and identifier derivation."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from ..identifiers import expand_token
from ..logging import get_logger
from ..models import ResourceFile

logger = get_logger("scanner")

_EXCLUDED_FILES = {
    ".DS_Store",
    "Thumbs.db",
    "desktop.ini",
}

_EXCLUDED_DIRS = {
    "__MACOSX",
    ".git",
}


@dataclass
class ExcludeRule:
    """Glob exclusion from ``exclude_paths`` in .ccrecover.yml."""

    pattern: str
    directory_only: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False
        if self.has_slash:
            return fnmatchcase(rel_path, self.pattern) or rel_path.startswith(f"{self.pattern}/")
        return any(fnmatchcase(part, self.pattern) for part in rel_path.split("/"))


def build_exclude_rule(pattern: str) -> ExcludeRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None
    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]
    pattern = pattern.lstrip("/")
    return ExcludeRule(pattern=pattern, directory_only=directory_only, has_slash="/" in pattern)


@dataclass
class ResourceListing:
    """Files of one resource tree plus their derived identifiers."""

    root: Path
    files: Tuple[ResourceFile, ...] = ()
    identifiers: Dict[str, str] = field(default_factory=dict)

    def by_identifier(self) -> Dict[str, List[ResourceFile]]:
        index: Dict[str, List[ResourceFile]] = {}
        for item in self.files:
            identifier = self.identifiers.get(item.path)
            if identifier is not None:
                index.setdefault(identifier, []).append(item)
        return index

    def get(self, rel_path: str) -> Optional[ResourceFile]:
        for item in self.files:
            if item.path == rel_path:
                return item
        return None

    def read_json(self, rel_path: str) -> Optional[object]:
        try:
            return json.loads((self.root / rel_path).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            return None


def derive_identifier(name: str) -> str:
    """Identifier carried by a resource filename: the stem before the first dot."""
    stem = name.split(".", 1)[0]
    return expand_token(stem)


def scan_resource_tree(root: Path, exclude: Sequence[str] = ()) -> ResourceListing:
    """List the resource tree under ``root`` sorted by relative posix path."""
    rules = [rule for rule in (build_exclude_rule(pattern) for pattern in exclude) if rule is not None]
    files: List[ResourceFile] = []
    metas: Dict[str, Path] = {}
    for path in _iter_files(root, rules):
        rel_path = path.relative_to(root).as_posix()
        if rel_path.endswith(".meta"):
            metas[rel_path[: -len(".meta")]] = path
            continue
        try:
            size = path.stat().st_size
        except OSError:
            continue
        files.append(ResourceFile(path=rel_path, size=size, root=str(root)))
    files.sort(key=lambda item: item.path)

    identifiers: Dict[str, str] = {}
    for item in files:
        identifier = _meta_identifier(metas.get(item.path)) or derive_identifier(item.name)
        identifiers[item.path] = identifier

    logger.debug("Scanned %d resource files under %s", len(files), root)
    return ResourceListing(root=root, files=tuple(files), identifiers=identifiers)


def _meta_identifier(meta_path: Optional[Path]) -> Optional[str]:
    if meta_path is None:
        return None
    try:
        payload = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    if isinstance(payload, dict) and isinstance(payload.get("uuid"), str) and payload["uuid"]:
        return expand_token(payload["uuid"])
    return None


def _should_exclude(rel_path: str, is_dir: bool, rules: Sequence[ExcludeRule]) -> bool:
    return any(rule.matches(rel_path, is_dir) for rule in rules)


def _iter_files(root: Path, rules: Sequence[ExcludeRule]) -> Iterator[Path]:
    for dirpath, dirnames, filenames in os.walk(root):
        current_dir = Path(dirpath)
        rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

        filtered_dirs = []
        for name in sorted(dirnames):
            if name in _EXCLUDED_DIRS:
                continue
            rel_path = f"{rel_dir}/{name}" if rel_dir else name
            if _should_exclude(rel_path, True, rules):
                continue
            filtered_dirs.append(name)
        dirnames[:] = filtered_dirs

        for filename in sorted(filenames):
            if filename in _EXCLUDED_FILES:
                continue
            rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
            if _should_exclude(rel_path, False, rules):
                continue
            yield current_dir / filename


__all__ = [
    "ExcludeRule",
    "ResourceListing",
    "build_exclude_rule",
    "derive_identifier",
    "scan_resource_tree",
]
