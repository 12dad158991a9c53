"""Build layout detection for Cocos Creator web builds."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .errors import FatalStructuralError, LayoutNotFoundError
from .logging import get_logger

logger = get_logger("layout")


@dataclass(frozen=True)
class LayoutCandidates:
    """Relative paths probed for one build generation."""

    manifest: Tuple[str, ...]
    bundle: Tuple[str, ...]
    resources: Tuple[str, ...]
    bare_literal_fallback: bool
    bundle_configs: Tuple[str, ...] = ()


class BuildLayout(Enum):
    """Supported build generations."""

    LEGACY = "2.3.x"
    BUNDLED = "2.4.x"

    @property
    def candidates(self) -> LayoutCandidates:
        return _CANDIDATES[self]

    @classmethod
    def from_hint(cls, hint: Optional[str]) -> Optional["BuildLayout"]:
        if not hint:
            return None
        for member in cls:
            if member.value == hint or member.name.lower() == hint.lower():
                return member
        raise ValueError(f"Unknown build layout '{hint}' (expected 2.3.x or 2.4.x)")


_CANDIDATES = {
    BuildLayout.LEGACY: LayoutCandidates(
        manifest=("src/settings*.js",),
        bundle=("src/project*.js",),
        resources=("res",),
        bare_literal_fallback=False,
    ),
    BuildLayout.BUNDLED: LayoutCandidates(
        manifest=("src/settings*.js", "settings*.js", "main*.js"),
        bundle=("assets/main/index*.js", "project*.js", "src/project*.js", "main*.js"),
        resources=("assets", "res", "src/assets"),
        bare_literal_fallback=True,
        bundle_configs=("*/config*.json",),
    ),
}

_DETECTION_ORDER = (BuildLayout.LEGACY, BuildLayout.BUNDLED)


@dataclass(frozen=True)
class ProjectPaths:
    """Files that make up one detected build."""

    layout: BuildLayout
    source: Path
    manifest: Path
    bundle: Path
    resources: Path

    def bundle_configs(self) -> Tuple[Path, ...]:
        found = []
        for pattern in self.layout.candidates.bundle_configs:
            found.extend(path for path in self.resources.glob(pattern) if path.is_file())
        return tuple(sorted(found))


def detect_layout(source: Path, hint: Optional[str] = None) -> ProjectPaths:
    """Return the paths of the build under ``source`` or raise LayoutNotFoundError."""
    source = source.expanduser().resolve()
    if not source.is_dir():
        raise FatalStructuralError(f"Build directory not found: {source}")

    hinted = BuildLayout.from_hint(hint)
    if hinted is not None:
        paths = _probe(source, hinted)
        if paths is not None:
            logger.info("Using requested %s build layout", hinted.value)
            return paths
        logger.warning(
            "Requested %s layout does not match %s; falling back to auto-detection",
            hinted.value,
            source,
        )

    for layout in _DETECTION_ORDER:
        paths = _probe(source, layout)
        if paths is not None:
            logger.info("Detected %s build layout", layout.value)
            return paths

    raise LayoutNotFoundError(
        f"No supported build layout found under {source}.\n"
        "Supported structures:\n"
        "  2.4.x: src/settings.js|settings.js|main.js + assets/main/index.js|project.js + assets|res\n"
        "  2.3.x: src/settings.js + src/project.js + res"
    )


def _probe(source: Path, layout: BuildLayout) -> Optional[ProjectPaths]:
    candidates = layout.candidates
    manifest = _first_match(source, candidates.manifest, want_dir=False)
    bundle = _first_match(source, candidates.bundle, want_dir=False, exclude=manifest)
    resources = _first_match(source, candidates.resources, want_dir=True)
    if manifest is None or bundle is None or resources is None:
        return None
    return ProjectPaths(
        layout=layout,
        source=source,
        manifest=manifest,
        bundle=bundle,
        resources=resources,
    )


def _first_match(
    source: Path,
    patterns: Sequence[str],
    *,
    want_dir: bool,
    exclude: Optional[Path] = None,
) -> Optional[Path]:
    for pattern in patterns:
        matches = sorted(source.glob(pattern))
        for match in matches:
            if exclude is not None and match == exclude:
                continue
            if want_dir and match.is_dir():
                return match
            if not want_dir and match.is_file():
                return match
    return None


__all__ = ["BuildLayout", "LayoutCandidates", "ProjectPaths", "detect_layout"]
