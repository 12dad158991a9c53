"""Immutable per-run context shared by every pipeline stage."""

from __future__ import annotations

from dataclasses import dataclass

from .config import RecoveryConfig
from .identifiers import IdentifierResolver
from .layout import BuildLayout, ProjectPaths
from .models import SettingsModel


@dataclass(frozen=True)
class RecoveryContext:
    """Everything a stage may read about the current build; never mutated."""

    paths: ProjectPaths
    config: RecoveryConfig
    settings: SettingsModel
    resolver: IdentifierResolver

    @property
    def layout(self) -> BuildLayout:
        return self.paths.layout


__all__ = ["RecoveryContext"]
