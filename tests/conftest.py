from __future__ import annotations

from pathlib import Path

import pytest

from ccrecover.analyzers.modules import ModuleGraphExtractor
from ccrecover.identifiers import IdentifierResolver
from ccrecover.models import ModuleGraph
from tests._fixtures.build_builder import BuildBuilder, bundle_script


@pytest.fixture
def build_builder(tmp_path: Path) -> BuildBuilder:
    """Provide a reusable build builder rooted at the pytest tmp_path."""
    return BuildBuilder(tmp_path)


@pytest.fixture
def extract_graph():
    """Return a helper that bundles ``name -> (body, deps)`` modules and extracts the graph."""

    def _extract(modules, resolver: IdentifierResolver | None = None) -> ModuleGraph:
        outcome = ModuleGraphExtractor(resolver).extract(bundle_script(modules, list(modules)))
        return outcome.value

    return _extract
