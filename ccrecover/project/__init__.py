"""Project emission: sources, assets, sidecars and the recovery report."""

from .metadata import build_meta, build_project_descriptor
from .writer import ProjectWriter, write_project

__all__ = ["ProjectWriter", "build_meta", "build_project_descriptor", "write_project"]
