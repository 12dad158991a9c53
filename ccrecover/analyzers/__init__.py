"""Tree-sitter analyzers for the build manifest and script bundle."""

from .manifest import ManifestDecoder, decode_manifest
from .modules import ModuleGraphExtractor, export_name, iter_require_calls

__all__ = [
    "ManifestDecoder",
    "ModuleGraphExtractor",
    "decode_manifest",
    "export_name",
    "iter_require_calls",
]
