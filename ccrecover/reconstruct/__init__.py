"""TypeScript source reconstruction for recovered bundle modules."""

from .source import SourceReconstructor

__all__ = ["SourceReconstructor"]
