"""Exception types that escape ccrecover stages."""

from __future__ import annotations


class FatalStructuralError(RuntimeError):
    """Raised when a build cannot be processed at all."""


class LayoutNotFoundError(FatalStructuralError):
    """Raised when the source directory matches no supported build layout."""


class IdentifierError(LookupError):
    """Base class for identifier resolution failures."""


class OutOfRangeError(IdentifierError):
    """Raised when a compact index points past the identifier dictionary."""

    def __init__(self, index: object, size: int) -> None:
        super().__init__(f"Identifier index {index!r} is outside dictionary of size {size}")
        self.index = index
        self.size = size


class IdentifierNotFoundError(IdentifierError):
    """Raised when a canonical identifier has no dictionary slot."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Identifier {identifier!r} is not in the dictionary")
        self.identifier = identifier


__all__ = [
    "FatalStructuralError",
    "IdentifierError",
    "IdentifierNotFoundError",
    "LayoutNotFoundError",
    "OutOfRangeError",
]
