"""Compressed UUID codec and the dictionary-backed identifier resolver."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from .errors import IdentifierNotFoundError, OutOfRangeError

BASE64_KEYS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_BASE64_VALUES = {char: index for index, char in enumerate(BASE64_KEYS)}
_HEX_CHARS = "0123456789abcdef"

CANONICAL_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"
)
COMPRESSED_PATTERN = re.compile(
    r"^(?:[0-9a-f]{2}[0-9A-Za-z+/]{20}|[0-9a-f]{5}[0-9A-Za-z+/]{18})$"
)

# 22 characters keep two hex digits verbatim, 23 (script) characters keep five.
_RESERVED_HEAD = {22: 2, 23: 5}


def is_canonical(token: str) -> bool:
    return bool(CANONICAL_PATTERN.match(token))


def is_compressed(token: str) -> bool:
    return bool(COMPRESSED_PATTERN.match(token))


@lru_cache(maxsize=65536)
def decompress_uuid(token: str) -> str:
    """Expand a 22/23 character compressed UUID into its dashed form."""
    if not is_compressed(token):
        raise ValueError(f"Not a compressed uuid: {token!r}")
    head = _RESERVED_HEAD[len(token)]
    digits: List[str] = list(token[:head])
    for index in range(head, len(token), 2):
        lhs = _BASE64_VALUES[token[index]]
        rhs = _BASE64_VALUES[token[index + 1]]
        digits.append(_HEX_CHARS[lhs >> 2])
        digits.append(_HEX_CHARS[((lhs & 3) << 2) | (rhs >> 4)])
        digits.append(_HEX_CHARS[rhs & 0xF])
    hex_digits = "".join(digits)
    return "-".join(
        (hex_digits[0:8], hex_digits[8:12], hex_digits[12:16], hex_digits[16:20], hex_digits[20:32])
    )


@lru_cache(maxsize=65536)
def compress_uuid(uuid: str, *, script: bool = False) -> str:
    """Return the compressed form of a canonical UUID (23 characters for scripts)."""
    if not is_canonical(uuid):
        raise ValueError(f"Not a canonical uuid: {uuid!r}")
    hex_digits = uuid.replace("-", "")
    head = 5 if script else 2
    encoded: List[str] = [hex_digits[:head]]
    for index in range(head, 32, 3):
        value = int(hex_digits[index : index + 3], 16)
        encoded.append(BASE64_KEYS[value >> 6])
        encoded.append(BASE64_KEYS[value & 0x3F])
    return "".join(encoded)


def expand_token(token: str) -> str:
    """Normalise any identifier token: compressed forms expand, others pass through."""
    if is_compressed(token):
        return decompress_uuid(token)
    return token


CompactIdentifier = Union[int, str]


class IdentifierResolver:
    """Bidirectional index over the manifest's identifier dictionary."""

    def __init__(self, dictionary: Iterable[str] = ()) -> None:
        decoded: List[str] = []
        positions: Dict[str, int] = {}
        duplicates: List[str] = []
        for index, raw in enumerate(dictionary):
            canonical = expand_token(str(raw))
            decoded.append(canonical)
            if canonical in positions:
                duplicates.append(canonical)
                continue
            positions[canonical] = index
        self._decoded: Tuple[str, ...] = tuple(decoded)
        self._positions = positions
        self._duplicates: Tuple[str, ...] = tuple(duplicates)

    def __len__(self) -> int:
        return len(self._decoded)

    @property
    def identifiers(self) -> Tuple[str, ...]:
        return self._decoded

    @property
    def duplicates(self) -> Tuple[str, ...]:
        return self._duplicates

    def decode(self, index: int) -> str:
        """Return the canonical identifier stored at ``index``."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise TypeError(
                f"Identifier index must be an int, not {type(index).__name__}; "
                "use resolve_key for settings keys"
            )
        if index < 0 or index >= len(self._decoded):
            raise OutOfRangeError(index, len(self._decoded))
        return self._decoded[index]

    def encode(self, identifier: str) -> int:
        """Return the dictionary index of a canonical or compressed identifier."""
        canonical = expand_token(identifier)
        try:
            return self._positions[canonical]
        except KeyError:
            raise IdentifierNotFoundError(identifier) from None

    def expand(self, token: str) -> str:
        return expand_token(token)

    def contains(self, token: str) -> bool:
        return expand_token(token) in self._positions

    def resolve_key(self, key: CompactIdentifier) -> str:
        """Resolve a settings key that is an index, a digit string or a uuid."""
        if isinstance(key, int) and not isinstance(key, bool):
            return self.decode(key)
        text = str(key)
        if text.isdigit():
            return self.decode(int(text))
        return expand_token(text)


def merge_dictionaries(dictionaries: Sequence[Sequence[str]]) -> List[str]:
    """Concatenate dictionaries keeping the first occurrence of each identifier."""
    merged: List[str] = []
    seen: set[str] = set()
    for dictionary in dictionaries:
        for raw in dictionary:
            canonical = expand_token(str(raw))
            if canonical in seen:
                continue
            seen.add(canonical)
            merged.append(canonical)
    return merged


__all__ = [
    "CompactIdentifier",
    "IdentifierResolver",
    "compress_uuid",
    "decompress_uuid",
    "expand_token",
    "is_canonical",
    "is_compressed",
    "merge_dictionaries",
]
