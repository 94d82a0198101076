"""Shared types for the postal-code to greffe index."""

from dataclasses import dataclass, field
from typing import TypedDict

PostalCodeMap = dict[str, str]

POSTAL_CODE_LENGTH = 5


class GreffeRange(TypedDict):
    start: str
    end: str
    greffe: str


CompressionMetadata = TypedDict(
    "CompressionMetadata",
    {"originalSize": int, "compressedSize": int, "compressionRatio": float},
)


class CompressedIndex(TypedDict):
    """Persisted form of the index: sorted ranges plus isolated codes."""

    ranges: list[GreffeRange]
    singles: dict[str, str]
    metadata: CompressionMetadata


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: list[str] = field(default_factory=list)


def empty_index() -> CompressedIndex:
    return CompressedIndex(
        ranges=[],
        singles={},
        metadata=CompressionMetadata(originalSize=0, compressedSize=0, compressionRatio=0.0),
    )


def is_postal_code(code: object) -> bool:
    """Return ``True`` for a five digit string such as ``"09120"``."""

    return (
        isinstance(code, str)
        and len(code) == POSTAL_CODE_LENGTH
        and code.isascii()
        and code.isdigit()
    )
