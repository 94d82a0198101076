"""Compression of the postal-code to greffe mapping into ranges and singles.

Consecutive postal codes that share a greffe are stored as one range
``(start, end, greffe)``. Codes that do not extend a run stay in ``singles``.
``validate`` decodes every original code again to prove the result lossless.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from ..utils.logging_setup import setup_logger
from .base import (
    CompressedIndex,
    CompressionMetadata,
    GreffeRange,
    PostalCodeMap,
    ValidationResult,
    is_postal_code,
)
from .lookup import lookup

_BASE_LOGGER = setup_logger()
LOGGER = _BASE_LOGGER.getChild("greffes.compressor")

_RATIO_PRECISION = 2


def _extends_run(previous: str, code: str) -> bool:
    return is_postal_code(previous) and is_postal_code(code) and int(code) == int(previous) + 1


def _iter_runs(postal_codes: Mapping[str, str]) -> Iterator[tuple[str, str, str, int]]:
    """Yield ``(first, last, greffe, length)`` for each run of sorted codes."""

    first = last = greffe = None
    length = 0
    for code in sorted(postal_codes):
        value = postal_codes[code]
        if length and value == greffe and _extends_run(last, code):
            last = code
            length += 1
            continue
        if length:
            yield first, last, greffe, length
        first = last = code
        greffe = value
        length = 1
    if length:
        yield first, last, greffe, length


def compression_ratio(original_size: int, compressed_size: int) -> float:
    if original_size == 0:
        return 0.0
    return round((1 - compressed_size / original_size) * 100, _RATIO_PRECISION)


def compress(postal_codes: Mapping[str, str]) -> CompressedIndex:
    """Compress ``postal_codes`` into sorted ranges plus isolated codes."""

    ranges: list[GreffeRange] = []
    singles: dict[str, str] = {}

    for first, last, greffe, length in _iter_runs(postal_codes):
        if length >= 2:
            ranges.append(GreffeRange(start=first, end=last, greffe=greffe))
        else:
            singles[first] = greffe

    original_size = len(postal_codes)
    compressed_size = len(ranges) + len(singles)
    metadata = CompressionMetadata(
        originalSize=original_size,
        compressedSize=compressed_size,
        compressionRatio=compression_ratio(original_size, compressed_size),
    )
    LOGGER.debug(
        "Compression: %s entrées -> %s plages + %s codes isolés (%.2f%%)",
        original_size,
        len(ranges),
        len(singles),
        metadata["compressionRatio"],
    )
    return CompressedIndex(ranges=ranges, singles=singles, metadata=metadata)


def _range_errors(
    original: PostalCodeMap, compressed: CompressedIndex
) -> Iterator[str]:
    previous: GreffeRange | None = None
    covered: set[str] = set()

    for entry in compressed["ranges"]:
        start, end, greffe = entry["start"], entry["end"], entry["greffe"]
        label = f"Plage {start}-{end} ({greffe})"
        if not (is_postal_code(start) and is_postal_code(end)):
            yield f"{label}: bornes qui ne sont pas des codes postaux à 5 chiffres"
            continue
        if start > end:
            yield f"{label}: début supérieur à la fin"
            continue
        if previous is not None and start <= previous["end"]:
            yield f"{label}: non triée ou chevauche {previous['start']}-{previous['end']}"
        previous = entry

        for value in range(int(start), int(end) + 1):
            code = f"{value:05d}"
            covered.add(code)
            expected = original.get(code)
            if expected is None:
                yield f"{label}: couvre {code} absent des données d'origine"
            elif expected != greffe:
                yield f"{label}: couvre {code} associé à {expected!r} à l'origine"

    for code, greffe in compressed["singles"].items():
        expected = original.get(code)
        if expected is None:
            yield f"Code isolé {code} ({greffe}) absent des données d'origine"
        elif expected != greffe:
            yield f"Code isolé {code}: {greffe!r} au lieu de {expected!r}"
        if code in covered:
            yield f"Code isolé {code} également couvert par une plage"


def validate(original: Mapping[str, str], compressed: CompressedIndex) -> ValidationResult:
    """Check that ``compressed`` answers exactly like ``original``.

    Every original code is decoded through :func:`lookup`. The ranges and
    singles are also checked for codes that the original does not contain.
    """

    errors: list[str] = []
    for code in sorted(original):
        expected = original[code]
        actual = lookup(code, compressed)
        if actual is None:
            errors.append(f"Code {code}: introuvable (attendu {expected!r})")
        elif actual != expected:
            errors.append(f"Code {code}: {actual!r} au lieu de {expected!r}")

    errors.extend(_range_errors(dict(original), compressed))

    if errors:
        LOGGER.debug("Validation de la compression: %s erreur(s)", len(errors))
    return ValidationResult(valid=not errors, errors=errors)
