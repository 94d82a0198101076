"""Normalisation des numéros SIREN et SIRET."""

from __future__ import annotations

import re

_SEPARATORS = re.compile(r"[\s\-.]")

SIREN_LENGTH = 9
SIRET_LENGTH = 14


def _clean(value: str) -> str:
    return _SEPARATORS.sub("", value)


def validate_and_extract_siren(value: str | None) -> str | None:
    """Return the SIREN contained in a SIREN or SIRET, else ``None``.

    ``"123 456 789"`` gives ``"123456789"`` and the SIRET
    ``"12345678900017"`` gives its first nine digits.
    """

    if not value:
        return None
    cleaned = _clean(value)
    if not cleaned.isascii() or not cleaned.isdigit():
        return None
    if len(cleaned) == SIREN_LENGTH:
        return cleaned
    if len(cleaned) == SIRET_LENGTH:
        return cleaned[:SIREN_LENGTH]
    return None


def format_siren(siren: str) -> str:
    cleaned = _clean(siren or "")
    if len(cleaned) != SIREN_LENGTH or not cleaned.isdigit():
        return siren
    return "\u00a0".join(cleaned[i : i + 3] for i in range(0, SIREN_LENGTH, 3))
