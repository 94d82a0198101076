"""Lecture et écriture des fichiers d'index des greffes (JSON)."""

from __future__ import annotations

import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from ..utils.logging_setup import setup_logger
from .base import (
    CompressedIndex,
    CompressionMetadata,
    GreffeRange,
    PostalCodeMap,
    is_postal_code,
)

_BASE_LOGGER = setup_logger()
LOGGER = _BASE_LOGGER.getChild("greffes.storage")

_METADATA_FIELDS = ("originalSize", "compressedSize", "compressionRatio")


def _read_json(path: str | Path) -> Any:
    json_path = Path(path)
    if not json_path.exists():
        raise FileNotFoundError(f"Fichier introuvable : {json_path}")
    try:
        return json.loads(json_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"JSON invalide dans {json_path}: {exc}") from exc


def _coerce_postal_code_map(data: Mapping[Any, Any]) -> PostalCodeMap:
    postal_codes: PostalCodeMap = {}
    for key, value in data.items():
        if value is None or value == "" or isinstance(value, (Mapping, list)):
            LOGGER.debug("Code postal %s sans greffe exploitable ignoré", key)
            continue
        postal_codes[str(key)] = str(value)
    return postal_codes


def load_postal_code_map(path: str | Path) -> PostalCodeMap:
    """Load the raw ``code postal -> greffe`` mapping.

    Both the flat layout and the ingestion layout
    ``{"byCodePostal": {...}, "byCodeInsee": {...}}`` are accepted.
    """

    data = _read_json(path)
    if not isinstance(data, Mapping):
        raise ValueError("Le fichier source doit contenir un objet JSON")

    by_postal_code = data.get("byCodePostal")
    if isinstance(by_postal_code, Mapping):
        data = by_postal_code

    postal_codes = _coerce_postal_code_map(data)
    LOGGER.debug("%s codes postaux chargés depuis %s", len(postal_codes), path)
    return postal_codes


def parse_compressed_index(data: Any) -> CompressedIndex:
    """Check the wire shape of a decoded artifact and return it typed."""

    if not isinstance(data, Mapping):
        raise ValueError("L'index compressé doit être un objet JSON")

    raw_ranges = data.get("ranges")
    raw_singles = data.get("singles")
    if not isinstance(raw_ranges, list):
        raise ValueError("Champ 'ranges' absent ou invalide")
    if not isinstance(raw_singles, Mapping):
        raise ValueError("Champ 'singles' absent ou invalide")

    ranges: list[GreffeRange] = []
    covered = 0
    for position, entry in enumerate(raw_ranges):
        if not isinstance(entry, Mapping):
            raise ValueError(f"Plage #{position} invalide : {entry!r}")
        try:
            current = GreffeRange(
                start=str(entry["start"]),
                end=str(entry["end"]),
                greffe=str(entry["greffe"]),
            )
        except KeyError as exc:
            raise ValueError(f"Plage #{position} sans champ {exc}") from exc

        start, end = current["start"], current["end"]
        if not (is_postal_code(start) and is_postal_code(end)) or start > end:
            raise ValueError(f"Plage #{position} aux bornes invalides : {start}-{end}")
        if ranges and start <= ranges[-1]["end"]:
            previous = ranges[-1]
            raise ValueError(
                f"Plage #{position} {start}-{end} non triée ou chevauchant "
                f"{previous['start']}-{previous['end']}"
            )
        ranges.append(current)
        covered += int(end) - int(start) + 1

    singles = {str(code): str(greffe) for code, greffe in raw_singles.items()}

    raw_metadata = data.get("metadata")
    if not isinstance(raw_metadata, Mapping):
        raw_metadata = {}
    metadata = CompressionMetadata(
        originalSize=int(raw_metadata.get("originalSize", covered + len(singles))),
        compressedSize=int(raw_metadata.get("compressedSize", len(ranges) + len(singles))),
        compressionRatio=float(raw_metadata.get("compressionRatio", 0.0)),
    )

    return CompressedIndex(ranges=ranges, singles=singles, metadata=metadata)


def load_compressed_index(path: str | Path) -> CompressedIndex:
    return parse_compressed_index(_read_json(path))


def write_compressed_index(index: CompressedIndex, path: str | Path) -> Path:
    """Write ``index`` as indented JSON and return the written path."""

    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "ranges": [
            {"start": entry["start"], "end": entry["end"], "greffe": entry["greffe"]}
            for entry in index["ranges"]
        ],
        "singles": dict(index["singles"]),
        "metadata": {name: index["metadata"][name] for name in _METADATA_FIELDS},
    }
    output_path.write_text(
        json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
        encoding="utf-8",
    )
    LOGGER.debug("Index compressé écrit dans %s", output_path)
    return output_path


def load_lookup_index(path: str | Path) -> CompressedIndex:
    """Load whatever index lives at ``path`` for the runtime lookup.

    A compressed artifact is returned as is. A raw mapping (flat or
    ``byCodePostal``) is served uncompressed: every code becomes a single.
    """

    data = _read_json(path)
    if isinstance(data, Mapping) and "ranges" in data:
        return parse_compressed_index(data)
    if not isinstance(data, Mapping):
        raise ValueError("L'index doit être un objet JSON")

    by_postal_code = data.get("byCodePostal")
    singles = _coerce_postal_code_map(
        by_postal_code if isinstance(by_postal_code, Mapping) else data
    )
    LOGGER.info("Index non compressé chargé (%s codes postaux)", len(singles))
    return CompressedIndex(
        ranges=[],
        singles=singles,
        metadata=CompressionMetadata(
            originalSize=len(singles),
            compressedSize=len(singles),
            compressionRatio=0.0,
        ),
    )
