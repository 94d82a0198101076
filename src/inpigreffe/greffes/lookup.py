"""Runtime lookup of the greffe in charge of a postal code."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import ClassVar

from ..utils.logging_setup import setup_logger
from .base import POSTAL_CODE_LENGTH, CompressedIndex, empty_index, is_postal_code
from .storage import load_lookup_index

_BASE_LOGGER = setup_logger()
LOGGER = _BASE_LOGGER.getChild("greffes.lookup")

INDEX_PATH_ENV = "GREFFES_INDEX_PATH"
DEFAULT_INDEX_FILENAME = "greffes-index-compressed.json"


def default_index_path() -> Path:
    """Artifact location: ``$GREFFES_INDEX_PATH`` or ``./assets/<default>``."""

    configured = os.getenv(INDEX_PATH_ENV)
    if configured:
        return Path(configured)
    return Path.cwd() / "assets" / DEFAULT_INDEX_FILENAME


def lookup(code: str, index: CompressedIndex) -> str | None:
    """Return the greffe for ``code`` in ``index`` or ``None``.

    Codes that are not five characters long are rejected before ``index`` is
    read. Singles are checked first, then the sorted ranges are binary
    searched with plain string comparison. Only five digit codes are searched
    in the ranges, so codes such as ``"7500A"`` never match a numeric range.
    """

    if not isinstance(code, str) or len(code) != POSTAL_CODE_LENGTH:
        return None

    single = index["singles"].get(code)
    if single is not None:
        return single

    if not is_postal_code(code):
        return None

    ranges = index["ranges"]
    low = 0
    high = len(ranges) - 1
    while low <= high:
        mid = (low + high) // 2
        entry = ranges[mid]
        if entry["start"] <= code <= entry["end"]:
            return entry["greffe"]
        if code < entry["start"]:
            high = mid - 1
        else:
            low = mid + 1

    return None


class GreffeLookup:
    """Process-wide holder of the decoded greffe index.

    The index is read from disk on the first query and kept for the lifetime
    of the process. A missing or malformed file is logged once and replaced
    by an empty index, so every query then answers ``None``.
    """

    _instance: ClassVar[GreffeLookup | None] = None
    _instance_lock: ClassVar[threading.Lock] = threading.Lock()
    _configured_path: ClassVar[Path | None] = None

    def __init__(self, index_path: str | Path | None = None) -> None:
        self.index_path = Path(index_path) if index_path else default_index_path()
        self._index: CompressedIndex | None = None
        self._load_lock = threading.Lock()
        self.load_failed = False

    @classmethod
    def instance(cls) -> GreffeLookup:
        instance = cls._instance
        if instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls(cls._configured_path)
                instance = cls._instance
        return instance

    @classmethod
    def configure(cls, index_path: str | Path | None) -> None:
        """Point the shared instance to another artifact (takes effect lazily)."""

        with cls._instance_lock:
            cls._configured_path = Path(index_path) if index_path else None
            cls._instance = None

    @classmethod
    def reset(cls) -> None:
        with cls._instance_lock:
            cls._configured_path = None
            cls._instance = None

    @property
    def index(self) -> CompressedIndex:
        index = self._index
        if index is None:
            with self._load_lock:
                if self._index is None:
                    self._index = self._load()
                index = self._index
        return index

    def _load(self) -> CompressedIndex:
        try:
            index = load_lookup_index(self.index_path)
        except Exception as exc:  # RecursionError on deeply nested JSON too
            LOGGER.error(
                "Index des greffes indisponible (%s): %s - recherche désactivée",
                self.index_path,
                exc,
            )
            self.load_failed = True
            return empty_index()

        LOGGER.debug(
            "Index des greffes chargé: %s plages, %s codes isolés",
            len(index["ranges"]),
            len(index["singles"]),
        )
        return index

    def reload(self) -> CompressedIndex:
        with self._load_lock:
            self.load_failed = False
            self._index = self._load()
            return self._index

    def find(self, postal_code: str) -> str | None:
        return lookup(postal_code, self.index)


def lookup_greffe(postal_code: str | None) -> str | None:
    """Return the greffe name for a five character postal code, else ``None``."""

    if not isinstance(postal_code, str) or len(postal_code) != POSTAL_CODE_LENGTH:
        return None
    return GreffeLookup.instance().find(postal_code)
