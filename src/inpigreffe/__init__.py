"""Exports principaux du paquet ``inpigreffe``."""

from .greffes import (
    CompressedIndex,
    GreffeLookup,
    GreffeRange,
    ValidationResult,
    compress,
    lookup_greffe,
    validate,
)
from .greffes.lookup import lookup
from .siren import format_siren, validate_and_extract_siren
from .utils.logging_setup import setup_logger

__all__ = [
    "CompressedIndex",
    "GreffeLookup",
    "GreffeRange",
    "ValidationResult",
    "compress",
    "format_siren",
    "lookup",
    "lookup_greffe",
    "setup_logger",
    "validate",
    "validate_and_extract_siren",
]
