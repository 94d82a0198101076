"""Index code postal -> greffe : compression, validation et recherche."""

from .base import CompressedIndex, GreffeRange, PostalCodeMap, ValidationResult
from .compressor import compress, validate
from .lookup import GreffeLookup, lookup_greffe
from .storage import load_compressed_index, load_postal_code_map, write_compressed_index

__all__ = [
    "CompressedIndex",
    "GreffeLookup",
    "GreffeRange",
    "PostalCodeMap",
    "ValidationResult",
    "compress",
    "load_compressed_index",
    "load_postal_code_map",
    "lookup_greffe",
    "validate",
    "write_compressed_index",
]
