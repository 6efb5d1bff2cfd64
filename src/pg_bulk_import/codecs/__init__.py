"""Value codecs turning Python values into COPY CSV tokens."""

from pg_bulk_import.codecs.builtin import Codec, builtin_codecs
from pg_bulk_import.codecs.registry import (
    ArrayCodec,
    ValueCodecRegistry,
    default_registry,
    is_null,
)

__all__ = [
    "ArrayCodec",
    "Codec",
    "ValueCodecRegistry",
    "builtin_codecs",
    "default_registry",
    "is_null",
]
