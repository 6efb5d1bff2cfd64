"""
Value codec registry.

Maps Python types to codecs and resolves a codec for any runtime type using
a fixed fallback order:

1. exact registered type
2. Enum subclasses (token is the member name)
3. arrays: tuple, array.array, numpy.ndarray
4. other ordered collections (list, Sequence, set) except str/bytes
5. numpy scalar types, via their builtin equivalent
6. nearest registered supertype (MRO order)
7. str(value)

Null values never reach a codec: ``encode`` turns them into the NullMode
token first.
"""

import array
import threading
from collections.abc import Collection, Sequence
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

import numpy as np
import pandas as pd

from pg_bulk_import.codecs.builtin import Codec, builtin_codecs, encode_enum, encode_str
from pg_bulk_import.config.import_config import NullMode
from pg_bulk_import.exceptions import BulkImportError

_ARRAY_STRUCTURAL = frozenset(',{}"\\')

# numpy scalar base -> builtin equivalent
_WRAPPER_TYPES = (
    (np.bool_, bool),
    (np.integer, int),
    (np.floating, float),
    (np.str_, str),
    (np.bytes_, bytes),
)


def is_null(value: Any) -> bool:
    """True for None and the pandas missing markers pd.NA and pd.NaT."""
    return value is None or value is pd.NA or value is pd.NaT


def _needs_quoting(token: str) -> bool:
    if not token or token.upper() == "NULL":
        return True
    return any(ch in _ARRAY_STRUCTURAL or ch.isspace() for ch in token)


def _quote_element(token: str) -> str:
    escaped = token.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class ArrayCodec:
    """
    Render a collection as a PostgreSQL array literal.

    Elements are encoded through the owning registry. Null elements become the
    bare word NULL, and a string element spelled NULL (any case) is quoted so it
    stays a string. Element tokens that are empty or contain `,{}"\\` or
    whitespace are quoted. Nested collections are the exception: their tokens
    are emitted unquoted, so PostgreSQL reads a multidimensional array rather
    than an array of strings.

    Examples:
        >>> ArrayCodec(ValueCodecRegistry())(["a", None, "c"])
        '{a,NULL,c}'
    """

    def __init__(self, registry: "ValueCodecRegistry"):
        self._registry = registry

    def __call__(self, value: Any) -> str:
        parts = []
        for element in value:
            if is_null(element):
                parts.append("NULL")
                continue
            codec = self._registry.resolve(type(element))
            token = codec(element)
            if isinstance(codec, ArrayCodec):
                parts.append(token)
            elif _needs_quoting(token):
                parts.append(_quote_element(token))
            else:
                parts.append(token)
        return "{" + ",".join(parts) + "}"


class ValueCodecRegistry:
    """
    Registry of value codecs keyed by Python type.

    Registries are instance-scoped; use ``copy()`` to derive a private
    registry from a shared one. A frozen registry rejects registration.
    """

    def __init__(self, codecs: Optional[Dict[type, Codec]] = None, frozen: bool = False):
        self._codecs: Dict[type, Codec] = dict(codecs or {})
        self._resolved: Dict[type, Codec] = {}
        self._lock = threading.Lock()
        self._array_codec = ArrayCodec(self)
        self._frozen = frozen

    @classmethod
    def with_builtins(cls, frozen: bool = False) -> "ValueCodecRegistry":
        return cls(builtin_codecs(), frozen=frozen)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, value_type: Type[Any], codec: Callable[[Any], str]) -> None:
        """
        Register a codec for an exact type, replacing any existing one.

        Raises:
            BulkImportError: If the registry is frozen
            TypeError: If codec is not callable
        """
        if self._frozen:
            raise BulkImportError(
                "The default codec registry is immutable; register codecs on a copy"
            )
        if not callable(codec):
            raise TypeError(f"Codec for {value_type!r} must be callable")
        with self._lock:
            self._codecs[value_type] = codec
            self._resolved.clear()

    def has_codec(self, value_type: Type[Any]) -> bool:
        """True when a codec is registered for exactly this type."""
        return value_type in self._codecs

    def copy(self, frozen: bool = False) -> "ValueCodecRegistry":
        return ValueCodecRegistry(self._codecs, frozen=frozen)

    def resolve(self, value_type: Type[Any]) -> Codec:
        """Resolve the codec for ``value_type``; never fails."""
        codec = self._resolved.get(value_type)
        if codec is None:
            codec = self._lookup(value_type)
            self._resolved[value_type] = codec
        return codec

    def _lookup(self, value_type: Type[Any]) -> Codec:
        exact = self._codecs.get(value_type)
        if exact is not None:
            return exact

        if not isinstance(value_type, type):
            return encode_str

        if issubclass(value_type, Enum):
            return encode_enum

        if issubclass(value_type, (tuple, array.array, np.ndarray)):
            return self._array_codec

        if issubclass(value_type, (Sequence, Collection)) and not issubclass(
            value_type, (str, bytes, bytearray, memoryview, dict)
        ):
            return self._array_codec

        for wrapper, builtin in _WRAPPER_TYPES:
            if issubclass(value_type, wrapper) and builtin in self._codecs:
                return self._codecs[builtin]

        for base in value_type.__mro__[1:]:
            codec = self._codecs.get(base)
            if codec is not None:
                return codec

        return encode_str

    def encode(self, value: Any, null_mode: NullMode = NullMode.EMPTY) -> str:
        """
        Encode one value to its COPY CSV token.

        Examples:
            >>> registry = ValueCodecRegistry.with_builtins()
            >>> registry.encode(None, NullMode.SENTINEL)
            '\\\\N'
            >>> registry.encode(float("nan"))
            'NaN'
        """
        if is_null(value):
            return null_mode.token
        return self.resolve(type(value))(value)


_DEFAULT_REGISTRY = ValueCodecRegistry.with_builtins(frozen=True)


def default_registry() -> ValueCodecRegistry:
    """Shared, immutable registry holding only the built-in codecs."""
    return _DEFAULT_REGISTRY
