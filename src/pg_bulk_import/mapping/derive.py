"""
Derive TableMappings from dataclasses and pandas DataFrames.

These helpers run once per entity shape; the resulting mapping is cached by
the caller and reused for every import.
"""

import dataclasses
import operator
import typing
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

import pandas as pd

from pg_bulk_import.exceptions import MappingError
from pg_bulk_import.mapping.models import TableMapping

# pandas dtype kind -> Python type used for codec resolution
_DTYPE_KINDS = {
    "b": bool,
    "i": int,
    "u": int,
    "f": float,
    "O": None,
    "U": str,
    "S": bytes,
}


def _unwrap_optional(annotation: Any) -> Any:
    """Optional[X] -> X; anything else is returned unchanged."""
    args = typing.get_args(annotation)
    if args and type(None) in args:
        remaining = [arg for arg in args if arg is not type(None)]
        if len(remaining) == 1:
            return remaining[0]
    return annotation


def _as_value_type(annotation: Any) -> Optional[type]:
    annotation = _unwrap_optional(annotation)
    origin = typing.get_origin(annotation)
    if origin is not None:
        annotation = origin
    return annotation if isinstance(annotation, type) else None


def table_mapping_from_dataclass(
    cls: type,
    table: str,
    schema: Optional[str] = None,
    id_columns: Iterable[str] = (),
    exclude: Iterable[str] = (),
    column_names: Optional[Mapping[str, str]] = None,
) -> TableMapping:
    """
    Build a TableMapping from a dataclass definition.

    Args:
        cls: Dataclass type
        table: Target table name
        schema: Optional schema name
        id_columns: Column names to treat as identifier columns
        exclude: Field names to leave out
        column_names: Optional field -> column renames

    Returns:
        TableMapping with one column per dataclass field, in declaration order

    Raises:
        MappingError: If cls is not a dataclass or an id column is unknown
    """
    if not dataclasses.is_dataclass(cls) or not isinstance(cls, type):
        raise MappingError(f"{cls!r} is not a dataclass type", table=table)

    renames = dict(column_names or {})
    excluded = set(exclude)
    ids = list(id_columns)
    hints = typing.get_type_hints(cls)

    builder = TableMapping.builder(table, cls).schema(schema)
    seen = []
    for f in dataclasses.fields(cls):
        if f.name in excluded:
            continue
        column = renames.get(f.name, f.name)
        value_type = _as_value_type(hints.get(f.name, f.type))
        extractor = operator.attrgetter(f.name)
        if column in ids:
            builder.id(column, extractor, value_type, field_name=f.name)
        else:
            builder.column(column, extractor, value_type, field_name=f.name)
        seen.append(column)

    missing = [name for name in ids if name not in seen]
    if missing:
        raise MappingError(
            f"Id columns not found on {cls.__name__}: {missing}", table=table
        )
    return builder.build()


def table_mapping_from_dataframe(
    df: pd.DataFrame,
    table: str,
    schema: Optional[str] = None,
    id_columns: Iterable[str] = (),
) -> TableMapping:
    """
    Build a TableMapping whose extractors read keys of per-row dicts.

    Pair with iter_dataframe_records() to stream the DataFrame rows.

    Raises:
        MappingError: If an id column is not a DataFrame column
    """
    ids = list(id_columns)
    missing = [name for name in ids if name not in df.columns]
    if missing:
        raise MappingError(f"Id columns not in DataFrame: {missing}", table=table)

    builder = TableMapping.builder(table, dict).schema(schema)
    for name in df.columns:
        column = str(name)
        value_type = _DTYPE_KINDS.get(df[name].dtype.kind)
        if pd.api.types.is_datetime64_any_dtype(df[name].dtype):
            value_type = pd.Timestamp
        extractor = operator.itemgetter(column)
        if column in ids:
            builder.id(column, extractor, value_type)
        else:
            builder.column(column, extractor, value_type)
    return builder.build()


def iter_dataframe_records(df: pd.DataFrame) -> Iterator[Dict[str, Any]]:
    """Yield one dict per DataFrame row, with NaN/NaT/pd.NA turned into None."""
    columns = [str(name) for name in df.columns]
    for row in df.itertuples(index=False, name=None):
        yield {
            column: (None if _is_missing(value) else value)
            for column, value in zip(columns, row)
        }


def _is_missing(value: Any) -> bool:
    # List and array cells are values, never missing markers
    if not pd.api.types.is_scalar(value):
        return False
    return bool(pd.isna(value))
