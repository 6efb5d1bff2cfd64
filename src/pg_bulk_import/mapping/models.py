"""
Table and column mapping models.

A TableMapping describes how entities of one shape map onto one PostgreSQL
table: the qualified name, the ordered columns, and for each column a value
extractor. Mappings are built once per shape and reused across imports.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from pg_bulk_import.exceptions import MappingError
from pg_bulk_import.infrastructure.sql.core.identifier import validate_identifier

Extractor = Callable[[Any], Any]


@dataclass(frozen=True, eq=False)
class ColumnMapping:
    """Mapping of a single column: name, declared value type and extractor."""

    name: str
    extractor: Extractor
    value_type: Optional[type] = None
    is_id: bool = False
    nullable: bool = True
    field_name: Optional[str] = None

    def extract(self, entity: Any) -> Any:
        return self.extractor(entity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True)
class TableMapping:
    """
    Immutable mapping from an entity shape to a database table.

    Build with the fluent builder:

        >>> mapping = (
        ...     TableMapping.builder("orders")
        ...     .schema("sales")
        ...     .id("id", lambda o: o.id)
        ...     .column("qty", lambda o: o.qty, int)
        ...     .build()
        ... )
        >>> mapping.column_names
        ['id', 'qty']
    """

    table_name: str
    columns: Tuple[ColumnMapping, ...]
    schema_name: Optional[str] = None
    entity_type: Optional[type] = None
    _by_name: Dict[str, ColumnMapping] = field(
        init=False, repr=False, compare=False, default_factory=dict
    )

    def __post_init__(self) -> None:
        validate_identifier(self.table_name)
        if self.schema_name:
            validate_identifier(self.schema_name)
        if not self.columns:
            raise MappingError(
                f"Table mapping for '{self.table_name}' has no columns",
                table=self.table_name,
            )

        by_name: Dict[str, ColumnMapping] = {}
        for column in self.columns:
            validate_identifier(column.name)
            if column.name in by_name:
                raise MappingError.duplicate_column(column.name)
            if column.is_id and column.nullable:
                raise MappingError(
                    f"Id column '{column.name}' cannot be nullable",
                    table=self.table_name,
                )
            by_name[column.name] = column
        object.__setattr__(self, "_by_name", by_name)

    @staticmethod
    def builder(table_name: str, entity_type: Optional[type] = None) -> "TableMappingBuilder":
        return TableMappingBuilder(table_name, entity_type)

    @property
    def full_table_name(self) -> str:
        """schema.table, or just table when no schema is set."""
        if self.schema_name:
            return f"{self.schema_name}.{self.table_name}"
        return self.table_name

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]

    @property
    def id_columns(self) -> List[ColumnMapping]:
        return [column for column in self.columns if column.is_id]

    @property
    def non_id_columns(self) -> List[ColumnMapping]:
        return [column for column in self.columns if not column.is_id]

    @property
    def id_column_names(self) -> List[str]:
        return [column.name for column in self.id_columns]

    @property
    def non_id_column_names(self) -> List[str]:
        return [column.name for column in self.non_id_columns]

    @property
    def has_id_columns(self) -> bool:
        return any(column.is_id for column in self.columns)

    def get_column(self, name: str) -> Optional[ColumnMapping]:
        return self._by_name.get(name)

    def __len__(self) -> int:
        return len(self.columns)


class TableMappingBuilder:
    """Fluent builder for TableMapping; raises MappingError on misuse."""

    def __init__(self, table_name: str, entity_type: Optional[type] = None):
        if not table_name:
            raise MappingError("Table name cannot be empty")
        self._table_name = table_name
        self._schema_name: Optional[str] = None
        self._entity_type = entity_type
        self._columns: Dict[str, ColumnMapping] = {}

    def schema(self, schema_name: Optional[str]) -> "TableMappingBuilder":
        self._schema_name = schema_name or None
        return self

    def entity_type(self, entity_type: type) -> "TableMappingBuilder":
        self._entity_type = entity_type
        return self

    def id(
        self,
        name: str,
        extractor: Extractor,
        value_type: Optional[type] = None,
        field_name: Optional[str] = None,
    ) -> "TableMappingBuilder":
        """Add an identifier column; identifier columns are never nullable."""
        return self._add(
            ColumnMapping(
                name=name,
                extractor=extractor,
                value_type=value_type,
                is_id=True,
                nullable=False,
                field_name=field_name,
            )
        )

    def column(
        self,
        name: str,
        extractor: Extractor,
        value_type: Optional[type] = None,
        nullable: bool = True,
        field_name: Optional[str] = None,
    ) -> "TableMappingBuilder":
        return self._add(
            ColumnMapping(
                name=name,
                extractor=extractor,
                value_type=value_type,
                nullable=nullable,
                field_name=field_name,
            )
        )

    def _add(self, column: ColumnMapping) -> "TableMappingBuilder":
        if not column.name:
            raise MappingError("Column name cannot be empty", table=self._table_name)
        if not callable(column.extractor):
            raise MappingError(
                f"Extractor for column '{column.name}' is not callable",
                table=self._table_name,
            )
        if column.name in self._columns:
            raise MappingError.duplicate_column(column.name)
        self._columns[column.name] = column
        return self

    def build(self) -> TableMapping:
        return TableMapping(
            table_name=self._table_name,
            columns=tuple(self._columns.values()),
            schema_name=self._schema_name,
            entity_type=self._entity_type,
        )
