"""Compiled, read-only views of a schema used at runtime."""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterator, Mapping

from jsdb.errors import FieldNotFound, TableNotFound
from jsdb.schema import (
    FLAG_AUTOINCREMENT,
    FLAG_REQUIRED,
    FieldDefinition,
    TableDefinition,
    is_primary_key,
)
from jsdb.types import TypeDefinition, TypeId, TypeRegistry


@dataclass(frozen=True)
class FieldDescriptor:
    """Runtime metadata of one field.

    `index` is the field's position in its table definition and in every
    stored row of that table.
    """

    name: str
    table_name: str
    index: int
    flags: str
    type_def: TypeDefinition
    foreign_key: tuple[str, str] | None = None

    @property
    def is_primary_key(self) -> bool:
        return is_primary_key(self.flags)

    @property
    def is_required(self) -> bool:
        return FLAG_REQUIRED in self.flags

    @property
    def is_autoincrement(self) -> bool:
        """True for autoincrement fields the connection can allocate values for."""
        return FLAG_AUTOINCREMENT in self.flags and self.type_def.type_id == TypeId.INTEGER.value


class TableDescriptor:
    """Runtime metadata of one table, compiled from its definition."""

    def __init__(self, table_def: TableDefinition, registry: TypeRegistry) -> None:
        self._name = table_def.name
        self._primary_key: str | None = None
        fields: list[FieldDescriptor] = []
        by_name: dict[str, FieldDescriptor] = {}
        for i, field_def in enumerate(table_def.fields):
            # First eligible field wins
            if self._primary_key is None and field_def.is_primary_key:
                self._primary_key = field_def.name
            descriptor = _compile_field(field_def, table_def.name, i, registry)
            fields.append(descriptor)
            by_name[field_def.name] = descriptor
        self._fields = tuple(fields)
        self._by_name: Mapping[str, FieldDescriptor] = MappingProxyType(by_name)

    @property
    def name(self) -> str:
        return self._name

    @property
    def primary_key(self) -> str | None:
        """Name of the primary key field, or None if the table has none."""
        return self._primary_key

    @property
    def fields(self) -> tuple[FieldDescriptor, ...]:
        return self._fields

    @property
    def field_count(self) -> int:
        return len(self._fields)

    def field_names(self) -> list[str]:
        return [f.name for f in self._fields]

    def get_field(self, name: str) -> FieldDescriptor:
        """Get a field by name, raising FieldNotFound if absent."""
        descriptor = self._by_name.get(name)
        if descriptor is None:
            raise FieldNotFound(self._name, name)
        return descriptor

    def get_field_by_index(self, index: int) -> FieldDescriptor:
        """Get a field by position, raising FieldNotFound if out of range."""
        if not 0 <= index < len(self._fields):
            raise FieldNotFound(self._name, index)
        return self._fields[index]

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self._fields)

    def __repr__(self) -> str:
        return f"TableDescriptor({self._name!r}, fields={self.field_names()!r})"


def _compile_field(
    field_def: FieldDefinition, table_name: str, index: int, registry: TypeRegistry
) -> FieldDescriptor:
    return FieldDescriptor(
        name=field_def.name,
        table_name=table_name,
        index=index,
        flags=field_def.flags,
        type_def=registry.resolve(field_def.type_id),
        foreign_key=field_def.foreign_key,
    )


def compile_schema(
    schema: list[TableDefinition] | list[dict[str, Any]], registry: TypeRegistry
) -> dict[str, TableDescriptor]:
    """Compile a schema into table descriptors keyed by table name.

    Args:
        schema: Table definitions, or their serialized form from a document.
        registry: Registry used to resolve field type ids.

    Returns:
        Mapping from table name to its descriptor, in schema order.

    Raises:
        UnknownType: If a field names a type the registry does not know.
        TableNotFound: If a foreign key names a missing table.
        FieldNotFound: If a foreign key names a missing field.
    """
    tables: dict[str, TableDescriptor] = {}
    for table_def in schema:
        if not isinstance(table_def, TableDefinition):
            table_def = TableDefinition.from_dict(table_def)
        tables[table_def.name] = TableDescriptor(table_def, registry)

    # Foreign keys may only be checked once every table is known
    for table in tables.values():
        for f in table.fields:
            if f.foreign_key is None:
                continue
            target_table, target_field = f.foreign_key
            if target_table not in tables:
                raise TableNotFound(target_table)
            tables[target_table].get_field(target_field)
    return tables
