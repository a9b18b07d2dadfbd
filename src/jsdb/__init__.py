"""jsdb - an embedded, schema-typed row store kept in a single JSON file."""

from __future__ import annotations

from pathlib import Path

from jsdb.bean import Bean
from jsdb.connection import Connection, Transaction, strictest_equals
from jsdb.descriptors import FieldDescriptor, TableDescriptor, compile_schema
from jsdb.errors import (
    ConstraintError,
    FieldNotFound,
    ForeignKeyConstraintError,
    InvalidArgument,
    InvalidName,
    JsDbError,
    MissingPrimaryKey,
    NoCurrentTable,
    ParseError,
    PrimaryKeyConstraintError,
    SchemaError,
    SerializationError,
    StorageError,
    TableNotFound,
    UnknownType,
    UnsupportedComparison,
)
from jsdb.schema import FieldDefinition, SchemaBuilder, TableDefinition
from jsdb.types import TypeDefinition, TypeId, TypeRegistry


def build(registry: TypeRegistry | None = None) -> SchemaBuilder:
    """Start building a new schema, checking type ids against registry."""
    return SchemaBuilder(registry)


def connect(path: Path | str, registry: TypeRegistry | None = None) -> Connection:
    """Open and load a database file.

    Args:
        path: Location of a file written by SchemaBuilder.export_to_file().
        registry: Registry resolving field types; the stock types by default.

    Returns:
        A loaded Connection.
    """
    return Connection(path, registry).load()


__all__ = [
    # Main API
    "build",
    "connect",
    "Connection",
    "Bean",
    "SchemaBuilder",
    # Schema and descriptors
    "FieldDefinition",
    "TableDefinition",
    "FieldDescriptor",
    "TableDescriptor",
    "compile_schema",
    "Transaction",
    "strictest_equals",
    # Types
    "TypeId",
    "TypeDefinition",
    "TypeRegistry",
    # Errors
    "JsDbError",
    "SchemaError",
    "NoCurrentTable",
    "InvalidName",
    "TableNotFound",
    "FieldNotFound",
    "UnknownType",
    "MissingPrimaryKey",
    "ConstraintError",
    "PrimaryKeyConstraintError",
    "ForeignKeyConstraintError",
    "SerializationError",
    "UnsupportedComparison",
    "InvalidArgument",
    "StorageError",
    "ParseError",
]

__version__ = "0.1.0"
