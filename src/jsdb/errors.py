"""Exception hierarchy for jsdb."""

from __future__ import annotations

from typing import Any


class JsDbError(Exception):
    """Base class for every error raised by jsdb."""


class SchemaError(JsDbError):
    """A schema, table or field definition is invalid or cannot be resolved."""


class NoCurrentTable(SchemaError):
    """A field was added to the builder before any table."""

    def __init__(self) -> None:
        super().__init__("No current table; call add_table() first")


class InvalidName(SchemaError, ValueError):
    """A table name, field name or flag string is not acceptable."""

    def __init__(self, value: Any, reason: str) -> None:
        self.value = value
        super().__init__(f"Invalid value {value!r}: {reason}")


class TableNotFound(SchemaError, LookupError):
    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}' not found")


class FieldNotFound(SchemaError, LookupError):
    def __init__(self, table: str, field: str | int) -> None:
        self.table = table
        self.field = field
        if isinstance(field, int):
            message = f"Field #{field} not found in table '{table}'"
        else:
            message = f"Field '{field}' not found in table '{table}'"
        super().__init__(message)


class UnknownType(SchemaError, LookupError):
    def __init__(self, type_id: Any) -> None:
        self.type_id = type_id
        super().__init__(f"Unknown type {type_id!r}")


class MissingPrimaryKey(SchemaError):
    """A table has no field flagged constant, required and unique."""

    def __init__(self, table: str) -> None:
        self.table = table
        super().__init__(f"Table '{table}' is missing a primary key")


class ConstraintError(JsDbError):
    """A committed row violates a key constraint.

    Attributes:
        table: Table holding the offending field.
        field: Name of the offending field.
        value: The serialized value that violated the constraint.
    """

    def __init__(self, message: str, table: str, field: str, value: Any) -> None:
        self.table = table
        self.field = field
        self.value = value
        super().__init__(message)


class PrimaryKeyConstraintError(ConstraintError):
    def __init__(self, table: str, field: str, value: Any) -> None:
        super().__init__(
            f"Primary key constraint error: value {value!r} already exists in ({table}, {field})",
            table,
            field,
            value,
        )


class ForeignKeyConstraintError(ConstraintError):
    def __init__(
        self, table: str, field: str, value: Any, target_table: str, target_field: str
    ) -> None:
        self.target_table = target_table
        self.target_field = target_field
        super().__init__(
            f"Foreign key constraint error: value {value!r} of ({table}, {field}) "
            f"does not exist in ({target_table}, {target_field})",
            table,
            field,
            value,
        )


class SerializationError(JsDbError, ValueError):
    """A value does not fit the type of the field it is stored in."""

    def __init__(
        self,
        message: str,
        table: str | None = None,
        field: str | None = None,
        type_id: str | None = None,
        value: Any = None,
    ) -> None:
        self.table = table
        self.field = field
        self.type_id = type_id
        self.value = value
        super().__init__(message)


class UnsupportedComparison(JsDbError, TypeError):
    """Key comparison was attempted on something other than int, str or bool."""

    def __init__(self, left: Any, right: Any) -> None:
        self.left = left
        self.right = right
        super().__init__(f"Cannot compare non-primitive values {left!r} and {right!r}")


class InvalidArgument(JsDbError, TypeError):
    pass


class StorageError(JsDbError):
    """The database file could not be read or written."""

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        super().__init__(message)


class ParseError(StorageError):
    """The database file is not a well-formed jsdb document."""
