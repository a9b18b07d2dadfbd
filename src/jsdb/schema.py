"""Schema definitions and the builder that exports them to a database file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from jsdb.errors import (
    FieldNotFound,
    InvalidName,
    MissingPrimaryKey,
    NoCurrentTable,
    SchemaError,
    TableNotFound,
)
from jsdb.storage import build_document, write_document
from jsdb.types import TypeId, TypeRegistry, type_id_name

logger = logging.getLogger(__name__)

# Reserved for composite "table§field" keys in the document metadata
SEPARATOR = "§"

FLAG_CONSTANT = "c"
FLAG_REQUIRED = "r"
FLAG_UNIQUE = "u"
FLAG_AUTOINCREMENT = "a"
VALID_FLAGS = frozenset(FLAG_CONSTANT + FLAG_REQUIRED + FLAG_UNIQUE + FLAG_AUTOINCREMENT)
PRIMARY_KEY_FLAGS = FLAG_CONSTANT + FLAG_REQUIRED + FLAG_UNIQUE


def field_key(table_name: str, field_name: str) -> str:
    """Build the composite key identifying a field across the whole document."""
    return table_name + SEPARATOR + field_name


def is_primary_key(flags: str) -> bool:
    """Return whether a flag string marks a primary-key-eligible field."""
    return all(flag in flags for flag in PRIMARY_KEY_FLAGS)


@dataclass
class FieldDefinition:
    """Definition of a single field within a table."""

    name: str
    type_id: str
    flags: str = ""
    foreign_key: tuple[str, str] | None = None

    @property
    def is_primary_key(self) -> bool:
        return is_primary_key(self.flags)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the field definition as stored in a document."""
        d: dict[str, Any] = {
            "fieldName": self.name,
            "typeId": self.type_id,
            "flags": self.flags,
        }
        if self.foreign_key is not None:
            d["fk"] = list(self.foreign_key)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> FieldDefinition:
        """Deserialize a field definition from a document."""
        if not isinstance(d, dict):
            raise SchemaError(f"Malformed field definition: {d!r}")
        fk = d.get("fk")
        foreign_key = None
        if isinstance(fk, list) and len(fk) == 2 and all(isinstance(p, str) for p in fk):
            foreign_key = (fk[0], fk[1])
        return cls(
            name=d["fieldName"],
            type_id=d["typeId"],
            flags=d.get("flags") or "",
            foreign_key=foreign_key,
        )


@dataclass
class TableDefinition:
    """Definition of a table: a name and an ordered list of fields."""

    name: str
    fields: list[FieldDefinition] = field(default_factory=list)

    @property
    def primary_key(self) -> FieldDefinition | None:
        """The first primary-key-eligible field, if any."""
        for f in self.fields:
            if f.is_primary_key:
                return f
        return None

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"tableName": self.name, "fields": [f.to_dict() for f in self.fields]}

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> TableDefinition:
        if not isinstance(d, dict):
            raise SchemaError(f"Malformed table definition: {d!r}")
        try:
            return cls(
                name=d["tableName"],
                fields=[FieldDefinition.from_dict(fd) for fd in d["fields"]],
            )
        except (KeyError, TypeError) as exc:
            raise SchemaError(f"Malformed table definition: {d!r}") from exc


def validate_flags(flags: Any) -> None:
    """Reject flag strings that are not made of known flag characters."""
    if not isinstance(flags, str):
        raise InvalidName(flags, "expected a string")
    if SEPARATOR in flags:
        raise InvalidName(flags, f"must not contain '{SEPARATOR}'")
    unknown = set(flags) - VALID_FLAGS
    if unknown:
        raise InvalidName(flags, f"unknown flags {''.join(sorted(unknown))!r}")


def validate_name(name: Any) -> None:
    """Reject table/field names that are blank or contain the separator."""
    if not isinstance(name, str):
        raise InvalidName(name, "expected a string")
    if SEPARATOR in name:
        raise InvalidName(name, f"must not contain '{SEPARATOR}'")
    if not name.strip():
        raise InvalidName(name, "name is required")


class SchemaBuilder:
    """Incrementally builds a schema and exports it as an empty database.

    Every add_* method returns the builder so calls can be chained::

        (SchemaBuilder()
            .add_table("users")
            .add_primary_key("id", TypeId.INTEGER, "a")
            .add_field("name", TypeId.STRING, "r")
            .export_to_file("app.json"))
    """

    def __init__(self, registry: TypeRegistry | None = None) -> None:
        """Initialize an empty builder.

        Args:
            registry: Registry that field type ids are checked against; the
                stock types by default.
        """
        self._registry = registry if registry is not None else TypeRegistry()
        self._tables: list[TableDefinition] = []
        self._current: TableDefinition | None = None

    @property
    def tables(self) -> tuple[TableDefinition, ...]:
        return tuple(self._tables)

    def _current_table(self) -> TableDefinition:
        if self._current is None:
            raise NoCurrentTable()
        return self._current

    def get_table(self, name: str) -> TableDefinition:
        """Get a table defined so far, raising TableNotFound if absent."""
        for table in self._tables:
            if table.name == name:
                return table
        raise TableNotFound(name)

    def add_table(self, name: str) -> SchemaBuilder:
        """Start a new table; following fields are added to it."""
        validate_name(name)
        self._current = TableDefinition(name=name)
        self._tables.append(self._current)
        return self

    def add_field(self, name: str, type_id: TypeId | str, flags: str = "") -> SchemaBuilder:
        """Add a field to the current table.

        Raises:
            UnknownType: If the builder's registry does not know type_id.
        """
        table = self._current_table()
        validate_name(name)
        validate_name(type_id)
        self._registry.resolve(type_id)
        validate_flags(flags)
        table.fields.append(FieldDefinition(name=name, type_id=type_id_name(type_id), flags=flags))
        return self

    def add_foreign_key(
        self, name: str, target_table: str, target_field: str, flags: str = ""
    ) -> SchemaBuilder:
        """Add a field referencing a field of a table defined earlier.

        The new field takes the type of the referenced field.
        """
        table = self._current_table()
        validate_name(name)
        validate_flags(flags)
        target = self.get_table(target_table).get_field(target_field)
        if target is None:
            raise FieldNotFound(target_table, target_field)
        table.fields.append(
            FieldDefinition(
                name=name,
                type_id=target.type_id,
                flags=flags,
                foreign_key=(target_table, target_field),
            )
        )
        return self

    def add_primary_key(self, name: str, type_id: TypeId | str, flags: str = "") -> SchemaBuilder:
        """Add a field flagged constant, required and unique."""
        return self.add_field(name, type_id, PRIMARY_KEY_FLAGS + flags)

    def validate(self) -> None:
        """Check that every table has a primary key."""
        for table in self._tables:
            if table.primary_key is None:
                raise MissingPrimaryKey(table.name)

    def to_dict(self) -> list[dict[str, Any]]:
        """Serialize the schema as stored in a document."""
        return [table.to_dict() for table in self._tables]

    def build_document(self) -> dict[str, Any]:
        """Validate the schema and return an empty document for it."""
        self.validate()
        return build_document(self.to_dict())

    def export_to_file(self, path: Path | str) -> None:
        """Validate the schema and write an empty database file for it."""
        document = self.build_document()
        write_document(path, document)
        logger.info("Exported schema with %d tables to %s", len(self._tables), path)
