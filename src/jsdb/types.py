"""Type definitions for the jsdb field type system."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from jsdb.errors import SerializationError, UnknownType


class TypeId(str, Enum):
    """Identifiers of the stock field types, as stored in a schema."""

    BINARY = "Binary"
    BOOLEAN = "Boolean"
    DATE = "Date"
    INTEGER = "Integer"
    NUMBER = "Number"
    STRING = "String"


def type_id_name(type_id: TypeId | str) -> str:
    """Return the plain string form of a type identifier."""
    if isinstance(type_id, TypeId):
        return type_id.value
    return type_id


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# Epoch for the Date type; stored values are milliseconds relative to it
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_MILLISECOND = timedelta(milliseconds=1)
_MIN_MILLISECONDS = (datetime.min.replace(tzinfo=timezone.utc) - _EPOCH) // _MILLISECOND
_MAX_MILLISECONDS = (datetime.max.replace(tzinfo=timezone.utc) - _EPOCH) // _MILLISECOND


@dataclass(frozen=True)
class TypeDefinition:
    """Base class for all type definitions.

    A type definition converts between the logical value a bean holds and the
    JSON primitive stored in the document. The base implementation passes
    values through unchanged in both directions; concrete types override the
    checks and conversions they need.
    """

    type_id: str

    def can_serialize(self, value: Any) -> bool:
        """Return whether a logical value may be stored as this type."""
        return True

    def serialize(self, value: Any) -> Any:
        """Convert a logical value to its stored form."""
        return value

    def can_deserialize(self, stored: Any) -> bool:
        """Return whether a stored value can be read back as this type."""
        return True

    def deserialize(self, stored: Any) -> Any:
        """Convert a stored value back to its logical form."""
        return stored


@dataclass(frozen=True)
class StringTypeDefinition(TypeDefinition):
    type_id: str = TypeId.STRING.value

    def can_serialize(self, value: Any) -> bool:
        return isinstance(value, str)

    def can_deserialize(self, stored: Any) -> bool:
        return isinstance(stored, str)


@dataclass(frozen=True)
class BooleanTypeDefinition(TypeDefinition):
    type_id: str = TypeId.BOOLEAN.value

    def can_serialize(self, value: Any) -> bool:
        return isinstance(value, bool)

    def can_deserialize(self, stored: Any) -> bool:
        return isinstance(stored, bool)


@dataclass(frozen=True)
class IntegerTypeDefinition(TypeDefinition):
    """Whole numbers. Booleans are rejected even though bool subclasses int.

    Stored whole-number floats such as 5.0 are read back as ints.
    """

    type_id: str = TypeId.INTEGER.value

    def can_serialize(self, value: Any) -> bool:
        return _is_int(value)

    def can_deserialize(self, stored: Any) -> bool:
        return _is_int(stored) or (isinstance(stored, float) and stored.is_integer())

    def deserialize(self, stored: Any) -> int:
        return int(stored)


@dataclass(frozen=True)
class NumberTypeDefinition(TypeDefinition):
    """Finite real numbers (int or float, never NaN or infinity)."""

    type_id: str = TypeId.NUMBER.value

    def can_serialize(self, value: Any) -> bool:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        try:
            return math.isfinite(value)
        except OverflowError:
            return False

    def can_deserialize(self, stored: Any) -> bool:
        return self.can_serialize(stored)


@dataclass(frozen=True)
class DateTypeDefinition(TypeDefinition):
    """Points in time, stored as integer milliseconds since the Unix epoch.

    Naive datetimes are taken to be UTC. Deserialized values are always
    timezone-aware UTC datetimes; sub-millisecond precision is truncated.
    """

    type_id: str = TypeId.DATE.value

    def can_serialize(self, value: Any) -> bool:
        if not isinstance(value, datetime):
            return False
        return _MIN_MILLISECONDS <= self.serialize(value) <= _MAX_MILLISECONDS

    def serialize(self, value: datetime) -> int:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return (value - _EPOCH) // _MILLISECOND

    def can_deserialize(self, stored: Any) -> bool:
        return _is_int(stored) and _MIN_MILLISECONDS <= stored <= _MAX_MILLISECONDS

    def deserialize(self, stored: int) -> datetime:
        return _EPOCH + timedelta(milliseconds=stored)


@dataclass(frozen=True)
class BinaryTypeDefinition(TypeDefinition):
    """Binary payloads. No storage format exists yet, so every value is refused."""

    type_id: str = TypeId.BINARY.value

    def can_serialize(self, value: Any) -> bool:
        return False

    def serialize(self, value: Any) -> Any:
        raise SerializationError(
            "Binary values cannot be stored yet", type_id=self.type_id, value=value
        )

    def can_deserialize(self, stored: Any) -> bool:
        return False

    def deserialize(self, stored: Any) -> Any:
        raise SerializationError(
            "Binary values cannot be read yet", type_id=self.type_id, value=stored
        )


STOCK_TYPES: tuple[TypeDefinition, ...] = (
    BinaryTypeDefinition(),
    BooleanTypeDefinition(),
    DateTypeDefinition(),
    IntegerTypeDefinition(),
    NumberTypeDefinition(),
    StringTypeDefinition(),
)


class TypeRegistry:
    """Registry of all known field types, keyed by type id."""

    def __init__(self) -> None:
        self._types: dict[str, TypeDefinition] = {}
        self._register_stock_types()

    def _register_stock_types(self) -> None:
        """Register the built-in field types."""
        for type_def in STOCK_TYPES:
            self._types[type_def.type_id] = type_def

    def register(self, type_def: TypeDefinition) -> None:
        """Register a custom type definition."""
        if type_def.type_id in self._types:
            raise ValueError(f"Type '{type_def.type_id}' is already defined")
        self._types[type_def.type_id] = type_def

    def get(self, type_id: TypeId | str) -> TypeDefinition | None:
        """Get a type by id."""
        return self._types.get(type_id_name(type_id))

    def resolve(self, type_id: TypeId | str) -> TypeDefinition:
        """Get a type by id, raising UnknownType if it is not registered."""
        if not isinstance(type_id, str):
            raise UnknownType(type_id)
        type_def = self._types.get(type_id_name(type_id))
        if type_def is None:
            raise UnknownType(type_id)
        return type_def

    def list_types(self) -> list[str]:
        """List all registered type ids."""
        return list(self._types.keys())

    def __contains__(self, type_id: object) -> bool:
        if not isinstance(type_id, str):
            return False
        return type_id_name(type_id) in self._types
