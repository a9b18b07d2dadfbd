"""In-memory typed rows."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from jsdb.descriptors import TableDescriptor
from jsdb.errors import SerializationError


def _format_value(value: Any) -> str:
    if value is None:
        return "<empty>"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


class Bean:
    """A mutable row of one table, holding logical (deserialized) values.

    Values are not type-checked when set; export() is the single place where
    every field is checked against its type. A bean has no link to the
    connection it came from and is only persisted when passed to commit().
    """

    __slots__ = ("_descriptor", "_values", "_stored")

    def __init__(self, descriptor: TableDescriptor, values: Sequence[Any] | None = None) -> None:
        self._descriptor = descriptor
        if values is not None and len(values) == descriptor.field_count:
            self._values: list[Any] = list(values)
        else:
            self._values = [None] * descriptor.field_count
        self._stored = False

    @classmethod
    def create(cls, descriptor: TableDescriptor) -> Bean:
        """Create a bean with every field unset."""
        return cls(descriptor)

    @classmethod
    def from_row(cls, descriptor: TableDescriptor, row: Sequence[Any]) -> Bean:
        """Create a bean from a stored positional row.

        Raises:
            SerializationError: If the row has the wrong length or holds a value
                its field's type cannot read.
        """
        if not isinstance(row, (list, tuple)) or len(row) != descriptor.field_count:
            raise SerializationError(
                f"Stored row {row!r} does not match the {descriptor.field_count} "
                f"fields of table {descriptor.name}",
                table=descriptor.name,
                value=row,
            )
        values: list[Any] = []
        for fd, stored in zip(descriptor.fields, row):
            if stored is None:
                values.append(None)
                continue
            if not fd.type_def.can_deserialize(stored):
                raise SerializationError(
                    f"Cannot read stored value {stored!r} as type {fd.type_def.type_id} "
                    f"for field {fd.name} of table {fd.table_name}",
                    table=fd.table_name,
                    field=fd.name,
                    type_id=fd.type_def.type_id,
                    value=stored,
                )
            values.append(fd.type_def.deserialize(stored))
        bean = cls(descriptor, values)
        bean._stored = True
        return bean

    @property
    def descriptor(self) -> TableDescriptor:
        return self._descriptor

    @property
    def table_name(self) -> str:
        return self._descriptor.name

    @property
    def is_new(self) -> bool:
        """True until the bean has been committed or was read from storage."""
        return not self._stored

    def _mark_stored(self) -> None:
        self._stored = True

    def get(self, name: str) -> Any:
        """Return the value of a field, or None if it is unset."""
        return self._values[self._descriptor.get_field(name).index]

    def set(self, name: str, value: Any) -> Bean:
        """Set the value of a field."""
        self._values[self._descriptor.get_field(name).index] = value
        return self

    def set_multiple(self, values: Mapping[str, Any]) -> Bean:
        """Set several fields from a name -> value mapping."""
        for name, value in values.items():
            self.set(name, value)
        return self

    def export(self) -> list[Any]:
        """Serialize the bean into a stored positional row.

        Unset fields are stored as null unless the field is required.

        Raises:
            SerializationError: For the first field whose value does not fit
                its type.
        """
        row: list[Any] = []
        for fd, value in zip(self._descriptor.fields, self._values):
            if value is None and not fd.is_required:
                row.append(None)
                continue
            if not fd.type_def.can_serialize(value):
                raise SerializationError(
                    f"Cannot serialize value {value!r} as type {fd.type_def.type_id} "
                    f"for field {fd.name} of table {fd.table_name}",
                    table=fd.table_name,
                    field=fd.name,
                    type_id=fd.type_def.type_id,
                    value=value,
                )
            row.append(fd.type_def.serialize(value))
        return row

    def as_dict(self) -> dict[str, Any]:
        """Return the logical values keyed by field name."""
        return {fd.name: value for fd, value in zip(self._descriptor.fields, self._values)}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Bean):
            return NotImplemented
        return self.table_name == other.table_name and self._values == other._values

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        fields = ", ".join(
            f"{fd.name}={_format_value(value)}"
            for fd, value in zip(self._descriptor.fields, self._values)
        )
        return f"{self.table_name}{{{fields}}}"
