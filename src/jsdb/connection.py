"""Connection to a database file: row creation, queries and transactional commits."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from jsdb.bean import Bean
from jsdb.descriptors import FieldDescriptor, TableDescriptor, compile_schema
from jsdb.errors import (
    ForeignKeyConstraintError,
    InvalidArgument,
    JsDbError,
    MissingPrimaryKey,
    PrimaryKeyConstraintError,
    TableNotFound,
    UnsupportedComparison,
)
from jsdb.schema import field_key
from jsdb.storage import (
    AUTOINCREMENT_KEY,
    DATA_KEY,
    META_KEY,
    SCHEMA_KEY,
    read_document,
    write_document,
)
from jsdb.types import TypeRegistry

logger = logging.getLogger(__name__)

Predicate = Callable[[Bean], Any]

# Row index meaning "append to the table"
APPEND = -1


def _is_key_value(value: Any) -> bool:
    return isinstance(value, (int, str))


def strictest_equals(left: Any, right: Any) -> bool:
    """Compare two key values by type and value.

    Only integers, strings and booleans can be compared; True never equals 1.

    Raises:
        UnsupportedComparison: If either value is of another type.
    """
    if not _is_key_value(left) or not _is_key_value(right):
        raise UnsupportedComparison(left, right)
    return type(left) is type(right) and left == right


def find_row_index(rows: list[list[Any]], column: int, value: Any) -> int:
    """Return the index of the first row holding value in column, or APPEND.

    Stored nulls never match.
    """
    for i, row in enumerate(rows):
        if row[column] is None:
            continue
        if strictest_equals(value, row[column]):
            return i
    return APPEND


@dataclass
class Transaction:
    """State of one commit: the rollback snapshot and the writes applied so far."""

    snapshot: dict[str, list[list[Any]]]
    rows: list[list[Any]] = field(default_factory=list)
    targets: list[tuple[str, int]] = field(default_factory=list)

    @classmethod
    def begin(cls, data: dict[str, list[list[Any]]]) -> Transaction:
        return cls(snapshot=copy.deepcopy(data))

    def write(self, data: dict[str, list[list[Any]]], table: str, index: int, row: list[Any]) -> None:
        """Append (index == APPEND) or overwrite a row and record the write."""
        self.rows.append(row)
        self.targets.append((table, index))
        if index == APPEND:
            data[table].append(row)
        else:
            data[table][index] = row

    def rollback(self, document: dict[str, Any]) -> None:
        document[DATA_KEY] = self.snapshot


class Connection:
    """An open database file.

    The whole document is held in memory. Queries read from it directly and
    commit() rewrites the file. All operations on one connection are
    serialized by a re-entrant lock.
    """

    def __init__(self, path: Path | str, registry: TypeRegistry | None = None) -> None:
        """Initialize a connection. Call load() before using it.

        Args:
            path: Location of the database file.
            registry: Registry resolving field types; the stock types by default.
        """
        self._path = Path(path)
        self._registry = registry if registry is not None else TypeRegistry()
        self._document: dict[str, Any] | None = None
        self._tables: dict[str, TableDescriptor] = {}
        self._lock = threading.RLock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def registry(self) -> TypeRegistry:
        return self._registry

    @property
    def tables(self) -> list[str]:
        """Names of the tables in schema order."""
        return list(self._tables)

    def load(self) -> Connection:
        """Read the database file and compile its schema.

        On failure the connection keeps whatever state it had before.

        Raises:
            StorageError: If the file cannot be read.
            ParseError: If the file is not a jsdb document.
            SchemaError: If the embedded schema cannot be compiled.
        """
        with self._lock:
            document = read_document(self._path)
            tables = compile_schema(document[SCHEMA_KEY], self._registry)
            for name in tables:
                document[DATA_KEY].setdefault(name, [])
            self._document = document
            self._tables = tables
            logger.debug("Loaded %s with tables %s", self._path, list(tables))
        return self

    reload = load

    def _require_document(self) -> dict[str, Any]:
        if self._document is None:
            raise JsDbError(f"Connection to {self._path} is not loaded")
        return self._document

    def descriptor(self, table_name: str) -> TableDescriptor:
        """Get the descriptor of a table, raising TableNotFound if absent."""
        self._require_document()
        td = self._tables.get(table_name)
        if td is None:
            raise TableNotFound(table_name)
        return td

    def dump(self) -> dict[str, Any]:
        """Return a deep copy of the in-memory document."""
        with self._lock:
            return copy.deepcopy(self._require_document())

    def count(self, table_name: str) -> int:
        """Return the number of stored rows in a table."""
        with self._lock:
            self.descriptor(table_name)
            return len(self._require_document()[DATA_KEY][table_name])

    def create_row(self, table_name: str) -> Bean:
        """Create an empty bean, filling integer autoincrement fields."""
        with self._lock:
            td = self.descriptor(table_name)
            bean = Bean.create(td)
            for fd in td.fields:
                if fd.is_autoincrement:
                    bean.set(fd.name, self._next_autoincrement(fd))
            return bean

    def _next_autoincrement(self, fd: FieldDescriptor) -> int:
        meta = self._require_document()[META_KEY]
        counters = meta.setdefault(AUTOINCREMENT_KEY, {})
        key = field_key(fd.table_name, fd.name)
        value = counters.get(key, 0)
        counters[key] = value + 1
        logger.debug("Allocated %s = %d", key, value)
        return value

    def _scan(self, table_name: str, predicate: Predicate):
        if not callable(predicate):
            raise InvalidArgument("predicate must be a callable taking one Bean argument")
        td = self.descriptor(table_name)
        for row in list(self._require_document()[DATA_KEY][table_name]):
            bean = Bean.from_row(td, row)
            if predicate(bean):
                yield bean

    def first(self, table_name: str, predicate: Predicate) -> Bean | None:
        """Return the first bean in storage order matching predicate, or None."""
        with self._lock:
            return next(self._scan(table_name, predicate), None)

    def all(self, table_name: str, predicate: Predicate) -> list[Bean]:
        """Return every bean matching predicate, in storage order."""
        with self._lock:
            return list(self._scan(table_name, predicate))

    def commit(self, *beans: Bean) -> None:
        """Validate and store beans, then rewrite the database file.

        Beans read from storage (or committed before) overwrite the stored
        row with the same primary key; new beans are appended, and a new bean
        whose primary key is already stored is rejected. Key constraints are
        only checked for appended rows. Each bean sees the writes of the beans
        before it in the same call. If anything fails, the in-memory data is
        restored to its state before the call and the file is left untouched.

        Raises:
            InvalidArgument: If an argument is not a Bean.
            SerializationError: If a bean holds a value its field cannot store.
            ConstraintError: If an appended row violates a key constraint.
            StorageError: If the file cannot be written.
        """
        with self._lock:
            document = self._require_document()
            transaction = Transaction.begin(document[DATA_KEY])
            try:
                for bean in beans:
                    self._stage(transaction, document[DATA_KEY], bean)
                write_document(self._path, document)
            except Exception as exc:
                transaction.rollback(document)
                logger.warning("Aborted transaction, restored previous state: %s", exc)
                raise
            for bean in beans:
                bean._mark_stored()
            logger.debug("Committed %d rows to %s", len(transaction.rows), self._path)

    def _stage(self, transaction: Transaction, data: dict[str, Any], bean: Any) -> None:
        if not isinstance(bean, Bean):
            raise InvalidArgument(f"Could not commit non-bean {bean!r}")
        td = self.descriptor(bean.table_name)
        if td.primary_key is None:
            raise MissingPrimaryKey(td.name)
        row = bean.export()
        pk = td.get_field(td.primary_key)
        index = find_row_index(data[td.name], pk.index, row[pk.index])
        if index != APPEND and bean.is_new:
            raise PrimaryKeyConstraintError(td.name, pk.name, row[pk.index])
        if index == APPEND:
            self._check_insert(data, td, row)
        transaction.write(data, td.name, index, row)

    def _check_insert(self, data: dict[str, Any], td: TableDescriptor, row: list[Any]) -> None:
        for fd, value in zip(td.fields, row):
            if fd.is_primary_key:
                if find_row_index(data[td.name], fd.index, value) != APPEND:
                    raise PrimaryKeyConstraintError(td.name, fd.name, value)
            if fd.foreign_key is not None:
                if value is None and not fd.is_required:
                    continue
                target = self.descriptor(fd.foreign_key[0]).get_field(fd.foreign_key[1])
                if find_row_index(data[target.table_name], target.index, value) == APPEND:
                    raise ForeignKeyConstraintError(
                        td.name, fd.name, value, target.table_name, target.name
                    )
