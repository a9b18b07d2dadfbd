"""Tool for dumping table contents to the console."""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from jsdb.connection import Connection
from jsdb.descriptors import TableDescriptor
from jsdb.errors import JsDbError
from jsdb.storage import DATA_KEY


def format_value(value: Any) -> str:
    """Format a logical value for display."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return repr(value)
    if isinstance(value, float):
        return f"{value:.6g}"
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _stored_rows(conn: Connection, table_name: str, limit: int | None) -> list[list[Any]]:
    rows = conn.dump()[DATA_KEY][table_name]
    return rows if limit is None else rows[:limit]


def dump_table_raw(conn: Connection, td: TableDescriptor, limit: int | None = None) -> None:
    """Print stored rows as a column table."""
    count = conn.count(td.name)
    print(f"Table: {td.name}")
    print("-" * 60)
    print(f"Records: {count}")
    print()

    headers = td.field_names()
    print(f"{'#':>4}  " + "  ".join(f"{h:>16}" for h in headers))
    print("-" * (6 + 18 * len(headers)))
    for i, row in enumerate(_stored_rows(conn, td.name, limit)):
        print(f"{i:>4}  " + "  ".join(f"{json.dumps(v, ensure_ascii=False):>16}" for v in row))

    if limit is not None and count > limit:
        print(f"... ({count - limit} more records)")


def dump_table_resolved(conn: Connection, td: TableDescriptor, limit: int | None = None) -> None:
    """Print rows as beans, one field per line."""
    beans = conn.all(td.name, lambda b: True)
    print(f"Table: {td.name}")
    print("-" * 60)
    print(f"Records: {len(beans)}")
    print()

    shown = beans if limit is None else beans[:limit]
    for i, bean in enumerate(shown):
        print(f"[{i}]")
        for fd in td:
            print(f"    {fd.name}: {format_value(bean.get(fd.name))}")
        print()

    if limit is not None and len(beans) > limit:
        print(f"... ({len(beans) - limit} more records)")


def dump_table_json(conn: Connection, td: TableDescriptor, limit: int | None = None) -> None:
    """Print stored rows as JSON objects keyed by field name."""
    names = td.field_names()
    output = {
        "table": td.name,
        "count": conn.count(td.name),
        "records": [dict(zip(names, row)) for row in _stored_rows(conn, td.name, limit)],
    }
    print(json.dumps(output, indent=2, ensure_ascii=False))


def list_tables(conn: Connection) -> None:
    """List all tables with their primary keys and row counts."""
    print("Available tables:")
    print("-" * 40)
    for name in conn.tables:
        td = conn.descriptor(name)
        pk = td.primary_key or "-"
        print(f"  {name:<20} {pk:<12} {conn.count(name):>6} records")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Dump jsdb table contents to the console"
    )
    parser.add_argument(
        "db_file",
        type=Path,
        help="Path to the database file",
    )
    parser.add_argument(
        "table",
        nargs="?",
        help="Name of the table to dump (omit to list tables)",
    )
    parser.add_argument(
        "-r", "--raw",
        action="store_true",
        help="Show stored values instead of deserialized ones",
    )
    parser.add_argument(
        "-j", "--json",
        action="store_true",
        help="Output as JSON",
    )
    parser.add_argument(
        "-n", "--limit",
        type=int,
        default=None,
        help="Limit number of records to display",
    )

    args = parser.parse_args(argv)

    if not args.db_file.exists():
        print(f"Error: Database file not found: {args.db_file}", file=sys.stderr)
        return 1

    try:
        conn = Connection(args.db_file).load()
    except JsDbError as e:
        print(f"Error loading data: {e}", file=sys.stderr)
        return 1

    if args.table is None:
        list_tables(conn)
        return 0

    if args.table not in conn.tables:
        print(f"Error: Unknown table: {args.table}", file=sys.stderr)
        print("\nAvailable tables:")
        list_tables(conn)
        return 1

    td = conn.descriptor(args.table)
    try:
        if args.json:
            dump_table_json(conn, td, args.limit)
        elif args.raw:
            dump_table_raw(conn, td, args.limit)
        else:
            dump_table_resolved(conn, td, args.limit)
    except JsDbError as e:
        print(f"Error reading {args.table}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
