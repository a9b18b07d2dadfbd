"""Whole-file persistence of jsdb documents."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from jsdb.errors import ParseError, SerializationError, StorageError

logger = logging.getLogger(__name__)

# Top-level sections of a document
SCHEMA_KEY = "schema"
META_KEY = "meta"
DATA_KEY = "data"
AUTOINCREMENT_KEY = "autoincrement"


def build_document(schema: list[dict[str, Any]]) -> dict[str, Any]:
    """Build an empty document for a serialized schema.

    Args:
        schema: Serialized table definitions, as produced by SchemaBuilder.to_dict().

    Returns:
        A document with empty metadata and one empty row list per table.
    """
    return {
        SCHEMA_KEY: schema,
        META_KEY: {},
        DATA_KEY: {table["tableName"]: [] for table in schema},
    }


def read_document(path: Path | str) -> dict[str, Any]:
    """Read and parse a document file.

    Args:
        path: Location of the database file.

    Returns:
        The parsed document. A missing "meta" section is filled in.

    Raises:
        StorageError: If the file cannot be read.
        ParseError: If the file is not JSON or lacks the schema/data sections.
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as exc:
        logger.error("Error parsing %s: %s", path, exc)
        raise ParseError(f"Malformed database file {path}: {exc}", str(path)) from exc
    except (OSError, UnicodeDecodeError) as exc:
        logger.error("Error reading %s: %s", path, exc)
        raise StorageError(f"Cannot read database file {path}: {exc}", str(path)) from exc

    if (
        not isinstance(document, dict)
        or not isinstance(document.get(SCHEMA_KEY), list)
        or not isinstance(document.get(DATA_KEY), dict)
    ):
        logger.error("Error parsing %s: not a jsdb document", path)
        raise ParseError(f"{path} is not a jsdb document", str(path))
    if not isinstance(document.get(META_KEY), dict):
        document[META_KEY] = {}
    return document


def write_document(path: Path | str, document: dict[str, Any]) -> None:
    """Replace the contents of a document file.

    The document is written to a temporary sibling first and then moved over
    the target, so readers never observe a partially written file.

    Raises:
        SerializationError: If the document holds values JSON cannot encode.
        StorageError: If the file cannot be written.
    """
    path = Path(path)
    try:
        payload = json.dumps(document, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Document cannot be encoded as JSON: {exc}") from exc

    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as exc:
        logger.error("Error writing %s: %s", path, exc)
        tmp_path.unlink(missing_ok=True)
        raise StorageError(f"Cannot write database file {path}: {exc}", str(path)) from exc
