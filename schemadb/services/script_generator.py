from __future__ import annotations

import logging
import math
import numbers
from datetime import datetime
from pathlib import Path
from typing import Any

from schemadb.core.values import is_null
from schemadb.db.session import Database
from schemadb.repositories import read

_logger = logging.getLogger("schemadb.script_generator")

_HEADER = '''"""Rebuilds a database from its schema."""
import datetime
import math

from schemadb import (
    add_time_series_row,
    create_element,
    create_empty_db_from_schema,
    set_scalar_relation,
    set_set_relation,
    set_time_series_file,
    set_vector_relation,
)
'''


def _literal(value: Any) -> str:
    if isinstance(value, datetime):
        to_pydatetime = getattr(value, "to_pydatetime", None)
        if callable(to_pydatetime):
            value = to_pydatetime()
        return repr(datetime(value.year, value.month, value.day, value.hour, value.minute, value.second))
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_literal(item) for item in value) + "]"
    if isinstance(value, bool):
        return repr(value)
    if isinstance(value, numbers.Integral):
        return repr(int(value))
    if isinstance(value, numbers.Real):
        value = float(value)
        if math.isnan(value):
            return "math.nan"
        if math.isinf(value):
            return "math.inf" if value > 0 else "-math.inf"
        return repr(value)
    return repr(value)


def _call(function: str, *args: Any, **kwargs: Any) -> str:
    parts = [_literal(arg) for arg in args]
    parts.extend(f"{name}={_literal(value)}" for name, value in kwargs.items())
    return f"{function}(db, {', '.join(parts)})"


def _element_statements(db: Database, collection_id: str) -> list[str]:
    collection = db.collection(collection_id)
    statements: list[str] = []
    for element_id in read.element_ids(db, collection_id):
        values: dict[str, Any] = {"id": element_id}
        for attribute_id in collection.scalar_parameters:
            value = read.read_scalar_parameter(db, collection_id, attribute_id, element_id)
            if not is_null(value):
                values[attribute_id] = value
        for attribute_id in collection.vector_parameters:
            vector = read.read_vector_parameter(db, collection_id, attribute_id, element_id)
            if vector:
                values[attribute_id] = vector
        for attribute_id in collection.set_parameters:
            members = read.read_set_parameter(db, collection_id, attribute_id, element_id)
            if members:
                values[attribute_id] = members
        statements.append(_call("create_element", collection_id, **values))
    return statements


def _relation_statements(db: Database, collection_id: str) -> list[str]:
    collection = db.collection(collection_id)
    statements: list[str] = []
    for element_id in read.element_ids(db, collection_id):
        for attribute in collection.scalar_relations.values():
            target, relation_type = str(attribute.relation_collection), str(attribute.relation_type)
            target_id = read.read_scalar_relation(db, collection_id, target, relation_type, element_id, as_ids=True)
            if not is_null(target_id):
                statements.append(
                    _call("set_scalar_relation", collection_id, target, element_id, target_id, relation_type)
                )
        for attribute in collection.vector_relations.values():
            target, relation_type = str(attribute.relation_collection), str(attribute.relation_type)
            target_ids = read.read_vector_relation(db, collection_id, target, relation_type, element_id, as_ids=True)
            if target_ids:
                statements.append(
                    _call("set_vector_relation", collection_id, target, element_id, target_ids, relation_type)
                )
        for attribute in collection.set_relations.values():
            target, relation_type = str(attribute.relation_collection), str(attribute.relation_type)
            target_ids = read.read_set_relation(db, collection_id, target, relation_type, element_id, as_ids=True)
            if target_ids:
                statements.append(
                    _call("set_set_relation", collection_id, target, element_id, target_ids, relation_type)
                )
    return statements


def _time_series_statements(db: Database, collection_id: str) -> list[str]:
    collection = db.collection(collection_id)
    statements: list[str] = []
    files = {
        attribute_id: read.read_time_series_file(db, collection_id, attribute_id)
        for attribute_id in collection.time_series_files
    }
    files = {attribute_id: path for attribute_id, path in files.items() if path}
    if files:
        statements.append(_call("set_time_series_file", collection_id, **files))

    for element_id in read.element_ids(db, collection_id):
        for attribute in collection.time_series.values():
            frame = read.read_time_series_table(db, collection_id, attribute.id, element_id)
            for record in frame.to_dict(orient="records"):
                value = record.pop(attribute.id)
                if is_null(value):
                    continue
                statements.append(
                    _call("add_time_series_row", collection_id, attribute.id, element_id, value, **record)
                )
    return statements


def generate_script_from_database(
    db: Database,
    script_path: str | Path,
    reconstructed_path: str | Path,
    *,
    schema_path: str | Path,
) -> Path:
    """Write a Python script that rebuilds ``db`` into ``reconstructed_path``.

    The script creates every element with its explicit id and parameters,
    then sets the relations by id, then adds time series files and rows.
    """
    collection_ids = list(db.catalog)
    lines = [
        _HEADER,
        f"db = create_empty_db_from_schema({str(reconstructed_path)!r}, {str(schema_path)!r}, force=True)",
        "",
    ]
    for phase in (_element_statements, _relation_statements, _time_series_statements):
        for collection_id in collection_ids:
            lines.extend(phase(db, collection_id))
    lines.extend(["", "db.close()", ""])

    target = Path(script_path)
    target.write_text("\n".join(lines), encoding="utf-8")
    _logger.info("reconstruction script written path=%s statements=%d", target, len(lines) - 5)
    return target
