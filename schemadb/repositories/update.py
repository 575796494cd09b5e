from __future__ import annotations

import logging
from pathlib import PurePosixPath, PureWindowsPath
from typing import Any, Sequence

from schemadb.core.exceptions import database_error
from schemadb.db.catalog import IDENTITY_COLUMN, VECTOR_INDEX_COLUMN, Attribute
from schemadb.db.session import Database
from schemadb.repositories.create import (
    check_sequence,
    check_time_series_value,
    check_value,
    dimension_key,
    group_rows,
    insert_rows,
    resolve_relation,
)
from schemadb.repositories.read import ElementRef, relation_attribute, resolve_id

_logger = logging.getLogger("schemadb.update")


def update_scalar_parameter(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    value: Any,
) -> None:
    attribute = db.attribute(collection_id, attribute_id, "scalar_parameter")
    element_id = resolve_id(db, collection_id, element)
    db.execute(
        f'UPDATE "{attribute.table}" SET "{attribute.id}" = :value WHERE "{IDENTITY_COLUMN}" = :id',
        {"value": check_value(attribute, value), "id": element_id},
    )


def _stored_row_keys(db: Database, attribute: Attribute, element_id: int) -> list[int]:
    key_column = f'"{VECTOR_INDEX_COLUMN}"' if attribute.is_vector else "rowid"
    rows = db.execute(
        f'SELECT {key_column} FROM "{attribute.table}" WHERE "{IDENTITY_COLUMN}" = :id ORDER BY {key_column}',
        {"id": element_id},
    )
    return [int(row[0]) for row in rows]


def _replace_group_member(
    db: Database,
    collection_id: str,
    attribute: Attribute,
    element_id: int,
    values: list[Any],
) -> None:
    """Overwrite one vector or set member of an element, keeping the group length."""
    group_kind = "vector" if attribute.is_vector else "set"
    row_keys = _stored_row_keys(db, attribute, element_id)
    if not row_keys:
        if not values:
            return
        collection = db.collection(collection_id)
        rows = group_rows(
            db,
            collection,
            group_kind,
            str(attribute.group_id),
            {attribute.id: values},
            element_id=element_id,
        )
        insert_rows(db, attribute.table, rows)
        return
    if len(row_keys) != len(values):
        database_error(
            f'The {group_kind} group "{attribute.group_id}" of collection "{collection_id}" currently holds '
            f"{len(row_keys)} values for element {element_id}; cannot set {len(values)} values of "
            f'"{attribute.id}". Delete the element and create it again to change the group length.'
        )
    key_column = VECTOR_INDEX_COLUMN if attribute.is_vector else "rowid"
    for row_key, value in zip(row_keys, values):
        if attribute.is_relation:
            stored = resolve_relation(db, attribute, value, element_id=element_id)
        else:
            stored = check_value(attribute, value)
        db.execute(
            f'UPDATE "{attribute.table}" SET "{attribute.id}" = :value '
            f'WHERE "{IDENTITY_COLUMN}" = :id AND {key_column} = :row_key',
            {"value": stored, "id": element_id, "row_key": row_key},
        )


def update_vector_parameters(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    values: Sequence[Any],
) -> None:
    attribute = db.attribute(collection_id, attribute_id, "vector_parameter")
    element_id = resolve_id(db, collection_id, element)
    _replace_group_member(db, collection_id, attribute, element_id, check_sequence(attribute, values))


def update_set_parameters(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    values: Sequence[Any],
) -> None:
    attribute = db.attribute(collection_id, attribute_id, "set_parameter")
    element_id = resolve_id(db, collection_id, element)
    _replace_group_member(db, collection_id, attribute, element_id, check_sequence(attribute, values))


def update_parameter(db: Database, collection_id: str, element: ElementRef, **values: Any) -> None:
    for attribute_id, value in values.items():
        attribute = db.attribute(collection_id, attribute_id)
        if attribute.kind == "scalar_parameter":
            update_scalar_parameter(db, collection_id, attribute_id, element, value)
        elif attribute.kind == "vector_parameter":
            update_vector_parameters(db, collection_id, attribute_id, element, value)
        elif attribute.kind == "set_parameter":
            update_set_parameters(db, collection_id, attribute_id, element, value)
        elif attribute.kind in ("scalar_relation", "vector_relation", "set_relation"):
            database_error(
                f'"{attribute_id}" of collection "{collection_id}" is a relation; use set_scalar_relation, '
                "set_vector_relation or set_set_relation."
            )
        elif attribute.kind == "time_series":
            database_error(
                f'"{attribute_id}" of collection "{collection_id}" is a time series; use add_time_series_row '
                "or update_time_series_row."
            )
        else:
            database_error(
                f'"{attribute_id}" of collection "{collection_id}" is a time series file; use set_time_series_file.'
            )


def set_scalar_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    element_from: ElementRef,
    element_to: ElementRef,
    relation_type: str,
) -> None:
    if isinstance(element_to, (list, tuple)):
        database_error(
            f'The relation "{relation_type}" from "{collection_from}" to "{collection_to}" takes a single element; '
            "use set_vector_relation or set_set_relation for lists."
        )
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, "scalar_relation")
    element_id = resolve_id(db, collection_from, element_from)
    target_id = resolve_relation(db, attribute, element_to, element_id=element_id)
    db.execute(
        f'UPDATE "{attribute.table}" SET "{attribute.id}" = :target WHERE "{IDENTITY_COLUMN}" = :id',
        {"target": target_id, "id": element_id},
    )


def set_vector_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    element_from: ElementRef,
    elements_to: Sequence[ElementRef],
    relation_type: str,
) -> None:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, "vector_relation")
    element_id = resolve_id(db, collection_from, element_from)
    _replace_group_member(db, collection_from, attribute, element_id, check_sequence(attribute, elements_to))


def set_set_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    element_from: ElementRef,
    elements_to: Sequence[ElementRef],
    relation_type: str,
) -> None:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, "set_relation")
    element_id = resolve_id(db, collection_from, element_from)
    _replace_group_member(db, collection_from, attribute, element_id, check_sequence(attribute, elements_to))


def validate_time_series_file_path(path: str) -> None:
    if path.startswith("~"):
        database_error(f'Time series file path "{path}" must not refer to a home directory.')
    if PurePosixPath(path).is_absolute() or PureWindowsPath(path).is_absolute() or PureWindowsPath(path).drive:
        database_error(
            f'Time series file path "{path}" must be relative to the directory of the database.'
        )


def set_time_series_file(db: Database, collection_id: str, **paths: Any) -> None:
    db.collection(collection_id)
    if not paths:
        database_error(f'No time series files given for collection "{collection_id}".')
    table: str | None = None
    for attribute_id, path in paths.items():
        attribute = db.attribute(collection_id, attribute_id, "time_series_file")
        if not isinstance(path, str):
            database_error(
                f'Time series file "{attribute_id}" takes a path string, got {type(path).__name__}: {path!r}.'
            )
        validate_time_series_file_path(path)
        table = attribute.table

    count = int(db.execute(f'SELECT COUNT(*) FROM "{table}"').scalar_one())
    if count > 1:
        database_error(f'Table "{table}" must hold a single row, found {count}.')
    if count == 0:
        column_list = ", ".join(f'"{name}"' for name in paths)
        placeholders = ", ".join(f":{name}" for name in paths)
        db.execute(f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})', paths)
    else:
        assignments = ", ".join(f'"{name}" = :{name}' for name in paths)
        db.execute(f'UPDATE "{table}" SET {assignments}', paths)
    _logger.debug("time series files set collection=%s attributes=%s", collection_id, sorted(paths))


def update_time_series_row(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    value: Any,
    **dimensions: Any,
) -> None:
    attribute = db.attribute(collection_id, attribute_id, "time_series")
    element_id = resolve_id(db, collection_id, element)
    key = dimension_key(attribute, dimensions)
    conditions = " AND ".join(f'"{name}" = :{name}' for name in key)
    params = {**key, IDENTITY_COLUMN: element_id}
    exists = db.execute(
        f'SELECT 1 FROM "{attribute.table}" WHERE "{IDENTITY_COLUMN}" = :{IDENTITY_COLUMN} AND {conditions}',
        params,
    ).first()
    if exists is None:
        database_error(
            f'Time series "{attribute_id}" of collection "{collection_id}" has no row for element {element_id} '
            f"at {dimensions}."
        )
    if attribute.is_relation:
        stored = resolve_relation(db, attribute, value, element_id=element_id)
    else:
        stored = check_time_series_value(attribute, value)
    db.execute(
        f'UPDATE "{attribute.table}" SET "{attribute.id}" = :_value '
        f'WHERE "{IDENTITY_COLUMN}" = :{IDENTITY_COLUMN} AND {conditions}',
        {**params, "_value": stored},
    )
