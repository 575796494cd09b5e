from __future__ import annotations

import numbers
from datetime import datetime
from typing import Any

import pandas as pd

from schemadb.core.exceptions import database_error
from schemadb.core.values import INTEGER_NULL, STRING_NULL, from_db_value, matches_type, null_value, type_name
from schemadb.db.catalog import (
    IDENTITY_COLUMN,
    LABEL_COLUMN,
    VECTOR_INDEX_COLUMN,
    Attribute,
    AttributeKind,
    relation_attribute_id,
)
from schemadb.db.session import Database

ElementRef = str | int


def number_of_elements(db: Database, collection_id: str) -> int:
    collection = db.collection(collection_id)
    return int(db.execute(f'SELECT COUNT(*) FROM "{collection.table}"').scalar_one())


def element_ids(db: Database, collection_id: str) -> list[int]:
    collection = db.collection(collection_id)
    rows = db.execute(f'SELECT "{IDENTITY_COLUMN}" FROM "{collection.table}" ORDER BY "{IDENTITY_COLUMN}"')
    return [int(row[0]) for row in rows]


def get_id(db: Database, collection_id: str, label: str) -> int:
    collection = db.collection(collection_id)
    if not collection.has_label:
        database_error(f'Collection "{collection_id}" has no label column; refer to its elements by id.')
    row = db.execute(
        f'SELECT "{IDENTITY_COLUMN}" FROM "{collection.table}" WHERE "{LABEL_COLUMN}" = :label',
        {"label": label},
    ).first()
    if row is None:
        database_error(f'Element with label "{label}" does not exist in collection "{collection_id}".')
    return int(row[0])


def get_label(db: Database, collection_id: str, element_id: int) -> str:
    collection = db.collection(collection_id)
    if not collection.has_label:
        database_error(f'Collection "{collection_id}" has no label column.')
    row = db.execute(
        f'SELECT "{LABEL_COLUMN}" FROM "{collection.table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": element_id},
    ).first()
    if row is None:
        database_error(f'Element with id {element_id} does not exist in collection "{collection_id}".')
    return str(row[0])


def resolve_id(db: Database, collection_id: str, element: ElementRef) -> int:
    if isinstance(element, str):
        return get_id(db, collection_id, element)
    if isinstance(element, bool) or not isinstance(element, numbers.Integral):
        database_error(
            f'Elements of collection "{collection_id}" are referred to by label or id, got {type(element).__name__}.'
        )
    collection = db.collection(collection_id)
    row = db.execute(
        f'SELECT 1 FROM "{collection.table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": int(element)},
    ).first()
    if row is None:
        database_error(f'Element with id {int(element)} does not exist in collection "{collection_id}".')
    return int(element)


def labels_by_id(db: Database, collection_id: str) -> dict[int, str]:
    collection = db.collection(collection_id)
    if not collection.has_label:
        database_error(
            f'Collection "{collection_id}" has no label column; read relations to it with as_ids=True.'
        )
    rows = db.execute(f'SELECT "{IDENTITY_COLUMN}", "{LABEL_COLUMN}" FROM "{collection.table}"')
    return {int(row[0]): str(row[1]) for row in rows}


def relation_attribute(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    *kinds: AttributeKind,
) -> Attribute:
    db.collection(collection_to)
    attribute_id = relation_attribute_id(collection_to, relation_type)
    if attribute_id not in db.collection(collection_from).attributes:
        database_error(
            f'Relation type "{relation_type}" from collection "{collection_from}" to "{collection_to}" does not exist.'
        )
    return db.attribute(collection_from, attribute_id, *kinds)


def resolve_default(attribute: Attribute, default: Any) -> Any:
    if default is None:
        return null_value(attribute.type)
    if not matches_type(default, attribute.type):
        database_error(
            f'Default value for attribute "{attribute.id}" must be a {type_name(attribute.type)}, '
            f"got {type(default).__name__}: {default!r}."
        )
    return default


def read_scalar_parameters(
    db: Database,
    collection_id: str,
    attribute_id: str,
    *,
    default: Any = None,
) -> list[Any]:
    attribute = db.attribute(collection_id, attribute_id, "scalar_parameter")
    missing = resolve_default(attribute, default)
    rows = db.execute(f'SELECT "{attribute.id}" FROM "{attribute.table}" ORDER BY "{IDENTITY_COLUMN}"')
    return [from_db_value(row[0], attribute.type, missing) for row in rows]


def read_scalar_parameter(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    *,
    default: Any = None,
) -> Any:
    attribute = db.attribute(collection_id, attribute_id, "scalar_parameter")
    missing = resolve_default(attribute, default)
    element_id = resolve_id(db, collection_id, element)
    raw = db.execute(
        f'SELECT "{attribute.id}" FROM "{attribute.table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": element_id},
    ).scalar_one()
    return from_db_value(raw, attribute.type, missing)


def _group_rows_by_element(
    db: Database,
    attribute: Attribute,
    order_column: str,
    *,
    element_id: int | None = None,
) -> dict[int, list[Any]]:
    where = f'WHERE "{IDENTITY_COLUMN}" = :id ' if element_id is not None else ""
    rows = db.execute(
        f'SELECT "{IDENTITY_COLUMN}", "{attribute.id}" FROM "{attribute.table}" '
        f'{where}ORDER BY "{IDENTITY_COLUMN}", {order_column}',
        {"id": element_id} if element_id is not None else None,
    )
    grouped: dict[int, list[Any]] = {}
    for row in rows:
        grouped.setdefault(int(row[0]), []).append(row[1])
    return grouped


def _order_column(attribute: Attribute) -> str:
    return f'"{VECTOR_INDEX_COLUMN}"' if attribute.is_vector else "rowid"


def _read_grouped_values(
    db: Database,
    collection_id: str,
    attribute: Attribute,
    default: Any,
) -> list[list[Any]]:
    missing = resolve_default(attribute, default)
    grouped = _group_rows_by_element(db, attribute, _order_column(attribute))
    return [
        [from_db_value(raw, attribute.type, missing) for raw in grouped.get(element_id, [])]
        for element_id in element_ids(db, collection_id)
    ]


def _read_grouped_value(
    db: Database,
    collection_id: str,
    attribute: Attribute,
    element: ElementRef,
    default: Any,
) -> list[Any]:
    missing = resolve_default(attribute, default)
    element_id = resolve_id(db, collection_id, element)
    grouped = _group_rows_by_element(db, attribute, _order_column(attribute), element_id=element_id)
    return [from_db_value(raw, attribute.type, missing) for raw in grouped.get(element_id, [])]


def read_vector_parameters(
    db: Database,
    collection_id: str,
    attribute_id: str,
    *,
    default: Any = None,
) -> list[list[Any]]:
    attribute = db.attribute(collection_id, attribute_id, "vector_parameter")
    return _read_grouped_values(db, collection_id, attribute, default)


def read_vector_parameter(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    *,
    default: Any = None,
) -> list[Any]:
    attribute = db.attribute(collection_id, attribute_id, "vector_parameter")
    return _read_grouped_value(db, collection_id, attribute, element, default)


def read_set_parameters(
    db: Database,
    collection_id: str,
    attribute_id: str,
    *,
    default: Any = None,
) -> list[list[Any]]:
    attribute = db.attribute(collection_id, attribute_id, "set_parameter")
    return _read_grouped_values(db, collection_id, attribute, default)


def read_set_parameter(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    *,
    default: Any = None,
) -> list[Any]:
    attribute = db.attribute(collection_id, attribute_id, "set_parameter")
    return _read_grouped_value(db, collection_id, attribute, element, default)


def _relation_value(raw: Any, labels: dict[int, str] | None) -> Any:
    if labels is None:
        return INTEGER_NULL if raw is None else int(raw)
    return STRING_NULL if raw is None else labels.get(int(raw), STRING_NULL)


def read_scalar_relations(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    *,
    as_ids: bool = False,
) -> list[Any]:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, "scalar_relation")
    labels = None if as_ids else labels_by_id(db, collection_to)
    rows = db.execute(f'SELECT "{attribute.id}" FROM "{attribute.table}" ORDER BY "{IDENTITY_COLUMN}"')
    return [_relation_value(row[0], labels) for row in rows]


def read_scalar_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    element: ElementRef,
    *,
    as_ids: bool = False,
) -> Any:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, "scalar_relation")
    labels = None if as_ids else labels_by_id(db, collection_to)
    element_id = resolve_id(db, collection_from, element)
    raw = db.execute(
        f'SELECT "{attribute.id}" FROM "{attribute.table}" WHERE "{IDENTITY_COLUMN}" = :id',
        {"id": element_id},
    ).scalar_one()
    return _relation_value(raw, labels)


def _read_grouped_relations(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    kind: AttributeKind,
    as_ids: bool,
) -> list[list[Any]]:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, kind)
    labels = None if as_ids else labels_by_id(db, collection_to)
    grouped = _group_rows_by_element(db, attribute, _order_column(attribute))
    return [
        [_relation_value(raw, labels) for raw in grouped.get(element_id, [])]
        for element_id in element_ids(db, collection_from)
    ]


def _read_grouped_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    element: ElementRef,
    kind: AttributeKind,
    as_ids: bool,
) -> list[Any]:
    attribute = relation_attribute(db, collection_from, collection_to, relation_type, kind)
    labels = None if as_ids else labels_by_id(db, collection_to)
    element_id = resolve_id(db, collection_from, element)
    grouped = _group_rows_by_element(db, attribute, _order_column(attribute), element_id=element_id)
    return [_relation_value(raw, labels) for raw in grouped.get(element_id, [])]


def read_vector_relations(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    *,
    as_ids: bool = False,
) -> list[list[Any]]:
    return _read_grouped_relations(db, collection_from, collection_to, relation_type, "vector_relation", as_ids)


def read_vector_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    element: ElementRef,
    *,
    as_ids: bool = False,
) -> list[Any]:
    return _read_grouped_relation(
        db, collection_from, collection_to, relation_type, element, "vector_relation", as_ids
    )


def read_set_relations(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    *,
    as_ids: bool = False,
) -> list[list[Any]]:
    return _read_grouped_relations(db, collection_from, collection_to, relation_type, "set_relation", as_ids)


def read_set_relation(
    db: Database,
    collection_from: str,
    collection_to: str,
    relation_type: str,
    element: ElementRef,
    *,
    as_ids: bool = False,
) -> list[Any]:
    return _read_grouped_relation(
        db, collection_from, collection_to, relation_type, element, "set_relation", as_ids
    )


def read_time_series_file(db: Database, collection_id: str, attribute_id: str) -> str:
    attribute = db.attribute(collection_id, attribute_id, "time_series_file")
    rows = db.execute(f'SELECT "{attribute.id}" FROM "{attribute.table}"').all()
    if len(rows) > 1:
        database_error(f'Table "{attribute.table}" must hold a single row, found {len(rows)}.')
    if not rows or rows[0][0] is None:
        return STRING_NULL
    return str(rows[0][0])


def _time_series_records(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
) -> tuple[Attribute, list[dict[str, Any]]]:
    attribute = db.attribute(collection_id, attribute_id, "time_series")
    element_id = resolve_id(db, collection_id, element)
    dimensions = ", ".join(f'"{name}"' for name in attribute.dimension_names)
    rows = db.execute(
        f'SELECT {dimensions}, "{attribute.id}" FROM "{attribute.table}" '
        f'WHERE "{IDENTITY_COLUMN}" = :id ORDER BY {dimensions}',
        {"id": element_id},
    ).all()
    date_dimension = attribute.dimension_names[0]
    records = [dict(zip([*attribute.dimension_names, attribute.id], row)) for row in rows]
    for record in records:
        record[date_dimension] = from_db_value(record[date_dimension], datetime, None)
    return attribute, records


def _frame(attribute: Attribute, records: list[dict[str, Any]]) -> pd.DataFrame:
    return pd.DataFrame.from_records(records, columns=[*attribute.dimension_names, attribute.id])


def read_time_series_table(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
) -> pd.DataFrame:
    attribute, records = _time_series_records(db, collection_id, attribute_id, element)
    missing = null_value(attribute.type)
    for record in records:
        record[attribute.id] = from_db_value(record[attribute.id], attribute.type, missing)
    return _frame(attribute, records)


def read_time_series_relation_table(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    *,
    as_ids: bool = False,
) -> pd.DataFrame:
    attribute, records = _time_series_records(db, collection_id, attribute_id, element)
    if attribute.relation_collection is None:
        database_error(
            f'Time series "{attribute_id}" of collection "{collection_id}" is not a relation; '
            "use read_time_series_table."
        )
    labels = None if as_ids else labels_by_id(db, attribute.relation_collection)
    for record in records:
        record[attribute.id] = _relation_value(record[attribute.id], labels)
    return _frame(attribute, records)


def read_time_series_row(
    db: Database,
    collection_id: str,
    attribute_id: str,
    *,
    date_time: datetime,
    **dimensions: Any,
) -> list[Any]:
    attribute = db.attribute(collection_id, attribute_id, "time_series")
    cache = db.time_series_cache
    ids = element_ids(db, collection_id)
    if not ids:
        return []
    return cache.row(attribute, ids, date_time, dimensions)


def read_time_series_value(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: ElementRef,
    *,
    date_time: datetime,
    **dimensions: Any,
) -> Any:
    attribute = db.attribute(collection_id, attribute_id, "time_series")
    cache = db.time_series_cache
    element_id = resolve_id(db, collection_id, element)
    return cache.value(attribute, element_id, date_time, dimensions)
