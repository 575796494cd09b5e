from __future__ import annotations

import logging
import numbers
from collections.abc import Sequence
from typing import Any, Literal, Mapping

import pandas as pd
from sqlalchemy import text

from schemadb.core.exceptions import DatabaseException, database_error
from schemadb.core.values import as_datetime, format_datetime, is_null, matches_type, to_db_value, type_name
from schemadb.db.catalog import IDENTITY_COLUMN, LABEL_COLUMN, VECTOR_INDEX_COLUMN, Attribute, Collection
from schemadb.db.session import Database
from schemadb.repositories.read import get_id, number_of_elements, resolve_id

_logger = logging.getLogger("schemadb.create")


def check_value(attribute: Attribute, value: Any) -> Any:
    """Validate one parameter value and convert it to its stored form."""
    if is_null(value):
        return None
    if matches_type(value, attribute.type):
        return to_db_value(value, attribute.type)
    database_error(
        f'Attribute "{attribute.id}" of collection "{attribute.parent_collection}" is a '
        f"{type_name(attribute.type)}, got {type(value).__name__}: {value!r}."
    )


def check_time_series_value(attribute: Attribute, value: Any) -> Any:
    # integer columns with gaps arrive from pandas as floats
    if (
        attribute.type is int
        and isinstance(value, numbers.Real)
        and not isinstance(value, (bool, numbers.Integral))
        and not is_null(value)
        and float(value).is_integer()
    ):
        return int(value)
    return check_value(attribute, value)


def resolve_relation(
    db: Database,
    attribute: Attribute,
    value: Any,
    *,
    element_id: int | None = None,
) -> int | None:
    """Turn a label or an id into the id of an existing element of the relation target."""
    if is_null(value):
        return None
    target = str(attribute.relation_collection)
    if isinstance(value, str):
        target_id = get_id(db, target, value)
    elif isinstance(value, numbers.Integral) and not isinstance(value, bool):
        target_id = resolve_id(db, target, int(value))
    elif isinstance(value, numbers.Real) and not isinstance(value, bool) and float(value).is_integer():
        target_id = resolve_id(db, target, int(value))
    else:
        database_error(
            f'Relation "{attribute.id}" of collection "{attribute.parent_collection}" takes a label or an id, '
            f"got {type(value).__name__}: {value!r}."
        )
    if element_id is not None and target == attribute.parent_collection and target_id == element_id:
        database_error(
            f'Element {element_id} of collection "{attribute.parent_collection}" cannot relate to itself '
            f'through "{attribute.id}".'
        )
    return target_id


def check_sequence(attribute: Attribute, value: Any) -> list[Any]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        database_error(
            f'Attribute "{attribute.id}" of collection "{attribute.parent_collection}" takes a list of values, '
            f"got {type(value).__name__}."
        )
    return list(value)


def insert_rows(db: Database, table: str, rows: list[dict[str, Any]]) -> None:
    if not rows:
        return
    columns = list(rows[0])
    column_list = ", ".join(f'"{name}"' for name in columns)
    placeholders = ", ".join(f":{name}" for name in columns)
    db.connection.execute(text(f'INSERT INTO "{table}" ({column_list}) VALUES ({placeholders})'), rows)


def group_rows(
    db: Database,
    collection: Collection,
    group_kind: Literal["vector", "set"],
    group_id: str,
    supplied: Mapping[str, list[Any]],
    *,
    element_id: int,
) -> list[dict[str, Any]]:
    """Build the side-table rows of one vector or set group for one element.

    Every supplied member must have the same length. Members of the group
    that were not supplied are stored as null at every position.
    """
    members = collection.groups(group_kind)[group_id]
    lengths = {name: len(values) for name, values in supplied.items()}
    if len(set(lengths.values())) > 1:
        database_error(
            f'All members of the {group_kind} group "{group_id}" of collection "{collection.id}" must have '
            f"the same length, got {lengths}."
        )
    length = next(iter(lengths.values()))
    rows: list[dict[str, Any]] = []
    for position in range(length):
        row: dict[str, Any] = {IDENTITY_COLUMN: element_id}
        if group_kind == "vector":
            row[VECTOR_INDEX_COLUMN] = position + 1
        for member in members:
            values = supplied.get(member.id)
            if values is None:
                row[member.id] = None
            elif member.is_relation:
                row[member.id] = resolve_relation(db, member, values[position], element_id=element_id)
            else:
                row[member.id] = check_value(member, values[position])
        rows.append(row)
    return rows


def _dimension_value(attribute: Attribute, name: str, value: Any) -> Any:
    if name == attribute.dimension_names[0]:
        try:
            return format_datetime(as_datetime(value))
        except (TypeError, ValueError):
            database_error(
                f'Dimension "{name}" of time series "{attribute.id}" of collection "{attribute.parent_collection}" '
                f"takes a date, got {type(value).__name__}: {value!r}."
            )
    if isinstance(value, numbers.Integral) and not isinstance(value, bool):
        return int(value)
    if isinstance(value, numbers.Real) and not isinstance(value, bool):
        return float(value)
    return value


def time_series_rows(
    db: Database,
    collection: Collection,
    group_id: str,
    frame: pd.DataFrame,
    *,
    element_id: int,
) -> list[dict[str, Any]]:
    members = collection.groups("time_series")[group_id]
    dimension_names = members[0].dimension_names
    member_ids = {member.id for member in members}
    columns = [str(column) for column in frame.columns]
    missing_dimensions = [name for name in dimension_names if name not in columns]
    if missing_dimensions:
        database_error(
            f'Time series group "{group_id}" of collection "{collection.id}" needs the dimension columns '
            f"{list(dimension_names)}; missing {missing_dimensions}."
        )
    unknown = [name for name in columns if name not in dimension_names and name not in member_ids]
    if unknown:
        database_error(
            f'Time series group "{group_id}" of collection "{collection.id}" has no attributes named {unknown}.'
        )
    if frame.empty:
        database_error(f'Time series group "{group_id}" of collection "{collection.id}" cannot be created empty.')

    rows: list[dict[str, Any]] = []
    for record in frame.to_dict(orient="records"):
        row: dict[str, Any] = {IDENTITY_COLUMN: element_id}
        for name in dimension_names:
            if is_null(record[name]):
                database_error(
                    f'Time series group "{group_id}" of collection "{collection.id}" has an empty "{name}" value.'
                )
            row[name] = _dimension_value(members[0], name, record[name])
        for member in members:
            if member.id not in record:
                row[member.id] = None
            elif member.is_relation:
                row[member.id] = resolve_relation(db, member, record[member.id], element_id=element_id)
            else:
                row[member.id] = check_time_series_value(member, record[member.id])
        rows.append(row)
    return rows


def create_element(db: Database, collection_id: str, **values: Any) -> int:
    try:
        return _create_element(db, collection_id, values)
    except DatabaseException:
        _logger.error("create failed collection=%s", collection_id)
        raise


def _create_element(db: Database, collection_id: str, values: dict[str, Any]) -> int:
    collection = db.collection(collection_id)
    configuration = db.settings.configuration_collection
    if collection_id == configuration and number_of_elements(db, collection_id) > 0:
        database_error(f'Collection "{configuration}" already has its single element.')
    if not values and collection_id != configuration:
        database_error(f'Cannot create an element of collection "{collection_id}" without a label or an id.')

    explicit_id = values.pop(IDENTITY_COLUMN, None)
    if explicit_id is not None and (isinstance(explicit_id, bool) or not isinstance(explicit_id, numbers.Integral)):
        database_error(f'The id of a new element of "{collection_id}" must be an integer, got {explicit_id!r}.')

    scalars: dict[str, Any] = {}
    relations: dict[str, Any] = {}
    groups: dict[tuple[str, str], dict[str, list[Any]]] = {}
    frames: dict[str, pd.DataFrame] = {}
    time_series_groups = collection.groups("time_series")

    for name, value in values.items():
        if name in time_series_groups and name not in collection.attributes:
            if not isinstance(value, pd.DataFrame):
                database_error(
                    f'Time series group "{name}" of collection "{collection_id}" takes a pandas DataFrame, '
                    f"got {type(value).__name__}."
                )
            frames[name] = value
            continue
        attribute = db.attribute(collection_id, name)
        if attribute.kind == "scalar_parameter":
            scalars[name] = check_value(attribute, value)
        elif attribute.kind == "scalar_relation":
            if isinstance(value, (list, tuple)):
                database_error(f'Relation "{name}" of collection "{collection_id}" is scalar; pass a single value.')
            relations[name] = value
        elif attribute.kind in ("vector_parameter", "vector_relation", "set_parameter", "set_relation"):
            sequence = check_sequence(attribute, value)
            if not sequence:
                database_error(f'Attribute "{name}" of collection "{collection_id}" cannot be created empty.')
            group_kind = "vector" if attribute.is_vector else "set"
            groups.setdefault((group_kind, str(attribute.group_id)), {})[name] = sequence
        elif attribute.kind == "time_series":
            database_error(
                f'Time series "{name}" of collection "{collection_id}" is created through its group '
                f'"{attribute.group_id}" as a pandas DataFrame.'
            )
        else:
            database_error(
                f'Time series file "{name}" of collection "{collection_id}" is set with set_time_series_file.'
            )

    for name, value in relations.items():
        attribute = collection.attributes[name]
        if (
            isinstance(value, str)
            and attribute.relation_collection == collection_id
            and value == scalars.get(LABEL_COLUMN)
        ):
            database_error(
                f'Element "{value}" of collection "{collection_id}" cannot relate to itself through "{name}".'
            )
        scalars[name] = resolve_relation(
            db,
            attribute,
            value,
            element_id=int(explicit_id) if explicit_id is not None else None,
        )

    if explicit_id is not None:
        scalars = {IDENTITY_COLUMN: int(explicit_id), **scalars}

    if scalars:
        column_list = ", ".join(f'"{name}"' for name in scalars)
        placeholders = ", ".join(f":{name}" for name in scalars)
        result = db.execute(
            f'INSERT INTO "{collection.table}" ({column_list}) VALUES ({placeholders})',
            scalars,
        )
    else:
        result = db.execute(f'INSERT INTO "{collection.table}" DEFAULT VALUES')
    element_id = int(explicit_id) if explicit_id is not None else int(result.lastrowid)

    for (group_kind, group_id), supplied in groups.items():
        rows = group_rows(db, collection, group_kind, group_id, supplied, element_id=element_id)
        insert_rows(db, collection.groups(group_kind)[group_id][0].table, rows)

    for group_id, frame in frames.items():
        rows = time_series_rows(db, collection, group_id, frame, element_id=element_id)
        insert_rows(db, time_series_groups[group_id][0].table, rows)

    _logger.debug("element created collection=%s id=%s", collection_id, element_id)
    return element_id


def add_time_series_row(
    db: Database,
    collection_id: str,
    attribute_id: str,
    element: str | int,
    value: Any,
    **dimensions: Any,
) -> None:
    attribute = db.attribute(collection_id, attribute_id, "time_series")
    element_id = resolve_id(db, collection_id, element)
    key = dimension_key(attribute, dimensions)
    if attribute.is_relation:
        stored = resolve_relation(db, attribute, value, element_id=element_id)
    else:
        stored = check_time_series_value(attribute, value)

    row = {IDENTITY_COLUMN: element_id, **key, attribute.id: stored}
    column_list = ", ".join(f'"{name}"' for name in row)
    placeholders = ", ".join(f":{name}" for name in row)
    conflict = ", ".join(f'"{name}"' for name in (IDENTITY_COLUMN, *attribute.dimension_names))
    db.execute(
        f'INSERT INTO "{attribute.table}" ({column_list}) VALUES ({placeholders}) '
        f'ON CONFLICT({conflict}) DO UPDATE SET "{attribute.id}" = excluded."{attribute.id}"',
        row,
    )


def dimension_key(attribute: Attribute, dimensions: Mapping[str, Any]) -> dict[str, Any]:
    expected = attribute.dimension_names
    if len(dimensions) != len(expected) or set(dimensions) != set(expected):
        database_error(
            f'Time series "{attribute.id}" of collection "{attribute.parent_collection}" is indexed by '
            f"{list(expected)}, got {list(dimensions)}."
        )
    key: dict[str, Any] = {}
    for name in expected:
        if is_null(dimensions[name]):
            database_error(f'Dimension "{name}" of time series "{attribute.id}" cannot be empty.')
        key[name] = _dimension_value(attribute, name, dimensions[name])
    return key
