from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping

from schemadb.core.exceptions import database_error
from schemadb.db.catalog import IDENTITY_COLUMN, LABEL_COLUMN, VECTOR_INDEX_COLUMN, classify_table
from schemadb.db.introspection import TableInfo

ALLOWED_FOREIGN_KEY_ACTIONS = frozenset({"CASCADE", "SET NULL"})
COLUMN_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9]*(_[a-z0-9]+)*$")

_logger = logging.getLogger("schemadb.validation")


@dataclass
class ValidationOutcome:
    valid: bool
    errors: list[str] = field(default_factory=list)


def check_database(
    schema: Mapping[str, TableInfo],
    *,
    configuration_collection: str = "Configuration",
    date_dimension: str = "date_time",
) -> ValidationOutcome:
    errors: list[str] = []
    collections: set[str] = set()
    for table_name, table in schema.items():
        classified = classify_table(table_name)
        if classified is None:
            errors.append(
                f'Table "{table_name}" is neither a collection (PascalCase) nor a '
                f'"<Collection>_vector_<group>", "<Collection>_set_<group>", '
                f'"<Collection>_time_series_<group>" or "<Collection>_time_series_files" table.'
            )
            continue
        collection_id, role, _group_id = classified
        if role == "collection":
            collections.add(collection_id)
            _check_collection_table(table, errors)
        else:
            _check_side_table(collection_id, role, table, schema, errors, date_dimension)
        _check_column_names(table, errors)
        _check_foreign_keys(table, schema, errors)

    if configuration_collection not in collections:
        errors.append(f'Database does not have a "{configuration_collection}" collection.')

    return ValidationOutcome(valid=not errors, errors=errors)


def validate_database(
    schema: Mapping[str, TableInfo],
    *,
    configuration_collection: str = "Configuration",
    date_dimension: str = "date_time",
) -> None:
    outcome = check_database(
        schema,
        configuration_collection=configuration_collection,
        date_dimension=date_dimension,
    )
    if outcome.valid:
        return
    for error in outcome.errors:
        _logger.error("schema validation failed: %s", error)
    database_error(
        f"Database definition is invalid ({len(outcome.errors)} issue(s)): " + " ".join(outcome.errors)
    )


def _check_collection_table(table: TableInfo, errors: list[str]) -> None:
    identity = table.column(IDENTITY_COLUMN)
    if identity is None or table.primary_key != (IDENTITY_COLUMN,):
        errors.append(f'Collection "{table.name}" must declare "{IDENTITY_COLUMN}" as its single primary key.')
    elif "INT" not in identity.declared_type:
        errors.append(f'Collection "{table.name}" must declare "{IDENTITY_COLUMN}" as an INTEGER column.')

    label = table.column(LABEL_COLUMN)
    if label is None:
        return
    if "TEXT" not in label.declared_type:
        errors.append(f'Collection "{table.name}" must declare "{LABEL_COLUMN}" as TEXT.')
    if not label.not_null:
        errors.append(f'Collection "{table.name}" must declare "{LABEL_COLUMN}" as NOT NULL.')
    if LABEL_COLUMN not in table.unique_columns:
        errors.append(f'Collection "{table.name}" must declare "{LABEL_COLUMN}" as UNIQUE.')


def _check_side_table(
    collection_id: str,
    role: str,
    table: TableInfo,
    schema: Mapping[str, TableInfo],
    errors: list[str],
    date_dimension: str,
) -> None:
    if collection_id not in schema:
        errors.append(f'Table "{table.name}" belongs to collection "{collection_id}", which does not exist.')
        return

    if role == "time_series_files":
        if not [name for name in table.column_names() if name != IDENTITY_COLUMN]:
            errors.append(f'Table "{table.name}" declares no time series file columns.')
        return

    identity_key = table.foreign_key(IDENTITY_COLUMN)
    if identity_key is None or identity_key.referred_table != collection_id:
        errors.append(f'Table "{table.name}" must declare "{IDENTITY_COLUMN}" as a foreign key to "{collection_id}".')
    elif identity_key.on_delete != "CASCADE":
        errors.append(f'Table "{table.name}" must declare its "{IDENTITY_COLUMN}" foreign key ON DELETE CASCADE.')

    if role == "vector":
        if table.primary_key != (IDENTITY_COLUMN, VECTOR_INDEX_COLUMN):
            errors.append(
                f'Vector table "{table.name}" must declare PRIMARY KEY ({IDENTITY_COLUMN}, {VECTOR_INDEX_COLUMN}).'
            )
    elif role == "set":
        if table.column(VECTOR_INDEX_COLUMN) is not None:
            errors.append(f'Set table "{table.name}" must not declare a "{VECTOR_INDEX_COLUMN}" column.')
    elif role == "time_series":
        primary_key = table.primary_key
        if not primary_key or primary_key[0] != IDENTITY_COLUMN or date_dimension not in primary_key:
            errors.append(
                f'Time series table "{table.name}" must declare a PRIMARY KEY starting with '
                f'"{IDENTITY_COLUMN}" and containing "{date_dimension}".'
            )
        date_column = table.column(date_dimension)
        if date_column is not None and "TEXT" not in date_column.declared_type:
            errors.append(f'Time series table "{table.name}" must store "{date_dimension}" as TEXT.')


def _check_column_names(table: TableInfo, errors: list[str]) -> None:
    for column in table.columns:
        if not COLUMN_NAME_PATTERN.match(column.name):
            errors.append(f'Column "{column.name}" of table "{table.name}" is not in snake_case.')


def _check_foreign_keys(
    table: TableInfo,
    schema: Mapping[str, TableInfo],
    errors: list[str],
) -> None:
    for foreign_key in table.foreign_keys:
        described = f'Foreign key "{foreign_key.column}" of table "{table.name}"'
        if foreign_key.referred_table not in schema:
            errors.append(f'{described} references unknown table "{foreign_key.referred_table}".')
            continue
        if foreign_key.referred_column != IDENTITY_COLUMN:
            errors.append(f'{described} must reference "{foreign_key.referred_table}.{IDENTITY_COLUMN}".')
        if foreign_key.on_delete not in ALLOWED_FOREIGN_KEY_ACTIONS:
            errors.append(f"{described} must declare ON DELETE CASCADE or ON DELETE SET NULL.")
        if foreign_key.on_update not in ALLOWED_FOREIGN_KEY_ACTIONS:
            errors.append(f"{described} must declare ON UPDATE CASCADE or ON UPDATE SET NULL.")
        if foreign_key.column == IDENTITY_COLUMN:
            continue
        prefix = foreign_key.referred_table.lower() + "_"
        if not foreign_key.column.startswith(prefix) or len(foreign_key.column) == len(prefix):
            errors.append(f'{described} must be named "{prefix}<relation_type>".')
