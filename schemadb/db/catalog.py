from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Literal, Mapping

from schemadb.core.exceptions import database_error
from schemadb.db.introspection import ForeignKeyInfo, TableInfo

AttributeKind = Literal[
    "scalar_parameter",
    "scalar_relation",
    "vector_parameter",
    "vector_relation",
    "set_parameter",
    "set_relation",
    "time_series",
    "time_series_file",
]
GroupKind = Literal["vector", "set", "time_series"]

IDENTITY_COLUMN = "id"
LABEL_COLUMN = "label"
VECTOR_INDEX_COLUMN = "vector_index"

COLLECTION_NAME_PATTERN = re.compile(r"^[A-Z][A-Za-z0-9]*$")
TIME_SERIES_FILES_TABLE_PATTERN = re.compile(r"^(?P<collection>[A-Z][A-Za-z0-9]*)_time_series_files$")
GROUP_TABLE_PATTERN = re.compile(
    r"^(?P<collection>[A-Z][A-Za-z0-9]*)_(?P<kind>vector|set|time_series)_(?P<group>.+)$"
)


@dataclass(frozen=True)
class Attribute:
    id: str
    kind: AttributeKind
    type: type
    parent_collection: str
    table: str
    group_id: str | None = None
    relation_collection: str | None = None
    relation_type: str | None = None
    dimension_names: tuple[str, ...] = ()
    not_null: bool = False
    unique: bool = False

    @property
    def is_relation(self) -> bool:
        return self.relation_collection is not None

    @property
    def is_vector(self) -> bool:
        return self.kind in ("vector_parameter", "vector_relation")

    @property
    def extra_dimension_names(self) -> tuple[str, ...]:
        return self.dimension_names[1:]


@dataclass(frozen=True)
class Collection:
    id: str
    table: str
    attributes: Mapping[str, Attribute] = field(default_factory=dict)
    has_label: bool = False

    def attributes_of_kind(self, *kinds: AttributeKind) -> dict[str, Attribute]:
        return {name: attribute for name, attribute in self.attributes.items() if attribute.kind in kinds}

    @property
    def scalar_parameters(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("scalar_parameter")

    @property
    def scalar_relations(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("scalar_relation")

    @property
    def vector_parameters(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("vector_parameter")

    @property
    def vector_relations(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("vector_relation")

    @property
    def set_parameters(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("set_parameter")

    @property
    def set_relations(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("set_relation")

    @property
    def time_series(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("time_series")

    @property
    def time_series_files(self) -> dict[str, Attribute]:
        return self.attributes_of_kind("time_series_file")

    def groups(self, group_kind: GroupKind) -> dict[str, list[Attribute]]:
        kinds: tuple[AttributeKind, ...] = {
            "vector": ("vector_parameter", "vector_relation"),
            "set": ("set_parameter", "set_relation"),
            "time_series": ("time_series",),
        }[group_kind]
        grouped: dict[str, list[Attribute]] = {}
        for attribute in self.attributes.values():
            if attribute.kind in kinds and attribute.group_id is not None:
                grouped.setdefault(attribute.group_id, []).append(attribute)
        return grouped


Catalog = Mapping[str, Collection]


def relation_attribute_id(collection_to: str, relation_type: str) -> str:
    return f"{collection_to.lower()}_{relation_type}"


def semantic_type(column_name: str, declared_type: str) -> type:
    if column_name.startswith("date"):
        return datetime
    if "INT" in declared_type:
        return int
    if any(token in declared_type for token in ("CHAR", "CLOB", "TEXT")):
        return str
    if any(token in declared_type for token in ("REAL", "FLOA", "DOUB")):
        return float
    database_error(f'column "{column_name}" has unsupported type "{declared_type}"')


def classify_table(table_name: str) -> tuple[str, str, str | None] | None:
    """Split a table name into (collection, table role, group).

    The role is one of "collection", "vector", "set", "time_series" or
    "time_series_files". Returns None for names that follow no convention.
    """
    if COLLECTION_NAME_PATTERN.match(table_name):
        return table_name, "collection", None
    files_match = TIME_SERIES_FILES_TABLE_PATTERN.match(table_name)
    if files_match:
        return files_match.group("collection"), "time_series_files", None
    group_match = GROUP_TABLE_PATTERN.match(table_name)
    if group_match:
        return group_match.group("collection"), group_match.group("kind"), group_match.group("group")
    return None


def build_catalog(
    schema: Mapping[str, TableInfo],
    *,
    date_dimension: str = "date_time",
) -> Catalog:
    attributes_by_collection: dict[str, dict[str, Attribute]] = {}
    collections: dict[str, TableInfo] = {}
    side_tables: list[tuple[str, str, str | None, TableInfo]] = []

    for table_name, table in schema.items():
        classified = classify_table(table_name)
        if classified is None:
            database_error(f'table "{table_name}" does not follow any collection naming convention')
        collection_id, role, group_id = classified
        if role == "collection":
            collections[collection_id] = table
            attributes_by_collection[collection_id] = {}
        else:
            side_tables.append((collection_id, role, group_id, table))

    for collection_id, table in collections.items():
        for attribute in _primary_table_attributes(collection_id, table):
            _register(attributes_by_collection[collection_id], attribute)

    for collection_id, role, group_id, table in sorted(side_tables, key=lambda item: item[3].name):
        if collection_id not in collections:
            database_error(f'table "{table.name}" belongs to unknown collection "{collection_id}"')
        if role == "time_series_files":
            attributes = _time_series_file_attributes(collection_id, table)
        elif role == "time_series":
            attributes = _time_series_attributes(collection_id, str(group_id), table, date_dimension)
        else:
            attributes = _group_attributes(collection_id, role, str(group_id), table)
        for attribute in attributes:
            _register(attributes_by_collection[collection_id], attribute)

    return MappingProxyType(
        {
            collection_id: Collection(
                id=collection_id,
                table=collection_id,
                attributes=MappingProxyType(attributes_by_collection[collection_id]),
                has_label=table.column(LABEL_COLUMN) is not None,
            )
            for collection_id, table in collections.items()
        }
    )


def _register(attributes: dict[str, Attribute], attribute: Attribute) -> None:
    existing = attributes.get(attribute.id)
    if existing is not None:
        database_error(
            f'attribute "{attribute.id}" of collection "{attribute.parent_collection}" is defined '
            f'in both "{existing.table}" and "{attribute.table}"'
        )
    attributes[attribute.id] = attribute


def _relation_parts(table: TableInfo, column_name: str, foreign_key: ForeignKeyInfo) -> tuple[str, str]:
    prefix = foreign_key.referred_table.lower() + "_"
    if not column_name.startswith(prefix) or len(column_name) == len(prefix):
        database_error(
            f'relation column "{column_name}" in table "{table.name}" must be named '
            f'"{prefix}<relation_type>" because it references "{foreign_key.referred_table}"'
        )
    return foreign_key.referred_table, column_name[len(prefix):]


def _primary_table_attributes(collection_id: str, table: TableInfo) -> list[Attribute]:
    attributes: list[Attribute] = []
    for column in table.columns:
        if column.name == IDENTITY_COLUMN:
            continue
        foreign_key = table.foreign_key(column.name)
        if foreign_key is not None:
            relation_collection, relation_type = _relation_parts(table, column.name, foreign_key)
            attributes.append(
                Attribute(
                    id=column.name,
                    kind="scalar_relation",
                    type=int,
                    parent_collection=collection_id,
                    table=table.name,
                    relation_collection=relation_collection,
                    relation_type=relation_type,
                    not_null=column.not_null,
                )
            )
            continue
        attributes.append(
            Attribute(
                id=column.name,
                kind="scalar_parameter",
                type=semantic_type(column.name, column.declared_type),
                parent_collection=collection_id,
                table=table.name,
                not_null=column.not_null or column.name == LABEL_COLUMN,
                unique=column.name in table.unique_columns or column.name == LABEL_COLUMN,
            )
        )
    return attributes


def _group_attributes(
    collection_id: str,
    role: str,
    group_id: str,
    table: TableInfo,
) -> list[Attribute]:
    if table.column(IDENTITY_COLUMN) is None:
        database_error(f'table "{table.name}" has no "{IDENTITY_COLUMN}" column')
    if role == "vector" and table.column(VECTOR_INDEX_COLUMN) is None:
        database_error(f'vector table "{table.name}" has no "{VECTOR_INDEX_COLUMN}" column')
    if role == "set" and table.column(VECTOR_INDEX_COLUMN) is not None:
        database_error(f'set table "{table.name}" must not have a "{VECTOR_INDEX_COLUMN}" column')

    attributes: list[Attribute] = []
    for column in table.columns:
        if column.name in (IDENTITY_COLUMN, VECTOR_INDEX_COLUMN):
            continue
        foreign_key = table.foreign_key(column.name)
        if foreign_key is not None:
            relation_collection, relation_type = _relation_parts(table, column.name, foreign_key)
            attributes.append(
                Attribute(
                    id=column.name,
                    kind="vector_relation" if role == "vector" else "set_relation",
                    type=int,
                    parent_collection=collection_id,
                    table=table.name,
                    group_id=group_id,
                    relation_collection=relation_collection,
                    relation_type=relation_type,
                )
            )
            continue
        attributes.append(
            Attribute(
                id=column.name,
                kind="vector_parameter" if role == "vector" else "set_parameter",
                type=semantic_type(column.name, column.declared_type),
                parent_collection=collection_id,
                table=table.name,
                group_id=group_id,
            )
        )
    if not attributes:
        database_error(f'table "{table.name}" declares no attributes')
    return attributes


def _time_series_attributes(
    collection_id: str,
    group_id: str,
    table: TableInfo,
    date_dimension: str,
) -> list[Attribute]:
    primary_key = table.primary_key
    if not primary_key or primary_key[0] != IDENTITY_COLUMN or date_dimension not in primary_key:
        database_error(
            f'time series table "{table.name}" must have a primary key starting with '
            f'"{IDENTITY_COLUMN}" and containing "{date_dimension}"'
        )
    extra_dimensions = tuple(name for name in primary_key[1:] if name != date_dimension)
    dimension_names = (date_dimension, *extra_dimensions)

    attributes: list[Attribute] = []
    for column in table.columns:
        if column.name in primary_key:
            continue
        relation_collection: str | None = None
        relation_type: str | None = None
        value_type = int
        foreign_key = table.foreign_key(column.name)
        if foreign_key is not None:
            relation_collection, relation_type = _relation_parts(table, column.name, foreign_key)
        else:
            value_type = semantic_type(column.name, column.declared_type)
        attributes.append(
            Attribute(
                id=column.name,
                kind="time_series",
                type=value_type,
                parent_collection=collection_id,
                table=table.name,
                group_id=group_id,
                relation_collection=relation_collection,
                relation_type=relation_type,
                dimension_names=dimension_names,
            )
        )
    if not attributes:
        database_error(f'time series table "{table.name}" declares no attributes')
    return attributes


def _time_series_file_attributes(collection_id: str, table: TableInfo) -> list[Attribute]:
    return [
        Attribute(
            id=column.name,
            kind="time_series_file",
            type=str,
            parent_collection=collection_id,
            table=table.name,
        )
        for column in table.columns
        if column.name != IDENTITY_COLUMN
    ]
