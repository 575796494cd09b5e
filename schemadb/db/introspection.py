from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    declared_type: str
    not_null: bool
    default: str | None


@dataclass(frozen=True)
class ForeignKeyInfo:
    column: str
    referred_table: str
    referred_column: str
    on_update: str
    on_delete: str


@dataclass(frozen=True)
class TableInfo:
    name: str
    columns: tuple[ColumnInfo, ...]
    primary_key: tuple[str, ...]
    foreign_keys: tuple[ForeignKeyInfo, ...]
    unique_columns: frozenset[str]

    def column(self, name: str) -> ColumnInfo | None:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_names(self) -> list[str]:
        return [column.name for column in self.columns]

    def foreign_key(self, column_name: str) -> ForeignKeyInfo | None:
        for foreign_key in self.foreign_keys:
            if foreign_key.column == column_name:
                return foreign_key
        return None


def read_schema(connection: Connection) -> dict[str, TableInfo]:
    inspector = inspect(connection)
    tables: dict[str, TableInfo] = {}
    for table_name in inspector.get_table_names():
        if table_name.startswith("sqlite_"):
            continue
        columns = tuple(
            ColumnInfo(
                name=column["name"],
                declared_type=str(column["type"]).upper(),
                not_null=not column.get("nullable", True),
                default=None if column.get("default") is None else str(column["default"]),
            )
            for column in inspector.get_columns(table_name)
        )
        primary_key = tuple(inspector.get_pk_constraint(table_name).get("constrained_columns") or ())
        tables[table_name] = TableInfo(
            name=table_name,
            columns=columns,
            primary_key=primary_key,
            foreign_keys=_read_foreign_keys(connection, table_name),
            unique_columns=_read_unique_columns(connection, table_name, primary_key),
        )
    return tables


def _read_foreign_keys(connection: Connection, table_name: str) -> tuple[ForeignKeyInfo, ...]:
    rows = connection.execute(text(f'PRAGMA foreign_key_list("{table_name}")')).mappings()
    return tuple(
        ForeignKeyInfo(
            column=row["from"],
            referred_table=row["table"],
            referred_column=row["to"] or "id",
            on_update=str(row["on_update"]).upper(),
            on_delete=str(row["on_delete"]).upper(),
        )
        for row in rows
    )


def _read_unique_columns(
    connection: Connection,
    table_name: str,
    primary_key: tuple[str, ...],
) -> frozenset[str]:
    unique: set[str] = set()
    if len(primary_key) == 1:
        unique.add(primary_key[0])
    indexes = connection.execute(text(f'PRAGMA index_list("{table_name}")')).mappings().all()
    for index in indexes:
        if not index["unique"]:
            continue
        index_columns = connection.execute(
            text(f'PRAGMA index_info("{index["name"]}")')
        ).mappings().all()
        if len(index_columns) == 1 and index_columns[0]["name"] is not None:
            unique.add(index_columns[0]["name"])
    return frozenset(unique)
