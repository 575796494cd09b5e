from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Literal

from sqlalchemy.engine import Connection

from schemadb.core.config import Settings, get_settings
from schemadb.core.exceptions import DatabaseException, database_error
from schemadb.db.catalog import build_catalog
from schemadb.db.introspection import read_schema
from schemadb.db.session import IN_MEMORY, create_sqlite_engine
from schemadb.db.validation import validate_database

Direction = Literal["up", "down"]

_logger = logging.getLogger("schemadb.migrations")


@dataclass(frozen=True)
class Migration:
    version: int
    path: Path
    up_script: Path
    down_script: Path

    def script(self, direction: Direction) -> str:
        script_path = self.up_script if direction == "up" else self.down_script
        return script_path.read_text(encoding="utf-8")


def discover_migrations(migrations_dir: str | Path, *, settings: Settings | None = None) -> list[Migration]:
    """Return the migrations under ``migrations_dir`` ordered by version.

    Versions are the names of numeric subdirectories and must run 1, 2, ..., N
    without gaps. Each version needs a non-empty up and down script.
    """
    settings = settings or get_settings()
    root = Path(migrations_dir)
    if not root.is_dir():
        database_error(f'Migrations directory "{root}" does not exist.')

    versions: dict[int, Path] = {}
    for entry in root.iterdir():
        if entry.is_dir() and entry.name.isdigit():
            versions[int(entry.name)] = entry

    ordered = sorted(versions)
    expected = list(range(1, len(ordered) + 1))
    if ordered != expected:
        missing = sorted(set(range(1, (max(ordered) if ordered else 0) + 1)) - set(ordered))
        database_error(
            f'Migrations in "{root}" must be numbered 1..N without gaps; found {ordered}, missing {missing}.'
        )

    migrations: list[Migration] = []
    for version in ordered:
        directory = versions[version]
        up_script = directory / settings.migration_up_script
        down_script = directory / settings.migration_down_script
        for script in (up_script, down_script):
            if not script.is_file():
                database_error(f'Migration {version} is missing "{script.name}" in "{directory}".')
            if not script.read_text(encoding="utf-8").strip():
                database_error(f'Migration {version} has an empty "{script.name}" in "{directory}".')
        migrations.append(Migration(version=version, path=directory, up_script=up_script, down_script=down_script))
    return migrations


def latest_version(migrations_dir: str | Path, *, settings: Settings | None = None) -> int:
    migrations = discover_migrations(migrations_dir, settings=settings)
    return migrations[-1].version if migrations else 0


def _driver_connection(connection: Connection) -> sqlite3.Connection:
    return connection.connection.driver_connection


def read_user_version(connection: Connection) -> int:
    return int(connection.exec_driver_sql("PRAGMA user_version").scalar_one())


def table_names(connection: Connection) -> list[str]:
    rows = connection.exec_driver_sql(
        "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
    )
    return [str(row[0]) for row in rows]


def db_is_empty(connection: Connection) -> bool:
    return not table_names(connection)


def database_file(connection: Connection) -> Path | None:
    for row in connection.exec_driver_sql("PRAGMA database_list").mappings():
        if row["name"] == "main":
            return Path(row["file"]) if row["file"] else None
    return None


def backup_database(connection: Connection, *, settings: Settings | None = None) -> Path | None:
    settings = settings or get_settings()
    source = database_file(connection)
    if source is None or str(source) == IN_MEMORY:
        _logger.info("backup skipped reason=in_memory")
        return None
    backups_dir = source.parent / settings.backups_dir_name
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    target = backups_dir / f"{source.stem}_{stamp}{source.suffix}"
    try:
        backups_dir.mkdir(parents=True, exist_ok=True)
        destination = sqlite3.connect(target)
        try:
            _driver_connection(connection).backup(destination)
        finally:
            destination.close()
    except (OSError, sqlite3.Error) as exc:
        database_error(f'Could not back up "{source}" to "{target}" before migrating: {exc}')
    _logger.info("backup created source=%s target=%s", source, target)
    return target


def _terminated(script: str) -> str:
    stripped = script.rstrip()
    return stripped if stripped.endswith(";") else stripped + ";"


def _check_schema(connection: Connection, settings: Settings) -> None:
    schema = read_schema(connection)
    if not schema:
        return
    validate_database(
        schema,
        configuration_collection=settings.configuration_collection,
        date_dimension=settings.time_series_date_dimension,
    )
    build_catalog(schema, date_dimension=settings.time_series_date_dimension)


def _apply_step(
    connection: Connection,
    migration: Migration,
    direction: Direction,
    target_version: int,
    *,
    settings: Settings,
    check_schema: bool,
) -> None:
    driver = _driver_connection(connection)
    driver.execute("PRAGMA foreign_keys = OFF")
    try:
        driver.executescript(
            f"BEGIN;\n{_terminated(migration.script(direction))}\nPRAGMA user_version = {target_version};"
        )
        violations = driver.execute("PRAGMA foreign_key_check").fetchall()
        if violations:
            database_error(
                f"Migration {migration.version} ({direction}) leaves {len(violations)} foreign key "
                f"violation(s), first in table {violations[0][0]!r}."
            )
        if check_schema:
            _check_schema(connection, settings)
        driver.execute("COMMIT")
    except (DatabaseException, sqlite3.Error):
        if driver.in_transaction:
            driver.execute("ROLLBACK")
        _logger.error("migration failed version=%s direction=%s", migration.version, direction)
        raise
    finally:
        driver.execute("PRAGMA foreign_keys = ON")
    _logger.info(
        "migration applied version=%s direction=%s user_version=%s",
        migration.version,
        direction,
        target_version,
    )


def apply_migrations(
    connection: Connection,
    migrations_dir: str | Path,
    from_version: int,
    to_version: int,
    direction: Direction,
    *,
    settings: Settings | None = None,
) -> None:
    settings = settings or get_settings()
    if direction not in ("up", "down"):
        database_error(f'Migration direction must be "up" or "down", got {direction!r}.')
    if direction == "up" and from_version > to_version:
        database_error(f"Cannot migrate up from version {from_version} to {to_version}.")
    if direction == "down" and from_version < to_version:
        database_error(f"Cannot migrate down from version {from_version} to {to_version}.")
    if to_version < 0:
        database_error(f"Cannot migrate to version {to_version}.")

    current = read_user_version(connection)
    if current != from_version:
        database_error(
            f"Database is at version {current}; cannot apply migrations starting from version {from_version}."
        )
    if from_version == to_version:
        return

    available = {migration.version: migration for migration in discover_migrations(migrations_dir, settings=settings)}
    if direction == "up":
        steps = [(version, version) for version in range(from_version + 1, to_version + 1)]
    else:
        steps = [(version, version - 1) for version in range(from_version, to_version, -1)]
    absent = [version for version, _target in steps if version not in available]
    if absent:
        database_error(
            f'Migrations {absent} are not available in "{migrations_dir}" '
            f"(latest is {max(available) if available else 0})."
        )

    if settings.backup_before_migration and not (from_version == 0 and db_is_empty(connection)):
        backup_database(connection, settings=settings)

    for version, target_version in steps:
        _apply_step(
            connection,
            available[version],
            direction,
            target_version,
            settings=settings,
            check_schema=target_version == to_version,
        )


def check_migrations_round_trip(migrations_dir: str | Path, *, settings: Settings | None = None) -> bool:
    settings = settings or get_settings()
    migrations = discover_migrations(migrations_dir, settings=settings)
    latest = migrations[-1].version if migrations else 0
    engine = create_sqlite_engine(IN_MEMORY)
    try:
        with engine.connect() as connection:
            apply_migrations(connection, migrations_dir, 0, latest, "up", settings=settings)
            apply_migrations(connection, migrations_dir, latest, 0, "down", settings=settings)
            empty = db_is_empty(connection) and read_user_version(connection) == 0
    finally:
        engine.dispose()
    if not empty:
        _logger.error("migrations do not round trip migrations_dir=%s", migrations_dir)
    return empty
