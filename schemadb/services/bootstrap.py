from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from sqlalchemy.engine import Connection

from schemadb.core.config import Settings, get_settings
from schemadb.core.exceptions import database_error
from schemadb.db.session import Database
from schemadb.services.migrations import apply_migrations, latest_version, read_user_version

_logger = logging.getLogger("schemadb.bootstrap")


def execute_statements(connection: Connection, script_path: str | Path) -> None:
    script = Path(script_path)
    if not script.is_file():
        database_error(f'SQL script "{script}" does not exist.')
    connection.connection.driver_connection.executescript(script.read_text(encoding="utf-8"))
    _logger.debug("script executed path=%s", script)


def _prepare_target(path: str | Path, *, force: bool) -> None:
    target = Path(path)
    if not target.exists():
        return
    if not force:
        database_error(f'File "{target}" already exists; pass force=True to overwrite it.')
    target.unlink()


def _open_and_validate(
    path: str | Path,
    *,
    read_only: bool,
    settings: Settings,
    prepare: Callable[[Database], None] | None = None,
) -> Database:
    db = Database.open(path, read_only=read_only, settings=settings)
    try:
        if prepare is not None:
            prepare(db)
        db.refresh_catalog()
    except Exception:
        db.close()
        raise
    return db


def create_empty_db_from_schema(
    path: str | Path,
    schema_path: str | Path,
    *,
    force: bool = False,
    settings: Settings | None = None,
) -> Database:
    settings = settings or get_settings()
    if not Path(schema_path).is_file():
        database_error(f'Schema file "{schema_path}" does not exist.')
    _prepare_target(path, force=force)
    db = _open_and_validate(
        path,
        read_only=False,
        settings=settings,
        prepare=lambda opened: execute_statements(opened.connection, schema_path),
    )
    _logger.info("database created path=%s schema=%s", path, schema_path)
    return db


def _migrate_to_latest(db: Database, migrations_dir: str | Path) -> None:
    current = read_user_version(db.connection)
    latest = latest_version(migrations_dir, settings=db.settings)
    if current > latest:
        database_error(
            f'Database "{db.path}" is at version {current}, newer than the latest migration {latest} '
            f'in "{migrations_dir}".'
        )
    if current < latest:
        apply_migrations(db.connection, migrations_dir, current, latest, "up", settings=db.settings)


def create_empty_db_from_migrations(
    path: str | Path,
    migrations_dir: str | Path,
    *,
    force: bool = False,
    settings: Settings | None = None,
) -> Database:
    settings = settings or get_settings()
    _prepare_target(path, force=force)
    db = _open_and_validate(
        path,
        read_only=False,
        settings=settings,
        prepare=lambda opened: _migrate_to_latest(opened, migrations_dir),
    )
    _logger.info("database created path=%s migrations_dir=%s", path, migrations_dir)
    return db


def load_db(
    path: str | Path,
    *,
    read_only: bool = False,
    migrations_dir: str | Path | None = None,
    settings: Settings | None = None,
) -> Database:
    settings = settings or get_settings()
    if not Path(path).is_file():
        database_error(f'Database file "{path}" does not exist.')
    if read_only and migrations_dir is not None:
        database_error("Migrations cannot be applied to a database opened read-only.")

    def migrate(opened: Database) -> None:
        if migrations_dir is not None:
            _migrate_to_latest(opened, migrations_dir)

    return _open_and_validate(path, read_only=read_only, settings=settings, prepare=migrate)
